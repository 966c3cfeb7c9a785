"""Epoch ledger — append-only sequence of reward-per-share snapshots.

Each allocation appends exactly one EpochSnapshot. The ledger knows
nothing about individual members, which is what keeps allocation O(1):
members reconcile lazily against the cumulative value on their own
next interaction.

Per-epoch delta:
    delta = reward_amount * PRECISION // total_staked   (0 if nothing staked)
    cumulative[n] = cumulative[n - 1] + delta

Truncation is toward zero. The remainder of that division is never
distributed; it is bounded dust, reported by reconciliation.
"""

from __future__ import annotations

from typing import Iterable, List

from stakevault.accounting.fixed_point import (
    PRECISION,
    checked_add,
    mul_div,
    require_uint,
)
from stakevault.errors import EpochOutOfRange, InvalidAmount
from stakevault.models.vault import EpochSnapshot


class EpochLedger:
    """In-memory, append-only epoch ledger.

    Usage:
        ledger = EpochLedger()
        snapshot = ledger.append_epoch(reward_amount=1000, total_staked=10)
        ledger.get_epoch(1) == snapshot
        ledger.current_index() == 1
    """

    def __init__(self, precision: int = PRECISION) -> None:
        self._precision = precision
        self._snapshots: List[EpochSnapshot] = []

    @classmethod
    def from_snapshots(
        cls,
        snapshots: Iterable[EpochSnapshot],
        precision: int = PRECISION,
    ) -> EpochLedger:
        """Rebuild a ledger from stored snapshots.

        Fail-closed: rejects gaps in the index sequence and any decrease
        in the cumulative reward-per-share.
        """
        ledger = cls(precision)
        previous = 0
        for expected, snapshot in enumerate(snapshots, 1):
            if snapshot.index != expected:
                raise ValueError(
                    f"Epoch index gap on restore: expected {expected}, got {snapshot.index}"
                )
            if snapshot.reward_per_share_cumulative < previous:
                raise ValueError(
                    f"Cumulative reward-per-share decreased at epoch {snapshot.index}"
                )
            previous = snapshot.reward_per_share_cumulative
            ledger._snapshots.append(snapshot)
        return ledger

    @property
    def precision(self) -> int:
        return self._precision

    def append_epoch(self, reward_amount: int, total_staked: int) -> EpochSnapshot:
        """Record one allocation and return the new snapshot.

        Authorization is the caller's job; this component trusts that the
        vault has already verified the allocator.
        """
        snapshot = self.next_epoch(reward_amount, total_staked)
        self._snapshots.append(snapshot)
        return snapshot

    def next_epoch(self, reward_amount: int, total_staked: int) -> EpochSnapshot:
        """Compute the snapshot append_epoch would record, without recording it."""
        if reward_amount < 0:
            raise InvalidAmount(f"Reward amount cannot be negative: {reward_amount}")
        require_uint(reward_amount, "reward_amount")
        require_uint(total_staked, "total_staked")

        if total_staked > 0:
            delta = mul_div(reward_amount, self._precision, total_staked)
        else:
            delta = 0
        cumulative = checked_add(self.latest_cumulative(), delta)

        return EpochSnapshot(
            index=len(self._snapshots) + 1,
            reward_per_share_cumulative=cumulative,
            reward_received=reward_amount,
            total_staked_at_epoch=total_staked,
        )

    def rollback_to(self, length: int) -> None:
        """Drop epochs appended after length.

        Only for undoing an append whose audit record could not be written;
        an audited epoch is never removed.
        """
        if length < 0 or length > len(self._snapshots):
            raise EpochOutOfRange(f"Cannot roll back to {length} (ledger has {len(self._snapshots)} epochs)")
        del self._snapshots[length:]

    def get_epoch(self, index: int) -> EpochSnapshot:
        """Return the snapshot at a 1-based index."""
        if index < 1 or index > len(self._snapshots):
            raise EpochOutOfRange(
                f"Epoch {index} out of range (ledger has {len(self._snapshots)} epochs)"
            )
        return self._snapshots[index - 1]

    def current_index(self) -> int:
        return len(self._snapshots)

    def latest_cumulative(self) -> int:
        """Cumulative reward-per-share of the newest epoch, or 0 if empty."""
        if not self._snapshots:
            return 0
        return self._snapshots[-1].reward_per_share_cumulative

    def snapshots(self) -> List[EpochSnapshot]:
        return list(self._snapshots)

    def total_reward_received(self) -> int:
        return sum(s.reward_received for s in self._snapshots)

    def total_undistributed(self) -> int:
        """Rewards allocated while nothing was staked."""
        return sum(s.reward_received for s in self._snapshots if not s.distributed)
