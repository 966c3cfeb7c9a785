"""Multiplier engine — loyalty accrual and the bounded reward factor.

Two quantities per member:

multiplier_points
    A discretized balance x epochs integral. Every epoch that closes while
    the member holds a nonzero balance adds that balance. The first epoch
    after the window opens (the epoch that was open when the member last
    staked or claimed) contributes nothing.

factor (basis points, BASE = 1.0x)
    factor = min(BASE + RATE * elapsed, CAP)
    elapsed = max(0, current_index - stake_epoch_index - 1)

Window rules:
- claim resets points to 0 and re-bases the window at the current epoch
- stake keeps points, freezes accrual for one epoch, then resumes with
  the new balance; the elapsed-epoch counter restarts at the stake
- withdraw keeps points and the window; only future accrual shrinks

All methods are pure computations on a Member, or mutate the working
copy they are handed. Nothing here touches storage.
"""

from __future__ import annotations

from typing import Optional

from stakevault.accounting.fixed_point import (
    MULTIPLIER_BASE,
    MULTIPLIER_CAP,
    MULTIPLIER_RATE_PER_EPOCH,
    checked_add,
    checked_mul,
)
from stakevault.models.vault import Member


class MultiplierEngine:
    """Computes loyalty points and the capped reward factor.

    Usage:
        engine = MultiplierEngine(base=10_000, cap=22_500, rate_per_epoch=250)
        engine.points_to_add(member, current_index)
        engine.factor(member, current_index)
    """

    def __init__(
        self,
        base: int = MULTIPLIER_BASE,
        cap: int = MULTIPLIER_CAP,
        rate_per_epoch: int = MULTIPLIER_RATE_PER_EPOCH,
    ) -> None:
        if base <= 0:
            raise ValueError(f"Multiplier base must be positive, got {base}")
        if cap < base:
            raise ValueError(f"Multiplier cap ({cap}) must not be below base ({base})")
        if rate_per_epoch < 0:
            raise ValueError(f"Multiplier rate must be non-negative, got {rate_per_epoch}")
        self._base = base
        self._cap = cap
        self._rate = rate_per_epoch

    @property
    def base(self) -> int:
        return self._base

    @property
    def cap(self) -> int:
        return self._cap

    @property
    def rate_per_epoch(self) -> int:
        return self._rate

    def elapsed_epochs(self, member: Member, current_index: int) -> int:
        """Epochs counted toward the factor, excluding the window's first epoch."""
        return max(0, current_index - member.stake_epoch_index - 1)

    def factor(self, member: Member, current_index: int) -> int:
        elapsed = self.elapsed_epochs(member, current_index)
        growth = checked_mul(self._rate, elapsed)
        return min(checked_add(self._base, growth), self._cap)

    def points_to_add(self, member: Member, current_index: int) -> int:
        """Points the member would accrue by catching up to current_index."""
        start = max(member.points_epoch_index, member.stake_epoch_index + 1)
        epochs = max(0, current_index - start)
        return checked_mul(member.balance, epochs)

    def advance(self, member: Member, current_index: int) -> int:
        """Fold accrued points into the member. Returns the points added."""
        added = self.points_to_add(member, current_index)
        member.multiplier_points = checked_add(member.multiplier_points, added)
        member.points_epoch_index = max(member.points_epoch_index, current_index)
        return added

    def rebase(self, member: Member, current_index: int) -> None:
        """Open a new window at current_index, keeping accrued points.

        Call advance() first; points accrued so far are not recomputed.
        """
        member.stake_epoch_index = current_index
        member.points_epoch_index = max(member.points_epoch_index, current_index)

    def reset(self, member: Member, current_index: int) -> None:
        """Drop all loyalty and restart the window from the base factor."""
        member.multiplier_points = 0
        member.stake_epoch_index = current_index
        member.points_epoch_index = current_index

    def epochs_to_cap(self) -> Optional[int]:
        """Counted epochs needed to reach the cap, or None if it is never reached."""
        if self._cap == self._base:
            return 0
        if self._rate == 0:
            return None
        return -(-(self._cap - self._base) // self._rate)
