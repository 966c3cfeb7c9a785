"""Vault models — epoch snapshots, member records, reconciliation totals.

All amounts are integers in the asset's base unit. No floats in finance.

Invariants enforced by these models:
- An EpochSnapshot is immutable once appended to the ledger
- A Member never holds a negative balance
- Reward-per-share values are scaled by PRECISION (10**18)
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class EpochSnapshot:
    """One allocation, frozen at the moment it was recorded.

    reward_per_share_cumulative is the running sum of every epoch's
    reward_received * PRECISION // total_staked_at_epoch.
    """
    index: int
    reward_per_share_cumulative: int
    reward_received: int
    total_staked_at_epoch: int

    @property
    def distributed(self) -> bool:
        """False when nothing was staked and the reward went nowhere."""
        return self.total_staked_at_epoch > 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EpochSnapshot:
        return cls(
            index=int(data["index"]),
            reward_per_share_cumulative=int(data["reward_per_share_cumulative"]),
            reward_received=int(data["reward_received"]),
            total_staked_at_epoch=int(data["total_staked_at_epoch"]),
        )

    def leaf_hash(self) -> str:
        """Canonical SHA-256 of the snapshot, used as a Merkle leaf.

        Integers are serialized as strings so the hash does not depend
        on a JSON implementation's big-number handling.
        """
        canonical = json.dumps(
            {k: str(v) for k, v in self.to_dict().items()},
            sort_keys=True,
            ensure_ascii=False,
        ).encode("utf-8")
        return "sha256:" + hashlib.sha256(canonical).hexdigest()


@dataclass
class Member:
    """A participant's stake and settlement bookkeeping.

    Mutable, but the vault only ever mutates a working copy and commits
    it after the whole operation succeeds.

    stake_epoch_index and reward_per_share_checkpoint are lookups into the
    epoch ledger, never ownership. points_epoch_index is the ledger index
    through which multiplier_points have been accrued. pending_bonus is
    the part of pending_reward above the base factor; it is paid only out
    of the funded bonus reserve.
    """
    account: str
    balance: int = 0
    reward_per_share_checkpoint: int = 0
    pending_reward: int = 0
    pending_bonus: int = 0
    multiplier_points: int = 0
    stake_epoch_index: int = 0
    points_epoch_index: int = 0
    total_claimed: int = 0

    def __post_init__(self) -> None:
        if self.balance < 0:
            raise ValueError(f"Member balance cannot be negative: {self.balance}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Member:
        return cls(
            account=data["account"],
            balance=int(data.get("balance", 0)),
            reward_per_share_checkpoint=int(data.get("reward_per_share_checkpoint", 0)),
            pending_reward=int(data.get("pending_reward", 0)),
            pending_bonus=int(data.get("pending_bonus", 0)),
            multiplier_points=int(data.get("multiplier_points", 0)),
            stake_epoch_index=int(data.get("stake_epoch_index", 0)),
            points_epoch_index=int(data.get("points_epoch_index", 0)),
            total_claimed=int(data.get("total_claimed", 0)),
        )


@dataclass
class VaultTotals:
    """Running totals the vault keeps for reconciliation."""
    total_staked: int = 0
    base_booked: int = 0
    bonus_booked: int = 0
    paid_out: int = 0
    reserve_funded: int = 0
    bonus_paid: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VaultTotals:
        return cls(**{k: int(data.get(k, 0)) for k in cls().to_dict()})


@dataclass(frozen=True)
class ReconciliationReport:
    """Where every allocated unit of reward currently sits.

    Accounting identity (exact):
        reward_received == reward_undistributed + base_booked + unsettled + dust

    The loyalty bonus is paid on top of the pro-rata base and is reported
    separately as bonus_booked. It is paid only out of reserve_funded, so
    bonus_paid never exceeds reserve_funded and no member's base share
    ever covers another member's bonus.
    """
    epochs: int
    reward_received: int
    reward_undistributed: int
    base_booked: int
    bonus_booked: int
    paid_out: int
    reserve_funded: int
    bonus_paid: int
    outstanding: int
    unsettled: int
    dust: int
    members: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
