"""Reward settlement engine — books a member's unbooked reward lazily.

Settlement walks the reward-per-share delta between the member's
checkpoint and the ledger's latest cumulative value:

    raw_delta = cumulative - checkpoint
    base      = balance * raw_delta // PRECISION
    scaled    = base * factor // MULTIPLIER_BASE
    pending  += scaled
    checkpoint = cumulative

The factor is the Multiplier Engine's current factor. Multiplier points
catch up to the same epoch in the same step.

Because a stake settles with the balance held *before* the deposit, new
funds never earn any part of a delta already fixed in the ledger; they
start accruing from the next appended epoch.

preview() is the single source of truth: settle() applies exactly what
preview() reports, and earned() is pending_reward + preview().scaled,
so a polled earned() always matches what settlement would book.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stakevault.accounting.epoch_ledger import EpochLedger
from stakevault.accounting.fixed_point import checked_add, checked_sub, mul_div
from stakevault.accounting.multiplier import MultiplierEngine
from stakevault.errors import EpochOutOfRange
from stakevault.models.vault import Member

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementOutcome:
    """What a settlement books (or would book) for one member."""
    account: str
    base: int
    bonus: int
    factor: int
    points_added: int
    checkpoint: int
    epoch_index: int

    @property
    def scaled(self) -> int:
        return self.base + self.bonus


class SettlementEngine:
    """Reconciles members against the epoch ledger.

    Usage:
        engine = SettlementEngine(ledger, multiplier)
        outcome = engine.settle(member)      # mutates the working copy
        amount = engine.earned(member)       # read-only
    """

    def __init__(self, ledger: EpochLedger, multiplier: MultiplierEngine) -> None:
        self._ledger = ledger
        self._multiplier = multiplier

    def preview(self, member: Member) -> SettlementOutcome:
        """Compute the settlement without touching the member."""
        cumulative = self._ledger.latest_cumulative()
        index = self._ledger.current_index()
        if member.reward_per_share_checkpoint > cumulative:
            raise EpochOutOfRange(
                f"Checkpoint for {member.account} ({member.reward_per_share_checkpoint}) "
                f"is ahead of the ledger ({cumulative})"
            )
        if member.points_epoch_index > index:
            raise EpochOutOfRange(
                f"Points index for {member.account} ({member.points_epoch_index}) "
                f"is ahead of the ledger ({index})"
            )

        raw_delta = checked_sub(cumulative, member.reward_per_share_checkpoint)
        base = mul_div(member.balance, raw_delta, self._ledger.precision)
        factor = self._multiplier.factor(member, index)
        scaled = mul_div(base, factor, self._multiplier.base)

        return SettlementOutcome(
            account=member.account,
            base=base,
            bonus=scaled - base,
            factor=factor,
            points_added=self._multiplier.points_to_add(member, index),
            checkpoint=cumulative,
            epoch_index=index,
        )

    def settle(self, member: Member) -> SettlementOutcome:
        """Book the outcome into the member (a working copy).

        Idempotent: a second call with no new epoch books zero.
        """
        outcome = self.preview(member)
        member.pending_reward = checked_add(member.pending_reward, outcome.scaled)
        member.pending_bonus = checked_add(member.pending_bonus, outcome.bonus)
        member.reward_per_share_checkpoint = outcome.checkpoint
        self._multiplier.advance(member, outcome.epoch_index)

        if outcome.scaled or outcome.points_added:
            logger.debug(
                "Member settled",
                extra={
                    "event": "vault.settled",
                    "account": member.account,
                    "base": outcome.base,
                    "bonus": outcome.bonus,
                    "factor": outcome.factor,
                    "points_added": outcome.points_added,
                    "epoch": outcome.epoch_index,
                },
            )
        return outcome

    def earned(self, member: Member) -> int:
        """Pending reward plus whatever settlement would add right now."""
        return checked_add(member.pending_reward, self.preview(member).scaled)

    def multiplier_points(self, member: Member) -> int:
        """Accrued points after an implicit catch-up to the latest epoch."""
        index = self._ledger.current_index()
        return checked_add(
            member.multiplier_points,
            self._multiplier.points_to_add(member, index),
        )
