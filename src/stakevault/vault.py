"""Staking vault — the public operations over the accounting core.

Operations:
    initialize(reward_token, stake_token, authority)   once
    stake(account, amount)
    withdraw(account, amount)
    claim_reward(account)
    allocate_incentive(caller, amount)                 allocator only
    fund_reserve(account, amount)                      loyalty-bonus reserve
    balance_of / earned / get_multiplier_points / get_multiplier
    history(index) / members(account) / reconcile()

Every public operation is one atomic transaction:
    1. load a working copy of the member record
    2. validate and settle against the ledger on that copy
    3. run the external transfer (may raise TransferFailed)
    4. commit the copy and the running totals

Anything that raises before step 4 leaves the vault exactly as it was.
Overflow-prone arithmetic is evaluated before the transfer, so a
transfer is never followed by an accounting failure.

A single re-entrant lock serializes all operations; allocation never
touches member records, so its cost is independent of member count.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from stakevault.accounting.epoch_ledger import EpochLedger
from stakevault.accounting.fixed_point import checked_add, checked_sub
from stakevault.accounting.member_store import MemberStore, normalize_account
from stakevault.accounting.multiplier import MultiplierEngine
from stakevault.accounting.settlement import SettlementEngine, SettlementOutcome
from stakevault.collaborators import AllocatorAuthority, TokenTransfer
from stakevault.crypto.merkle import LedgerMerkleTree
from stakevault.errors import (
    AlreadyInitialized,
    InvalidAmount,
    NotInitialized,
    Unauthorized,
)
from stakevault.models.vault import (
    EpochSnapshot,
    Member,
    ReconciliationReport,
    VaultTotals,
)
from stakevault.policy.resolver import VaultParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultSavepoint:
    """Undo record for a single operation."""
    epochs: int
    totals: VaultTotals
    account: Optional[str] = None
    member: Optional[Member] = None


class StakingVault:
    """Pooled staking vault with pro-rata rewards and a loyalty multiplier.

    Usage:
        vault = StakingVault(params)
        vault.initialize(reward_token, stake_token, StaticAllocatorAuthority("manager"))
        vault.stake("alice", 10 * 10**18)
        vault.allocate_incentive("manager", 500 * 10**18)
        vault.earned("alice")
        vault.claim_reward("alice")
    """

    def __init__(self, params: Optional[VaultParams] = None) -> None:
        self._params = params or VaultParams()
        self._lock = threading.RLock()
        self._multiplier = MultiplierEngine(
            base=self._params.multiplier_base,
            cap=self._params.multiplier_cap,
            rate_per_epoch=self._params.multiplier_rate_per_epoch,
        )
        self._ledger = EpochLedger(self._params.precision)
        self._members = MemberStore()
        self._settlement = SettlementEngine(self._ledger, self._multiplier)
        self._totals = VaultTotals()
        self._reward_token: Optional[TokenTransfer] = None
        self._stake_token: Optional[TokenTransfer] = None
        self._authority: Optional[AllocatorAuthority] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        reward_token: TokenTransfer,
        stake_token: TokenTransfer,
        authority: AllocatorAuthority,
    ) -> None:
        """Wire the collaborators. Callable exactly once."""
        with self._lock:
            if self.initialized:
                raise AlreadyInitialized("Vault is already initialized")
            for name, value, protocol in (
                ("reward_token", reward_token, TokenTransfer),
                ("stake_token", stake_token, TokenTransfer),
                ("authority", authority, AllocatorAuthority),
            ):
                if not isinstance(value, protocol):
                    raise TypeError(
                        f"{name} must implement {protocol.__name__}, got {type(value).__name__}"
                    )
            self._reward_token = reward_token
            self._stake_token = stake_token
            self._authority = authority
            logger.info(
                "Vault initialized",
                extra={
                    "event": "vault.initialized",
                    "reward_asset": reward_token.asset_id,
                    "stake_asset": stake_token.asset_id,
                },
            )

    @property
    def initialized(self) -> bool:
        return self._authority is not None

    @property
    def params(self) -> VaultParams:
        return self._params

    # ------------------------------------------------------------------
    # Member operations
    # ------------------------------------------------------------------

    def stake(self, account: str, amount: int) -> Member:
        """Deposit amount of the stake asset for account.

        Settles with the balance held before the deposit, so the new funds
        only earn from the next appended epoch. Loyalty points are kept;
        accrual freezes for one epoch and resumes with the new balance.
        """
        with self._lock:
            self._require_initialized()
            _require_positive(amount)
            index = self._ledger.current_index()

            member = self._members.get_or_create(account, index)
            outcome = self._settlement.settle(member)
            new_balance = checked_add(member.balance, amount)
            new_total = checked_add(self._totals.total_staked, amount)
            booked = self._booked_totals(outcome)

            self._stake_token.transfer_in(member.account, amount)

            member.balance = new_balance
            self._multiplier.rebase(member, index)
            self._members.commit(member)
            self._totals = replace(booked, total_staked=new_total)

            logger.info(
                "Stake deposited",
                extra={
                    "event": "vault.stake",
                    "account": member.account,
                    "amount": amount,
                    "balance": member.balance,
                    "epoch": index,
                },
            )
            return replace(member)

    def withdraw(self, account: str, amount: int) -> Member:
        """Return amount of the stake asset to account.

        Accrued loyalty points are preserved; only future accrual shrinks.
        """
        with self._lock:
            self._require_initialized()
            _require_positive(amount)
            member = self._members.get(account)
            if member is None or amount > member.balance:
                available = member.balance if member is not None else 0
                raise InvalidAmount(
                    f"Withdrawal of {amount} exceeds staked balance {available}"
                )

            outcome = self._settlement.settle(member)
            new_balance = checked_sub(member.balance, amount)
            new_total = checked_sub(self._totals.total_staked, amount)
            booked = self._booked_totals(outcome)

            self._stake_token.transfer_out(member.account, amount)

            member.balance = new_balance
            self._members.commit(member)
            self._totals = replace(booked, total_staked=new_total)

            logger.info(
                "Stake withdrawn",
                extra={
                    "event": "vault.withdraw",
                    "account": member.account,
                    "amount": amount,
                    "balance": member.balance,
                    "epoch": self._ledger.current_index(),
                },
            )
            return replace(member)

    def claim_reward(self, account: str) -> int:
        """Pay out what account is owed and restart its loyalty window.

        The pro-rata base is always paid. The loyalty bonus is paid only to
        the extent the funded reserve still covers it; any uncovered bonus
        stays pending until the reserve is topped up. Returns the amount
        paid. An account that never staked gets 0 and no record is created.
        """
        with self._lock:
            self._require_initialized()
            member = self._members.get(account)
            if member is None:
                return 0
            index = self._ledger.current_index()

            outcome = self._settlement.settle(member)
            booked = self._booked_totals(outcome)
            reserve_left = checked_sub(booked.reserve_funded, booked.bonus_paid)
            bonus = min(member.pending_bonus, reserve_left)
            base = checked_sub(member.pending_reward, member.pending_bonus)
            amount = checked_add(base, bonus)
            deferred = checked_sub(member.pending_bonus, bonus)
            paid_out = checked_add(booked.paid_out, amount)
            bonus_paid = checked_add(booked.bonus_paid, bonus)
            total_claimed = checked_add(member.total_claimed, amount)

            if amount > 0:
                self._reward_token.transfer_out(member.account, amount)

            member.pending_reward = deferred
            member.pending_bonus = deferred
            member.total_claimed = total_claimed
            self._multiplier.reset(member, index)
            self._members.commit(member)
            self._totals = replace(booked, paid_out=paid_out, bonus_paid=bonus_paid)

            logger.info(
                "Reward claimed",
                extra={
                    "event": "vault.claim",
                    "account": member.account,
                    "amount": amount,
                    "bonus": bonus,
                    "factor": outcome.factor,
                    "epoch": index,
                },
            )
            if deferred:
                logger.warning(
                    "Bonus reserve short; part of the loyalty bonus stays pending",
                    extra={"event": "vault.bonus_deferred", "account": member.account, "deferred": deferred},
                )
            return amount

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate_incentive(self, caller: str, amount: int) -> EpochSnapshot:
        """Pull amount of the reward asset from the allocator and append an epoch.

        O(1) in the number of members.
        """
        with self._lock:
            self._require_initialized()
            caller = normalize_account(caller)
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
            if not self._authority.is_allocator(caller):
                raise Unauthorized(f"{caller} is not the allocator")

            total_staked = self._totals.total_staked
            self._ledger.next_epoch(amount, total_staked)
            if amount > 0:
                self._reward_token.transfer_in(caller, amount)
            snapshot = self._ledger.append_epoch(amount, total_staked)

            logger.info(
                "Incentive allocated",
                extra={
                    "event": "vault.allocate",
                    "epoch": snapshot.index,
                    "amount": amount,
                    "total_staked": total_staked,
                    "reward_per_share_cumulative": snapshot.reward_per_share_cumulative,
                },
            )
            if not snapshot.distributed and amount > 0:
                logger.warning(
                    "Allocation made with nothing staked; reward is undistributed",
                    extra={"event": "vault.allocate_undistributed", "epoch": snapshot.index},
                )
            return snapshot

    def fund_reserve(self, account: str, amount: int) -> int:
        """Pull reward asset into the reserve that pays the loyalty bonus.

        Reserve funds are never distributed pro-rata; they only cover the
        part of a claim above the base factor (see claim_reward). Returns the lifetime total.
        """
        with self._lock:
            self._require_initialized()
            account = normalize_account(account)
            _require_positive(amount)
            funded = checked_add(self._totals.reserve_funded, amount)

            self._reward_token.transfer_in(account, amount)

            self._totals = replace(self._totals, reserve_funded=funded)
            logger.info(
                "Bonus reserve funded",
                extra={"event": "vault.reserve_funded", "account": account, "amount": amount},
            )
            return funded

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        with self._lock:
            member = self._members.get(account)
            return member.balance if member is not None else 0

    def earned(self, account: str) -> int:
        """Claimable reward right now, including the loyalty factor. Pure."""
        with self._lock:
            member = self._members.get(account)
            return self._settlement.earned(member) if member is not None else 0

    def get_multiplier_points(self, account: str) -> int:
        with self._lock:
            member = self._members.get(account)
            return self._settlement.multiplier_points(member) if member is not None else 0

    def get_multiplier(self, account: str) -> int:
        """Current loyalty factor in basis points (base == 1.0x)."""
        with self._lock:
            member = self._members.get(account)
            if member is None:
                return self._multiplier.base
            return self._multiplier.factor(member, self._ledger.current_index())

    def history(self, index: int) -> EpochSnapshot:
        with self._lock:
            return self._ledger.get_epoch(index)

    def members(self, account: str) -> Member:
        """Raw member record; an unknown account reads as an all-zero record."""
        with self._lock:
            member = self._members.get(account)
            return member if member is not None else Member(account=account.strip())

    def member_accounts(self) -> list[str]:
        with self._lock:
            return self._members.accounts()

    def total_staked(self) -> int:
        with self._lock:
            return self._totals.total_staked

    def current_epoch(self) -> int:
        with self._lock:
            return self._ledger.current_index()

    def ledger_root(self) -> str:
        with self._lock:
            return LedgerMerkleTree.from_snapshots(self._ledger.snapshots()).root

    def reconcile(self) -> ReconciliationReport:
        """Account for every unit of reward ever allocated.

        Walks all members, so it is an audit view, not a hot path.
        """
        with self._lock:
            members = self._members.all()
            unsettled = sum(self._settlement.preview(m).base for m in members)
            outstanding = sum(m.pending_reward for m in members)
            received = self._ledger.total_reward_received()
            undistributed = self._ledger.total_undistributed()
            dust = received - undistributed - self._totals.base_booked - unsettled
            return ReconciliationReport(
                epochs=self._ledger.current_index(),
                reward_received=received,
                reward_undistributed=undistributed,
                base_booked=self._totals.base_booked,
                bonus_booked=self._totals.bonus_booked,
                paid_out=self._totals.paid_out,
                reserve_funded=self._totals.reserve_funded,
                bonus_paid=self._totals.bonus_paid,
                outstanding=outstanding,
                unsettled=unsettled,
                dust=dust,
                members=len(members),
            )

    # ------------------------------------------------------------------
    # State export / restore
    # ------------------------------------------------------------------

    def to_state(self) -> Dict[str, Any]:
        """Plain-data snapshot of the accounting state (collaborators excluded)."""
        with self._lock:
            return {
                "params": self._params.to_dict(),
                "epochs": [_stringify(s.to_dict()) for s in self._ledger.snapshots()],
                "members": [_stringify(m.to_dict()) for m in self._members.all()],
                "totals": _stringify(self._totals.to_dict()),
            }

    def load_state(self, state: Dict[str, Any]) -> None:
        """Replace the accounting state with a previously exported one.

        Collaborators are left as they are. Validation runs before anything
        is replaced.
        """
        params = VaultParams(**{k: int(v) for k, v in state.get("params", {}).items()})
        if params != self._params:
            raise ValueError("Stored vault parameters do not match this vault")
        ledger = EpochLedger.from_snapshots(
            (EpochSnapshot.from_dict(e) for e in state.get("epochs", [])),
            precision=params.precision,
        )
        members = MemberStore.from_members(Member.from_dict(m) for m in state.get("members", []))
        totals = VaultTotals.from_dict(state.get("totals", {}))
        with self._lock:
            self._ledger = ledger
            self._members = members
            self._settlement = SettlementEngine(self._ledger, self._multiplier)
            self._totals = totals

    def savepoint(self, account: Optional[str] = None) -> VaultSavepoint:
        """Capture what one operation on account can change. O(1).

        An operation touches at most one member record, the running totals
        and the tail of the ledger, so that is all a savepoint keeps.
        """
        with self._lock:
            return VaultSavepoint(
                epochs=self._ledger.current_index(),
                totals=replace(self._totals),
                account=normalize_account(account) if account is not None else None,
                member=self._members.get(account) if account is not None else None,
            )

    def rollback(self, savepoint: VaultSavepoint) -> None:
        """Undo everything done since savepoint was taken."""
        with self._lock:
            self._ledger.rollback_to(savepoint.epochs)
            self._totals = replace(savepoint.totals)
            if savepoint.account is None:
                return
            if savepoint.member is None:
                self._members.discard(savepoint.account)
            else:
                self._members.commit(savepoint.member)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise NotInitialized("Vault has not been initialized")

    def _booked_totals(self, outcome: SettlementOutcome) -> VaultTotals:
        """Totals after booking a settlement, computed but not yet committed."""
        return replace(
            self._totals,
            base_booked=checked_add(self._totals.base_booked, outcome.base),
            bonus_booked=checked_add(self._totals.bonus_booked, outcome.bonus),
        )


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")


def _stringify(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v for k, v in data.items()}
