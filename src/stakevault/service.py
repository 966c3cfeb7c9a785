"""Vault service — unified facade for programmatic and CLI access.

Wraps a StakingVault with the operational concerns the accounting core
stays out of:
- Typed results (ServiceResult) instead of exceptions at the boundary
- An audit event for every successful state change
- Durable state via the StateStore
- Reference in-memory token ledgers for local operation

Fail-closed ordering for every mutation:
1. Snapshot vault (and in-memory token) state.
2. Run the vault operation (atomic on its own; VaultError → failure result).
3. Append the audit event. If that fails, restore the snapshot and fail.
4. Persist. The audit record is already durable, so a persistence error
   only marks the service degraded and returns a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from stakevault import __version__
from stakevault.collaborators import (
    InMemoryToken,
    StaticAllocatorAuthority,
    TokenTransfer,
)
from stakevault.crypto.anchor import AnchorRecord
from stakevault.errors import VaultError
from stakevault.persistence.event_log import EventKind, EventLog, EventRecord
from stakevault.persistence.state_store import StateStore
from stakevault.policy.resolver import PolicyResolver
from stakevault.vault import StakingVault

logger = logging.getLogger(__name__)

VAULT_CUSTODIAN = "vault"


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class VaultService:
    """Operational facade over a single staking vault.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = VaultService(resolver)
        service.initialize(allocator="manager")

        service.mint("alice", 1_000, asset="stake")
        service.stake("alice", 10)
        service.allocate_incentive("manager", 100)
        service.claim_reward("alice")

    Persistence (optional):
        service = VaultService(resolver, event_log=log, state_store=store)
        # State is persisted on each mutation and loaded on construction.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver
        self._vault = StakingVault(resolver.vault_params())
        self._event_log = event_log
        self._state_store = state_store
        self._tokens: dict[str, InMemoryToken] = {}
        self._allocator: Optional[str] = None
        self._event_counter = event_log.count if event_log is not None else 0
        self._persistence_degraded = False

        if state_store is not None:
            self._load(state_store)

    @property
    def vault(self) -> StakingVault:
        return self._vault

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        allocator: str,
        reward_asset: str = "REWARD",
        stake_asset: str = "STAKE",
        reward_token: Optional[TokenTransfer] = None,
        stake_token: Optional[TokenTransfer] = None,
    ) -> ServiceResult:
        """Wire collaborators; in-memory token ledgers are created when none are given."""
        try:
            reward = reward_token or InMemoryToken(reward_asset, custodian=VAULT_CUSTODIAN)
            stake = stake_token or InMemoryToken(stake_asset, custodian=VAULT_CUSTODIAN)
            authority = StaticAllocatorAuthority(allocator)
            self._vault.initialize(reward, stake, authority)
        except (VaultError, ValueError, TypeError) as e:
            return ServiceResult(success=False, errors=[str(e)])

        self._allocator = authority.allocator
        self._tokens = {
            name: token
            for name, token in (("reward", reward), ("stake", stake))
            if isinstance(token, InMemoryToken)
        }
        data = {
            "allocator": authority.allocator,
            "reward_asset": reward.asset_id,
            "stake_asset": stake.asset_id,
        }
        err = self._record_event(EventKind.VAULT_INITIALIZED, authority.allocator, data)
        if err:
            # A just-initialized vault holds no other state; start over from a fresh one.
            self._vault = StakingVault(self._resolver.vault_params())
            self._allocator = None
            self._tokens = {}
            return ServiceResult(success=False, errors=[err])
        return self._committed(data)

    # ------------------------------------------------------------------
    # Member operations
    # ------------------------------------------------------------------

    def stake(self, account: str, amount: int) -> ServiceResult:
        return self._execute(
            EventKind.STAKED,
            account,
            lambda: self._vault.stake(account, amount),
            lambda m: {"account": m.account, "amount": amount, "balance": m.balance},
            member=account,
        )

    def withdraw(self, account: str, amount: int) -> ServiceResult:
        return self._execute(
            EventKind.WITHDRAWN,
            account,
            lambda: self._vault.withdraw(account, amount),
            lambda m: {"account": m.account, "amount": amount, "balance": m.balance},
            member=account,
        )

    def claim_reward(self, account: str) -> ServiceResult:
        return self._execute(
            EventKind.REWARD_CLAIMED,
            account,
            lambda: self._vault.claim_reward(account),
            lambda paid: {"account": account, "amount": paid},
            member=account,
        )

    def allocate_incentive(self, caller: str, amount: int) -> ServiceResult:
        return self._execute(
            EventKind.INCENTIVE_ALLOCATED,
            caller,
            lambda: self._vault.allocate_incentive(caller, amount),
            lambda s: {
                "epoch": s.index,
                "amount": s.reward_received,
                "total_staked": s.total_staked_at_epoch,
                "reward_per_share_cumulative": s.reward_per_share_cumulative,
            },
        )

    def fund_reserve(self, account: str, amount: int) -> ServiceResult:
        return self._execute(
            EventKind.RESERVE_FUNDED,
            account,
            lambda: self._vault.fund_reserve(account, amount),
            lambda total: {"account": account, "amount": amount, "reserve_funded": total},
        )

    def mint(self, account: str, amount: int, asset: str = "stake") -> ServiceResult:
        """Credit and approve in-memory tokens for an account (local operation only)."""
        token = self._tokens.get(asset)
        if token is None:
            return ServiceResult(
                success=False,
                errors=[f"No in-memory '{asset}' token; mint through the real asset instead"],
            )
        try:
            token.mint(account, amount)
            token.approve(account, token.allowance(account) + amount)
        except (VaultError, TypeError) as e:
            return ServiceResult(success=False, errors=[str(e)])
        return self._committed({
            "account": account,
            "asset": token.asset_id,
            "balance": token.balance_of(account),
        })

    def record_anchor(self, record: AnchorRecord) -> ServiceResult:
        """Log a completed on-chain anchor of the ledger root."""
        err = self._record_event(EventKind.LEDGER_ANCHORED, self._allocator or "system", record.to_dict())
        if err:
            return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True, data=record.to_dict())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def account_summary(self, account: str) -> dict[str, Any]:
        return {
            "account": account,
            "balance": self._vault.balance_of(account),
            "earned": self._vault.earned(account),
            "multiplier_points": self._vault.get_multiplier_points(account),
            "multiplier": self._vault.get_multiplier(account),
            "multiplier_base": self._vault.params.multiplier_base,
        }

    def history(self, index: int) -> ServiceResult:
        try:
            return ServiceResult(success=True, data=self._vault.history(index).to_dict())
        except VaultError as e:
            return ServiceResult(success=False, errors=[str(e)])

    def member(self, account: str) -> dict[str, Any]:
        return self._vault.members(account).to_dict()

    def reconcile(self) -> dict[str, Any]:
        return self._vault.reconcile().to_dict()

    def token_balance(self, account: str, asset: str) -> Optional[int]:
        token = self._tokens.get(asset)
        return token.balance_of(account) if token is not None else None

    def status(self) -> dict[str, Any]:
        """Return a vault-wide status summary."""
        return {
            "version": __version__,
            "policy_version": self._resolver.version(),
            "initialized": self._vault.initialized,
            "allocator": self._allocator,
            "epochs": self._vault.current_epoch(),
            "members": len(self._vault.member_accounts()),
            "total_staked": self._vault.total_staked(),
            "ledger_root": self._vault.ledger_root(),
            "events": self._event_log.count if self._event_log is not None else 0,
            "params": self._vault.params.to_dict(),
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(
        self,
        kind: EventKind,
        actor_id: str,
        operation: Callable[[], Any],
        describe: Callable[[Any], dict[str, Any]],
        member: Optional[str] = None,
    ) -> ServiceResult:
        try:
            savepoint = self._savepoint(actor_id, member)
            value = operation()
        except (VaultError, ValueError) as e:
            logger.info(
                "Vault operation rejected",
                extra={"event": "vault.rejected", "kind": kind.value, "actor": actor_id, "error": str(e)},
            )
            return ServiceResult(success=False, errors=[str(e)])

        data = describe(value)
        err = self._record_event(kind, actor_id, data)
        if err:
            self._rollback(savepoint)
            return ServiceResult(success=False, errors=[err])
        return self._committed(data)

    def _committed(self, data: dict[str, Any]) -> ServiceResult:
        warning = self._safe_persist_post_audit()
        if warning:
            data = {**data, "warning": warning}
        return ServiceResult(success=True, data=data)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns an error string or None."""
        if self._event_log is None:
            return None
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id,
                payload={k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v
                         for k, v in payload.items()},
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            logger.error(
                "Audit append failed",
                extra={"event": "vault.audit_failed", "kind": kind.value, "error": str(e)},
            )
            return f"Event log failure: {e}"
        return None

    def _savepoint(self, actor_id: str, member: Optional[str]) -> Optional[tuple]:
        """Undo record scoped to what one operation touches.

        Only needed when an audit append can fail after the vault has
        committed; without an event log nothing is captured.
        """
        if self._event_log is None:
            return None
        accounts = {actor_id, actor_id.strip()} if isinstance(actor_id, str) else set()
        return (
            self._vault.savepoint(member),
            {name: token.savepoint(accounts) for name, token in self._tokens.items()},
        )

    def _rollback(self, savepoint: Optional[tuple]) -> None:
        if savepoint is None:
            return
        vault_savepoint, token_savepoints = savepoint
        self._vault.rollback(vault_savepoint)
        for name, token_savepoint in token_savepoints.items():
            self._tokens[name].rollback(token_savepoint)
        if len(self._tokens) < 2:
            logger.warning(
                "Rolled back vault state; transfers on external tokens are not reversed",
                extra={"event": "vault.partial_rollback"},
            )

    def _collaborator_state(self) -> dict[str, Any]:
        return {
            "allocator": self._allocator,
            "tokens": {name: token.to_dict() for name, token in self._tokens.items()},
        }

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        Can raise OSError; callers go through _safe_persist_post_audit().
        """
        if self._state_store is None:
            return
        self._state_store.save(self._vault.to_state(), self._collaborator_state())

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event is committed.

        MUST NOT rollback in-memory state; the audit trail is already
        durable. On failure the service is marked degraded and a warning
        string is returned.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error(
                "State persistence degraded",
                extra={"event": "vault.persistence_degraded", "error": str(e)},
            )
            return f"Persistence degraded: {e}; state committed in audit trail but StateStore is stale"

    def _load(self, state_store: StateStore) -> None:
        collaborators = state_store.load_collaborators()
        if not collaborators or not collaborators.get("allocator"):
            return
        tokens = collaborators.get("tokens", {})
        if "reward" not in tokens or "stake" not in tokens:
            raise ValueError("Stored state has no in-memory token ledgers to restore")

        self._tokens = {name: InMemoryToken.from_dict(data) for name, data in tokens.items()}
        self._allocator = collaborators["allocator"]
        self._vault.initialize(
            self._tokens["reward"],
            self._tokens["stake"],
            StaticAllocatorAuthority(self._allocator),
        )
        vault_state = state_store.load_vault_state()
        if vault_state:
            self._vault.load_state(vault_state)
