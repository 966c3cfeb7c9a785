"""External collaborators — token transfer and allocator authority.

The vault never moves funds or decides who may allocate on its own. It
talks to two narrow contracts:

TokenTransfer
    transfer_in(from_account, amount) pulls funds into the vault,
    transfer_out(to_account, amount) pays funds out of it. Any refusal
    (insufficient balance or allowance) surfaces as TransferFailed and
    is propagated unchanged.

AllocatorAuthority
    is_allocator(account) answers whether an account may append an
    epoch. The vault raises Unauthorized when it says no.

Swapping a collaborator requires zero changes to the accounting core.
InMemoryToken and StaticAllocatorAuthority are reference
implementations used by the CLI and the tests.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Protocol, Tuple, runtime_checkable

from stakevault.accounting.fixed_point import checked_add, require_uint
from stakevault.errors import TransferFailed


@runtime_checkable
class TokenTransfer(Protocol):
    """Contract for moving one asset in and out of the vault."""

    @property
    def asset_id(self) -> str:
        """Identifier of the asset this transfer interface moves."""
        ...

    def transfer_in(self, from_account: str, amount: int) -> None:
        """Move amount from the account into the vault, or raise TransferFailed."""
        ...

    def transfer_out(self, to_account: str, amount: int) -> None:
        """Move amount from the vault to the account, or raise TransferFailed."""
        ...


@runtime_checkable
class AllocatorAuthority(Protocol):
    """Contract for deciding who may allocate incentives."""

    def is_allocator(self, account: str) -> bool:
        ...


class StaticAllocatorAuthority:
    """A single fixed allocator identity."""

    def __init__(self, allocator: str) -> None:
        if not isinstance(allocator, str) or not allocator.strip():
            raise ValueError("Allocator identity must be non-empty")
        self._allocator = allocator.strip()

    @property
    def allocator(self) -> str:
        return self._allocator

    def is_allocator(self, account: str) -> bool:
        return account.strip() == self._allocator


class InMemoryToken:
    """Balance-and-allowance token ledger with the vault as custodian.

    Usage:
        token = InMemoryToken("STAKE", custodian="vault")
        token.mint("alice", 1_000)
        token.approve("alice", 1_000)
        token.transfer_in("alice", 10)    # alice -> vault
        token.transfer_out("alice", 10)   # vault -> alice
    """

    def __init__(self, asset_id: str, custodian: str = "vault") -> None:
        self._asset_id = asset_id
        self._custodian = custodian
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, int] = {}

    @property
    def asset_id(self) -> str:
        return self._asset_id

    @property
    def custodian(self) -> str:
        return self._custodian

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str) -> int:
        """Amount the vault may still pull from owner."""
        return self._allowances.get(owner, 0)

    def mint(self, account: str, amount: int) -> None:
        require_uint(amount, "amount")
        self._balances[account] = checked_add(self.balance_of(account), amount)

    def approve(self, owner: str, amount: int) -> None:
        self._allowances[owner] = require_uint(amount, "amount")

    def transfer_in(self, from_account: str, amount: int) -> None:
        require_uint(amount, "amount")
        if self.allowance(from_account) < amount:
            raise TransferFailed(
                f"{self._asset_id}: allowance {self.allowance(from_account)} "
                f"< {amount} for {from_account}"
            )
        self._move(from_account, self._custodian, amount)
        self._allowances[from_account] = self.allowance(from_account) - amount

    def transfer_out(self, to_account: str, amount: int) -> None:
        require_uint(amount, "amount")
        self._move(self._custodian, to_account, amount)

    def _move(self, source: str, target: str, amount: int) -> None:
        available = self.balance_of(source)
        if available < amount:
            raise TransferFailed(
                f"{self._asset_id}: insufficient balance for {source} "
                f"({available} < {amount})"
            )
        self._balances[source] = available - amount
        self._balances[target] = checked_add(self.balance_of(target), amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self._asset_id,
            "custodian": self._custodian,
            "balances": {k: str(v) for k, v in sorted(self._balances.items())},
            "allowances": {k: str(v) for k, v in sorted(self._allowances.items())},
        }

    def savepoint(self, accounts: Iterable[str]) -> Dict[str, Tuple[int, int]]:
        """Balance and allowance of just the given accounts (and the custodian)."""
        touched = set(accounts) | {self._custodian}
        return {a: (self.balance_of(a), self.allowance(a)) for a in touched}

    def rollback(self, savepoint: Dict[str, Tuple[int, int]]) -> None:
        for account, (balance, allowance) in savepoint.items():
            self._balances[account] = balance
            self._allowances[account] = allowance

    def restore(self, data: Dict[str, Any]) -> None:
        """Replace balances and allowances in place with a to_dict() snapshot."""
        if data.get("asset_id") != self._asset_id:
            raise ValueError(f"Snapshot is for {data.get('asset_id')}, not {self._asset_id}")
        self._balances = {k: int(v) for k, v in data.get("balances", {}).items()}
        self._allowances = {k: int(v) for k, v in data.get("allowances", {}).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InMemoryToken:
        token = cls(data["asset_id"], custodian=data.get("custodian", "vault"))
        token.restore(data)
        return token
