"""Member store — per-account stake balance and settlement checkpoint.

Records are created on first stake and kept for the account's lifetime,
including at zero balance. The store hands out working copies; nothing
reaches the stored record until commit(), so a failed operation leaves
the store exactly as it was.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from stakevault.models.vault import Member


class MemberStore:
    """In-memory store of Member records keyed by account.

    Usage:
        store = MemberStore()
        member = store.get_or_create("alice")   # working copy
        member.balance += 10
        store.commit(member)
    """

    def __init__(self) -> None:
        self._members: Dict[str, Member] = {}

    @classmethod
    def from_members(cls, members: Iterable[Member]) -> MemberStore:
        store = cls()
        for member in members:
            if member.account in store._members:
                raise ValueError(f"Duplicate member on restore: {member.account}")
            store._members[member.account] = replace(member)
        return store

    def get(self, account: str) -> Optional[Member]:
        """Return a copy of the stored record, or None if unknown."""
        member = self._members.get(normalize_account(account))
        return replace(member) if member is not None else None

    def require(self, account: str) -> Member:
        member = self.get(account)
        if member is None:
            raise KeyError(f"Unknown member: {account}")
        return member

    def get_or_create(self, account: str, epoch_index: int = 0) -> Member:
        """Working copy of an existing record, or a fresh one anchored at epoch_index.

        A fresh record is not stored until committed.
        """
        member = self.get(account)
        if member is not None:
            return member
        return Member(
            account=normalize_account(account),
            stake_epoch_index=epoch_index,
            points_epoch_index=epoch_index,
        )

    def commit(self, member: Member) -> None:
        self._members[member.account] = replace(member)

    def discard(self, account: str) -> None:
        """Forget a record; only used to undo an unaudited first stake."""
        self._members.pop(normalize_account(account), None)

    def contains(self, account: str) -> bool:
        return normalize_account(account) in self._members

    def accounts(self) -> List[str]:
        return sorted(self._members)

    def all(self) -> List[Member]:
        return [replace(self._members[a]) for a in self.accounts()]

    @property
    def count(self) -> int:
        return len(self._members)


def normalize_account(account: str) -> str:
    """Strip an account identifier, rejecting blanks and non-strings."""
    if not isinstance(account, str) or not account.strip():
        raise ValueError("Account identifier must be a non-empty string")
    return account.strip()
