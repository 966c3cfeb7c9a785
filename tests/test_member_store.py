"""Tests for the member store — proves records only change on commit."""

import pytest

from stakevault.accounting.member_store import MemberStore
from stakevault.models.vault import Member


class TestMemberStore:
    def test_unknown_member_is_none(self) -> None:
        assert MemberStore().get("alice") is None

    def test_get_or_create_is_not_stored(self) -> None:
        store = MemberStore()
        member = store.get_or_create("alice", epoch_index=4)
        assert member.stake_epoch_index == 4
        assert member.points_epoch_index == 4
        assert not store.contains("alice")

    def test_commit_stores_copy(self) -> None:
        store = MemberStore()
        member = store.get_or_create("alice")
        member.balance = 10
        store.commit(member)
        member.balance = 99
        assert store.get("alice").balance == 10

    def test_get_returns_working_copy(self) -> None:
        store = MemberStore()
        store.commit(Member(account="alice", balance=10))
        copy = store.get("alice")
        copy.balance = 0
        assert store.get("alice").balance == 10

    def test_discard_forgets_record(self) -> None:
        store = MemberStore()
        store.commit(Member(account="alice", balance=10))
        store.discard(" alice ")
        assert not store.contains("alice")
        store.discard("alice")

    def test_account_is_normalized(self) -> None:
        store = MemberStore()
        store.commit(Member(account="alice", balance=1))
        assert store.contains("  alice ")

    def test_blank_account_rejected(self) -> None:
        with pytest.raises(ValueError):
            MemberStore().get("  ")

    def test_require_unknown_raises(self) -> None:
        with pytest.raises(KeyError):
            MemberStore().require("bob")

    def test_accounts_sorted(self) -> None:
        store = MemberStore.from_members([Member("carol"), Member("alice")])
        assert store.accounts() == ["alice", "carol"]
        assert store.count == 2

    def test_duplicate_restore_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            MemberStore.from_members([Member("alice"), Member("alice")])

    def test_negative_balance_rejected(self) -> None:
        with pytest.raises(ValueError):
            Member(account="alice", balance=-1)
