"""Tests for the staking vault — proves reward distribution and atomicity invariants."""

import threading

import pytest

from stakevault.collaborators import InMemoryToken, StaticAllocatorAuthority
from stakevault.errors import (
    AlreadyInitialized,
    ArithmeticOverflow,
    EpochOutOfRange,
    InvalidAmount,
    NotInitialized,
    TransferFailed,
    Unauthorized,
)
from stakevault.vault import StakingVault


MANAGER = "manager"


class Harness:
    """A vault wired to in-memory tokens with generous balances."""

    def __init__(self) -> None:
        self.reward = InMemoryToken("REWARD")
        self.stake = InMemoryToken("STAKE")
        self.vault = StakingVault()
        self.vault.initialize(self.reward, self.stake, StaticAllocatorAuthority(MANAGER))
        self.fund(MANAGER, self.reward, 10**30)

    @staticmethod
    def fund(account: str, token: InMemoryToken, amount: int) -> None:
        token.mint(account, amount)
        token.approve(account, token.allowance(account) + amount)

    def join(self, account: str, amount: int) -> None:
        self.fund(account, self.stake, amount)
        self.vault.stake(account, amount)

    def allocate(self, amount: int, times: int = 1) -> None:
        for _ in range(times):
            self.vault.allocate_incentive(MANAGER, amount)


@pytest.fixture
def h() -> Harness:
    return Harness()


class TestLifecycle:
    def test_operations_require_initialize(self) -> None:
        vault = StakingVault()
        with pytest.raises(NotInitialized):
            vault.stake("alice", 10)
        with pytest.raises(NotInitialized):
            vault.allocate_incentive(MANAGER, 10)

    def test_initialize_once(self, h: Harness) -> None:
        with pytest.raises(AlreadyInitialized):
            h.vault.initialize(h.reward, h.stake, StaticAllocatorAuthority(MANAGER))

    def test_initialize_rejects_non_token(self) -> None:
        with pytest.raises(TypeError):
            StakingVault().initialize(object(), InMemoryToken("S"), StaticAllocatorAuthority(MANAGER))


class TestScenarios:
    def test_single_staker_captures_whole_reward(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(12_345)
        assert h.vault.earned("alice") == 12_345

    def test_points_after_three_counted_epochs(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100, times=4)
        assert h.vault.get_multiplier_points("alice") == 30

    def test_second_stake_freezes_one_epoch(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100, times=2)
        assert h.vault.get_multiplier_points("alice") == 10
        h.join("alice", 10)
        assert h.vault.get_multiplier_points("alice") == 10
        h.allocate(100)
        assert h.vault.get_multiplier_points("alice") == 10
        h.allocate(100)
        assert h.vault.get_multiplier_points("alice") == 30
        h.allocate(100)
        assert h.vault.get_multiplier_points("alice") == 50

    def test_claim_resets_earned_and_multiplier(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(1000, times=5)
        h.vault.fund_reserve(MANAGER, 1000)
        h.vault.claim_reward("alice")
        assert h.vault.earned("alice") == 0
        assert h.vault.get_multiplier("alice") == h.vault.params.multiplier_base
        assert h.vault.get_multiplier_points("alice") == 0

    def test_multiplier_stops_at_cap(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(1, times=51)
        assert h.vault.get_multiplier("alice") == 22_500
        h.allocate(1, times=10)
        assert h.vault.get_multiplier("alice") == 22_500

    def test_split_scales_with_balance(self, h: Harness) -> None:
        h.join("alice", 10)
        h.join("bob", 30)
        h.allocate(1000)
        assert h.vault.earned("alice") == 250
        assert h.vault.earned("bob") == 750

    def test_split_scales_with_factor(self, h: Harness) -> None:
        h.join("alice", 10)
        h.join("bob", 10)
        h.allocate(1000, times=3)
        assert h.vault.earned("alice") == h.vault.earned("bob") == 1575
        h.vault.fund_reserve(MANAGER, 1000)
        h.vault.claim_reward("bob")
        h.allocate(1000)
        assert h.vault.earned("alice") == 2000 * 10_750 // 10_000
        assert h.vault.earned("bob") == 500


class TestStake:
    def test_deposit_misses_current_epoch(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100)
        h.join("bob", 10)
        h.allocate(100)
        assert h.vault.earned("bob") == 50
        assert h.vault.earned("alice") == 150 * 10_250 // 10_000

    def test_zero_amount_rejected(self, h: Harness) -> None:
        with pytest.raises(InvalidAmount):
            h.vault.stake("alice", 0)

    def test_failed_transfer_leaves_no_member(self, h: Harness) -> None:
        with pytest.raises(TransferFailed):
            h.vault.stake("alice", 10)
        assert h.vault.member_accounts() == []
        assert h.vault.total_staked() == 0

    def test_failed_top_up_keeps_previous_state(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100, times=3)
        before = h.vault.members("alice")
        with pytest.raises(TransferFailed):
            h.vault.stake("alice", 5)
        assert h.vault.members("alice") == before
        assert h.vault.reconcile().base_booked == 0


class TestWithdraw:
    def test_failed_transfer_leaves_state_unchanged(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(1000, times=3)
        h.stake.transfer_out("elsewhere", 10)
        before = h.vault.members("alice")
        with pytest.raises(TransferFailed):
            h.vault.withdraw("alice", 5)
        assert h.vault.members("alice") == before
        assert h.vault.total_staked() == 10
        assert h.vault.reconcile().base_booked == 0
        assert h.vault.get_multiplier_points("alice") == 20

    def test_returns_tokens(self, h: Harness) -> None:
        h.join("alice", 10)
        h.vault.withdraw("alice", 4)
        assert h.vault.balance_of("alice") == 6
        assert h.stake.balance_of("alice") == 4
        assert h.vault.total_staked() == 6

    def test_over_balance_rejected(self, h: Harness) -> None:
        h.join("alice", 10)
        with pytest.raises(InvalidAmount):
            h.vault.withdraw("alice", 11)
        assert h.vault.balance_of("alice") == 10

    def test_unknown_member_rejected(self, h: Harness) -> None:
        with pytest.raises(InvalidAmount):
            h.vault.withdraw("nobody", 1)

    def test_points_preserved(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100, times=3)
        h.vault.withdraw("alice", 5)
        assert h.vault.get_multiplier_points("alice") == 20
        h.allocate(100)
        assert h.vault.get_multiplier_points("alice") == 25

    def test_full_exit_keeps_pending(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100)
        h.vault.withdraw("alice", 10)
        h.allocate(100)
        assert h.vault.earned("alice") == 100
        assert h.vault.claim_reward("alice") == 100


class TestClaim:
    def test_pays_reward_token(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(500)
        assert h.vault.claim_reward("alice") == 500
        assert h.reward.balance_of("alice") == 500
        assert h.vault.members("alice").total_claimed == 500

    def test_unknown_account_gets_zero(self, h: Harness) -> None:
        assert h.vault.claim_reward("nobody") == 0
        assert h.vault.member_accounts() == []

    def test_bonus_drawn_from_reserve(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(1000, times=3)
        h.vault.fund_reserve(MANAGER, 1000)
        paid = h.vault.claim_reward("alice")
        assert paid == 3150
        report = h.vault.reconcile()
        assert report.base_booked == 3000
        assert report.bonus_booked == 150
        assert report.reserve_funded == 1000

    def test_failed_payout_leaves_member_unchanged(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(1000, times=3)
        h.vault.fund_reserve(MANAGER, 1000)
        h.reward.transfer_out("elsewhere", 3900)
        before = h.vault.members("alice")
        with pytest.raises(TransferFailed):
            h.vault.claim_reward("alice")
        assert h.vault.members("alice") == before
        assert h.vault.earned("alice") == 3150
        report = h.vault.reconcile()
        assert report.paid_out == 0
        assert report.bonus_paid == 0

    def test_bonus_never_paid_from_other_members_base(self, h: Harness) -> None:
        h.join("alice", 10)
        h.join("bob", 10)
        h.allocate(1000, times=10)
        assert h.vault.earned("alice") == 6125

        assert h.vault.claim_reward("alice") == 5000
        assert h.vault.earned("alice") == 1125
        assert h.vault.members("alice").pending_bonus == 1125
        assert h.reward.balance_of("vault") == 5000

        assert h.vault.claim_reward("bob") == 5000
        assert h.reward.balance_of("vault") == 0
        report = h.vault.reconcile()
        assert report.bonus_paid == 0
        assert report.paid_out == 10_000

    def test_deferred_bonus_paid_once_reserve_funded(self, h: Harness) -> None:
        h.join("alice", 10)
        h.join("bob", 10)
        h.allocate(1000, times=10)
        h.vault.claim_reward("alice")
        h.vault.claim_reward("bob")

        h.vault.fund_reserve(MANAGER, 2250)
        assert h.vault.claim_reward("alice") == 1125
        assert h.vault.claim_reward("bob") == 1125
        assert h.vault.earned("alice") == h.vault.earned("bob") == 0
        assert h.vault.reconcile().bonus_paid == 2250
        assert h.reward.balance_of("vault") == 0

    def test_partial_reserve_pays_what_it_covers(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(1000, times=3)
        h.vault.fund_reserve(MANAGER, 100)
        assert h.vault.claim_reward("alice") == 3100
        assert h.vault.earned("alice") == 50

        h.vault.fund_reserve(MANAGER, 50)
        assert h.vault.claim_reward("alice") == 50
        report = h.vault.reconcile()
        assert report.bonus_paid == report.reserve_funded == 150


class TestAllocate:
    def test_non_allocator_rejected(self, h: Harness) -> None:
        with pytest.raises(Unauthorized):
            h.vault.allocate_incentive("mallory", 100)
        assert h.vault.current_epoch() == 0

    def test_negative_rejected(self, h: Harness) -> None:
        with pytest.raises(InvalidAmount):
            h.vault.allocate_incentive(MANAGER, -5)

    def test_insufficient_allowance_appends_nothing(self, h: Harness) -> None:
        h.join("alice", 10)
        with pytest.raises(TransferFailed):
            h.vault.allocate_incentive(MANAGER, 10**31)
        assert h.vault.current_epoch() == 0

    def test_overflow_detected_before_transfer(self, h: Harness) -> None:
        h.join("alice", 1)
        h.fund(MANAGER, h.reward, 2**200)
        before = h.reward.balance_of(MANAGER)
        with pytest.raises(ArithmeticOverflow):
            h.vault.allocate_incentive(MANAGER, 2**200)
        assert h.reward.balance_of(MANAGER) == before
        assert h.vault.current_epoch() == 0

    def test_nothing_staked_is_undistributed(self, h: Harness) -> None:
        snapshot = h.vault.allocate_incentive(MANAGER, 700)
        assert not snapshot.distributed
        assert h.vault.reconcile().reward_undistributed == 700

    def test_history_monotonic(self, h: Harness) -> None:
        h.join("alice", 3)
        for amount in (10, 0, 7, 1):
            h.allocate(amount)
        cumulative = [h.vault.history(i).reward_per_share_cumulative for i in range(1, 5)]
        assert cumulative == sorted(cumulative)

    def test_history_out_of_range(self, h: Harness) -> None:
        with pytest.raises(EpochOutOfRange):
            h.vault.history(1)


class TestViews:
    def test_earned_is_idempotent(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100, times=3)
        assert h.vault.earned("alice") == h.vault.earned("alice")
        assert h.vault.members("alice").pending_reward == 0

    def test_unknown_account_reads_as_zero(self, h: Harness) -> None:
        assert h.vault.balance_of("ghost") == 0
        assert h.vault.earned("ghost") == 0
        assert h.vault.get_multiplier_points("ghost") == 0
        assert h.vault.get_multiplier("ghost") == 10_000
        assert h.vault.members("ghost").balance == 0

    def test_ledger_root_changes_per_epoch(self, h: Harness) -> None:
        empty = h.vault.ledger_root()
        h.allocate(10)
        assert h.vault.ledger_root() != empty


class TestReconcile:
    def test_truncation_dust_is_bounded(self, h: Harness) -> None:
        h.join("alice", 3)
        h.allocate(10)
        report = h.vault.reconcile()
        assert report.unsettled == 9
        assert report.dust == 1

        h.vault.claim_reward("alice")
        report = h.vault.reconcile()
        assert report.base_booked == 9
        assert report.unsettled == 0
        assert report.dust == 1
        assert report.paid_out == 9

    def test_identity_holds_across_members(self, h: Harness) -> None:
        h.join("alice", 7)
        h.allocate(1001)
        h.join("bob", 13)
        h.allocate(999)
        h.vault.withdraw("alice", 2)
        h.allocate(5)
        report = h.vault.reconcile()
        assert report.reward_received == (
            report.reward_undistributed + report.base_booked + report.unsettled + report.dust
        )
        assert 0 <= report.dust <= report.epochs * report.members


class TestInputValidation:
    def test_fund_reserve_rejects_non_string_account(self, h: Harness) -> None:
        with pytest.raises(ValueError):
            h.vault.fund_reserve(123, 10)
        assert h.vault.reconcile().reserve_funded == 0

    def test_allocate_rejects_non_integer_amount(self, h: Harness) -> None:
        with pytest.raises(InvalidAmount):
            h.vault.allocate_incentive(MANAGER, "10")
        with pytest.raises(InvalidAmount):
            h.vault.allocate_incentive(MANAGER, 1.5)
        assert h.vault.current_epoch() == 0

    def test_allocate_rejects_non_string_caller(self, h: Harness) -> None:
        with pytest.raises(ValueError):
            h.vault.allocate_incentive(None, 10)


class TestSavepoint:
    def test_rollback_drops_allocated_epoch(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100)
        savepoint = h.vault.savepoint()
        h.allocate(100)
        h.vault.rollback(savepoint)
        assert h.vault.current_epoch() == 1
        assert h.vault.earned("alice") == 100

    def test_rollback_forgets_first_stake(self, h: Harness) -> None:
        savepoint = h.vault.savepoint("alice")
        h.join("alice", 10)
        h.vault.rollback(savepoint)
        assert h.vault.member_accounts() == []
        assert h.vault.total_staked() == 0

    def test_rollback_restores_claimed_member(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100)
        savepoint = h.vault.savepoint("alice")
        h.vault.claim_reward("alice")
        h.vault.rollback(savepoint)
        assert h.vault.earned("alice") == 100
        assert h.vault.reconcile().paid_out == 0


class TestStateRoundTrip:
    def test_restored_vault_matches(self, h: Harness) -> None:
        h.join("alice", 10)
        h.allocate(100, times=3)
        state = h.vault.to_state()

        restored = StakingVault()
        restored.initialize(h.reward, h.stake, StaticAllocatorAuthority(MANAGER))
        restored.load_state(state)
        assert restored.earned("alice") == h.vault.earned("alice")
        assert restored.ledger_root() == h.vault.ledger_root()

    def test_mismatched_params_rejected(self, h: Harness) -> None:
        state = h.vault.to_state()
        state["params"]["multiplier_cap"] = "30000"
        with pytest.raises(ValueError, match="parameters"):
            h.vault.load_state(state)


class TestConcurrency:
    def test_parallel_stakes_are_serialized(self, h: Harness) -> None:
        accounts = [f"user{i}" for i in range(20)]
        for account in accounts:
            h.fund(account, h.stake, 5)

        threads = [threading.Thread(target=h.vault.stake, args=(a, 5)) for a in accounts]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert h.vault.total_staked() == 100
