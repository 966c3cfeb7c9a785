"""Tests for the epoch ledger — proves append-only reward-per-share bookkeeping."""

import pytest

from stakevault.accounting.epoch_ledger import EpochLedger
from stakevault.accounting.fixed_point import PRECISION
from stakevault.errors import ArithmeticOverflow, EpochOutOfRange, InvalidAmount
from stakevault.models.vault import EpochSnapshot


class TestAppendEpoch:
    def test_first_epoch_has_index_one(self) -> None:
        ledger = EpochLedger()
        snapshot = ledger.append_epoch(reward_amount=1000, total_staked=10)
        assert snapshot.index == 1
        assert snapshot.reward_per_share_cumulative == 100 * PRECISION
        assert ledger.current_index() == 1

    def test_cumulative_is_running_sum(self) -> None:
        ledger = EpochLedger()
        ledger.append_epoch(1000, 10)
        second = ledger.append_epoch(1000, 20)
        assert second.reward_per_share_cumulative == 150 * PRECISION

    def test_nothing_staked_adds_zero_delta(self) -> None:
        ledger = EpochLedger()
        snapshot = ledger.append_epoch(500, 0)
        assert snapshot.reward_per_share_cumulative == 0
        assert not snapshot.distributed
        assert ledger.total_undistributed() == 500

    def test_zero_reward_still_appends(self) -> None:
        ledger = EpochLedger()
        ledger.append_epoch(0, 10)
        assert ledger.current_index() == 1
        assert ledger.latest_cumulative() == 0

    def test_negative_reward_rejected(self) -> None:
        ledger = EpochLedger()
        with pytest.raises(InvalidAmount):
            ledger.append_epoch(-1, 10)
        assert ledger.current_index() == 0

    def test_overflow_leaves_ledger_unchanged(self) -> None:
        ledger = EpochLedger()
        with pytest.raises(ArithmeticOverflow):
            ledger.append_epoch(2**250, 1)
        assert ledger.current_index() == 0

    def test_next_epoch_does_not_record(self) -> None:
        ledger = EpochLedger()
        preview = ledger.next_epoch(1000, 10)
        assert preview.index == 1
        assert ledger.current_index() == 0

    def test_cumulative_never_decreases(self) -> None:
        ledger = EpochLedger()
        previous = 0
        for reward, staked in [(10, 3), (0, 3), (7, 0), (1, 1000)]:
            snapshot = ledger.append_epoch(reward, staked)
            assert snapshot.reward_per_share_cumulative >= previous
            previous = snapshot.reward_per_share_cumulative


class TestGetEpoch:
    def test_lookup(self) -> None:
        ledger = EpochLedger()
        appended = ledger.append_epoch(1000, 10)
        assert ledger.get_epoch(1) == appended

    def test_index_zero_out_of_range(self) -> None:
        ledger = EpochLedger()
        ledger.append_epoch(1000, 10)
        with pytest.raises(EpochOutOfRange):
            ledger.get_epoch(0)

    def test_future_index_out_of_range(self) -> None:
        ledger = EpochLedger()
        with pytest.raises(EpochOutOfRange):
            ledger.get_epoch(1)


class TestRollback:
    def test_drops_newer_epochs(self) -> None:
        ledger = EpochLedger()
        ledger.append_epoch(1000, 10)
        ledger.append_epoch(30, 7)
        ledger.rollback_to(1)
        assert ledger.current_index() == 1
        assert ledger.latest_cumulative() == 100 * PRECISION

    def test_beyond_length_rejected(self) -> None:
        ledger = EpochLedger()
        ledger.append_epoch(1000, 10)
        with pytest.raises(EpochOutOfRange):
            ledger.rollback_to(2)
        with pytest.raises(EpochOutOfRange):
            ledger.rollback_to(-1)
        assert ledger.current_index() == 1


class TestRestore:
    def test_round_trip(self) -> None:
        ledger = EpochLedger()
        ledger.append_epoch(1000, 10)
        ledger.append_epoch(30, 7)
        rebuilt = EpochLedger.from_snapshots(ledger.snapshots())
        assert rebuilt.snapshots() == ledger.snapshots()

    def test_gap_rejected(self) -> None:
        with pytest.raises(ValueError, match="gap"):
            EpochLedger.from_snapshots([EpochSnapshot(2, 0, 0, 0)])

    def test_decreasing_cumulative_rejected(self) -> None:
        snapshots = [EpochSnapshot(1, 10, 10, 1), EpochSnapshot(2, 5, 0, 1)]
        with pytest.raises(ValueError, match="decreased"):
            EpochLedger.from_snapshots(snapshots)
