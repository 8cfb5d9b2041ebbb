"""
Unit tests for the reward accountant.

Tests accumulator math, settlement, rate recomputation, and 64-bit narrowing.
"""

import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from staking import accountant
from staking.accountant import SCALE
from staking.accrual import AccrualLedger
from staking.errors import (
    ArithmeticOverflowError,
    NoStakeRecordError,
    UnderfundedTreasuryError,
    ZeroRewardRateError,
)
from staking.operations import U64_MAX
from staking.schedule import RewardSchedule


def make_round(rate=100, duration=10, start=1):
    schedule = RewardSchedule(duration=duration)
    schedule.apply_funding(rate, now=start)
    return schedule, AccrualLedger()


class TestAccumulatorAt:
    """Test reward-per-unit computation"""

    def test_zero_stake_returns_stored(self):
        """Nothing staked: accumulator unchanged no matter how much time passed"""
        schedule, ledger = make_round()
        ledger.reward_per_unit_stored = 12345

        assert accountant.accumulator_at(schedule, ledger, 0, 5) == 12345
        assert accountant.accumulator_at(schedule, ledger, 0, 10_000) == 12345

    def test_accrues_per_unit(self):
        schedule, ledger = make_round()
        # 100/s for 4s over 50 units
        assert accountant.accumulator_at(schedule, ledger, 50, 5) == 100 * 4 * SCALE // 50

    def test_capped_at_finish(self):
        schedule, ledger = make_round()
        assert accountant.accumulator_at(schedule, ledger, 10, 11) == \
            accountant.accumulator_at(schedule, ledger, 10, 500)

    def test_wide_intermediate(self):
        """rate * elapsed * SCALE exceeds 64 bits but the result does not"""
        schedule = RewardSchedule(duration=10**9)
        schedule.apply_funding(10**12, now=0)
        ledger = AccrualLedger()

        total = 10**18
        result = accountant.accumulator_at(schedule, ledger, total, 10**9)
        assert 10**12 * 10**9 * SCALE > U64_MAX
        assert result == 10**12

    def test_result_overflow_raises(self):
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(U64_MAX // 10, now=0)
        ledger = AccrualLedger()

        with pytest.raises(ArithmeticOverflowError):
            accountant.accumulator_at(schedule, ledger, 1, 10)

    def test_time_before_last_settlement_rejected(self):
        schedule, ledger = make_round(start=5)
        with pytest.raises(ValueError):
            accountant.accumulator_at(schedule, ledger, 10, 4)


class TestSettle:
    """Test participant and global settlement"""

    def test_settle_credits_participant(self):
        schedule, ledger = make_round()
        ledger.upsert_participant("alice")
        ledger.adjust_stake("alice", 10)

        settlement = accountant.settle(schedule, ledger, "alice", 10, 3)

        # 2s at 100/s, alone in the pool
        assert settlement.earned == 200
        assert ledger.get("alice").settled_reward == 200
        assert ledger.get("alice").accumulator_paid == ledger.reward_per_unit_stored
        assert schedule.updated_at == 3

    def test_settle_twice_same_time_is_noop(self):
        schedule, ledger = make_round()
        ledger.upsert_participant("alice")
        ledger.adjust_stake("alice", 30)

        first = accountant.settle(schedule, ledger, "alice", 30, 6)
        second = accountant.settle(schedule, ledger, "alice", 30, 6)

        assert second.reward_per_unit == first.reward_per_unit
        assert second.earned == first.earned

    def test_compute_settlement_does_not_write(self):
        schedule, ledger = make_round()
        ledger.upsert_participant("alice")
        ledger.adjust_stake("alice", 10)

        accountant.compute_settlement(schedule, ledger, "alice", 10, 8)

        assert ledger.reward_per_unit_stored == 0
        assert schedule.updated_at == 1
        assert ledger.get("alice").settled_reward == 0

    def test_settle_global_only_leaves_participants(self):
        schedule, ledger = make_round()
        ledger.upsert_participant("alice")
        ledger.adjust_stake("alice", 10)

        settlement = accountant.settle_global_only(schedule, ledger, 10, 4)

        assert settlement.participant_id is None
        assert ledger.reward_per_unit_stored == 300 * SCALE // 10
        assert ledger.get("alice").accumulator_paid == 0
        # The credit is still there for alice's next settlement
        assert accountant.settle(schedule, ledger, "alice", 10, 4).earned == 300

    def test_settle_unknown_participant(self):
        schedule, ledger = make_round()
        with pytest.raises(NoStakeRecordError):
            accountant.settle(schedule, ledger, "ghost", 0, 2)

    def test_updated_at_advances_with_zero_stake(self):
        """Zero-stake interval is skipped, not carried into later settlements"""
        schedule, ledger = make_round()
        accountant.settle_global_only(schedule, ledger, 0, 5)
        assert schedule.updated_at == 5

        ledger.upsert_participant("alice")
        ledger.adjust_stake("alice", 10)
        # Only t=5..6 counts
        assert accountant.settle(schedule, ledger, "alice", 10, 6).earned == 100


class TestRecomputeRate:
    """Test rate recomputation and rollover"""

    def test_fresh_round(self):
        schedule = RewardSchedule(duration=10)
        assert accountant.recompute_rate(schedule, 1_000, 1, 1_000) == 100

    def test_rollover_preserves_remaining(self):
        """Unfinished reward rolls into the new numerator exactly"""
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)

        remaining = accountant.remaining_reward(schedule, 6)
        assert remaining == (11 - 6) * 100

        rate = accountant.recompute_rate(schedule, 1_000, 6, 2_000)
        assert rate == (1_000 + remaining) // 10

    def test_no_rollover_after_finish(self):
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)

        assert accountant.remaining_reward(schedule, 11) == 0
        assert accountant.recompute_rate(schedule, 500, 20, 500) == 50

    def test_zero_rate(self):
        schedule = RewardSchedule(duration=10)
        with pytest.raises(ZeroRewardRateError):
            accountant.recompute_rate(schedule, 9, 1, 9)

    def test_duration_not_set(self):
        schedule = RewardSchedule()
        with pytest.raises(ZeroRewardRateError):
            accountant.recompute_rate(schedule, 1_000, 1, 1_000)

    def test_underfunded(self):
        """rate * duration must be covered by the held balance"""
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)

        with pytest.raises(UnderfundedTreasuryError):
            accountant.recompute_rate(schedule, 100, 6, 100)

    def test_does_not_mutate_schedule(self):
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)
        accountant.recompute_rate(schedule, 1_000, 6, 2_000)
        assert schedule.reward_rate == 100
        assert schedule.finish_at == 11


class TestMulDiv:
    def test_floor_division(self):
        assert accountant.mul_div(7, 3, 2) == 10

    def test_zero_denominator(self):
        with pytest.raises(ZeroDivisionError):
            accountant.mul_div(1, 1, 0)

    def test_narrow(self):
        assert accountant.narrow(U64_MAX) == U64_MAX
        with pytest.raises(ArithmeticOverflowError):
            accountant.narrow(U64_MAX + 1)
