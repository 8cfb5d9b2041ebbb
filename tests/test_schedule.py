"""
Unit tests for RewardSchedule.

Tests duration changes, round boundaries, and phase transitions.
"""

import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from staking.errors import (
    ArithmeticOverflowError,
    RoundStillActiveError,
    ScheduleActiveError,
    ZeroAmountError,
)
from staking.operations import U64_MAX
from staking.schedule import RewardSchedule, RoundPhase


class TestSetDuration:
    """Test round length changes"""

    def test_set_duration_when_idle(self):
        """Fresh schedule accepts a duration once time has moved past zero"""
        schedule = RewardSchedule()
        schedule.set_duration(10, now=1)
        assert schedule.duration == 10

    def test_set_duration_during_round(self):
        """Duration is locked while the round is running"""
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)

        with pytest.raises(RoundStillActiveError):
            schedule.set_duration(20, now=5)
        assert schedule.duration == 10

    def test_set_duration_at_finish_is_rejected(self):
        """now == finish_at still counts as active"""
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)

        with pytest.raises(ScheduleActiveError):
            schedule.set_duration(20, now=11)

        schedule.set_duration(20, now=12)
        assert schedule.duration == 20

    def test_zero_duration_rejected(self):
        schedule = RewardSchedule()
        with pytest.raises(ZeroAmountError):
            schedule.set_duration(0, now=1)

    def test_non_integer_duration_rejected(self):
        schedule = RewardSchedule()
        with pytest.raises(ValueError):
            schedule.set_duration(1.5, now=1)


class TestFunding:
    """Test round boundaries set by funding"""

    def test_apply_funding_sets_round(self):
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)

        assert schedule.reward_rate == 100
        assert schedule.finish_at == 11
        assert schedule.updated_at == 1
        assert schedule.reward_for_duration() == 1_000

    def test_round_end_overflow(self):
        """finish_at must fit in 64 bits"""
        schedule = RewardSchedule(duration=10)
        with pytest.raises(ArithmeticOverflowError):
            schedule.apply_funding(1, now=U64_MAX - 5)
        assert schedule.reward_rate == 0

    def test_last_time_reward_applicable(self):
        schedule = RewardSchedule(duration=10)
        schedule.apply_funding(100, now=1)

        assert schedule.last_time_reward_applicable(5) == 5
        assert schedule.last_time_reward_applicable(50) == 11


class TestPhases:
    """Test Idle -> Funded -> Expiring -> Idle"""

    def test_phase_transitions(self):
        schedule = RewardSchedule(duration=10)
        assert schedule.phase(1) == RoundPhase.IDLE

        schedule.apply_funding(100, now=1)
        assert schedule.phase(1) == RoundPhase.FUNDED
        assert schedule.phase(10) == RoundPhase.FUNDED
        assert schedule.phase(11) == RoundPhase.EXPIRING
        assert schedule.phase(12) == RoundPhase.IDLE
