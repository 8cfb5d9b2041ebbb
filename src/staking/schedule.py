"""
Reward Schedule: length, end, and per-second rate of the current reward round.
"""

from dataclasses import dataclass
from enum import Enum

from staking.errors import (
    ArithmeticOverflowError,
    RoundStillActiveError,
    ZeroAmountError,
)
from staking.operations import U64_MAX, validate_uint


class RoundPhase(Enum):
    """Where the current reward round is in its lifecycle"""
    IDLE = "IDLE"           # Never funded, or emissions finished
    FUNDED = "FUNDED"       # Emitting at reward_rate
    EXPIRING = "EXPIRING"   # Last instant of the round; duration still locked


@dataclass
class RewardSchedule:
    """
    Current reward-emission period.

    Invariants:
    - updated_at <= finish_at once funded, and updated_at never decreases
    - reward_rate > 0 once any funding has occurred
    """

    duration: int = 0       # Seconds a funding round pays out over
    finish_at: int = 0      # Timestamp when emissions stop
    updated_at: int = 0     # Timestamp the accumulator is settled through
    reward_rate: int = 0    # Reward units emitted per second

    def last_time_reward_applicable(self, now: int) -> int:
        """Latest timestamp that still earns reward: min(now, finish_at)"""
        return min(now, self.finish_at)

    def reward_for_duration(self) -> int:
        """Total reward a full round emits at the current rate"""
        return self.reward_rate * self.duration

    def is_active(self, now: int) -> bool:
        """True while duration changes are forbidden (now <= finish_at)"""
        return now <= self.finish_at

    def phase(self, now: int) -> RoundPhase:
        if self.reward_rate == 0 or now > self.finish_at:
            return RoundPhase.IDLE
        if now == self.finish_at:
            return RoundPhase.EXPIRING
        return RoundPhase.FUNDED

    def check_duration(self, new_duration: int, now: int) -> None:
        """
        Check that the round length may be replaced at now.

        Raises:
            RoundStillActiveError: If the current round has not finished
            ZeroAmountError: If new_duration is zero
        """
        validate_uint(new_duration, "Duration")
        validate_uint(now, "Timestamp")
        if new_duration == 0:
            raise ZeroAmountError("Duration must be positive")
        if self.is_active(now):
            raise RoundStillActiveError(
                f"Reward round still active: now={now} <= finish_at={self.finish_at}"
            )

    def set_duration(self, new_duration: int, now: int) -> None:
        """Replace the round length (see check_duration for failures)"""
        self.check_duration(new_duration, now)
        self.duration = new_duration

    def apply_funding(self, reward_rate: int, now: int) -> None:
        """
        Start a fresh round at reward_rate.

        The rate comes from the accountant's recompute_rate; this only
        commits it along with the new round boundaries.

        Raises:
            ArithmeticOverflowError: If now + duration overflows
        """
        validate_uint(reward_rate, "Reward rate")
        validate_uint(now, "Timestamp")
        finish_at = now + self.duration
        if finish_at > U64_MAX:
            raise ArithmeticOverflowError(
                f"Round end overflows: {now} + {self.duration}"
            )
        self.reward_rate = reward_rate
        self.finish_at = finish_at
        self.updated_at = now
