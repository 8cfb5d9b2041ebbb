"""
Reward Accountant: time-weighted accrual math.

Stateless functions over a RewardSchedule and an AccrualLedger. Every
product is formed in full before dividing (Python ints do not overflow), and
every value that goes back into state is narrowed to 64 bits, raising
ArithmeticOverflowError instead of wrapping.

Settlement is split into compute_settlement (pure) and
AccrualLedger.apply_settlement (commit) so entry points can check all of
their preconditions between the two.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from staking.accrual import AccrualLedger
from staking.errors import (
    ArithmeticOverflowError,
    UnderfundedTreasuryError,
    ZeroRewardRateError,
)
from staking.operations import U64_MAX, validate_uint
from staking.schedule import RewardSchedule

logger = logging.getLogger(__name__)

# Fixed-point scale of reward_per_unit_stored
SCALE = 10**9


@dataclass(frozen=True)
class Settlement:
    """Outputs of one settlement, not yet written to state"""

    reward_per_unit: int            # New global accumulator
    updated_at: int                 # New schedule.updated_at
    participant_id: Optional[str]   # None for a global-only settlement
    earned: int                     # Participant's new settled reward (0 if global)


def narrow(value: int, what: str = "value") -> int:
    """Check that value fits in 64 unsigned bits and return it"""
    if value < 0 or value > U64_MAX:
        raise ArithmeticOverflowError(f"{what} out of 64-bit range: {value}")
    return value


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) with an unbounded intermediate"""
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return (a * b) // denominator


def _applicable_time(schedule: RewardSchedule, now: int) -> int:
    validate_uint(now, "Timestamp")
    applicable = schedule.last_time_reward_applicable(now)
    if applicable < schedule.updated_at:
        raise ValueError(
            f"Timestamp {now} precedes last settlement at {schedule.updated_at}"
        )
    return applicable


def accumulator_at(
    schedule: RewardSchedule, ledger: AccrualLedger, total_staked: int, now: int
) -> int:
    """
    Reward per unit of stake since inception, as of now.

    With nothing staked the stored accumulator is returned unchanged.
    """
    applicable = _applicable_time(schedule, now)
    stored = ledger.reward_per_unit_stored
    if total_staked == 0:
        return stored

    elapsed = applicable - schedule.updated_at
    delta = mul_div(schedule.reward_rate * elapsed, SCALE, total_staked)
    return narrow(stored + delta, "Reward per unit")


def compute_settlement(
    schedule: RewardSchedule,
    ledger: AccrualLedger,
    participant_id: Optional[str],
    total_staked: int,
    now: int,
) -> Settlement:
    """
    Fold elapsed time into the accumulator and credit one participant.

    Args:
        schedule: Current reward schedule
        ledger: Accrual ledger (read only here)
        participant_id: Participant to credit, or None for global only
        total_staked: Live total staked quantity from custody
        now: Current timestamp

    Returns:
        Settlement to commit with AccrualLedger.apply_settlement

    Raises:
        NoStakeRecordError: If participant_id has no ledger entry
        ArithmeticOverflowError: If a result does not fit in 64 bits
    """
    reward_per_unit = accumulator_at(schedule, ledger, total_staked, now)
    updated_at = schedule.last_time_reward_applicable(now)

    earned = 0
    if participant_id is not None:
        entry = ledger.require(participant_id)
        accrued = mul_div(
            entry.stake_amount, reward_per_unit - entry.accumulator_paid, SCALE
        )
        earned = narrow(accrued + entry.settled_reward, "Earned reward")

    return Settlement(
        reward_per_unit=reward_per_unit,
        updated_at=updated_at,
        participant_id=participant_id,
        earned=earned,
    )


def settle(
    schedule: RewardSchedule,
    ledger: AccrualLedger,
    participant_id: str,
    total_staked: int,
    now: int,
) -> Settlement:
    """Compute and commit a settlement for one participant"""
    settlement = compute_settlement(schedule, ledger, participant_id, total_staked, now)
    ledger.apply_settlement(settlement, schedule)
    logger.debug(
        f"Settled {participant_id} at {now}: "
        f"accumulator={settlement.reward_per_unit} earned={settlement.earned}"
    )
    return settlement


def settle_global_only(
    schedule: RewardSchedule, ledger: AccrualLedger, total_staked: int, now: int
) -> Settlement:
    """Compute and commit a settlement that credits no participant"""
    settlement = compute_settlement(schedule, ledger, None, total_staked, now)
    ledger.apply_settlement(settlement, schedule)
    logger.debug(f"Settled globally at {now}: accumulator={settlement.reward_per_unit}")
    return settlement


def remaining_reward(schedule: RewardSchedule, now: int) -> int:
    """Reward the unfinished round has yet to emit: (finish_at - now) * rate"""
    if now >= schedule.finish_at:
        return 0
    return (schedule.finish_at - now) * schedule.reward_rate


def recompute_rate(
    schedule: RewardSchedule, funded_amount: int, now: int, held_balance: int
) -> int:
    """
    Rate for a new round funded with funded_amount at now.

    Reward left undistributed by an unfinished round rolls into the new rate.

    Args:
        schedule: Current reward schedule
        funded_amount: Newly funded reward units
        now: Current timestamp
        held_balance: Reward tokens custody will hold once the funding lands

    Returns:
        The new reward rate (not yet written)

    Raises:
        ZeroRewardRateError: If the new rate would be zero
        UnderfundedTreasuryError: If rate * duration exceeds held_balance
        ArithmeticOverflowError: If the rate or round end overflows
    """
    validate_uint(funded_amount, "Funded amount")
    validate_uint(now, "Timestamp")
    validate_uint(held_balance, "Held balance")
    if schedule.duration == 0:
        raise ZeroRewardRateError("Reward duration is not set")

    rate = (funded_amount + remaining_reward(schedule, now)) // schedule.duration
    if rate == 0:
        raise ZeroRewardRateError(
            f"Funding {funded_amount} over {schedule.duration}s yields a zero rate"
        )
    narrow(rate, "Reward rate")
    narrow(now + schedule.duration, "Round end")

    if rate * schedule.duration > held_balance:
        raise UnderfundedTreasuryError(
            f"Reward {rate} * {schedule.duration} exceeds held balance {held_balance}"
        )
    return rate
