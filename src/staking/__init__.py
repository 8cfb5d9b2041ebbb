"""
Staking: time-weighted reward accrual over a single stake token.
"""

from .accountant import SCALE, Settlement
from .accrual import AccrualLedger, ParticipantEntry
from .config import StakingConfig
from .custody import Custody, InsufficientBalanceError, SqliteCustody, Token
from .errors import (
    ArithmeticOverflowError,
    InsufficientStakeError,
    NoStakeRecordError,
    NotAdministratorError,
    NothingToClaimError,
    RoundStillActiveError,
    ScheduleActiveError,
    StakingError,
    UnderfundedTreasuryError,
    ZeroAmountError,
    ZeroRewardRateError,
)
from .operations import OpType, StakingEvent
from .pool import FundingResult, StakingPool
from .schedule import RewardSchedule, RoundPhase

__all__ = [
    'SCALE',
    'Settlement',
    'AccrualLedger',
    'ParticipantEntry',
    'StakingConfig',
    'Custody',
    'InsufficientBalanceError',
    'SqliteCustody',
    'Token',
    'ArithmeticOverflowError',
    'InsufficientStakeError',
    'NoStakeRecordError',
    'NotAdministratorError',
    'NothingToClaimError',
    'RoundStillActiveError',
    'ScheduleActiveError',
    'StakingError',
    'UnderfundedTreasuryError',
    'ZeroAmountError',
    'ZeroRewardRateError',
    'OpType',
    'StakingEvent',
    'FundingResult',
    'StakingPool',
    'RewardSchedule',
    'RoundPhase',
]
