"""
Staking operations: types, notification dataclass, and validation rules.
"""

from enum import Enum
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

U64_MAX = 2**64 - 1


class OpType(Enum):
    """Types of staking operations"""
    STAKE = "STAKE"                 # Deposit stake tokens
    WITHDRAW = "WITHDRAW"           # Withdraw stake tokens
    CLAIM = "CLAIM"                 # Pay out settled reward
    FUND = "FUND"                   # Top up reward tokens
    SET_DURATION = "SET_DURATION"   # Change the round length
    EXIT = "EXIT"                   # Withdraw all stake and claim


@dataclass(frozen=True)
class StakingEvent:
    """Notification emitted once per successful operation"""
    op_type: OpType                 # Which operation succeeded
    participant_id: Optional[str]   # None for pool-wide operations
    amount: int                     # Staked/withdrawn/paid/funded/duration
    timestamp: int                  # The `now` the operation ran at
    pool: str                       # Pool name

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["op_type"] = self.op_type.value
        return data


def validate_uint(value: int, name: str = "Value") -> None:
    """Validate that value is a non-negative integer fitting in 64 bits"""
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be integer, got {type(value)}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    if value > U64_MAX:
        raise ValueError(f"{name} exceeds 64-bit range: {value}")


def validate_amount(amount: int) -> None:
    """Validate amount type and range (zero is checked by the caller)"""
    validate_uint(amount, "Amount")


def validate_participant_id(participant_id: str) -> None:
    """Validate participant ID format"""
    if not isinstance(participant_id, str):
        raise ValueError(f"Participant ID must be string, got {type(participant_id)}")
    if not participant_id or not participant_id.strip():
        raise ValueError("Participant ID cannot be empty")
