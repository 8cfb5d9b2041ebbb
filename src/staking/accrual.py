"""
Accrual Ledger: global reward-per-unit accumulator and per-participant entries.

Entries are created on first stake and never removed, so reward owed to a
participant survives a full withdrawal and a later re-stake.
"""

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Dict, List, Optional

from staking.errors import (
    ArithmeticOverflowError,
    InsufficientStakeError,
    NoStakeRecordError,
    NothingToClaimError,
)
from staking.operations import U64_MAX, validate_participant_id, validate_uint

if TYPE_CHECKING:
    from staking.accountant import Settlement
    from staking.schedule import RewardSchedule

logger = logging.getLogger(__name__)


@dataclass
class ParticipantEntry:
    """Ledger state for one participant"""

    stake_amount: int = 0       # Currently staked quantity
    accumulator_paid: int = 0   # reward_per_unit_stored at last settlement
    settled_reward: int = 0     # Owed but not yet paid out


class AccrualLedger:
    """
    Global accumulator plus a mapping of participant entries.

    Not thread-safe on its own; StakingPool serializes every mutation.
    """

    def __init__(self):
        self.reward_per_unit_stored = 0
        self._entries: Dict[str, ParticipantEntry] = {}

    def upsert_participant(self, participant_id: str) -> ParticipantEntry:
        """
        Create a zeroed entry if absent.

        Returns:
            The (new or existing) entry
        """
        validate_participant_id(participant_id)
        entry = self._entries.get(participant_id)
        if entry is None:
            entry = ParticipantEntry()
            self._entries[participant_id] = entry
            logger.debug(f"Created ledger entry for {participant_id}")
        return entry

    def get(self, participant_id: str) -> Optional[ParticipantEntry]:
        """Return a copy of the participant's entry, or None"""
        entry = self._entries.get(participant_id)
        return replace(entry) if entry else None

    def has_participant(self, participant_id: str) -> bool:
        return participant_id in self._entries

    def require(self, participant_id: str) -> ParticipantEntry:
        """
        Get the live entry for a participant.

        Raises:
            NoStakeRecordError: If the participant has never staked
        """
        entry = self._entries.get(participant_id)
        if entry is None:
            raise NoStakeRecordError(f"No stake record for {participant_id}")
        return entry

    def stake_of(self, participant_id: str) -> int:
        entry = self._entries.get(participant_id)
        return entry.stake_amount if entry else 0

    def participant_ids(self) -> List[str]:
        return sorted(self._entries)

    @property
    def total_staked(self) -> int:
        """Sum of all participant stakes"""
        return sum(entry.stake_amount for entry in self._entries.values())

    @property
    def total_settled(self) -> int:
        """Sum of all settled-but-unclaimed rewards"""
        return sum(entry.settled_reward for entry in self._entries.values())

    def check_adjust_stake(self, participant_id: str, delta: int) -> int:
        """
        Compute the stake that adjust_stake would write, without writing it.

        Raises:
            NoStakeRecordError: If the participant has no entry
            InsufficientStakeError: If the result would be negative
            ArithmeticOverflowError: If the result does not fit in 64 bits
        """
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise ValueError(f"Stake delta must be integer, got {type(delta)}")
        entry = self.require(participant_id)
        new_stake = entry.stake_amount + delta
        if new_stake < 0:
            raise InsufficientStakeError(
                f"Insufficient stake: {entry.stake_amount} < {-delta}"
            )
        if new_stake > U64_MAX:
            raise ArithmeticOverflowError(f"Stake overflows: {new_stake}")
        return new_stake

    def adjust_stake(self, participant_id: str, delta: int) -> int:
        """
        Apply a signed delta to a participant's stake.

        The caller must have settled the participant first.

        Returns:
            The new stake amount
        """
        new_stake = self.check_adjust_stake(participant_id, delta)
        self._entries[participant_id].stake_amount = new_stake
        return new_stake

    def record_earned(self, participant_id: str, value: int) -> None:
        """Overwrite the participant's settled reward"""
        validate_uint(value, "Earned reward")
        self.require(participant_id).settled_reward = value

    def claim(self, participant_id: str) -> int:
        """
        Take the participant's settled reward, leaving zero behind.

        Returns:
            The amount that was owed

        Raises:
            NoStakeRecordError: If the participant has no entry
            NothingToClaimError: If nothing is owed
        """
        entry = self.require(participant_id)
        owed = entry.settled_reward
        if owed == 0:
            raise NothingToClaimError(f"Nothing to claim for {participant_id}")
        entry.settled_reward = 0
        return owed

    def apply_settlement(self, settlement: "Settlement", schedule: "RewardSchedule") -> None:
        """
        Commit a settlement computed by the accountant.

        Writes the global accumulator and the schedule's updated_at, plus the
        participant's earned reward and snapshot when the settlement names one.
        """
        if settlement.reward_per_unit < self.reward_per_unit_stored:
            raise ValueError(
                f"Stale settlement: accumulator {settlement.reward_per_unit} "
                f"< stored {self.reward_per_unit_stored}"
            )
        if settlement.updated_at < schedule.updated_at:
            raise ValueError(
                f"Stale settlement: updated_at {settlement.updated_at} "
                f"< stored {schedule.updated_at}"
            )
        if settlement.participant_id is not None:
            entry = self.require(settlement.participant_id)
            entry.settled_reward = settlement.earned
            entry.accumulator_paid = settlement.reward_per_unit

        self.reward_per_unit_stored = settlement.reward_per_unit
        schedule.updated_at = settlement.updated_at
