"""
Staking Pool: stake, withdraw, claim, and reward funding entry points.

Every entry point runs settle-then-act inside one critical section: it
settles the global accumulator (and the caller's balance) against the live
total staked, checks all of its preconditions, moves tokens through custody,
and only then commits ledger and schedule writes. A failed precondition
leaves no trace. Notifications go out after the lock is released.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from observability.metrics import MetricsCollector, track_time
from observability.tracing import create_span, setup_tracing
from staking import accountant
from staking.accrual import AccrualLedger
from staking.config import StakingConfig
from staking.custody import Custody, InsufficientBalanceError, SqliteCustody
from staking.errors import (
    NotAdministratorError,
    NothingToClaimError,
    StakingError,
    ZeroAmountError,
)
from staking.operations import (
    OpType,
    StakingEvent,
    validate_amount,
    validate_participant_id,
    validate_uint,
)
from staking.schedule import RewardSchedule

logger = logging.getLogger(__name__)

Listener = Callable[[StakingEvent], Any]


@dataclass(frozen=True)
class FundingResult:
    """Rate and round end set by a funding operation"""
    reward_rate: int
    finish_at: int


class StakingPool:
    """
    Time-weighted reward accrual over a single stake token.

    Thread-safe: one lock serializes every operation and query.
    """

    def __init__(
        self,
        custody: Custody,
        admin_id: str,
        name: str = "default",
        duration: int = 0,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize staking pool.

        Args:
            custody: Custody holding the stake and reward tokens
            admin_id: Identity allowed to set the duration and fund rewards
            name: Pool name used in metrics and events
            duration: Initial round length in seconds (0 = not set)
            clock: Returns the current timestamp in seconds (defaults to wall clock)
        """
        self.custody = custody
        self._validate_participant(admin_id)
        validate_uint(duration, "Duration")
        self.admin_id = admin_id
        self.name = name
        self.schedule = RewardSchedule(duration=duration)
        self.ledger = AccrualLedger()
        self.lock = threading.Lock()
        self.metrics = MetricsCollector(name)
        self._clock = clock or (lambda: int(time.time()))
        self._listeners: List[Listener] = []

    @classmethod
    def from_config(
        cls, config: StakingConfig, custody: Optional[Custody] = None
    ) -> "StakingPool":
        """Build a pool (and its SQLite custody, unless given) from config"""
        if config.tracing_enabled:
            setup_tracing(
                f"staking-{config.pool_name}",
                otlp_endpoint=config.otlp_endpoint,
                console_export=config.trace_console,
            )
        if custody is None:
            custody = SqliteCustody(config.db_path)
        return cls(
            custody,
            admin_id=config.admin_id,
            name=config.pool_name,
            duration=config.initial_duration,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Register a callable to receive a StakingEvent per successful operation"""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def _emit(self, events: List[StakingEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.warning(
                        f"Listener {listener!r} failed on {event.op_type.value}: {e}",
                        exc_info=True,
                    )

    def _event(
        self, op_type: OpType, participant_id: Optional[str], amount: int, now: int
    ) -> StakingEvent:
        return StakingEvent(
            op_type=op_type,
            participant_id=participant_id,
            amount=amount,
            timestamp=now,
            pool=self.name,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, operation: OpType, **attributes):
        """Trace an entry point and count its rejections"""
        attributes["pool"] = self.name
        with create_span(f"staking.{operation.value.lower()}", attributes):
            try:
                yield
            except (StakingError, ValueError) as e:
                self.metrics.record_failure(operation.value, type(e).__name__)
                logger.info(f"{operation.value} rejected in pool {self.name}: {e}")
                raise

    def _validate_participant(self, participant_id: str) -> None:
        validate_participant_id(participant_id)
        if self.custody.is_reserved(participant_id):
            raise ValueError(f"{participant_id!r} is reserved by custody")

    def _resolve_now(self, now: Optional[int]) -> int:
        if now is None:
            now = self._clock()
        validate_uint(now, "Timestamp")
        return now

    def _require_admin(self, caller_id: str) -> None:
        if caller_id != self.admin_id:
            logger.warning(f"Rejected admin operation from {caller_id!r} in pool {self.name}")
            raise NotAdministratorError(f"{caller_id!r} is not the pool administrator")

    def _record_success(self, operation: OpType) -> None:
        self.metrics.record_operation(operation.value)
        self.metrics.set_total_staked(self.custody.total_staked())
        self.metrics.set_reward_rate(self.schedule.reward_rate)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @track_time("stake")
    def stake(self, participant_id: str, amount: int, now: Optional[int] = None) -> int:
        """
        Deposit stake tokens.

        Args:
            participant_id: Staking participant
            amount: Stake tokens to deposit
            now: Current timestamp (defaults to the pool clock)

        Returns:
            The participant's new stake

        Raises:
            ZeroAmountError: If amount is zero
            InsufficientBalanceError: If the participant's wallet holds less than amount
        """
        with self._operation(OpType.STAKE, participant_id=participant_id, amount=amount):
            self._validate_participant(participant_id)
            validate_amount(amount)
            if amount == 0:
                raise ZeroAmountError("Stake amount must be positive")

            with self.lock:
                now = self._resolve_now(now)
                existing = self.ledger.has_participant(participant_id)
                settlement = accountant.compute_settlement(
                    self.schedule,
                    self.ledger,
                    participant_id if existing else None,
                    self.custody.total_staked(),
                    now,
                )
                if existing:
                    self.ledger.check_adjust_stake(participant_id, amount)

                self.custody.deposit_stake(participant_id, amount)

                self.ledger.upsert_participant(participant_id)
                if not existing:
                    settlement = replace(settlement, participant_id=participant_id, earned=0)
                self.ledger.apply_settlement(settlement, self.schedule)
                new_stake = self.ledger.adjust_stake(participant_id, amount)
                self._record_success(OpType.STAKE)

        logger.info(f"{participant_id} staked {amount} at {now} (stake now {new_stake})")
        self._emit([self._event(OpType.STAKE, participant_id, amount, now)])
        return new_stake

    @track_time("withdraw")
    def withdraw(self, participant_id: str, amount: int, now: Optional[int] = None) -> int:
        """
        Withdraw stake tokens.

        Returns:
            The participant's remaining stake

        Raises:
            ZeroAmountError: If amount is zero
            NoStakeRecordError: If the participant has never staked
            InsufficientStakeError: If amount exceeds the current stake
        """
        with self._operation(OpType.WITHDRAW, participant_id=participant_id, amount=amount):
            self._validate_participant(participant_id)
            validate_amount(amount)
            if amount == 0:
                raise ZeroAmountError("Withdraw amount must be positive")

            with self.lock:
                now = self._resolve_now(now)
                self.ledger.require(participant_id)
                settlement = accountant.compute_settlement(
                    self.schedule,
                    self.ledger,
                    participant_id,
                    self.custody.total_staked(),
                    now,
                )
                self.ledger.check_adjust_stake(participant_id, -amount)

                self.custody.withdraw_stake(participant_id, amount)

                self.ledger.apply_settlement(settlement, self.schedule)
                remaining = self.ledger.adjust_stake(participant_id, -amount)
                self._record_success(OpType.WITHDRAW)

        logger.info(f"{participant_id} withdrew {amount} at {now} (stake now {remaining})")
        self._emit([self._event(OpType.WITHDRAW, participant_id, amount, now)])
        return remaining

    @track_time("claim")
    def claim(self, participant_id: str, now: Optional[int] = None) -> int:
        """
        Pay out everything the participant has earned.

        Returns:
            Reward units paid

        Raises:
            NoStakeRecordError: If the participant has never staked
            NothingToClaimError: If nothing has been earned
        """
        with self._operation(OpType.CLAIM, participant_id=participant_id):
            self._validate_participant(participant_id)

            with self.lock:
                now = self._resolve_now(now)
                self.ledger.require(participant_id)
                settlement = accountant.compute_settlement(
                    self.schedule,
                    self.ledger,
                    participant_id,
                    self.custody.total_staked(),
                    now,
                )
                if settlement.earned == 0:
                    raise NothingToClaimError(f"Nothing to claim for {participant_id}")

                self.custody.pay_out_reward(participant_id, settlement.earned)

                self.ledger.apply_settlement(settlement, self.schedule)
                paid = self.ledger.claim(participant_id)
                self.metrics.record_reward_paid(paid)
                self._record_success(OpType.CLAIM)

        logger.info(f"{participant_id} claimed {paid} at {now}")
        self._emit([self._event(OpType.CLAIM, participant_id, paid, now)])
        return paid

    @track_time("exit")
    def exit(self, participant_id: str, now: Optional[int] = None) -> Dict[str, int]:
        """
        Withdraw the whole stake and claim all reward in one settlement.

        Returns:
            Dict with "withdrawn" and "paid" amounts

        Raises:
            NoStakeRecordError: If the participant has never staked
            ZeroAmountError: If there is neither stake nor reward to take
        """
        with self._operation(OpType.EXIT, participant_id=participant_id):
            self._validate_participant(participant_id)

            with self.lock:
                now = self._resolve_now(now)
                entry = self.ledger.require(participant_id)
                settlement = accountant.compute_settlement(
                    self.schedule,
                    self.ledger,
                    participant_id,
                    self.custody.total_staked(),
                    now,
                )
                withdrawn = entry.stake_amount
                earned = settlement.earned
                if withdrawn == 0 and earned == 0:
                    raise ZeroAmountError(f"{participant_id} has no stake and no reward")
                if earned > self.custody.reward_balance():
                    raise InsufficientBalanceError(
                        f"Custody cannot cover {earned} owed to {participant_id}"
                    )

                if withdrawn:
                    self.custody.withdraw_stake(participant_id, withdrawn)
                if earned:
                    self.custody.pay_out_reward(participant_id, earned)

                self.ledger.apply_settlement(settlement, self.schedule)
                events = []
                if withdrawn:
                    self.ledger.adjust_stake(participant_id, -withdrawn)
                    events.append(self._event(OpType.WITHDRAW, participant_id, withdrawn, now))
                if earned:
                    self.ledger.claim(participant_id)
                    self.metrics.record_reward_paid(earned)
                    events.append(self._event(OpType.CLAIM, participant_id, earned, now))
                self._record_success(OpType.EXIT)

        logger.info(f"{participant_id} exited at {now}: withdrew {withdrawn}, paid {earned}")
        self._emit(events)
        return {"withdrawn": withdrawn, "paid": earned}

    @track_time("set_duration")
    def set_duration(self, caller_id: str, duration: int, now: Optional[int] = None) -> None:
        """
        Set the length of future reward rounds (administrator only).

        Raises:
            NotAdministratorError: If caller_id is not the administrator
            RoundStillActiveError: If the current round has not finished
            ZeroAmountError: If duration is zero
        """
        with self._operation(OpType.SET_DURATION, caller_id=caller_id, duration=duration):
            self._require_admin(caller_id)

            with self.lock:
                now = self._resolve_now(now)
                settlement = accountant.compute_settlement(
                    self.schedule, self.ledger, None, self.custody.total_staked(), now
                )
                self.schedule.check_duration(duration, now)

                self.ledger.apply_settlement(settlement, self.schedule)
                self.schedule.set_duration(duration, now)
                self._record_success(OpType.SET_DURATION)

        logger.info(f"Pool {self.name} reward duration set to {duration}s at {now}")
        self._emit([self._event(OpType.SET_DURATION, None, duration, now)])

    @track_time("fund")
    def fund(
        self, caller_id: str, amount: int, now: Optional[int] = None
    ) -> FundingResult:
        """
        Fund rewards and start a fresh round (administrator only).

        Reward left over from an unfinished round rolls into the new rate.
        amount may be zero to re-spread the leftover over a new round.

        Returns:
            FundingResult with the new rate and round end

        Raises:
            NotAdministratorError: If caller_id is not the administrator
            ZeroRewardRateError: If the new rate would be zero
            UnderfundedTreasuryError: If custody cannot cover rate * duration
            InsufficientBalanceError: If the caller's wallet holds less than amount
        """
        with self._operation(OpType.FUND, caller_id=caller_id, amount=amount):
            self._require_admin(caller_id)
            validate_amount(amount)

            with self.lock:
                now = self._resolve_now(now)
                settlement = accountant.compute_settlement(
                    self.schedule, self.ledger, None, self.custody.total_staked(), now
                )
                held = self.custody.reward_balance() + amount
                rate = accountant.recompute_rate(self.schedule, amount, now, held)

                if amount:
                    self.custody.deposit_reward(caller_id, amount)

                self.ledger.apply_settlement(settlement, self.schedule)
                self.schedule.apply_funding(rate, now)
                result = FundingResult(reward_rate=rate, finish_at=self.schedule.finish_at)
                self.metrics.record_reward_funded(amount)
                self._record_success(OpType.FUND)

        logger.info(
            f"Pool {self.name} funded with {amount} at {now}: "
            f"rate={result.reward_rate}/s until {result.finish_at}"
        )
        self._emit([self._event(OpType.FUND, None, amount, now)])
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def reward_rate(self) -> int:
        with self.lock:
            return self.schedule.reward_rate

    def earned(self, participant_id: str, now: Optional[int] = None) -> int:
        """Reward the participant could claim at now (0 if never staked)"""
        with self.lock:
            now = self._resolve_now(now)
            if not self.ledger.has_participant(participant_id):
                return 0
            return accountant.compute_settlement(
                self.schedule,
                self.ledger,
                participant_id,
                self.custody.total_staked(),
                now,
            ).earned

    def stake_of(self, participant_id: str) -> int:
        with self.lock:
            return self.ledger.stake_of(participant_id)

    def total_staked(self) -> int:
        with self.lock:
            return self.custody.total_staked()

    def reward_balance(self) -> int:
        """Funded-but-unclaimed reward tokens held by custody"""
        with self.lock:
            return self.custody.reward_balance()

    def reward_per_unit(self, now: Optional[int] = None) -> int:
        with self.lock:
            now = self._resolve_now(now)
            return accountant.accumulator_at(
                self.schedule, self.ledger, self.custody.total_staked(), now
            )

    def last_time_reward_applicable(self, now: Optional[int] = None) -> int:
        with self.lock:
            return self.schedule.last_time_reward_applicable(self._resolve_now(now))

    def reward_for_duration(self) -> int:
        with self.lock:
            return self.schedule.reward_for_duration()

    def participants(self) -> List[str]:
        with self.lock:
            return self.ledger.participant_ids()

    def schedule_snapshot(self, now: Optional[int] = None) -> Dict[str, Any]:
        with self.lock:
            now = self._resolve_now(now)
            return {
                "pool": self.name,
                "duration": self.schedule.duration,
                "finish_at": self.schedule.finish_at,
                "updated_at": self.schedule.updated_at,
                "reward_rate": self.schedule.reward_rate,
                "phase": self.schedule.phase(now).value,
                "reward_per_unit_stored": self.ledger.reward_per_unit_stored,
                "total_staked": self.custody.total_staked(),
                "reward_balance": self.custody.reward_balance(),
            }
