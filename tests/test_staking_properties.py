"""
Property tests for reward accrual.

Properties verified:
- Conservation: settled + claimed never exceeds funded
- Monotonicity: accumulator and updated_at never decrease
- Fairness: equal stakes over equal time earn equally
- Settlement idempotence at a fixed time
- Rollover: unfinished reward carried into the new rate
- Serialization: concurrent callers leave a consistent ledger

Run: pytest tests/test_staking_properties.py -v
"""

import sys
import os
import random
import threading
import uuid

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from staking import accountant
from staking.custody import SqliteCustody, Token
from staking.errors import StakingError
from staking.pool import StakingPool

ADMIN = "admin"
PARTICIPANTS = ["p0", "p1", "p2", "p3"]


def make_pool(stake_each=1_000, reward=10**7):
    custody = SqliteCustody()
    for pid in PARTICIPANTS:
        custody.mint(Token.STAKE, pid, stake_each)
    custody.mint(Token.REWARD, ADMIN, reward)
    return StakingPool(custody, admin_id=ADMIN, name=f"prop-{uuid.uuid4().hex[:8]}")


def random_walk(seed, steps=250):
    """
    Drive a pool through random operations, yielding after each step.

    Rejected operations are expected (over-withdrawals, empty claims, ...).
    """
    rng = random.Random(seed)
    pool = make_pool()
    funded = 0
    claimed = 0

    pool.set_duration(ADMIN, 50, now=1)
    pool.fund(ADMIN, 10_000, now=1)
    funded += 10_000

    now = 1
    for _ in range(steps):
        now += rng.choice([0, 1, 1, 2, 5])
        pid = rng.choice(PARTICIPANTS)
        action = rng.choice(["stake", "stake", "withdraw", "claim", "fund", "exit"])
        try:
            if action == "stake":
                pool.stake(pid, rng.randint(1, 200), now=now)
            elif action == "withdraw":
                pool.withdraw(pid, rng.randint(1, 200), now=now)
            elif action == "claim":
                claimed += pool.claim(pid, now=now)
            elif action == "exit":
                claimed += pool.exit(pid, now=now)["paid"]
            elif action == "fund":
                amount = rng.randint(500, 5_000)
                pool.fund(ADMIN, amount, now=now)
                funded += amount
        except StakingError:
            pass
        yield pool, now, funded, claimed


class TestConservation:
    """Claimable plus claimed never exceeds funded"""

    @pytest.mark.parametrize("seed", range(5))
    def test_conservation(self, seed):
        for pool, now, funded, claimed in random_walk(seed):
            owed = sum(pool.earned(pid, now=now) for pid in pool.participants())
            assert pool.ledger.total_settled + claimed <= funded
            assert owed + claimed <= funded
            assert owed <= pool.reward_balance()
            assert pool.reward_balance() == funded - claimed

    @pytest.mark.parametrize("seed", range(5))
    def test_ledger_matches_custody(self, seed):
        for pool, _, _, _ in random_walk(seed):
            assert pool.ledger.total_staked == pool.custody.total_staked()


class TestMonotonicity:
    """Accumulator and updated_at are non-decreasing"""

    @pytest.mark.parametrize("seed", range(5))
    def test_monotonic(self, seed):
        last_acc = 0
        last_updated = 0
        for pool, _, _, _ in random_walk(seed):
            acc = pool.ledger.reward_per_unit_stored
            updated = pool.schedule.updated_at
            assert acc >= last_acc
            assert updated >= last_updated
            assert updated <= pool.schedule.finish_at
            for pid in pool.participants():
                assert pool.ledger.get(pid).accumulator_paid <= acc
            last_acc, last_updated = acc, updated


class TestFairness:
    """Equal stake over equal time earns equal reward"""

    def test_equal_stakes_equal_rewards(self):
        pool = make_pool()
        pool.set_duration(ADMIN, 10, now=1)
        pool.fund(ADMIN, 1_000, now=1)

        pool.stake("p0", 50, now=2)
        pool.stake("p1", 50, now=2)

        for t in (3, 5, 7, 11, 20):
            assert pool.earned("p0", now=t) == pool.earned("p1", now=t)
        assert pool.earned("p0", now=7) == 250

    def test_interaction_order_does_not_matter(self):
        """A third party acting in between does not change anyone's share"""
        quiet = make_pool()
        busy = make_pool()
        for pool in (quiet, busy):
            pool.set_duration(ADMIN, 10, now=1)
            pool.fund(ADMIN, 1_000, now=1)
            pool.stake("p0", 40, now=2)
            pool.stake("p1", 60, now=2)

        for t in range(3, 9):
            busy.stake("p0", 10, now=t)
            busy.withdraw("p0", 10, now=t)

        assert busy.earned("p1", now=9) == quiet.earned("p1", now=9)


class TestSettlementIdempotence:
    def test_second_settle_adds_nothing(self):
        pool = make_pool()
        pool.set_duration(ADMIN, 10, now=1)
        pool.fund(ADMIN, 1_000, now=1)
        pool.stake("p0", 20, now=2)

        first = accountant.settle(pool.schedule, pool.ledger, "p0", pool.total_staked(), 6)
        second = accountant.settle(pool.schedule, pool.ledger, "p0", pool.total_staked(), 6)

        assert first == second
        assert pool.ledger.get("p0").settled_reward == 400


class TestRollover:
    @pytest.mark.parametrize("fund_at", [2, 5, 10])
    def test_remaining_carried_exactly(self, fund_at):
        pool = make_pool()
        pool.set_duration(ADMIN, 10, now=1)
        pool.fund(ADMIN, 1_000, now=1)

        remaining = (pool.schedule.finish_at - fund_at) * pool.schedule.reward_rate
        rate = pool.fund(ADMIN, 2_000, now=fund_at).reward_rate
        assert rate == (2_000 + remaining) // 10


class TestSerialization:
    """Concurrent callers are serialized by the pool lock"""

    def test_concurrent_stakes(self):
        pool = make_pool(stake_each=10_000)
        pool.set_duration(ADMIN, 100, now=1)
        pool.fund(ADMIN, 100_000, now=1)
        errors = []

        def worker(pid):
            try:
                for _ in range(50):
                    pool.stake(pid, 3, now=5)
                pool.withdraw(pid, 30, now=5)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(pid,)) for pid in PARTICIPANTS]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert pool.total_staked() == len(PARTICIPANTS) * 120
        assert pool.ledger.total_staked == pool.custody.total_staked()
        for pid in PARTICIPANTS:
            assert pool.stake_of(pid) == 120
