"""
Shared fixtures for staking tests.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import uuid

import pytest

from staking.custody import SqliteCustody, Token
from staking.pool import StakingPool

ADMIN = "admin"


@pytest.fixture
def custody():
    """In-memory custody with stake for alice/bob/carol and reward for the admin"""
    custody = SqliteCustody(":memory:")
    for holder in ("alice", "bob", "carol"):
        custody.mint(Token.STAKE, holder, 1_000)
    custody.mint(Token.REWARD, ADMIN, 100_000)
    return custody


@pytest.fixture
def pool(custody):
    """Pool with a unique name so metrics do not leak between tests"""
    return StakingPool(custody, admin_id=ADMIN, name=f"test-{uuid.uuid4().hex[:8]}")


@pytest.fixture
def funded_pool(pool):
    """Round of 10s funded with 1000 at t=1: rate 100/s until t=11"""
    pool.set_duration(ADMIN, 10, now=1)
    pool.fund(ADMIN, 1_000, now=1)
    return pool
