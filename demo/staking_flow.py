"""
Staking demo: FUND → STAKE → STAKE → WITHDRAW → CLAIM

Runs the two-staker reward round in-process and prints what each step did.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from staking.custody import SqliteCustody, Token
from staking.pool import StakingPool

ADMIN = "admin"


def main():
    print("=" * 60)
    print("Staking Pool Demo")
    print("=" * 60)

    custody = SqliteCustody()
    custody.mint(Token.STAKE, "alice", 100)
    custody.mint(Token.STAKE, "bob", 100)
    custody.mint(Token.REWARD, ADMIN, 1_000)

    pool = StakingPool(custody, admin_id=ADMIN, name="demo")
    pool.subscribe(lambda e: print(f"  event: {e.op_type.value:<13} {e.participant_id or '-':<6} {e.amount}"))

    print("\n[t=1] Round of 10s funded with 1000")
    pool.set_duration(ADMIN, 10, now=1)
    funding = pool.fund(ADMIN, 1_000, now=1)
    print(f"  rate: {funding.reward_rate}/s until t={funding.finish_at}")

    print("\n[t=2..9] Stakes and withdrawals")
    pool.stake("alice", 10, now=2)
    pool.stake("bob", 20, now=4)
    pool.stake("alice", 30, now=6)
    pool.withdraw("bob", 20, now=8)
    pool.withdraw("alice", 40, now=9)

    print("\n[t=9] Claims")
    for participant in ("alice", "bob"):
        paid = pool.claim(participant, now=9)
        print(f"  {participant} paid {paid}")

    print(f"\nUnclaimed reward left in custody: {pool.reward_balance()}")
    print("=" * 60)


if __name__ == "__main__":
    main()
