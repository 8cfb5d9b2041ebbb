"""
Token Custody: holder balances for the stake and reward tokens, with SQLite
persistence and an audit trail.

The accrual engine never holds tokens; it asks custody to move them and
treats custody balances as the source of truth for solvency checks.
"""

import sqlite3
import json
import threading
import uuid
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from staking.errors import StakingError
from staking.operations import validate_amount, validate_participant_id

# SQLite INTEGER is signed 64-bit
MAX_BALANCE = 2**63 - 1


class InsufficientBalanceError(StakingError):
    """Raised when a holder has insufficient balance for a transfer"""

    category = "insufficiency"


class Token(Enum):
    """Tokens custody keeps balances for"""
    STAKE = "STAKE"
    REWARD = "REWARD"


class CustodyOp(Enum):
    """Types of custody operations"""
    MINT = "MINT"           # Seed a holder's wallet
    DEPOSIT = "DEPOSIT"     # Holder -> pool
    WITHDRAW = "WITHDRAW"   # Pool -> holder (stake token)
    PAYOUT = "PAYOUT"       # Pool -> holder (reward token)


@dataclass
class CustodyRecord:
    """Single operation in the custody audit trail"""
    op_id: str                  # UUID
    holder: str                 # Holder the row is about
    token: Token                # Which token moved
    operation: CustodyOp        # Type of operation
    amount: int                 # Signed: negative for the debited side
    timestamp: int              # Timestamp in nanoseconds
    metadata: Dict[str, Any]    # Operation-specific metadata


class Custody(ABC):
    """What the staking pool needs from whoever holds the tokens"""

    POOL_HOLDER = "__pool__"

    # Only this account can mint tokens into wallets
    SYSTEM_ACCOUNT_ID = "system"

    @abstractmethod
    def wallet_balance(self, token: Token, holder: str) -> int:
        """Balance of token held by holder"""

    @abstractmethod
    def deposit_stake(self, holder: str, amount: int) -> str:
        """Move stake tokens from holder into the pool"""

    @abstractmethod
    def withdraw_stake(self, holder: str, amount: int) -> str:
        """Move stake tokens from the pool back to holder"""

    @abstractmethod
    def deposit_reward(self, holder: str, amount: int) -> str:
        """Move reward tokens from holder into the pool"""

    @abstractmethod
    def pay_out_reward(self, holder: str, amount: int) -> str:
        """Move reward tokens from the pool to holder"""

    def is_reserved(self, holder: str) -> bool:
        """True for holder ids custody keeps for itself"""
        return holder in (self.POOL_HOLDER, self.SYSTEM_ACCOUNT_ID)

    def total_staked(self) -> int:
        """Stake tokens currently held by the pool"""
        return self.wallet_balance(Token.STAKE, self.POOL_HOLDER)

    def reward_balance(self) -> int:
        """Reward tokens currently held by the pool"""
        return self.wallet_balance(Token.REWARD, self.POOL_HOLDER)


class SqliteCustody(Custody):
    """
    Custody with SQLite persistence and audit trail.

    Thread-safe operations with full audit logging.
    """

    def __init__(self, db_path: Union[Path, str] = ":memory:"):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.lock = threading.Lock()
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema"""
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS balances (
                    token TEXT NOT NULL,
                    holder TEXT NOT NULL,
                    amount INTEGER NOT NULL DEFAULT 0 CHECK(amount >= 0),
                    PRIMARY KEY (token, holder)
                )
            """
            )

            # Operations audit trail (append-only)
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS operations (
                    op_id TEXT PRIMARY KEY,
                    holder TEXT NOT NULL,
                    token TEXT NOT NULL,
                    op_type TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    timestamp_ns INTEGER NOT NULL,
                    metadata_json TEXT NOT NULL
                )
            """
            )

            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_ops_holder ON operations(holder)"
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_ops_timestamp ON operations(timestamp_ns)"
            )

    def mint(
        self, token: Token, holder: str, amount: int, minter_id: Optional[str] = None
    ) -> str:
        """
        Create tokens in a holder's wallet.

        Args:
            token: Token to mint
            holder: Receiving holder
            amount: Amount to mint
            minter_id: Account authorizing the mint (defaults to SYSTEM_ACCOUNT_ID)

        Returns:
            Operation ID

        Raises:
            ValueError: If minter not authorized, holder is the pool, or amount invalid
        """
        validate_participant_id(holder)
        if holder == self.POOL_HOLDER:
            raise ValueError("Cannot mint into the pool holder")
        validate_amount(amount)
        if amount == 0:
            raise ValueError("Mint amount must be positive")

        if minter_id is None:
            minter_id = self.SYSTEM_ACCOUNT_ID
        if minter_id != self.SYSTEM_ACCOUNT_ID:
            raise ValueError(
                f"Only '{self.SYSTEM_ACCOUNT_ID}' account is authorized to mint tokens. "
                f"Account '{minter_id}' is not authorized."
            )

        with self.lock:
            current = self._balance_unsafe(token, holder)
            if current + amount > MAX_BALANCE:
                raise ValueError(f"Minting {amount} would overflow {holder}'s balance")

            op_id = str(uuid.uuid4())
            with self.conn:
                self._credit_unsafe(token, holder, amount)
                self._record_unsafe(
                    op_id, holder, token, CustodyOp.MINT, amount, {"minter": minter_id}
                )
            return op_id

    def wallet_balance(self, token: Token, holder: str) -> int:
        """
        Get balance of token for holder.

        Returns:
            Balance (0 if holder has never held the token)
        """
        with self.lock:
            return self._balance_unsafe(token, holder)

    def _balance_unsafe(self, token: Token, holder: str) -> int:
        """Internal: read balance without acquiring lock. Used when lock already held."""
        cursor = self.conn.execute(
            "SELECT amount FROM balances WHERE token = ? AND holder = ?",
            (token.value, holder),
        )
        row = cursor.fetchone()
        return row[0] if row else 0

    def _credit_unsafe(self, token: Token, holder: str, amount: int) -> None:
        self.conn.execute(
            """
            INSERT INTO balances (token, holder, amount) VALUES (?, ?, ?)
            ON CONFLICT(token, holder) DO UPDATE SET amount = amount + excluded.amount
        """,
            (token.value, holder, amount),
        )

    def _record_unsafe(
        self,
        op_id: str,
        holder: str,
        token: Token,
        op_type: CustodyOp,
        amount: int,
        metadata: Dict[str, Any],
    ) -> None:
        self.conn.execute(
            """
            INSERT INTO operations (op_id, holder, token, op_type, amount, timestamp_ns, metadata_json)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (
                op_id,
                holder,
                token.value,
                op_type.value,
                amount,
                time.time_ns(),
                json.dumps(metadata),
            ),
        )

    def _transfer(
        self, token: Token, from_id: str, to_id: str, amount: int, op_type: CustodyOp
    ) -> str:
        """
        Move amount of token between holders.

        Raises:
            InsufficientBalanceError: If source has insufficient balance
            ValueError: If source and destination are the same holder
        """
        validate_participant_id(from_id)
        validate_participant_id(to_id)
        if from_id == to_id:
            raise ValueError(f"Cannot transfer from {from_id} to itself")
        validate_amount(amount)
        if amount == 0:
            raise ValueError("Transfer amount must be positive")

        with self.lock:
            from_balance = self._balance_unsafe(token, from_id)
            if from_balance < amount:
                raise InsufficientBalanceError(
                    f"Insufficient {token.value} balance for {from_id}: "
                    f"{from_balance} < {amount}"
                )
            if self._balance_unsafe(token, to_id) + amount > MAX_BALANCE:
                raise ValueError(f"Transfer would overflow {to_id}'s balance")

            transfer_id = str(uuid.uuid4())
            with self.conn:
                self.conn.execute(
                    "UPDATE balances SET amount = amount - ? WHERE token = ? AND holder = ?",
                    (amount, token.value, from_id),
                )
                self._credit_unsafe(token, to_id, amount)

                self._record_unsafe(
                    str(uuid.uuid4()),
                    from_id,
                    token,
                    op_type,
                    -amount,
                    {"to_holder": to_id, "transfer_id": transfer_id},
                )
                self._record_unsafe(
                    str(uuid.uuid4()),
                    to_id,
                    token,
                    op_type,
                    amount,
                    {"from_holder": from_id, "transfer_id": transfer_id},
                )
            return transfer_id

    def deposit_stake(self, holder: str, amount: int) -> str:
        return self._transfer(Token.STAKE, holder, self.POOL_HOLDER, amount, CustodyOp.DEPOSIT)

    def withdraw_stake(self, holder: str, amount: int) -> str:
        return self._transfer(Token.STAKE, self.POOL_HOLDER, holder, amount, CustodyOp.WITHDRAW)

    def deposit_reward(self, holder: str, amount: int) -> str:
        return self._transfer(Token.REWARD, holder, self.POOL_HOLDER, amount, CustodyOp.DEPOSIT)

    def pay_out_reward(self, holder: str, amount: int) -> str:
        return self._transfer(Token.REWARD, self.POOL_HOLDER, holder, amount, CustodyOp.PAYOUT)

    def get_audit_trail(
        self, holder: Optional[str] = None, limit: int = 100
    ) -> List[CustodyRecord]:
        """
        Get audit trail of operations.

        Args:
            holder: Filter by holder (None for all)
            limit: Maximum number of operations to return

        Returns:
            List of CustodyRecord objects, newest first
        """
        with self.lock:
            if holder:
                cursor = self.conn.execute(
                    """
                    SELECT op_id, holder, token, op_type, amount, timestamp_ns, metadata_json
                    FROM operations
                    WHERE holder = ?
                    ORDER BY timestamp_ns DESC, rowid DESC
                    LIMIT ?
                """,
                    (holder, limit),
                )
            else:
                cursor = self.conn.execute(
                    """
                    SELECT op_id, holder, token, op_type, amount, timestamp_ns, metadata_json
                    FROM operations
                    ORDER BY timestamp_ns DESC, rowid DESC
                    LIMIT ?
                """,
                    (limit,),
                )
            rows = cursor.fetchall()

        return [
            CustodyRecord(
                op_id=row[0],
                holder=row[1],
                token=Token(row[2]),
                operation=CustodyOp(row[3]),
                amount=row[4],
                timestamp=row[5],
                metadata=json.loads(row[6]),
            )
            for row in rows
        ]
