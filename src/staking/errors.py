"""
Staking errors: one exception per precondition failure.

Every failure is detected before any state is mutated, so catching one of
these means the pool is exactly as it was before the call.
"""


class StakingError(Exception):
    """Base class for all staking precondition failures"""

    category = "staking"


class RoundStillActiveError(StakingError):
    """Raised when the reward round has not finished yet"""

    category = "temporal-policy"


# Schedule-level name for the same failure
ScheduleActiveError = RoundStillActiveError


class InsufficientStakeError(StakingError):
    """Raised when a withdrawal exceeds the participant's stake"""

    category = "insufficiency"


class UnderfundedTreasuryError(StakingError):
    """Raised when rate * duration exceeds the reward tokens held by custody"""

    category = "insufficiency"


class NothingToClaimError(StakingError):
    """Raised when a participant has no settled reward"""

    category = "insufficiency"


class ZeroAmountError(StakingError):
    """Raised when an amount that must be positive is zero"""

    category = "degenerate-input"


class ZeroRewardRateError(StakingError):
    """Raised when funding would produce a zero reward rate"""

    category = "degenerate-input"


class NoStakeRecordError(StakingError):
    """Raised when a participant has never staked"""

    category = "identity"


class NotAdministratorError(StakingError):
    """Raised when an admin-only operation is called by someone else"""

    category = "permission"


class ArithmeticOverflowError(StakingError):
    """Raised when a computed value does not fit in 64 unsigned bits"""

    category = "arithmetic"
