"""
Exceptions raised by the pool engine and its ledgers.
"""


class PoolError(Exception):
    """Base class for all pool failures."""
    pass


class AlreadyInitialized(PoolError):
    """Raised when init_pool is called a second time."""
    pass


class Unauthorized(PoolError):
    """Raised when someone other than the owner initializes the pool."""
    pass


class PoolNotInitialized(PoolError):
    """Raised when an operation needs asset identities that were never set."""
    pass


class InvalidAssetIdentity(PoolError):
    """Raised when an asset id is null or both ids are the same."""
    pass


class UnsupportedAsset(PoolError):
    """Raised when an asset id matches neither side of the pool."""
    pass


class InvalidAmount(PoolError):
    """Raised for non-positive or non-integer requested amounts."""
    pass


class ZeroAmount(PoolError):
    """Raised when a derived deposit or withdrawal amount is zero."""
    pass


class ZeroShares(PoolError):
    """Raised when a deposit would mint no shares."""
    pass


class InsufficientLiquidity(PoolError):
    """Raised when a request would drain a reserve."""
    pass


class InvariantViolation(PoolError):
    """Raised when a swap decreases the reserve product."""
    pass


class LedgerError(PoolError):
    """Raised by asset or share ledgers."""
    pass


class InsufficientBalance(LedgerError):
    pass


class TransferRejected(LedgerError):
    pass
