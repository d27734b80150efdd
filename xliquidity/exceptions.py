"""
Aggregator Exceptions

Error taxonomy for the liquidity aggregator. Every kind carries the numeric
code the ledger reports to callers; the codes are stable and part of the
public surface.
"""


class AggregatorError(Exception):
    """Base exception for the aggregator ledger."""
    code: int = 0

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)

    @property
    def kind(self) -> str:
        return self.__class__.__name__


class Unauthorized(AggregatorError):
    """Caller is not allowed to perform this operation."""
    code = 100


class InsufficientBalance(AggregatorError):
    """Account balance or LP position is too low."""
    code = 101


class InsufficientLiquidity(AggregatorError):
    """Pool reserves cannot satisfy the request."""
    code = 102


class InvalidAmount(AggregatorError):
    """Amount is zero or otherwise out of range."""
    code = 103


class PoolNotFound(AggregatorError):
    """No pool with the given id or pair."""
    code = 104


class PoolInactive(PoolNotFound):
    """Pool exists but has been deactivated."""


class SlippageTooHigh(AggregatorError):
    """Result falls below the caller's minimum."""
    code = 105


class SwapExpired(AggregatorError):
    """Cross-chain swap has reached its expiry block."""
    code = 106


class InvalidToken(AggregatorError):
    """Token is unknown or does not belong to the pool."""
    code = 107


class Paused(AggregatorError):
    """Protocol is paused."""
    code = 108


class AlreadyExists(AggregatorError):
    """A pool for this token pair already exists."""
    code = 109


class InvalidFee(AggregatorError):
    """Fee rate is outside 0..10000 bps."""
    code = 110


class SwapNotFound(AggregatorError):
    """No cross-chain swap with the given id."""
    code = 111


class SwapNotPending(AggregatorError):
    """Cross-chain swap already reached a terminal state."""
    code = 112


class SwapNotExpired(AggregatorError):
    """Cross-chain swap cannot be cancelled before its expiry block."""
    code = 113


class ConfigurationError(AggregatorError):
    """Configuration error."""
    code = 900

