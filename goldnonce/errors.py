"""Exception hierarchy for goldnonce."""

from __future__ import annotations


class GoldNonceError(Exception):
    """Base class for every error raised by goldnonce."""


class ConfigurationError(GoldNonceError, ValueError):
    """Invalid run parameters, detected before any infrastructure is touched."""


class InfeasibleSizingError(GoldNonceError):
    """Confidence based sizing needs more workers than the ceiling allows."""

    def __init__(self, needed: int, ceiling: int) -> None:
        super().__init__(
            f"Unable to satisfy constraints without using more than {ceiling} workers"
            f" ({needed} needed)"
        )
        self.needed = needed
        self.ceiling = ceiling


class DispatchError(GoldNonceError):
    """Publishing a task failed; ``published`` tasks were already sent."""

    def __init__(self, message: str, published: int = 0) -> None:
        super().__init__(message)
        self.published = published


class DecodeError(GoldNonceError, ValueError):
    """A queue message is missing attributes or carries malformed values."""


class AggregationTimeout(GoldNonceError, TimeoutError):
    """No definitive answer arrived before the deadline."""

    def __init__(self, timeout: float, received: int, expected: int) -> None:
        super().__init__(
            f"Timed out after {timeout:g}s with {received}/{expected} responses"
        )
        self.timeout = timeout
        self.received = received
        self.expected = expected


class SearchCancelled(GoldNonceError):
    """The wait loop was interrupted by an operator shutdown."""


class ChannelError(GoldNonceError):
    """A queue operation failed in the transport."""


__all__ = [
    "GoldNonceError",
    "ConfigurationError",
    "InfeasibleSizingError",
    "DispatchError",
    "DecodeError",
    "AggregationTimeout",
    "SearchCancelled",
    "ChannelError",
]
