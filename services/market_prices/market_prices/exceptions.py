"""Error taxonomy for the market price engine."""

from __future__ import annotations

from typing import Iterable


class MarketPriceError(Exception):
    """Base class for engine errors."""


class ConfigurationError(MarketPriceError):
    """Raised at startup when required configuration is missing or invalid."""


class TransportError(MarketPriceError):
    """Network failure, timeout or non-success HTTP status from the upstream."""

    def __init__(self, message: str, page: int | None = None) -> None:
        super().__init__(message)
        self.page = page


class DecodeError(MarketPriceError):
    """Upstream payload could not be interpreted."""


class RecordRejected(MarketPriceError):
    """A single raw item failed resolution and is dropped from the result."""

    def __init__(self, reason: str, keys: Iterable[str] = ()) -> None:
        super().__init__(reason)
        self.reason = reason
        self.keys = sorted(keys)
