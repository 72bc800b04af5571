"""Exceptions raised or returned by the Huobi client."""

from typing import Any, Optional


class HuobiError(Exception):
    """Base exception for all client errors."""
    pass


class ArgumentError(HuobiError, ValueError):
    """Raised when a caller-supplied value violates a precondition.

    Always detected before any network call is made and never retried.
    """
    pass


class ServerError(HuobiError):
    """The exchange rejected a well-formed request."""

    def __init__(self, message: str, code: Optional[str] = None, raw: Any = None):
        """
        Initialize the error.

        Args:
            message: Error message reported by the exchange (or the raw body)
            code: Exchange error code, when the envelope carried one
            raw: The decoded response body the error was derived from
        """
        super().__init__(f"{code}, {message}" if code else message)
        self.code = code
        self.message = message
        self.raw = raw


class SyncTimeoutError(HuobiError, TimeoutError):
    """Raised when an order book snapshot did not arrive in time."""
    pass


class ExchangeConnectionError(HuobiError, ConnectionError):
    """Raised when the REST or streaming transport fails."""
    pass


class WebSocketSubscriptionError(ServerError):
    """Raised when the push channel rejects a subscription."""
    pass
