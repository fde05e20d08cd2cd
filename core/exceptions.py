"""
Client Exceptions

Every error raised by this library derives from BinanceError so callers can
catch the whole family in one place, or pick out the kind they care about.

Taxonomy:
    - ConfigurationError: unusable secret material (fatal, never retried)
    - InvalidHeaderError: API key cannot be placed in an HTTP header
    - TransportError: connection refused, TLS failure, timeout
    - DecodeError: response body does not match the expected shape
    - BinanceAPIError: non-2xx response with a structured {code, msg} body
    - MissingParameterError: caller contract violation, raised before any I/O
    - StreamSetupError: a subscription cannot even be attempted (bad URL)
    - ChannelClosed: the consumer side of an event channel has gone away

Usage:
    try:
        order = await client.trading.get_order("BTCUSDT", order_id=42)
    except BinanceAPIError as e:
        print(e.status, e.error.code, e.error.msg)
"""

from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from core.schemas import ApiErrorPayload


class BinanceError(Exception):
    """Base class for all client errors"""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class ConfigurationError(BinanceError):
    """Secret material or settings that can never produce a valid request"""


class InvalidHeaderError(ConfigurationError):
    """API key contains characters that are not valid in an HTTP header value"""


class TransportError(BinanceError):
    """Network-level failure (connection, TLS, timeout)"""


class DecodeError(BinanceError):
    """
    Payload could not be decoded into the expected record.

    Attributes:
        status: HTTP status of the response, when there was one
    """

    def __init__(self, message: str, details: Optional[Any] = None, status: Optional[int] = None):
        super().__init__(message, details)
        self.status = status


class BinanceAPIError(BinanceError):
    """
    Non-2xx response carrying Binance's structured error body.

    Both the HTTP status and the decoded payload are kept.

    Attributes:
        status: HTTP status code (e.g., 400)
        error: Decoded {code, msg} payload
    """

    def __init__(self, status: int, error: "ApiErrorPayload"):
        self.status = status
        self.error = error
        super().__init__(f"API error: {status} - code={error.code} msg={error.msg}", details=error)


class MissingParameterError(BinanceError):
    """Required parameter (or one of a set of alternatives) was not supplied"""


class StreamSetupError(BinanceError):
    """Subscription descriptor cannot be connected to at all"""


class ChannelClosed(BinanceError):
    """Raised by EventChannel.send() once the consumer has closed the channel"""
