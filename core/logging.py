"""
Unified Logging Configuration

This module sets up a centralized logging system for the client library.
All modules get their logger from here instead of using print() statements.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Connected to Binance")

Log Levels (from most to least verbose):
    DEBUG    - Request paths, stream frame types
    INFO     - Connections opened, subscriptions ended
    WARNING  - Reconnect scheduled
    ERROR    - Connection failures, undecodable frames, API errors

Secrets:
    API keys, secrets, signatures and request headers are never passed to
    these helpers. Signed requests are logged by method and path only.

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional

LOGGER_NAMESPACE = "binance_spot"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the library's root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Client started")
        2024-01-01 12:00:00 [INFO] binance_spot: Client started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s:")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    level = getattr(logging, log_level.upper(), logging.INFO)

    # Library logger gets its own handler so importing it does not
    # reconfigure the host application's root logger
    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(log_format, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    else:
        for handler in logger.handlers:
            handler.setFormatter(logging.Formatter(log_format, datefmt="%Y-%m-%d %H:%M:%S"))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level
except ImportError:
    # settings not importable yet (partial import during startup)
    log_level = "INFO"

logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Child of the library logger

    Example:
        # In exchanges/binance/stream.py:
        logger = get_logger(__name__)  # "binance_spot.exchanges.binance.stream"
    """
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(method: str, path: str, signed: bool = False) -> None:
    """
    Log an outgoing REST request.

    Only the method and path are logged. Query strings are left out because
    on signed requests they carry the signature.

    Example:
        >>> log_api_request("GET", "account", signed=True)
        [DEBUG] API Request: GET account (signed)
    """
    suffix = " (signed)" if signed else ""
    logger.debug(f"API Request: {method} {path}{suffix}")


def log_api_response(method: str, path: str, status: int, response_time: Optional[float] = None) -> None:
    """
    Log a REST response with status and timing information.

    Example:
        >>> log_api_response("GET", "klines", 200, 0.342)
        [DEBUG] API Response: GET klines | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time is not None else ""
    level = logging.DEBUG if 200 <= status < 300 else logging.WARNING
    logger.log(level, f"API Response: {method} {path} | Status: {status}{time_str}")


def log_websocket_event(
    event: str,
    stream: Optional[str] = None,
    details: Optional[str] = None,
    sink: Optional[logging.Logger] = None
) -> None:
    """
    Log a WebSocket event with consistent formatting.

    Args:
        event: Event type (e.g., "connected", "reconnecting", "closed", "error")
        stream: Stream name (e.g., "btcusdt@aggTrade")
        details: Additional details
        sink: Logger to write to (defaults to the library logger)

    Example:
        >>> log_websocket_event("connected", "btcusdt@trade")
        [INFO] WebSocket: connected | Stream: btcusdt@trade
    """
    stream_str = f" | Stream: {stream}" if stream else ""
    details_str = f" | {details}" if details else ""

    if event == "error":
        level = logging.ERROR
    elif event == "reconnecting":
        level = logging.WARNING
    else:
        level = logging.INFO
    (sink or logger).log(level, f"WebSocket: {event}{stream_str}{details_str}")
