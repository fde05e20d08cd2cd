"""
Configuration Management Module

This module handles loading, validating, and providing access to client configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Selects production or testnet endpoints from a single flag
- Exposes the API credentials as an immutable pair
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    print(settings.rest_base_url)    # https://api.binance.com/api/v3/
    print(settings.ws_base_url)      # wss://stream.binance.com/ws/
"""

from typing import Optional, TYPE_CHECKING
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

if TYPE_CHECKING:
    from exchanges.binance.request import Credentials


class Settings(BaseSettings):
    """
    Client Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        binance_api_key: API key (only needed for account and trading endpoints)
        binance_secret_key: Secret key used to sign authenticated requests
        binance_testnet: Use testnet.binance.vision instead of production
        environment: Current environment (development, production)
        log_level: Logging level
        request_timeout: Total timeout applied to every REST call (seconds)
        recv_window: Default recvWindow for signed requests (milliseconds)
        ws_reconnect_delay: Fixed delay between WebSocket reconnect attempts
    """

    # ============================================
    # Binance API Configuration
    # ============================================

    binance_api_key: str = Field(
        default="",
        description="Binance API key (optional for public endpoints)"
    )

    binance_secret_key: str = Field(
        default="",
        description="Binance secret key (optional for public endpoints)"
    )

    binance_testnet: bool = Field(
        default=False,
        description="Route REST and WebSocket traffic to the spot testnet"
    )

    # ============================================
    # Application Configuration
    # ============================================

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # Transport
    # ============================================

    request_timeout: int = Field(
        default=30,
        description="HTTP request timeout in seconds"
    )

    recv_window: Optional[int] = Field(
        default=None,
        description="Default recvWindow for signed requests in milliseconds (max 60000)"
    )

    ws_reconnect_delay: float = Field(
        default=5.0,
        description="Delay between WebSocket reconnection attempts (seconds)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Derived Values
    # ============================================

    @property
    def rest_base_url(self) -> str:
        """REST base URL for the selected environment, with trailing slash"""
        from exchanges.binance.endpoints import get_base_url
        return get_base_url(self.binance_testnet)

    @property
    def ws_base_url(self) -> str:
        """WebSocket base URL for the selected environment, with trailing slash"""
        from exchanges.binance.endpoints import get_ws_base_url
        return get_ws_base_url(self.binance_testnet)

    @property
    def credentials(self) -> "Credentials":
        from exchanges.binance.request import Credentials
        return Credentials(api_key=self.binance_api_key, secret=self.binance_secret_key)


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Optional[Settings] = None) -> None:
    """
    Validate settings before creating a client.

    Args:
        config: Settings to check (defaults to the global instance)

    Raises:
        ValueError: If a setting is out of range
    """
    # logging.py imports config.py, so import here
    from core.logging import logger

    config = config or settings

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    if config.request_timeout <= 0:
        raise ValueError(f"REQUEST_TIMEOUT must be positive, got {config.request_timeout}")

    if config.ws_reconnect_delay < 0:
        raise ValueError(f"WS_RECONNECT_DELAY cannot be negative, got {config.ws_reconnect_delay}")

    if config.recv_window is not None and not (0 <= config.recv_window <= 60000):
        raise ValueError(f"RECV_WINDOW must be between 0 and 60000 ms, got {config.recv_window}")

    logger.info("Configuration validated successfully")
    logger.info(f"Binance REST: {config.rest_base_url}")
    logger.info(f"Binance WebSocket: {config.ws_base_url}")
    logger.info(f"Credentials: {'configured' if config.credentials else 'not configured'}")
