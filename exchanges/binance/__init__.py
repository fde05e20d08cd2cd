"""
Binance Spot Client

Entry point of the library. BinanceClient groups the endpoint families over
one shared aiohttp session:

    client.general   - ping, server time, exchange info
    client.market    - order book, trades, klines, tickers (public)
    client.trading   - place / query / cancel orders (SIGNED)
    client.account   - balances and commissions (SIGNED)
    client.websocket - live market streams

API Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs

Environments:
    Production: https://api.binance.com/api/v3/, wss://stream.binance.com/ws/
    Testnet:    https://testnet.binance.vision/api/v3/, wss://testnet.binance.vision/ws/

Structure:
    exchanges/binance/
    ├── __init__.py          # This file (BinanceClient)
    ├── endpoints.py         # Base URLs, paths, stream names
    ├── request.py           # Canonical query and HMAC signing
    ├── api_client.py        # REST transport with aiohttp
    ├── general.py / market.py / trading.py / account.py
    ├── stream.py            # Reconnecting stream supervisor
    └── ws_client.py         # Typed market streams

Usage:
    async with BinanceClient(Credentials(api_key, secret), testnet=True) as client:
        await client.general.ping()
        klines = await client.market.get_klines("BTCUSDT", KlineInterval.ONE_HOUR)
        account = await client.account.get_account(omit_zero_balances=True)
"""

from typing import Optional

import aiohttp

from core.config import settings
from core.logging import logger
from exchanges.binance.account import AccountAPI
from exchanges.binance.api_client import BinanceAPIClient
from exchanges.binance.endpoints import get_base_url, get_ws_base_url
from exchanges.binance.general import GeneralAPI
from exchanges.binance.market import MarketAPI
from exchanges.binance.request import Credentials
from exchanges.binance.stream import EventChannel, StreamSupervisor, Subscription
from exchanges.binance.trading import TradingAPI
from exchanges.binance.ws_client import BinanceWebSocketClient


class BinanceClient:
    """
    Binance Spot client

    Attributes:
        testnet: True when talking to testnet.binance.vision
        rest: Shared REST transport
        general, market, trading, account: REST endpoint families
        websocket: Stream client

    Example:
        >>> client = BinanceClient(settings.credentials, testnet=settings.binance_testnet)
        >>> await client.initialize()
        >>> server_time = await client.general.get_time()
        >>> await client.shutdown()

    Notes:
        - Credentials are only needed for trading and account calls
        - Pass `session` to reuse an existing aiohttp session; it is then not
          closed by shutdown()
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        testnet: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
        recv_window: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the client. No network connections are made here.

        Args:
            credentials: API key/secret pair (None for public data only)
            testnet: Route REST and streams to the spot testnet
            session: Shared aiohttp ClientSession
            recv_window: Default recvWindow for signed requests (milliseconds)
            timeout: REST request timeout in seconds
        """
        self.testnet = testnet
        self.session = session
        self._owns_session = session is None

        self.rest = BinanceAPIClient(
            base_url=get_base_url(testnet),
            credentials=credentials,
            session=session,
            timeout=timeout,
            recv_window=recv_window,
        )
        self.general = GeneralAPI(self.rest)
        self.market = MarketAPI(self.rest)
        self.trading = TradingAPI(self.rest)
        self.account = AccountAPI(self.rest)
        self.websocket = BinanceWebSocketClient(base_url=get_ws_base_url(testnet), session=session)

        logger.debug(f"BinanceClient created (base_url={self.rest.base_url})")

    @classmethod
    def from_settings(cls) -> "BinanceClient":
        """Build a client from the .env / environment configuration"""
        return cls(
            credentials=settings.credentials if settings.credentials else None,
            testnet=settings.binance_testnet,
            recv_window=settings.recv_window,
            timeout=settings.request_timeout,
        )

    async def initialize(self) -> None:
        """Open the shared HTTP session (if none was supplied)"""
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=self.rest.timeout)
            self._owns_session = True
        self.rest.session = self.session
        self.websocket.session = self.session
        logger.info(f"Binance client initialized ({'testnet' if self.testnet else 'production'})")

    async def shutdown(self) -> None:
        """Close the shared HTTP session if this client opened it"""
        if self.session is not None and self._owns_session:
            await self.session.close()
            logger.info("Binance client shut down")
        self.session = None
        self.rest.session = None
        self.websocket.session = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()


__all__ = [
    "BinanceClient",
    "BinanceAPIClient",
    "BinanceWebSocketClient",
    "Credentials",
    "EventChannel",
    "StreamSupervisor",
    "Subscription",
]
