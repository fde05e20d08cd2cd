"""
Binance WebSocket Client

This module exposes Binance Spot market streams as long-lived subscriptions
that push typed events into a consumer channel.

Supported Streams:
    - Aggregate Trades: {symbol}@aggTrade     -> AggTradeEvent
    - Trades: {symbol}@trade                  -> TradeEvent
    - Kline/Candlestick: {symbol}@kline_{i}   -> KlineEvent
    - Mini Ticker: {symbol}@miniTicker        -> MiniTickerEvent
    - Ticker: {symbol}@ticker                 -> TickerEvent

Each stream_* coroutine keeps its connection alive through the
StreamSupervisor (fixed back-off reconnects, pong replies, undecodable
frames dropped) and returns once the consumer closes its channel.

WebSocket Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/web-socket-streams

Usage:
    async with BinanceWebSocketClient() as ws:
        channel = EventChannel(maxsize=100)
        task = asyncio.create_task(ws.stream_kline("BTCUSDT", KlineInterval.ONE_MINUTE, channel))
        async for event in channel:
            print(event.kline.close_price)
"""

from typing import Callable, Optional

import aiohttp

from core.config import settings
from core.enums import KlineInterval
from core.exceptions import StreamSetupError
from core.logging import get_logger
from core.schemas import AggTradeEvent, KlineEvent, MiniTickerEvent, TickerEvent, TradeEvent
from exchanges.binance.endpoints import WS_STREAMS
from exchanges.binance.stream import (
    AiohttpConnector,
    ConnectionFactory,
    EventSink,
    StreamSupervisor,
    Subscription,
    json_decoder,
)


def stream_suffix(symbol: str, stream: str) -> str:
    """
    Stream name for a symbol. Binance requires lowercase symbols.

    Example:
        >>> stream_suffix("BTCUSDT", "aggTrade")
        'btcusdt@aggTrade'
    """
    return f"{symbol.lower()}@{stream}"


# ============================================
# Convenience Subscription Builders
# ============================================

def create_agg_trade_subscription(symbol: str, base_url: Optional[str] = None) -> Subscription[AggTradeEvent]:
    return Subscription(
        base_url or settings.ws_base_url,
        stream_suffix(symbol, WS_STREAMS["agg_trade"]),
        json_decoder(AggTradeEvent),
    )


def create_trade_subscription(symbol: str, base_url: Optional[str] = None) -> Subscription[TradeEvent]:
    return Subscription(
        base_url or settings.ws_base_url,
        stream_suffix(symbol, WS_STREAMS["trade"]),
        json_decoder(TradeEvent),
    )


def create_kline_subscription(
    symbol: str,
    interval: KlineInterval,
    base_url: Optional[str] = None,
) -> Subscription[KlineEvent]:
    """
    Subscription for kline/candlestick updates.

    Args:
        symbol: Trading pair (e.g., "BTCUSDT")
        interval: Kline interval; its token goes into the stream name

    Returns:
        Subscription for "<symbol>@kline_<interval>"

    Example:
        >>> create_kline_subscription("BTCUSDT", KlineInterval.ONE_MINUTE).stream_suffix
        'btcusdt@kline_1m'
    """
    interval = KlineInterval(interval)
    return Subscription(
        base_url or settings.ws_base_url,
        stream_suffix(symbol, WS_STREAMS["kline"].format(interval=interval.value)),
        json_decoder(KlineEvent),
    )


def create_mini_ticker_subscription(symbol: str, base_url: Optional[str] = None) -> Subscription[MiniTickerEvent]:
    return Subscription(
        base_url or settings.ws_base_url,
        stream_suffix(symbol, WS_STREAMS["mini_ticker"]),
        json_decoder(MiniTickerEvent),
    )


def create_ticker_subscription(symbol: str, base_url: Optional[str] = None) -> Subscription[TickerEvent]:
    return Subscription(
        base_url or settings.ws_base_url,
        stream_suffix(symbol, WS_STREAMS["ticker"]),
        json_decoder(TickerEvent),
    )


class BinanceWebSocketClient:
    """
    Async WebSocket client for Binance Spot market streams.

    Attributes:
        base_url: WebSocket base URL with trailing slash
        session: aiohttp ClientSession used to open sockets
        supervisor: StreamSupervisor that runs every subscription
        logger: Logger instance

    Example:
        >>> async with BinanceWebSocketClient(BINANCE_TESTNET_WS_URL) as ws:
        ...     await ws.stream_trades("BTCUSDT", channel)

    Notes:
        - Symbols are lowercased automatically
        - One socket per stream_* call; run several calls as separate tasks
        - A custom `connect` factory replaces aiohttp entirely (used in tests)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        connect: Optional[ConnectionFactory] = None,
        backoff: Optional[float] = None,
        sleep: Optional[Callable] = None,
    ):
        """
        Initialize WebSocket client.

        Args:
            base_url: WebSocket base URL (defaults to settings.ws_base_url)
            session: Shared ClientSession to borrow instead of creating one
            connect: Connection factory overriding the aiohttp connector
            backoff: Reconnect delay in seconds (defaults to settings.ws_reconnect_delay)
            sleep: Back-off sleep function (defaults to asyncio.sleep)
        """
        self.base_url = base_url or settings.ws_base_url
        self.session = session
        self._owns_session = False
        self.logger = get_logger(__name__)

        supervisor_kwargs = {
            "backoff": backoff if backoff is not None else settings.ws_reconnect_delay,
            "logger": self.logger,
        }
        if sleep is not None:
            supervisor_kwargs["sleep"] = sleep

        self.supervisor = StreamSupervisor(connect or self._connect, **supervisor_kwargs)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
            self.logger.debug("BinanceWebSocketClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
            self.logger.debug("BinanceWebSocketClient session closed")

    async def _connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        if self.session is None:
            raise StreamSetupError("WebSocket session not initialized. Use 'async with' statement.")
        return await AiohttpConnector(self.session)(url)

    # ============================================
    # Streams
    # ============================================

    async def stream_agg_trade(self, symbol: str, sink: EventSink[AggTradeEvent]) -> None:
        """Push aggregate trade events for `symbol` into `sink` until it closes"""
        await self.supervisor.stream(create_agg_trade_subscription(symbol, self.base_url), sink)

    async def stream_trades(self, symbol: str, sink: EventSink[TradeEvent]) -> None:
        """Push raw trade events for `symbol` into `sink` until it closes"""
        await self.supervisor.stream(create_trade_subscription(symbol, self.base_url), sink)

    async def stream_kline(self, symbol: str, interval: KlineInterval, sink: EventSink[KlineEvent]) -> None:
        """
        Push kline updates for `symbol` at `interval` into `sink` until it closes.

        Binance sends an update every ~2s (1s for the 1s interval); the final
        update of a candle has `kline.is_closed == True`.
        """
        await self.supervisor.stream(create_kline_subscription(symbol, interval, self.base_url), sink)

    async def stream_mini_ticker(self, symbol: str, sink: EventSink[MiniTickerEvent]) -> None:
        await self.supervisor.stream(create_mini_ticker_subscription(symbol, self.base_url), sink)

    async def stream_ticker(self, symbol: str, sink: EventSink[TickerEvent]) -> None:
        await self.supervisor.stream(create_ticker_subscription(symbol, self.base_url), sink)
