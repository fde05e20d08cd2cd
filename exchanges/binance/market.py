"""
Market Data Endpoints

Order book, trades, klines, average price and ticker statistics. All of these
are public: no signature and no API key header.

Times are epoch milliseconds, as Binance expects them on the wire.

Usage:
    async with BinanceAPIClient() as transport:
        market = MarketAPI(transport)
        klines = await market.get_klines("BTCUSDT", KlineInterval.ONE_HOUR, limit=100)
        prices = await market.get_ticker_price(["BTCUSDT", "ETHUSDT"])
"""

from typing import List, Optional, Sequence

from core.enums import KlineInterval, WindowSize
from core.logging import get_logger
from core.schemas import (
    AveragePrice,
    CompressedTrade,
    Kline,
    OrderBook,
    Ticker,
    Ticker24,
    Ticker24Mini,
    TickerBook,
    TickerMini,
    TickerPrice,
    Trade,
)
from core.utils.time import to_millis
from exchanges.binance.api_client import BinanceAPIClient, encode_symbols
from exchanges.binance.endpoints import ENDPOINTS

# Largest page /klines will return
MAX_KLINES_LIMIT = 1000

MINI = "MINI"


class MarketAPI:
    """
    Public market data endpoints

    Example:
        >>> depth = await market.get_depth("BTCUSDT", limit=5)
        >>> print(depth.bids[0].price, depth.asks[0].price)
    """

    def __init__(self, client: BinanceAPIClient):
        self.client = client
        self.logger = get_logger(__name__)

    # ============================================
    # Order Book and Trades
    # ============================================

    async def get_depth(self, symbol: str, limit: Optional[int] = None) -> OrderBook:
        """
        Order book snapshot.

        Binance Endpoint:
            GET /api/v3/depth

        Response Format:
            {
              "lastUpdateId": 1027024,
              "bids": [["4.00000000", "431.00000000"]],
              "asks": [["4.00000200", "12.00000000"]]
            }
        """
        params = {"symbol": symbol, "limit": limit}
        return await self.client.request("GET", ENDPOINTS["depth"], params, response_type=OrderBook)

    async def get_recent_trades(self, symbol: str, limit: Optional[int] = None) -> List[Trade]:
        params = {"symbol": symbol, "limit": limit}
        return await self.client.request("GET", ENDPOINTS["trades"], params, response_type=List[Trade])

    async def get_historical_trades(
        self,
        symbol: str,
        limit: Optional[int] = None,
        from_id: Optional[int] = None,
    ) -> List[Trade]:
        """
        Older trades, starting at `from_id` (most recent when omitted).

        Binance Endpoint:
            GET /api/v3/historicalTrades
        """
        params = {"symbol": symbol, "limit": limit, "fromId": from_id}
        return await self.client.request("GET", ENDPOINTS["historical_trades"], params, response_type=List[Trade])

    async def get_compressed_trades(
        self,
        symbol: str,
        limit: Optional[int] = None,
        from_id: Optional[int] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[CompressedTrade]:
        """
        Aggregate trades: fills at the same price from the same taker order
        within 100ms are merged into one entry.

        Binance Endpoint:
            GET /api/v3/aggTrades
        """
        params = {
            "symbol": symbol,
            "limit": limit,
            "fromId": from_id,
            "startTime": start_time,
            "endTime": end_time,
        }
        return await self.client.request("GET", ENDPOINTS["agg_trades"], params, response_type=List[CompressedTrade])

    # ============================================
    # Klines
    # ============================================

    async def get_klines(
        self,
        symbol: str,
        interval: KlineInterval,
        limit: Optional[int] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        timezone: Optional[str] = None,
    ) -> List[Kline]:
        """
        Fetch candlestick data.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")
            interval: Candle width
            limit: Number of candles (default 500, max 1000)
            start_time: Optional start time in milliseconds since epoch
            end_time: Optional end time in milliseconds since epoch
            timezone: Offset used to interpret intervals (e.g., "+08:00"), default UTC

        Returns:
            List of Kline objects sorted by open time (oldest first)

        Binance Endpoint:
            GET /api/v3/klines

        Example:
            >>> klines = await market.get_klines("BTCUSDT", KlineInterval.ONE_HOUR, limit=100)
            >>> print(klines[-1].close_price)
        """
        return await self._klines(ENDPOINTS["klines"], symbol, interval, limit, start_time, end_time, timezone)

    async def get_ui_klines(
        self,
        symbol: str,
        interval: KlineInterval,
        limit: Optional[int] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        timezone: Optional[str] = None,
    ) -> List[Kline]:
        """Same shape as get_klines, tuned by Binance for chart display"""
        return await self._klines(ENDPOINTS["ui_klines"], symbol, interval, limit, start_time, end_time, timezone)

    async def _klines(self, path, symbol, interval, limit, start_time, end_time, timezone) -> List[Kline]:
        params = {
            "symbol": symbol,
            "interval": interval,
            "limit": limit,
            "startTime": start_time,
            "endTime": end_time,
            "timezone": timezone,
        }
        return await self.client.request("GET", path, params, response_type=List[Kline])

    async def get_historical_klines(
        self,
        symbol: str,
        interval: KlineInterval,
        start_time: int,
        end_time: int,
        timezone: Optional[str] = None,
    ) -> List[Kline]:
        """
        Fetch every kline opening in [start_time, end_time).

        Pages through /klines MAX_KLINES_LIMIT candles at a time. Each page
        starts 1ms after the previous page's last open time. Paging stops on
        an empty page, a page that is not full, or once the last open time
        reaches end_time.

        Args:
            symbol: Trading pair
            interval: Candle width
            start_time: Range start in milliseconds since epoch
            end_time: Range end in milliseconds since epoch (exclusive)
            timezone: Optional interval timezone

        Returns:
            Klines in open-time order, without duplicates
        """
        all_klines: List[Kline] = []
        current_start = start_time

        while True:
            klines = await self.get_klines(
                symbol,
                interval,
                limit=MAX_KLINES_LIMIT,
                start_time=current_start,
                end_time=end_time,
                timezone=timezone,
            )
            if not klines:
                break

            last_open_time = to_millis(klines[-1].open_time)

            kept = []
            for kline in klines:
                if to_millis(kline.open_time) >= end_time:
                    break
                kept.append(kline)
            all_klines.extend(kept)

            if len(kept) < MAX_KLINES_LIMIT or last_open_time >= end_time:
                break

            current_start = last_open_time + 1

        self.logger.info(f"Fetched {len(all_klines)} historical klines for {symbol} {interval}")
        return all_klines

    # ============================================
    # Price Statistics
    # ============================================

    async def get_average_price(self, symbol: str) -> AveragePrice:
        return await self.client.request("GET", ENDPOINTS["avg_price"], {"symbol": symbol}, response_type=AveragePrice)

    async def get_ticker_24hr(self, symbols: Sequence[str]) -> List[Ticker24]:
        """
        Rolling 24 hour statistics (FULL response).

        Binance Endpoint:
            GET /api/v3/ticker/24hr?symbols=["BTCUSDT","ETHUSDT"]
        """
        params = {"symbols": encode_symbols(symbols)}
        return await self.client.request("GET", ENDPOINTS["ticker_24hr"], params, response_type=List[Ticker24])

    async def get_ticker_24hr_mini(self, symbols: Sequence[str]) -> List[Ticker24Mini]:
        params = {"symbols": encode_symbols(symbols), "type": MINI}
        return await self.client.request("GET", ENDPOINTS["ticker_24hr"], params, response_type=List[Ticker24Mini])

    async def get_ticker_trading_day(self, symbols: Sequence[str]) -> List[Ticker]:
        """Statistics for the current trading day (FULL response)"""
        params = {"symbols": encode_symbols(symbols)}
        return await self.client.request("GET", ENDPOINTS["ticker_trading_day"], params, response_type=List[Ticker])

    async def get_ticker_trading_day_mini(self, symbols: Sequence[str]) -> List[TickerMini]:
        params = {"symbols": encode_symbols(symbols), "type": MINI}
        return await self.client.request("GET", ENDPOINTS["ticker_trading_day"], params, response_type=List[TickerMini])

    async def get_ticker_price(self, symbols: Sequence[str]) -> List[TickerPrice]:
        """Latest price per symbol"""
        params = {"symbols": encode_symbols(symbols)}
        return await self.client.request("GET", ENDPOINTS["ticker_price"], params, response_type=List[TickerPrice])

    async def get_ticker_book(self, symbols: Sequence[str]) -> List[TickerBook]:
        """Best bid/ask price and quantity per symbol"""
        params = {"symbols": encode_symbols(symbols)}
        return await self.client.request("GET", ENDPOINTS["ticker_book"], params, response_type=List[TickerBook])

    async def get_rolling_window_price_change(self, symbols: Sequence[str], window_size: WindowSize) -> List[Ticker]:
        """
        Price change statistics over a custom rolling window.

        Binance Endpoint:
            GET /api/v3/ticker?symbols=[...]&windowSize=1d
        """
        params = {"symbols": encode_symbols(symbols), "windowSize": window_size}
        return await self.client.request("GET", ENDPOINTS["ticker_rolling"], params, response_type=List[Ticker])

    async def get_rolling_window_price_change_mini(
        self,
        symbols: Sequence[str],
        window_size: WindowSize,
    ) -> List[TickerMini]:
        params = {"symbols": encode_symbols(symbols), "windowSize": window_size, "type": MINI}
        return await self.client.request("GET", ENDPOINTS["ticker_rolling"], params, response_type=List[TickerMini])
