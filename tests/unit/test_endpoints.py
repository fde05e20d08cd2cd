"""
Unit Tests for the REST Endpoint Families

These tests verify, against a scripted transport, that each endpoint family:
- Hits the right path with the right method
- Encodes parameters the way Binance expects (symbol arrays, enums, MINI)
- Signs trading and account calls and adds timestamp / recvWindow
- Rejects incomplete order lookups before any I/O
- Pages through historical klines correctly

Run with:
    pytest tests/unit/test_endpoints.py -v
"""

import json
from decimal import Decimal
from urllib.parse import parse_qsl, urlsplit

import pytest
import pytest_asyncio

from core.config import settings
from core.enums import CancelRestriction, KlineInterval, OrderSide, WindowSize
from core.exceptions import MissingParameterError
from core.orders import MarketOrder
from exchanges.binance import BinanceClient
from exchanges.binance.account import AccountAPI
from exchanges.binance.api_client import BinanceAPIClient
from exchanges.binance.endpoints import API_KEY_HEADER, BINANCE_TESTNET_BASE_URL, BINANCE_TESTNET_WS_URL
from exchanges.binance.general import GeneralAPI
from exchanges.binance.market import MAX_KLINES_LIMIT, MarketAPI
from exchanges.binance.request import Credentials
from exchanges.binance.trading import TradingAPI

MINUTE = 60_000
START = 1_700_000_000_000

ORDER_RESPONSE = {
    "symbol": "BTCUSDT",
    "orderId": 28,
    "orderListId": -1,
    "clientOrderId": "6gCrw2kRUAF9CvJDGP16IP",
    "transactTime": 1507725176595,
    "price": "0.00000000",
    "origQty": "10.00000000",
    "executedQty": "10.00000000",
    "origQuoteOrderQty": "0.000000",
    "cummulativeQuoteQty": "10.00000000",
    "status": "FILLED",
    "timeInForce": "GTC",
    "type": "MARKET",
    "side": "SELL",
    "workingTime": 1507725176595,
    "selfTradePreventionMode": "NONE",
}


class ScriptedExecute:
    """Stands in for BinanceAPIClient._execute: records requests, replays responses"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def __call__(self, request):
        self.requests.append(request)
        status, body = self.responses.pop(0)
        return status, json.dumps(body)

    def query(self, index: int = 0) -> dict:
        return dict(parse_qsl(urlsplit(self.requests[index].url).query))

    def path(self, index: int = 0) -> str:
        return urlsplit(self.requests[index].url).path


def make_kline(open_time: int) -> list:
    return [open_time, "1.0", "1.5", "0.5", "1.2", "10.0", open_time + MINUTE - 1, "12.0", 5, "4.0", "4.8", "0"]


def ticker_mini(symbol: str) -> dict:
    return {
        "symbol": symbol,
        "openPrice": "1.0",
        "highPrice": "2.0",
        "lowPrice": "0.5",
        "lastPrice": "1.5",
        "volume": "100",
        "quoteVolume": "150",
        "openTime": START,
        "closeTime": START + MINUTE,
        "firstId": 1,
        "lastId": 2,
        "count": 2,
    }


# ============================================
# Fixtures
# ============================================

@pytest_asyncio.fixture
async def transport():
    async with BinanceAPIClient(
        base_url=BINANCE_TESTNET_BASE_URL,
        credentials=Credentials(api_key="test_api_key", secret="test_secret"),
        recv_window=5000,
    ) as client:
        yield client


def script(transport, monkeypatch, *responses) -> ScriptedExecute:
    execute = ScriptedExecute(*responses)
    monkeypatch.setattr(transport, "_execute", execute)
    return execute


# ============================================
# Tests for General Endpoints
# ============================================

class TestGeneral:
    @pytest.mark.asyncio
    async def test_ping(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, {}))

        assert await GeneralAPI(transport).ping() is None
        assert execute.path() == "/api/v3/ping"

    @pytest.mark.asyncio
    async def test_get_time(self, transport, monkeypatch):
        script(transport, monkeypatch, (200, {"serverTime": 1499827319559}))

        server_time = await GeneralAPI(transport).get_time()
        assert server_time.server_time == 1499827319559

    @pytest.mark.asyncio
    async def test_exchange_info_symbols_as_json_array(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, {
            "timezone": "UTC",
            "serverTime": 1565246363776,
            "rateLimits": [],
            "exchangeFilters": [],
            "symbols": [],
        }))

        info = await GeneralAPI(transport).get_exchange_info(["BTCUSDT", "ETHUSDT"])

        assert info.timezone == "UTC"
        assert execute.query() == {"symbols": '["BTCUSDT","ETHUSDT"]'}


# ============================================
# Tests for Market Endpoints
# ============================================

class TestMarket:
    @pytest.mark.asyncio
    async def test_public_calls_unsigned(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, {"lastUpdateId": 1, "bids": [], "asks": []}))

        await MarketAPI(transport).get_depth("BTCUSDT", limit=5)

        request = execute.requests[0]
        assert execute.path() == "/api/v3/depth"
        assert execute.query() == {"symbol": "BTCUSDT", "limit": "5"}
        assert API_KEY_HEADER not in request.headers

    @pytest.mark.asyncio
    async def test_klines_params(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, [make_kline(START)]))

        klines = await MarketAPI(transport).get_klines("BTCUSDT", KlineInterval.ONE_MONTH, limit=1, timezone="+08:00")

        assert klines[0].number_of_trades == 5
        assert execute.query() == {"symbol": "BTCUSDT", "interval": "1M", "limit": "1", "timezone": "+08:00"}

    @pytest.mark.asyncio
    async def test_ui_klines_path(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, []))

        await MarketAPI(transport).get_ui_klines("BTCUSDT", KlineInterval.ONE_SECOND)
        assert execute.path() == "/api/v3/uiKlines"

    @pytest.mark.asyncio
    async def test_mini_ticker_variants(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, [ticker_mini("BTCUSDT")]), (200, [ticker_mini("BTCUSDT")]))
        market = MarketAPI(transport)

        day = await market.get_ticker_trading_day_mini(["BTCUSDT"])
        rolling = await market.get_rolling_window_price_change_mini(["BTCUSDT"], WindowSize.SEVEN_DAYS)

        assert day[0].last_price == Decimal("1.5")
        assert rolling[0].symbol == "BTCUSDT"
        assert execute.path(0) == "/api/v3/ticker/tradingDay"
        assert execute.query(0) == {"symbols": '["BTCUSDT"]', "type": "MINI"}
        assert execute.path(1) == "/api/v3/ticker"
        assert execute.query(1) == {"symbols": '["BTCUSDT"]', "windowSize": "7d", "type": "MINI"}

    @pytest.mark.asyncio
    async def test_ticker_price(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, [
            {"symbol": "BTCUSDT", "price": "65000.01"},
            {"symbol": "ETHUSDT", "price": "3500.50"},
        ]))

        prices = await MarketAPI(transport).get_ticker_price(["BTCUSDT", "ETHUSDT"])

        assert [p.symbol for p in prices] == ["BTCUSDT", "ETHUSDT"]
        assert prices[0].price == Decimal("65000.01")
        assert execute.path() == "/api/v3/ticker/price"


class TestHistoricalKlines:
    """Tests for get_historical_klines pagination"""

    @pytest.mark.asyncio
    async def test_pages_until_short_page(self, transport, monkeypatch):
        first_page = [make_kline(START + i * MINUTE) for i in range(MAX_KLINES_LIMIT)]
        second_page = [make_kline(START + (MAX_KLINES_LIMIT + i) * MINUTE) for i in range(3)]
        end_time = START + 5000 * MINUTE
        execute = script(transport, monkeypatch, (200, first_page), (200, second_page))

        klines = await MarketAPI(transport).get_historical_klines("BTCUSDT", KlineInterval.ONE_MINUTE, START, end_time)

        assert len(klines) == MAX_KLINES_LIMIT + 3
        assert len(execute.requests) == 2
        assert execute.query(0)["startTime"] == str(START)
        assert execute.query(0)["limit"] == str(MAX_KLINES_LIMIT)
        assert execute.query(1)["startTime"] == str(START + (MAX_KLINES_LIMIT - 1) * MINUTE + 1)
        assert execute.query(1)["endTime"] == str(end_time)

    @pytest.mark.asyncio
    async def test_klines_at_or_after_end_dropped(self, transport, monkeypatch):
        page = [make_kline(START + i * MINUTE) for i in range(5)]
        script(transport, monkeypatch, (200, page))

        klines = await MarketAPI(transport).get_historical_klines(
            "BTCUSDT", KlineInterval.ONE_MINUTE, START, START + 3 * MINUTE
        )

        assert [k.to_array()[0] for k in klines] == [START, START + MINUTE, START + 2 * MINUTE]

    @pytest.mark.asyncio
    async def test_empty_range(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, []))

        assert await MarketAPI(transport).get_historical_klines("BTCUSDT", KlineInterval.ONE_DAY, START, START) == []
        assert len(execute.requests) == 1


# ============================================
# Tests for Trading Endpoints
# ============================================

class TestTrading:
    @pytest.mark.asyncio
    async def test_create_order_signed_post(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, ORDER_RESPONSE))
        order = MarketOrder(
            symbol="BTCUSDT",
            side=OrderSide.SELL,
            quantity=Decimal("10"),
            timestamp=1704110400000,
        )

        result = await TradingAPI(transport).create_order(order)

        request = execute.requests[0]
        query = urlsplit(request.url).query
        assert request.method == "POST"
        assert query.startswith("type=MARKET&symbol=BTCUSDT&side=SELL")
        assert query.count("timestamp=") == 1
        assert "timestamp=1704110400000" in query
        assert "recvWindow=5000" in query
        assert query.rsplit("&", 1)[1].startswith("signature=")
        assert request.headers[API_KEY_HEADER] == "test_api_key"
        assert result.order_id == 28

    @pytest.mark.asyncio
    async def test_get_order_by_client_id(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, ORDER_RESPONSE))

        await TradingAPI(transport).get_order("BTCUSDT", orig_client_order_id="myOrder1", recv_window=1000)

        query = execute.query()
        assert execute.requests[0].method == "GET"
        assert query["origClientOrderId"] == "myOrder1"
        assert query["recvWindow"] == "1000"
        assert "orderId" not in query
        assert "signature" in query

    @pytest.mark.asyncio
    async def test_get_order_requires_reference(self, transport, monkeypatch):
        execute = script(transport, monkeypatch)

        with pytest.raises(MissingParameterError):
            await TradingAPI(transport).get_order("BTCUSDT")

        assert execute.requests == []

    @pytest.mark.asyncio
    async def test_cancel_order_requires_reference(self, transport, monkeypatch):
        execute = script(transport, monkeypatch)

        with pytest.raises(MissingParameterError):
            await TradingAPI(transport).cancel_order("BTCUSDT", new_client_order_id="cancel-1")

        assert execute.requests == []

    @pytest.mark.asyncio
    async def test_cancel_order(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, ORDER_RESPONSE))

        await TradingAPI(transport).cancel_order(
            "BTCUSDT", order_id=28, cancel_restrictions=CancelRestriction.ONLY_NEW
        )

        assert execute.requests[0].method == "DELETE"
        assert execute.path() == "/api/v3/order"
        assert execute.query()["cancelRestrictions"] == "ONLY_NEW"
        assert execute.query()["orderId"] == "28"

    @pytest.mark.asyncio
    async def test_open_orders_all_symbols(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, [ORDER_RESPONSE]))

        orders = await TradingAPI(transport).get_open_orders()

        assert len(orders) == 1
        assert "symbol" not in execute.query()
        assert execute.path() == "/api/v3/openOrders"

    @pytest.mark.asyncio
    async def test_all_orders_time_range(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, []))

        await TradingAPI(transport).get_orders("BTCUSDT", start_time=START, end_time=START + MINUTE, limit=10)

        query = execute.query()
        assert execute.path() == "/api/v3/allOrders"
        assert query["startTime"] == str(START)
        assert query["endTime"] == str(START + MINUTE)
        assert query["limit"] == "10"

    @pytest.mark.asyncio
    async def test_cancel_open_orders(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, [ORDER_RESPONSE]))

        await TradingAPI(transport).cancel_open_orders("BTCUSDT")

        assert execute.requests[0].method == "DELETE"
        assert execute.path() == "/api/v3/openOrders"


# ============================================
# Tests for Account Endpoints
# ============================================

class TestAccount:
    @pytest.mark.asyncio
    async def test_get_account_params(self, transport, monkeypatch):
        execute = script(transport, monkeypatch, (200, {
            "makerCommission": 15,
            "takerCommission": 15,
            "buyerCommission": 0,
            "sellerCommission": 0,
            "commissionRates": {"maker": "0.0015", "taker": "0.0015", "buyer": "0", "seller": "0"},
            "canTrade": True,
            "canWithdraw": True,
            "canDeposit": True,
            "brokered": False,
            "requireSelfTradePrevention": False,
            "preventSor": False,
            "updateTime": 123456789,
            "accountType": "SPOT",
            "balances": [],
            "permissions": ["SPOT"],
            "uid": 354937868,
        }))

        account = await AccountAPI(transport).get_account(omit_zero_balances=True)

        query = execute.query()
        assert account.account_type == "SPOT"
        assert query["omitZeroBalances"] == "true"
        assert query["recvWindow"] == "5000"
        assert "timestamp" in query
        assert list(query)[-1] == "signature"


# ============================================
# Tests for BinanceClient
# ============================================

class TestBinanceClient:
    def test_testnet_urls(self):
        client = BinanceClient(testnet=True)

        assert client.rest.base_url == BINANCE_TESTNET_BASE_URL
        assert client.websocket.base_url == BINANCE_TESTNET_WS_URL

    def test_families_share_transport(self):
        client = BinanceClient()

        assert client.general.client is client.rest
        assert client.market.client is client.rest
        assert client.trading.client is client.rest
        assert client.account.client is client.rest

    def test_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "binance_testnet", True)
        monkeypatch.setattr(settings, "recv_window", 7000)

        client = BinanceClient.from_settings()

        assert client.testnet is True
        assert client.rest.base_url == BINANCE_TESTNET_BASE_URL
        assert client.rest.recv_window == 7000

    @pytest.mark.asyncio
    async def test_session_shared_and_closed(self):
        client = BinanceClient()

        async with client:
            assert client.rest.session is client.session
            assert client.websocket.session is client.session

        assert client.session is None
