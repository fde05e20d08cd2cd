"""Binance Spot endpoint constants"""

API_VERSION = "v3"

# Base URLs (trailing slash so relative paths join underneath them)
BINANCE_MAINNET_BASE_URL = f"https://api.binance.com/api/{API_VERSION}/"
BINANCE_TESTNET_BASE_URL = f"https://testnet.binance.vision/api/{API_VERSION}/"
BINANCE_MAINNET_WS_URL = "wss://stream.binance.com/ws/"
BINANCE_TESTNET_WS_URL = "wss://testnet.binance.vision/ws/"

API_KEY_HEADER = "X-MBX-APIKEY"

# REST API paths, relative to the base URL
ENDPOINTS = {
    # General
    "ping": "ping",
    "time": "time",
    "exchange_info": "exchangeInfo",

    # Market data
    "depth": "depth",
    "trades": "trades",
    "historical_trades": "historicalTrades",
    "agg_trades": "aggTrades",
    "klines": "klines",
    "ui_klines": "uiKlines",
    "avg_price": "avgPrice",
    "ticker_24hr": "ticker/24hr",
    "ticker_trading_day": "ticker/tradingDay",
    "ticker_price": "ticker/price",
    "ticker_book": "ticker/bookTicker",
    "ticker_rolling": "ticker",

    # Trading
    "order": "order",
    "open_orders": "openOrders",
    "all_orders": "allOrders",

    # Account
    "account": "account",
}

# WebSocket stream names (suffix after "<symbol>@")
WS_STREAMS = {
    "agg_trade": "aggTrade",
    "trade": "trade",
    "kline": "kline_{interval}",
    "mini_ticker": "miniTicker",
    "ticker": "ticker",
}


def get_base_url(testnet: bool) -> str:
    return BINANCE_TESTNET_BASE_URL if testnet else BINANCE_MAINNET_BASE_URL


def get_ws_base_url(testnet: bool) -> str:
    return BINANCE_TESTNET_WS_URL if testnet else BINANCE_MAINNET_WS_URL
