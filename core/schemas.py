"""
Typed Records

This module defines the Pydantic models that REST responses and stream
frames are decoded into.

Key Principle:
    Binance speaks camelCase JSON with prices and quantities as decimal
    strings. Every model here maps those keys to snake_case attributes and
    keeps prices as `Decimal` so no precision is lost on the way in.

Models:
    - ApiErrorPayload: {code, msg} body of every non-2xx response
    - ServerTime, ExchangeInfo, SymbolInfo, Sor: general endpoints
    - OrderBook, PriceLevel, Trade, CompressedTrade, Kline, AveragePrice: market data
    - Ticker24, Ticker24Mini, Ticker, TickerMini, TickerPrice, TickerBook: tickers
    - Account, CommissionRates, Balance, Order: account and trading
    - AggTradeEvent, TradeEvent, KlineEvent, MiniTickerEvent, TickerEvent: streams

Positional Records:
    A few records arrive as JSON arrays instead of objects (klines, order
    book levels). Those models bind fixed positions to named fields in an
    explicit decode step that checks the array length and each element's
    JSON type first, and rejects the record on any mismatch.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from core.enums import (
    KlineInterval,
    OrderSide,
    OrderStatus,
    OrderType,
    SelfTradePreventionMode,
    TimeInForce,
)
from core.utils.time import from_millis, to_millis


def _millis_to_datetime(value: Any) -> Any:
    """Interpret integer wire timestamps as epoch milliseconds"""
    if isinstance(value, bool):
        raise ValueError("timestamp must be an integer, not a boolean")
    if isinstance(value, int):
        return from_millis(value)
    return value


MillisDatetime = Annotated[datetime, BeforeValidator(_millis_to_datetime)]


# ============================================
# Base Models
# ============================================

class BinanceModel(BaseModel):
    """
    Base model for all keyed Binance records.

    Field names are snake_case in Python and camelCase on the wire. Unknown
    keys are ignored so that new fields added by the exchange do not break
    decoding.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True
    )


class StreamEvent(BaseModel):
    """Base model for WebSocket payloads, which use single-letter keys"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    event_type: str = Field(..., alias="e")
    event_time: int = Field(..., alias="E", description="Event time in milliseconds")
    symbol: str = Field(..., alias="s")


def bind_positional(
    record: str,
    values: Any,
    layout: Sequence[Tuple[Optional[str], Optional[Type]]],
) -> Dict[str, Any]:
    """
    Bind a positional JSON array to named fields.

    Args:
        record: Record name used in error messages
        values: Decoded JSON value (must be a list)
        layout: One (field_name, json_type) pair per position. A None field
            name marks a position that is present on the wire but not kept.
            A None type skips the type check for that position.

    Returns:
        Mapping of field name to raw wire value

    Raises:
        ValueError: If the value is not an array, has the wrong length, or an
            element has the wrong JSON type
    """
    if not isinstance(values, (list, tuple)):
        raise ValueError(f"{record} must be encoded as an array, got {type(values).__name__}")

    if len(values) != len(layout):
        raise ValueError(f"{record} expects {len(layout)} elements, got {len(values)}")

    bound = {}
    for index, ((name, kind), value) in enumerate(zip(layout, values)):
        if kind is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError(f"{record}[{index}] ({name}) must be an integer, got {value!r}")
        if kind is str and not isinstance(value, str):
            raise ValueError(f"{record}[{index}] ({name}) must be a string, got {value!r}")
        if name is not None:
            bound[name] = value
    return bound


def _decimal_token(value: Decimal) -> str:
    # format(..., "f") keeps "0.00000000" instead of "0E-8"
    return format(value, "f")


# ============================================
# General
# ============================================

class ApiErrorPayload(BaseModel):
    """Structured error body returned with every non-2xx response"""

    code: int
    msg: str


class ServerTime(BinanceModel):
    server_time: int


class Sor(BinanceModel):
    base_asset: str
    symbols: List[str]


class SymbolInfo(BinanceModel):
    """Trading rules for one symbol, as listed by /exchangeInfo"""

    symbol: str
    status: str
    base_asset: str
    base_asset_precision: int
    quote_asset: str
    quote_precision: int
    quote_asset_precision: int
    base_commission_precision: int
    quote_commission_precision: int
    order_types: List[str]
    iceberg_allowed: bool
    oco_allowed: bool
    oto_allowed: bool = False
    quote_order_qty_market_allowed: bool
    allow_trailing_stop: bool
    cancel_replace_allowed: bool
    allow_amend: Optional[bool] = None
    is_spot_trading_allowed: bool
    is_margin_trading_allowed: bool
    filters: List[Dict[str, Any]]
    permissions: List[str] = Field(default_factory=list)
    permission_sets: List[List[str]] = Field(default_factory=list)
    default_self_trade_prevention_mode: str
    allowed_self_trade_prevention_modes: List[str]


class ExchangeInfo(BinanceModel):
    timezone: str
    server_time: int
    rate_limits: List[Dict[str, Any]]
    exchange_filters: List[Any]
    symbols: List[SymbolInfo]
    sors: Optional[List[Sor]] = None


# ============================================
# Order Book
# ============================================

class PriceLevel(BaseModel):
    """
    One side of an order book level.

    Wire format: ["4.00000000", "431.00000000"] -> price, quantity
    """

    model_config = ConfigDict(frozen=True)

    price: Decimal
    quantity: Decimal

    @model_validator(mode="before")
    @classmethod
    def _decode_array(cls, data: Any) -> Any:
        if not isinstance(data, (list, tuple)):
            return data
        return bind_positional("PriceLevel", data, (("price", str), ("quantity", str)))

    @classmethod
    def from_array(cls, values: Sequence[Any]) -> "PriceLevel":
        return cls.model_validate(values)

    def to_array(self) -> List[str]:
        return [_decimal_token(self.price), _decimal_token(self.quantity)]


class OrderBook(BinanceModel):
    last_update_id: int
    bids: List[PriceLevel]
    asks: List[PriceLevel]


# ============================================
# Trades
# ============================================

class Trade(BinanceModel):
    """Single trade from /trades or /historicalTrades"""

    id: int
    price: Decimal
    qty: Decimal
    quote_qty: Decimal
    time: MillisDatetime
    is_buyer_maker: bool
    is_best_match: bool


class CompressedTrade(BaseModel):
    """Aggregate trade from /aggTrades (single-letter keys on the wire)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: int = Field(..., alias="a")
    price: Decimal = Field(..., alias="p")
    qty: Decimal = Field(..., alias="q")
    first_trade_id: int = Field(..., alias="f")
    last_trade_id: int = Field(..., alias="l")
    timestamp: MillisDatetime = Field(..., alias="T")
    is_buyer_maker: bool = Field(..., alias="m")
    is_best_match: bool = Field(..., alias="M")


# ============================================
# Klines (positional)
# ============================================

KLINE_LAYOUT: Tuple[Tuple[Optional[str], Optional[Type]], ...] = (
    ("open_time", int),
    ("open_price", str),
    ("high_price", str),
    ("low_price", str),
    ("close_price", str),
    ("volume", str),
    ("close_time", int),
    ("quote_asset_volume", str),
    ("number_of_trades", int),
    ("taker_buy_base_asset_volume", str),
    ("taker_buy_quote_asset_volume", str),
    (None, None),  # unused field, always "0"
)


class Kline(BaseModel):
    """
    Candlestick summary for one trading interval.

    Wire Format (12-element array):
        [
          1499040000000,      // 0  Open time
          "0.01634790",       // 1  Open
          "0.80000000",       // 2  High
          "0.01575800",       // 3  Low
          "0.01577100",       // 4  Close
          "148976.11427815",  // 5  Volume
          1499644799999,      // 6  Close time
          "2434.19055334",    // 7  Quote asset volume
          308,                // 8  Number of trades
          "1756.87402397",    // 9  Taker buy base asset volume
          "28.46694368",      // 10 Taker buy quote asset volume
          "0"                 // 11 Unused
        ]

    Decoding rejects arrays of any other length and elements of the wrong
    JSON type (e.g., a price sent as a number instead of a string).
    """

    model_config = ConfigDict(frozen=True)

    open_time: datetime
    open_price: Decimal
    high_price: Decimal
    low_price: Decimal
    close_price: Decimal
    volume: Decimal
    close_time: datetime
    quote_asset_volume: Decimal
    number_of_trades: int = Field(..., ge=0)
    taker_buy_base_asset_volume: Decimal
    taker_buy_quote_asset_volume: Decimal

    @model_validator(mode="before")
    @classmethod
    def _decode_array(cls, data: Any) -> Any:
        if not isinstance(data, (list, tuple)):
            return data
        bound = bind_positional("Kline", data, KLINE_LAYOUT)
        bound["open_time"] = from_millis(bound["open_time"])
        bound["close_time"] = from_millis(bound["close_time"])
        return bound

    @classmethod
    def from_array(cls, values: Sequence[Any]) -> "Kline":
        """Decode one positional kline array"""
        return cls.model_validate(values)

    def to_array(self) -> List[Any]:
        """
        Re-derive the documented positional values (indices 0..10).

        Example:
            >>> Kline.from_array(raw).to_array() == raw[:11]
            True
        """
        return [
            to_millis(self.open_time),
            _decimal_token(self.open_price),
            _decimal_token(self.high_price),
            _decimal_token(self.low_price),
            _decimal_token(self.close_price),
            _decimal_token(self.volume),
            to_millis(self.close_time),
            _decimal_token(self.quote_asset_volume),
            self.number_of_trades,
            _decimal_token(self.taker_buy_base_asset_volume),
            _decimal_token(self.taker_buy_quote_asset_volume),
        ]


class AveragePrice(BinanceModel):
    mins: int
    price: Decimal
    close_time: int


# ============================================
# Tickers
# ============================================

class TickerMini(BinanceModel):
    """MINI variant shared by /ticker/24hr, /ticker/tradingDay and /ticker"""

    symbol: str
    open_price: Decimal
    high_price: Decimal
    low_price: Decimal
    last_price: Decimal
    volume: Decimal
    quote_volume: Decimal
    open_time: int
    close_time: int
    first_id: int
    last_id: int
    count: int


Ticker24Mini = TickerMini


class Ticker(TickerMini):
    """FULL variant of /ticker/tradingDay and the rolling-window /ticker"""

    price_change: Decimal
    price_change_percent: Decimal
    weighted_avg_price: Decimal


class Ticker24(Ticker):
    """FULL variant of /ticker/24hr"""

    prev_close_price: Decimal
    last_qty: Decimal
    bid_price: Decimal
    bid_qty: Decimal
    ask_price: Decimal
    ask_qty: Decimal


class TickerPrice(BinanceModel):
    symbol: str
    price: Decimal


class TickerBook(BinanceModel):
    symbol: str
    bid_price: Decimal
    bid_qty: Decimal
    ask_price: Decimal
    ask_qty: Decimal


# ============================================
# Account & Orders
# ============================================

class CommissionRates(BinanceModel):
    maker: Decimal
    taker: Decimal
    buyer: Decimal
    seller: Decimal


class Balance(BinanceModel):
    asset: str
    free: Decimal
    locked: Decimal


class Account(BinanceModel):
    maker_commission: int
    taker_commission: int
    buyer_commission: int
    seller_commission: int
    commission_rates: CommissionRates
    can_trade: bool
    can_withdraw: bool
    can_deposit: bool
    brokered: bool
    require_self_trade_prevention: bool
    prevent_sor: bool
    update_time: int
    account_type: str
    balances: List[Balance]
    permissions: List[str]
    uid: int


class Order(BinanceModel):
    """Order as returned by order placement, query and cancellation"""

    symbol: str
    order_id: int
    order_list_id: int
    client_order_id: str
    transact_time: Optional[int] = None
    price: Decimal
    orig_qty: Decimal
    executed_qty: Decimal
    orig_quote_order_qty: Decimal
    cummulative_quote_qty: Decimal
    status: OrderStatus
    time_in_force: TimeInForce
    order_type: OrderType = Field(..., alias="type")
    side: OrderSide
    working_time: Optional[int] = None
    self_trade_prevention_mode: SelfTradePreventionMode


# ============================================
# Stream Events
# ============================================

class AggTradeEvent(StreamEvent):
    """Payload of <symbol>@aggTrade"""

    aggregate_trade_id: int = Field(..., alias="a")
    price: Decimal = Field(..., alias="p")
    quantity: Decimal = Field(..., alias="q")
    first_trade_id: int = Field(..., alias="f")
    last_trade_id: int = Field(..., alias="l")
    trade_time: int = Field(..., alias="T")
    is_buyer_market_maker: bool = Field(..., alias="m")


class TradeEvent(StreamEvent):
    """Payload of <symbol>@trade"""

    trade_id: int = Field(..., alias="t")
    price: Decimal = Field(..., alias="p")
    quantity: Decimal = Field(..., alias="q")
    trade_time: int = Field(..., alias="T")
    is_buyer_market_maker: bool = Field(..., alias="m")


class KlineData(BaseModel):
    """The "k" object inside a kline stream event"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    start_time: int = Field(..., alias="t")
    close_time: int = Field(..., alias="T")
    symbol: str = Field(..., alias="s")
    interval: KlineInterval = Field(..., alias="i")
    first_trade_id: int = Field(..., alias="f")
    last_trade_id: int = Field(..., alias="L")
    open_price: Decimal = Field(..., alias="o")
    close_price: Decimal = Field(..., alias="c")
    high_price: Decimal = Field(..., alias="h")
    low_price: Decimal = Field(..., alias="l")
    base_volume: Decimal = Field(..., alias="v")
    number_of_trades: int = Field(..., alias="n")
    is_closed: bool = Field(..., alias="x")
    quote_volume: Decimal = Field(..., alias="q")
    taker_buy_base_volume: Decimal = Field(..., alias="V")
    taker_buy_quote_volume: Decimal = Field(..., alias="Q")


class KlineEvent(StreamEvent):
    """Payload of <symbol>@kline_<interval>"""

    kline: KlineData = Field(..., alias="k")


class MiniTickerEvent(StreamEvent):
    """Payload of <symbol>@miniTicker"""

    close_price: Decimal = Field(..., alias="c")
    open_price: Decimal = Field(..., alias="o")
    high_price: Decimal = Field(..., alias="h")
    low_price: Decimal = Field(..., alias="l")
    base_volume: Decimal = Field(..., alias="v")
    quote_volume: Decimal = Field(..., alias="q")


class TickerEvent(StreamEvent):
    """Payload of <symbol>@ticker (rolling 24h statistics)"""

    price_change: Decimal = Field(..., alias="p")
    price_change_percent: Decimal = Field(..., alias="P")
    weighted_avg_price: Decimal = Field(..., alias="w")
    first_trade_price: Decimal = Field(..., alias="x")
    last_price: Decimal = Field(..., alias="c")
    last_quantity: Decimal = Field(..., alias="Q")
    best_bid_price: Decimal = Field(..., alias="b")
    best_bid_quantity: Decimal = Field(..., alias="B")
    best_ask_price: Decimal = Field(..., alias="a")
    best_ask_quantity: Decimal = Field(..., alias="A")
    open_price: Decimal = Field(..., alias="o")
    high_price: Decimal = Field(..., alias="h")
    low_price: Decimal = Field(..., alias="l")
    base_volume: Decimal = Field(..., alias="v")
    quote_volume: Decimal = Field(..., alias="q")
    open_time: int = Field(..., alias="O")
    close_time: int = Field(..., alias="C")
    first_trade_id: int = Field(..., alias="F")
    last_trade_id: int = Field(..., alias="L")
    total_trades: int = Field(..., alias="n")
