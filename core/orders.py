"""
Order Placement Requests

Each order type accepts a different set of fields, so a new order is modelled
as a tagged union discriminated by `type` instead of one model with many
mutually exclusive optional fields. Pydantic picks the variant from the tag and
validates the fields that variant requires.

Variants:
    - LimitOrder: time_in_force, quantity, price (+ iceberg_qty)
    - MarketOrder: exactly one of quantity / quote_order_qty
    - StopLossOrder / TakeProfitOrder: quantity + stop_price and/or trailing_delta
    - StopLossLimitOrder / TakeProfitLimitOrder: the limit fields + a trigger
    - LimitMakerOrder: quantity, price

Usage:
    order = LimitOrder(
        symbol="BTCUSDT",
        side=OrderSide.BUY,
        time_in_force=TimeInForce.GTC,
        quantity=Decimal("0.0001"),
        price=Decimal("80000"),
    )
    order.to_params()
    # [("type", "LIMIT"), ("symbol", "BTCUSDT"), ("side", "BUY"), ...]
"""

from decimal import Decimal
from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

from core.enums import OrderSide, SelfTradePreventionMode, TimeInForce
from core.utils.time import current_utc_timestamp

ORDER_RESULT_TYPE = "RESULT"


def _now_millis() -> int:
    return current_utc_timestamp(milliseconds=True)


class OrderBase(BaseModel):
    """Fields common to every order type"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    symbol: str
    side: OrderSide
    timestamp: int = Field(default_factory=_now_millis, description="Request time in milliseconds")
    new_client_order_id: Optional[str] = None
    strategy_id: Optional[int] = None
    strategy_type: Optional[int] = Field(default=None, ge=1000000)
    self_trade_prevention_mode: Optional[SelfTradePreventionMode] = None
    recv_window: Optional[int] = Field(default=None, ge=0, le=60000)
    new_order_resp_type: str = ORDER_RESULT_TYPE

    def to_params(self) -> List[Tuple[str, Any]]:
        """
        Query fields for POST /order, `type` first, unset fields omitted.

        Values stay Python objects (Decimal, enums); the request encoder
        renders them, so decimals never go out in scientific notation.

        Returns:
            Ordered list of (wire_name, value) pairs
        """
        data = self.model_dump(by_alias=True, exclude_none=True)
        order_type = data.pop("type")
        return [("type", order_type)] + list(data.items())


class TriggerOrderBase(OrderBase):
    """Stop-loss and take-profit orders fire on a stop price, a trailing delta, or both"""

    stop_price: Optional[Decimal] = Field(default=None, gt=0)
    trailing_delta: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _require_trigger(self):
        if self.stop_price is None and self.trailing_delta is None:
            raise ValueError("Either stop_price or trailing_delta must be provided")
        return self


class LimitOrder(OrderBase):
    type: Literal["LIMIT"] = "LIMIT"
    time_in_force: TimeInForce
    quantity: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., gt=0)
    iceberg_qty: Optional[Decimal] = Field(default=None, gt=0)


class MarketOrder(OrderBase):
    type: Literal["MARKET"] = "MARKET"
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    quote_order_qty: Optional[Decimal] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _require_one_quantity(self):
        if (self.quantity is None) == (self.quote_order_qty is None):
            raise ValueError("Exactly one of quantity or quote_order_qty must be provided")
        return self


class StopLossOrder(TriggerOrderBase):
    type: Literal["STOP_LOSS"] = "STOP_LOSS"
    quantity: Decimal = Field(..., gt=0)


class StopLossLimitOrder(TriggerOrderBase):
    type: Literal["STOP_LOSS_LIMIT"] = "STOP_LOSS_LIMIT"
    time_in_force: TimeInForce
    quantity: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., gt=0)
    iceberg_qty: Optional[Decimal] = Field(default=None, gt=0)


class TakeProfitOrder(TriggerOrderBase):
    type: Literal["TAKE_PROFIT"] = "TAKE_PROFIT"
    quantity: Decimal = Field(..., gt=0)


class TakeProfitLimitOrder(TriggerOrderBase):
    type: Literal["TAKE_PROFIT_LIMIT"] = "TAKE_PROFIT_LIMIT"
    time_in_force: TimeInForce
    quantity: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., gt=0)
    iceberg_qty: Optional[Decimal] = Field(default=None, gt=0)


class LimitMakerOrder(OrderBase):
    type: Literal["LIMIT_MAKER"] = "LIMIT_MAKER"
    quantity: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., gt=0)


OrderRequest = Annotated[
    Union[
        LimitOrder,
        MarketOrder,
        StopLossOrder,
        StopLossLimitOrder,
        TakeProfitOrder,
        TakeProfitLimitOrder,
        LimitMakerOrder,
    ],
    Field(discriminator="type"),
]

_order_request_adapter = TypeAdapter(OrderRequest)


def parse_order_request(data: Any) -> OrderBase:
    """
    Build the right order variant from a plain mapping.

    Example:
        >>> parse_order_request({"type": "MARKET", "symbol": "BTCUSDT",
        ...                      "side": "SELL", "quantity": "0.5"})
        MarketOrder(...)
    """
    return _order_request_adapter.validate_python(data)
