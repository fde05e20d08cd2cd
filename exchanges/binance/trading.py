"""
Trading Endpoints (SIGNED)

Place, query and cancel spot orders. Every call carries a `timestamp` and an
optional `recvWindow` and is signed with the client's credentials.

Order Lookup:
    get_order and cancel_order identify the order by `order_id` or by
    `orig_client_order_id`. Passing neither raises MissingParameterError
    before anything is sent.

Usage:
    trading = TradingAPI(transport)
    order = await trading.create_order(
        MarketOrder(symbol="BTCUSDT", side=OrderSide.BUY, quote_order_qty=Decimal("50"))
    )
    await trading.cancel_order("BTCUSDT", order_id=order.order_id)
"""

from datetime import datetime
from typing import List, Optional, Union

from core.enums import CancelRestriction
from core.exceptions import MissingParameterError
from core.logging import get_logger
from core.orders import OrderBase
from core.schemas import Order
from core.utils.time import to_millis
from exchanges.binance.api_client import BinanceAPIClient
from exchanges.binance.endpoints import ENDPOINTS

TimeArg = Union[int, datetime, None]


def _millis(value: TimeArg) -> Optional[int]:
    if isinstance(value, datetime):
        return to_millis(value)
    return value


def _require_order_reference(order_id: Optional[int], orig_client_order_id: Optional[str]) -> None:
    if order_id is None and orig_client_order_id is None:
        raise MissingParameterError("Either order_id or orig_client_order_id must be provided")


class TradingAPI:
    """
    Order placement, lookup and cancellation

    Attributes:
        client: Shared REST transport (must hold credentials)
        logger: Logger instance
    """

    def __init__(self, client: BinanceAPIClient):
        self.client = client
        self.logger = get_logger(__name__)

    async def create_order(self, order: OrderBase) -> Order:
        """
        Place a new order.

        The order's own timestamp (set when the order object was built) is
        the one that gets signed.

        Args:
            order: Any OrderRequest variant (LimitOrder, MarketOrder, ...)

        Returns:
            Order with the exchange-assigned order_id

        Binance Endpoint:
            POST /api/v3/order
        """
        params = self.client.signed_params(dict(order.to_params()), recv_window=order.recv_window)
        self.logger.info(f"Placing {order.type} {order.side} order on {order.symbol}")
        return await self.client.request("POST", ENDPOINTS["order"], params, response_type=Order, signed=True)

    async def get_order(
        self,
        symbol: str,
        order_id: Optional[int] = None,
        orig_client_order_id: Optional[str] = None,
        recv_window: Optional[int] = None,
    ) -> Order:
        """
        Check an order's status.

        Raises:
            MissingParameterError: If neither order_id nor orig_client_order_id is given
        """
        _require_order_reference(order_id, orig_client_order_id)
        params = self.client.signed_params(
            {"symbol": symbol, "orderId": order_id, "origClientOrderId": orig_client_order_id},
            recv_window=recv_window,
        )
        return await self.client.request("GET", ENDPOINTS["order"], params, response_type=Order, signed=True)

    async def get_open_orders(self, symbol: Optional[str] = None, recv_window: Optional[int] = None) -> List[Order]:
        """Open orders for one symbol, or for every symbol when omitted"""
        params = self.client.signed_params({"symbol": symbol}, recv_window=recv_window)
        return await self.client.request("GET", ENDPOINTS["open_orders"], params, response_type=List[Order], signed=True)

    async def get_orders(
        self,
        symbol: str,
        order_id: Optional[int] = None,
        start_time: TimeArg = None,
        end_time: TimeArg = None,
        limit: Optional[int] = None,
        recv_window: Optional[int] = None,
    ) -> List[Order]:
        """
        All orders for a symbol: open, cancelled or filled.

        Args:
            symbol: Trading pair
            order_id: Return orders with id >= order_id
            start_time: Range start (datetime or epoch milliseconds)
            end_time: Range end (datetime or epoch milliseconds)
            limit: Page size (default 500, max 1000)
            recv_window: Per-call recvWindow

        Binance Endpoint:
            GET /api/v3/allOrders
        """
        params = self.client.signed_params(
            {
                "symbol": symbol,
                "orderId": order_id,
                "startTime": _millis(start_time),
                "endTime": _millis(end_time),
                "limit": limit,
            },
            recv_window=recv_window,
        )
        return await self.client.request("GET", ENDPOINTS["all_orders"], params, response_type=List[Order], signed=True)

    async def cancel_order(
        self,
        symbol: str,
        order_id: Optional[int] = None,
        orig_client_order_id: Optional[str] = None,
        new_client_order_id: Optional[str] = None,
        cancel_restrictions: Optional[CancelRestriction] = None,
        recv_window: Optional[int] = None,
    ) -> Order:
        """
        Cancel an active order.

        Args:
            symbol: Trading pair
            order_id: Exchange order id
            orig_client_order_id: Client order id used when the order was placed
            new_client_order_id: Id to give the cancellation itself
            cancel_restrictions: Only cancel if the order is in this state
            recv_window: Per-call recvWindow

        Raises:
            MissingParameterError: If neither order_id nor orig_client_order_id is given

        Binance Endpoint:
            DELETE /api/v3/order
        """
        _require_order_reference(order_id, orig_client_order_id)
        params = self.client.signed_params(
            {
                "symbol": symbol,
                "orderId": order_id,
                "origClientOrderId": orig_client_order_id,
                "newClientOrderId": new_client_order_id,
                "cancelRestrictions": cancel_restrictions,
            },
            recv_window=recv_window,
        )
        self.logger.info(f"Cancelling order on {symbol}")
        return await self.client.request("DELETE", ENDPOINTS["order"], params, response_type=Order, signed=True)

    async def cancel_open_orders(self, symbol: str, recv_window: Optional[int] = None) -> List[Order]:
        """Cancel every open order on a symbol"""
        params = self.client.signed_params({"symbol": symbol}, recv_window=recv_window)
        self.logger.info(f"Cancelling all open orders on {symbol}")
        return await self.client.request("DELETE", ENDPOINTS["open_orders"], params, response_type=List[Order], signed=True)
