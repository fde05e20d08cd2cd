"""
General Endpoints

Connectivity check, server clock and exchange metadata.

Usage:
    async with BinanceAPIClient() as transport:
        general = GeneralAPI(transport)
        await general.ping()
        info = await general.get_exchange_info(["BTCUSDT"])
"""

from typing import Sequence

from core.schemas import ExchangeInfo, ServerTime
from exchanges.binance.api_client import BinanceAPIClient, encode_symbols
from exchanges.binance.endpoints import ENDPOINTS


class GeneralAPI:
    """Public endpoints that do not depend on a market"""

    def __init__(self, client: BinanceAPIClient):
        self.client = client

    async def ping(self) -> None:
        """Test connectivity to the REST API. Raises on any failure."""
        await self.client.request("GET", ENDPOINTS["ping"])

    async def get_time(self) -> ServerTime:
        """Current server time (ServerTime.server_time, epoch milliseconds)"""
        return await self.client.request("GET", ENDPOINTS["time"], response_type=ServerTime)

    async def get_exchange_info(self, symbols: Sequence[str]) -> ExchangeInfo:
        """
        Trading rules and symbol metadata.

        Args:
            symbols: Symbols to describe (e.g., ["BTCUSDT", "ETHUSDT"])

        Returns:
            ExchangeInfo with one SymbolInfo per requested symbol
        """
        return await self.client.request(
            "GET",
            ENDPOINTS["exchange_info"],
            {"symbols": encode_symbols(symbols)},
            response_type=ExchangeInfo,
        )
