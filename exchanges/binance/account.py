"""Account Endpoints (SIGNED)"""

from typing import Optional

from core.schemas import Account
from exchanges.binance.api_client import BinanceAPIClient
from exchanges.binance.endpoints import ENDPOINTS


class AccountAPI:
    def __init__(self, client: BinanceAPIClient):
        self.client = client

    async def get_account(
        self,
        omit_zero_balances: Optional[bool] = None,
        recv_window: Optional[int] = None,
    ) -> Account:
        """
        Current account information: commissions, permissions and balances.

        Args:
            omit_zero_balances: Leave out assets with zero free and locked balance
            recv_window: Per-call recvWindow (falls back to the client default)

        Returns:
            Account

        Binance Endpoint:
            GET /api/v3/account
        """
        params = self.client.signed_params({"omitZeroBalances": omit_zero_balances}, recv_window=recv_window)
        return await self.client.request("GET", ENDPOINTS["account"], params, response_type=Account, signed=True)
