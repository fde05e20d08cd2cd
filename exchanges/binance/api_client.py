"""
Binance REST Transport

This module provides the async HTTP transport shared by every endpoint family.
It handles:
- Building unsigned requests for public endpoints
- Building signed requests (timestamp, recvWindow, HMAC signature, API key header)
- Mapping failures onto the client's exception taxonomy
- Decoding JSON bodies into the typed records in core.schemas

API Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/rest-api

Error Mapping:
    - Non-2xx with a {code, msg} body  -> BinanceAPIError (status + payload)
    - Non-2xx with any other body      -> DecodeError (status + raw body)
    - Connection / TLS / timeout       -> TransportError
    - Body not matching the record     -> DecodeError

    Nothing is retried here. Every error propagates to the caller.

Usage:
    async with BinanceAPIClient() as client:
        data = await client.request("GET", "klines", {"symbol": "BTCUSDT", "interval": "1h"})
"""

import asyncio
import json
import time
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

import aiohttp
from pydantic import TypeAdapter, ValidationError
from yarl import URL

from core.config import settings
from core.exceptions import (
    BinanceAPIError,
    ConfigurationError,
    DecodeError,
    TransportError,
)
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import ApiErrorPayload
from core.utils.time import current_utc_timestamp
from exchanges.binance.request import (
    Credentials,
    Params,
    PreparedRequest,
    build_request,
    build_signed_request,
)

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(response_type: Any) -> TypeAdapter:
    return TypeAdapter(response_type)


def encode_symbols(symbols: Iterable[str]) -> str:
    """
    Encode a symbol list the way Binance expects it in a query parameter.

    Example:
        >>> encode_symbols(["BTCUSDT", "ETHUSDT"])
        '["BTCUSDT","ETHUSDT"]'
    """
    return json.dumps(list(symbols), separators=(",", ":"))


class BinanceAPIClient:
    """
    Async HTTP transport for the Binance Spot REST API

    The client either owns its aiohttp ClientSession (created on enter,
    closed on exit) or borrows one passed in by the caller, which then
    stays responsible for closing it.

    Attributes:
        base_url: REST base URL with trailing slash
        credentials: API key/secret pair (needed only for signed endpoints)
        recv_window: Default recvWindow for signed requests (milliseconds)
        session: aiohttp ClientSession for HTTP requests
        logger: Logger instance for debugging

    Example:
        >>> async with BinanceAPIClient(credentials=Credentials(key, secret)) as client:
        ...     account = await client.request("GET", "account", signed=True)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        credentials: Optional[Credentials] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
        recv_window: Optional[int] = None,
    ):
        """
        Initialize the REST transport.

        Args:
            base_url: REST base URL (defaults to settings.rest_base_url)
            credentials: API credentials for signed endpoints
            session: Shared ClientSession to borrow instead of creating one
            timeout: Total timeout per request in seconds (defaults to settings.request_timeout)
            recv_window: Default recvWindow for signed requests (defaults to settings.recv_window)
        """
        self.base_url = base_url or settings.rest_base_url
        self.credentials = credentials
        self.recv_window = recv_window if recv_window is not None else settings.recv_window
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.request_timeout)
        self.session = session
        self._owns_session = session is None
        self.logger = get_logger(__name__)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
            self.logger.debug("BinanceAPIClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Close the session if this client created it"""
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
            self.logger.debug("BinanceAPIClient session closed")

    # ============================================
    # Parameter Helpers
    # ============================================

    def signed_params(self, params: Optional[Dict[str, Any]] = None, recv_window: Optional[int] = None) -> Dict[str, Any]:
        """
        Add the fields every SIGNED endpoint needs.

        `recvWindow` falls back to the client default and is omitted when
        neither is set. `timestamp` is the current time in milliseconds unless
        the caller already supplied one.

        Args:
            params: Endpoint parameters, in the order they should be sent
            recv_window: Per-call recvWindow override

        Returns:
            New dict: params, then recvWindow, then timestamp
        """
        result = dict(params or {})
        window = recv_window if recv_window is not None else self.recv_window
        if window is not None:
            result["recvWindow"] = window
        if "timestamp" not in result:
            result["timestamp"] = current_utc_timestamp(milliseconds=True)
        return result

    # ============================================
    # HTTP Request Handler
    # ============================================

    def prepare(
        self,
        method: str,
        path: str,
        params: Params = None,
        signed: bool = False,
        credentials: Optional[Credentials] = None,
    ) -> PreparedRequest:
        """
        Build the outgoing request without sending it.

        Raises:
            ConfigurationError: If a signed request is built without credentials,
                or the secret cannot be used as an HMAC key
            InvalidHeaderError: If the API key is not a valid header value
        """
        if not signed:
            return build_request(method, self.base_url, path, params)

        credentials = credentials or self.credentials
        if not credentials:
            raise ConfigurationError(f"API credentials are required for signed endpoint '{path}'")

        return build_signed_request(
            method, self.base_url, path, params, credentials.api_key, credentials.secret
        )

    async def _execute(self, request: PreparedRequest) -> Tuple[int, str]:
        """
        Send a prepared request and return (status, body text).

        The URL is passed to aiohttp as already encoded so the query that was
        signed is exactly the query that goes on the wire.

        Raises:
            TransportError: On connection failure or timeout
        """
        if self.session is None:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        try:
            async with self.session.request(
                request.method,
                URL(request.url, encoded=True),
                headers=request.headers,
                timeout=self.timeout,
            ) as resp:
                return resp.status, await resp.text()

        except asyncio.TimeoutError as e:
            raise TransportError(f"Timeout on {request.method} {URL(request.url, encoded=True).path}") from e

        except aiohttp.ClientError as e:
            raise TransportError(f"Request failed: {e}") from e

    async def _request(
        self,
        method: str,
        path: str,
        params: Params = None,
        signed: bool = False,
        credentials: Optional[Credentials] = None,
    ) -> Any:
        """
        Make a request and return the decoded JSON body.

        Args:
            method: HTTP verb
            path: Endpoint path relative to base_url (e.g., "ticker/price")
            params: Query parameters (sent in the query string for every verb)
            signed: Sign the request and attach the API key header
            credentials: Override the client's credentials for this call

        Returns:
            Decoded JSON (dict or list)

        Raises:
            BinanceAPIError: Non-2xx response with a structured error body
            DecodeError: Non-2xx response with an unrecognised body, or invalid JSON
            TransportError: Connection failure or timeout
        """
        request = self.prepare(method, path, params, signed=signed, credentials=credentials)

        log_api_request(request.method, path, signed=signed)
        started = time.monotonic()
        status, body = await self._execute(request)
        log_api_response(request.method, path, status, time.monotonic() - started)

        if not 200 <= status < 300:
            try:
                error = ApiErrorPayload.model_validate_json(body)
            except ValidationError as e:
                raise DecodeError(f"HTTP {status} on {path} with unrecognised error body", details=body, status=status) from e
            self.logger.error(f"{request.method} {path} failed: HTTP {status} code={error.code} msg={error.msg}")
            raise BinanceAPIError(status, error)

        try:
            return json.loads(body)
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {path}: {e}", details=body, status=status) from e

    async def request(
        self,
        method: str,
        path: str,
        params: Params = None,
        response_type: Optional[Type[T]] = None,
        signed: bool = False,
    ) -> Any:
        """
        Make a request and validate the body against `response_type`.

        `response_type` can be a model or a typing construct such as
        List[Kline]. When omitted the decoded JSON is returned unchanged.

        Raises:
            DecodeError: If the body does not match `response_type`
        """
        data = await self._request(method, path, params, signed=signed)
        if response_type is None:
            return data
        return self.decode(response_type, data, path)

    def decode(self, response_type: Any, data: Any, path: str = "") -> Any:
        try:
            return _adapter(response_type).validate_python(data)
        except ValidationError as e:
            raise DecodeError(f"Unexpected response shape from {path}: {e.error_count()} error(s)", details=str(e)) from e

