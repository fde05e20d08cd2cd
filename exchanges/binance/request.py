"""
Request Construction and Signing

Binance authenticates SIGNED endpoints (trading, account) with an HMAC-SHA256
signature over the exact query string that is sent, plus the API key in the
X-MBX-APIKEY header.

Pipeline:
    1. encode_params() serializes parameters into a canonical query string
       (insertion order kept, standard form-encoding)
    2. build_request() attaches that query to the endpoint URL
    3. sign_request() signs the request's full query string and appends
       `signature` as the LAST field, then sets the API key header

The signature is never computed over a query that already holds a
`signature` field, and nothing in here touches the network.

API Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/rest-api/endpoint-security-type

Usage:
    request = build_signed_request(
        "GET", "https://api.binance.com/api/v3/", "account",
        {"timestamp": 1704110400000}, api_key, secret,
    )
    # request.url == ".../account?timestamp=1704110400000&signature=..."
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union
from urllib.parse import urlencode, urljoin, urlsplit, urlunsplit

from core.exceptions import ConfigurationError, InvalidHeaderError
from exchanges.binance.endpoints import API_KEY_HEADER

SIGNATURE_FIELD = "signature"

Params = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


@dataclass(frozen=True)
class Credentials:
    """
    API key and secret pair.

    Immutable for the lifetime of a client and safe to share between tasks.
    Neither value appears in repr(), so a stray log line cannot leak them.
    """

    api_key: str = field(repr=False)
    secret: str = field(repr=False)

    def __bool__(self) -> bool:
        return bool(self.api_key and self.secret)


@dataclass(frozen=True)
class PreparedRequest:
    """Unsigned outgoing request: method and fully composed URL"""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def query(self) -> str:
        return urlsplit(self.url).query


@dataclass(frozen=True)
class SignedRequest(PreparedRequest):
    """
    Request carrying a signature and the API key header.

    The header dict is excluded from repr() because it holds the API key.
    """

    headers: Dict[str, str] = field(default_factory=dict, repr=False)
    signature: str = ""


# ============================================
# Canonical Query
# ============================================

def format_param_value(value: Any) -> str:
    """
    Render one parameter value the way Binance expects it.

    - bool -> "true" / "false"
    - Enum -> its wire value
    - Decimal -> plain notation (never scientific)
    - anything else -> str()
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def canonicalize_params(params: Params) -> List[Tuple[str, str]]:
    """
    Turn a mapping or sequence of pairs into ordered (name, value) strings.

    Order is preserved exactly as given. Parameters whose value is None are
    dropped.

    Raises:
        ValueError: If a caller tries to pass a `signature` field
    """
    if params is None:
        return []

    items = params.items() if isinstance(params, Mapping) else params

    pairs = []
    for name, value in items:
        if name == SIGNATURE_FIELD:
            raise ValueError("'signature' is reserved and added by the signer")
        if value is None:
            continue
        pairs.append((name, format_param_value(value)))
    return pairs


def encode_params(params: Params) -> str:
    """
    Serialize parameters into the canonical query string.

    Example:
        >>> encode_params({"symbol": "BTCUSDT", "side": "BUY"})
        'symbol=BTCUSDT&side=BUY'
        >>> encode_params({})
        ''
    """
    return urlencode(canonicalize_params(params))


def _append_query(url: str, query: str) -> str:
    """Append an encoded query fragment after any query the URL already has"""
    if not query:
        return url
    parts = urlsplit(url)
    combined = f"{parts.query}&{query}" if parts.query else query
    return urlunsplit((parts.scheme, parts.netloc, parts.path, combined, parts.fragment))


def build_request(method: str, base_url: str, path: str, params: Params = None) -> PreparedRequest:
    """
    Build an unsigned request for a public endpoint.

    Args:
        method: HTTP verb (GET, POST, DELETE)
        base_url: API base URL ending in "/" (e.g., "https://api.binance.com/api/v3/")
        path: Endpoint path relative to the base (e.g., "klines")
        params: Query parameters

    Returns:
        PreparedRequest with no API key header and no signature
    """
    url = _append_query(urljoin(base_url, path), encode_params(params))
    return PreparedRequest(method=method.upper(), url=url)


# ============================================
# Signing
# ============================================

def sign_query(query: str, secret: str) -> str:
    """
    HMAC-SHA256 of `query` keyed by `secret`, hex encoded.

    Pure function of its inputs: no clock, no randomness. HMAC accepts keys
    of any length.

    Args:
        query: Exact query string that will be sent (without `signature`)
        secret: API secret

    Returns:
        64-character lowercase hex digest

    Raises:
        ConfigurationError: If the secret cannot be turned into key bytes

    Example:
        >>> sign_query("test_query", "test_secret")
        '7540b9f8f77656ba870356a6f7d58e591857830316119d775828c98756814301'
    """
    try:
        key = secret.encode("utf-8")
    except (AttributeError, UnicodeEncodeError) as e:
        raise ConfigurationError("API secret cannot be used as an HMAC key") from e

    return hmac.new(key, query.encode("utf-8"), hashlib.sha256).hexdigest()


def validate_header_value(value: str) -> str:
    """
    Check that `value` can be sent as an HTTP header value.

    Visible ASCII, space and horizontal tab are accepted.

    Raises:
        InvalidHeaderError: On control characters, DEL or non-ASCII input
    """
    for ch in value:
        code = ord(ch)
        if ch != "\t" and not (0x20 <= code < 0x7F):
            raise InvalidHeaderError("API key contains characters not allowed in an HTTP header")
    return value


def sign_request(request: PreparedRequest, api_key: str, secret: str) -> SignedRequest:
    """
    Sign an already composed request.

    The signature covers the request's whole current query string, including
    anything added before this call, and is appended after every existing
    field.

    Args:
        request: Unsigned request
        api_key: API key, sent in the X-MBX-APIKEY header
        secret: API secret used as the HMAC key

    Returns:
        SignedRequest with `signature` as the final query field

    Raises:
        ConfigurationError: If the secret cannot be used as an HMAC key
        InvalidHeaderError: If the API key is not a valid header value
        ValueError: If the request is already signed
    """
    query = request.query
    if any(name == SIGNATURE_FIELD for name, _ in _split_query(query)):
        raise ValueError("Request already carries a signature")

    signature = sign_query(query, secret)
    url = _append_query(request.url, urlencode([(SIGNATURE_FIELD, signature)]))

    headers = dict(request.headers)
    headers[API_KEY_HEADER] = validate_header_value(api_key)

    return SignedRequest(method=request.method, url=url, headers=headers, signature=signature)


def build_signed_request(
    method: str,
    base_url: str,
    path: str,
    params: Params,
    api_key: str,
    secret: str,
) -> SignedRequest:
    """
    Build and sign a request for a SIGNED endpoint in one step.

    Steps, in order: canonical query, attach to URL, sign exactly that query,
    append `signature` last, set the API key header.
    """
    return sign_request(build_request(method, base_url, path, params), api_key, secret)


def _split_query(query: str) -> List[Tuple[str, str]]:
    pairs = []
    for chunk in query.split("&"):
        if not chunk:
            continue
        name, _, value = chunk.partition("=")
        pairs.append((name, value))
    return pairs
