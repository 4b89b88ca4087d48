"""
Request Descriptors: Capability Contract for REST Calls

A RequestDescriptor describes one logical call: method, path, optional
query, optional headers, optional body, and how to decode the response.
Query, headers and body have empty defaults, so a concrete descriptor only
overrides what it needs.

Authentication is a decorator, not a subclass: AuthenticatedRequest wraps
(descriptor, credential, authenticator) and re-implements the same interface
by delegating to the descriptor and then adding the signed headers, query
or body the exchange expects.

Example:
    class GetTicker(RequestDescriptor[Ticker]):
        def __init__(self, product):
            self.product = product

        def method(self):
            return Method.GET

        def path(self):
            return f"/products/{self.product.symbol('-')}/ticker"

        def decode(self, response):
            return decode_json(response, Ticker)

    ticker = dispatcher.send(GetTicker(btc_usd))
    orders = dispatcher.send(adapter.authenticate(GetOrders()))
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from core.errors import DecodeError, ExchangeBusinessError
from core.schemas import Credential

T = TypeVar("T")

Headers = Dict[str, str]


class Method(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    CONNECT = "CONNECT"

    def __str__(self) -> str:
        return self.value


# ============================================
# Query & Payload
# ============================================

class Query:
    """
    Ordered query parameters.

    Order is preserved because several exchanges sign the encoded query
    string, and the exact string sent must be the one that was signed.
    Values are not percent-encoded; callers pass URL-safe values.

    Example:
        >>> query = Query([("symbol", "BTCUSDT")])
        >>> query.append("limit", 100)
        >>> query.encode()
        'symbol=BTCUSDT&limit=100'
    """

    def __init__(self, params: Optional[Iterable[Tuple[str, Any]]] = None):
        self.params: List[Tuple[str, str]] = [(str(k), str(v)) for k, v in (params or [])]

    def append(self, name: str, value: Any) -> "Query":
        self.params.append((name, str(value)))
        return self

    def copy(self) -> "Query":
        return Query(self.params)

    def encode(self) -> str:
        return "&".join(f"{name}={value}" for name, value in self.params)

    def __bool__(self) -> bool:
        return bool(self.params)

    def __len__(self) -> int:
        return len(self.params)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Query):
            return NotImplemented
        return self.params == other.params

    def __repr__(self) -> str:
        return f"Query({self.params!r})"


@dataclass(frozen=True)
class TextPayload:
    """Textual body; the exact text is what gets signed and sent."""

    text: str
    content_type: str = "application/json"

    def as_bytes(self) -> bytes:
        return self.text.encode("utf-8")

    def as_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class BinaryPayload:
    data: bytes
    content_type: str = "application/octet-stream"

    def as_bytes(self) -> bytes:
        return self.data

    def as_text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


Payload = Union[TextPayload, BinaryPayload]


def json_payload(data: Any) -> TextPayload:
    """Serialize data into a compact JSON TextPayload."""
    return TextPayload(json.dumps(data, separators=(",", ":"), default=str))


# ============================================
# Response
# ============================================

@dataclass
class HttpResponse:
    """
    A received HTTP response.

    Attributes:
        status: HTTP status code
        headers: Response headers (lower-cased names)
        body: Raw body bytes
    """

    status: int
    body: bytes = b""
    headers: Headers = field(default_factory=dict)

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """
        Parse the body as JSON.

        Raises:
            DecodeError: If the body is not valid JSON
        """
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise DecodeError(f"Response body is not JSON: {e}", body=self.text()) from e

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def decode_json(response: HttpResponse, model: Any) -> Any:
    """
    Validate a JSON body against a pydantic model or type.

    Args:
        response: Received response
        model: Anything pydantic's TypeAdapter accepts (model, List[model], ...)

    Raises:
        DecodeError: If the body is not JSON or does not match the schema
    """
    data = response.json()
    try:
        return TypeAdapter(model).validate_python(data)
    except ValidationError as e:
        raise DecodeError(f"Unexpected response schema: {e.error_count()} error(s)", body=response.text()) from e


def decode_with_envelope(
    response: HttpResponse,
    extract_error: Callable[[Any], Optional[ExchangeBusinessError]],
    convert: Callable[[Any], T],
) -> T:
    """
    Three-way classification of a response body.

    1. Parse JSON (failure -> DecodeError)
    2. extract_error(data) returns an ExchangeBusinessError when the envelope
       is an error envelope; it is raised whatever the HTTP status was
    3. Otherwise convert(data) builds the result; pydantic validation errors,
       KeyError, TypeError and ValueError become DecodeError
    """
    data = response.json()
    error = extract_error(data)
    if error is not None:
        error.status = response.status
        raise error
    try:
        return convert(data)
    except ValidationError as e:
        raise DecodeError(f"Unexpected response schema: {e.error_count()} error(s)", body=response.text()) from e
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"Unexpected response schema: {e!r}", body=response.text()) from e


# ============================================
# Descriptor Contract
# ============================================

class RequestDescriptor(ABC, Generic[T]):
    """
    Description of one logical REST call returning T.

    Required: method(), path(), decode().
    Optional (empty defaults): query(), headers(), body().
    """

    @abstractmethod
    def method(self) -> Method:
        ...

    @abstractmethod
    def path(self) -> str:
        ...

    def query(self) -> Query:
        return Query()

    def headers(self) -> Headers:
        return {}

    def body(self) -> Optional[Payload]:
        return None

    @abstractmethod
    def decode(self, response: HttpResponse) -> T:
        """
        Turn a response into a result.

        Raises:
            ExchangeBusinessError: Envelope says the exchange rejected the request
            DecodeError: Body is not what was expected
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.method()} {self.path()}>"


def canonical_message(timestamp: str, method: Method, path: str, query: Query, body: Optional[Payload]) -> str:
    """
    The common prehash string: timestamp + METHOD + path + ?query + body.

    Example:
        >>> canonical_message("1500000000", Method.GET, "/orders", Query([("status", "all")]), None)
        '1500000000GET/orders?status=all'
    """
    query_str = f"?{query.encode()}" if query else ""
    body_str = body.as_text() if body is not None else ""
    return f"{timestamp}{method.value}{path}{query_str}{body_str}"


# ============================================
# Authentication Decorator
# ============================================

@dataclass
class SignedParts:
    """Headers, query and body after authentication."""

    headers: Headers
    query: Query
    body: Optional[Payload]


class Authenticator(ABC):
    """
    Exchange-specific signing scheme.

    Implementations read the descriptor's parts, build whatever canonical
    string the exchange defines, sign it with a Signer and return the parts
    to send.
    """

    @abstractmethod
    def authenticate(self, descriptor: RequestDescriptor, credential: Credential) -> SignedParts:
        ...


class AuthenticatedRequest(RequestDescriptor[T]):
    """
    A descriptor wrapped with a credential.

    Signed parts are computed once, on first access, so the timestamp or
    nonce placed in a header is exactly the one that was signed.
    """

    def __init__(self, descriptor: RequestDescriptor[T], credential: Credential, authenticator: Authenticator):
        self.descriptor = descriptor
        self.credential = credential
        self.authenticator = authenticator
        self._signed: Optional[SignedParts] = None

    def _parts(self) -> SignedParts:
        if self._signed is None:
            self._signed = self.authenticator.authenticate(self.descriptor, self.credential)
        return self._signed

    def method(self) -> Method:
        return self.descriptor.method()

    def path(self) -> str:
        return self.descriptor.path()

    def query(self) -> Query:
        return self._parts().query

    def headers(self) -> Headers:
        return dict(self._parts().headers)

    def body(self) -> Optional[Payload]:
        return self._parts().body

    def decode(self, response: HttpResponse) -> T:
        return self.descriptor.decode(response)

    def __repr__(self) -> str:
        return f"<Authenticated {self.descriptor!r} key='{self.credential.key[:4]}...'>"
