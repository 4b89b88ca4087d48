"""
Transport: Synchronous HTTP and WebSocket Clients

The Dispatcher and the market feed talk to the network only through the
small interfaces defined here, so tests can substitute in-process fakes.

HTTP:
    HttpClient.send(request) -> HttpResponse
    HttpxClient implements it on top of httpx.Client. Any status code is a
    response; only failures to obtain one (refused connection, timeout,
    malformed HTTP) raise TransportError. There are no retries.

WebSocket:
    WebsocketClient.connect(url, headers) -> WebsocketConnection
    WebsocketConnection.send(message) / recv() / close()
    backed by websockets.sync.client.

Usage:
    with HttpxClient(timeout=10.0) as http:
        response = http.send(PreparedRequest(Method.GET, "https://api.gemini.com/v1/book/btcusd"))
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Union

import httpx
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect

from core.api import Headers, HttpResponse, Method
from core.errors import TransportError
from core.logging import get_logger


@dataclass
class PreparedRequest:
    """The outbound message built by the Dispatcher."""

    method: Method
    url: str
    headers: Headers = field(default_factory=dict)
    body: Optional[bytes] = None


# ============================================
# HTTP
# ============================================

class HttpClient(ABC):
    @abstractmethod
    def send(self, request: PreparedRequest) -> HttpResponse:
        """
        Execute one request synchronously.

        Raises:
            TransportError: If no response could be obtained
        """
        ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class HttpxClient(HttpClient):
    """
    HttpClient backed by a pooled httpx.Client.

    Safe to share between threads; httpx.Client is thread-safe.

    Args:
        timeout: Total timeout per request in seconds
        transport: Optional httpx transport (httpx.MockTransport in tests)
    """

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout
        self.client = httpx.Client(timeout=timeout, transport=transport)
        self.logger = get_logger(__name__)

    def send(self, request: PreparedRequest) -> HttpResponse:
        try:
            response = self.client.request(
                request.method.value,
                request.url,
                headers=request.headers,
                content=request.body,
            )
        except httpx.TimeoutException as e:
            self.logger.error(f"Timeout on {request.method} {request.url.split('?', 1)[0]}")
            raise TransportError(f"Request timed out after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            self.logger.error(f"Transport failure on {request.method} {request.url.split('?', 1)[0]}: {e}")
            raise TransportError(f"Request failed: {e}") from e

        return HttpResponse(
            status=response.status_code,
            body=response.content,
            headers={name.lower(): value for name, value in response.headers.items()},
        )

    def close(self) -> None:
        self.client.close()


# ============================================
# WebSocket
# ============================================

@dataclass(frozen=True)
class WebsocketMessage:
    """
    One WebSocket frame.

    Attributes:
        kind: "text", "binary", "ping" or "pong"
        data: str for text frames, bytes otherwise
    """

    kind: str
    data: Union[str, bytes]

    @classmethod
    def text(cls, data: str) -> "WebsocketMessage":
        return cls("text", data)

    @classmethod
    def binary(cls, data: bytes) -> "WebsocketMessage":
        return cls("binary", data)

    @classmethod
    def ping(cls, data: bytes = b"") -> "WebsocketMessage":
        return cls("ping", data)

    @classmethod
    def pong(cls, data: bytes = b"") -> "WebsocketMessage":
        return cls("pong", data)


class WebsocketConnection(ABC):
    @abstractmethod
    def send(self, message: WebsocketMessage) -> None:
        ...

    @abstractmethod
    def recv(self, timeout: Optional[float] = None) -> WebsocketMessage:
        """
        Block until the next frame.

        Raises:
            TransportError: If the connection is closed or broken
            TimeoutError: If no frame arrived within `timeout`
        """
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class WebsocketClient(ABC):
    @abstractmethod
    def connect(self, url: str, headers: Optional[Headers] = None) -> WebsocketConnection:
        ...


class SyncWebsocketConnection(WebsocketConnection):
    """
    WebsocketConnection over websockets.sync.

    The websockets library answers pings itself, so recv() only surfaces
    text and binary frames.
    """

    def __init__(self, connection: ClientConnection):
        self._connection = connection

    def send(self, message: WebsocketMessage) -> None:
        try:
            if message.kind == "ping":
                self._connection.ping(message.data)
            elif message.kind == "pong":
                self._connection.pong(message.data)
            else:
                self._connection.send(message.data)
        except ConnectionClosed as e:
            raise TransportError(f"WebSocket closed: {e}") from e

    def recv(self, timeout: Optional[float] = None) -> WebsocketMessage:
        try:
            data = self._connection.recv(timeout=timeout)
        except ConnectionClosed as e:
            raise TransportError(f"WebSocket closed: {e}") from e
        if isinstance(data, bytes):
            return WebsocketMessage.binary(data)
        return WebsocketMessage.text(data)

    def close(self) -> None:
        self._connection.close()


class SyncWebsocketClient(WebsocketClient):
    def __init__(self, open_timeout: float = 10.0):
        self.open_timeout = open_timeout
        self.logger = get_logger(__name__)

    def connect(self, url: str, headers: Optional[Headers] = None) -> WebsocketConnection:
        """
        Open a WebSocket connection.

        Raises:
            TransportError: If the handshake fails or the host is unreachable
        """
        try:
            connection = connect(url, additional_headers=headers, open_timeout=self.open_timeout)
        except (InvalidHandshake, InvalidURI, OSError, TimeoutError) as e:
            self.logger.error(f"WebSocket connect failed for {url}: {e}")
            raise TransportError(f"WebSocket connect failed: {e}") from e
        return SyncWebsocketConnection(connection)
