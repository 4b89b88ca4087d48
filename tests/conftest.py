"""
Shared Fixtures

In-process fakes for the transport interfaces, so the request pipeline and
the background services can be exercised without network access.
"""

import queue
import threading
import time
from typing import Callable, Dict, List, Optional

import pytest
from pydantic import SecretStr

from core.api import Headers, HttpResponse
from core.errors import TransportError
from core.schemas import Credential, CurrencyPair
from core.transport import HttpClient, PreparedRequest, WebsocketClient, WebsocketConnection, WebsocketMessage


# ============================================
# HTTP Fakes
# ============================================

class FakeHttpClient(HttpClient):
    """
    Records every request and answers with a canned response.

    `responder` may be an HttpResponse (returned every time) or a callable
    taking the PreparedRequest. Raising from the callable simulates a
    transport failure.
    """

    def __init__(self, responder=None):
        self.responder = responder if responder is not None else HttpResponse(status=200, body=b"{}")
        self.requests: List[PreparedRequest] = []
        self.closed = False

    def send(self, request: PreparedRequest) -> HttpResponse:
        self.requests.append(request)
        if callable(self.responder):
            return self.responder(request)
        return self.responder

    def close(self) -> None:
        self.closed = True


def json_response(body: str, status: int = 200) -> HttpResponse:
    return HttpResponse(status=status, body=body.encode("utf-8"), headers={"content-type": "application/json"})


# ============================================
# WebSocket Fakes
# ============================================

class FakeWebsocketConnection(WebsocketConnection):
    """
    Serves queued frames to recv(); an exhausted queue blocks until close().

    Anything queued that is an exception instance is raised from recv().
    """

    def __init__(self):
        self.incoming: "queue.Queue" = queue.Queue()
        self.sent: List[WebsocketMessage] = []
        self.closed = threading.Event()

    def push(self, item) -> None:
        self.incoming.put(item)

    def send(self, message: WebsocketMessage) -> None:
        if self.closed.is_set():
            raise TransportError("connection closed")
        self.sent.append(message)

    def recv(self, timeout: Optional[float] = None) -> WebsocketMessage:
        waited = 0.0
        while True:
            if self.closed.is_set():
                raise TransportError("connection closed")
            try:
                item = self.incoming.get(timeout=0.01)
            except queue.Empty:
                waited += 0.01
                if timeout is not None and waited >= timeout:
                    raise TimeoutError()
                continue
            if isinstance(item, BaseException):
                raise item
            return item

    def close(self) -> None:
        self.closed.set()


class FakeWebsocketClient(WebsocketClient):
    def __init__(self, connection: Optional[FakeWebsocketConnection] = None, error: Optional[Exception] = None):
        self.connection = connection or FakeWebsocketConnection()
        self.error = error
        self.urls: List[str] = []

    def connect(self, url: str, headers: Optional[Headers] = None) -> WebsocketConnection:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.connection


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll a condition from the test thread."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def btc_usd() -> CurrencyPair:
    return CurrencyPair(base="BTC", quote="USD")


@pytest.fixture
def btc_usdt() -> CurrencyPair:
    return CurrencyPair(base="BTC", quote="USDT")


@pytest.fixture
def credential() -> Credential:
    return Credential(key="test-api-key", secret=SecretStr("test-secret"))


@pytest.fixture
def gdax_credential() -> Credential:
    # base64 of "gdax-secret-bytes"
    return Credential(
        key="gdax-key",
        secret=SecretStr("Z2RheC1zZWNyZXQtYnl0ZXM="),
        passphrase=SecretStr("passphrase"),
    )


@pytest.fixture
def http_client() -> FakeHttpClient:
    return FakeHttpClient()


def response_map(routes: Dict[str, HttpResponse]) -> Callable[[PreparedRequest], HttpResponse]:
    """Responder choosing a response by URL path (query ignored)."""

    def respond(request: PreparedRequest) -> HttpResponse:
        path = "/" + request.url.split("://", 1)[-1].split("/", 1)[-1].split("?", 1)[0]
        return routes[path]

    return respond
