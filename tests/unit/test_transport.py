"""
Unit Tests for Transport

These tests verify that HttpxClient:
- Sends method, URL, headers and body unchanged
- Returns every status code as a response
- Turns connection failures and timeouts into TransportError

and that the websockets-backed connection maps frames and closures.

Uses httpx.MockTransport and a stand-in websockets connection; no network access.

Run with:
    pytest tests/unit/test_transport.py -v
"""

import httpx
import pytest
from websockets.exceptions import ConnectionClosed

from core.api import Method
from core.errors import TransportError
from core.transport import HttpxClient, PreparedRequest, SyncWebsocketClient, SyncWebsocketConnection, WebsocketMessage


class TestHttpxClient:
    """Tests for HttpxClient.send"""

    def test_request_forwarded_verbatim(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["header"] = request.headers.get("x-mbx-apikey")
            seen["body"] = request.content
            return httpx.Response(200, json={"ok": True}, headers={"X-Rate": "5"})

        with HttpxClient(transport=httpx.MockTransport(handler)) as client:
            response = client.send(PreparedRequest(
                method=Method.POST,
                url="https://api.example.com/api/v3/order?symbol=BTCUSDT&signature=abc",
                headers={"X-MBX-APIKEY": "key"},
                body=b'{"a":1}',
            ))

        assert seen == {
            "method": "POST",
            "url": "https://api.example.com/api/v3/order?symbol=BTCUSDT&signature=abc",
            "header": "key",
            "body": b'{"a":1}',
        }
        assert response.status == 200
        assert response.json() == {"ok": True}
        assert response.headers["x-rate"] == "5"

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    def test_error_status_is_a_response(self, status):
        transport = httpx.MockTransport(lambda request: httpx.Response(status, text="nope"))

        with HttpxClient(transport=transport) as client:
            response = client.send(PreparedRequest(Method.GET, "https://h/x"))

        assert response.status == status
        assert not response.ok
        assert response.text() == "nope"

    def test_connect_error_is_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with HttpxClient(transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(TransportError):
                client.send(PreparedRequest(Method.GET, "https://h/x"))

    def test_timeout_is_transport_error(self):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with HttpxClient(timeout=0.5, transport=httpx.MockTransport(slow)) as client:
            with pytest.raises(TransportError, match="timed out"):
                client.send(PreparedRequest(Method.GET, "https://h/x"))


class TestWebsocketMessage:
    """Tests for frame constructors"""

    def test_constructors(self):
        assert WebsocketMessage.text("hi") == WebsocketMessage("text", "hi")
        assert WebsocketMessage.binary(b"\x00").kind == "binary"
        assert WebsocketMessage.ping(b"p").data == b"p"
        assert WebsocketMessage.pong().data == b""


class StubClientConnection:
    """Stands in for websockets.sync.client.ClientConnection."""

    def __init__(self, frames=(), closed=False):
        self.frames = list(frames)
        self.closed = closed
        self.calls = []

    def _check(self):
        if self.closed:
            raise ConnectionClosed(None, None)

    def send(self, data):
        self._check()
        self.calls.append(("send", data))

    def ping(self, data):
        self._check()
        self.calls.append(("ping", data))

    def pong(self, data):
        self._check()
        self.calls.append(("pong", data))

    def recv(self, timeout=None):
        self._check()
        if not self.frames:
            raise TimeoutError("timed out")
        return self.frames.pop(0)

    def close(self):
        self.closed = True


class TestSyncWebsocketConnection:
    """Tests for the websockets-backed connection"""

    def test_frames_mapped_by_type(self):
        connection = SyncWebsocketConnection(StubClientConnection(['{"type": "heartbeat"}', b"\x01\x02"]))

        assert connection.recv() == WebsocketMessage.text('{"type": "heartbeat"}')
        assert connection.recv() == WebsocketMessage.binary(b"\x01\x02")

    def test_send_routes_control_frames(self):
        stub = StubClientConnection()
        connection = SyncWebsocketConnection(stub)

        connection.send(WebsocketMessage.text("hello"))
        connection.send(WebsocketMessage.ping(b"p"))
        connection.send(WebsocketMessage.pong(b"q"))

        assert stub.calls == [("send", "hello"), ("ping", b"p"), ("pong", b"q")]

    def test_recv_timeout_propagates(self):
        with pytest.raises(TimeoutError):
            SyncWebsocketConnection(StubClientConnection()).recv(timeout=0.01)

    def test_closed_connection_is_transport_error(self):
        connection = SyncWebsocketConnection(StubClientConnection(closed=True))

        with pytest.raises(TransportError):
            connection.recv()
        with pytest.raises(TransportError):
            connection.send(WebsocketMessage.text("late"))

    def test_invalid_url_is_transport_error(self):
        with pytest.raises(TransportError):
            SyncWebsocketClient(open_timeout=0.1).connect("not-a-websocket-url")
