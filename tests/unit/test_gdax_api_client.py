"""
Unit Tests for the GDAX REST Adapter

These tests verify that the GDAX descriptors:
- Build product paths and JSON order bodies
- Sign timestamp + method + path + query + body with the decoded secret
- Put the signed timestamp in the CB-ACCESS-TIMESTAMP header
- Sign identical inputs identically and change the signature with any input
- Normalize book, order, cancel and account responses
- Classify {"message"} envelopes as business errors

Run with:
    pytest tests/unit/test_gdax_api_client.py -v
"""

import base64
import hashlib
import hmac
import json
from decimal import Decimal
from uuid import UUID

import pytest
from pydantic import SecretStr

from core.api import AuthenticatedRequest, HttpResponse, Method, Query, RequestDescriptor, TextPayload
from core.errors import DecodeError, ExchangeBusinessError, SigningError
from core.schemas import NewOrder, OrderStatus, Side, TimeInForce
from exchanges.gdax import GdaxAdapter
from exchanges.gdax.api_client import (
    CancelOrder,
    GdaxAuthenticator,
    GetAccounts,
    GetOrderbook,
    GetOrders,
    PlaceOrder,
    order_status,
)
from tests.conftest import FakeHttpClient, json_response

CLIENT_ID = UUID("0f1e2d3c-4b5a-4978-8695-a4b3c2d1e0f9")

ORDER_JSON = """{
    "id": "d0c5340b-6d6c-49d9-b567-48c4bfca13d2",
    "client_oid": "0f1e2d3c-4b5a-4978-8695-a4b3c2d1e0f9",
    "price": "0.10000000",
    "size": "0.01000000",
    "product_id": "BTC-USD",
    "side": "buy",
    "stp": "dc",
    "type": "limit",
    "time_in_force": "GTC",
    "post_only": false,
    "created_at": "2016-12-08T20:02:28.53864Z",
    "fill_fees": "0.0000000000000000",
    "filled_size": "0.00000000",
    "executed_value": "0.0000000000000000",
    "status": "pending",
    "settled": false
}"""


def new_order(product, **kwargs) -> NewOrder:
    values = dict(id=CLIENT_ID, side=Side.BID, product=product, price=Decimal("0.1"), quantity=Decimal("0.01"))
    values.update(kwargs)
    return NewOrder(**values)


class RawRequest(RequestDescriptor[None]):
    """Descriptor whose signed parts are given directly."""

    def __init__(self, method, path, query, body):
        self._method = method
        self._path = path
        self._query = query
        self._body = body

    def method(self) -> Method:
        return self._method

    def path(self) -> str:
        return self._path

    def query(self) -> Query:
        return Query(self._query)

    def body(self):
        return TextPayload(self._body) if self._body is not None else None

    def decode(self, response: HttpResponse) -> None:
        return None


SIGNED_INPUTS = dict(
    method=Method.POST,
    path="/orders",
    query=[("status", "open")],
    body='{"size": "0.01"}',
    secret="Z2RheC1zZWNyZXQtYnl0ZXM=",
    timestamp=1500000000,
)


def signature(credential, **changes) -> str:
    values = dict(SIGNED_INPUTS, **changes)
    credential = credential.model_copy(update={"secret": SecretStr(values["secret"])})
    request = AuthenticatedRequest(
        RawRequest(values["method"], values["path"], values["query"], values["body"]),
        credential,
        GdaxAuthenticator(clock=lambda: values["timestamp"]),
    )
    return request.headers()["CB-ACCESS-SIGN"]


# ============================================
# Status Mapping
# ============================================

class TestOrderStatus:
    """Tests for order_status"""

    @pytest.mark.parametrize("status,done_reason,expected", [
        ("pending", None, OrderStatus.pending()),
        ("open", None, OrderStatus.open()),
        ("active", None, OrderStatus.open()),
        ("done", "filled", OrderStatus.filled()),
        ("done", "canceled", OrderStatus.closed("cancelled")),
        ("done", None, OrderStatus.closed("no reason given")),
    ])
    def test_mapping(self, status, done_reason, expected):
        assert order_status(status, done_reason) == expected

    def test_rejected_keeps_reason(self):
        assert order_status("rejected", reject_reason="post only") == OrderStatus.rejected("post only")


# ============================================
# Signing
# ============================================

class TestGdaxAuthenticator:
    """Tests for header signing"""

    def test_signature_and_headers(self, gdax_credential, btc_usd):
        descriptor = PlaceOrder(new_order(btc_usd))
        parts = GdaxAuthenticator(clock=lambda: 1500000000).authenticate(descriptor, gdax_credential)

        prehash = "1500000000POST/orders" + descriptor.body().as_text()
        expected = base64.b64encode(
            hmac.new(b"gdax-secret-bytes", prehash.encode(), hashlib.sha256).digest()
        ).decode()

        assert parts.headers["CB-ACCESS-SIGN"] == expected
        assert parts.headers["CB-ACCESS-TIMESTAMP"] == "1500000000"
        assert parts.headers["CB-ACCESS-KEY"] == "gdax-key"
        assert parts.headers["CB-ACCESS-PASSPHRASE"] == "passphrase"
        assert parts.body == descriptor.body()

    def test_query_is_part_of_prehash(self, gdax_credential):
        parts = GdaxAuthenticator(clock=lambda: 1).authenticate(GetOrders(), gdax_credential)
        expected = base64.b64encode(
            hmac.new(b"gdax-secret-bytes", b"1GET/orders?status=all", hashlib.sha256).digest()
        ).decode()

        assert parts.headers["CB-ACCESS-SIGN"] == expected
        assert parts.query.encode() == "status=all"

    def test_header_timestamp_matches_signed_timestamp(self, gdax_credential):
        """The clock is read once; later reads of the request reuse it."""
        ticks = iter(range(100, 200))
        request = AuthenticatedRequest(GetAccounts(), gdax_credential, GdaxAuthenticator(clock=lambda: next(ticks)))

        first = request.headers()
        second = request.headers()
        expected = base64.b64encode(
            hmac.new(b"gdax-secret-bytes", b"100GET/accounts", hashlib.sha256).digest()
        ).decode()

        assert first == second
        assert first["CB-ACCESS-TIMESTAMP"] == "100"
        assert first["CB-ACCESS-SIGN"] == expected

    def test_identical_inputs_sign_identically(self, gdax_credential):
        assert signature(gdax_credential) == signature(gdax_credential)

    @pytest.mark.parametrize("name,value", [
        ("method", Method.PUT),
        ("path", "/orders/1"),
        ("query", [("status", "all")]),
        ("body", '{"size": "0.02"}'),
        ("secret", "b3RoZXItc2VjcmV0"),
        ("timestamp", 1500000001),
    ])
    def test_each_input_changes_signature(self, gdax_credential, name, value):
        assert signature(gdax_credential, **{name: value}) != signature(gdax_credential)

    def test_missing_passphrase(self, gdax_credential):
        credential = gdax_credential.model_copy(update={"passphrase": None})
        with pytest.raises(SigningError):
            GdaxAuthenticator().authenticate(GetAccounts(), credential)

    def test_secret_not_base64(self, gdax_credential):
        credential = gdax_credential.model_copy(update={"secret": SecretStr("%%% not base64 %%%")})
        with pytest.raises(SigningError):
            GdaxAuthenticator().authenticate(GetAccounts(), credential)


# ============================================
# Descriptors
# ============================================

class TestGetOrderbook:
    """Tests for GetOrderbook"""

    def test_request(self, btc_usd):
        request = GetOrderbook(btc_usd)
        assert request.path() == "/products/BTC-USD/book"
        assert request.query().encode() == "level=2"

    def test_invalid_level(self, btc_usd):
        with pytest.raises(ValueError):
            GetOrderbook(btc_usd, level=3)

    def test_decode(self, btc_usd):
        response = json_response("""{
            "sequence": 3,
            "bids": [["295.96", "4.39088265", 2], ["295.95", "1", 1]],
            "asks": [["295.97", "25.23542881", 12]]
        }""")

        book = GetOrderbook(btc_usd).decode(response)

        assert book.highest_bid().price == Decimal("295.96")
        assert book.lowest_ask().quantity == Decimal("25.23542881")
        assert book.spread() == Decimal("0.01")

    def test_not_found_envelope(self, btc_usd):
        with pytest.raises(ExchangeBusinessError) as exc_info:
            GetOrderbook(btc_usd).decode(json_response('{"message": "NotFound"}', status=404))
        assert exc_info.value.message == "NotFound"
        assert exc_info.value.status == 404


class TestPlaceOrder:
    """Tests for PlaceOrder"""

    def test_body(self, btc_usd):
        request = PlaceOrder(new_order(btc_usd, side=Side.ASK), post_only=True)
        body = json.loads(request.body().as_text())

        assert request.method() == Method.POST
        assert request.path() == "/orders"
        assert body == {
            "client_oid": str(CLIENT_ID),
            "type": "limit",
            "side": "sell",
            "product_id": "BTC-USD",
            "price": "0.1",
            "size": "0.01",
            "time_in_force": "GTC",
            "post_only": True,
        }

    def test_good_for_hour(self, btc_usd):
        request = PlaceOrder(new_order(btc_usd, time_in_force=TimeInForce.GOOD_FOR_HOUR))
        body = json.loads(request.body().as_text())

        assert body["time_in_force"] == "GTT"
        assert body["cancel_after"] == "hour"

    def test_decode(self, btc_usd):
        order = PlaceOrder(new_order(btc_usd)).decode(json_response(ORDER_JSON))

        assert order.id == CLIENT_ID
        assert order.server_id == "d0c5340b-6d6c-49d9-b567-48c4bfca13d2"
        assert order.product == btc_usd
        assert order.status == OrderStatus.pending()
        assert order.instruction.remaining_quantity == Decimal("0.01")

    def test_insufficient_funds_with_http_200(self, btc_usd):
        with pytest.raises(ExchangeBusinessError, match="Insufficient funds"):
            PlaceOrder(new_order(btc_usd)).decode(json_response('{"message": "Insufficient funds"}'))


class TestOtherDescriptors:
    """Tests for CancelOrder, GetOrders and GetAccounts"""

    def test_cancel(self, btc_usd):
        request = CancelOrder("abc-123", product=btc_usd)
        assert request.method() == Method.DELETE
        assert request.path() == "/orders/abc-123"

        for body in ('"abc-123"', '["abc-123"]'):
            cancellation = request.decode(json_response(body))
            assert cancellation.server_id == "abc-123"
            assert cancellation.product == btc_usd

    def test_cancel_unexpected_body(self):
        with pytest.raises(DecodeError):
            CancelOrder("abc").decode(json_response("{}"))

    def test_orders(self):
        orders = GetOrders().decode(json_response(f"[{ORDER_JSON}]"))
        assert len(orders) == 1
        assert orders[0].side == Side.BID

    def test_accounts(self):
        response = json_response("""[{
            "id": "71452118-efc7-4cc4-8780-a5e22d4baa53",
            "currency": "BTC",
            "balance": "0.0000000000000000",
            "available": "0.0000000000000000",
            "hold": "0.0000000000000000",
            "profile_id": "75da88c5-05bf-4f54-bc85-5c775bd68254"
        }]""")

        balances = GetAccounts().decode(response)

        assert balances[0].currency == "BTC"
        assert balances[0].balance == Decimal("0")


# ============================================
# Adapter
# ============================================

class TestGdaxAdapter:
    """Tests for GdaxAdapter"""

    def test_place_order_through_dispatcher(self, gdax_credential, btc_usd):
        http = FakeHttpClient(json_response(ORDER_JSON))
        adapter = GdaxAdapter(credential=gdax_credential, host="https://gdax.test")

        order = adapter.dispatcher(http).send(adapter.authenticate(adapter.place_order_request(new_order(btc_usd))))

        sent = http.requests[0]
        assert sent.url == "https://gdax.test/orders"
        assert sent.headers["Content-Type"] == "application/json"
        assert "CB-ACCESS-SIGN" in sent.headers
        assert json.loads(sent.body)["client_oid"] == str(CLIENT_ID)
        assert order.status == OrderStatus.pending()

    def test_cancel_requires_server_id(self, btc_usd):
        adapter = GdaxAdapter(host="https://gdax.test")
        with pytest.raises(ValueError):
            adapter.cancel_order_request(new_order(btc_usd).to_order())

    def test_open_orders_request(self):
        adapter = GdaxAdapter(host="https://gdax.test")
        assert adapter.open_orders_request().query().encode() == "status=open"

    def test_feed(self, btc_usd):
        adapter = GdaxAdapter(host="https://gdax.test")
        feed = adapter.feed([btc_usd])

        assert adapter.supports("market_feed")
        assert feed.products == [btc_usd]
        assert feed.url.startswith("wss://")
