"""
Gemini REST Request Descriptors

Descriptors for the Gemini REST API and its payload-signing scheme.

API Documentation:
    https://docs.gemini.com/rest-api/

Authentication (private endpoints, all POST):
    The request parameters travel in a JSON payload, never in the body:

        payload   = {"request": <path>, "nonce": <increasing int>, ...params}
        b64       = base64(json(payload))
        signature = hex(HMAC-SHA384(secret, b64))

    Headers: X-GEMINI-APIKEY, X-GEMINI-PAYLOAD (= b64), X-GEMINI-SIGNATURE

Error Envelope:
    {"result": "error", "reason": "InvalidSignature", "message": "..."}
    Gemini may answer with any status code, so classification looks at the
    envelope only.

Usage:
    book = dispatcher.send(GetOrderbook(btc_usd))
    balances = dispatcher.send(adapter.authenticate(GetBalances()))
"""

import base64
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from core.api import (
    Authenticator,
    HttpResponse,
    Method,
    Payload,
    RequestDescriptor,
    SignedParts,
    decode_with_envelope,
    json_payload,
)
from core.errors import ExchangeBusinessError, SigningError
from core.orderbook import Orderbook
from core.schemas import (
    Balance,
    Credential,
    CurrencyPair,
    LimitInstruction,
    NewOrder,
    Offer,
    Order,
    OrderCancellation,
    OrderStatus,
    Side,
    TimeInForce,
)
from core.signer import HMAC_SHA384_HEX, Signer
from core.utils.time import Nonce

QUOTE_CURRENCIES = ("usd", "gusd", "usdt", "dai", "btc", "eth", "eur", "gbp", "sgd")

# TimeInForce -> order execution option
_OPTIONS = {
    TimeInForce.GOOD_TILL_CANCELLED: None,
    TimeInForce.IMMEDIATE_OR_CANCEL: "immediate-or-cancel",
    TimeInForce.FILL_OR_KILL: "fill-or-kill",
}


# ============================================
# Symbol & Envelope Helpers
# ============================================

def product_symbol(product: CurrencyPair) -> str:
    """BTC/USD -> "btcusd"."""
    return product.symbol().lower()


def parse_symbol(symbol: str) -> CurrencyPair:
    return CurrencyPair.from_concatenated(symbol, QUOTE_CURRENCIES)


def extract_error(data: Any) -> Optional[ExchangeBusinessError]:
    if isinstance(data, dict) and data.get("result") == "error":
        message = data.get("message") or data.get("reason") or "unknown error"
        return ExchangeBusinessError(str(message), code=data.get("reason"))
    return None


def order_status(is_live: bool, is_cancelled: bool, remaining: Decimal) -> OrderStatus:
    if is_cancelled:
        return OrderStatus.closed("cancelled")
    if is_live:
        return OrderStatus.open()
    if remaining == 0:
        return OrderStatus.filled()
    return OrderStatus.closed("no reason given")


# ============================================
# Wire Models
# ============================================

class GeminiLevel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    price: Decimal
    amount: Decimal


class GeminiBook(BaseModel):
    bids: List[GeminiLevel]
    asks: List[GeminiLevel]


class GeminiOrder(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    order_id: str
    client_order_id: Optional[str] = None
    symbol: str
    side: str
    type: str = "exchange limit"
    price: Decimal
    original_amount: Decimal
    remaining_amount: Decimal
    executed_amount: Decimal = Decimal("0")
    is_live: bool
    is_cancelled: bool
    options: List[str] = []

    def to_order(self) -> Order:
        tif = TimeInForce.GOOD_TILL_CANCELLED
        for option in self.options:
            tif = {v: k for k, v in _OPTIONS.items() if v}.get(option, tif)

        try:
            client_id = UUID(self.client_order_id) if self.client_order_id else None
        except ValueError:
            client_id = None

        return Order(
            id=client_id,
            server_id=self.order_id,
            side=Side.BID if self.side == "buy" else Side.ASK,
            product=parse_symbol(self.symbol),
            status=order_status(self.is_live, self.is_cancelled, self.remaining_amount),
            instruction=LimitInstruction(
                price=self.price,
                original_quantity=self.original_amount,
                remaining_quantity=self.remaining_amount,
                time_in_force=tif,
            ),
        )


class GeminiBalance(BaseModel):
    model_config = ConfigDict(extra="ignore")

    currency: str
    amount: Decimal
    available: Decimal


# ============================================
# Request Descriptors
# ============================================

class GetOrderbook(RequestDescriptor[Orderbook]):
    """**Public**. Order book of one product."""

    def __init__(self, product: CurrencyPair):
        self.product = product

    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return f"/v1/book/{product_symbol(self.product)}"

    def decode(self, response: HttpResponse) -> Orderbook:
        def convert(data: Any) -> Orderbook:
            book = GeminiBook.model_validate(data)
            return Orderbook.from_offers(
                asks=[Offer(price=level.price, quantity=level.amount) for level in book.asks],
                bids=[Offer(price=level.price, quantity=level.amount) for level in book.bids],
            )

        return decode_with_envelope(response, extract_error, convert)


class _PrivateRequest(RequestDescriptor):
    """
    Private Gemini call. Parameters are carried by body() as JSON; the
    authenticator moves them into the signed payload header.
    """

    def method(self) -> Method:
        return Method.POST

    def params(self) -> Dict[str, Any]:
        return {}

    def body(self) -> Payload:
        return json_payload(self.params())


class PlaceOrder(_PrivateRequest):
    """
    **Private**. Place an "exchange limit" order.

    Raises:
        ValueError: If the time in force has no Gemini execution option
    """

    def __init__(self, new_order: NewOrder):
        if new_order.time_in_force not in _OPTIONS:
            raise ValueError(f"Gemini does not support time in force {new_order.time_in_force.value}")
        self.new_order = new_order

    def path(self) -> str:
        return "/v1/order/new"

    def params(self) -> Dict[str, Any]:
        order = self.new_order
        params = {
            "client_order_id": str(order.id),
            "symbol": product_symbol(order.product),
            "amount": str(order.quantity),
            "price": str(order.price),
            "side": "buy" if order.side == Side.BID else "sell",
            "type": "exchange limit",
        }
        option = _OPTIONS[order.time_in_force]
        if option is not None:
            params["options"] = [option]
        return params

    def decode(self, response: HttpResponse) -> Order:
        return decode_with_envelope(response, extract_error, lambda data: GeminiOrder.model_validate(data).to_order())


class CancelOrder(_PrivateRequest):
    """**Private**. Cancel one order; cancelling twice succeeds with no effect."""

    def __init__(self, order_id: str):
        if not str(order_id).isdigit():
            raise ValueError(f"Gemini order ids are numeric, got '{order_id}'")
        self.order_id = str(order_id)

    def path(self) -> str:
        return "/v1/order/cancel"

    def params(self) -> Dict[str, Any]:
        return {"order_id": int(self.order_id)}

    def decode(self, response: HttpResponse) -> OrderCancellation:
        def convert(data: Any) -> OrderCancellation:
            order = GeminiOrder.model_validate(data).to_order()
            return OrderCancellation(server_id=order.server_id, id=order.id, product=order.product)

        return decode_with_envelope(response, extract_error, convert)


class GetActiveOrders(_PrivateRequest):
    def path(self) -> str:
        return "/v1/orders"

    def decode(self, response: HttpResponse) -> List[Order]:
        return decode_with_envelope(
            response, extract_error, lambda data: [GeminiOrder.model_validate(item).to_order() for item in data]
        )


class GetBalances(_PrivateRequest):
    def path(self) -> str:
        return "/v1/balances"

    def decode(self, response: HttpResponse) -> List[Balance]:
        def convert(data: Any) -> List[Balance]:
            balances = [GeminiBalance.model_validate(item) for item in data]
            return [Balance(currency=b.currency, balance=b.amount, available=b.available) for b in balances]

        return decode_with_envelope(response, extract_error, convert)


# ============================================
# Authentication
# ============================================

class GeminiAuthenticator(Authenticator):
    """
    Payload-signing scheme.

    Args:
        signer: HMAC parameters (sha384 / raw key / hex output)
        nonce: Strictly increasing nonce source shared by all requests of a key
    """

    def __init__(self, signer: Signer = HMAC_SHA384_HEX, nonce: Optional[Nonce] = None):
        self.signer = signer
        self.nonce = nonce or Nonce()

    def authenticate(self, descriptor: RequestDescriptor, credential: Credential) -> SignedParts:
        body = descriptor.body()
        try:
            params = json.loads(body.as_text()) if body is not None else {}
        except ValueError as e:
            raise SigningError(f"Gemini parameters are not JSON: {e}") from e
        if not isinstance(params, dict):
            raise SigningError("Gemini parameters must be a JSON object")

        payload = {"request": descriptor.path(), "nonce": self.nonce.next(), **params}
        encoded = base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")
        signature = self.signer.sign(credential.secret.get_secret_value(), encoded)

        headers = descriptor.headers()
        headers.update({
            "Content-Type": "text/plain",
            "Cache-Control": "no-cache",
            "X-GEMINI-APIKEY": credential.key,
            "X-GEMINI-PAYLOAD": encoded,
            "X-GEMINI-SIGNATURE": signature,
        })
        return SignedParts(headers=headers, query=descriptor.query(), body=None)
