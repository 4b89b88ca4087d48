"""
GDAX (Coinbase Exchange) REST Request Descriptors

Descriptors for the GDAX REST API and its header-signing scheme.

API Documentation:
    https://docs.cloud.coinbase.com/exchange/reference

Authentication:
    prehash   = timestamp + METHOD + path [+ "?" + query] + body
    signature = base64(HMAC-SHA256(base64decode(secret), prehash))

    Headers: CB-ACCESS-KEY, CB-ACCESS-SIGN, CB-ACCESS-TIMESTAMP,
             CB-ACCESS-PASSPHRASE

Error Envelope:
    {"message": "Insufficient funds"}
    A JSON object carrying only a message is an ExchangeBusinessError,
    whatever the HTTP status.

Usage:
    book = dispatcher.send(GetOrderbook(btc_usd))
    orders = dispatcher.send(adapter.authenticate(GetOrders()))
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from core.api import (
    Authenticator,
    HttpResponse,
    Method,
    Payload,
    Query,
    RequestDescriptor,
    SignedParts,
    canonical_message,
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
from core.signer import HMAC_SHA256_B64_KEY_B64, Signer
from core.utils.time import current_utc_timestamp

# TimeInForce -> (time_in_force, cancel_after)
_TIME_IN_FORCE = {
    TimeInForce.GOOD_TILL_CANCELLED: ("GTC", None),
    TimeInForce.IMMEDIATE_OR_CANCEL: ("IOC", None),
    TimeInForce.FILL_OR_KILL: ("FOK", None),
    TimeInForce.GOOD_FOR_DAY: ("GTT", "day"),
    TimeInForce.GOOD_FOR_HOUR: ("GTT", "hour"),
    TimeInForce.GOOD_FOR_MIN: ("GTT", "min"),
}

_CANCEL_AFTER = {"day": TimeInForce.GOOD_FOR_DAY, "hour": TimeInForce.GOOD_FOR_HOUR, "min": TimeInForce.GOOD_FOR_MIN}


# ============================================
# Symbol & Envelope Helpers
# ============================================

def product_id(product: CurrencyPair) -> str:
    """BTC/USD -> "BTC-USD"."""
    return product.symbol("-")


def side_from_wire(side: str) -> Side:
    if side == "buy":
        return Side.BID
    if side == "sell":
        return Side.ASK
    raise ValueError(f"Unknown GDAX side: '{side}'")


def extract_error(data: Any) -> Optional[ExchangeBusinessError]:
    if isinstance(data, dict) and "message" in data and "id" not in data:
        return ExchangeBusinessError(str(data["message"]))
    return None


def order_status(status: str, done_reason: Optional[str] = None, reject_reason: Optional[str] = None) -> OrderStatus:
    """
    Map a GDAX order status (plus done/reject reason) onto the lifecycle.

    Example:
        >>> order_status("done", "canceled")
        OrderStatus(state='closed', reason='cancelled')
    """
    if status == "pending":
        return OrderStatus.pending()
    if status in ("open", "active"):
        return OrderStatus.open()
    if status in ("done", "settled"):
        if done_reason == "filled":
            return OrderStatus.filled()
        if done_reason == "canceled":
            return OrderStatus.closed("cancelled")
        return OrderStatus.closed("no reason given")
    if status == "rejected":
        return OrderStatus.rejected(reject_reason or "no reason given")
    raise ValueError(f"Unknown GDAX order status: '{status}'")


# ============================================
# Wire Models
# ============================================

class GdaxBook(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sequence: int
    # level 2 entries are [price, size, num-orders]
    bids: List[Tuple[Decimal, Decimal, Any]]
    asks: List[Tuple[Decimal, Decimal, Any]]


class GdaxOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    client_oid: Optional[str] = None
    product_id: str
    side: str
    type: str = "limit"
    status: str
    price: Decimal
    size: Decimal
    filled_size: Decimal = Decimal("0")
    time_in_force: str = "GTC"
    cancel_after: Optional[str] = None
    done_reason: Optional[str] = None
    reject_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_order(self) -> Order:
        if self.type != "limit":
            raise ValueError(f"{self.type} orders are not supported")

        if self.time_in_force == "GTT":
            tif = _CANCEL_AFTER.get(self.cancel_after or "", TimeInForce.GOOD_TILL_CANCELLED)
        else:
            tif = {v[0]: k for k, v in _TIME_IN_FORCE.items() if v[1] is None}.get(
                self.time_in_force, TimeInForce.GOOD_TILL_CANCELLED
            )

        return Order(
            id=UUID(self.client_oid) if self.client_oid else None,
            server_id=self.id,
            side=side_from_wire(self.side),
            product=CurrencyPair.parse(self.product_id),
            status=order_status(self.status, self.done_reason, self.reject_reason),
            instruction=LimitInstruction(
                price=self.price,
                original_quantity=self.size,
                remaining_quantity=self.size - self.filled_size,
                time_in_force=tif,
            ),
        )


class GdaxAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    currency: str
    balance: Decimal
    available: Decimal
    hold: Decimal = Decimal("0")


# ============================================
# Request Descriptors
# ============================================

class GetOrderbook(RequestDescriptor[Orderbook]):
    """**Public**. Aggregated (level 2) order book of one product."""

    def __init__(self, product: CurrencyPair, level: int = 2):
        if level not in (1, 2):
            raise ValueError(f"Aggregated book level must be 1 or 2, got {level}")
        self.product = product
        self.level = level

    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return f"/products/{product_id(self.product)}/book"

    def query(self) -> Query:
        return Query([("level", self.level)])

    def decode(self, response: HttpResponse) -> Orderbook:
        def convert(data: Any) -> Orderbook:
            book = GdaxBook.model_validate(data)
            return Orderbook.from_offers(
                asks=[Offer(price=price, quantity=size) for price, size, _ in book.asks],
                bids=[Offer(price=price, quantity=size) for price, size, _ in book.bids],
            )

        return decode_with_envelope(response, extract_error, convert)


class PlaceOrder(RequestDescriptor[Order]):
    """
    **Private**. Place a limit order; the NewOrder id becomes client_oid.

    Raises:
        ValueError: If the time in force has no GDAX equivalent
                    (GOOD_TILL_TIME with an absolute expiry is not offered)
    """

    def __init__(self, new_order: NewOrder, post_only: bool = False):
        if new_order.time_in_force not in _TIME_IN_FORCE:
            raise ValueError(f"GDAX does not support time in force {new_order.time_in_force.value}")
        self.new_order = new_order
        self.post_only = post_only

    def method(self) -> Method:
        return Method.POST

    def path(self) -> str:
        return "/orders"

    def body(self) -> Payload:
        order = self.new_order
        time_in_force, cancel_after = _TIME_IN_FORCE[order.time_in_force]
        payload = {
            "client_oid": str(order.id),
            "type": "limit",
            "side": "buy" if order.side == Side.BID else "sell",
            "product_id": product_id(order.product),
            "price": str(order.price),
            "size": str(order.quantity),
            "time_in_force": time_in_force,
        }
        if cancel_after is not None:
            payload["cancel_after"] = cancel_after
        if self.post_only:
            payload["post_only"] = True
        return json_payload(payload)

    def decode(self, response: HttpResponse) -> Order:
        return decode_with_envelope(response, extract_error, lambda data: GdaxOrder.model_validate(data).to_order())


class CancelOrder(RequestDescriptor[OrderCancellation]):
    """**Private**. Cancel one order by server id."""

    def __init__(self, server_id: str, product: Optional[CurrencyPair] = None):
        self.server_id = server_id
        self.product = product

    def method(self) -> Method:
        return Method.DELETE

    def path(self) -> str:
        return f"/orders/{self.server_id}"

    def decode(self, response: HttpResponse) -> OrderCancellation:
        def convert(data: Any) -> OrderCancellation:
            # The API answers with the cancelled id, bare or in a list
            cancelled = data[0] if isinstance(data, list) else data
            if not isinstance(cancelled, str):
                raise ValueError(f"Unexpected cancel response: {data!r}")
            return OrderCancellation(server_id=cancelled, product=self.product)

        return decode_with_envelope(response, extract_error, convert)


class GetOrders(RequestDescriptor[List[Order]]):
    """**Private**. Orders of every status (`status=all`)."""

    def __init__(self, status: str = "all"):
        self.status = status

    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return "/orders"

    def query(self) -> Query:
        return Query([("status", self.status)])

    def decode(self, response: HttpResponse) -> List[Order]:
        return decode_with_envelope(
            response, extract_error, lambda data: [GdaxOrder.model_validate(item).to_order() for item in data]
        )


class GetAccounts(RequestDescriptor[List[Balance]]):
    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return "/accounts"

    def decode(self, response: HttpResponse) -> List[Balance]:
        def convert(data: Any) -> List[Balance]:
            accounts = [GdaxAccount.model_validate(item) for item in data]
            return [Balance(currency=a.currency, balance=a.balance, available=a.available) for a in accounts]

        return decode_with_envelope(response, extract_error, convert)


# ============================================
# Authentication
# ============================================

class GdaxAuthenticator(Authenticator):
    """
    Header-signing scheme.

    Args:
        signer: HMAC parameters (sha256 / base64 key / base64 output)
        clock: Seconds timestamp source
    """

    def __init__(self, signer: Signer = HMAC_SHA256_B64_KEY_B64, clock: Callable[[], int] = current_utc_timestamp):
        self.signer = signer
        self.clock = clock

    def authenticate(self, descriptor: RequestDescriptor, credential: Credential) -> SignedParts:
        if credential.passphrase is None:
            raise SigningError("GDAX credential requires a passphrase")

        query = descriptor.query()
        body = descriptor.body()
        timestamp = str(self.clock())
        prehash = canonical_message(timestamp, descriptor.method(), descriptor.path(), query, body)

        try:
            signature = self.signer.sign(credential.secret.get_secret_value(), prehash)
        except ValueError as e:
            raise SigningError(f"Could not sign GDAX request: {e}") from e

        headers = descriptor.headers()
        headers.update({
            "Content-Type": "application/json",
            "CB-ACCESS-KEY": credential.key,
            "CB-ACCESS-SIGN": signature,
            "CB-ACCESS-TIMESTAMP": timestamp,
            "CB-ACCESS-PASSPHRASE": credential.passphrase.get_secret_value(),
        })
        return SignedParts(headers=headers, query=query, body=body)
