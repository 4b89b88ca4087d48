"""
Binance REST Request Descriptors

Descriptors for the Binance spot REST API and its query-signing scheme.
Nothing here performs I/O; send the descriptors through a Dispatcher.

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Authentication (SIGNED endpoints):
    1. `timestamp` (milliseconds) is appended to the query
    2. signature = hex(HMAC-SHA256(secret, encoded query))
    3. `signature` is appended as the last query parameter
    4. The API key travels in the X-MBX-APIKEY header

Error Envelope:
    {"code": -1121, "msg": "Invalid symbol."}
    Any body of that shape is an ExchangeBusinessError, whatever the status.

Usage:
    book = dispatcher.send(GetOrderbook(btc_usdt, limit=50))
    order = dispatcher.send(adapter.authenticate(PlaceLimitOrder(new_order)))
"""

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from core.api import (
    Authenticator,
    HttpResponse,
    Method,
    Query,
    RequestDescriptor,
    SignedParts,
    decode_with_envelope,
)
from core.errors import ExchangeBusinessError
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
from core.signer import HMAC_SHA256_HEX, Signer
from core.utils.time import current_utc_timestamp, datetime_to_timestamp, to_utc_datetime

# Quote assets used to split concatenated symbols such as "BTCUSDT"
QUOTE_ASSETS = ("USDT", "USDC", "FDUSD", "TUSD", "BUSD", "DAI", "BTC", "ETH", "BNB", "EUR", "GBP", "TRY", "BRL")

VALID_DEPTH_LIMITS = (5, 10, 20, 50, 100, 500, 1000, 5000)

_TIME_IN_FORCE = {
    TimeInForce.GOOD_TILL_CANCELLED: "GTC",
    TimeInForce.IMMEDIATE_OR_CANCEL: "IOC",
    TimeInForce.FILL_OR_KILL: "FOK",
    TimeInForce.GOOD_TILL_TIME: "GTD",
}


# ============================================
# Symbol & Envelope Helpers
# ============================================

def product_symbol(product: CurrencyPair) -> str:
    """BTC/USDT -> "BTCUSDT"."""
    return product.symbol()


def parse_symbol(symbol: str) -> CurrencyPair:
    return CurrencyPair.from_concatenated(symbol, QUOTE_ASSETS)


def extract_error(data: Any) -> Optional[ExchangeBusinessError]:
    if isinstance(data, dict) and "code" in data and "msg" in data:
        return ExchangeBusinessError(str(data["msg"]), code=data["code"])
    return None


def order_status(status: str) -> OrderStatus:
    """
    Map a Binance order status onto the normalized lifecycle.

    PARTIALLY_FILLED and PENDING_CANCEL orders are still resting.
    """
    if status in ("NEW", "PARTIALLY_FILLED", "PENDING_CANCEL"):
        return OrderStatus.open()
    if status == "FILLED":
        return OrderStatus.filled()
    if status == "CANCELED":
        return OrderStatus.closed("cancelled")
    if status in ("EXPIRED", "EXPIRED_IN_MATCH"):
        return OrderStatus.closed("expired")
    if status == "REJECTED":
        return OrderStatus.rejected("rejected by exchange")
    raise ValueError(f"Unknown Binance order status: '{status}'")


def _client_uuid(client_order_id: Optional[str]) -> Optional[UUID]:
    # Orders placed outside this library carry Binance-generated ids
    try:
        return UUID(client_order_id) if client_order_id else None
    except ValueError:
        return None


# ============================================
# Wire Models
# ============================================

class BinanceDepth(BaseModel):
    last_update_id: int = Field(..., alias="lastUpdateId")
    bids: List[Tuple[Decimal, Decimal]]
    asks: List[Tuple[Decimal, Decimal]]


class BinanceOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    symbol: str
    order_id: int = Field(..., alias="orderId")
    client_order_id: Optional[str] = Field(default=None, alias="clientOrderId")
    price: Decimal
    orig_qty: Decimal = Field(..., alias="origQty")
    executed_qty: Decimal = Field(..., alias="executedQty")
    status: str
    time_in_force: str = Field(default="GTC", alias="timeInForce")
    type: str = "LIMIT"
    side: str
    good_till_date: Optional[int] = Field(default=None, alias="goodTillDate")

    def to_order(self) -> Order:
        tif = {v: k for k, v in _TIME_IN_FORCE.items()}.get(self.time_in_force, TimeInForce.GOOD_TILL_CANCELLED)
        return Order(
            id=_client_uuid(self.client_order_id),
            server_id=str(self.order_id),
            side=Side.BID if self.side == "BUY" else Side.ASK,
            product=parse_symbol(self.symbol),
            status=order_status(self.status),
            instruction=LimitInstruction(
                price=self.price,
                original_quantity=self.orig_qty,
                remaining_quantity=self.orig_qty - self.executed_qty,
                time_in_force=tif,
                expires_at=to_utc_datetime(self.good_till_date) if self.good_till_date else None,
            ),
        )


class BinanceCancellation(BaseModel):
    symbol: str
    order_id: int = Field(..., alias="orderId")
    orig_client_order_id: Optional[str] = Field(default=None, alias="origClientOrderId")


class BinanceBalance(BaseModel):
    asset: str
    free: Decimal
    locked: Decimal


# ============================================
# Request Descriptors
# ============================================

class GetOrderbook(RequestDescriptor[Orderbook]):
    """**Public**. Order-book snapshot of one product."""

    def __init__(self, product: CurrencyPair, limit: int = 100):
        if limit not in VALID_DEPTH_LIMITS:
            raise ValueError(f"limit must be one of {VALID_DEPTH_LIMITS}, got {limit}")
        self.product = product
        self.limit = limit

    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return "/api/v3/depth"

    def query(self) -> Query:
        return Query([("symbol", product_symbol(self.product)), ("limit", self.limit)])

    def decode(self, response: HttpResponse) -> Orderbook:
        def convert(data: Any) -> Orderbook:
            depth = BinanceDepth.model_validate(data)
            return Orderbook.from_offers(
                asks=[Offer(price=p, quantity=q) for p, q in depth.asks],
                bids=[Offer(price=p, quantity=q) for p, q in depth.bids],
            )

        return decode_with_envelope(response, extract_error, convert)


class PlaceLimitOrder(RequestDescriptor[Order]):
    """
    **Private**. Place a limit order.

    The NewOrder id is sent as newClientOrderId so the answer can be
    matched to the Pending order already tracked locally.

    Raises:
        ValueError: If the time in force has no Binance equivalent
    """

    def __init__(self, new_order: NewOrder):
        if new_order.time_in_force not in _TIME_IN_FORCE:
            raise ValueError(f"Binance does not support time in force {new_order.time_in_force.value}")
        if new_order.time_in_force == TimeInForce.GOOD_TILL_TIME and new_order.expires_at is None:
            raise ValueError("good_till_time orders need expires_at")
        self.new_order = new_order

    def method(self) -> Method:
        return Method.POST

    def path(self) -> str:
        return "/api/v3/order"

    def query(self) -> Query:
        order = self.new_order
        query = Query([
            ("symbol", product_symbol(order.product)),
            ("side", "BUY" if order.side == Side.BID else "SELL"),
            ("type", "LIMIT"),
            ("timeInForce", _TIME_IN_FORCE[order.time_in_force]),
            ("quantity", order.quantity),
            ("price", order.price),
            ("newClientOrderId", order.id),
        ])
        if order.time_in_force == TimeInForce.GOOD_TILL_TIME:
            query.append("goodTillDate", datetime_to_timestamp(order.expires_at, milliseconds=True))
        return query

    def decode(self, response: HttpResponse) -> Order:
        return decode_with_envelope(
            response, extract_error, lambda data: BinanceOrder.model_validate(data).to_order()
        )


class CancelOrder(RequestDescriptor[OrderCancellation]):
    """
    **Private**. Cancel an order by Binance order id or by client order id.

    Raises:
        ValueError: If neither id is given
    """

    def __init__(self, product: CurrencyPair, order_id: Optional[str] = None, client_order_id: Optional[UUID] = None):
        if order_id is None and client_order_id is None:
            raise ValueError("CancelOrder needs order_id or client_order_id")
        self.product = product
        self.order_id = order_id
        self.client_order_id = client_order_id

    def method(self) -> Method:
        return Method.DELETE

    def path(self) -> str:
        return "/api/v3/order"

    def query(self) -> Query:
        query = Query([("symbol", product_symbol(self.product))])
        if self.order_id is not None:
            query.append("orderId", self.order_id)
        else:
            query.append("origClientOrderId", self.client_order_id)
        return query

    def decode(self, response: HttpResponse) -> OrderCancellation:
        def convert(data: Any) -> OrderCancellation:
            cancellation = BinanceCancellation.model_validate(data)
            return OrderCancellation(
                server_id=str(cancellation.order_id),
                id=_client_uuid(cancellation.orig_client_order_id),
                product=parse_symbol(cancellation.symbol),
            )

        return decode_with_envelope(response, extract_error, convert)


class GetOpenOrders(RequestDescriptor[List[Order]]):
    """**Private**. Open orders of one product, or of every product."""

    def __init__(self, product: Optional[CurrencyPair] = None):
        self.product = product

    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return "/api/v3/openOrders"

    def query(self) -> Query:
        if self.product is None:
            return Query()
        return Query([("symbol", product_symbol(self.product))])

    def decode(self, response: HttpResponse) -> List[Order]:
        return decode_with_envelope(
            response, extract_error, lambda data: [BinanceOrder.model_validate(item).to_order() for item in data]
        )


class GetAccount(RequestDescriptor[List[Balance]]):
    """**Private**. Non-zero balances of the account."""

    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return "/api/v3/account"

    def decode(self, response: HttpResponse) -> List[Balance]:
        def convert(data: Dict[str, Any]) -> List[Balance]:
            balances = [BinanceBalance.model_validate(item) for item in data["balances"]]
            return [
                Balance(currency=b.asset, balance=b.free + b.locked, available=b.free)
                for b in balances
                if b.free + b.locked > 0
            ]

        return decode_with_envelope(response, extract_error, convert)


# ============================================
# Authentication
# ============================================

class BinanceAuthenticator(Authenticator):
    """
    Query-signing scheme for SIGNED endpoints.

    Args:
        signer: HMAC parameters (sha256 / raw key / hex output)
        clock: Millisecond timestamp source
        recv_window: Optional recvWindow in milliseconds
    """

    def __init__(
        self,
        signer: Signer = HMAC_SHA256_HEX,
        clock: Callable[[], int] = lambda: current_utc_timestamp(milliseconds=True),
        recv_window: Optional[int] = None,
    ):
        self.signer = signer
        self.clock = clock
        self.recv_window = recv_window

    def authenticate(self, descriptor: RequestDescriptor, credential: Credential) -> SignedParts:
        query = descriptor.query().copy()
        if self.recv_window is not None:
            query.append("recvWindow", self.recv_window)
        query.append("timestamp", self.clock())

        signature = self.signer.sign(credential.secret.get_secret_value(), query.encode())
        query.append("signature", signature)

        headers = descriptor.headers()
        headers["X-MBX-APIKEY"] = credential.key
        return SignedParts(headers=headers, query=query, body=descriptor.body())
