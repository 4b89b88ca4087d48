"""
Normalized Data Schemas

Pydantic models for every value shared between the request pipeline, the
exchange adapters and the exchange-state engine. Whatever exchange the data
comes from, it is normalized into these types before it reaches
ExchangeState.

Models:
    - Currency: opaque, upper-cased currency identifier (validated string)
    - CurrencyPair: immutable (base, quote) pair identifying a market
    - Side: ask / bid
    - Offer: resting (price, quantity) order-book entry
    - Trade: public trade print
    - TimeInForce, OrderStatus, LimitInstruction: order vocabulary
    - NewOrder: a not-yet-acknowledged order request
    - Order: an order known to the exchange (or pending acknowledgement)
    - Balance: available funds in one currency
    - Credential: API key material, never rendered in logs

Key Principle:
    Currencies are data, not an enumeration. Adapters translate their own
    symbol formats (BTC-USD, btcusd, BTCUSDT) into CurrencyPair and back.
"""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Iterable, Literal, Optional
from uuid import UUID, uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    model_validator,
)


# ============================================
# Currency & Product
# ============================================

_CURRENCY_RE = re.compile(r"^[A-Z0-9]{1,16}$")


def parse_currency(value: str) -> str:
    """
    Normalize and validate a currency identifier.

    Args:
        value: Raw identifier, e.g. "btc", " ETH "

    Returns:
        Upper-cased identifier, e.g. "BTC"

    Raises:
        ValueError: If the identifier is empty or not alphanumeric
    """
    if not isinstance(value, str):
        raise ValueError(f"Currency must be a string, got {type(value).__name__}")
    normalized = value.strip().upper()
    if not _CURRENCY_RE.match(normalized):
        raise ValueError(f"Invalid currency identifier: '{value}'")
    return normalized


Currency = Annotated[str, AfterValidator(parse_currency)]


class CurrencyPair(BaseModel):
    """
    Ordered (base, quote) pair of currencies identifying one market.

    Immutable and hashable, so it can key the markets of an ExchangeState.

    Example:
        >>> btc_usd = CurrencyPair(base="btc", quote="usd")
        >>> btc_usd.symbol("-")
        'BTC-USD'
        >>> CurrencyPair.parse("ETH_BTC") == CurrencyPair(base="ETH", quote="BTC")
        True
    """

    model_config = ConfigDict(frozen=True)

    base: Currency
    quote: Currency

    @classmethod
    def parse(cls, text: str) -> "CurrencyPair":
        """
        Parse a separated product symbol ("BTC-USD", "BTC_USD", "BTC/USD").

        Raises:
            ValueError: If the text has no separator; unseparated symbols
                        such as "BTCUSDT" are ambiguous and must be mapped
                        by the adapter
        """
        parts = re.split(r"[-_/]", text.strip())
        if len(parts) != 2:
            raise ValueError(f"Cannot parse currency pair from '{text}'")
        return cls(base=parts[0], quote=parts[1])

    @classmethod
    def from_concatenated(cls, symbol: str, quotes: Iterable[str]) -> "CurrencyPair":
        """
        Split an unseparated symbol ("BTCUSDT", "ethbtc") using known quotes.

        Longer quotes are tried first, so "BTCUSDT" resolves to USDT rather
        than a hypothetical "T" quote.

        Raises:
            ValueError: If no known quote currency ends the symbol
        """
        upper = symbol.strip().upper()
        for quote in sorted((q.upper() for q in quotes), key=len, reverse=True):
            if upper.endswith(quote) and len(upper) > len(quote):
                return cls(base=upper[: -len(quote)], quote=quote)
        raise ValueError(f"Cannot split symbol '{symbol}' into base and quote")

    def symbol(self, separator: str = "") -> str:
        return f"{self.base}{separator}{self.quote}"

    def __str__(self) -> str:
        return self.symbol("/")


# ============================================
# Order Book Vocabulary
# ============================================

class Side(str, Enum):
    """Side of the book an offer rests on (or the maker side of a trade)."""

    ASK = "ask"
    BID = "bid"


class Offer(BaseModel):
    """
    A resting (price, quantity) entry of an order book.

    A quantity of zero is accepted here because exchange feeds use it on
    the wire to mean "level removed"; Orderbook never stores one.
    """

    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(..., gt=0, description="Price level")
    quantity: Decimal = Field(..., ge=0, description="Resting quantity at this level")

    def total(self) -> Decimal:
        """Notional value of the level (price x quantity)."""
        return self.price * self.quantity


class Trade(BaseModel):
    """A public trade print; not specific to any account."""

    model_config = ConfigDict(frozen=True)

    maker_side: Side
    price: Decimal = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    timestamp: Optional[datetime] = None


# ============================================
# Orders
# ============================================

class TimeInForce(str, Enum):
    GOOD_TILL_CANCELLED = "good_till_cancelled"
    GOOD_TILL_TIME = "good_till_time"
    GOOD_FOR_DAY = "good_for_day"
    GOOD_FOR_HOUR = "good_for_hour"
    GOOD_FOR_MIN = "good_for_min"
    # Unlike FOK, IOC orders can be partially filled.
    IMMEDIATE_OR_CANCEL = "immediate_or_cancel"
    FILL_OR_KILL = "fill_or_kill"


OrderState = Literal["pending", "open", "filled", "closed", "rejected"]

_TRANSITIONS = {
    "pending": {"open", "rejected", "filled", "closed"},
    "open": {"open", "filled", "closed"},
    "filled": set(),
    "closed": set(),
    "rejected": set(),
}


class OrderStatus(BaseModel):
    """
    Lifecycle status of an order.

    Pending (placed, not yet acknowledged) -> Open (resting) ->
    Filled | Closed(reason) | Rejected(reason). Rejected is reachable only
    from Pending; terminal states never transition again.

    Example:
        >>> OrderStatus.pending().can_transition_to(OrderStatus.rejected("insufficient funds"))
        True
        >>> OrderStatus.filled().is_terminal
        True
    """

    model_config = ConfigDict(frozen=True)

    state: OrderState
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _check_reason(self) -> "OrderStatus":
        if self.state in ("closed", "rejected") and not self.reason:
            raise ValueError(f"{self.state} status requires a reason")
        if self.state not in ("closed", "rejected") and self.reason is not None:
            raise ValueError(f"{self.state} status does not carry a reason")
        return self

    @classmethod
    def pending(cls) -> "OrderStatus":
        return cls(state="pending")

    @classmethod
    def open(cls) -> "OrderStatus":
        return cls(state="open")

    @classmethod
    def filled(cls) -> "OrderStatus":
        return cls(state="filled")

    @classmethod
    def closed(cls, reason: str) -> "OrderStatus":
        return cls(state="closed", reason=reason)

    @classmethod
    def rejected(cls, reason: str) -> "OrderStatus":
        return cls(state="rejected", reason=reason)

    @property
    def is_terminal(self) -> bool:
        return self.state in ("filled", "closed", "rejected")

    def can_transition_to(self, other: "OrderStatus") -> bool:
        return other.state in _TRANSITIONS[self.state]

    def __str__(self) -> str:
        return f"{self.state}({self.reason})" if self.reason else self.state


class LimitInstruction(BaseModel):
    """Limit order instruction: price, quantities and time in force."""

    type: Literal["limit"] = "limit"
    price: Decimal = Field(..., gt=0)
    original_quantity: Decimal = Field(..., gt=0)
    remaining_quantity: Decimal = Field(..., ge=0)
    time_in_force: TimeInForce = TimeInForce.GOOD_TILL_CANCELLED
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_quantities(self) -> "LimitInstruction":
        if self.remaining_quantity > self.original_quantity:
            raise ValueError(
                f"remaining_quantity ({self.remaining_quantity}) exceeds "
                f"original_quantity ({self.original_quantity})"
            )
        if self.time_in_force == TimeInForce.GOOD_TILL_TIME and self.expires_at is None:
            raise ValueError("good_till_time requires expires_at")
        return self


class Order(BaseModel):
    """
    An order as tracked by ExchangeState.

    Attributes:
        id: Client-assigned id (absent for orders discovered from the server)
        server_id: Exchange-assigned id (absent until acknowledged)
        side: BID for buys, ASK for sells
        product: Market the order rests on
        status: Lifecycle status
        instruction: Only limit orders are modelled
    """

    id: Optional[UUID] = None
    server_id: Optional[str] = None
    side: Side
    product: CurrencyPair
    status: OrderStatus
    instruction: LimitInstruction

    @model_validator(mode="after")
    def _check_identity(self) -> "Order":
        if self.id is None and self.server_id is None:
            raise ValueError("Order needs a client id or a server id")
        return self

    def same_order(self, other: "Order") -> bool:
        """
        Identifier equality used to locate an order in the order list.

        Two orders are the same when their client ids are both present and
        equal, or their server ids are both present and equal.
        """
        if self.id is not None and other.id is not None:
            return self.id == other.id
        if self.server_id is not None and other.server_id is not None:
            return self.server_id == other.server_id
        return False


class NewOrder(BaseModel):
    """A limit order the caller wants to place."""

    id: UUID = Field(default_factory=uuid4)
    side: Side
    product: CurrencyPair
    price: Decimal = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    time_in_force: TimeInForce = TimeInForce.GOOD_TILL_CANCELLED
    expires_at: Optional[datetime] = None

    def to_order(self) -> Order:
        """The Pending order this request becomes before the exchange answers."""
        return Order(
            id=self.id,
            server_id=None,
            side=self.side,
            product=self.product,
            status=OrderStatus.pending(),
            instruction=LimitInstruction(
                price=self.price,
                original_quantity=self.quantity,
                remaining_quantity=self.quantity,
                time_in_force=self.time_in_force,
                expires_at=self.expires_at,
            ),
        )


class OrderCancellation(BaseModel):
    """Acknowledgement of a cancel request."""

    server_id: str
    id: Optional[UUID] = None
    product: Optional[CurrencyPair] = None


# ============================================
# Account
# ============================================

class Balance(BaseModel):
    currency: Currency
    balance: Decimal
    available: Optional[Decimal] = None


class Credential(BaseModel):
    """
    API key material for one exchange account.

    The secret and passphrase are SecretStr so they never appear in
    reprs, logs or model_dump() output.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    secret: SecretStr
    passphrase: Optional[SecretStr] = None

    def __repr__(self) -> str:
        return f"Credential(key='{self.key[:4]}...')"
