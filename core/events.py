"""
Exchange Events

ExchangeEvent is the tagged union of every normalized change an exchange can
report. Events are the only legal way to mutate an ExchangeState: adapters
translate REST results and WebSocket frames into events, and
ExchangeState.apply() consumes them.

Variants (discriminated by the `type` field):
    heartbeat                  liveness only
    market_added               new empty market for a product
    orderbook_offer_updated    add or replace a price level
    orderbook_offer_removed    delete a price level
    orderbook_cleared          empty a market's book; heads every snapshot Batch
    trade_executed             append a public trade
    order_added                order placed (usually Pending)
    order_opened               order acknowledged and resting
    order_filled               replace a tracked order
    order_closed               drop a tracked order
    batch                      ordered list of events
    unimplemented              exchange message we chose not to model

Usage:
    event = OrderbookOfferUpdated(product=btc_usd, side=Side.BID, offer=Offer(price=10, quantity=1))
    state.apply(event)

    # Events round-trip through JSON, e.g. for recording and replaying feeds
    replayed = parse_event(event.model_dump(mode="json"))
"""

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from core.schemas import CurrencyPair, Offer, Order, Side, Trade


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class Heartbeat(_Event):
    type: Literal["heartbeat"] = "heartbeat"


class MarketAdded(_Event):
    type: Literal["market_added"] = "market_added"
    product: CurrencyPair


class OrderbookOfferUpdated(_Event):
    type: Literal["orderbook_offer_updated"] = "orderbook_offer_updated"
    product: CurrencyPair
    side: Side
    offer: Offer


class OrderbookOfferRemoved(_Event):
    type: Literal["orderbook_offer_removed"] = "orderbook_offer_removed"
    product: CurrencyPair
    side: Side
    offer: Offer


class OrderbookCleared(_Event):
    type: Literal["orderbook_cleared"] = "orderbook_cleared"
    product: CurrencyPair


class TradeExecuted(_Event):
    type: Literal["trade_executed"] = "trade_executed"
    product: CurrencyPair
    trade: Trade


class OrderAdded(_Event):
    type: Literal["order_added"] = "order_added"
    order: Order


class OrderOpened(_Event):
    type: Literal["order_opened"] = "order_opened"
    order: Order


class OrderFilled(_Event):
    type: Literal["order_filled"] = "order_filled"
    order: Order


class OrderClosed(_Event):
    type: Literal["order_closed"] = "order_closed"
    order: Order


class Unimplemented(_Event):
    type: Literal["unimplemented"] = "unimplemented"
    diagnostic: str = ""


class Batch(_Event):
    """Ordered group of events applied one after another."""

    type: Literal["batch"] = "batch"
    events: List["ExchangeEvent"] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.events)


ExchangeEvent = Annotated[
    Union[
        Heartbeat,
        MarketAdded,
        OrderbookOfferUpdated,
        OrderbookOfferRemoved,
        OrderbookCleared,
        TradeExecuted,
        OrderAdded,
        OrderOpened,
        OrderFilled,
        OrderClosed,
        Unimplemented,
        Batch,
    ],
    Field(discriminator="type"),
]

Batch.model_rebuild()

_event_adapter: TypeAdapter = TypeAdapter(ExchangeEvent)


def parse_event(data: Dict[str, Any]) -> ExchangeEvent:
    """
    Validate a JSON-shaped dict into the matching event variant.

    Raises:
        pydantic.ValidationError: If the dict is not a valid event
    """
    return _event_adapter.validate_python(data)
