"""
GDAX WebSocket Feed Translator

Builds subscription frames for the GDAX WebSocket feed and translates the
frames it sends into ExchangeEvents. The connection itself is owned by
services.market_feed.MarketFeed.

WebSocket Documentation:
    https://docs.cloud.coinbase.com/exchange/docs/websocket-overview

Channels Used:
    - level2:    `snapshot` once per product, then `l2update` deltas
    - heartbeat: one `heartbeat` per second per product
    - matches:   `match` for each public trade

Message -> Event:
    snapshot      Batch: OrderbookCleared, then OrderbookOfferUpdated per level
    l2update      OrderbookOfferUpdated (size > 0) / OrderbookOfferRemoved (size == 0)
    heartbeat     Heartbeat
    ticker/match  TradeExecuted
    error         raises ExchangeBusinessError
    anything else Unimplemented(<type>)
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.errors import DecodeError, ExchangeBusinessError
from core.events import (
    Batch,
    ExchangeEvent,
    Heartbeat,
    OrderbookCleared,
    OrderbookOfferRemoved,
    OrderbookOfferUpdated,
    TradeExecuted,
    Unimplemented,
)
from core.exchange_interface import ExchangeFeed
from core.schemas import CurrencyPair, Offer, Side, Trade

from .api_client import product_id, side_from_wire

CHANNELS = ["level2", "heartbeat", "matches"]


def _opposite(side: Side) -> Side:
    return Side.BID if side == Side.ASK else Side.ASK


class GdaxFeed(ExchangeFeed):
    """
    GDAX level-2 market feed.

    Example:
        >>> feed = GdaxFeed(settings.ws_url_for("gdax"), [CurrencyPair(base="BTC", quote="USD")])
        >>> feed.subscribe_messages()
        [{'type': 'subscribe', 'product_ids': ['BTC-USD'], 'channels': ['level2', 'heartbeat', 'matches']}]
    """

    name = "gdax"

    def __init__(self, url: str, products: List[CurrencyPair], channels: Optional[List[str]] = None):
        super().__init__(url, products)
        self.channels = list(channels or CHANNELS)

    # ============================================
    # Outgoing Frames
    # ============================================

    def subscribe_messages(self) -> List[Dict]:
        return [{
            "type": "subscribe",
            "product_ids": [product_id(p) for p in self.products],
            "channels": self.channels,
        }]

    def resubscribe_messages(self, product: CurrencyPair) -> List[Dict]:
        # A new level2 subscription starts with a fresh snapshot
        return [
            {"type": "unsubscribe", "product_ids": [product_id(product)], "channels": ["level2"]},
            {"type": "subscribe", "product_ids": [product_id(product)], "channels": ["level2"]},
        ]

    # ============================================
    # Incoming Frames
    # ============================================

    def events_from_message(self, message: Dict) -> ExchangeEvent:
        kind = message.get("type")
        try:
            if kind == "snapshot":
                return self._snapshot(message)
            if kind == "l2update":
                return self._l2update(message)
            if kind == "heartbeat":
                return Heartbeat()
            if kind in ("ticker", "match", "last_match"):
                return self._trade(message)
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            # ValidationError is a ValueError
            raise DecodeError(f"Malformed GDAX {kind} message: {e}", body=str(message)) from e

        if kind == "error":
            raise ExchangeBusinessError(str(message.get("message", "unknown error")), code=message.get("reason"))

        return Unimplemented(diagnostic=str(kind))

    def _snapshot(self, message: Dict[str, Any]) -> Batch:
        product = CurrencyPair.parse(message["product_id"])
        events: List[ExchangeEvent] = [OrderbookCleared(product=product)]
        for side, levels in ((Side.ASK, message["asks"]), (Side.BID, message["bids"])):
            for price, size in levels:
                offer = Offer(price=Decimal(price), quantity=Decimal(size))
                if offer.quantity > 0:
                    events.append(OrderbookOfferUpdated(product=product, side=side, offer=offer))
        return Batch(events=events)

    def _l2update(self, message: Dict[str, Any]) -> ExchangeEvent:
        product = CurrencyPair.parse(message["product_id"])
        events: List[ExchangeEvent] = []
        for wire_side, price, size in message["changes"]:
            side = side_from_wire(wire_side)
            offer = Offer(price=Decimal(price), quantity=Decimal(size))
            if offer.quantity == 0:
                events.append(OrderbookOfferRemoved(product=product, side=side, offer=offer))
            else:
                events.append(OrderbookOfferUpdated(product=product, side=side, offer=offer))
        if len(events) == 1:
            return events[0]
        return Batch(events=events)

    def _trade(self, message: Dict[str, Any]) -> ExchangeEvent:
        # ticker reports the taker side, match reports the maker side
        if message["type"] == "ticker":
            if "last_size" not in message:
                return Unimplemented(diagnostic="ticker without trade")
            maker_side = _opposite(side_from_wire(message["side"]))
            quantity = message["last_size"]
        else:
            maker_side = side_from_wire(message["side"])
            quantity = message["size"]

        trade = Trade(
            maker_side=maker_side,
            price=Decimal(message["price"]),
            quantity=Decimal(quantity),
            timestamp=message.get("time"),
        )
        return TradeExecuted(product=CurrencyPair.parse(message["product_id"]), trade=trade)
