"""
Gemini WebSocket Feed Translator

Translates frames from the Gemini v1 market data stream into
ExchangeEvents. The connection itself is owned by
services.market_feed.MarketFeed.

WebSocket Documentation:
    https://docs.gemini.com/websocket-api/#market-data

Stream:
    One connection per symbol at /v1/marketdata/{symbol}. The stream is
    receive-only; the first `update` lists every level with reason
    `initial`, later updates carry the remaining quantity of each changed
    level. Every frame has a `socket_sequence` that increases by one.

Message -> Event:
    update (initial)   Batch: OrderbookCleared, then OrderbookOfferUpdated per level
    update             OrderbookOfferUpdated (remaining > 0) / OrderbookOfferRemoved (remaining == 0)
                       and TradeExecuted per trade; Batch when there is more than one
    heartbeat          Heartbeat
    {"result":"error"} raises ExchangeBusinessError
    anything else      Unimplemented(<type>)

Desync:
    A socket_sequence gap raises ResyncRequired. Gemini only sends a book
    snapshot on a new connection, so resubscribe_messages() is empty.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.errors import DecodeError, ResyncRequired
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
from core.utils.time import to_utc_datetime

from .api_client import extract_error, product_symbol

_SIDES = {"bid": Side.BID, "ask": Side.ASK}


def _book_side(value: str) -> Side:
    if value not in _SIDES:
        raise ValueError(f"Unknown book side '{value}'")
    return _SIDES[value]


class GeminiFeed(ExchangeFeed):
    """
    Gemini market data stream for a single product.

    Args:
        url: WebSocket host (e.g. "wss://api.gemini.com")
        products: Exactly one product
        heartbeat: Ask the server for heartbeat frames

    Example:
        >>> feed = GeminiFeed("wss://api.gemini.com", [CurrencyPair(base="BTC", quote="USD")])
        >>> feed.url
        'wss://api.gemini.com/v1/marketdata/btcusd?heartbeat=true'
    """

    name = "gemini"

    def __init__(self, url: str, products: List[CurrencyPair], heartbeat: bool = True):
        if len(products) != 1:
            raise ValueError(f"Gemini streams one symbol per connection, got {len(products)} products")
        super().__init__(url, products)
        self.product = self.products[0]
        self.url = f"{url.rstrip('/')}/v1/marketdata/{product_symbol(self.product)}"
        if heartbeat:
            self.url += "?heartbeat=true"
        self._sequence: Optional[int] = None

    # ============================================
    # Outgoing Frames
    # ============================================

    def subscribe_messages(self) -> List[Dict]:
        # Called once per connection; sequences restart at zero
        self._sequence = None
        return []

    # ============================================
    # Incoming Frames
    # ============================================

    def events_from_message(self, message: Dict) -> ExchangeEvent:
        error = extract_error(message)
        if error is not None:
            raise error

        self._check_sequence(message.get("socket_sequence"))

        kind = message.get("type")
        try:
            if kind == "heartbeat":
                return Heartbeat()
            if kind == "update":
                return self._update(message)
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise DecodeError(f"Malformed Gemini {kind} message: {e}", body=str(message)) from e

        return Unimplemented(diagnostic=str(kind))

    def _check_sequence(self, sequence: Any) -> None:
        if sequence is None:
            return
        if self._sequence is not None and sequence != self._sequence + 1:
            expected = self._sequence + 1
            self._sequence = sequence
            raise ResyncRequired(
                f"Gemini {self.product} socket_sequence jumped from {expected} to {sequence}",
                product=self.product,
            )
        self._sequence = sequence

    def _update(self, message: Dict[str, Any]) -> ExchangeEvent:
        changes = message["events"]
        initial = any(change.get("reason") == "initial" for change in changes)
        timestamp = message.get("timestampms")

        events: List[ExchangeEvent] = [OrderbookCleared(product=self.product)] if initial else []
        for change in changes:
            kind = change.get("type")
            if kind == "change":
                events.extend(self._change(change))
            elif kind == "trade":
                events.extend(self._trade(change, timestamp))
            # auction_open / auction_indicative / auction_result do not touch the book

        if len(events) == 1:
            return events[0]
        return Batch(events=events)

    def _change(self, change: Dict[str, Any]) -> List[ExchangeEvent]:
        side = _book_side(change["side"])
        offer = Offer(price=Decimal(change["price"]), quantity=Decimal(change["remaining"]))
        if offer.quantity > 0:
            return [OrderbookOfferUpdated(product=self.product, side=side, offer=offer)]
        if change.get("reason") == "initial":
            return []
        return [OrderbookOfferRemoved(product=self.product, side=side, offer=offer)]

    def _trade(self, change: Dict[str, Any], timestamp: Optional[int]) -> List[ExchangeEvent]:
        if change["makerSide"] == "auction":
            return []
        trade = Trade(
            maker_side=_book_side(change["makerSide"]),
            price=Decimal(change["price"]),
            quantity=Decimal(change["amount"]),
            timestamp=to_utc_datetime(timestamp) if timestamp is not None else None,
        )
        return [TradeExecuted(product=self.product, trade=trade)]
