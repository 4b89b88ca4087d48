"""
Exchange State Engine

ExchangeState is the in-memory, event-sourced view of one exchange
connection: its markets (one Orderbook and trade list per CurrencyPair) and
the orders it is tracking. It is mutated only through apply().

Concurrency:
    A single re-entrant lock guards every apply() and every read. A Batch
    holds the lock for its whole length, so a reader on another thread sees
    either none or all of it.

Failure semantics:
    Application is not transactional. If an event in a Batch violates an
    invariant, the events before it stay applied and the error propagates.
    Desync cases (unknown price level, unknown order, unknown market) raise
    ResyncRequired so a feed can rebuild the affected market; registering a
    market twice raises InvariantViolation, as does an OrderFilled whose
    status is not a legal next step for the tracked order
    (OrderStatus.can_transition_to).

Snapshots:
    A snapshot Batch starts with OrderbookCleared, so it replaces the book
    instead of merging into it.

Usage:
    state = ExchangeState(1, "gdax")
    state.apply(MarketAdded(product=btc_usd))
    state.apply(OrderbookOfferUpdated(product=btc_usd, side=Side.BID, offer=offer))
    best_bid, best_ask = state.best_prices(btc_usd)
"""

import threading
from typing import Dict, List, Optional, Tuple

from core.errors import InvariantViolation, ResyncRequired
from core.events import (
    Batch,
    ExchangeEvent,
    Heartbeat,
    MarketAdded,
    OrderAdded,
    OrderbookCleared,
    OrderbookOfferRemoved,
    OrderbookOfferUpdated,
    OrderClosed,
    OrderFilled,
    OrderOpened,
    TradeExecuted,
    Unimplemented,
)
from core.logging import get_logger
from core.orderbook import Market
from core.schemas import CurrencyPair, Offer, Order


class ExchangeState:
    """
    Markets and orders of one exchange connection.

    Attributes:
        id: Numeric identity of the connection
        name: Exchange name (e.g. "gdax")
    """

    def __init__(self, id: int, name: str):
        self.id = id
        self.name = name
        self._markets: Dict[CurrencyPair, Market] = {}
        self._orders: List[Order] = []
        self._lock = threading.RLock()
        self.logger = get_logger(__name__)

    # ============================================
    # Markets
    # ============================================

    def add_market(self, product: CurrencyPair) -> None:
        """
        Register a new, empty market.

        Raises:
            InvariantViolation: If a market for this product already exists
        """
        with self._lock:
            if product in self._markets:
                self.logger.error(f"[{self.name}] Market {product} already exists")
                raise InvariantViolation(f"Market {product} already exists on {self.name}")
            self._markets[product] = Market(product)
        self.logger.info(f"[{self.name}] Market added: {product}")

    def market(self, product: CurrencyPair) -> Optional[Market]:
        """Copy of a market, or None if the product is not registered."""
        with self._lock:
            market = self._markets.get(product)
            return market.copy() if market is not None else None

    def products(self) -> List[CurrencyPair]:
        with self._lock:
            return list(self._markets)

    def reset_market(self, product: CurrencyPair) -> None:
        """Clear a market's book so the next snapshot rebuilds it."""
        with self._lock:
            self._require_market(product).orderbook.clear()
        self.logger.warning(f"[{self.name}] Order book for {product} cleared for resync")

    def best_prices(self, product: CurrencyPair) -> Tuple[Optional[Offer], Optional[Offer]]:
        """(highest bid, lowest ask) of a market, read atomically."""
        with self._lock:
            book = self._require_market(product).orderbook
            return book.highest_bid(), book.lowest_ask()

    # ============================================
    # Orders
    # ============================================

    def orders(self) -> List[Order]:
        with self._lock:
            return [order.model_copy() for order in self._orders]

    def open_orders(self) -> List[Order]:
        with self._lock:
            return [order.model_copy() for order in self._orders if not order.status.is_terminal]

    def find_order(self, order: Order) -> Optional[Order]:
        with self._lock:
            index = self._order_index(order)
            return self._orders[index].model_copy() if index is not None else None

    # ============================================
    # Event Application
    # ============================================

    def apply(self, event: ExchangeEvent) -> None:
        """
        Apply one event; the single mutation entry point.

        Raises:
            InvariantViolation: If the event contradicts the current state
                                (ResyncRequired for desync cases)
        """
        with self._lock:
            self._apply(event)

    def _apply(self, event: ExchangeEvent) -> None:
        self.logger.debug(f"[{self.name}] Applying {event.type}")

        if isinstance(event, (Heartbeat, Unimplemented)):
            return

        if isinstance(event, MarketAdded):
            self.add_market(event.product)

        elif isinstance(event, OrderbookOfferUpdated):
            self._require_market(event.product).orderbook.add_or_update(event.side, event.offer)

        elif isinstance(event, OrderbookOfferRemoved):
            try:
                self._require_market(event.product).orderbook.remove(event.side, event.offer)
            except ResyncRequired as e:
                e.product = event.product
                self.logger.error(f"[{self.name}] {event.product}: {e}")
                raise

        elif isinstance(event, OrderbookCleared):
            self._require_market(event.product).orderbook.clear()

        elif isinstance(event, TradeExecuted):
            self._require_market(event.product).trades.append(event.trade)

        elif isinstance(event, (OrderAdded, OrderOpened)):
            self._orders.append(event.order)

        elif isinstance(event, OrderFilled):
            index = self._require_order(event.order)
            current = self._orders[index].status
            if not current.can_transition_to(event.order.status):
                self.logger.error(f"[{self.name}] Illegal order transition {current} -> {event.order.status}")
                raise InvariantViolation(f"Order cannot move from {current} to {event.order.status}")
            self._orders[index] = event.order

        elif isinstance(event, OrderClosed):
            del self._orders[self._require_order(event.order)]

        elif isinstance(event, Batch):
            for inner in event.events:
                self._apply(inner)

        else:
            raise TypeError(f"Unknown exchange event: {event!r}")

    # ============================================
    # Lookup Helpers (callers hold the lock)
    # ============================================

    def _require_market(self, product: CurrencyPair) -> Market:
        market = self._markets.get(product)
        if market is None:
            self.logger.error(f"[{self.name}] Event for unknown market {product}")
            raise ResyncRequired(f"No market {product} on {self.name}", product=product)
        return market

    def _order_index(self, order: Order) -> Optional[int]:
        for index, existing in enumerate(self._orders):
            if existing.same_order(order):
                return index
        return None

    def _require_order(self, order: Order) -> int:
        index = self._order_index(order)
        if index is None:
            ident = order.id or order.server_id
            self.logger.error(f"[{self.name}] Event for unknown order {ident}")
            raise ResyncRequired(f"No order {ident} tracked on {self.name}", product=order.product)
        return index

    # ============================================
    # Snapshots
    # ============================================

    def snapshot(self) -> "ExchangeState":
        """
        A consistent, independent copy of the whole state.

        Taken under the lock, so it never contains half of a Batch.
        """
        with self._lock:
            copy = ExchangeState(self.id, self.name)
            copy._markets = {product: market.copy() for product, market in self._markets.items()}
            copy._orders = [order.model_copy() for order in self._orders]
            return copy

    def __repr__(self) -> str:
        return f"<ExchangeState(id={self.id}, name='{self.name}', markets={len(self._markets)}, orders={len(self._orders)})>"
