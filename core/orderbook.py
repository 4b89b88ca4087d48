"""
Order Book & Market

An Orderbook keeps two sequences of Offer, asks and bids, each sorted
ascending by price with unique prices. The only mutations are
add_or_update() and remove(); both locate the level with a binary search.

Invariants:
    - asks and bids are strictly ascending by price (no duplicate prices)
    - no stored offer has a zero quantity; an empty level is an absent entry
    - remove() of a price the book never had is a desync, not a no-op

A Market pairs one Orderbook with the public trade history of a product.
"""

from bisect import bisect_left
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from core.errors import ResyncRequired
from core.schemas import CurrencyPair, Offer, Side, Trade


def _price(offer: Offer) -> Decimal:
    return offer.price


class Orderbook:
    """
    Sorted ask/bid ladders for one product.

    Example:
        >>> book = Orderbook()
        >>> book.add_or_update(Side.BID, Offer(price=10, quantity=1))
        >>> book.add_or_update(Side.ASK, Offer(price=11, quantity=1))
        >>> book.highest_bid(), book.lowest_ask()
        (Offer(price=Decimal('10'), quantity=Decimal('1')), Offer(price=Decimal('11'), quantity=Decimal('1')))
        >>> book.supply(), book.demand()
        (Decimal('1'), Decimal('1'))
    """

    def __init__(self) -> None:
        self._asks: List[Offer] = []
        self._bids: List[Offer] = []

    @classmethod
    def from_offers(cls, asks: Iterable[Offer] = (), bids: Iterable[Offer] = ()) -> "Orderbook":
        """
        Build a book from unordered offers; later offers at an existing price
        overwrite earlier ones and zero quantities are skipped.
        """
        book = cls()
        for offer in asks:
            if offer.quantity > 0:
                book.add_or_update(Side.ASK, offer)
        for offer in bids:
            if offer.quantity > 0:
                book.add_or_update(Side.BID, offer)
        return book

    @property
    def asks(self) -> Tuple[Offer, ...]:
        return tuple(self._asks)

    @property
    def bids(self) -> Tuple[Offer, ...]:
        return tuple(self._bids)

    def _ladder(self, side: Side) -> List[Offer]:
        return self._asks if side == Side.ASK else self._bids

    # ============================================
    # Mutation
    # ============================================

    def add_or_update(self, side: Side, offer: Offer) -> None:
        """
        Insert a new price level or replace the quantity of an existing one.

        Args:
            side: Ladder to update
            offer: Level to store; quantity must be > 0

        Raises:
            ValueError: If offer.quantity is zero (express that as remove())
        """
        if offer.quantity <= 0:
            raise ValueError(f"Cannot store zero-quantity offer at {offer.price}; use remove()")

        ladder = self._ladder(side)
        index = bisect_left(ladder, offer.price, key=_price)
        if index < len(ladder) and ladder[index].price == offer.price:
            # Same price, so the position is unchanged.
            ladder[index] = offer
        else:
            ladder.insert(index, offer)

    def remove(self, side: Side, offer: Offer) -> Offer:
        """
        Delete the level at offer.price.

        Only the price of `offer` is used to locate the level.

        Returns:
            The offer that was removed

        Raises:
            ResyncRequired: If the book has no level at that price
        """
        ladder = self._ladder(side)
        index = bisect_left(ladder, offer.price, key=_price)
        if index < len(ladder) and ladder[index].price == offer.price:
            return ladder.pop(index)
        raise ResyncRequired(f"No {side.value} level at price {offer.price} to remove")

    def clear(self) -> None:
        self._asks.clear()
        self._bids.clear()

    # ============================================
    # Queries
    # ============================================

    def highest_bid(self) -> Optional[Offer]:
        return self._bids[-1] if self._bids else None

    def lowest_ask(self) -> Optional[Offer]:
        return self._asks[0] if self._asks else None

    def supply(self) -> Decimal:
        """Total resting quantity on the ask side."""
        return sum((offer.quantity for offer in self._asks), Decimal(0))

    def demand(self) -> Decimal:
        """Total resting quantity on the bid side."""
        return sum((offer.quantity for offer in self._bids), Decimal(0))

    def spread(self) -> Optional[Decimal]:
        ask, bid = self.lowest_ask(), self.highest_bid()
        if ask is None or bid is None:
            return None
        return ask.price - bid.price

    def depth(self, side: Side) -> int:
        return len(self._ladder(side))

    def copy(self) -> "Orderbook":
        book = Orderbook()
        book._asks = list(self._asks)
        book._bids = list(self._bids)
        return book

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Orderbook):
            return NotImplemented
        return self._asks == other._asks and self._bids == other._bids

    def __repr__(self) -> str:
        return f"<Orderbook asks={len(self._asks)} bids={len(self._bids)}>"


class Market:
    """
    One product of an exchange: its order book and public trades.

    Attributes:
        product: The CurrencyPair identifying this market
        orderbook: Current book
        trades: Public trades in arrival order
    """

    def __init__(self, product: CurrencyPair, orderbook: Optional[Orderbook] = None):
        self.product = product
        self.orderbook = orderbook or Orderbook()
        self.trades: List[Trade] = []

    def copy(self) -> "Market":
        market = Market(self.product, self.orderbook.copy())
        market.trades = list(self.trades)
        return market

    def __repr__(self) -> str:
        return f"<Market {self.product} {self.orderbook!r} trades={len(self.trades)}>"
