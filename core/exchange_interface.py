"""
Exchange Interface — Abstract Contract for All Exchange Adapters

An adapter does not perform I/O. It is a factory of RequestDescriptors for
one exchange, plus the knowledge needed to authenticate them and to turn
their results into ExchangeEvents. The Dispatcher sends the descriptors;
ExchangeState consumes the events.

Example:
    adapter = ExchangeManager().create("gdax", credential=settings.credential_for("gdax"))

    with HttpxClient(timeout=settings.request_timeout) as http:
        dispatcher = adapter.dispatcher(http)

        book = dispatcher.send(adapter.orderbook_request(btc_usd))
        state.apply(adapter.events_from_orderbook(btc_usd, book))

        order = dispatcher.send(adapter.authenticate(adapter.place_order_request(new_order)))
        state.apply(adapter.events_from_placed_order(order))

Capabilities System:
    Each adapter declares which requests it can build via the `capabilities`
    dict. Factories for unsupported capabilities raise NotImplementedError,
    so callers should check supports() first.

        capabilities = {
            "orderbook": True,
            "place_order": True,
            "cancel_order": True,
            "open_orders": True,
            "balances": True,
            "market_feed": False,  # No WebSocket translator for this exchange
        }
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from core.api import Authenticator, AuthenticatedRequest, RequestDescriptor
from core.config import settings
from core.dispatcher import Dispatcher
from core.errors import SigningError
from core.events import Batch, ExchangeEvent, OrderAdded, OrderbookCleared, OrderbookOfferUpdated, OrderOpened
from core.logging import get_logger
from core.orderbook import Orderbook
from core.schemas import Balance, Credential, CurrencyPair, NewOrder, Order, OrderCancellation, Side
from core.transport import HttpClient


class ExchangeAdapter(ABC):
    """
    Abstract Base Class for Exchange Adapters

    Class Attributes:
        name: Unique identifier for the exchange (lowercase, e.g. "gdax")
        capabilities: Which descriptor factories this adapter implements
        authenticator: Signing scheme applied by authenticate()

    Args:
        credential: API key material; only needed for private requests
        host: REST host override (defaults to settings.host_for(name))
    """

    # ============================================
    # Class Attributes (must be set by subclasses)
    # ============================================

    name: str

    capabilities: Dict[str, bool] = {
        "orderbook": False,
        "place_order": False,
        "cancel_order": False,
        "open_orders": False,
        "balances": False,
        "market_feed": False,
    }

    authenticator: Authenticator

    def __init__(self, credential: Optional[Credential] = None, host: Optional[str] = None):
        self.credential = credential
        self.host = host or settings.host_for(self.name)
        self.logger = get_logger(f"exchanges.{self.name}")

    # ============================================
    # Descriptor Factories
    # ============================================

    @abstractmethod
    def orderbook_request(self, product: CurrencyPair) -> RequestDescriptor[Orderbook]:
        """Public request for a full order-book snapshot of one product."""
        ...

    def place_order_request(self, new_order: NewOrder) -> RequestDescriptor[Order]:
        raise NotImplementedError(f"{self.name} does not support place_order")

    def cancel_order_request(self, order: Order) -> RequestDescriptor[OrderCancellation]:
        raise NotImplementedError(f"{self.name} does not support cancel_order")

    def open_orders_request(self) -> RequestDescriptor[List[Order]]:
        raise NotImplementedError(f"{self.name} does not support open_orders")

    def balances_request(self) -> RequestDescriptor[List[Balance]]:
        raise NotImplementedError(f"{self.name} does not support balances")

    # ============================================
    # Authentication & Dispatch
    # ============================================

    def authenticate(self, descriptor: RequestDescriptor) -> AuthenticatedRequest:
        """
        Wrap a descriptor with this adapter's credential and signing scheme.

        Raises:
            SigningError: If the adapter was created without a credential
        """
        if self.credential is None:
            raise SigningError(f"{self.name}: credential required for {descriptor.__class__.__name__}")
        return AuthenticatedRequest(descriptor, self.credential, self.authenticator)

    def dispatcher(self, http_client: HttpClient) -> Dispatcher:
        """A Dispatcher bound to this adapter's host."""
        return Dispatcher(self.host, http_client, exchange=self.name)

    def supports(self, feature: str) -> bool:
        return self.capabilities.get(feature, False)

    # ============================================
    # Result -> Event Translation
    # ============================================

    def events_from_orderbook(self, product: CurrencyPair, book: Orderbook) -> Batch:
        """
        Events that load a REST order-book snapshot into ExchangeState.

        The market must already exist. The Batch starts with
        OrderbookCleared, so it replaces whatever the book held.
        """
        events: List[ExchangeEvent] = [OrderbookCleared(product=product)]
        for offer in book.asks:
            events.append(OrderbookOfferUpdated(product=product, side=Side.ASK, offer=offer))
        for offer in book.bids:
            events.append(OrderbookOfferUpdated(product=product, side=Side.BID, offer=offer))
        return Batch(events=events)

    def events_from_placed_order(self, order: Order) -> ExchangeEvent:
        """
        Event recording the exchange's answer to a placement.

        Pending and filled orders are added, open orders are opened.
        Orders that were closed or rejected on arrival never rest, so
        there is nothing to track and the Batch is empty.
        """
        state = order.status.state
        if state == "open":
            return OrderOpened(order=order)
        if state in ("pending", "filled"):
            return OrderAdded(order=order)
        self.logger.info(f"[{self.name}] Order {order.id or order.server_id} {order.status}")
        return Batch(events=[])

    def feed(self, products: List[CurrencyPair]) -> "ExchangeFeed":
        raise NotImplementedError(f"{self.name} does not support market_feed")

    def __repr__(self) -> str:
        authenticated = "authenticated" if self.credential is not None else "public"
        return f"<{self.__class__.__name__}(host='{self.host}', {authenticated})>"


class ExchangeFeed(ABC):
    """
    Translator between one exchange's WebSocket protocol and ExchangeEvents.

    Pure: it builds outgoing frames and translates incoming ones, while
    services.market_feed owns the connection and the thread.

    Attributes:
        name: Exchange name, for logs
        url: WebSocket endpoint
        products: Markets the feed subscribes to
    """

    name: str

    def __init__(self, url: str, products: List[CurrencyPair]):
        self.url = url
        self.products = list(products)

    @abstractmethod
    def subscribe_messages(self) -> List[Dict]:
        """JSON frames to send right after connecting."""
        ...

    def resubscribe_messages(self, product: CurrencyPair) -> List[Dict]:
        """JSON frames that make the exchange send a fresh snapshot of one product."""
        return []

    @abstractmethod
    def events_from_message(self, message: Dict) -> ExchangeEvent:
        """
        Translate one decoded frame.

        Raises:
            ExchangeBusinessError: If the frame is an error message
            DecodeError: If the frame does not match the protocol
        """
        ...
