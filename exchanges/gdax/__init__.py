"""
GDAX Exchange Adapter

This module implements the ExchangeAdapter for GDAX (Coinbase Exchange),
including the WebSocket feed translator.

API Documentation:
    https://docs.cloud.coinbase.com/exchange/reference

Endpoints Used:
    REST:
        - GET    /products/{id}/book  - Aggregated order book (public)
        - POST   /orders              - Place a limit order (signed)
        - DELETE /orders/{id}         - Cancel an order (signed)
        - GET    /orders              - Orders (signed)
        - GET    /accounts            - Balances (signed)

    WebSocket:
        - wss://ws-feed.exchange.coinbase.com
        - level2, heartbeat and matches channels

Structure:
    exchanges/gdax/
    ├── __init__.py          # This file (GdaxAdapter class)
    ├── api_client.py        # Request descriptors and header signing
    └── ws_client.py         # GdaxFeed translator
"""

from typing import List

from core.config import settings
from core.exchange_interface import ExchangeAdapter
from core.schemas import CurrencyPair, NewOrder, Order

from .api_client import CancelOrder, GdaxAuthenticator, GetAccounts, GetOrderbook, GetOrders, PlaceOrder
from .ws_client import GdaxFeed


class GdaxAdapter(ExchangeAdapter):
    """
    GDAX Exchange Adapter

    Credentials need a passphrase in addition to key and secret; the secret
    is the base64 string shown when the key was created.

    Example:
        >>> adapter = GdaxAdapter(credential=settings.credential_for("gdax"))
        >>> order = dispatcher.send(adapter.authenticate(adapter.place_order_request(new_order)))
        >>> state.apply(adapter.events_from_placed_order(order))
    """

    name = "gdax"

    capabilities = {
        "orderbook": True,
        "place_order": True,
        "cancel_order": True,
        "open_orders": True,
        "balances": True,
        "market_feed": True,
    }

    authenticator = GdaxAuthenticator()

    def orderbook_request(self, product: CurrencyPair) -> GetOrderbook:
        return GetOrderbook(product)

    def place_order_request(self, new_order: NewOrder) -> PlaceOrder:
        return PlaceOrder(new_order)

    def cancel_order_request(self, order: Order) -> CancelOrder:
        """
        Raises:
            ValueError: If the order has not been acknowledged (no server id)
        """
        if order.server_id is None:
            raise ValueError("GDAX cancels by server id; order has not been acknowledged")
        return CancelOrder(order.server_id, product=order.product)

    def open_orders_request(self) -> GetOrders:
        return GetOrders(status="open")

    def balances_request(self) -> GetAccounts:
        return GetAccounts()

    def feed(self, products: List[CurrencyPair]) -> GdaxFeed:
        return GdaxFeed(settings.ws_url_for(self.name), products)


__all__ = ["GdaxAdapter", "GdaxFeed"]
