"""
Gemini Exchange Adapter

This module implements the ExchangeAdapter for the Gemini REST API and
exposes the market data stream through GeminiFeed.

API Documentation:
    https://docs.gemini.com/rest-api/

Endpoints Used:
    REST:
        - GET  /v1/book/{symbol}   - Order book (public)
        - POST /v1/order/new       - Place a limit order (signed)
        - POST /v1/order/cancel    - Cancel an order (signed)
        - POST /v1/orders          - Active orders (signed)
        - POST /v1/balances        - Balances (signed)
    WebSocket:
        - /v1/marketdata/{symbol}  - Level-2 changes and trades, one symbol per connection

Notes:
    Every private call is a POST whose parameters live in the signed
    X-GEMINI-PAYLOAD header; the nonce must increase for each request made
    with the same key, so one adapter instance should be shared.
"""

from typing import List

from core.config import settings
from core.exchange_interface import ExchangeAdapter
from core.schemas import CurrencyPair, NewOrder, Order

from .api_client import CancelOrder, GeminiAuthenticator, GetActiveOrders, GetBalances, GetOrderbook, PlaceOrder
from .ws_client import GeminiFeed


class GeminiAdapter(ExchangeAdapter):
    name = "gemini"

    capabilities = {
        "orderbook": True,
        "place_order": True,
        "cancel_order": True,
        "open_orders": True,
        "balances": True,
        "market_feed": True,
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Per-instance so each key gets its own nonce sequence
        self.authenticator = GeminiAuthenticator()

    def orderbook_request(self, product: CurrencyPair) -> GetOrderbook:
        return GetOrderbook(product)

    def place_order_request(self, new_order: NewOrder) -> PlaceOrder:
        return PlaceOrder(new_order)

    def cancel_order_request(self, order: Order) -> CancelOrder:
        if order.server_id is None:
            raise ValueError("Gemini cancels by server id; order has not been acknowledged")
        return CancelOrder(order.server_id)

    def open_orders_request(self) -> GetActiveOrders:
        return GetActiveOrders()

    def balances_request(self) -> GetBalances:
        return GetBalances()

    def feed(self, products: List[CurrencyPair]) -> GeminiFeed:
        return GeminiFeed(settings.ws_url_for(self.name), products)


__all__ = ["GeminiAdapter", "GeminiFeed"]
