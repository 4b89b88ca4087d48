"""
Binance Exchange Adapter

This module implements the ExchangeAdapter for the Binance spot REST API.

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Endpoints Used:
    REST:
        - GET    /api/v3/depth       - Order-book snapshot (public)
        - POST   /api/v3/order       - Place a limit order (signed)
        - DELETE /api/v3/order       - Cancel an order (signed)
        - GET    /api/v3/openOrders  - Open orders (signed)
        - GET    /api/v3/account     - Balances (signed)

Symbols:
    Binance concatenates base and quote ("BTCUSDT"). Responses are mapped
    back to CurrencyPair using a list of known quote assets.

Structure:
    exchanges/binance/
    ├── __init__.py          # This file (BinanceAdapter class)
    └── api_client.py        # Request descriptors and query signing
"""

from core.exchange_interface import ExchangeAdapter
from core.schemas import CurrencyPair, NewOrder, Order

from .api_client import (
    BinanceAuthenticator,
    CancelOrder,
    GetAccount,
    GetOpenOrders,
    GetOrderbook,
    PlaceLimitOrder,
)


class BinanceAdapter(ExchangeAdapter):
    """
    Binance Spot Exchange Adapter

    Example:
        >>> adapter = BinanceAdapter(credential=settings.credential_for("binance"))
        >>> dispatcher = adapter.dispatcher(http)
        >>> book = dispatcher.send(adapter.orderbook_request(CurrencyPair(base="BTC", quote="USDT")))
        >>> orders = dispatcher.send(adapter.authenticate(adapter.open_orders_request()))
    """

    # ============================================
    # Class Attributes
    # ============================================

    name = "binance"

    capabilities = {
        "orderbook": True,
        "place_order": True,
        "cancel_order": True,
        "open_orders": True,
        "balances": True,
        "market_feed": False,
    }

    authenticator = BinanceAuthenticator()

    # ============================================
    # Descriptor Factories
    # ============================================

    def orderbook_request(self, product: CurrencyPair) -> GetOrderbook:
        return GetOrderbook(product)

    def place_order_request(self, new_order: NewOrder) -> PlaceLimitOrder:
        return PlaceLimitOrder(new_order)

    def cancel_order_request(self, order: Order) -> CancelOrder:
        """
        Cancel by server id when known, otherwise by client id.

        Raises:
            ValueError: If the order has neither id
        """
        return CancelOrder(order.product, order_id=order.server_id, client_order_id=order.id)

    def open_orders_request(self) -> GetOpenOrders:
        return GetOpenOrders()

    def balances_request(self) -> GetAccount:
        return GetAccount()


__all__ = ["BinanceAdapter"]
