"""
Unit Tests for Exchange Interface and Manager

These tests verify that:
- ExchangeAdapter is properly defined as an abstract class
- Dummy implementations can inherit and implement the interface
- Unsupported capabilities raise NotImplementedError
- authenticate() wraps descriptors and requires a credential
- REST results translate into the right events
- ExchangeManager registers and builds adapters by name

Run with:
    pytest tests/unit/test_exchange_interface.py -v
"""

from decimal import Decimal

import pytest

from core.api import AuthenticatedRequest, Authenticator, HttpResponse, Method, RequestDescriptor, SignedParts
from core.errors import SigningError
from core.events import Batch, MarketAdded, OrderAdded, OrderbookCleared, OrderOpened
from core.exchange_interface import ExchangeAdapter
from core.exchange_manager import ExchangeManager
from core.exchange_state import ExchangeState
from core.orderbook import Orderbook
from core.schemas import NewOrder, Offer, OrderStatus, Side
from exchanges.binance import BinanceAdapter
from exchanges.gdax import GdaxAdapter
from exchanges.gemini import GeminiAdapter


# ============================================
# Dummy Exchange for Testing
# ============================================

class DummyOrderbook(RequestDescriptor[Orderbook]):
    def method(self) -> Method:
        return Method.GET

    def path(self) -> str:
        return "/book"

    def decode(self, response: HttpResponse) -> Orderbook:
        return Orderbook()


class HeaderAuthenticator(Authenticator):
    def authenticate(self, descriptor, credential) -> SignedParts:
        headers = descriptor.headers()
        headers["X-Key"] = credential.key
        return SignedParts(headers=headers, query=descriptor.query(), body=descriptor.body())


class DummyAdapter(ExchangeAdapter):
    """
    Minimal implementation of ExchangeAdapter for testing purposes.

    Only the order book is supported, so every other factory keeps the
    base-class behaviour.
    """

    name = "dummy"
    capabilities = {
        "orderbook": True,
        "place_order": False,  # Intentionally not supported
        "cancel_order": False,
        "open_orders": False,
        "balances": False,
        "market_feed": False,
    }
    authenticator = HeaderAuthenticator()

    def orderbook_request(self, product):
        return DummyOrderbook()


@pytest.fixture
def adapter(credential):
    return DummyAdapter(credential=credential, host="https://dummy.test")


def order_with(product, status):
    order = NewOrder(side=Side.BID, product=product, price=Decimal("1"), quantity=Decimal("1")).to_order()
    return order.model_copy(update={"status": status, "server_id": "1"})


# ============================================
# Interface Contract
# ============================================

class TestExchangeAdapterInterface:
    """Tests for the abstract contract"""

    def test_cannot_instantiate_abstract_class(self):
        with pytest.raises(TypeError):
            ExchangeAdapter(host="https://x")

    def test_dummy_adapter_capabilities(self, adapter):
        assert adapter.supports("orderbook")
        assert not adapter.supports("place_order")
        assert not adapter.supports("unknown_feature")

    def test_unsupported_factories_raise(self, adapter, btc_usd):
        new_order = NewOrder(side=Side.BID, product=btc_usd, price=Decimal("1"), quantity=Decimal("1"))
        with pytest.raises(NotImplementedError):
            adapter.place_order_request(new_order)
        with pytest.raises(NotImplementedError):
            adapter.cancel_order_request(new_order.to_order())
        with pytest.raises(NotImplementedError):
            adapter.open_orders_request()
        with pytest.raises(NotImplementedError):
            adapter.balances_request()
        with pytest.raises(NotImplementedError):
            adapter.feed([btc_usd])

    def test_authenticate_wraps_descriptor(self, adapter, btc_usd):
        request = adapter.authenticate(adapter.orderbook_request(btc_usd))

        assert isinstance(request, AuthenticatedRequest)
        assert request.headers()["X-Key"] == "test-api-key"

    def test_authenticate_without_credential(self, btc_usd):
        adapter = DummyAdapter(host="https://dummy.test")
        with pytest.raises(SigningError):
            adapter.authenticate(adapter.orderbook_request(btc_usd))

    def test_dispatcher_bound_to_host(self, adapter, http_client):
        dispatcher = adapter.dispatcher(http_client)
        assert dispatcher.host == "https://dummy.test"
        assert dispatcher.exchange == "dummy"

    def test_repr_hides_credential(self, adapter):
        assert "test-secret" not in repr(adapter)
        assert "authenticated" in repr(adapter)


# ============================================
# Result -> Event Translation
# ============================================

class TestEventTranslation:
    """Tests for events_from_orderbook / events_from_placed_order"""

    def test_orderbook_snapshot_loads_state(self, adapter, btc_usd):
        book = Orderbook.from_offers(
            asks=[Offer(price=Decimal("101"), quantity=Decimal("1"))],
            bids=[Offer(price=Decimal("99"), quantity=Decimal("2"))],
        )
        state = ExchangeState(1, "dummy")
        state.apply(MarketAdded(product=btc_usd))

        batch = adapter.events_from_orderbook(btc_usd, book)
        state.apply(batch)

        assert len(batch) == 3
        assert batch.events[0] == OrderbookCleared(product=btc_usd)
        assert state.market(btc_usd).orderbook == book

    def test_orderbook_snapshot_replaces_existing_levels(self, adapter, btc_usd):
        state = ExchangeState(1, "dummy")
        state.apply(MarketAdded(product=btc_usd))
        state.apply(adapter.events_from_orderbook(btc_usd, Orderbook.from_offers(
            asks=[], bids=[Offer(price=Decimal("90"), quantity=Decimal("1"))],
        )))

        state.apply(adapter.events_from_orderbook(btc_usd, Orderbook.from_offers(
            asks=[], bids=[Offer(price=Decimal("100"), quantity=Decimal("1"))],
        )))

        assert [offer.price for offer in state.market(btc_usd).orderbook.bids] == [Decimal("100")]

    @pytest.mark.parametrize("status,expected", [
        (OrderStatus.pending(), OrderAdded),
        (OrderStatus.open(), OrderOpened),
        (OrderStatus.filled(), OrderAdded),
    ])
    def test_placed_order_event(self, adapter, btc_usd, status, expected):
        assert isinstance(adapter.events_from_placed_order(order_with(btc_usd, status)), expected)

    @pytest.mark.parametrize("status", [OrderStatus.closed("expired"), OrderStatus.rejected("post only")])
    def test_placed_order_that_never_rests(self, adapter, btc_usd, status):
        event = adapter.events_from_placed_order(order_with(btc_usd, status))
        assert event == Batch(events=[])


# ============================================
# Exchange Manager
# ============================================

class TestExchangeManager:
    """Tests for ExchangeManager"""

    def test_builtin_exchanges_registered(self):
        manager = ExchangeManager()
        assert manager.list_exchanges() == ["binance", "gdax", "gemini"]

    def test_create_by_name(self, credential):
        manager = ExchangeManager()

        assert isinstance(manager.create("binance"), BinanceAdapter)
        assert isinstance(manager.create("GDAX"), GdaxAdapter)
        gemini = manager.create("gemini", credential=credential, host="https://gemini.test")
        assert isinstance(gemini, GeminiAdapter)
        assert gemini.credential is credential
        assert gemini.host == "https://gemini.test"

    def test_create_unknown_exchange(self):
        with pytest.raises(ValueError, match="not supported"):
            ExchangeManager().create("mtgox")

    def test_register_custom_adapter(self):
        manager = ExchangeManager()
        manager.register(DummyAdapter)

        assert manager.has_exchange("Dummy")
        assert manager.get_capabilities("dummy")["orderbook"] is True
        assert isinstance(manager.create("dummy", host="https://dummy.test"), DummyAdapter)

    def test_register_requires_name(self):
        class Nameless(DummyAdapter):
            name = ""

        with pytest.raises(ValueError):
            ExchangeManager().register(Nameless)

    def test_capabilities_are_a_copy(self):
        manager = ExchangeManager()
        manager.get_capabilities("binance")["market_feed"] = True
        assert manager.get_capabilities("binance")["market_feed"] is False

    def test_unknown_capabilities(self):
        with pytest.raises(ValueError):
            ExchangeManager().get_capabilities("mtgox")
