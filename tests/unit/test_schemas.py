"""
Unit Tests for Normalized Schemas

These tests verify that:
- Currencies are normalized and validated
- CurrencyPair parses separated and concatenated symbols
- OrderStatus enforces reasons and lifecycle transitions
- Orders and NewOrders validate their quantities and identity
- Credentials never render their secrets

Run with:
    pytest tests/unit/test_schemas.py -v
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import SecretStr, ValidationError

from core.schemas import (
    Balance,
    Credential,
    CurrencyPair,
    LimitInstruction,
    NewOrder,
    Offer,
    Order,
    OrderStatus,
    Side,
    TimeInForce,
    parse_currency,
)


# ============================================
# Currency & CurrencyPair
# ============================================

class TestCurrency:
    """Tests for currency identifiers"""

    def test_currency_is_upper_cased(self):
        assert parse_currency(" btc ") == "BTC"

    @pytest.mark.parametrize("value", ["", "BT C", "BTC-USD", "$$$"])
    def test_invalid_currency_rejected(self, value):
        with pytest.raises(ValueError):
            parse_currency(value)

    def test_balance_currency_normalized(self):
        balance = Balance(currency="eth", balance=Decimal("1.5"))
        assert balance.currency == "ETH"


class TestCurrencyPair:
    """Tests for CurrencyPair parsing and rendering"""

    def test_parse_accepts_common_separators(self):
        expected = CurrencyPair(base="BTC", quote="USD")
        assert CurrencyPair.parse("BTC-USD") == expected
        assert CurrencyPair.parse("btc_usd") == expected
        assert CurrencyPair.parse("BTC/USD") == expected

    def test_parse_rejects_unseparated_symbol(self):
        with pytest.raises(ValueError):
            CurrencyPair.parse("BTCUSD")

    def test_from_concatenated_prefers_longest_quote(self):
        pair = CurrencyPair.from_concatenated("BTCUSDT", ["USD", "USDT", "BTC"])
        assert pair == CurrencyPair(base="BTC", quote="USDT")

    def test_from_concatenated_is_case_insensitive(self):
        pair = CurrencyPair.from_concatenated("ethbtc", ["usd", "btc"])
        assert pair == CurrencyPair(base="ETH", quote="BTC")

    def test_from_concatenated_unknown_quote(self):
        with pytest.raises(ValueError):
            CurrencyPair.from_concatenated("BTCXYZ", ["USD"])

    def test_pair_is_hashable_and_frozen(self):
        pair = CurrencyPair(base="BTC", quote="USD")
        assert {pair: 1}[CurrencyPair(base="btc", quote="usd")] == 1
        with pytest.raises(ValidationError):
            pair.base = "ETH"

    def test_symbol_and_str(self):
        pair = CurrencyPair(base="BTC", quote="USD")
        assert pair.symbol() == "BTCUSD"
        assert pair.symbol("-") == "BTC-USD"
        assert str(pair) == "BTC/USD"


# ============================================
# Offers
# ============================================

class TestOffer:
    """Tests for Offer validation"""

    def test_zero_quantity_allowed_on_wire(self):
        offer = Offer(price=Decimal("100"), quantity=Decimal("0"))
        assert offer.quantity == 0

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValidationError):
            Offer(price=Decimal("0"), quantity=Decimal("1"))

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError):
            Offer(price=Decimal("1"), quantity=Decimal("-1"))

    def test_total(self):
        assert Offer(price=Decimal("2.5"), quantity=Decimal("4")).total() == Decimal("10.0")


# ============================================
# Order Lifecycle
# ============================================

class TestOrderStatus:
    """Tests for OrderStatus invariants"""

    def test_closed_and_rejected_need_reason(self):
        with pytest.raises(ValidationError):
            OrderStatus(state="closed")
        with pytest.raises(ValidationError):
            OrderStatus(state="rejected")

    def test_open_cannot_carry_reason(self):
        with pytest.raises(ValidationError):
            OrderStatus(state="open", reason="because")

    def test_rejected_only_from_pending(self):
        rejected = OrderStatus.rejected("insufficient funds")
        assert OrderStatus.pending().can_transition_to(rejected)
        assert not OrderStatus.open().can_transition_to(rejected)

    def test_terminal_states_do_not_transition(self):
        for status in (OrderStatus.filled(), OrderStatus.closed("cancelled"), OrderStatus.rejected("no")):
            assert status.is_terminal
            assert not status.can_transition_to(OrderStatus.open())

    def test_str_includes_reason(self):
        assert str(OrderStatus.closed("expired")) == "closed(expired)"
        assert str(OrderStatus.open()) == "open"


class TestOrders:
    """Tests for Order, LimitInstruction and NewOrder"""

    def test_remaining_cannot_exceed_original(self):
        with pytest.raises(ValidationError):
            LimitInstruction(price=Decimal("1"), original_quantity=Decimal("1"), remaining_quantity=Decimal("2"))

    def test_good_till_time_requires_expiry(self):
        with pytest.raises(ValidationError):
            LimitInstruction(
                price=Decimal("1"),
                original_quantity=Decimal("1"),
                remaining_quantity=Decimal("1"),
                time_in_force=TimeInForce.GOOD_TILL_TIME,
            )

    def test_new_order_becomes_pending_order(self, btc_usd):
        new_order = NewOrder(side=Side.BID, product=btc_usd, price=Decimal("100"), quantity=Decimal("2"))
        order = new_order.to_order()

        assert order.id == new_order.id
        assert order.server_id is None
        assert order.status == OrderStatus.pending()
        assert order.instruction.remaining_quantity == Decimal("2")

    def test_order_needs_an_identifier(self, btc_usd):
        instruction = LimitInstruction(price=Decimal("1"), original_quantity=Decimal("1"), remaining_quantity=Decimal("1"))
        with pytest.raises(ValidationError):
            Order(side=Side.ASK, product=btc_usd, status=OrderStatus.open(), instruction=instruction)

    def test_same_order_matches_on_either_id(self, btc_usd):
        instruction = LimitInstruction(price=Decimal("1"), original_quantity=Decimal("1"), remaining_quantity=Decimal("1"))
        client_id = uuid4()
        pending = Order(id=client_id, side=Side.ASK, product=btc_usd, status=OrderStatus.pending(), instruction=instruction)
        acked = pending.model_copy(update={"server_id": "42", "status": OrderStatus.open()})
        discovered = Order(server_id="42", side=Side.ASK, product=btc_usd, status=OrderStatus.open(), instruction=instruction)

        assert pending.same_order(acked)
        assert acked.same_order(discovered)
        assert not pending.same_order(discovered)


# ============================================
# Credentials
# ============================================

class TestCredential:
    """Tests for secret handling"""

    def test_repr_masks_key_and_hides_secret(self):
        credential = Credential(key="ABCDEFGHIJ", secret=SecretStr("super-secret"), passphrase=SecretStr("pass"))
        text = repr(credential)
        assert "super-secret" not in text
        assert "ABCDEFGHIJ" not in text
        assert text.startswith("Credential(key='ABCD")

    def test_dump_does_not_expose_secret(self):
        credential = Credential(key="key", secret=SecretStr("super-secret"))
        assert "super-secret" not in str(credential.model_dump())

    def test_empty_key_rejected(self):
        with pytest.raises(ValidationError):
            Credential(key="", secret=SecretStr("x"))
