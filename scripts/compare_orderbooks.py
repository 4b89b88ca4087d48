#!/usr/bin/env python3
"""
Compare order books across all exchanges supported by ccex.

What it does:
- Sends each adapter's public order-book request through a Dispatcher:
    - binance (default: BTC/USDT)
    - gdax    (default: BTC/USD)
    - gemini  (default: BTC/USD)
- Loads every snapshot into an ExchangeState via events
- Prints best bid/ask, spread and visible depth per exchange
- Compares mid prices across venues (spread in bps)

Usage:
  python scripts/compare_orderbooks.py
  python scripts/compare_orderbooks.py --binance-product ETH/USDT --gdax-product ETH-USD --gemini-product ETH/USD
  python scripts/compare_orderbooks.py --tolerance-bps 25 --depth 5
"""

import argparse
import sys
from decimal import Decimal
from typing import Dict

from core.config import settings
from core.errors import ExchangeError
from core.events import MarketAdded
from core.exchange_manager import ExchangeManager
from core.exchange_state import ExchangeState
from core.schemas import CurrencyPair
from core.transport import HttpxClient


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Compare order books across exchanges.")
    p.add_argument("--binance-product", default="BTC/USDT", help="Binance product (default: BTC/USDT)")
    p.add_argument("--gdax-product", default="BTC/USD", help="GDAX product (default: BTC/USD)")
    p.add_argument("--gemini-product", default="BTC/USD", help="Gemini product (default: BTC/USD)")
    p.add_argument("--tolerance-bps", type=float, default=50.0, help="Allowed mid-price spread between venues (bps)")
    p.add_argument("--depth", type=int, default=0, help="Print the first N levels of each side")
    return p.parse_args()


def print_levels(state: ExchangeState, product: CurrencyPair, depth: int) -> None:
    book = state.market(product).orderbook
    for ask in reversed(book.asks[:depth]):
        print(f"      ask {ask.price:>14} x {ask.quantity}")
    for bid in reversed(book.bids[-depth:]):
        print(f"      bid {bid.price:>14} x {bid.quantity}")


def main() -> int:
    args = parse_args()
    manager = ExchangeManager()

    targets = [
        ("binance", CurrencyPair.parse(args.binance_product)),
        ("gdax", CurrencyPair.parse(args.gdax_product)),
        ("gemini", CurrencyPair.parse(args.gemini_product)),
    ]

    mids: Dict[str, Decimal] = {}
    errors: Dict[str, str] = {}

    with HttpxClient(timeout=settings.request_timeout) as http:
        for index, (name, product) in enumerate(targets, start=1):
            adapter = manager.create(name)
            state = ExchangeState(index, name)
            state.apply(MarketAdded(product=product))

            try:
                book = adapter.dispatcher(http).send(adapter.orderbook_request(product))
                state.apply(adapter.events_from_orderbook(product, book))
            except ExchangeError as e:
                errors[name] = f"{e.__class__.__name__}: {e}"
                continue

            bid, ask = state.best_prices(product)
            if bid is None or ask is None:
                errors[name] = "one side of the book is empty"
                continue

            mids[name] = (bid.price + ask.price) / 2
            market = state.market(product)
            print(
                f"  {name:<8} {str(product):<10} bid={bid.price} ask={ask.price} "
                f"spread={ask.price - bid.price} levels={len(market.orderbook.bids)}/{len(market.orderbook.asks)}"
            )
            if args.depth > 0:
                print_levels(state, product, args.depth)

    if errors:
        print("\n[Errors]")
        for name, msg in errors.items():
            print(f"  - {name}: {msg}")
        if not mids:
            return 2

    if len(mids) >= 2:
        low, high = min(mids.values()), max(mids.values())
        mid = (low + high) / 2
        spread_bps = float((high - low) / mid * 10_000)
        status = "OK" if spread_bps <= args.tolerance_bps else "WARN"
        print(f"\n[Cross-venue mid spread] min={low} max={high} spread={spread_bps:.1f} bps -> {status}")

    print("\n[Done]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
