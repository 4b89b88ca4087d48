#!/usr/bin/env python3
"""
Watch an exchange level-2 feed through MarketFeed.

The feed's own snapshot frame builds each book; every interval the best
bid/ask of each product is printed until the duration elapses, a feed
stops, or Ctrl+C. Gemini streams one symbol per connection, so it gets
one MarketFeed per product, all writing to the same ExchangeState.

Usage examples:
  python scripts/watch_feed.py
  python scripts/watch_feed.py --products BTC-USD,ETH-USD --interval 2 --duration 60
  python scripts/watch_feed.py --exchange gemini --products BTC-USD,ETH-USD
"""

import argparse
import sys
import time

from core.exchange_manager import ExchangeManager
from core.exchange_state import ExchangeState
from core.schemas import CurrencyPair
from services.market_feed import MarketFeed


def main() -> int:
    parser = argparse.ArgumentParser(description="Print best prices from an exchange WebSocket feed")
    parser.add_argument("--exchange", default="gdax", choices=["gdax", "gemini"], help="Exchange (default: gdax)")
    parser.add_argument("--products", default="BTC-USD", help="Comma-separated products (default: BTC-USD)")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between prints (default: 1)")
    parser.add_argument("--duration", type=int, default=0, help="Seconds to run (0 = run indefinitely)")
    args = parser.parse_args()

    products = [CurrencyPair.parse(p) for p in args.products.split(",") if p.strip()]
    adapter = ExchangeManager().create(args.exchange)
    state = ExchangeState(1, adapter.name)
    if args.exchange == "gemini":
        feeds = [MarketFeed(adapter.feed([product]), state) for product in products]
    else:
        feeds = [MarketFeed(adapter.feed(products), state)]

    for feed in feeds:
        print(f"[Info] Connecting to {feed.feed.url}")
        feed.start()
    print(f"[Info] Watching {', '.join(str(p) for p in products)}\n")
    started = time.monotonic()

    try:
        while all(feed.running for feed in feeds):
            if args.duration and time.monotonic() - started >= args.duration:
                print("[Info] Duration reached; stopping.")
                break
            time.sleep(args.interval)
            for product in products:
                bid, ask = state.best_prices(product)
                market = state.market(product)
                bid_str = f"{bid.price} x {bid.quantity}" if bid else "-"
                ask_str = f"{ask.price} x {ask.quantity}" if ask else "-"
                print(f"[{product}] bid={bid_str} ask={ask_str} trades={len(market.trades)}")
    except KeyboardInterrupt:
        print("\n[Info] Interrupted.")
    finally:
        for feed in feeds:
            feed.stop()
        for feed in feeds:
            feed.join(timeout=5.0)

    errors = [feed.error for feed in feeds if feed.error is not None]
    for error in errors:
        print(f"[Error] Feed stopped: {error}")
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
