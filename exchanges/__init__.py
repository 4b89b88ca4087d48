"""
Exchange Adapters Package

Each exchange (Binance, GDAX, Gemini) has its own subfolder with:
- __init__.py: Adapter class implementing ExchangeAdapter
- api_client.py: Request descriptors, wire models and the signing scheme
- ws_client.py: WebSocket feed translator (exchanges with a market feed)

Adapters build descriptors and translate results; they never perform I/O.
"""
