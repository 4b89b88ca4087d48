"""
Core Package

Contains the exchange-agnostic core logic including:
- Schemas and Orderbook: normalized market and order data
- Events and ExchangeState: the event-sourced view of one exchange
- RequestDescriptor, Signer, Dispatcher and Transport: the authenticated request pipeline
- Future/Promise: one-shot hand-off of results between threads
- ExchangeAdapter and ExchangeManager: the contract every exchange implements

This layer knows nothing about any particular exchange; adapters live in `exchanges/`.
"""
