"""
Test Suite

Contains unit tests for ccex.

Structure:
- tests/unit/: Tests for individual components (schemas, order book, state engine,
  request pipeline, adapters, services)
- tests/conftest.py: Shared fixtures and in-process fakes for HTTP and WebSocket

Uses pytest; no test performs real network I/O.
"""
