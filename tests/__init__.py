"""
Test Suite

Unit tests for the Binance Spot client. No test opens a network connection:
REST tests replace the transport's _execute, stream tests inject a scripted
connection factory.

Structure:
- tests/unit/: signing, records, orders, REST transport and endpoint families,
  stream supervisor and WebSocket client, configuration and logging

Uses pytest with pytest-asyncio for testing async functionality.
"""
