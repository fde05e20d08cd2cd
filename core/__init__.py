"""
Core Package

Contains the exchange-facing building blocks shared by every connector module:
- Config: pydantic-settings configuration loaded from .env
- Logging: library logger and log helpers
- Exceptions: error taxonomy rooted at BinanceError
- Enums, Schemas, Orders: wire tokens, typed records and order requests
"""
