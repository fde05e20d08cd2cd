"""
Exchange Connectors Package

Contains the Binance Spot connector under exchanges/binance:
- request.py: canonical query and HMAC-SHA256 signing
- api_client.py: REST transport
- general/market/trading/account.py: REST endpoint families
- stream.py and ws_client.py: reconnecting WebSocket streams
"""
