"""
Core Utilities Package

This package contains utility functions and helpers used throughout the client.

Modules:
    - time: Millisecond timestamp conversion and normalization utilities
"""

from core.utils.time import from_millis, to_millis, current_utc_timestamp

__all__ = ["from_millis", "to_millis", "current_utc_timestamp"]
