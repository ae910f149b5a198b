"""
Core utilities module.

Provides shared utility functions used across all layers.
"""

from chatmind.core.utils.time import EPOCH, ensure_utc, parse_timestamp, utc_now

__all__ = ["EPOCH", "ensure_utc", "parse_timestamp", "utc_now"]
