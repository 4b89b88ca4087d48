"""
Core Utilities Package

Modules:
    - time: Timestamp conversion, signing timestamps and nonces
"""

from core.utils.time import Nonce, current_utc_timestamp, to_utc_datetime

__all__ = ["Nonce", "current_utc_timestamp", "to_utc_datetime"]
