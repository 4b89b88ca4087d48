"""
Time Utilities

Timestamps and nonces used when signing requests and decoding responses.

Exchanges disagree on units:
- Binance: milliseconds since epoch, sent as the `timestamp` query parameter
- GDAX: seconds since epoch, sent in the CB-ACCESS-TIMESTAMP header
- Gemini: a strictly increasing nonce inside the signed payload

Everything normalized into our schemas is a timezone-aware UTC datetime.
"""

import threading
from datetime import datetime, timezone
from typing import Union


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Values above 1e12 are taken as milliseconds.

    Raises:
        ValueError: If timestamp is negative or out of range

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
        >>> to_utc_datetime(1704110400)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}") from e


def datetime_to_timestamp(dt: datetime, milliseconds: bool = False) -> int:
    """
    Convert a datetime to a Unix timestamp; naive datetimes are taken as UTC.

    Examples:
        >>> dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        >>> datetime_to_timestamp(dt)
        1704110400
        >>> datetime_to_timestamp(dt, milliseconds=True)
        1704110400000
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    if milliseconds:
        return int(dt.timestamp() * 1000)
    return int(dt.timestamp())


def current_utc_timestamp(milliseconds: bool = False) -> int:
    return datetime_to_timestamp(datetime.now(timezone.utc), milliseconds)


class Nonce:
    """
    Strictly increasing millisecond nonce.

    Two requests signed within the same millisecond would otherwise carry
    the same nonce, which Gemini rejects. Thread-safe.

    Example:
        >>> nonce = Nonce()
        >>> first, second = nonce.next(), nonce.next()
        >>> second > first
        True
    """

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(self._last + 1, current_utc_timestamp(milliseconds=True))
            return self._last
