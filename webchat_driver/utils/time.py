"""
Time utilities for webchat-driver.

Wall-clock timestamps are always UTC with explicit timezone markers.
Elapsed-time measurement for the polling loops goes through a Clock so the
loops can be driven by a fake clock in tests.

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix
- session_id_from_timestamp(): Filesystem-safe timestamp slug for session IDs
- Clock / MonotonicClock: monotonic time source plus awaitable sleep

Examples:
    >>> from webchat_driver.utils.time import utc_timestamp, MonotonicClock
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
    >>> clock = MonotonicClock()
    >>> await clock.sleep(2.0)
"""

import asyncio
import time
from datetime import UTC, datetime
from typing import Protocol


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    Returns:
        datetime: Current UTC time with tzinfo=timezone.utc

    Note:
        NEVER use datetime.now() without timezone parameter.
        NEVER use datetime.utcnow() (deprecated, returns naive datetime).
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ
    Example: 2025-11-02T08:30:45Z

    Returns:
        str: ISO 8601 formatted timestamp in UTC
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def session_id_from_timestamp(dt: datetime | None = None) -> str:
    """
    Generate a session_id slug from a UTC timestamp.

    Format: YYYY-MM-DDTHH-MM-SSZ (hyphens instead of colons)

    Args:
        dt: Optional datetime to convert. If None, uses utc_now().
            Must be timezone-aware if provided.

    Returns:
        str: Filesystem-safe timestamp slug

    Raises:
        ValueError: If dt is provided but is naive (missing timezone)

    Examples:
        >>> fixed_time = datetime(2025, 11, 2, 8, 30, 45, tzinfo=UTC)
        >>> session_id_from_timestamp(fixed_time)
        '2025-11-02T08-30-45Z'
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError(
            "Datetime must be timezone-aware (use timezone.utc). "
            "Got naive datetime. Use utc_now() or ensure dt has tzinfo set."
        )

    return dt.strftime("%Y-%m-%dT%H-%M-%SZ")


class Clock(Protocol):
    """Monotonic time source used by every bounded wait in the driver."""

    def now(self) -> float:
        """Return monotonic seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the current task for ``seconds``."""
        ...


class MonotonicClock:
    """Real clock: time.monotonic() plus asyncio.sleep()."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
