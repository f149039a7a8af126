"""Timezone-aware clock utilities.

All timestamps in integrity-monitor are UTC-aware.  This module is the
single source of "now" so tests can monkey-patch it trivially.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def elapsed_ms(later: datetime, earlier: datetime) -> int:
    """Whole milliseconds between two instants (negative if out of order)."""
    return int((later - earlier).total_seconds() * 1000)
