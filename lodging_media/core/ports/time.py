"""
Time Port Interface.

All timestamps are UTC. Used for signed-URL windows, upload metadata,
and cancellation deadlines.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time (timezone-aware)."""
        ...
