"""
Day-Boundary Resolver
Canonical day and account-local clock computations
"""
import logging
from datetime import datetime
from typing import Optional

import pytz

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_TIMEZONE = "America/New_York"


class DayBoundaryResolver:
    """
    Maps timestamps onto calendar days.

    Daily counters (lead attempts, account spend) use the canonical day in
    one fixed reference timezone shared by every account. Revenue-ledger
    days and the auto-start schedule use the account's own timezone.
    Day values are `YYYY-MM-DD` strings and are compared by equality.
    Naive timestamps are treated as UTC.
    """

    def __init__(self, reference_timezone: str = DEFAULT_REFERENCE_TIMEZONE):
        self.reference_timezone = reference_timezone
        self._reference_tz = self._resolve(reference_timezone, pytz.timezone(DEFAULT_REFERENCE_TIMEZONE))

    def canonical_day(self, timestamp: Optional[datetime] = None) -> str:
        """Calendar day of `timestamp` (default: now) in the reference timezone."""
        return self._to_tz(timestamp, self._reference_tz).strftime("%Y-%m-%d")

    def local_now(self, timezone: Optional[str], timestamp: Optional[datetime] = None) -> datetime:
        """`timestamp` (default: now) on the account's wall clock."""
        tz = self._resolve(timezone, self._reference_tz)
        return self._to_tz(timestamp, tz)

    def local_day(self, timezone: Optional[str], timestamp: Optional[datetime] = None) -> str:
        """Calendar day of `timestamp` in the account's timezone."""
        return self.local_now(timezone, timestamp).strftime("%Y-%m-%d")

    def _resolve(self, timezone: Optional[str], fallback):
        if not timezone:
            return fallback
        try:
            return pytz.timezone(timezone)
        except pytz.exceptions.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone '{timezone}', falling back to {fallback.zone}")
            return fallback

    @staticmethod
    def _to_tz(timestamp: Optional[datetime], tz) -> datetime:
        if timestamp is None:
            return datetime.now(tz)
        if timestamp.tzinfo is None:
            timestamp = pytz.UTC.localize(timestamp)
        return timestamp.astimezone(tz)
