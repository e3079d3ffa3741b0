from datetime import datetime
from typing import Dict, Optional

from app.core.config import settings


def add_years(ts: datetime, years: int) -> datetime:
    try:
        return ts.replace(year=ts.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return ts.replace(year=ts.year + years, day=28)


class RetentionPolicy:
    """Maps an event type to how long its audit record must be kept."""

    def __init__(self, years_by_event: Optional[Dict[str, int]] = None, default_years: Optional[int] = None):
        self._years_by_event = years_by_event
        self._default_years = default_years

    @property
    def years_by_event(self) -> Dict[str, int]:
        if self._years_by_event is not None:
            return self._years_by_event
        return settings.AUDIT_RETENTION_YEARS

    @property
    def default_years(self) -> int:
        if self._default_years is not None:
            return self._default_years
        return settings.AUDIT_RETENTION_DEFAULT_YEARS

    def years_for(self, event_type: str) -> int:
        return self.years_by_event.get(event_type, self.default_years)

    def retention_until(self, event_type: str, timestamp: datetime) -> datetime:
        return add_years(timestamp, self.years_for(event_type))


retention_policy = RetentionPolicy()
