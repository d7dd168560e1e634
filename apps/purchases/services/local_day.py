"""Local calendar day helpers. Purchase limits follow the café's TIME_ZONE."""

from datetime import datetime, timedelta
from typing import Optional, Tuple

from django.utils import timezone


def start_of_local_day(now: Optional[datetime] = None) -> datetime:
    local = timezone.localtime(now)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def local_day_range(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return [start, end) of the local day containing `now`."""
    start = start_of_local_day(now)
    end = timezone.make_aware(
        datetime.combine(start.date() + timedelta(days=1), datetime.min.time()),
        start.tzinfo,
    )
    return start, end
