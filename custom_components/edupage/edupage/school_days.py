"""School-calendar arithmetic."""

from datetime import date, datetime, timedelta
from typing import List, Optional, Union

# Days to add to reach the next school day, indexed by weekday (Monday = 0)
_NEXT_SCHOOL_DAY_OFFSETS = (1, 1, 1, 1, 3, 2, 1)


def next_school_day(value: Union[date, datetime]) -> datetime:
	"""Return the next Monday-Friday day after value, at midnight.

	Friday, Saturday and Sunday roll over to the following Monday.
	"""
	day = value.date() if isinstance(value, datetime) else value
	result = day + timedelta(days=_NEXT_SCHOOL_DAY_OFFSETS[day.weekday()])
	return datetime.combine(result, datetime.min.time())


def current_weekdays(reference: Optional[Union[date, datetime]] = None) -> List[date]:
	"""Return Monday to Friday of the ISO week containing reference (default today)."""
	if reference is None:
		reference = datetime.now()
	day = reference.date() if isinstance(reference, datetime) else reference
	monday = day - timedelta(days=day.weekday())
	return [monday + timedelta(days=offset) for offset in range(5)]
