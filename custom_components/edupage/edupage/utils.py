"""Parsing and serialisation helpers shared by the EduPage library."""

import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping, Optional

_LOGGER = logging.getLogger(__name__)

# Formats EduPage has been seen to use across its endpoints
DATETIME_FORMATS = [
	"%Y-%m-%dT%H:%M:%S",
	"%Y-%m-%dT%H:%M:%SZ",
	"%Y-%m-%dT%H:%M:%S.%fZ",
	"%Y-%m-%d %H:%M:%S",
	"%Y-%m-%d %H:%M",
	"%Y-%m-%d",
	"%d.%m.%Y %H:%M",
	"%d.%m.%Y",
]

TIME_FORMATS = [
	"%H:%M:%S",
	"%H:%M",
	"%H.%M",
]


def is_blank(value: Any) -> bool:
	"""True for None, empty strings and whitespace-only strings."""
	if value is None:
		return True
	if isinstance(value, str):
		return not value.strip()
	return False


def first_present(record: Mapping[str, Any], aliases: Iterable[str]) -> Any:
	"""Return the first non-blank value found under any of the alias keys."""
	for key in aliases:
		value = record.get(key)
		if not is_blank(value):
			return value
	return None


def parse_datetime(value: Any) -> Optional[datetime]:
	"""Parse a date/datetime value leniently.

	Args:
		value: datetime, date, ISO string, or one of the EduPage string formats

	Returns:
		Naive datetime, or None when the value is missing or unparseable
	"""
	if value is None:
		return None
	if isinstance(value, datetime):
		return value.replace(tzinfo=None) if value.tzinfo else value
	if isinstance(value, date):
		return datetime.combine(value, time.min)
	if not isinstance(value, str) or not value.strip():
		return None

	text = value.strip()
	for fmt in DATETIME_FORMATS:
		try:
			return datetime.strptime(text, fmt)
		except ValueError:
			continue

	try:
		parsed = datetime.fromisoformat(text)
	except ValueError:
		_LOGGER.debug(f"Failed to parse date: {text!r}")
		return None
	return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed


def parse_date(value: Any) -> Optional[date]:
	"""Parse a value into a calendar date, or None."""
	parsed = parse_datetime(value)
	return parsed.date() if parsed else None


def parse_time(value: Any) -> Optional[time]:
	"""Parse a time-of-day string, or None if it cannot be parsed."""
	if isinstance(value, time):
		return value
	if not isinstance(value, str) or not value.strip():
		return None

	for fmt in TIME_FORMATS:
		try:
			return datetime.strptime(value.strip(), fmt).time()
		except ValueError:
			continue

	_LOGGER.debug(f"Failed to parse time: {value!r}")
	return None


def serialize(obj: Any) -> Any:
	"""Recursively convert dataclasses, dates and tuples into JSON-safe values."""
	if is_dataclass(obj) and not isinstance(obj, type):
		return serialize(asdict(obj))
	if isinstance(obj, (datetime, date, time)):
		return obj.isoformat()
	if isinstance(obj, (list, tuple, set, frozenset)):
		items = sorted(obj) if isinstance(obj, (set, frozenset)) else obj
		return [serialize(item) for item in items]
	if isinstance(obj, dict):
		return {key: serialize(value) for key, value in obj.items()}
	return obj


def to_json(obj: Any) -> str:
	"""Serialise to a compact JSON string; non-ASCII text is kept readable."""
	return json.dumps(serialize(obj), ensure_ascii=False)
