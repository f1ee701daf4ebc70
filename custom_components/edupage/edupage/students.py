"""Display-name derivation and active student selection."""

import logging
from typing import Any, Iterable, List, Mapping, Optional

from .models import Student, StudentSelection
from .utils import is_blank

_LOGGER = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"

_COMBINED_NAME_KEY = "name"
_NAME_VARIANT_A = ("firstname", "lastname")
_NAME_VARIANT_B = ("firstName", "lastName")


def _join_name(record: Mapping[str, Any], keys) -> str:
	parts = []
	for key in keys:
		value = record.get(key)
		if not is_blank(value):
			parts.append(str(value).strip())
	return " ".join(parts)


def derive_display_name(record: Any, default: Optional[str] = UNKNOWN_NAME) -> Optional[str]:
	"""Derive a person's display name from an upstream record.

	Order: combined ``name`` field, then firstname/lastname, then
	firstName/lastName. Plain strings are taken as the name itself.

	Args:
		record: Raw person record (student, teacher, author) or a string
		default: Value returned when no name can be derived

	Returns:
		The display name, or default
	"""
	if isinstance(record, str):
		return record.strip() or default
	if not isinstance(record, Mapping):
		return default

	combined = record.get(_COMBINED_NAME_KEY)
	if not is_blank(combined):
		return str(combined).strip()

	for variant in (_NAME_VARIANT_A, _NAME_VARIANT_B):
		joined = _join_name(record, variant)
		if joined:
			return joined

	return default


def build_student(record: Mapping[str, Any]) -> Optional[Student]:
	"""Build a Student from a roster record; records without an id are skipped."""
	student_id = record.get("id", record.get("studentid"))
	if is_blank(student_id):
		return None
	return Student(
		id=str(student_id),
		display_name=derive_display_name(record),
		raw=dict(record),
	)


def build_roster(records: Iterable[Mapping[str, Any]]) -> List[Student]:
	"""Build students from raw roster records, keeping upstream order."""
	roster = []
	for record in records or []:
		if not isinstance(record, Mapping):
			continue
		student = build_student(record)
		if student:
			roster.append(student)
	return roster


def _default_selection(roster: List[Student]) -> StudentSelection:
	return StudentSelection(student=roster[0] if roster else None)


def resolve_student(roster: Iterable[Any], name_filter: Optional[str] = None) -> StudentSelection:
	"""Pick the active student for a session.

	Without a filter the first roster entry wins (or account mode for an empty
	roster). With a filter an exact case-insensitive name match wins over a
	substring match in either direction; if nothing matches, the default is used.
	"""
	students = [
		item if isinstance(item, Student) else build_student(item)
		for item in roster or []
		if isinstance(item, (Student, Mapping))
	]
	students = [student for student in students if student]

	needle = (name_filter or "").strip().casefold()
	if not needle:
		return _default_selection(students)

	for student in students:
		if student.display_name.strip().casefold() == needle:
			_LOGGER.debug(f"Exact name match for filter {name_filter!r}: {student.id}")
			return StudentSelection(student=student)

	for student in students:
		name = student.display_name.strip().casefold()
		if needle in name or name in needle:
			_LOGGER.debug(f"Substring name match for filter {name_filter!r}: {student.id}")
			return StudentSelection(student=student)

	selection = _default_selection(students)
	_LOGGER.warning(
		f"No student matches filter {name_filter!r} among {[s.display_name for s in students]}; "
		f"falling back to {selection}"
	)
	return selection
