"""Reconcile raw EduPage records into the internal schema.

Upstream collections expose the same facts under different field names
depending on which endpoint produced them. Each entity gets one raw struct
whose ``from_record`` holds the complete alias table, and one ``normalize_*``
function that maps the struct into the internal model. Nothing downstream of
this module looks at upstream field names.
"""

import logging
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import Announcement, Assignment, LessonSlot, StudentSelection, Teacher
from .students import derive_display_name
from .utils import first_present, is_blank, parse_date, parse_datetime, parse_time

_LOGGER = logging.getLogger(__name__)

HOMEWORK_KIND = "homework"

TEACHER_SOURCE_ROSTER = "roster"
TEACHER_SOURCE_SCAN = "scan"
TEACHER_SOURCE_AUTO = "auto"
TEACHER_SOURCES = (TEACHER_SOURCE_AUTO, TEACHER_SOURCE_ROSTER, TEACHER_SOURCE_SCAN)

Lookups = Mapping[str, Mapping[str, Any]]


def _as_text(value: Any) -> Optional[str]:
	if is_blank(value):
		return None
	if isinstance(value, str):
		return value
	return str(value)


def _as_id(value: Any) -> Optional[str]:
	if is_blank(value):
		return None
	return str(value).strip()


def _as_bool(value: Any) -> bool:
	if isinstance(value, bool):
		return value
	if isinstance(value, (int, float)):
		return value != 0
	if isinstance(value, str):
		return value.strip().lower() in ("1", "true", "yes", "done")
	return False


def _as_list(value: Any) -> List[Any]:
	if value is None:
		return []
	if isinstance(value, (list, tuple, set, frozenset)):
		return list(value)
	return [value]


def _student_ids(value: Any) -> Optional[FrozenSet[str]]:
	"""Association list as a set of ids; None when the record carries no usable list."""
	ids = set()
	for item in _as_list(value):
		if isinstance(item, Mapping):
			item = item.get("id", item.get("studentid"))
		item_id = _as_id(item)
		if item_id:
			ids.add(item_id)
	return frozenset(ids) if ids else None


def _reference_name(value: Any, keys: Sequence[str] = ("name", "short")) -> Optional[str]:
	"""Flatten a nested reference object (or plain string) into a name."""
	if isinstance(value, Mapping):
		return _as_text(first_present(value, keys))
	return _as_text(value)


def _person_reference(value: Any) -> Tuple[Optional[str], Optional[str]]:
	"""Return (id, display name) for a nested person reference."""
	if isinstance(value, Mapping):
		return (
			_as_id(first_present(value, ("id", "teacherid", "userid"))),
			derive_display_name(value, default=None),
		)
	return None, _as_text(value)


def _lookup(lookups: Optional[Lookups], table: str, key: Any) -> Optional[Mapping[str, Any]]:
	if not lookups or key is None:
		return None
	record = (lookups.get(table) or {}).get(str(key))
	return record if isinstance(record, Mapping) else None


def applies_to_student(
	student_ids: Optional[FrozenSet[str]],
	selection: Optional[StudentSelection],
	author_id: Optional[str] = None,
) -> bool:
	"""Permissive per-student filter.

	A record without an association list applies to everyone. Otherwise it is
	kept when the active student is listed or is the author.
	"""
	if selection is None or selection.student is None:
		return True
	if student_ids is None:
		return True
	active_id = selection.student.id
	if active_id in student_ids:
		return True
	return author_id is not None and author_id == active_id


# ---------------------------------------------------------------------------
# Homework

@dataclass(frozen=True)
class RawHomework:
	"""Homework fields as found upstream, all optional."""
	id: Optional[str] = None
	title: Optional[str] = None
	description: Optional[str] = None
	due_date: Optional[date] = None
	assigned_date: Optional[date] = None
	done: bool = False
	subject: Optional[str] = None
	teacher_id: Optional[str] = None
	teacher_name: Optional[str] = None
	student_ids: Optional[FrozenSet[str]] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "RawHomework":
		teacher_id, teacher_name = _person_reference(first_present(record, ("teacher", "owner")))
		return cls(
			id=_as_id(first_present(record, ("id", "homeworkid", "hwkid", "superid"))),
			title=_as_text(first_present(record, ("title", "name"))),
			description=_as_text(first_present(record, ("description", "details", "text"))),
			due_date=parse_date(first_present(record, ("dueDate", "toDate", "dateto", "deadline"))),
			assigned_date=parse_date(first_present(record, ("assignedDate", "fromDate", "datefrom", "created"))),
			done=_as_bool(first_present(record, ("isDone", "done", "completed"))),
			subject=_reference_name(first_present(record, ("subject",))),
			teacher_id=teacher_id,
			teacher_name=teacher_name,
			student_ids=_student_ids(first_present(record, ("students", "studentids", "studentIds"))),
		)


def normalize_homework(raw: RawHomework) -> Assignment:
	"""Map a raw homework struct into an Assignment."""
	return Assignment(
		id=raw.id or "",
		subject=raw.subject,
		title=raw.title,
		description=raw.description,
		due_date=raw.due_date,
		assigned_date=raw.assigned_date,
		done=raw.done,
		teacher_name=raw.teacher_name,
		teacher_id=raw.teacher_id,
	)


def normalize_homeworks(
	records: Iterable[Any],
	selection: Optional[StudentSelection] = None,
) -> List[Assignment]:
	"""Normalize raw homework records for the active student."""
	assignments = []
	for record in records or []:
		if not isinstance(record, Mapping):
			_LOGGER.debug(f"Skipping non-mapping homework record: {record!r}")
			continue
		try:
			raw = RawHomework.from_record(record)
		except (TypeError, ValueError, AttributeError) as err:
			_LOGGER.warning(f"Failed to parse homework record: {err}")
			continue
		if applies_to_student(raw.student_ids, selection):
			assignments.append(normalize_homework(raw))
	return assignments


# ---------------------------------------------------------------------------
# Notifications

@dataclass(frozen=True)
class RawNotification:
	"""Notification fields as found upstream, all optional."""
	id: Optional[str] = None
	kind: Optional[str] = None
	text: Optional[str] = None
	occurred_at: Optional[datetime] = None
	timestamp: Optional[datetime] = None
	author_id: Optional[str] = None
	author_name: Optional[str] = None
	recipient_ids: Optional[FrozenSet[str]] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "RawNotification":
		author_id, author_name = _person_reference(first_present(record, ("author", "owner", "vlastnik_meno")))
		if author_id is None:
			author_id = _as_id(first_present(record, ("authorId", "ownerId", "vlastnik")))
		return cls(
			id=_as_id(first_present(record, ("id", "timelineid", "notificationId"))),
			kind=_as_text(first_present(record, ("type", "typ", "kind"))),
			text=_as_text(first_present(record, ("text", "body", "message"))),
			occurred_at=parse_datetime(first_present(record, ("date", "occurredAt", "cas_udalosti"))),
			timestamp=parse_datetime(first_present(record, ("timestamp", "created", "cas_pridania"))),
			author_id=author_id,
			author_name=author_name,
			recipient_ids=_student_ids(first_present(record, ("recipients", "studentids", "students"))),
		)


def normalize_notification(raw: RawNotification) -> Announcement:
	"""Map a raw notification struct into an Announcement."""
	return Announcement(
		id=raw.id or "",
		kind=raw.kind,
		text=raw.text,
		occurred_at=raw.occurred_at,
		author_name=raw.author_name,
		timestamp=raw.timestamp,
	)


def apply_hygiene_filter(announcements: Iterable[Announcement]) -> List[Announcement]:
	"""Drop homework duplicates and entries without text."""
	return [
		item for item in announcements
		if (item.kind or "").strip().lower() != HOMEWORK_KIND and not is_blank(item.text)
	]


def normalize_notifications(
	records: Iterable[Any],
	selection: Optional[StudentSelection] = None,
	filter_homework_duplicates: bool = True,
) -> List[Announcement]:
	"""Normalize raw timeline records for the active student."""
	announcements = []
	for record in records or []:
		if not isinstance(record, Mapping):
			_LOGGER.debug(f"Skipping non-mapping notification record: {record!r}")
			continue
		try:
			raw = RawNotification.from_record(record)
		except (TypeError, ValueError, AttributeError) as err:
			_LOGGER.warning(f"Failed to parse notification record: {err}")
			continue
		if applies_to_student(raw.recipient_ids, selection, author_id=raw.author_id):
			announcements.append(normalize_notification(raw))

	if filter_homework_duplicates:
		kept = apply_hygiene_filter(announcements)
		if len(kept) != len(announcements):
			_LOGGER.debug(f"Hygiene filter removed {len(announcements) - len(kept)} notifications")
		return kept
	return announcements


# ---------------------------------------------------------------------------
# Lessons

@dataclass(frozen=True)
class RawLesson:
	"""Lesson fields as found upstream, references already resolved."""
	period_label: Optional[str] = None
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	subject: Optional[str] = None
	teacher_ids: Tuple[Optional[str], ...] = ()
	teacher_names: Tuple[str, ...] = ()
	room: Optional[str] = None
	date: Optional[date] = None
	student_ids: Optional[FrozenSet[str]] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any], lookups: Optional[Lookups] = None) -> "RawLesson":
		subject = _reference_name(first_present(record, ("subject",)))
		if subject is None:
			subject = _reference_name(_lookup(lookups, "subjects", first_present(record, ("subjectid", "subjectId"))))

		teacher_refs: List[Tuple[Optional[str], Optional[str]]] = []
		for ref in _as_list(first_present(record, ("teachers", "teacher"))):
			teacher_refs.append(_person_reference(ref))
		if not teacher_refs:
			for teacher_id in _as_list(first_present(record, ("teacherids", "teacherIds"))):
				teacher = _lookup(lookups, "teachers", teacher_id)
				teacher_refs.append((_as_id(teacher_id), derive_display_name(teacher, default=None) if teacher else None))
		teacher_refs = [(ref_id, name) for ref_id, name in teacher_refs if name]

		room = None
		for ref in _as_list(first_present(record, ("classroom", "classrooms", "room"))):
			room = _reference_name(ref)
			if room:
				break
		if room is None:
			for room_id in _as_list(first_present(record, ("classroomids", "classroomIds"))):
				room = _reference_name(_lookup(lookups, "classrooms", room_id))
				if room:
					break

		return cls(
			period_label=_as_text(first_present(record, ("period", "uniperiod", "periodName"))),
			start_time=parse_time(first_present(record, ("startTime", "starttime"))),
			end_time=parse_time(first_present(record, ("endTime", "endtime"))),
			subject=subject,
			teacher_ids=tuple(ref_id for ref_id, _ in teacher_refs),
			teacher_names=tuple(name for _, name in teacher_refs),
			room=room,
			date=parse_date(first_present(record, ("date",))),
			student_ids=_student_ids(first_present(record, ("students", "studentids"))),
		)


def normalize_lesson(raw: RawLesson, day: Optional[date] = None) -> LessonSlot:
	"""Map a raw lesson struct into a LessonSlot; day fills in a missing date."""
	return LessonSlot(
		period_label=raw.period_label,
		start_time=raw.start_time,
		end_time=raw.end_time,
		subject=raw.subject,
		teacher_names=raw.teacher_names,
		room=raw.room,
		date=raw.date or day,
		teacher_ids=raw.teacher_ids,
	)


def normalize_lessons(
	records: Iterable[Any],
	selection: Optional[StudentSelection] = None,
	lookups: Optional[Lookups] = None,
	day: Optional[date] = None,
) -> List[LessonSlot]:
	"""Normalize a day's raw timetable lessons, keeping upstream order.

	Lessons dated on another day than ``day`` are dropped.
	"""
	lessons = []
	for record in records or []:
		if not isinstance(record, Mapping):
			continue
		try:
			raw = RawLesson.from_record(record, lookups)
		except (TypeError, ValueError, AttributeError) as err:
			_LOGGER.warning(f"Failed to parse lesson record: {err}")
			continue
		if day is not None and raw.date is not None and raw.date != day:
			continue
		if applies_to_student(raw.student_ids, selection):
			lessons.append(normalize_lesson(raw, day))
	return lessons


# ---------------------------------------------------------------------------
# Teachers and subjects

@dataclass(frozen=True)
class RawTeacher:
	"""Teacher roster fields as found upstream."""
	id: Optional[str] = None
	display_name: Optional[str] = None
	short_code: Optional[str] = None
	subjects: Tuple[str, ...] = ()

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "RawTeacher":
		subjects = tuple(
			name for name in (_reference_name(item) for item in _as_list(record.get("subjects"))) if name
		)
		return cls(
			id=_as_id(first_present(record, ("id", "teacherid"))),
			display_name=derive_display_name(record, default=None),
			short_code=_as_text(first_present(record, ("short", "shortName", "code"))),
			subjects=subjects,
		)


def name_sort_key(name: str) -> Tuple[str, str]:
	"""Locale-aware ordering: accent-folded, case-folded, raw text as tiebreak."""
	decomposed = unicodedata.normalize("NFKD", name)
	folded = "".join(char for char in decomposed if not unicodedata.combining(char)).casefold()
	return folded, name


def teachers_from_roster(records: Iterable[Any]) -> List[Teacher]:
	"""Teacher list from the explicit roster; unnamed entries are dropped."""
	teachers = []
	for record in records or []:
		if not isinstance(record, Mapping):
			continue
		raw = RawTeacher.from_record(record)
		if not raw.display_name:
			continue
		teachers.append(Teacher(
			id=raw.id,
			display_name=raw.display_name,
			short_code=raw.short_code,
			subjects=tuple(sorted(set(raw.subjects), key=name_sort_key)),
		))
	return sorted(teachers, key=lambda teacher: name_sort_key(teacher.display_name))


def teachers_from_lessons(
	lesson_days: Iterable[Iterable[LessonSlot]],
	assignments: Iterable[Assignment] = (),
) -> List[Teacher]:
	"""Reconstruct teachers from lesson and homework mentions.

	Teachers are deduplicated by id and collect the set of subjects they were
	seen with. A mention without an id joins the teacher with the same
	case-folded name, and an id seen later is adopted by a name-only entry.
	Namesakes with different ids stay separate.
	"""
	names: Dict[int, str] = {}
	ids: Dict[int, Optional[str]] = {}
	subjects: Dict[int, set] = {}
	by_id: Dict[str, int] = {}
	by_name: Dict[str, int] = {}

	def _seen(teacher_id: Optional[str], name: Optional[str], subject: Optional[str]) -> None:
		if not name:
			return
		folded = name.casefold()
		key = by_id.get(teacher_id) if teacher_id else None
		if key is None:
			key = by_name.get(folded)
			if key is not None and teacher_id and ids[key] not in (None, teacher_id):
				key = None
		if key is None:
			key = len(names)
			names[key] = name
			ids[key] = None
			subjects[key] = set()
		if teacher_id and ids[key] is None:
			ids[key] = teacher_id
		if teacher_id:
			by_id.setdefault(teacher_id, key)
		by_name.setdefault(folded, key)
		if subject:
			subjects[key].add(subject)

	for lessons in lesson_days:
		for lesson in lessons:
			teacher_ids = lesson.teacher_ids or (None,) * len(lesson.teacher_names)
			for teacher_id, name in zip(teacher_ids, lesson.teacher_names):
				_seen(teacher_id, name, lesson.subject)

	for assignment in assignments:
		_seen(assignment.teacher_id, assignment.teacher_name, assignment.subject)

	teachers = [
		Teacher(
			id=ids[key],
			display_name=names[key],
			subjects=tuple(sorted(subjects[key], key=name_sort_key)),
		)
		for key in names
	]
	return sorted(teachers, key=lambda teacher: name_sort_key(teacher.display_name))


def aggregate_teachers(
	source: str,
	roster: Sequence[Any],
	lesson_days: Iterable[Iterable[LessonSlot]],
	assignments: Iterable[Assignment] = (),
) -> Tuple[str, List[Teacher]]:
	"""Run exactly one teacher derivation path.

	Args:
		source: "roster", "scan" or "auto" (roster when one is available)
		roster: Raw teacher roster records
		lesson_days: Normalized lessons per target day
		assignments: Normalized homework, scanned after lessons

	Returns:
		Tuple of (path used, teachers)
	"""
	if source not in TEACHER_SOURCES:
		raise ValueError(f"Unknown teacher source: {source!r}")
	if source == TEACHER_SOURCE_AUTO:
		source = TEACHER_SOURCE_ROSTER if roster else TEACHER_SOURCE_SCAN
	if source == TEACHER_SOURCE_ROSTER:
		return source, teachers_from_roster(roster)
	return source, teachers_from_lessons(lesson_days, assignments)


def collect_subjects(assignments: Iterable[Assignment]) -> List[str]:
	"""Distinct homework subjects, sorted."""
	return sorted({item.subject for item in assignments if item.subject}, key=name_sort_key)
