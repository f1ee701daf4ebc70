"""Data models for EduPage entities."""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple

from .utils import serialize

MODE_STUDENT = "student"
MODE_ACCOUNT = "account"


@dataclass(frozen=True)
class Student:
	"""A student on the account roster."""
	id: str
	display_name: str
	raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

	def as_dict(self) -> Dict[str, Any]:
		return {"id": self.id, "display_name": self.display_name}


@dataclass(frozen=True)
class StudentSelection:
	"""The active student for a session, or account-level mode when student is None."""
	student: Optional[Student] = None

	@property
	def mode(self) -> str:
		return MODE_STUDENT if self.student else MODE_ACCOUNT

	@property
	def student_id(self) -> Optional[str]:
		return self.student.id if self.student else None

	@property
	def display_name(self) -> Optional[str]:
		return self.student.display_name if self.student else None

	def __str__(self) -> str:
		if self.student:
			return f"{self.student.display_name} ({self.student.id})"
		return "account (no student filter)"


@dataclass(frozen=True)
class Assignment:
	"""A normalized homework item."""
	id: str
	subject: Optional[str] = None
	title: Optional[str] = None
	description: Optional[str] = None
	due_date: Optional[date] = None
	assigned_date: Optional[date] = None
	done: bool = False
	teacher_name: Optional[str] = None
	teacher_id: Optional[str] = None

	def as_dict(self) -> Dict[str, Any]:
		return serialize(self)

	def __str__(self) -> str:
		due = self.due_date.isoformat() if self.due_date else "no due date"
		return f"{self.subject or '?'}: {self.title or '(untitled)'} - {due}"


@dataclass(frozen=True)
class Announcement:
	"""A normalized notification / timeline item."""
	id: str
	kind: Optional[str] = None
	text: Optional[str] = None
	occurred_at: Optional[datetime] = None
	author_name: Optional[str] = None
	timestamp: Optional[datetime] = None

	@property
	def effective_timestamp(self) -> datetime:
		"""Date field, else the secondary timestamp, else epoch zero."""
		return self.occurred_at or self.timestamp or datetime(1970, 1, 1)

	def as_dict(self) -> Dict[str, Any]:
		return serialize(self)


@dataclass(frozen=True)
class LessonSlot:
	"""A single lesson on a given day."""
	period_label: Optional[str] = None
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	subject: Optional[str] = None
	teacher_names: Tuple[str, ...] = ()
	room: Optional[str] = None
	date: Optional[date] = None
	teacher_ids: Tuple[Optional[str], ...] = ()

	@property
	def teachers_display(self) -> str:
		return ", ".join(self.teacher_names)

	def as_dict(self) -> Dict[str, Any]:
		data = serialize(self)
		data["teachers"] = self.teachers_display
		return data

	def __str__(self) -> str:
		if self.start_time and self.end_time:
			return f"{self.subject or '?'} ({self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')})"
		return self.subject or "?"


@dataclass(frozen=True)
class Teacher:
	"""A teacher, from the roster or reconstructed from lessons."""
	id: Optional[str]
	display_name: str
	short_code: Optional[str] = None
	subjects: Tuple[str, ...] = ()

	def as_dict(self) -> Dict[str, Any]:
		return serialize(self)


@dataclass(frozen=True)
class MenuEntry:
	"""Main dish for a day; main_dish None means no data."""
	date: date
	main_dish: Optional[str] = None

	@property
	def available(self) -> bool:
		return self.main_dish is not None

	def as_dict(self) -> Dict[str, Any]:
		return serialize(self)


@dataclass
class Snapshot:
	"""The complete normalized output of one sync cycle."""
	generated_at: datetime
	selection: StudentSelection
	assignments: List[Assignment] = field(default_factory=list)
	announcements: List[Announcement] = field(default_factory=list)
	lessons_today: List[LessonSlot] = field(default_factory=list)
	lessons_next_day: List[LessonSlot] = field(default_factory=list)
	next_school_day: Optional[date] = None
	teachers: List[Teacher] = field(default_factory=list)
	subjects: List[str] = field(default_factory=list)
	menu_today: Optional[str] = None
	menu_week: List[MenuEntry] = field(default_factory=list)
	homework_html: str = ""
	timetable_html: str = ""
	timetable_next_html: str = ""
	notifications_html: str = ""
