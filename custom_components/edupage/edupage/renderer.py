"""HTML fragments for the dashboard widgets.

All functions here are pure: the same input (including ``rendered_at``)
always yields byte-identical markup. Every string that originates upstream is
escaped before it is embedded.
"""

import html
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from .models import Announcement, Assignment, LessonSlot

HISTORY_LIMIT = 2

PLACEHOLDER_NO_HOMEWORK = "Nothing pending"
PLACEHOLDER_NO_LESSONS = "No lessons"
PLACEHOLDER_NO_NOTIFICATIONS = "No notifications"

LINE_BREAK = "<br>"
SEPARATOR = '<hr class="edupage-separator">'

_NEWLINES_RE = re.compile(r"\r\n|\r|\n")


def escape(value: Optional[str]) -> str:
	"""Escape & < > " ' in an upstream string."""
	if value is None:
		return ""
	return html.escape(str(value), quote=True)


def escape_text_block(value: Optional[str]) -> str:
	"""Escape free text, then turn its line breaks into break markers."""
	return _NEWLINES_RE.sub(LINE_BREAK, escape(value))


@dataclass
class HomeworkPartition:
	"""Assignments split into the three homework board sections."""
	overdue: List[Assignment] = field(default_factory=list)
	upcoming: List[Assignment] = field(default_factory=list)
	history: List[Assignment] = field(default_factory=list)
	done_count: int = 0

	@property
	def is_empty(self) -> bool:
		return not (self.overdue or self.upcoming or self.history)


def partition_assignments(assignments: Iterable[Assignment], today: date) -> HomeworkPartition:
	"""Split assignments into overdue, upcoming and (at most two) history items.

	Overdue: pending and due before today, most recently overdue first.
	Upcoming: pending and due today or later (or undated), soonest first,
	undated last. History: done, most recently due first.
	"""
	overdue = []
	upcoming = []
	done = []
	for item in assignments:
		if item.done:
			done.append(item)
		elif item.due_date is not None and item.due_date < today:
			overdue.append(item)
		else:
			upcoming.append(item)

	overdue.sort(key=lambda item: item.due_date, reverse=True)
	upcoming.sort(key=lambda item: (item.due_date is None, item.due_date or date.min))
	# undated history entries go last
	done.sort(key=lambda item: (item.due_date is not None, item.due_date or date.min), reverse=True)

	return HomeworkPartition(
		overdue=overdue,
		upcoming=upcoming,
		history=done[:HISTORY_LIMIT],
		done_count=len(done),
	)


def _header(title: str, rendered_at: datetime) -> str:
	return (
		f'<div class="edupage-header"><span class="edupage-title">{title}</span>'
		f'<span class="edupage-rendered">rendered at {rendered_at.strftime("%H:%M")}</span></div>'
	)


def _widget(kind: str, title: str, rendered_at: datetime, body: Sequence[str]) -> str:
	return "".join([
		f'<div class="edupage-widget edupage-{kind}">',
		_header(title, rendered_at),
		*body,
		"</div>",
	])


def _placeholder(text: str) -> str:
	return f'<div class="edupage-empty">{text}</div>'


def _homework_item(item: Assignment, state: str) -> str:
	parts = [f'<li class="edupage-homework-item edupage-{state}">']
	if item.subject:
		parts.append(f'<span class="edupage-subject">{escape(item.subject)}</span>')
	parts.append(f'<span class="edupage-homework-title">{escape(item.title or "")}</span>')
	if item.due_date:
		parts.append(f'<span class="edupage-due">{item.due_date.strftime("%d.%m.%Y")}</span>')
	if item.teacher_name:
		parts.append(f'<span class="edupage-teacher">{escape(item.teacher_name)}</span>')
	if item.description:
		parts.append(f'<div class="edupage-description">{escape_text_block(item.description)}</div>')
	parts.append("</li>")
	return "".join(parts)


def _homework_section(state: str, label: str, items: List[Assignment]) -> str:
	rows = "".join(_homework_item(item, state) for item in items)
	return (
		f'<div class="edupage-section edupage-section-{state}">'
		f'<div class="edupage-section-title">{label}</div>'
		f'<ul class="edupage-list">{rows}</ul></div>'
	)


def render_homework_widget(
	assignments: Iterable[Assignment],
	today: date,
	rendered_at: datetime,
) -> str:
	"""Homework board: upcoming, then overdue, then recent history."""
	partition = partition_assignments(assignments, today)
	if partition.is_empty:
		return _widget("homework", "Homework", rendered_at, [_placeholder(PLACEHOLDER_NO_HOMEWORK)])

	body = []
	if partition.upcoming:
		body.append(_homework_section("upcoming", "Upcoming", partition.upcoming))
	if partition.overdue:
		if body:
			body.append(SEPARATOR)
		body.append(_homework_section("overdue", "Overdue", partition.overdue))
	if partition.history:
		if body:
			body.append(SEPARATOR)
		body.append(_homework_section("history", "Recently done", partition.history))
	return _widget("homework", "Homework", rendered_at, body)


def _lesson_row(lesson: LessonSlot) -> str:
	start = lesson.start_time.strftime("%H:%M") if lesson.start_time else ""
	end = lesson.end_time.strftime("%H:%M") if lesson.end_time else ""
	span = f"{start}-{end}" if start and end else start or end
	return (
		"<tr>"
		f'<td class="edupage-period">{escape(lesson.period_label)}</td>'
		f'<td class="edupage-time">{span}</td>'
		f'<td class="edupage-subject">{escape(lesson.subject)}</td>'
		f'<td class="edupage-teacher">{escape(lesson.teachers_display)}</td>'
		f'<td class="edupage-room">{escape(lesson.room)}</td>'
		"</tr>"
	)


def render_timetable_widget(
	lessons: Sequence[LessonSlot],
	rendered_at: datetime,
	day: Optional[date] = None,
) -> str:
	"""Timetable for one day, one row per lesson in the given order."""
	title = f"Timetable {day.strftime('%d.%m.%Y')}" if day else "Timetable"
	if not lessons:
		return _widget("timetable", title, rendered_at, [_placeholder(PLACEHOLDER_NO_LESSONS)])
	rows = "".join(_lesson_row(lesson) for lesson in lessons)
	return _widget("timetable", title, rendered_at, [f'<table class="edupage-table">{rows}</table>'])


def sort_announcements(announcements: Iterable[Announcement]) -> List[Announcement]:
	"""Newest first by date, else timestamp, else epoch zero."""
	return sorted(announcements, key=lambda item: item.effective_timestamp, reverse=True)


def _announcement_item(item: Announcement) -> str:
	parts = ['<li class="edupage-notification">']
	if item.occurred_at or item.timestamp:
		parts.append(f'<span class="edupage-when">{item.effective_timestamp.strftime("%d.%m.%Y %H:%M")}</span>')
	if item.kind:
		parts.append(f'<span class="edupage-kind">{escape(item.kind)}</span>')
	if item.author_name:
		parts.append(f'<span class="edupage-author">{escape(item.author_name)}</span>')
	parts.append(f'<div class="edupage-text">{escape_text_block(item.text)}</div>')
	parts.append("</li>")
	return "".join(parts)


def render_notifications_widget(announcements: Iterable[Announcement], rendered_at: datetime) -> str:
	"""Notification feed, newest first."""
	ordered = sort_announcements(announcements)
	if not ordered:
		return _widget("notifications", "Notifications", rendered_at, [_placeholder(PLACEHOLDER_NO_NOTIFICATIONS)])
	rows = "".join(_announcement_item(item) for item in ordered)
	return _widget("notifications", "Notifications", rendered_at, [f'<ul class="edupage-list">{rows}</ul>'])
