"""Unit tests for the dashboard widget renderer."""

from datetime import date, datetime, time

from edupage.models import Announcement, Assignment, LessonSlot
from edupage.normalizer import normalize_homeworks
from edupage.renderer import (
	PLACEHOLDER_NO_HOMEWORK,
	PLACEHOLDER_NO_LESSONS,
	PLACEHOLDER_NO_NOTIFICATIONS,
	escape,
	escape_text_block,
	partition_assignments,
	render_homework_widget,
	render_notifications_widget,
	render_timetable_widget,
	sort_announcements,
)

RENDERED_AT = datetime(2024, 1, 5, 7, 30)


def test_overdue_item_is_not_upcoming():
	item = Assignment(id="1", due_date=date(2024, 1, 1), done=False)
	partition = partition_assignments([item], date(2024, 1, 5))
	assert partition.overdue == [item]
	assert partition.upcoming == []


def test_partition_ordering_and_history_limit():
	today = date(2024, 1, 5)
	items = [
		Assignment(id="late-old", due_date=date(2024, 1, 1)),
		Assignment(id="late-new", due_date=date(2024, 1, 4)),
		Assignment(id="undated"),
		Assignment(id="next-week", due_date=date(2024, 1, 8)),
		Assignment(id="today", due_date=today),
		Assignment(id="done-1", due_date=date(2024, 1, 2), done=True),
		Assignment(id="done-2", due_date=date(2024, 1, 3), done=True),
		Assignment(id="done-3", due_date=date(2024, 1, 4), done=True),
		Assignment(id="done-undated", done=True),
	]
	partition = partition_assignments(items, today)

	assert [item.id for item in partition.overdue] == ["late-new", "late-old"]
	assert [item.id for item in partition.upcoming] == ["today", "next-week", "undated"]
	assert [item.id for item in partition.history] == ["done-3", "done-2"]
	assert partition.done_count == 4


def test_homework_sections_in_order_with_separators():
	items = [
		Assignment(id="1", title="Late", due_date=date(2024, 1, 1)),
		Assignment(id="2", title="Soon", due_date=date(2024, 1, 8)),
		Assignment(id="3", title="Finished", due_date=date(2024, 1, 2), done=True),
	]
	markup = render_homework_widget(items, date(2024, 1, 5), RENDERED_AT)

	assert markup.index("Soon") < markup.index("Late") < markup.index("Finished")
	assert markup.count('<hr class="edupage-separator">') == 2
	assert "rendered at 07:30" in markup


def test_empty_homework_uses_placeholder():
	markup = render_homework_widget([], date(2024, 1, 5), RENDERED_AT)
	assert PLACEHOLDER_NO_HOMEWORK in markup
	assert "edupage-separator" not in markup


def test_all_done_homework_shows_history_instead_of_placeholder():
	items = [
		Assignment(id="1", title="Essay", due_date=date(2024, 1, 3), done=True),
		Assignment(id="2", title="Poster", due_date=date(2024, 1, 8), done=True),
	]
	markup = render_homework_widget(items, date(2024, 1, 5), RENDERED_AT)

	assert PLACEHOLDER_NO_HOMEWORK not in markup
	assert "Recently done" in markup
	assert "Poster" in markup and "Essay" in markup
	assert "edupage-separator" not in markup

def test_upstream_text_is_escaped():
	hostile = "<script>alert('x')</script> & \"quoted\""
	items = [Assignment(id="1", subject=hostile, title=hostile, description=hostile, due_date=date(2024, 1, 8))]
	markup = render_homework_widget(items, date(2024, 1, 5), RENDERED_AT)

	assert "<script>" not in markup
	assert "&lt;script&gt;alert(&#x27;x&#x27;)&lt;/script&gt; &amp; &quot;quoted&quot;" in markup


def test_line_breaks_inserted_after_escaping():
	assert escape_text_block("a<b\nc\r\nd\re") == "a&lt;b<br>c<br>d<br>e"
	assert escape_text_block("<br>") == "&lt;br&gt;"
	assert escape(None) == ""


def test_rendering_is_deterministic():
	lessons = [LessonSlot(period_label="1", subject="Math", start_time=time(8, 0), end_time=time(8, 45))]
	first = render_timetable_widget(lessons, RENDERED_AT, date(2024, 1, 5))
	second = render_timetable_widget(lessons, RENDERED_AT, date(2024, 1, 5))
	assert first == second


def test_timetable_rows_follow_input_order():
	lessons = [
		LessonSlot(period_label="2", subject="Physics", teacher_names=("Jan Kos", "Eva Mala"), room="Lab"),
		LessonSlot(period_label="1", subject="Math", start_time=time(8, 0), end_time=time(8, 45)),
	]
	markup = render_timetable_widget(lessons, RENDERED_AT)

	assert markup.count("<tr>") == 2
	assert markup.index("Physics") < markup.index("Math")
	assert "Jan Kos, Eva Mala" in markup
	assert "08:00-08:45" in markup


def test_empty_timetable_uses_placeholder():
	markup = render_timetable_widget([], RENDERED_AT, date(2024, 1, 8))
	assert PLACEHOLDER_NO_LESSONS in markup
	assert "08.01.2024" in markup


def test_announcements_newest_first_with_fallbacks():
	items = [
		Announcement(id="epoch", text="no dates"),
		Announcement(id="old", text="a", occurred_at=datetime(2024, 1, 1, 8, 0)),
		Announcement(id="ts-only", text="b", timestamp=datetime(2024, 1, 3, 8, 0)),
		Announcement(id="new", text="c", occurred_at=datetime(2024, 1, 4, 8, 0), timestamp=datetime(2023, 1, 1)),
	]
	assert [item.id for item in sort_announcements(items)] == ["new", "ts-only", "old", "epoch"]


def test_notifications_widget_escapes_and_breaks_lines():
	items = [Announcement(id="1", kind="msg", text="Hello <b>class</b>\nBring pens", author_name="O'Brien")]
	markup = render_notifications_widget(items, RENDERED_AT)

	assert "Hello &lt;b&gt;class&lt;/b&gt;<br>Bring pens" in markup
	assert "O&#x27;Brien" in markup


def test_empty_notifications_use_placeholder():
	assert PLACEHOLDER_NO_NOTIFICATIONS in render_notifications_widget([], RENDERED_AT)


def test_raw_overdue_homework_lands_in_overdue_section():
	assignments = normalize_homeworks([{"id": 1, "dueDate": "2024-01-01", "isDone": False, "title": "Old task"}])
	partition = partition_assignments(assignments, date(2024, 1, 5))
	assert [item.id for item in partition.overdue] == ["1"]
	assert partition.upcoming == []
	assert "edupage-section-overdue" in render_homework_widget(assignments, date(2024, 1, 5), RENDERED_AT)
