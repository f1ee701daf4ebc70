"""Unit tests for the sync cycle state machine."""

import asyncio
import json
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional
from unittest.mock import AsyncMock

from edupage.config import SyncOptions
from edupage.exceptions import EdupageAuthError, EdupageConnectionError
from edupage.menu import MenuFetcher
from edupage.models import MODE_ACCOUNT
from edupage.sync import (
	SLICE_BASE,
	SLICE_TIMETABLE_NEXT,
	STATE_ACTIVE_STUDENT,
	STATE_ACTIVE_STUDENT_ID,
	STATE_CONNECTION,
	STATE_HOMEWORK_COUNT,
	STATE_HOMEWORK_HTML,
	STATE_HOMEWORK_JSON,
	STATE_MENU_TODAY,
	STATE_MENU_WEEK_JSON,
	STATE_NOTIFICATIONS_COUNT,
	STATE_NOTIFICATIONS_JSON,
	STATE_TEACHERS_JSON,
	STATE_TIMETABLE_NEXT_DATE,
	STATE_TIMETABLE_NEXT_JSON,
	STATE_TIMETABLE_TODAY_JSON,
	CycleStage,
	SyncOrchestrator,
	SyncSession,
)

# Wednesday
NOW = datetime(2024, 1, 3, 7, 0)


class FakeClient:
	"""In-memory portal client."""

	base_url = "https://school.edupage.org"

	def __init__(self, students=None, homeworks=None, timeline=None, teachers=None, lessons=None):
		self.students = students if students is not None else [
			{"id": "1", "name": "Anna Novak"},
			{"id": "2", "name": "Ben Novak"},
		]
		self.homeworks = homeworks or []
		self.timeline = timeline or []
		self.teachers = teachers or []
		self.user = {}
		self.lookups = {}
		self.lessons: Dict[date, List[Dict[str, Any]]] = lessons or {}
		self.login = AsyncMock(return_value=True)
		self.refresh_session = AsyncMock()
		self.refresh_timeline = AsyncMock()
		self.timetable_errors: Dict[date, Exception] = {}
		self.timetable_calls: List[tuple] = []

	async def get_timetable_for_date(self, day: date, student_id: Optional[str] = None) -> List[Dict[str, Any]]:
		self.timetable_calls.append((day, student_id))
		if day in self.timetable_errors:
			raise self.timetable_errors[day]
		return list(self.lessons.get(day, []))

	async def post_json(self, url: str, payload: Mapping[str, Any]) -> Any:
		return {"menu": {"menuA": f"Dish {payload['dateFrom']}"}}


class FakeWriter:
	def __init__(self):
		self.writes: List[Dict[str, Any]] = []

	async def async_write(self, values):
		self.writes.append(dict(values))

	@property
	def last(self) -> Dict[str, Any]:
		return self.writes[-1]


def _session(client, **options) -> SyncSession:
	return SyncSession(client=client, username="parent", password="secret", options=SyncOptions(**options))


def _orchestrator(writer, **kwargs) -> SyncOrchestrator:
	return SyncOrchestrator(writer, clock=lambda: NOW, **kwargs)


def test_full_cycle_writes_every_slice():
	client = FakeClient(
		homeworks=[
			{"id": 1, "title": "Read", "dueDate": "2024-01-04", "students": ["2"], "subject": "English"},
			{"id": 2, "title": "Other kid", "dueDate": "2024-01-04", "students": ["1"]},
		],
		timeline=[
			{"id": 5, "type": "msg", "text": "Hello", "date": "2024-01-02 10:00:00"},
			{"id": 6, "type": "homework", "text": "Read"},
		],
		lessons={
			date(2024, 1, 3): [{"period": "1", "subject": "Math", "teacher": "Jan Kos", "date": "2024-01-03"}],
			date(2024, 1, 4): [{"period": "1", "subject": "Art", "teacher": "Eva Mala"}],
		},
	)
	writer = FakeWriter()
	session = _session(client, student_filter="ben")
	report = asyncio.run(_orchestrator(writer).run_cycle(session))

	assert report.success is True
	assert report.teacher_source == "scan"
	assert client.login.await_count == 1
	assert client.timetable_calls == [(date(2024, 1, 3), "2"), (date(2024, 1, 4), "2")]

	values = writer.last
	assert values[STATE_CONNECTION] is True
	assert values[STATE_ACTIVE_STUDENT] == "Ben Novak"
	assert values[STATE_ACTIVE_STUDENT_ID] == "2"
	assert values[STATE_HOMEWORK_COUNT] == 1
	assert json.loads(values[STATE_HOMEWORK_JSON])[0]["title"] == "Read"
	assert values[STATE_NOTIFICATIONS_COUNT] == 1
	assert json.loads(values[STATE_NOTIFICATIONS_JSON])[0]["id"] == "5"
	assert json.loads(values[STATE_TIMETABLE_TODAY_JSON])[0]["subject"] == "Math"
	assert json.loads(values[STATE_TIMETABLE_NEXT_JSON])[0]["teachers"] == "Eva Mala"
	assert values[STATE_TIMETABLE_NEXT_DATE] == "2024-01-04"
	assert [teacher["display_name"] for teacher in json.loads(values[STATE_TEACHERS_JSON])] == ["Eva Mala", "Jan Kos"]
	assert values[STATE_MENU_TODAY] == "Dish 2024-01-03"
	assert len(json.loads(values[STATE_MENU_WEEK_JSON])) == 5
	assert "Read" in values[STATE_HOMEWORK_HTML]


def test_empty_collections_are_written_as_empty_lists():
	writer = FakeWriter()
	client = FakeClient(students=[])
	report = asyncio.run(_orchestrator(writer).run_cycle(_session(client, fetch_menu=False)))

	assert report.success is True
	assert report.snapshot.selection.mode == MODE_ACCOUNT
	values = writer.last
	assert values[STATE_HOMEWORK_JSON] == "[]"
	assert values[STATE_NOTIFICATIONS_JSON] == "[]"
	assert values[STATE_TIMETABLE_TODAY_JSON] == "[]"
	assert values[STATE_TEACHERS_JSON] == "[]"
	assert values[STATE_MENU_WEEK_JSON] == "[]"
	assert values[STATE_MENU_TODAY] is None
	assert values[STATE_HOMEWORK_COUNT] == 0
	assert values[STATE_ACTIVE_STUDENT_ID] is None


def test_login_failure_marks_connection_down_and_aborts():
	client = FakeClient()
	client.login.side_effect = EdupageAuthError("bad password")
	writer = FakeWriter()
	session = _session(client)

	report = asyncio.run(_orchestrator(writer).run_cycle(session))

	assert report.success is False
	assert SLICE_BASE in report.failures
	assert writer.writes == [{STATE_CONNECTION: False}]
	assert client.timetable_calls == []
	assert session.connected is False
	assert report.auth_failed is True


def test_session_refresh_failure_forces_relogin_next_cycle():
	client = FakeClient()
	writer = FakeWriter()
	session = _session(client, fetch_menu=False)
	orchestrator = _orchestrator(writer)

	asyncio.run(orchestrator.run_cycle(session))
	client.refresh_session.side_effect = EdupageConnectionError("reset")
	failed = asyncio.run(orchestrator.run_cycle(session))
	client.refresh_session.side_effect = None
	recovered = asyncio.run(orchestrator.run_cycle(session))

	assert failed.success is False
	assert writer.writes[1] == {STATE_CONNECTION: False}
	assert recovered.success is True
	assert client.login.await_count == 2
	assert client.refresh_session.await_count == 1


def test_timetable_failure_degrades_only_that_slice():
	client = FakeClient(lessons={date(2024, 1, 3): [{"period": "1", "subject": "Math"}]})
	client.timetable_errors[date(2024, 1, 4)] = EdupageConnectionError("timeout")
	writer = FakeWriter()

	report = asyncio.run(_orchestrator(writer).run_cycle(_session(client, fetch_menu=False)))

	assert report.success is True
	assert SLICE_TIMETABLE_NEXT in report.failures
	assert writer.last[STATE_CONNECTION] is True
	assert writer.last[STATE_TIMETABLE_NEXT_JSON] == "[]"
	assert json.loads(writer.last[STATE_TIMETABLE_TODAY_JSON])[0]["subject"] == "Math"


def test_undecodable_timetable_response_degrades_only_that_slice():
	client = FakeClient(lessons={date(2024, 1, 3): [{"period": "1", "subject": "Math"}]})
	client.timetable_errors[date(2024, 1, 4)] = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
	writer = FakeWriter()

	report = asyncio.run(_orchestrator(writer).run_cycle(_session(client, fetch_menu=False)))

	assert report.success is True
	assert SLICE_TIMETABLE_NEXT in report.failures
	assert writer.last[STATE_CONNECTION] is True
	assert writer.last[STATE_TIMETABLE_NEXT_JSON] == "[]"
	assert json.loads(writer.last[STATE_TIMETABLE_TODAY_JSON])[0]["subject"] == "Math"


def test_menu_unavailable_is_not_a_failure():
	client = FakeClient()
	writer = FakeWriter()

	def no_menu(portal):
		return MenuFetcher(AsyncMock(side_effect=EdupageConnectionError("404")), portal.base_url)

	report = asyncio.run(_orchestrator(writer, menu_fetcher_factory=no_menu).run_cycle(_session(client)))

	assert report.success is True
	assert report.failures == {}
	assert writer.last[STATE_MENU_TODAY] is None
	assert [entry["main_dish"] for entry in json.loads(writer.last[STATE_MENU_WEEK_JSON])] == [None] * 5


def test_weekend_menu_falls_back_to_single_day_lookup():
	client = FakeClient()
	writer = FakeWriter()
	saturday = datetime(2024, 1, 6, 9, 0)
	orchestrator = SyncOrchestrator(writer, clock=lambda: saturday)

	report = asyncio.run(orchestrator.run_cycle(_session(client)))

	assert report.success is True
	assert writer.last[STATE_MENU_TODAY] == "Dish 2024-01-06"
	assert writer.last[STATE_TIMETABLE_NEXT_DATE] == "2024-01-08"


def test_overlapping_tick_is_skipped():
	client = FakeClient()
	writer = FakeWriter()
	orchestrator = _orchestrator(writer)
	session = _session(client, fetch_menu=False)
	started = asyncio.Event()
	release = asyncio.Event()

	async def slow_login(username, password):
		started.set()
		await release.wait()
		return True

	client.login.side_effect = slow_login

	async def scenario():
		first = asyncio.create_task(orchestrator.run_cycle(session))
		await started.wait()
		assert orchestrator.busy is True
		assert orchestrator.stage == CycleStage.REFRESHING_BASE_DATA
		skipped = await orchestrator.run_cycle(session)
		release.set()
		return await first, skipped

	first, skipped = asyncio.run(scenario())

	assert skipped is None
	assert first.success is True
	assert client.login.await_count == 1
	assert orchestrator.stage == CycleStage.IDLE
	assert len(writer.writes) == 1


def test_selection_is_cached_until_reselect_requested():
	client = FakeClient()
	writer = FakeWriter()
	orchestrator = _orchestrator(writer)
	session = _session(client, fetch_menu=False)

	asyncio.run(orchestrator.run_cycle(session))
	first = session.selection
	client.students = [{"id": "2", "name": "Ben Novak"}, {"id": "1", "name": "Anna Novak"}]
	asyncio.run(orchestrator.run_cycle(session))
	assert session.selection is first
	assert writer.last[STATE_ACTIVE_STUDENT_ID] == "1"

	session.request_reselect("ben")
	asyncio.run(orchestrator.run_cycle(session))
	assert session.options.student_filter == "ben"
	assert writer.last[STATE_ACTIVE_STUDENT_ID] == "2"


def test_unexpected_error_never_escapes_the_cycle():
	client = FakeClient()
	client.refresh_timeline.side_effect = RuntimeError("boom")
	writer = FakeWriter()
	session = _session(client)

	report = asyncio.run(_orchestrator(writer).run_cycle(session))

	assert report.success is False
	assert writer.last == {STATE_CONNECTION: False}
	assert session.connected is False


def test_expired_session_is_not_reported_as_rejected_credentials():
	client = FakeClient()
	writer = FakeWriter()
	session = _session(client, fetch_menu=False)
	orchestrator = _orchestrator(writer)

	asyncio.run(orchestrator.run_cycle(session))
	client.refresh_session.side_effect = EdupageAuthError("Session expired")
	expired = asyncio.run(orchestrator.run_cycle(session))
	client.login.side_effect = EdupageConnectionError("down")
	offline = asyncio.run(orchestrator.run_cycle(session))

	assert expired.success is False
	assert expired.auth_failed is False
	assert offline.success is False
	assert offline.auth_failed is False
