"""One sync cycle: fetch, normalize, render and persist.

A cycle runs against an explicit SyncSession (client handle, options, cached
student selection). Stages that only feed a single data slice are guarded
individually so that a failing timetable or menu lookup degrades that slice
instead of the whole cycle. Session-level failures abort the cycle and mark
the connection as down; the next poll tick starts over.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, TypeVar

from .client import PortalClient
from .config import SyncOptions
from .exceptions import EdupageAuthError, EdupageError
from .menu import MenuFetcher
from .models import Snapshot, StudentSelection
from .normalizer import (
	aggregate_teachers,
	collect_subjects,
	normalize_homeworks,
	normalize_lessons,
	normalize_notifications,
)
from .renderer import render_homework_widget, render_notifications_widget, render_timetable_widget
from .school_days import next_school_day
from .students import build_roster, resolve_student
from .utils import to_json

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Flat state keys written every cycle
STATE_CONNECTION = "info.connection"
STATE_LAST_SYNC = "info.last_sync"
STATE_ACTIVE_STUDENT = "info.active_student"
STATE_ACTIVE_STUDENT_ID = "info.active_student_id"
STATE_HOMEWORK_JSON = "data.homework_json"
STATE_HOMEWORK_COUNT = "data.homework_count"
STATE_NOTIFICATIONS_JSON = "data.notifications_json"
STATE_NOTIFICATIONS_COUNT = "data.notifications_count"
STATE_TIMETABLE_TODAY_JSON = "data.timetable_today_json"
STATE_TIMETABLE_NEXT_JSON = "data.timetable_next_json"
STATE_TIMETABLE_NEXT_DATE = "data.timetable_next_date"
STATE_TEACHERS_JSON = "data.teachers_json"
STATE_TEACHER_COUNT = "data.teacher_count"
STATE_SUBJECTS_JSON = "data.subjects_json"
STATE_MENU_TODAY = "data.menu_today"
STATE_MENU_WEEK_JSON = "data.menu_week_json"
STATE_HOMEWORK_HTML = "widget.homework_html"
STATE_TIMETABLE_HTML = "widget.timetable_html"
STATE_TIMETABLE_NEXT_HTML = "widget.timetable_next_html"
STATE_NOTIFICATIONS_HTML = "widget.notifications_html"

SLICE_TIMETABLE_TODAY = "timetable_today"
SLICE_TIMETABLE_NEXT = "timetable_next"
SLICE_MENU = "menu"
SLICE_BASE = "base"
SLICE_CYCLE = "cycle"


class CycleStage(str, Enum):
	"""Stages of a sync cycle, in execution order."""
	IDLE = "idle"
	REFRESHING_BASE_DATA = "refreshing_base_data"
	FETCHING_TODAY_TIMETABLE = "fetching_today_timetable"
	FETCHING_NEXT_DAY_TIMETABLE = "fetching_next_day_timetable"
	FETCHING_MENU = "fetching_menu"
	NORMALIZING = "normalizing"
	RENDERING = "rendering"
	PERSISTING = "persisting"


class StateWriter(Protocol):
	"""Persistence collaborator: overwrites a flat set of named values."""

	async def async_write(self, values: Mapping[str, Any]) -> None: ...


_UNSET: Any = object()


@dataclass
class SyncSession:
	"""Session state shared by consecutive cycles."""
	client: PortalClient
	username: str
	password: str
	options: SyncOptions = field(default_factory=SyncOptions)
	selection: Optional[StudentSelection] = None
	connected: bool = False

	async def connect(self) -> None:
		"""Log in and re-resolve the active student."""
		await self.client.login(self.username, self.password)
		self.connected = True
		self.selection = None
		self.resolve_student()

	def resolve_student(self) -> StudentSelection:
		"""Return the cached selection, resolving it on first use."""
		if self.selection is None:
			roster = build_roster(self.client.students)
			self.selection = resolve_student(roster, self.options.student_filter)
			_LOGGER.info(f"Active student: {self.selection}")
		return self.selection

	def request_reselect(self, student_filter: Optional[str] = _UNSET) -> None:
		"""Drop the cached selection so the next cycle resolves it again."""
		if student_filter is not _UNSET:
			self.options = replace(self.options, student_filter=student_filter)
		self.selection = None

	def mark_disconnected(self) -> None:
		self.connected = False


@dataclass
class CycleReport:
	"""Outcome of one sync cycle."""
	started_at: datetime
	stage: CycleStage = CycleStage.IDLE
	success: bool = False
	connected: bool = False
	auth_failed: bool = False
	teacher_source: Optional[str] = None
	failures: Dict[str, str] = field(default_factory=dict)
	counts: Dict[str, int] = field(default_factory=dict)
	snapshot: Optional[Snapshot] = None


def build_state_values(snapshot: Snapshot, connected: bool = True) -> Dict[str, Any]:
	"""Flatten a snapshot into the persisted key/value set."""
	return {
		STATE_CONNECTION: connected,
		STATE_LAST_SYNC: snapshot.generated_at.isoformat(),
		STATE_ACTIVE_STUDENT: snapshot.selection.display_name,
		STATE_ACTIVE_STUDENT_ID: snapshot.selection.student_id,
		STATE_HOMEWORK_JSON: to_json(snapshot.assignments),
		STATE_HOMEWORK_COUNT: len(snapshot.assignments),
		STATE_NOTIFICATIONS_JSON: to_json(snapshot.announcements),
		STATE_NOTIFICATIONS_COUNT: len(snapshot.announcements),
		STATE_TIMETABLE_TODAY_JSON: to_json([lesson.as_dict() for lesson in snapshot.lessons_today]),
		STATE_TIMETABLE_NEXT_JSON: to_json([lesson.as_dict() for lesson in snapshot.lessons_next_day]),
		STATE_TIMETABLE_NEXT_DATE: snapshot.next_school_day.isoformat() if snapshot.next_school_day else None,
		STATE_TEACHERS_JSON: to_json(snapshot.teachers),
		STATE_TEACHER_COUNT: len(snapshot.teachers),
		STATE_SUBJECTS_JSON: to_json(snapshot.subjects),
		STATE_MENU_TODAY: snapshot.menu_today,
		STATE_MENU_WEEK_JSON: to_json(snapshot.menu_week),
		STATE_HOMEWORK_HTML: snapshot.homework_html,
		STATE_TIMETABLE_HTML: snapshot.timetable_html,
		STATE_TIMETABLE_NEXT_HTML: snapshot.timetable_next_html,
		STATE_NOTIFICATIONS_HTML: snapshot.notifications_html,
	}


def _default_menu_fetcher(client: PortalClient) -> MenuFetcher:
	return MenuFetcher(client.post_json, client.base_url)


class SyncOrchestrator:
	"""Runs sync cycles one at a time."""

	def __init__(
		self,
		writer: StateWriter,
		menu_fetcher_factory: Callable[[PortalClient], MenuFetcher] = _default_menu_fetcher,
		clock: Callable[[], datetime] = datetime.now,
	) -> None:
		self._writer = writer
		self._menu_fetcher_factory = menu_fetcher_factory
		self._clock = clock
		self._lock = asyncio.Lock()
		self._stage = CycleStage.IDLE
		self.last_report: Optional[CycleReport] = None

	@property
	def stage(self) -> CycleStage:
		return self._stage

	@property
	def busy(self) -> bool:
		return self._lock.locked()

	async def wait_idle(self) -> None:
		"""Wait for an in-flight cycle to finish."""
		async with self._lock:
			pass

	async def run_cycle(self, session: SyncSession) -> Optional[CycleReport]:
		"""Run one full cycle; returns None when a cycle is already running.

		Never raises: every failure is logged and reflected in the report and in
		the persisted connection flag.
		"""
		if self._lock.locked():
			_LOGGER.warning("Previous sync cycle still running - skipping this tick")
			return None

		async with self._lock:
			report = CycleReport(started_at=self._clock())
			try:
				await self._run(session, report)
			except Exception as err:  # pylint: disable=broad-except
				_LOGGER.error(f"Sync cycle abandoned during {self._stage.value}: {err}")
				report.failures[SLICE_CYCLE] = str(err)
				await self._mark_down(session, report)
			finally:
				self._stage = CycleStage.IDLE
			self.last_report = report
			return report

	def _enter(self, stage: CycleStage, report: CycleReport) -> None:
		self._stage = stage
		report.stage = stage
		_LOGGER.debug(f"Sync stage: {stage.value}")

	async def _guarded(self, report: CycleReport, slice_name: str, call: Awaitable[T], default: T) -> T:
		"""Await a single-slice fetch, substituting default on failure."""
		try:
			return await call
		except (EdupageError, asyncio.TimeoutError) as err:
			_LOGGER.warning(f"Fetching {slice_name} failed, continuing without it: {err}")
			report.failures[slice_name] = str(err)
			return default
		except Exception as err:  # pylint: disable=broad-except
			_LOGGER.error(f"Unexpected error fetching {slice_name}, continuing without it: {err!r}")
			report.failures[slice_name] = repr(err)
			return default

	async def _mark_down(self, session: SyncSession, report: CycleReport) -> None:
		session.mark_disconnected()
		report.success = False
		report.connected = False
		try:
			await self._writer.async_write({STATE_CONNECTION: False})
		except Exception as err:  # pylint: disable=broad-except
			_LOGGER.error(f"Failed to persist connection state: {err}")

	async def _run(self, session: SyncSession, report: CycleReport) -> None:
		client = session.client
		options = session.options

		self._enter(CycleStage.REFRESHING_BASE_DATA, report)
		logging_in = not session.connected
		try:
			if logging_in:
				await session.connect()
			else:
				await client.refresh_session()
			await client.refresh_timeline()
		except (EdupageError, asyncio.TimeoutError) as err:
			_LOGGER.error(f"Base data refresh failed, aborting cycle: {err}")
			report.failures[SLICE_BASE] = str(err)
			# an expired session is retried with a fresh login next tick
			report.auth_failed = logging_in and isinstance(err, EdupageAuthError)
			await self._mark_down(session, report)
			return

		selection = session.resolve_student()
		now = self._clock()
		today = now.date()
		next_day = next_school_day(now).date()

		self._enter(CycleStage.FETCHING_TODAY_TIMETABLE, report)
		raw_today = await self._guarded(
			report, SLICE_TIMETABLE_TODAY,
			client.get_timetable_for_date(today, selection.student_id), [],
		)

		self._enter(CycleStage.FETCHING_NEXT_DAY_TIMETABLE, report)
		raw_next = await self._guarded(
			report, SLICE_TIMETABLE_NEXT,
			client.get_timetable_for_date(next_day, selection.student_id), [],
		)

		menu_week = []
		menu_today = None
		if options.fetch_menu:
			self._enter(CycleStage.FETCHING_MENU, report)
			menu_week, menu_today = await self._fetch_menu(client, report, today)

		self._enter(CycleStage.NORMALIZING, report)
		snapshot = self._normalize(session, selection, now, next_day, raw_today, raw_next, report)
		snapshot.menu_week = menu_week
		snapshot.menu_today = menu_today

		self._enter(CycleStage.RENDERING, report)
		snapshot.homework_html = render_homework_widget(snapshot.assignments, today, now)
		snapshot.timetable_html = render_timetable_widget(snapshot.lessons_today, now, today)
		snapshot.timetable_next_html = render_timetable_widget(snapshot.lessons_next_day, now, next_day)
		snapshot.notifications_html = render_notifications_widget(snapshot.announcements, now)

		self._enter(CycleStage.PERSISTING, report)
		await self._writer.async_write(build_state_values(snapshot, connected=True))

		report.snapshot = snapshot
		report.success = True
		report.connected = True
		report.counts = {
			"homework": len(snapshot.assignments),
			"notifications": len(snapshot.announcements),
			"lessons_today": len(snapshot.lessons_today),
			"lessons_next_day": len(snapshot.lessons_next_day),
			"teachers": len(snapshot.teachers),
			"subjects": len(snapshot.subjects),
		}
		_LOGGER.info(
			f"Synced {report.counts['homework']} homeworks and {report.counts['notifications']} notifications "
			f"for {selection}" + (f" (degraded: {sorted(report.failures)})" if report.failures else "")
		)

	async def _fetch_menu(self, client: PortalClient, report: CycleReport, today: date):
		fetcher = self._menu_fetcher_factory(client)
		menu_week = await self._guarded(report, SLICE_MENU, fetcher.fetch_week_menu(today), [])
		for entry in menu_week:
			if entry.date == today:
				return menu_week, entry.main_dish
		# weekend: today is outside the Monday-Friday table
		menu_today = await self._guarded(report, SLICE_MENU, fetcher.fetch_day_menu(today), None)
		return menu_week, menu_today

	def _normalize(
		self,
		session: SyncSession,
		selection: StudentSelection,
		now: datetime,
		next_day: date,
		raw_today: List[Dict[str, Any]],
		raw_next: List[Dict[str, Any]],
		report: CycleReport,
	) -> Snapshot:
		client = session.client
		options = session.options
		lookups = client.lookups

		assignments = normalize_homeworks(client.homeworks, selection)
		announcements = normalize_notifications(
			client.timeline,
			selection,
			filter_homework_duplicates=options.filter_homework_duplicates,
		)
		lessons_today = normalize_lessons(raw_today, selection, lookups, now.date())
		lessons_next = normalize_lessons(raw_next, selection, lookups, next_day)
		report.teacher_source, teachers = aggregate_teachers(
			options.teacher_source,
			client.teachers,
			[lessons_today, lessons_next],
			assignments,
		)

		return Snapshot(
			generated_at=now,
			selection=selection,
			assignments=assignments,
			announcements=announcements,
			lessons_today=lessons_today,
			lessons_next_day=lessons_next,
			next_school_day=next_day,
			teachers=teachers,
			subjects=collect_subjects(assignments),
		)
