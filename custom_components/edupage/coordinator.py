"""DataUpdateCoordinator for EduPage."""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import DOMAIN, STATE_LAST_SYNC
from .edupage.client import EdupageClient
from .edupage.config import EdupageConfig
from .edupage.models import StudentSelection
from .edupage.sync import SLICE_BASE, CycleReport, SyncOrchestrator, SyncSession
from .storage import EdupageStorage

_LOGGER = logging.getLogger(__name__)


class EdupageDataUpdateCoordinator(DataUpdateCoordinator):
	"""Drives one sync cycle per poll tick and exposes the persisted values."""

	def __init__(
		self,
		hass: HomeAssistant,
		config: EdupageConfig,
		client: EdupageClient,
		storage: EdupageStorage,
	) -> None:
		"""Initialise coordinator."""
		self.config = config
		self.client = client
		self.storage = storage
		self.session = SyncSession(
			client=client,
			username=config.username,
			password=config.password,
			options=config.options,
		)
		self.orchestrator = SyncOrchestrator(storage)

		super().__init__(
			hass,
			_LOGGER,
			name=f"{DOMAIN}_{config.school_subdomain}",
			update_interval=timedelta(minutes=config.interval_minutes),
		)

	@property
	def selection(self) -> Optional[StudentSelection]:
		return self.session.selection

	@property
	def last_report(self) -> Optional[CycleReport]:
		return self.orchestrator.last_report

	async def _async_update_data(self) -> Dict[str, Any]:
		"""Run a sync cycle and return the flat state values."""
		report = await self.orchestrator.run_cycle(self.session)
		if report is None:
			# previous cycle still running, keep what we have
			return self.storage.values

		if report.auth_failed:
			raise ConfigEntryAuthFailed(f"EduPage rejected the credentials: {report.failures.get(SLICE_BASE)}")

		if not report.success and not self.storage.get(STATE_LAST_SYNC):
			# nothing synced yet
			raise UpdateFailed(f"EduPage sync failed: {report.failures}")

		if report.failures:
			_LOGGER.debug(f"Cycle finished with failed slices: {report.failures}")
		return self.storage.values

	async def async_reselect_student(self, student_filter: Optional[str] = None) -> None:
		"""Resolve the active student again and refresh."""
		if student_filter is None:
			self.session.request_reselect()
		else:
			self.session.request_reselect(student_filter)
		await self.async_request_refresh()

	async def async_shutdown(self) -> None:
		"""Stop polling, let an in-flight cycle finish and release the client."""
		await super().async_shutdown()
		await self.orchestrator.wait_idle()
		try:
			await self.client.close()
		except Exception as err:  # pylint: disable=broad-except
			_LOGGER.warning(f"Error during client shutdown: {err}")
