"""Persistent key/value state for the EduPage integration."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import STATE_CONNECTION

_LOGGER = logging.getLogger(__name__)

STORAGE_VERSION = 1
STORAGE_KEY = "edupage_state"
SAVE_DELAY_SECONDS = 2.0


class EdupageStorage:
	"""Flat state values per config entry, persisted with the Home Assistant Store.

	Every write overwrites the given keys; values not part of a write keep their
	previous value (the sync always writes its complete key set on success).
	"""

	def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
		"""Initialise storage handler."""
		self.hass = hass
		self.entry_id = entry_id
		self._store = Store(hass, STORAGE_VERSION, f"{STORAGE_KEY}_{entry_id}")
		self._values: Dict[str, Any] = {}
		self.updated_at: Optional[datetime] = None

	async def async_load(self) -> Dict[str, Any]:
		"""Load previously persisted values."""
		try:
			stored = await self._store.async_load()
		except Exception as e:  # pylint: disable=broad-except
			_LOGGER.warning(f"Storage load failed: {e}")
			stored = None
		if isinstance(stored, dict):
			self._values = dict(stored.get("values") or {})
			_LOGGER.debug(f"Loaded {len(self._values)} stored EduPage values")
		return dict(self._values)

	async def async_write(self, values: Mapping[str, Any]) -> None:
		"""Overwrite values and schedule a debounced save."""
		self._values.update(values)
		self.updated_at = datetime.now(timezone.utc)
		self._store.async_delay_save(self._data_to_save, SAVE_DELAY_SECONDS)

	def _data_to_save(self) -> Dict[str, Any]:
		return {
			"values": dict(self._values),
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}

	@property
	def values(self) -> Dict[str, Any]:
		return dict(self._values)

	def get(self, key: str, default: Any = None) -> Any:
		return self._values.get(key, default)

	@property
	def connected(self) -> bool:
		return bool(self._values.get(STATE_CONNECTION))

	async def async_remove(self) -> None:
		"""Delete the persisted file for this entry."""
		await self._store.async_remove()
		self._values = {}
