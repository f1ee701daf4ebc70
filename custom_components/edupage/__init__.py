"""The EduPage integration."""

import asyncio
import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers import device_registry as dr
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .const import DOMAIN, FIRST_REFRESH_TIMEOUT_SECONDS, STATE_CONNECTION
from .edupage.client import EdupageClient
from .edupage.config import validate_config
from .edupage.exceptions import EdupageConfigError
from .services import async_register_services, async_unregister_services
from .storage import EdupageStorage

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.SENSOR]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
	"""Set up EduPage from a config entry."""
	_LOGGER.debug("Setting up EduPage integration")

	storage = EdupageStorage(hass, entry.entry_id)
	await storage.async_load()

	try:
		config = validate_config({**entry.data, **entry.options})
	except EdupageConfigError as err:
		_LOGGER.error(f"EduPage configuration invalid, not starting: {err}")
		await storage.async_write({STATE_CONNECTION: False})
		return False

	# Lazy import to minimise import-time work
	from .coordinator import EdupageDataUpdateCoordinator

	client = EdupageClient(config.school_subdomain, async_get_clientsession(hass))
	coordinator = EdupageDataUpdateCoordinator(hass, config, client, storage)

	try:
		await asyncio.wait_for(
			coordinator.async_config_entry_first_refresh(),
			timeout=FIRST_REFRESH_TIMEOUT_SECONDS,
		)
	except asyncio.TimeoutError:
		_LOGGER.error(f"EduPage setup timed out after {FIRST_REFRESH_TIMEOUT_SECONDS} seconds")
		await coordinator.async_shutdown()
		raise ConfigEntryNotReady("Setup timeout") from None

	hass.data.setdefault(DOMAIN, {})
	hass.data[DOMAIN][entry.entry_id] = coordinator

	await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

	device_registry = dr.async_get(hass)
	device_registry.async_get_or_create(
		config_entry_id=entry.entry_id,
		identifiers={(DOMAIN, entry.entry_id)},
		manufacturer="EduPage",
		name=f"EduPage {config.school_subdomain} ({config.username})",
		model="School portal",
	)

	entry.async_on_unload(entry.add_update_listener(async_reload_entry))

	await async_register_services(hass)

	return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
	"""Unload a config entry."""
	_LOGGER.debug("Unloading EduPage integration")

	unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)

	if unload_ok and entry.entry_id in hass.data.get(DOMAIN, {}):
		coordinator = hass.data[DOMAIN].pop(entry.entry_id)
		await coordinator.async_shutdown()

		if not hass.data[DOMAIN]:
			await async_unregister_services(hass)

	return unload_ok


async def async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
	"""Reload config entry."""
	await hass.config_entries.async_reload(entry.entry_id)


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
	"""Drop persisted state when the entry is deleted."""
	await EdupageStorage(hass, entry.entry_id).async_remove()
