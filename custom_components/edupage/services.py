"""Service registration and handlers for the EduPage integration."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict

import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError

from .const import (
	CONF_STUDENT_FILTER,
	DOMAIN,
	SERVICE_REFRESH_DATA,
	SERVICE_RESELECT_STUDENT,
)
from .coordinator import EdupageDataUpdateCoordinator

_LOGGER = logging.getLogger(__name__)

CoordinatorAction = Callable[[str, EdupageDataUpdateCoordinator, ServiceCall], Awaitable[None]]

_SERVICES_REGISTERED = False
_REGISTERED_SERVICES = (
	SERVICE_REFRESH_DATA,
	SERVICE_RESELECT_STUDENT,
)


def _build_schema(extra: dict) -> vol.Schema:
	"""Service schema that accepts an optional config_entry_id target."""
	fields: dict = {vol.Optional("config_entry_id"): str}
	fields.update(extra)
	return vol.Schema(fields)


SERVICE_REFRESH_DATA_SCHEMA = _build_schema({})

SERVICE_RESELECT_STUDENT_SCHEMA = _build_schema({
	vol.Optional(CONF_STUDENT_FILTER): vol.Any(None, str),
})


async def async_register_services(hass: HomeAssistant) -> None:
	"""Register EduPage services once per Home Assistant instance."""
	global _SERVICES_REGISTERED

	if _SERVICES_REGISTERED:
		return

	async def handle_refresh_data(call: ServiceCall) -> None:
		await _run_for_entries(hass, call, _action_refresh_data)

	async def handle_reselect_student(call: ServiceCall) -> None:
		await _run_for_entries(hass, call, _action_reselect_student)

	hass.services.async_register(
		DOMAIN,
		SERVICE_REFRESH_DATA,
		handle_refresh_data,
		schema=SERVICE_REFRESH_DATA_SCHEMA,
	)

	hass.services.async_register(
		DOMAIN,
		SERVICE_RESELECT_STUDENT,
		handle_reselect_student,
		schema=SERVICE_RESELECT_STUDENT_SCHEMA,
	)

	_SERVICES_REGISTERED = True


async def async_unregister_services(hass: HomeAssistant) -> None:
	"""Remove EduPage services when the last entry is unloaded."""
	global _SERVICES_REGISTERED

	if not _SERVICES_REGISTERED:
		return

	for service in _REGISTERED_SERVICES:
		hass.services.async_remove(DOMAIN, service)

	_SERVICES_REGISTERED = False


async def _run_for_entries(
	hass: HomeAssistant,
	call: ServiceCall,
	action: CoordinatorAction,
) -> None:
	"""Apply a refresh or reselect to every EduPage entry the call names."""
	entries = _coordinators_for_call(hass, call)
	results = await asyncio.gather(
		*(action(entry_id, coordinator, call) for entry_id, coordinator in entries.items()),
		return_exceptions=True,
	)

	failed = {
		entry_id: result
		for entry_id, result in zip(entries, results)
		if isinstance(result, Exception)
	}
	for entry_id, err in failed.items():
		_LOGGER.error(f"{call.service} failed for EduPage entry {entry_id}: {err}")
	if failed:
		raise HomeAssistantError(
			f"EduPage {call.service} failed for {len(failed)} of {len(entries)} accounts"
		)


def _coordinators_for_call(
	hass: HomeAssistant,
	call: ServiceCall,
) -> Dict[str, EdupageDataUpdateCoordinator]:
	"""Pick the entry named by config_entry_id, or every loaded EduPage entry."""
	coordinators = {
		entry_id: coordinator
		for entry_id, coordinator in hass.data.get(DOMAIN, {}).items()
		if isinstance(coordinator, EdupageDataUpdateCoordinator)
	}
	if not coordinators:
		raise HomeAssistantError("No EduPage accounts are loaded")

	entry_id = call.data.get("config_entry_id")
	if entry_id is None:
		return coordinators
	if entry_id not in coordinators:
		raise HomeAssistantError(f"Unknown EduPage config entry: {entry_id}")
	return {entry_id: coordinators[entry_id]}


async def _action_refresh_data(
	entry_id: str,
	coordinator: EdupageDataUpdateCoordinator,
	call: ServiceCall,
) -> None:
	_LOGGER.info(f"Manual refresh requested for EduPage entry {entry_id}")
	await coordinator.async_request_refresh()


async def _action_reselect_student(
	entry_id: str,
	coordinator: EdupageDataUpdateCoordinator,
	call: ServiceCall,
) -> None:
	student_filter = call.data.get(CONF_STUDENT_FILTER)
	_LOGGER.info(f"Re-selecting student for EduPage entry {entry_id} (filter: {student_filter!r})")
	await coordinator.async_reselect_student(student_filter)
