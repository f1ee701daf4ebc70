"""Support for EduPage sensors."""

import json
import logging
from typing import Any, Dict, List, Optional

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import (
	ATTR_DATE,
	ATTR_HTML,
	ATTR_ITEMS,
	ATTR_LAST_SYNC,
	ATTR_STUDENT_ID,
	ATTR_SUBJECTS,
	ATTR_WEEK,
	DOMAIN,
	SENSOR_ACTIVE_STUDENT,
	SENSOR_CONNECTION,
	SENSOR_HOMEWORK,
	SENSOR_HOMEWORK_WIDGET,
	SENSOR_MENU_TODAY,
	SENSOR_NOTIFICATIONS,
	SENSOR_NOTIFICATIONS_WIDGET,
	SENSOR_TEACHERS,
	SENSOR_TIMETABLE_NEXT_WIDGET,
	SENSOR_TIMETABLE_WIDGET,
	STATE_ACTIVE_STUDENT,
	STATE_ACTIVE_STUDENT_ID,
	STATE_CONNECTION,
	STATE_HOMEWORK_COUNT,
	STATE_HOMEWORK_HTML,
	STATE_HOMEWORK_JSON,
	STATE_LAST_SYNC,
	STATE_MENU_TODAY,
	STATE_MENU_WEEK_JSON,
	STATE_NOTIFICATIONS_COUNT,
	STATE_NOTIFICATIONS_HTML,
	STATE_NOTIFICATIONS_JSON,
	STATE_SUBJECTS_JSON,
	STATE_TEACHER_COUNT,
	STATE_TEACHERS_JSON,
	STATE_TIMETABLE_HTML,
	STATE_TIMETABLE_NEXT_DATE,
	STATE_TIMETABLE_NEXT_HTML,
)
from .coordinator import EdupageDataUpdateCoordinator

_LOGGER = logging.getLogger(__name__)

# Home Assistant caps state strings at 255 characters
STATE_MAX_LENGTH = 255


def _load_json(value: Optional[str]) -> List[Any]:
	if not value:
		return []
	try:
		loaded = json.loads(value)
	except (TypeError, ValueError) as e:
		_LOGGER.debug(f"Ignoring unreadable stored JSON: {e}")
		return []
	return loaded if isinstance(loaded, list) else []


async def async_setup_entry(
	hass: HomeAssistant,
	config_entry: ConfigEntry,
	async_add_entities: AddEntitiesCallback,
) -> None:
	"""Set up EduPage sensors based on a config entry."""
	coordinator: EdupageDataUpdateCoordinator = hass.data[DOMAIN][config_entry.entry_id]

	entities: List[SensorEntity] = [
		EdupageConnectionSensor(coordinator, config_entry),
		EdupageActiveStudentSensor(coordinator, config_entry),
		EdupageHomeworkSensor(coordinator, config_entry),
		EdupageNotificationsSensor(coordinator, config_entry),
		EdupageTeachersSensor(coordinator, config_entry),
		EdupageMenuTodaySensor(coordinator, config_entry),
		EdupageWidgetSensor(
			coordinator, config_entry, SENSOR_HOMEWORK_WIDGET, "Homework Widget", STATE_HOMEWORK_HTML, "mdi:book-open-variant",
		),
		EdupageWidgetSensor(
			coordinator, config_entry, SENSOR_TIMETABLE_WIDGET, "Timetable Widget", STATE_TIMETABLE_HTML, "mdi:timetable",
		),
		EdupageWidgetSensor(
			coordinator, config_entry, SENSOR_TIMETABLE_NEXT_WIDGET, "Next Day Timetable Widget",
			STATE_TIMETABLE_NEXT_HTML, "mdi:calendar-arrow-right",
		),
		EdupageWidgetSensor(
			coordinator, config_entry, SENSOR_NOTIFICATIONS_WIDGET, "Notifications Widget",
			STATE_NOTIFICATIONS_HTML, "mdi:bell-outline",
		),
	]

	_LOGGER.info(f"Setting up {len(entities)} EduPage entities")
	async_add_entities(entities)


class EdupageSensorBase(CoordinatorEntity, SensorEntity):
	"""Base class for EduPage sensors."""

	def __init__(
		self,
		coordinator: EdupageDataUpdateCoordinator,
		config_entry: ConfigEntry,
		sensor_type: str,
		name: str,
	) -> None:
		"""Initialise the sensor."""
		super().__init__(coordinator)
		self.config_entry = config_entry
		self._attr_name = f"EduPage {name}"
		self._attr_unique_id = f"{config_entry.entry_id}_{sensor_type}"
		self._attr_device_info = DeviceInfo(
			identifiers={(DOMAIN, config_entry.entry_id)},
			manufacturer="EduPage",
			name=f"EduPage {coordinator.config.school_subdomain} ({coordinator.config.username})",
			model="School portal",
		)

	def _value(self, key: str, default: Any = None) -> Any:
		data = self.coordinator.data or {}
		return data.get(key, default)


class EdupageConnectionSensor(EdupageSensorBase):
	"""Whether the last sync cycle reached EduPage."""

	def __init__(self, coordinator: EdupageDataUpdateCoordinator, config_entry: ConfigEntry) -> None:
		super().__init__(coordinator, config_entry, SENSOR_CONNECTION, "Connection")
		self._attr_icon = "mdi:lan-connect"

	@property
	def available(self) -> bool:
		# reports "disconnected" instead of going unavailable
		return True

	@property
	def native_value(self) -> str:
		return "connected" if self._value(STATE_CONNECTION) else "disconnected"

	@property
	def extra_state_attributes(self) -> Dict[str, Any]:
		return {ATTR_LAST_SYNC: self._value(STATE_LAST_SYNC)}


class EdupageActiveStudentSensor(EdupageSensorBase):
	"""Student the synced data is filtered for."""

	def __init__(self, coordinator: EdupageDataUpdateCoordinator, config_entry: ConfigEntry) -> None:
		super().__init__(coordinator, config_entry, SENSOR_ACTIVE_STUDENT, "Active Student")
		self._attr_icon = "mdi:account-school"

	@property
	def native_value(self) -> Optional[str]:
		return self._value(STATE_ACTIVE_STUDENT)

	@property
	def extra_state_attributes(self) -> Dict[str, Any]:
		return {ATTR_STUDENT_ID: self._value(STATE_ACTIVE_STUDENT_ID)}


class EdupageHomeworkSensor(EdupageSensorBase):
	"""Number of assignments for the active student."""

	def __init__(self, coordinator: EdupageDataUpdateCoordinator, config_entry: ConfigEntry) -> None:
		super().__init__(coordinator, config_entry, SENSOR_HOMEWORK, "Homework")
		self._attr_icon = "mdi:book-education"

	@property
	def native_value(self) -> int:
		return self._value(STATE_HOMEWORK_COUNT, 0)

	@property
	def extra_state_attributes(self) -> Dict[str, Any]:
		return {ATTR_ITEMS: _load_json(self._value(STATE_HOMEWORK_JSON))}


class EdupageNotificationsSensor(EdupageSensorBase):
	"""Number of notifications for the active student."""

	def __init__(self, coordinator: EdupageDataUpdateCoordinator, config_entry: ConfigEntry) -> None:
		super().__init__(coordinator, config_entry, SENSOR_NOTIFICATIONS, "Notifications")
		self._attr_icon = "mdi:bell"

	@property
	def native_value(self) -> int:
		return self._value(STATE_NOTIFICATIONS_COUNT, 0)

	@property
	def extra_state_attributes(self) -> Dict[str, Any]:
		return {ATTR_ITEMS: _load_json(self._value(STATE_NOTIFICATIONS_JSON))}


class EdupageTeachersSensor(EdupageSensorBase):
	"""Teacher directory and the subjects seen in homework."""

	def __init__(self, coordinator: EdupageDataUpdateCoordinator, config_entry: ConfigEntry) -> None:
		super().__init__(coordinator, config_entry, SENSOR_TEACHERS, "Teachers")
		self._attr_icon = "mdi:human-male-board"

	@property
	def native_value(self) -> int:
		return self._value(STATE_TEACHER_COUNT, 0)

	@property
	def extra_state_attributes(self) -> Dict[str, Any]:
		return {
			ATTR_ITEMS: _load_json(self._value(STATE_TEACHERS_JSON)),
			ATTR_SUBJECTS: _load_json(self._value(STATE_SUBJECTS_JSON)),
		}


class EdupageMenuTodaySensor(EdupageSensorBase):
	"""Main dish served today."""

	def __init__(self, coordinator: EdupageDataUpdateCoordinator, config_entry: ConfigEntry) -> None:
		super().__init__(coordinator, config_entry, SENSOR_MENU_TODAY, "Menu Today")
		self._attr_icon = "mdi:silverware-fork-knife"

	@property
	def native_value(self) -> Optional[str]:
		dish = self._value(STATE_MENU_TODAY)
		if dish and len(dish) > STATE_MAX_LENGTH:
			return dish[:STATE_MAX_LENGTH - 1] + "…"
		return dish

	@property
	def extra_state_attributes(self) -> Dict[str, Any]:
		return {ATTR_WEEK: _load_json(self._value(STATE_MENU_WEEK_JSON))}


class EdupageWidgetSensor(EdupageSensorBase):
	"""Rendered HTML widget, exposed as the ``html`` attribute."""

	def __init__(
		self,
		coordinator: EdupageDataUpdateCoordinator,
		config_entry: ConfigEntry,
		sensor_type: str,
		name: str,
		state_key: str,
		icon: str,
	) -> None:
		super().__init__(coordinator, config_entry, sensor_type, name)
		self._state_key = state_key
		self._attr_icon = icon

	@property
	def native_value(self) -> Optional[str]:
		"""Time of the sync that rendered the widget."""
		return self._value(STATE_LAST_SYNC)

	@property
	def extra_state_attributes(self) -> Dict[str, Any]:
		attributes = {ATTR_HTML: self._value(self._state_key, "")}
		if self._state_key == STATE_TIMETABLE_NEXT_HTML:
			attributes[ATTR_DATE] = self._value(STATE_TIMETABLE_NEXT_DATE)
		return attributes
