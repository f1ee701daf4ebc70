"""Configuration validation for the EduPage sync."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import voluptuous as vol

from .exceptions import EdupageConfigError
from .normalizer import TEACHER_SOURCE_AUTO, TEACHER_SOURCES

CONF_USERNAME = "username"
CONF_PASSWORD = "password"
CONF_SUBDOMAIN = "school_subdomain"
CONF_INTERVAL = "interval"
CONF_STUDENT_FILTER = "student_filter"
CONF_TEACHER_SOURCE = "teacher_source"
CONF_FILTER_HOMEWORK_DUPLICATES = "filter_homework_duplicates"
CONF_FETCH_MENU = "fetch_menu"

DEFAULT_INTERVAL_MINUTES = 30
DEFAULT_FILTER_HOMEWORK_DUPLICATES = True
DEFAULT_FETCH_MENU = True

REQUIRED_KEYS = (CONF_USERNAME, CONF_PASSWORD, CONF_SUBDOMAIN)


def _non_blank(value: Any) -> str:
	if not isinstance(value, str) or not value.strip():
		raise vol.Invalid("must be a non-empty string")
	return value.strip()


def _optional_text(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


CONFIG_SCHEMA = vol.Schema(
	{
		vol.Required(CONF_USERNAME): _non_blank,
		vol.Required(CONF_PASSWORD): vol.All(str, vol.Length(min=1)),
		vol.Required(CONF_SUBDOMAIN): vol.All(_non_blank, vol.Lower, vol.Match(r"^[a-z0-9-]+$")),
		vol.Optional(CONF_INTERVAL, default=DEFAULT_INTERVAL_MINUTES): vol.All(vol.Coerce(int), vol.Range(min=1)),
		vol.Optional(CONF_STUDENT_FILTER, default=None): vol.Any(None, _optional_text),
		vol.Optional(CONF_TEACHER_SOURCE, default=TEACHER_SOURCE_AUTO): vol.In(TEACHER_SOURCES),
		vol.Optional(CONF_FILTER_HOMEWORK_DUPLICATES, default=DEFAULT_FILTER_HOMEWORK_DUPLICATES): vol.Boolean(),
		vol.Optional(CONF_FETCH_MENU, default=DEFAULT_FETCH_MENU): vol.Boolean(),
	},
	extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True)
class SyncOptions:
	"""Per-cycle behaviour switches."""
	student_filter: Optional[str] = None
	teacher_source: str = TEACHER_SOURCE_AUTO
	filter_homework_duplicates: bool = DEFAULT_FILTER_HOMEWORK_DUPLICATES
	fetch_menu: bool = DEFAULT_FETCH_MENU


@dataclass(frozen=True)
class EdupageConfig:
	"""Validated configuration."""
	username: str
	password: str
	school_subdomain: str
	interval_minutes: int = DEFAULT_INTERVAL_MINUTES
	options: SyncOptions = SyncOptions()

	def __repr__(self) -> str:
		return (
			f"EdupageConfig(username={self.username!r}, school_subdomain={self.school_subdomain!r}, "
			f"interval_minutes={self.interval_minutes}, options={self.options!r})"
		)


def validate_config(raw: Mapping[str, Any]) -> EdupageConfig:
	"""Validate a raw configuration mapping.

	Raises:
		EdupageConfigError: Required credentials missing or a value is invalid
	"""
	missing = [key for key in REQUIRED_KEYS if not raw or not str(raw.get(key) or "").strip()]
	if missing:
		raise EdupageConfigError(f"Missing required configuration: {', '.join(missing)}")

	try:
		data = CONFIG_SCHEMA(dict(raw))
	except vol.Invalid as err:
		raise EdupageConfigError(f"Invalid configuration: {err}") from err

	return EdupageConfig(
		username=data[CONF_USERNAME],
		password=data[CONF_PASSWORD],
		school_subdomain=data[CONF_SUBDOMAIN],
		interval_minutes=data[CONF_INTERVAL],
		options=SyncOptions(
			student_filter=data[CONF_STUDENT_FILTER],
			teacher_source=data[CONF_TEACHER_SOURCE],
			filter_homework_duplicates=data[CONF_FILTER_HOMEWORK_DUPLICATES],
			fetch_menu=data[CONF_FETCH_MENU],
		),
	)
