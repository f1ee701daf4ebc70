"""Config flow for EduPage integration."""

import logging
from typing import Any, Dict, Mapping, Optional

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .const import (
	CONF_FETCH_MENU,
	CONF_FILTER_HOMEWORK_DUPLICATES,
	CONF_INTERVAL,
	CONF_PASSWORD,
	CONF_STUDENT_FILTER,
	CONF_SUBDOMAIN,
	CONF_TEACHER_SOURCE,
	CONF_USERNAME,
	DEFAULT_FETCH_MENU,
	DEFAULT_FILTER_HOMEWORK_DUPLICATES,
	DEFAULT_INTERVAL_MINUTES,
	DOMAIN,
)
from .edupage.client import EdupageClient
from .edupage.config import validate_config
from .edupage.exceptions import EdupageAuthError, EdupageConfigError, EdupageConnectionError
from .edupage.normalizer import TEACHER_SOURCE_AUTO, TEACHER_SOURCES

_LOGGER = logging.getLogger(__name__)


def _options_schema(defaults: Mapping[str, Any]) -> Dict[Any, Any]:
	return {
		vol.Optional(CONF_INTERVAL, default=defaults.get(CONF_INTERVAL, DEFAULT_INTERVAL_MINUTES)): vol.All(
			vol.Coerce(int), vol.Range(min=1)
		),
		vol.Optional(CONF_STUDENT_FILTER, default=defaults.get(CONF_STUDENT_FILTER) or ""): str,
		vol.Optional(CONF_TEACHER_SOURCE, default=defaults.get(CONF_TEACHER_SOURCE, TEACHER_SOURCE_AUTO)): vol.In(
			TEACHER_SOURCES
		),
		vol.Optional(
			CONF_FILTER_HOMEWORK_DUPLICATES,
			default=defaults.get(CONF_FILTER_HOMEWORK_DUPLICATES, DEFAULT_FILTER_HOMEWORK_DUPLICATES),
		): bool,
		vol.Optional(CONF_FETCH_MENU, default=defaults.get(CONF_FETCH_MENU, DEFAULT_FETCH_MENU)): bool,
	}


STEP_USER_DATA_SCHEMA = vol.Schema(
	{
		vol.Required(CONF_SUBDOMAIN): str,
		vol.Required(CONF_USERNAME): str,
		vol.Required(CONF_PASSWORD): str,
		**_options_schema({}),
	}
)


class EdupageConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
	"""Handle a config flow for EduPage."""

	VERSION = 1

	def __init__(self) -> None:
		self._reauth_entry: Optional[config_entries.ConfigEntry] = None

	async def async_step_user(
		self, user_input: Optional[Dict[str, Any]] = None
	) -> FlowResult:
		"""Handle the initial step."""
		errors: Dict[str, str] = {}

		if user_input is not None:
			try:
				config = validate_config(user_input)
				await self._test_credentials(config.school_subdomain, config.username, config.password)
			except EdupageConfigError:
				errors["base"] = "invalid_config"
			except EdupageAuthError:
				errors["base"] = "invalid_auth"
			except EdupageConnectionError:
				errors["base"] = "cannot_connect"
			except Exception:  # pylint: disable=broad-except
				_LOGGER.exception("Unexpected exception")
				errors["base"] = "unknown"
			else:
				await self.async_set_unique_id(f"{config.school_subdomain}_{config.username.lower()}")
				self._abort_if_unique_id_configured()

				data = dict(user_input)
				data[CONF_SUBDOMAIN] = config.school_subdomain
				return self.async_create_entry(
					title=f"EduPage {config.school_subdomain} ({config.username})",
					data=data,
				)

		return self.async_show_form(
			step_id="user",
			data_schema=STEP_USER_DATA_SCHEMA,
			errors=errors,
		)

	async def async_step_reauth(self, entry_data: Mapping[str, Any]) -> FlowResult:
		"""Start re-authentication for an existing entry."""
		self._reauth_entry = self.hass.config_entries.async_get_entry(self.context.get("entry_id"))
		return await self.async_step_reauth_confirm()

	async def async_step_reauth_confirm(
		self, user_input: Optional[Dict[str, Any]] = None
	) -> FlowResult:
		"""Ask for a new password."""
		errors: Dict[str, str] = {}
		entry = self._reauth_entry
		current = dict(entry.data) if entry else {}

		if user_input is not None and entry is not None:
			try:
				await self._test_credentials(
					current[CONF_SUBDOMAIN], current[CONF_USERNAME], user_input[CONF_PASSWORD]
				)
			except EdupageAuthError:
				errors["base"] = "invalid_auth"
			except EdupageConnectionError:
				errors["base"] = "cannot_connect"
			except Exception:  # pylint: disable=broad-except
				_LOGGER.exception("Unexpected exception during reauth")
				errors["base"] = "unknown"
			else:
				self.hass.config_entries.async_update_entry(
					entry, data={**current, CONF_PASSWORD: user_input[CONF_PASSWORD]}
				)
				await self.hass.config_entries.async_reload(entry.entry_id)
				return self.async_abort(reason="reauth_successful")

		return self.async_show_form(
			step_id="reauth_confirm",
			data_schema=vol.Schema({vol.Required(CONF_PASSWORD): str}),
			errors=errors,
			description_placeholders={"username": current.get(CONF_USERNAME, "")},
		)

	async def _test_credentials(self, subdomain: str, username: str, password: str) -> None:
		"""Test if the credentials are valid."""
		session = async_get_clientsession(self.hass)
		async with EdupageClient(subdomain, session) as client:
			await client.login(username, password)

		_LOGGER.info(f"Successfully validated EduPage credentials for {subdomain}")

	@staticmethod
	@callback
	def async_get_options_flow(config_entry: config_entries.ConfigEntry) -> config_entries.OptionsFlow:
		"""Return the options flow for this handler."""
		return EdupageOptionsFlow()


class EdupageOptionsFlow(config_entries.OptionsFlow):
	"""Handle EduPage sync options."""

	async def async_step_init(
		self, user_input: Optional[Dict[str, Any]] = None
	) -> FlowResult:
		"""Manage the sync options; saving reloads the entry."""
		if user_input is not None:
			return self.async_create_entry(title="", data=user_input)

		defaults = {**self.config_entry.data, **self.config_entry.options}
		return self.async_show_form(
			step_id="init",
			data_schema=vol.Schema(_options_schema(defaults)),
		)
