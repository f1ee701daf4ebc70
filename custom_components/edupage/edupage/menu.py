"""Best-effort cafeteria menu lookup.

Menu support differs per school and per EduPage version, so the main dish is
looked up through a fallback chain of endpoint shapes. A school without a menu
is a normal outcome: every lookup returns None instead of raising.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Union

from .exceptions import EdupageError
from .models import MenuEntry
from .school_days import current_weekdays

_LOGGER = logging.getLogger(__name__)

PostJson = Callable[[str, Mapping[str, Any]], Awaitable[Any]]

# Tried in order; all receive the same date-range payload
MENU_URL_TEMPLATES = (
	"{base_url}/menu/server/menu.js?__func=getMenu",
	"{base_url}/jedalen/server/jedalen.js?__func=getJedalen",
	"{base_url}/api/menu",
)

CONTAINER_KEYS = ("menu", "dishes", "items", "data", "result")
LIST_KEYS = ("dishes", "items", "data", "result")
TEXT_FIELDS = ("text", "description", "name", "title")


def _text_of(element: Any) -> Optional[str]:
	"""First populated text field of a chosen element."""
	if isinstance(element, str):
		return element.strip() or None
	if not isinstance(element, Mapping):
		return None
	for key in TEXT_FIELDS:
		value = element.get(key)
		if isinstance(value, str) and value.strip():
			return value.strip()
	return None


def _head(value: Any) -> Any:
	if isinstance(value, (list, tuple)) and value:
		return value[0]
	return None


def extract_main_dish(response: Any) -> Optional[str]:
	"""Pull the main dish text out of a menu response of unknown shape.

	Probes, in order: the head of a list response; the head of a
	dishes/items/data/result list; ``menu.menuA``; the head of
	``menu.dishes``/``menu.items``; ``menu`` itself; the response itself.
	"""
	if isinstance(response, (list, tuple)):
		return _text_of(_head(response))
	if not isinstance(response, Mapping):
		return None

	for key in LIST_KEYS:
		dish = _text_of(_head(response.get(key)))
		if dish:
			return dish

	menu = response.get("menu")
	if isinstance(menu, (list, tuple)):
		menu = _head(menu)
	if isinstance(menu, Mapping):
		dish = _text_of(menu.get("menuA"))
		if dish:
			return dish
		for key in ("dishes", "items"):
			dish = _text_of(_head(menu.get(key)))
			if dish:
				return dish
	dish = _text_of(menu)
	if dish:
		return dish

	return _text_of(response)


def is_recognised_response(response: Any) -> bool:
	"""A response counts when it is an object carrying a known container key."""
	return isinstance(response, Mapping) and any(key in response for key in CONTAINER_KEYS)


class MenuFetcher:
	"""Resolves the main dish per day through the endpoint fallback chain."""

	def __init__(
		self,
		post_json: PostJson,
		base_url: str,
		url_templates: Sequence[str] = MENU_URL_TEMPLATES,
	) -> None:
		self._post_json = post_json
		self._base_url = base_url.rstrip("/")
		self._url_templates = tuple(url_templates)

	async def fetch_day_menu(self, day: Union[date, datetime]) -> Optional[str]:
		"""Return the main dish for day, or None when no variant has data."""
		if isinstance(day, datetime):
			day = day.date()
		payload = {"dateFrom": day.isoformat(), "dateTo": day.isoformat()}

		for index, template in enumerate(self._url_templates, start=1):
			url = template.format(base_url=self._base_url)
			try:
				response = await self._post_json(url, payload)
			except (EdupageError, asyncio.TimeoutError, ValueError) as err:
				_LOGGER.debug(f"Menu variant {index} failed for {day}: {err}")
				continue
			if not is_recognised_response(response):
				_LOGGER.debug(f"Menu variant {index} returned an unrecognised shape for {day}")
				continue
			return extract_main_dish(response)

		_LOGGER.debug(f"No menu data available for {day}")
		return None

	async def fetch_week_menu(self, reference: Optional[Union[date, datetime]] = None) -> List[MenuEntry]:
		"""Main dish for each weekday of the current week; failed days stay empty."""
		days = current_weekdays(reference)
		results = await asyncio.gather(
			*(self.fetch_day_menu(day) for day in days),
			return_exceptions=True,
		)

		entries = []
		for day, result in zip(days, results):
			if isinstance(result, Exception):
				_LOGGER.warning(f"Menu lookup for {day} failed: {result}")
				result = None
			entries.append(MenuEntry(date=day, main_dish=result))
		return entries
