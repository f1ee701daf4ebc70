"""Unit tests for the cafeteria menu fallback chain."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock

from edupage.exceptions import EdupageAPIError, EdupageConnectionError, EdupageDataError
from edupage.menu import MENU_URL_TEMPLATES, MenuFetcher, extract_main_dish, is_recognised_response

BASE_URL = "https://school.edupage.org"


def _urls():
	return [template.format(base_url=BASE_URL) for template in MENU_URL_TEMPLATES]


def test_first_recognised_variant_wins():
	post_json = AsyncMock(return_value={"menu": {"menuA": "Goulash"}})
	fetcher = MenuFetcher(post_json, BASE_URL)

	assert asyncio.run(fetcher.fetch_day_menu(date(2024, 1, 3))) == "Goulash"
	post_json.assert_awaited_once_with(_urls()[0], {"dateFrom": "2024-01-03", "dateTo": "2024-01-03"})


def test_failures_and_unknown_shapes_fall_through_in_order():
	post_json = AsyncMock(side_effect=[
		EdupageAPIError("HTTP 404"),
		{"unexpected": True},
		{"items": [{"name": "Pasta"}]},
	])
	fetcher = MenuFetcher(post_json, BASE_URL)

	assert asyncio.run(fetcher.fetch_day_menu(date(2024, 1, 3))) == "Pasta"
	assert [call.args[0] for call in post_json.await_args_list] == _urls()


def test_all_variants_failing_returns_none():
	post_json = AsyncMock(side_effect=[
		EdupageConnectionError("down"),
		EdupageDataError("not json"),
		asyncio.TimeoutError(),
	])
	fetcher = MenuFetcher(post_json, BASE_URL)

	assert asyncio.run(fetcher.fetch_day_menu(date(2024, 1, 3))) is None
	assert post_json.await_count == 3


def test_recognised_response_without_dish_stops_the_chain():
	post_json = AsyncMock(return_value={"data": []})
	fetcher = MenuFetcher(post_json, BASE_URL)

	assert asyncio.run(fetcher.fetch_day_menu(date(2024, 1, 3))) is None
	assert post_json.await_count == 1


def test_recognised_response_requires_object_with_container_key():
	assert is_recognised_response({"menu": None})
	assert is_recognised_response({"result": []})
	assert not is_recognised_response({"status": "ok"})
	assert not is_recognised_response([{"text": "Soup"}])
	assert not is_recognised_response(None)


def test_extraction_order():
	assert extract_main_dish([{"text": "List head"}, {"text": "Second"}]) == "List head"
	assert extract_main_dish({"dishes": [{"description": "Dish head"}], "menu": {"menuA": "Menu A"}}) == "Dish head"
	assert extract_main_dish({"menu": {"menuA": {"name": "Menu A"}, "dishes": [{"text": "Inner"}]}}) == "Menu A"
	assert extract_main_dish({"menu": {"items": [{"title": "Inner item"}]}}) == "Inner item"
	assert extract_main_dish({"menu": {"text": "Menu itself"}}) == "Menu itself"
	assert extract_main_dish({"menu": None, "text": "Top level"}) == "Top level"


def test_extraction_skips_blank_text_fields():
	assert extract_main_dish({"items": [{"text": "  ", "name": "Risotto"}]}) == "Risotto"
	assert extract_main_dish({"items": []}) is None
	assert extract_main_dish("Soup") is None


def test_week_menu_covers_monday_to_friday_and_isolates_failures():
	async def post_json(url, payload):
		if payload["dateFrom"] == "2024-01-03":
			raise EdupageConnectionError("down")
		return {"menu": {"menuA": f"Dish {payload['dateFrom']}"}}

	fetcher = MenuFetcher(post_json, BASE_URL, url_templates=MENU_URL_TEMPLATES[:1])
	entries = asyncio.run(fetcher.fetch_week_menu(date(2024, 1, 4)))

	assert [entry.date for entry in entries] == [date(2024, 1, day) for day in range(1, 6)]
	assert entries[0].main_dish == "Dish 2024-01-01"
	assert entries[2].main_dish is None
	assert entries[2].available is False
	assert entries[4].main_dish == "Dish 2024-01-05"


def test_week_menu_unexpected_error_only_blanks_that_day():
	fetcher = MenuFetcher(AsyncMock(), BASE_URL)
	calls = []

	async def fetch_day_menu(day):
		calls.append(day)
		if day == date(2024, 1, 2):
			raise RuntimeError("boom")
		return "Soup"

	fetcher.fetch_day_menu = fetch_day_menu
	entries = asyncio.run(fetcher.fetch_week_menu(date(2024, 1, 1)))

	assert len(calls) == 5
	assert [entry.main_dish for entry in entries] == ["Soup", None, "Soup", "Soup", "Soup"]
