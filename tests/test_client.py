"""Unit tests for portal page parsing."""

import asyncio

import pytest

from edupage.client import EdupageClient, parse_userhome
from edupage.exceptions import EdupageAuthError, EdupageDataError

USERHOME_PAGE = """
<html><script>
ASC.gsechash = "abc123";
$j(document).ready(function() {
.userhome({"userid": "Rodic42", "dbi": {"students": {"7": {"firstname": "Anna", "lastname": "Novak"}}, "teachers": {"3": {"name": "Jan Kos"}}, "subjects": {"5": {"name": "Math"}}}, "items": [{"timelineid": "1", "typ": "homework", "data": "{\\"title\\": \\"Read\\"}"}, {"timelineid": "2", "typ": "sprava", "text": "Hi"}]});
});
</script></html>
"""


def _loaded_client():
	client = EdupageClient("school")
	client._userhome = parse_userhome(USERHOME_PAGE)
	return client


def test_parse_userhome_extracts_blob():
	data = parse_userhome('x.userhome({"userid": "Rodic1"});\n')
	assert data == {"userid": "Rodic1"}


def test_login_page_means_session_expired():
	with pytest.raises(EdupageAuthError):
		parse_userhome("<html><form id='login'></form></html>")


def test_broken_blob_is_a_data_error():
	with pytest.raises(EdupageDataError):
		parse_userhome("x.userhome({not json});\n")


def test_base_url_from_subdomain():
	assert EdupageClient("myschool").base_url == "https://myschool.edupage.org"


def test_tables_become_records_with_ids():
	client = _loaded_client()
	assert client.students == [{"firstname": "Anna", "lastname": "Novak", "id": "7"}]
	assert client.teachers == [{"name": "Jan Kos", "id": "3"}]
	assert client.lookups["subjects"] == {"5": {"name": "Math"}}


def test_homeworks_fall_back_to_timeline_items():
	client = _loaded_client()
	homeworks = client.homeworks
	assert len(homeworks) == 1
	assert homeworks[0]["timelineid"] == "1"
	assert homeworks[0]["title"] == "Read"
	assert len(client.timeline) == 2


class _UndecodableResponse:
	status = 200

	async def __aenter__(self):
		return self

	async def __aexit__(self, *exc_info):
		return False

	async def text(self):
		raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


class _UndecodableSession:
	def post(self, url, **kwargs):
		return _UndecodableResponse()


def test_undecodable_json_response_is_a_data_error():
	client = EdupageClient("school", _UndecodableSession())
	with pytest.raises(EdupageDataError):
		asyncio.run(client.post_json("https://school.edupage.org/api/menu", {"dateFrom": "2024-01-03"}))
