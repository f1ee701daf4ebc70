"""Thin client for the EduPage school portal."""

import json
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Protocol

import aiohttp

from .exceptions import EdupageAPIError, EdupageAuthError, EdupageConnectionError, EdupageDataError

_LOGGER = logging.getLogger(__name__)

BASE_URL_TEMPLATE = "https://{subdomain}.edupage.org"
LOGIN_PAGE_PATH = "/login/index.php"
LOGIN_SUBMIT_PATH = "/login/edubarLogin.php"
USER_HOME_PATH = "/user/"
TIMELINE_PATH = "/timeline/?akcia=getNotifications"
TIMETABLE_PATH = "/timetable/server/currenttt.js?__func=curentttGetData"

TIMELINE_LOOKBACK_DAYS = 30
REQUEST_TIMEOUT_SECONDS = 30

DEFAULT_HEADERS = {
	"User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36",
	"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
	"Accept-Language": "en-US,en;q=0.9",
}

_USERHOME_RE = re.compile(r"\.userhome\((.+?)\);\s*$", re.MULTILINE)
_GSECHASH_RE = re.compile(r'ASC\.gsechash\s*=\s*"([0-9a-zA-Z]+)"')
_CSRF_RE = re.compile(r'name="csrfauth"\s+value="([^"]+)"')


class PortalClient(Protocol):
	"""What the sync pipeline needs from an upstream portal client."""

	base_url: str

	async def login(self, username: str, password: str) -> bool: ...

	async def refresh_session(self) -> None: ...

	async def refresh_timeline(self) -> None: ...

	async def get_timetable_for_date(self, day: date, student_id: Optional[str] = None) -> List[Dict[str, Any]]: ...

	async def post_json(self, url: str, payload: Mapping[str, Any]) -> Any: ...

	@property
	def students(self) -> List[Dict[str, Any]]: ...

	@property
	def homeworks(self) -> List[Dict[str, Any]]: ...

	@property
	def timeline(self) -> List[Dict[str, Any]]: ...

	@property
	def teachers(self) -> List[Dict[str, Any]]: ...

	@property
	def user(self) -> Dict[str, Any]: ...

	@property
	def lookups(self) -> Dict[str, Dict[str, Any]]: ...


def parse_userhome(html_content: str) -> Dict[str, Any]:
	"""Extract the ``userhome`` JSON blob embedded in the portal home page.

	Raises:
		EdupageAuthError: When the page carries no blob (login page served instead)
		EdupageDataError: When the blob is not valid JSON
	"""
	match = _USERHOME_RE.search(html_content or "")
	if not match:
		raise EdupageAuthError("Session expired - portal home page carries no user data")
	try:
		data = json.loads(match.group(1))
	except json.JSONDecodeError as err:
		raise EdupageDataError(f"Failed to parse user data: {err}") from err
	if not isinstance(data, dict):
		raise EdupageDataError("User data is not an object")
	return data


def _table_records(table: Any) -> List[Dict[str, Any]]:
	"""Turn an id-keyed table into records carrying their id."""
	if not isinstance(table, Mapping):
		return []
	records = []
	for key, value in table.items():
		if isinstance(value, Mapping):
			record = dict(value)
			record.setdefault("id", str(key))
			records.append(record)
	return records


def _embedded_data(item: Mapping[str, Any]) -> Dict[str, Any]:
	"""Timeline items carry extra fields as a JSON string under ``data``."""
	raw = item.get("data")
	if isinstance(raw, Mapping):
		return dict(raw)
	if isinstance(raw, str) and raw.strip().startswith("{"):
		try:
			parsed = json.loads(raw)
		except json.JSONDecodeError:
			return {}
		return parsed if isinstance(parsed, dict) else {}
	return {}


class EdupageClient:
	"""Client for interacting with an EduPage school instance."""

	def __init__(self, subdomain: str, session: Optional[aiohttp.ClientSession] = None):
		"""Initialise EduPage client.

		Args:
			subdomain: School instance, as in https://<subdomain>.edupage.org
			session: Optional aiohttp session. If None, a new one will be created.
		"""
		self.subdomain = subdomain
		self.base_url = BASE_URL_TEMPLATE.format(subdomain=subdomain)
		self._session = session
		self._own_session = session is None
		self.authenticated = False
		self._userhome: Dict[str, Any] = {}
		self._gsechash: Optional[str] = None
		self._timeline: Optional[List[Dict[str, Any]]] = None
		self._homeworks: Optional[List[Dict[str, Any]]] = None

	async def __aenter__(self):
		"""Async context manager entry."""
		if self._session is None:
			self._session = aiohttp.ClientSession(
				timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
			)
			self._own_session = True
		return self

	async def __aexit__(self, exc_type, exc_val, exc_tb):
		"""Async context manager exit."""
		await self.close()

	async def close(self) -> None:
		"""Close the HTTP session if this client created it."""
		if self._own_session and self._session and not self._session.closed:
			await self._session.close()
		if self._own_session:
			self._session = None
		self.authenticated = False

	def _ensure_session(self) -> aiohttp.ClientSession:
		if self._session is None:
			raise EdupageAPIError("Client not properly initialised")
		return self._session

	def _ensure_authenticated(self) -> None:
		if not self.authenticated:
			raise EdupageAuthError("Not authenticated")

	async def login(self, username: str, password: str) -> bool:
		"""Login to EduPage and load the portal home data.

		Args:
			username: Portal username
			password: Password

		Returns:
			True if login successful
		"""
		session = self._ensure_session()
		try:
			async with session.get(f"{self.base_url}{LOGIN_PAGE_PATH}", headers=DEFAULT_HEADERS) as resp:
				login_page = await resp.text()

			form = {"username": username, "password": password}
			csrf = _CSRF_RE.search(login_page)
			if csrf:
				form["csrfauth"] = csrf.group(1)

			async with session.post(
				f"{self.base_url}{LOGIN_SUBMIT_PATH}",
				headers=DEFAULT_HEADERS,
				data=form,
			) as resp:
				if "bad=1" in str(resp.url):
					raise EdupageAuthError("Invalid username or password")
				if resp.status != 200:
					raise EdupageAuthError(f"Login failed: HTTP {resp.status}")
		except aiohttp.ClientError as err:
			raise EdupageConnectionError(f"Connection error during login: {err}") from err

		self.authenticated = True
		try:
			await self.refresh_session()
		except EdupageAuthError:
			self.authenticated = False
			raise
		_LOGGER.info(f"Logged in to EduPage instance {self.subdomain}")
		return True

	async def refresh_session(self) -> None:
		"""Reload the portal home page (roster, dictionaries and timeline)."""
		self._ensure_authenticated()
		session = self._ensure_session()
		try:
			async with session.get(f"{self.base_url}{USER_HOME_PATH}", headers=DEFAULT_HEADERS) as resp:
				if resp.status != 200:
					raise EdupageAPIError(f"Failed to load portal home: HTTP {resp.status}")
				html_content = await resp.text()
		except aiohttp.ClientError as err:
			raise EdupageConnectionError(f"Connection error: {err}") from err
		except UnicodeDecodeError as err:
			raise EdupageDataError(f"Undecodable portal home page: {err}") from err

		try:
			self._userhome = parse_userhome(html_content)
		except EdupageAuthError:
			self.authenticated = False
			raise
		hash_match = _GSECHASH_RE.search(html_content)
		self._gsechash = hash_match.group(1) if hash_match else None
		self._timeline = None
		self._homeworks = None

	async def refresh_timeline(self) -> None:
		"""Fetch recent timeline items and homework."""
		self._ensure_authenticated()
		payload = {
			"gsh": self._gsechash or "",
			"datefrom": (datetime.now() - timedelta(days=TIMELINE_LOOKBACK_DAYS)).strftime("%Y-%m-%d"),
		}
		session = self._ensure_session()
		try:
			async with session.post(f"{self.base_url}{TIMELINE_PATH}", headers=DEFAULT_HEADERS, data=payload) as resp:
				if resp.status != 200:
					raise EdupageAPIError(f"Failed to get timeline: HTTP {resp.status}")
				text = await resp.text()
		except aiohttp.ClientError as err:
			raise EdupageConnectionError(f"Connection error: {err}") from err
		except UnicodeDecodeError as err:
			raise EdupageDataError(f"Undecodable timeline response: {err}") from err

		if not text.strip().startswith("{"):
			_LOGGER.warning("Timeline response doesn't look like JSON - session may have expired")
			raise EdupageAuthError("Session expired - received non-JSON timeline response")
		try:
			data = json.loads(text)
		except json.JSONDecodeError as err:
			raise EdupageDataError(f"Failed to parse timeline data: {err}") from err

		items = data.get("timelineItems")
		if isinstance(items, list):
			self._timeline = items
		homeworks = data.get("homeworks")
		if isinstance(homeworks, list):
			self._homeworks = homeworks

	async def get_timetable_for_date(self, day: date, student_id: Optional[str] = None) -> List[Dict[str, Any]]:
		"""Get raw timetable lessons for a single day.

		Args:
			day: Target date
			student_id: Student whose timetable to load; defaults to the logged-in user

		Returns:
			List of raw lesson records
		"""
		self._ensure_authenticated()
		target_id = student_id or re.sub(r"\D", "", str(self._userhome.get("userid", "")))
		payload = {
			"__args": [
				None,
				{
					"year": day.year if day.month >= 8 else day.year - 1,
					"datefrom": day.isoformat(),
					"dateto": day.isoformat(),
					"table": "students",
					"id": target_id,
					"showColors": True,
					"showIgroupsInClasses": False,
					"showOrig": True,
					"log_module": "CurrentTTView",
				},
			],
			"__gsh": self._gsechash or "",
		}
		data = await self.post_json(f"{self.base_url}{TIMETABLE_PATH}", payload)
		result = data.get("r") if isinstance(data, Mapping) else None
		items = result.get("ttitems") if isinstance(result, Mapping) else None
		if not isinstance(items, list):
			raise EdupageDataError(f"Unexpected timetable response for {day.isoformat()}")
		return [item for item in items if isinstance(item, dict) and item.get("type", "lesson") == "lesson"]

	async def post_json(self, url: str, payload: Mapping[str, Any]) -> Any:
		"""POST a JSON payload and decode the JSON response.

		Raises:
			EdupageConnectionError: Transport failure
			EdupageAPIError: Non-200 response
			EdupageDataError: Response body is not decodable JSON
		"""
		session = self._ensure_session()
		headers = DEFAULT_HEADERS.copy()
		headers.update({
			"Accept": "application/json, text/javascript, */*; q=0.01",
			"X-Requested-With": "XMLHttpRequest",
		})
		try:
			async with session.post(url, headers=headers, json=dict(payload)) as resp:
				if resp.status != 200:
					raise EdupageAPIError(f"POST {url} failed: HTTP {resp.status}")
				text = await resp.text()
		except aiohttp.ClientError as err:
			raise EdupageConnectionError(f"Connection error: {err}") from err
		except UnicodeDecodeError as err:
			raise EdupageDataError(f"Undecodable response from {url}: {err}") from err

		try:
			return json.loads(text)
		except json.JSONDecodeError as err:
			raise EdupageDataError(f"Non-JSON response from {url}: {text[:200]!r}") from err

	@property
	def _dbi(self) -> Dict[str, Any]:
		dbi = self._userhome.get("dbi")
		return dbi if isinstance(dbi, dict) else {}

	@property
	def students(self) -> List[Dict[str, Any]]:
		return _table_records(self._dbi.get("students"))

	@property
	def teachers(self) -> List[Dict[str, Any]]:
		return _table_records(self._dbi.get("teachers"))

	@property
	def user(self) -> Dict[str, Any]:
		row = self._userhome.get("userrow")
		return dict(row) if isinstance(row, Mapping) else {}

	@property
	def timeline(self) -> List[Dict[str, Any]]:
		if self._timeline is not None:
			return list(self._timeline)
		items = self._userhome.get("items")
		return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

	@property
	def homeworks(self) -> List[Dict[str, Any]]:
		"""Homework records; falls back to homework items on the timeline."""
		if self._homeworks is not None:
			return list(self._homeworks)
		records = []
		for item in self.timeline:
			if str(item.get("typ", item.get("type", ""))).lower() != "homework":
				continue
			record = dict(item)
			record.update(_embedded_data(item))
			records.append(record)
		return records

	@property
	def lookups(self) -> Dict[str, Dict[str, Any]]:
		dbi = self._dbi
		return {
			"subjects": dict(dbi.get("subjects") or {}),
			"teachers": dict(dbi.get("teachers") or {}),
			"classrooms": dict(dbi.get("classrooms") or {}),
		}
