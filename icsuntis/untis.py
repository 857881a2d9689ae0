from __future__ import annotations

import logging
from datetime import date
from typing import Any, List, Optional

import requests

from icsuntis.config import Credentials
from icsuntis.errors import UpstreamAuthError, UpstreamFetchError
from icsuntis.model import Element, RawLesson

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CLIENT_NAME = "icsuntis"
ELEMENT_FIELDS = ["id", "name", "longname", "externalkey"]


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _base_url(server: str) -> str:
    """
    Accept "mese.webuntis.com" as well as "https://mese.webuntis.com/".
    """
    server = server.strip().rstrip("/")
    if not server.startswith(("http://", "https://")):
        server = "https://" + server
    return server


def _format_date(d: date) -> int:
    return int(d.strftime("%Y%m%d"))


def _elements(items: Any) -> tuple[Element, ...]:
    if not isinstance(items, list):
        return ()
    out: list[Element] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        longname = str(item.get("longname") or "").strip() or None
        if name or longname:
            out.append(Element(name=name or (longname or ""), longname=longname))
    return tuple(out)


def lesson_from_json(item: dict[str, Any]) -> RawLesson:
    """
    Build a RawLesson from one entry of the getTimetable result.

    Raises UpstreamFetchError for entries without date/time fields.
    """
    try:
        lesson_date = int(item["date"])
        start_time = int(item["startTime"])
        end_time = int(item["endTime"])
    except (KeyError, TypeError, ValueError) as exc:
        raise UpstreamFetchError(f"Malformed lesson in timetable response: {item!r}") from exc

    info = item.get("info") or item.get("substText") or None
    return RawLesson(
        date=lesson_date,
        start_time=start_time,
        end_time=end_time,
        code=item.get("code") or None,
        subjects=_elements(item.get("su")),
        rooms=_elements(item.get("ro")),
        teachers=_elements(item.get("te")),
        info=str(info).strip() if info else None,
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class WebUntisClient:
    """
    Minimal WebUntis JSON-RPC client: login, own timetable for a date range, logout.

    Usage:
        with WebUntisClient(credentials) as client:
            lessons = client.get_own_timetable(start, end)
    """

    def __init__(
        self,
        credentials: Credentials,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.credentials = credentials
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.url = f"{_base_url(credentials.server)}/WebUntis/jsonrpc.do"
        self.session_id: Optional[str] = None
        self.person_type: Optional[int] = None
        self.person_id: Optional[int] = None
        self._request_id = 0

    def __enter__(self) -> "WebUntisClient":
        self.login()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.logout()

    def _call(self, method: str, params: Any) -> Any:
        self._request_id += 1
        payload = {"id": str(self._request_id), "method": method, "params": params, "jsonrpc": "2.0"}
        try:
            resp = self.session.post(
                self.url,
                params={"school": self.credentials.school},
                json=payload,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise UpstreamFetchError(f"WebUntis request {method} failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamFetchError(f"WebUntis returned invalid JSON for {method}") from exc

        if not isinstance(data, dict):
            raise UpstreamFetchError(f"Unexpected WebUntis response for {method}")
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            if method == "authenticate":
                raise UpstreamAuthError(f"WebUntis login rejected: {message}")
            raise UpstreamFetchError(f"WebUntis {method} error: {message}")
        return data.get("result")

    def login(self) -> None:
        logger.info("Logging in to %s (school %s) as %s", self.url, self.credentials.school, self.credentials.username)
        result = self._call(
            "authenticate",
            {"user": self.credentials.username, "password": self.credentials.password, "client": CLIENT_NAME},
        )
        if not isinstance(result, dict) or not result.get("sessionId"):
            raise UpstreamAuthError("WebUntis login returned no session")

        self.session_id = str(result["sessionId"])
        self.person_type = result.get("personType")
        self.person_id = result.get("personId")
        self.session.cookies.set("JSESSIONID", self.session_id)

    def get_own_timetable(self, start: date, end: date) -> List[RawLesson]:
        """
        Fetch the timetable of the logged-in person between start and end (inclusive).
        """
        if self.session_id is None:
            raise UpstreamAuthError("Not logged in")
        if not self.person_id or not self.person_type:
            raise UpstreamAuthError("WebUntis account has no own timetable (no person attached)")

        options = {
            "element": {"id": self.person_id, "type": self.person_type},
            "startDate": _format_date(start),
            "endDate": _format_date(end),
            "showInfo": True,
            "showSubstText": True,
            "showLsText": True,
            "klasseFields": ELEMENT_FIELDS,
            "roomFields": ELEMENT_FIELDS,
            "subjectFields": ELEMENT_FIELDS,
            "teacherFields": ELEMENT_FIELDS,
        }
        result = self._call("getTimetable", {"options": options})
        if result is None:
            return []
        if not isinstance(result, list):
            raise UpstreamFetchError("WebUntis getTimetable returned no list")

        lessons = [lesson_from_json(item) for item in result if isinstance(item, dict)]
        logger.info("Fetched %d lessons between %s and %s", len(lessons), start, end)
        return lessons

    def logout(self) -> None:
        if self.session_id is None:
            return
        try:
            self._call("logout", {})
        except (UpstreamAuthError, UpstreamFetchError) as exc:
            logger.warning("WebUntis logout failed: %s", exc)
        finally:
            self.session_id = None
