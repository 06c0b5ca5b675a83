"""Remote roster store access.

The engine only needs ``query_roster``; ``SupabaseRosterStore`` implements it
against a PostgREST endpoint with httpx. Errors are raised, not returned:
AccessDeniedError for policy failures, NetworkError / DataParsingError for
everything the caller may retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Tuple

import httpx

from ..core.config import Settings
from ..exceptions import (
    AccessDeniedError,
    DataParsingError,
    NetworkError,
    looks_like_access_control,
)
from ..models.crew import CrewRecord
from ..schemas.crew import parse_crew_rows
from .query_builder import Op, Predicate, RosterQuery, apply_query, matches

logger = logging.getLogger(__name__)

ROSTER_COLUMNS = (
    "id,name,email,role,status,position,validation_status,preferred_bases,"
    "currency,experience_years,last_active,profile_complete,created_at"
)


@dataclass(frozen=True)
class RosterPage:
    rows: Tuple[CrewRecord, ...]
    total_count: Optional[int] = None


class RosterStore(Protocol):
    async def query_roster(self, query: RosterQuery) -> RosterPage: ...


def _quote(value) -> str:
    text = str(value).lower() if isinstance(value, bool) else str(value)
    # PostgREST list syntax needs quoting for reserved characters.
    if any(ch in text for ch in ',(){}" '):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def _escape_like(text: str) -> str:
    """Escape LIKE metacharacters so the term matches as a plain substring."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def predicate_param(predicate: Predicate) -> Tuple[str, str]:
    """Render one predicate as a PostgREST ``column=operator.value`` pair."""
    op = predicate.op
    if op == Op.EQ:
        return predicate.field, f"eq.{_quote(predicate.value)}"
    if op == Op.IN:
        return predicate.field, "in.(" + ",".join(_quote(v) for v in predicate.value) + ")"
    if op == Op.CONTAINS:
        return predicate.field, "cs.{" + ",".join(_quote(v) for v in predicate.value) + "}"
    if op == Op.ILIKE:
        return predicate.field, f"ilike.*{_escape_like(str(predicate.value))}*"
    if op == Op.NOT_NULL:
        return predicate.field, "not.is.null"
    raise ValueError(f"unsupported predicate op: {op}")


def query_params(query: RosterQuery, columns: str = ROSTER_COLUMNS) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = [("select", columns)]
    params.extend(predicate_param(p) for p in query.predicates)
    if query.ordering:
        order = ",".join(
            f"{key.field}.{'asc' if key.ascending else 'desc'}" for key in query.ordering
        )
        params.append(("order", order))
    return params


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Extract the total from a ``Content-Range: 0-19/25`` header (None if unknown)."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


class SupabaseRosterStore:
    """Roster store backed by the PostgREST API of a Supabase project.

    The httpx client is owned by the caller when passed in; otherwise one is
    created lazily and closed by ``aclose()``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        table: str = "users",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.table = table
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "SupabaseRosterStore":
        return cls(
            base_url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            access_token=settings.access_token,
            table=settings.roster_table,
            client=client,
            timeout=settings.request_timeout,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, query: RosterQuery) -> dict:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Accept": "application/json",
            "Range-Unit": "items",
            "Range": f"{query.start}-{query.end}",
            "Prefer": "count=exact",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def query_roster(self, query: RosterQuery) -> RosterPage:
        client = self._get_client()
        try:
            resp = await client.get(
                self.endpoint, params=query_params(query), headers=self._headers(query)
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"roster request timed out: {e}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"roster request failed: {e.__class__.__name__}: {e}") from e

        # 416: range starts past the end of the result set, i.e. an empty page.
        if resp.status_code == 416:
            total = parse_content_range(resp.headers.get("content-range"))
            return RosterPage(rows=(), total_count=total)
        if resp.status_code >= 400:
            self._raise_for_error(resp)

        try:
            payload = resp.json()
        except ValueError as e:
            raise DataParsingError(f"roster response is not JSON: {e}") from e

        rows = parse_crew_rows(payload)
        total = parse_content_range(resp.headers.get("content-range"))
        logger.debug("Roster %s-%s: %d rows (total=%s)", query.start, query.end, len(rows), total)
        return RosterPage(rows=tuple(rows), total_count=total)

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        code: Optional[str] = None
        message = resp.reason_phrase or f"HTTP {resp.status_code}"
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or message
            if body.get("details"):
                message = f"{message} ({body['details']})"

        if resp.status_code in (401, 403) or looks_like_access_control(message, code):
            raise AccessDeniedError(message, code=code)
        raise NetworkError(f"HTTP {resp.status_code}: {message}")


@dataclass
class InMemoryRosterStore:
    """Roster store over a fixed list of records; evaluates queries locally."""

    records: List[CrewRecord] = field(default_factory=list)

    @classmethod
    def of(cls, records: Iterable[CrewRecord]) -> "InMemoryRosterStore":
        return cls(list(records))

    def count(self, query: RosterQuery) -> int:
        return sum(1 for r in self.records if matches(r, query.predicates))

    async def query_roster(self, query: RosterQuery) -> RosterPage:
        rows = apply_query(self.records, query)
        return RosterPage(rows=tuple(rows), total_count=self.count(query))
