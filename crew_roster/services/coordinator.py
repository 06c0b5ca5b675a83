"""Issues roster queries one at a time and classifies what comes back.

Every call to ``issue`` supersedes the previous one on the same stream: the
old token is cancelled first, then the new token becomes live, then the store
is called. Whatever the old request eventually returns is dropped because its
token is no longer live, so the most recently issued query always wins.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from ..exceptions import (
    AccessDeniedError,
    DataParsingError,
    NetworkError,
    looks_like_access_control,
)
from ..models.crew import CrewRecord
from .query_builder import RosterQuery
from .roster_store import RosterStore

logger = logging.getLogger(__name__)

ROSTER_STREAM = "roster"
PROBE_STREAM = "probe"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    ACCESS_CONTROL = "access_control"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class QuerySuccess:
    rows: Tuple[CrewRecord, ...]
    total_count: Optional[int] = None
    kind: OutcomeKind = field(default=OutcomeKind.SUCCESS, init=False)


@dataclass(frozen=True)
class AccessControlFailure:
    message: str
    kind: OutcomeKind = field(default=OutcomeKind.ACCESS_CONTROL, init=False)


@dataclass(frozen=True)
class TransientFailure:
    message: str
    kind: OutcomeKind = field(default=OutcomeKind.TRANSIENT, init=False)


Outcome = Union[QuerySuccess, AccessControlFailure, TransientFailure]


class RequestToken:
    """Cancellation handle for one issued query."""

    def __init__(self, generation: int, stream: str = ROSTER_STREAM):
        self.generation = generation
        self.stream = stream
        self.cancelled = False
        self._task: Optional[asyncio.Task] = None

    def bind(self, task: asyncio.Task) -> None:
        self._task = task

    def cancel(self) -> None:
        self.cancelled = True
        # Transport abort is best effort; the token check is what drops the result.
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"<RequestToken {self.stream}#{self.generation} {state}>"


def classify_error(exc: BaseException) -> Outcome:
    """Map an exception raised by a store call to a failure outcome."""
    if isinstance(exc, AccessDeniedError):
        return AccessControlFailure(str(exc))
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TransientFailure("roster request timed out")
    if isinstance(exc, (NetworkError, DataParsingError)):
        return TransientFailure(str(exc))
    message = str(exc)
    if looks_like_access_control(message, getattr(exc, "code", None)):
        return AccessControlFailure(message)
    return TransientFailure(f"{exc.__class__.__name__}: {message}" if message else exc.__class__.__name__)


class RequestCoordinator:
    """Runs roster queries with last-issued-wins semantics."""

    def __init__(self, store: RosterStore, timeout: float = 15.0):
        self.store = store
        self.timeout = timeout
        self._generations = itertools.count(1)
        self._live: dict[str, RequestToken] = {}

    def live_token(self, stream: str = ROSTER_STREAM) -> Optional[RequestToken]:
        return self._live.get(stream)

    def is_live(self, token: RequestToken) -> bool:
        return self._live.get(token.stream) is token and not token.cancelled

    def cancel(self, stream: str = ROSTER_STREAM) -> None:
        """Invalidate the live request on a stream without issuing a new one."""
        token = self._live.pop(stream, None)
        if token is not None:
            token.cancel()

    async def issue(self, query: RosterQuery, stream: str = ROSTER_STREAM) -> Optional[Outcome]:
        """Run ``query`` and return its outcome, or None if it was superseded."""
        previous = self._live.get(stream)
        if previous is not None:
            previous.cancel()
        token = RequestToken(next(self._generations), stream)
        self._live[stream] = token

        logger.debug("Issuing %r rows %d-%d", token, query.start, query.end)
        task = asyncio.ensure_future(asyncio.wait_for(self.store.query_roster(query), self.timeout))
        token.bind(task)

        outcome: Optional[Outcome]
        try:
            page = await task
            outcome = QuerySuccess(rows=tuple(page.rows), total_count=page.total_count)
        except asyncio.CancelledError:
            if not token.cancelled:
                # The caller itself was cancelled, not superseded.
                task.cancel()
                raise
            outcome = None
        except Exception as e:  # noqa: BLE001 - every store failure becomes an outcome
            outcome = classify_error(e)

        if outcome is None or not self.is_live(token):
            logger.debug("Dropping stale response for %r", token)
            return None

        del self._live[stream]
        if isinstance(outcome, AccessControlFailure):
            logger.warning("Roster store refused query (access control): %s", outcome.message)
        elif isinstance(outcome, TransientFailure):
            logger.warning("Roster query failed: %s", outcome.message)
        return outcome

    async def probe(self, query: RosterQuery) -> Optional[Outcome]:
        """Issue a one-row version of ``query`` on the probe stream."""
        one_row = RosterQuery(
            predicates=query.predicates, ordering=query.ordering, start=0, end=0
        )
        return await self.issue(one_row, stream=PROBE_STREAM)
