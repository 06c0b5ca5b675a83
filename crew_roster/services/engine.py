"""Crew roster query & selection engine.

``CrewRosterEngine`` owns one roster stream: it turns filter edits into
roster queries, applies the answers to the pagination accumulator, keeps the
cross-page selection and tells subscribed observers what changed. All methods
must run on the event loop thread; there is no locking because nothing runs
in parallel.

Typical use::

    engine = CrewRosterEngine(store, EngineOptions(required_position="captain"))
    engine.subscribe(my_observer)
    await engine.start()
    await engine.load_more()
    engine.toggle("crew-42", True)
    engine.confirm()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Set, Tuple

from ..core.config import Settings
from ..exceptions import ConfigurationError
from ..models.crew import CrewRecord, SelectionRecord
from ..models.filters import FilterState
from .coordinator import (
    AccessControlFailure,
    Outcome,
    QuerySuccess,
    RequestCoordinator,
    TransientFailure,
)
from .debounce import DebouncedSearchFeed
from .fallback import FALLBACK_NOTICE, FallbackDatasetProvider
from .pagination import PageState, PaginationAccumulator
from .query_builder import RosterQuery, build_roster_query
from .roster_store import RosterStore, SupabaseRosterStore
from .selection import BulkSelection, SelectionResult, SelectionSet

logger = logging.getLogger(__name__)


class RosterCondition(str, Enum):
    POSITION_REQUIRED = "position_required"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class NoticeKind(str, Enum):
    CAPACITY_EXCEEDED = "capacity_exceeded"
    FALLBACK_ACTIVATED = "fallback_activated"
    REMOTE_RESTORED = "remote_restored"
    LOAD_FAILED = "load_failed"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str


@dataclass(frozen=True)
class RosterView:
    """Snapshot of everything a renderer needs."""

    rows: Tuple[CrewRecord, ...]
    state: PageState
    page: int
    has_more: bool
    total_count: Optional[int]
    condition: RosterCondition
    error: Optional[str]
    fallback_active: bool
    filters: FilterState
    visible_selection: Tuple[SelectionRecord, ...]
    selected_count: int

    @property
    def visible_ids(self) -> List[str]:
        return [r.id for r in self.rows]


@dataclass
class EngineOptions:
    """Construction-time inputs supplied by the embedding screen."""

    selected_crew_ids: Sequence[str] = ()
    selected_crew: Sequence[SelectionRecord] = ()
    required_position: Optional[str] = None
    max_selections: Optional[int] = None
    allow_multiple: bool = True
    preset_filters: Optional[FilterState] = None

    def __post_init__(self):
        if self.max_selections is not None and self.max_selections < 1:
            raise ConfigurationError("max_selections must be at least 1 when set")
        if isinstance(self.selected_crew_ids, str):
            raise ConfigurationError("selected_crew_ids must be a sequence of ids, not a string")
        # Records passed without their id in selected_crew_ids are still selected.
        ids = list(dict.fromkeys(self.selected_crew_ids))
        for record in self.selected_crew:
            if record.id not in ids:
                ids.append(record.id)
        self.selected_crew_ids = tuple(ids)
        self.selected_crew = tuple(self.selected_crew)


class EngineObserver:
    """Base observer; override only the callbacks you need."""

    def on_selection_changed(self, records: List[SelectionRecord]) -> None:
        pass

    def on_selection_confirmed(self, records: List[SelectionRecord]) -> None:
        pass

    def on_roster_changed(self, view: RosterView) -> None:
        pass

    def on_notice(self, notice: Notice) -> None:
        pass


class CrewRosterEngine:
    def __init__(
        self,
        store: RosterStore,
        options: Optional[EngineOptions] = None,
        *,
        page_size: int = 20,
        debounce_seconds: float = 0.3,
        request_timeout: float = 15.0,
        fallback: Optional[FallbackDatasetProvider] = None,
    ):
        self.options = options or EngineOptions()
        self.page_size = page_size
        self._coordinator = RequestCoordinator(store, timeout=request_timeout)
        self._pagination = PaginationAccumulator(page_size)
        self._fallback = fallback or FallbackDatasetProvider()
        self._selection = SelectionSet(
            max_selections=self.options.max_selections,
            allow_multiple=self.options.allow_multiple,
            initial_ids=self.options.selected_crew_ids,
            initial_records=self.options.selected_crew,
        )
        self._search_feed = DebouncedSearchFeed(self._on_search_committed, delay=debounce_seconds)
        self._filters = self._default_filters()
        self._observers: List[EngineObserver] = []
        self._tasks: Set[asyncio.Task] = set()
        self._fallback_active = False
        self._condition = (
            RosterCondition.LOADING if self._filters.has_position else RosterCondition.POSITION_REQUIRED
        )
        self._error: Optional[str] = None
        self._retry_load_more = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        options: Optional[EngineOptions] = None,
        store: Optional[RosterStore] = None,
    ) -> "CrewRosterEngine":
        return cls(
            store or SupabaseRosterStore.from_settings(settings),
            options,
            page_size=settings.page_size,
            debounce_seconds=settings.search_debounce_seconds,
            request_timeout=settings.request_timeout,
        )

    # -- observers -------------------------------------------------------

    def subscribe(self, observer: EngineObserver) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _emit_roster(self) -> None:
        view = self.view
        for obs in list(self._observers):
            obs.on_roster_changed(view)

    def _emit_selection(self) -> None:
        records = self._selection.visible_records(self._pagination.rows)
        for obs in list(self._observers):
            obs.on_selection_changed(records)

    def _emit_notice(self, kind: NoticeKind, message: str) -> None:
        notice = Notice(kind, message)
        for obs in list(self._observers):
            obs.on_notice(notice)

    # -- state -----------------------------------------------------------

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def fallback_active(self) -> bool:
        return self._fallback_active

    @property
    def selection(self) -> SelectionSet:
        return self._selection

    @property
    def rows(self) -> Tuple[CrewRecord, ...]:
        return self._pagination.rows

    @property
    def view(self) -> RosterView:
        rows = self._pagination.rows
        return RosterView(
            rows=rows,
            state=self._pagination.state,
            page=self._pagination.page,
            has_more=self._pagination.has_more,
            total_count=self._pagination.total_count,
            condition=self._condition,
            error=self._error,
            fallback_active=self._fallback_active,
            filters=self._filters,
            visible_selection=tuple(self._selection.visible_records(rows)),
            selected_count=len(self._selection),
        )

    # -- filters ---------------------------------------------------------

    async def start(self) -> RosterView:
        """Load the first page for the initial filters."""
        return await self.refresh()

    async def update_filters(self, **changes) -> RosterView:
        """Change filter fields. ``search`` goes through the debounce window."""
        if "search" in changes:
            self.type_search(changes.pop("search") or "")
        if "sort" in changes:
            sort_option = changes.pop("sort")
            new_filters = self._filters.with_sort(sort_option).replace(**changes)
        else:
            new_filters = self._filters.replace(**changes)
        if not new_filters.differs_outside_search(self._filters):
            return self.view
        self._filters = new_filters
        return await self.refresh()

    async def reset_filters(self) -> RosterView:
        """Back to default filters (keeps the selection)."""
        self._search_feed.cancel()
        self._filters = self._default_filters()
        return await self.refresh()

    def _default_filters(self) -> FilterState:
        filters = self.options.preset_filters or FilterState()
        if self.options.required_position:
            filters = filters.replace(position=self.options.required_position)
        return filters

    def type_search(self, text: str) -> None:
        """Feed one search keystroke; the query runs once typing pauses."""
        self._search_feed.push(text)

    def flush_search(self) -> bool:
        """Commit a pending search term immediately."""
        return self._search_feed.flush()

    def _on_search_committed(self, value: str) -> None:
        if value.strip() == self._filters.search.strip():
            return
        self._filters = self._filters.replace(search=value)
        self._spawn(self.refresh())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for background refreshes started by committed searches."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # -- loading ---------------------------------------------------------

    def _query(self, offset: int) -> RosterQuery:
        return build_roster_query(self._filters, offset, self.page_size)

    async def refresh(self) -> RosterView:
        """Clear the roster and load page 0 for the current filters."""
        self._error = None
        if not self._filters.has_position:
            self._coordinator.cancel()
            self._pagination.reset()
            self._condition = RosterCondition.POSITION_REQUIRED
            self._emit_roster()
            return self.view

        query = self._query(0)
        self._pagination.begin_first_page()
        self._retry_load_more = False
        if self._fallback_active:
            self._coordinator.cancel()
            self._apply_fallback(query)
            return self.view

        self._condition = RosterCondition.LOADING
        self._emit_roster()
        outcome = await self._coordinator.issue(query)
        if outcome is not None:
            self._apply_outcome(outcome, load_more=False)
        return self.view

    async def load_more(self) -> RosterView:
        """Append the next page. No-op while loading, when exhausted or in fallback mode."""
        if self._fallback_active or not self._filters.has_position:
            return self.view
        if not self._pagination.begin_load_more():
            return self.view

        self._error = None
        self._condition = RosterCondition.LOADING
        self._emit_roster()
        outcome = await self._coordinator.issue(self._query(self._pagination.next_offset))
        if outcome is not None:
            self._apply_outcome(outcome, load_more=True)
        return self.view

    async def retry(self) -> RosterView:
        """Re-issue the query that last failed transiently."""
        if self._retry_load_more:
            return await self.load_more()
        return await self.refresh()

    async def retest_remote(self) -> bool:
        """Probe the remote store; leave fallback mode if it answers."""
        if not self._fallback_active:
            return True
        if not self._filters.has_position:
            # No query may run without a position, the probe included.
            return False
        outcome = await self._coordinator.probe(self._query(0))
        if not isinstance(outcome, QuerySuccess):
            logger.info("Roster store still unavailable, staying on sample data")
            return False
        logger.info("Roster store reachable again, leaving fallback mode")
        self._fallback_active = False
        self._emit_notice(NoticeKind.REMOTE_RESTORED, "Live crew data is available again.")
        await self.refresh()
        return True

    def _apply_outcome(self, outcome: Outcome, load_more: bool) -> None:
        if isinstance(outcome, QuerySuccess):
            self._pagination.apply_page(outcome.rows, outcome.total_count)
            self._condition = RosterCondition.READY
            self._retry_load_more = False
            if self._selection.reconcile(outcome.rows):
                self._emit_selection()
            self._emit_roster()
        elif isinstance(outcome, AccessControlFailure):
            self._activate_fallback(outcome.message)
        elif isinstance(outcome, TransientFailure):
            self._pagination.fail()
            self._condition = RosterCondition.ERROR
            self._error = outcome.message
            self._retry_load_more = load_more
            self._emit_notice(NoticeKind.LOAD_FAILED, outcome.message)
            self._emit_roster()

    def _activate_fallback(self, reason: str) -> None:
        logger.warning("Switching to sample crew data: %s", reason)
        self._fallback_active = True
        self._emit_notice(NoticeKind.FALLBACK_ACTIVATED, FALLBACK_NOTICE)
        self._pagination.begin_first_page()
        self._apply_fallback(self._query(0))

    def _apply_fallback(self, query: RosterQuery) -> None:
        page = self._fallback.query(query)
        self._pagination.apply_page(page.rows, page.total_count, has_more=False)
        self._condition = RosterCondition.READY
        if self._selection.reconcile(page.rows):
            self._emit_selection()
        self._emit_roster()

    # -- selection -------------------------------------------------------

    def _visible_record(self, crew_id: str) -> Optional[CrewRecord]:
        for row in self._pagination.rows:
            if row.id == crew_id:
                return row
        return None

    def toggle(self, crew_id: str, selected: bool) -> SelectionResult:
        result = self._selection.toggle(crew_id, selected, self._visible_record(crew_id))
        if result == SelectionResult.CAPACITY_EXCEEDED:
            logger.debug("Selection of %s rejected: limit %s reached", crew_id, self._selection.max_selections)
            self._emit_notice(
                NoticeKind.CAPACITY_EXCEEDED,
                f"You can only select {self._selection.max_selections} crew member(s).",
            )
        elif result == SelectionResult.APPLIED:
            self._emit_selection()
        return result

    def select_all_visible(self, selected: bool) -> BulkSelection:
        bulk = self._selection.select_all_visible(selected, self._pagination.rows)
        if bulk.added or bulk.removed:
            self._emit_selection()
        if bulk.skipped:
            self._emit_notice(
                NoticeKind.CAPACITY_EXCEEDED,
                f"Selection limit of {self._selection.max_selections} reached; "
                f"{bulk.skipped} crew member(s) were not selected.",
            )
        return bulk

    def clear_selection(self) -> None:
        if len(self._selection):
            self._selection.clear()
            self._emit_selection()

    def reset_selection(
        self,
        selected_crew_ids: Sequence[str] = (),
        selected_crew: Sequence[SelectionRecord] = (),
    ) -> None:
        """Re-initialise the selection from new input ids/records."""
        options = EngineOptions(
            selected_crew_ids=selected_crew_ids,
            selected_crew=selected_crew,
            required_position=self.options.required_position,
            max_selections=self.options.max_selections,
            allow_multiple=self.options.allow_multiple,
            preset_filters=self.options.preset_filters,
        )
        if list(options.selected_crew_ids) == self._selection.ids:
            return
        self.options = options
        self._selection.load(options.selected_crew_ids, options.selected_crew)
        self._selection.reconcile(self._pagination.rows)
        self._emit_selection()

    def confirm(self) -> List[SelectionRecord]:
        """Hand the full selection, off-page members included, to observers."""
        records = self._selection.records()
        for obs in list(self._observers):
            obs.on_selection_confirmed(records)
        return records

    # -- lifecycle -------------------------------------------------------

    async def aclose(self) -> None:
        self._search_feed.cancel()
        self._coordinator.cancel()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
