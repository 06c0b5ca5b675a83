from .coordinator import (
    AccessControlFailure,
    OutcomeKind,
    QuerySuccess,
    RequestCoordinator,
    RequestToken,
    TransientFailure,
)
from .debounce import DebouncedSearchFeed
from .engine import (
    CrewRosterEngine,
    EngineObserver,
    EngineOptions,
    Notice,
    NoticeKind,
    RosterCondition,
    RosterView,
)
from .fallback import FallbackDatasetProvider, build_sample_roster
from .pagination import PageState, PaginationAccumulator
from .query_builder import Op, Predicate, RosterQuery, SortKey, build_roster_query
from .roster_store import InMemoryRosterStore, RosterPage, RosterStore, SupabaseRosterStore
from .selection import BulkSelection, SelectionResult, SelectionSet

__all__ = [
    "AccessControlFailure",
    "BulkSelection",
    "CrewRosterEngine",
    "DebouncedSearchFeed",
    "EngineObserver",
    "EngineOptions",
    "FallbackDatasetProvider",
    "InMemoryRosterStore",
    "Notice",
    "NoticeKind",
    "Op",
    "OutcomeKind",
    "PageState",
    "PaginationAccumulator",
    "Predicate",
    "QuerySuccess",
    "RequestCoordinator",
    "RequestToken",
    "RosterCondition",
    "RosterPage",
    "RosterQuery",
    "RosterStore",
    "RosterView",
    "SelectionResult",
    "SelectionSet",
    "SortKey",
    "SupabaseRosterStore",
    "TransientFailure",
    "build_roster_query",
    "build_sample_roster",
]
