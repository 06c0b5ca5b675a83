from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.crew import CrewRecord


class PageState(str, Enum):
    EMPTY = "empty"
    LOADING_FIRST_PAGE = "loading-first-page"
    HAS_DATA = "has-data"
    LOADING_MORE = "loading-more"
    EXHAUSTED = "exhausted"


class PaginationAccumulator:
    """Accumulates roster pages and tracks whether more exist."""

    def __init__(self, page_size: int = 20):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size
        self.reset()

    def reset(self) -> None:
        self.state = PageState.EMPTY
        self.page = 0
        self.total_count: Optional[int] = None
        self._rows: List[CrewRecord] = []
        self._index: Dict[str, int] = {}
        self._stable = PageState.EMPTY

    @property
    def rows(self) -> Tuple[CrewRecord, ...]:
        return tuple(self._rows)

    @property
    def has_more(self) -> bool:
        return self.state in (PageState.HAS_DATA, PageState.LOADING_MORE)

    @property
    def loading(self) -> bool:
        return self.state in (PageState.LOADING_FIRST_PAGE, PageState.LOADING_MORE)

    @property
    def next_offset(self) -> int:
        """Row offset of the page a "load more" would request."""
        return (self.page + 1) * self.page_size

    def begin_first_page(self) -> None:
        """Clear the roster and wait for page 0."""
        self.reset()
        self.state = PageState.LOADING_FIRST_PAGE

    def begin_load_more(self) -> bool:
        """Move to loading-more; False (no-op) unless more pages are known to exist."""
        if self.state != PageState.HAS_DATA:
            return False
        self._stable = self.state
        self.state = PageState.LOADING_MORE
        return True

    def apply_page(
        self,
        rows: Sequence[CrewRecord],
        total_count: Optional[int] = None,
        has_more: Optional[bool] = None,
    ) -> None:
        """Apply a successful page to whichever load is in progress.

        ``has_more`` defaults to the short-page rule: a page shorter than
        the page size is the last one.
        """
        if self.state == PageState.LOADING_MORE:
            self.page += 1
            self._append(rows)
        else:
            self._rows = []
            self._index = {}
            self.page = 0
            self._append(rows)
        if has_more is None:
            has_more = len(rows) >= self.page_size
        self.total_count = total_count
        self.state = PageState.HAS_DATA if has_more else PageState.EXHAUSTED
        self._stable = self.state

    def fail(self) -> None:
        """Return to the last stable state, keeping rows already loaded."""
        if self.state == PageState.LOADING_FIRST_PAGE:
            self.state = PageState.EMPTY
        elif self.state == PageState.LOADING_MORE:
            self.state = self._stable

    def _append(self, rows: Sequence[CrewRecord]) -> None:
        for row in rows:
            # A refetched snapshot replaces the old one in place.
            pos = self._index.get(row.id)
            if pos is None:
                self._index[row.id] = len(self._rows)
                self._rows.append(row)
            else:
                self._rows[pos] = row
