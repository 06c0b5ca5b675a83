"""Cross-page crew selection with single/multi-select and capacity policies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from ..models.crew import CrewRecord, SelectionRecord


class SelectionResult(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    PARTIAL = "partial"  # bulk select stopped at the cap


@dataclass(frozen=True)
class BulkSelection:
    result: SelectionResult
    added: int = 0
    removed: int = 0
    skipped: int = 0


class SelectionSet:
    """Maps crew id to SelectionRecord, independent of which page shows the member.

    The set never fails: operations that would break a policy return a
    SelectionResult instead of mutating.
    """

    def __init__(
        self,
        max_selections: Optional[int] = None,
        allow_multiple: bool = True,
        initial_ids: Iterable[str] = (),
        initial_records: Iterable[SelectionRecord] = (),
    ):
        self.max_selections = max_selections
        self.allow_multiple = allow_multiple
        self._records: Dict[str, SelectionRecord] = {}
        self.load(initial_ids, initial_records)

    def load(self, ids: Iterable[str], records: Iterable[SelectionRecord] = ()) -> None:
        """Replace the whole selection."""
        known = {r.id: r for r in records}
        self._records = {}
        for crew_id in ids:
            self._records[crew_id] = known.get(crew_id, SelectionRecord(id=crew_id))

    def clear(self) -> None:
        self._records.clear()

    def __contains__(self, crew_id: object) -> bool:
        return crew_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    @property
    def ids(self) -> List[str]:
        return list(self._records)

    @property
    def at_capacity(self) -> bool:
        return self.max_selections is not None and len(self._records) >= self.max_selections

    def records(self) -> List[SelectionRecord]:
        """Full selection in selection order, including members not currently visible."""
        return list(self._records.values())

    def visible_records(self, roster: Sequence[CrewRecord]) -> List[SelectionRecord]:
        """Selected members that appear in ``roster``, in roster order."""
        return [self._records[r.id] for r in roster if r.id in self._records]

    def toggle(
        self, crew_id: str, selected: bool, source: Optional[CrewRecord] = None
    ) -> SelectionResult:
        if not selected:
            if self._records.pop(crew_id, None) is None:
                return SelectionResult.UNCHANGED
            return SelectionResult.APPLIED

        if crew_id in self._records:
            return SelectionResult.UNCHANGED
        record = source.to_selection() if source is not None else SelectionRecord(id=crew_id)
        if not self.allow_multiple:
            self._records = {crew_id: record}
            return SelectionResult.APPLIED
        if self.at_capacity:
            return SelectionResult.CAPACITY_EXCEEDED
        self._records[crew_id] = record
        return SelectionResult.APPLIED

    def select_all_visible(self, selected: bool, roster: Sequence[CrewRecord]) -> BulkSelection:
        if not selected:
            removed = 0
            for row in roster:
                if self._records.pop(row.id, None) is not None:
                    removed += 1
            result = SelectionResult.APPLIED if removed else SelectionResult.UNCHANGED
            return BulkSelection(result, removed=removed)

        if not roster:
            return BulkSelection(SelectionResult.UNCHANGED)

        if not self.allow_multiple:
            first = roster[0]
            if list(self._records) == [first.id]:
                return BulkSelection(SelectionResult.UNCHANGED)
            kept = 1 if first.id in self._records else 0
            removed = len(self._records) - kept
            self._records = {first.id: first.to_selection()}
            return BulkSelection(SelectionResult.APPLIED, added=1 - kept, removed=removed)

        added = skipped = 0
        for row in roster:
            if row.id in self._records:
                continue
            if self.at_capacity:
                skipped += 1
                continue
            self._records[row.id] = row.to_selection()
            added += 1

        if skipped:
            result = SelectionResult.PARTIAL if added else SelectionResult.CAPACITY_EXCEEDED
        else:
            result = SelectionResult.APPLIED if added else SelectionResult.UNCHANGED
        return BulkSelection(result, added=added, skipped=skipped)

    def reconcile(self, roster: Sequence[CrewRecord]) -> bool:
        """Refresh selection records from the latest roster snapshots.

        Returns True if any record changed.
        """
        changed = False
        for row in roster:
            current = self._records.get(row.id)
            if current is None:
                continue
            fresh = row.to_selection()
            if fresh != current:
                self._records[row.id] = fresh
                changed = True
        return changed
