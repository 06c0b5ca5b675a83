"""Declarative roster queries and their client-side evaluation.

``build_roster_query`` turns a FilterState plus a row offset into a
RosterQuery: a list of predicates, an ordering and an inclusive row range.
Remote stores translate the description into their own wire syntax; the
fallback roster and the test doubles run it through ``apply_query`` so both
paths share one set of predicate semantics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Sequence, Tuple

from ..models.crew import CrewRecord
from ..models.filters import FilterState, SortDirection, SortField


class Op(str, Enum):
    EQ = "eq"  # equality
    IN = "in"  # value is one of a set
    CONTAINS = "contains"  # list column is a superset of the given values
    ILIKE = "ilike"  # case-insensitive substring
    NOT_NULL = "not_null"


@dataclass(frozen=True)
class Predicate:
    field: str
    op: Op
    value: Any = None


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: SortDirection = SortDirection.ASC

    @property
    def ascending(self) -> bool:
        return self.direction == SortDirection.ASC


@dataclass(frozen=True)
class RosterQuery:
    predicates: Tuple[Predicate, ...]
    ordering: Tuple[SortKey, ...]
    start: int
    end: int  # inclusive

    @property
    def limit(self) -> int:
        return self.end - self.start + 1

    def predicate_for(self, field: str, op: Op | None = None) -> Predicate | None:
        for p in self.predicates:
            if p.field == field and (op is None or p.op == op):
                return p
        return None


# Applied to every roster query regardless of filters.
BASE_PREDICATES: Tuple[Predicate, ...] = (
    Predicate("profile_complete", Op.EQ, True),
    Predicate("name", Op.NOT_NULL),
)


def build_roster_query(filters: FilterState, offset: int, page_size: int) -> RosterQuery:
    """Describe the roster page starting at ``offset`` for the given filters."""
    predicates: List[Predicate] = list(BASE_PREDICATES)

    if filters.position:
        predicates.append(Predicate("position", Op.EQ, filters.position))
    if filters.roles:
        predicates.append(Predicate("role", Op.IN, tuple(sorted(filters.roles))))
    if filters.status:
        predicates.append(Predicate("status", Op.EQ, filters.status))
    if filters.validation_status:
        predicates.append(Predicate("validation_status", Op.EQ, filters.validation_status))
    if filters.preferred_bases:
        predicates.append(
            Predicate("preferred_bases", Op.CONTAINS, tuple(sorted(filters.preferred_bases)))
        )
    if filters.currency:
        predicates.append(Predicate("currency", Op.EQ, filters.currency))
    # PostgREST reads every "*" in an ilike value as a wildcard, so it cannot be matched literally.
    term = filters.search.replace("*", "").strip()
    if term:
        predicates.append(Predicate("name", Op.ILIKE, term))

    ordering = [SortKey(filters.sort_field.value, filters.sort_direction)]
    # Secondary key keeps page boundaries stable between requests.
    if filters.sort_field != SortField.NAME:
        ordering.append(SortKey(SortField.NAME.value, SortDirection.ASC))

    return RosterQuery(
        predicates=tuple(predicates),
        ordering=tuple(ordering),
        start=offset,
        end=offset + page_size - 1,
    )


def _field_value(record: CrewRecord, field: str) -> Any:
    value = getattr(record, field, None)
    if isinstance(value, Enum):
        return value.value
    return value


def matches_predicate(record: CrewRecord, predicate: Predicate) -> bool:
    value = _field_value(record, predicate.field)
    op = predicate.op
    if op == Op.EQ:
        return value is not None and value == predicate.value
    if op == Op.IN:
        return value in set(predicate.value)
    if op == Op.CONTAINS:
        return set(predicate.value) <= set(value or ())
    if op == Op.ILIKE:
        return value is not None and str(predicate.value).casefold() in str(value).casefold()
    if op == Op.NOT_NULL:
        return value is not None
    raise ValueError(f"unsupported predicate op: {op}")


def matches(record: CrewRecord, predicates: Iterable[Predicate]) -> bool:
    return all(matches_predicate(record, p) for p in predicates)


def sort_records(records: Iterable[CrewRecord], ordering: Sequence[SortKey]) -> List[CrewRecord]:
    """Sort like PostgreSQL: NULL ranks above every value (last asc, first desc)."""
    result = list(records)
    # Stable sorts applied from the least to the most significant key.
    for key in reversed(ordering):

        def sort_key(rec: CrewRecord, _field: str = key.field):
            value = _field_value(rec, _field)
            if isinstance(value, str):
                value = value.casefold()
            return (value is None, value if value is not None else 0)

        result.sort(key=sort_key, reverse=not key.ascending)
    return result


def apply_query(
    records: Iterable[CrewRecord], query: RosterQuery, paginate: bool = True
) -> List[CrewRecord]:
    """Filter, order and (optionally) slice records the way the remote store would."""
    selected = sort_records((r for r in records if matches(r, query.predicates)), query.ordering)
    if not paginate:
        return selected
    return selected[query.start : query.end + 1]
