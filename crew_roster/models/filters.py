from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple

from ..exceptions import ValidationError
from .crew import CrewStatus, Role, ValidationStatus


class SortField(str, Enum):
    NAME = "name"
    EXPERIENCE_YEARS = "experience_years"
    LAST_ACTIVE = "last_active"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# Currency picker value that means "no currency filter".
ALL_CURRENCIES = "ALL_CURRENCIES"

DEFAULT_ROLES: FrozenSet[str] = frozenset({Role.INTERNAL.value, Role.FREELANCER.value})

SORT_OPTIONS = {
    "last_active:desc": "Last active (recent first)",
    "last_active:asc": "Last active (oldest first)",
    "name:asc": "Name (A-Z)",
    "name:desc": "Name (Z-A)",
    "experience_years:desc": "Experience (most first)",
    "experience_years:asc": "Experience (least first)",
}


def parse_sort(value: str) -> Tuple[SortField, SortDirection]:
    """Parse a ``field:direction`` sort option."""
    if not value or ":" not in value:
        raise ValidationError(f"sort option must look like 'field:direction', got {value!r}")
    raw_field, _, raw_direction = value.strip().partition(":")
    try:
        return SortField(raw_field.strip().lower()), SortDirection(raw_direction.strip().lower())
    except ValueError as e:
        raise ValidationError(f"unknown sort option: {value}") from e


def _as_frozenset(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        return frozenset({values})
    return frozenset(v.value if isinstance(v, Enum) else str(v) for v in values)


@dataclass(frozen=True)
class FilterState:
    """Query parameters chosen by the user. Pure data."""

    position: Optional[str] = None
    roles: FrozenSet[str] = DEFAULT_ROLES
    status: Optional[str] = CrewStatus.ACTIVE.value
    validation_status: Optional[str] = ValidationStatus.APPROVED.value
    preferred_bases: FrozenSet[str] = frozenset()
    currency: Optional[str] = None
    search: str = ""
    sort_field: SortField = SortField.LAST_ACTIVE
    sort_direction: SortDirection = SortDirection.DESC

    def __post_init__(self):
        # Normalise "unset" spellings so equality comparisons stay meaningful.
        object.__setattr__(self, "position", _value_or_none(self.position))
        object.__setattr__(self, "status", _value_or_none(self.status))
        object.__setattr__(self, "validation_status", _value_or_none(self.validation_status))
        currency = _value_or_none(self.currency)
        if currency == ALL_CURRENCIES:
            currency = None
        object.__setattr__(self, "currency", currency)
        object.__setattr__(self, "roles", _as_frozenset(self.roles))
        object.__setattr__(self, "preferred_bases", _as_frozenset(self.preferred_bases))
        object.__setattr__(self, "search", self.search or "")
        object.__setattr__(self, "sort_field", SortField(self.sort_field))
        object.__setattr__(self, "sort_direction", SortDirection(self.sort_direction))

    @classmethod
    def defaults(cls, required_position: Optional[str] = None) -> "FilterState":
        return cls(position=required_position)

    def replace(self, **changes) -> "FilterState":
        return dataclasses.replace(self, **changes)

    def with_sort(self, option: str) -> "FilterState":
        sort_field, direction = parse_sort(option)
        return self.replace(sort_field=sort_field, sort_direction=direction)

    @property
    def sort_option(self) -> str:
        return f"{self.sort_field.value}:{self.sort_direction.value}"

    @property
    def has_position(self) -> bool:
        return bool(self.position)

    def differs_outside_search(self, other: "FilterState") -> bool:
        """True if anything other than ``search`` changed between the two states."""
        return self.replace(search="") != other.replace(search="")


def _value_or_none(value):
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    value = str(value).strip()
    return value or None
