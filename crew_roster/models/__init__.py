from .crew import (
    CrewRecord,
    CrewStatus,
    Position,
    Role,
    SelectionRecord,
    ValidationStatus,
)
from .filters import ALL_CURRENCIES, FilterState, SortDirection, SortField, parse_sort

__all__ = [
    "ALL_CURRENCIES",
    "CrewRecord",
    "CrewStatus",
    "FilterState",
    "Position",
    "Role",
    "SelectionRecord",
    "SortDirection",
    "SortField",
    "ValidationStatus",
    "parse_sort",
]
