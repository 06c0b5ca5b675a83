from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class Position(str, Enum):
    CAPTAIN = "captain"
    FIRST_OFFICER = "first_officer"
    CABIN_CREW = "cabin_crew"
    ENGINEER = "engineer"


class Role(str, Enum):
    ADMIN = "admin"
    INTERNAL = "internal"
    FREELANCER = "freelancer"


class CrewStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class ValidationStatus(str, Enum):
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


POSITION_LABELS = {
    Position.CAPTAIN: "Captain",
    Position.FIRST_OFFICER: "First officer",
    Position.CABIN_CREW: "Cabin crew",
    Position.ENGINEER: "Flight engineer",
}

# Number of preferred bases shown before collapsing the rest into "+N".
BASES_DISPLAY_LIMIT = 3


@dataclass(frozen=True)
class SelectionRecord:
    """Narrow projection of a crew member kept by the selection set."""

    id: str
    name: Optional[str] = None
    position: Optional[str] = None
    role: Optional[str] = None
    currency: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        """True when only the identifier is known (no roster record seen yet)."""
        return self.name is None


@dataclass(frozen=True)
class CrewRecord:
    """Immutable snapshot of one roster row."""

    id: str
    name: str
    email: str
    role: Role
    status: CrewStatus
    position: Position
    validation_status: ValidationStatus
    preferred_bases: Tuple[str, ...] = field(default_factory=tuple)
    currency: Optional[str] = None
    experience_years: Optional[int] = None
    last_active: Optional[datetime] = None
    profile_complete: bool = True
    created_at: Optional[datetime] = None

    def to_selection(self) -> SelectionRecord:
        return SelectionRecord(
            id=self.id,
            name=self.name,
            position=self.position.value,
            role=self.role.value,
            currency=self.currency,
        )

    def bases_display(self, limit: int = BASES_DISPLAY_LIMIT) -> Tuple[Tuple[str, ...], int]:
        """Return the bases to show and how many were left out."""
        shown = self.preferred_bases[:limit]
        return shown, len(self.preferred_bases) - len(shown)
