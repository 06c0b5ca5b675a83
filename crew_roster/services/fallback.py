"""Fixed illustrative roster used when the remote store's access control fails."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from ..models.crew import CrewRecord, CrewStatus, Position, Role, ValidationStatus
from .query_builder import RosterQuery, apply_query
from .roster_store import RosterPage

FALLBACK_NOTICE = (
    "The crew roster could not be queried because of an access-control error. "
    "Showing illustrative sample data; selections still work for testing."
)

# (id, name, email, role, position, bases, experience, hours since last active)
_SAMPLE_CREW = [
    ("crew-001", "Sophie Laurent", "sophie.laurent@crewtech.fr", Role.INTERNAL,
     Position.CAPTAIN, ("LFPB", "LFPO", "LFPG"), 12, 2),
    ("crew-002", "Pierre Dubois", "pierre.dubois@crewtech.fr", Role.INTERNAL,
     Position.FIRST_OFFICER, ("LFPB", "LFMN"), 8, 24),
    ("crew-003", "Lisa Anderson", "lisa@aviation.com", Role.FREELANCER,
     Position.CABIN_CREW, ("LFPB", "EGLL", "EBBR"), 6, 6),
    ("crew-004", "Marco Rossi", "marco@freelance.eu", Role.FREELANCER,
     Position.CAPTAIN, ("LIMC", "LFPB", "LOWW"), 15, 3),
    ("crew-005", "Sarah Mitchell", "sarah@crewaviation.com", Role.FREELANCER,
     Position.FIRST_OFFICER, ("EGLL", "LFPB"), 4, 12),
    ("crew-006", "Jean-Baptiste Martin", "jb.martin@crewtech.fr", Role.INTERNAL,
     Position.ENGINEER, ("LFPB", "LFMN", "LFML"), 10, 4),
    ("crew-007", "Jean Dupont", "jean.dupont@crewtech.fr", Role.INTERNAL,
     Position.CAPTAIN, ("LFPB", "LFPO"), 15, 0),
    ("crew-008", "Marie Martin", "marie.martin@crewtech.fr", Role.INTERNAL,
     Position.FIRST_OFFICER, ("LFPB", "EGLL", "LFPO", "EDDF"), 8, 1),
]


def build_sample_roster(now: Optional[datetime] = None) -> List[CrewRecord]:
    """Build the sample roster with activity times relative to ``now``."""
    now = now or datetime.now(timezone.utc)
    return [
        CrewRecord(
            id=crew_id,
            name=name,
            email=email,
            role=role,
            status=CrewStatus.ACTIVE,
            position=position,
            validation_status=ValidationStatus.APPROVED,
            preferred_bases=bases,
            currency="EUR",
            experience_years=years,
            last_active=now - timedelta(hours=hours),
            profile_complete=True,
            created_at=now,
        )
        for crew_id, name, email, role, position, bases, years, hours in _SAMPLE_CREW
    ]


class FallbackDatasetProvider:
    """Answers roster queries from a small fixed dataset, all rows at once."""

    illustrative = True

    def __init__(self, records: Optional[Sequence[CrewRecord]] = None):
        self.records: List[CrewRecord] = (
            list(records) if records is not None else build_sample_roster()
        )

    def query(self, query: RosterQuery) -> RosterPage:
        # Range is ignored: the dataset is small enough to show in full.
        rows = apply_query(self.records, query, paginate=False)
        return RosterPage(rows=tuple(rows), total_count=len(rows))
