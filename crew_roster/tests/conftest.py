# Ensure the repository root is on sys.path so tests can import the crew_roster package
import asyncio
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pytest

# tests/ -> crew_roster/ -> repo root
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from crew_roster.models.crew import CrewRecord, CrewStatus, Position, Role, ValidationStatus
from crew_roster.services.query_builder import RosterQuery
from crew_roster.services.roster_store import InMemoryRosterStore, RosterPage

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_crew(
    n: int,
    position: Position = Position.CAPTAIN,
    role: Role = Role.INTERNAL,
    status: CrewStatus = CrewStatus.ACTIVE,
    validation: ValidationStatus = ValidationStatus.APPROVED,
    **overrides,
) -> CrewRecord:
    values = dict(
        id=f"c{n:03d}",
        name=f"Crew {n:03d}",
        email=f"crew{n:03d}@example.com",
        role=role,
        status=status,
        position=position,
        validation_status=validation,
        preferred_bases=("LFPB",),
        currency="EUR",
        experience_years=n % 20,
        last_active=NOW - timedelta(hours=n),
    )
    values.update(overrides)
    return CrewRecord(**values)


@dataclass
class HeldCall:
    query: RosterQuery
    release: asyncio.Event = field(default_factory=asyncio.Event)
    error: Optional[BaseException] = None


class FakeRosterStore(InMemoryRosterStore):
    """In-memory store that records queries and can hold or fail them on demand."""

    def __init__(self, records=()):
        super().__init__(list(records))
        self.calls: List[RosterQuery] = []
        self.held: List[HeldCall] = []
        self.hold = False
        self.fail_with: Optional[BaseException] = None

    async def query_roster(self, query: RosterQuery) -> RosterPage:
        self.calls.append(query)
        error = self.fail_with
        if self.hold:
            call = HeldCall(query, error=error)
            self.held.append(call)
            await call.release.wait()
            error = call.error
        if error is not None:
            raise error
        return await super().query_roster(query)

    def release(self, index: int, error: Optional[BaseException] = None) -> None:
        call = self.held[index]
        if error is not None:
            call.error = error
        call.release.set()


@pytest.fixture
def captains() -> List[CrewRecord]:
    return [make_crew(i) for i in range(1, 26)]


@pytest.fixture
def store(captains) -> FakeRosterStore:
    return FakeRosterStore(captains)


async def settle(rounds: int = 5) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
