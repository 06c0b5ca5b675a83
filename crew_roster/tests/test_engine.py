import asyncio
from typing import List

import pytest

from crew_roster.exceptions import AccessDeniedError, ConfigurationError, NetworkError
from crew_roster.models.crew import Role, SelectionRecord
from crew_roster.services.engine import (
    CrewRosterEngine,
    EngineObserver,
    EngineOptions,
    Notice,
    NoticeKind,
    RosterCondition,
    RosterView,
)
from crew_roster.services.pagination import PageState
from crew_roster.services.query_builder import Op
from crew_roster.services.selection import SelectionResult

from conftest import FakeRosterStore, make_crew, settle

RLS_ERROR = AccessDeniedError('infinite recursion detected in policy for relation "users"', code="42P17")


class Recorder(EngineObserver):
    def __init__(self):
        self.notices: List[Notice] = []
        self.views: List[RosterView] = []
        self.selections: List[List[SelectionRecord]] = []
        self.confirmed: List[List[SelectionRecord]] = []

    def on_notice(self, notice: Notice) -> None:
        self.notices.append(notice)

    def on_roster_changed(self, view: RosterView) -> None:
        self.views.append(view)

    def on_selection_changed(self, records: List[SelectionRecord]) -> None:
        self.selections.append(records)

    def on_selection_confirmed(self, records: List[SelectionRecord]) -> None:
        self.confirmed.append(records)

    @property
    def kinds(self) -> List[NoticeKind]:
        return [n.kind for n in self.notices]


@pytest.fixture
def mixed_store(captains) -> FakeRosterStore:
    freelancers = [make_crew(i, role=Role.FREELANCER) for i in range(30, 33)]
    return FakeRosterStore(captains + freelancers)


def _engine(store, **options) -> CrewRosterEngine:
    options.setdefault("required_position", "captain")
    return CrewRosterEngine(store, EngineOptions(**options), debounce_seconds=0.01)


@pytest.mark.asyncio
async def test_load_more_appends_without_duplicates(store) -> None:
    engine = _engine(store)
    view = await engine.start()
    assert view.condition == RosterCondition.READY
    assert len(view.rows) == 20
    assert view.has_more
    assert view.visible_ids[0] == "c001"

    view = await engine.load_more()
    assert len(view.rows) == 25
    assert len(set(view.visible_ids)) == 25
    assert not view.has_more
    assert view.state == PageState.EXHAUSTED
    assert (store.calls[1].start, store.calls[1].end) == (20, 39)

    await engine.load_more()
    assert len(store.calls) == 2


@pytest.mark.asyncio
async def test_no_query_without_position(store) -> None:
    engine = CrewRosterEngine(store)
    view = await engine.start()
    assert view.condition == RosterCondition.POSITION_REQUIRED
    assert view.rows == ()
    await engine.load_more()
    assert store.calls == []

    view = await engine.update_filters(position="captain")
    assert len(view.rows) == 20
    assert store.calls[0].predicate_for("position").value == "captain"


@pytest.mark.asyncio
async def test_clearing_position_drops_in_flight_request(store) -> None:
    store.hold = True
    engine = _engine(store)
    pending = asyncio.create_task(engine.start())
    await settle()

    view = await engine.update_filters(position=None)
    assert view.condition == RosterCondition.POSITION_REQUIRED
    await pending
    assert engine.rows == ()
    assert engine.view.condition == RosterCondition.POSITION_REQUIRED


@pytest.mark.asyncio
async def test_latest_filter_change_wins(mixed_store) -> None:
    mixed_store.hold = True
    engine = _engine(mixed_store)
    first = asyncio.create_task(engine.start())
    await settle()
    second = asyncio.create_task(engine.update_filters(roles=["freelancer"]))
    await settle()

    mixed_store.release(1)
    view = await second
    await first
    assert view.visible_ids == ["c030", "c031", "c032"]
    assert engine.view.visible_ids == ["c030", "c031", "c032"]
    assert engine.view.condition == RosterCondition.READY


@pytest.mark.asyncio
async def test_access_control_failure_switches_to_sample_data(store) -> None:
    store.fail_with = RLS_ERROR
    recorder = Recorder()
    engine = _engine(store)
    engine.subscribe(recorder)

    view = await engine.start()
    assert view.fallback_active
    assert view.condition == RosterCondition.READY
    assert view.error is None
    assert {r.name for r in view.rows} == {"Sophie Laurent", "Marco Rossi", "Jean Dupont"}
    assert not view.has_more
    assert recorder.kinds == [NoticeKind.FALLBACK_ACTIVATED]

    # Fallback mode is sticky: later filter changes never reach the store.
    view = await engine.update_filters(roles=["freelancer"])
    assert [r.name for r in view.rows] == ["Marco Rossi"]
    await engine.load_more()
    assert len(store.calls) == 1
    assert recorder.kinds == [NoticeKind.FALLBACK_ACTIVATED]


@pytest.mark.asyncio
async def test_retest_remote_leaves_fallback_once_store_answers(store) -> None:
    store.fail_with = RLS_ERROR
    recorder = Recorder()
    engine = _engine(store)
    engine.subscribe(recorder)
    await engine.start()

    assert not await engine.retest_remote()
    assert engine.fallback_active
    assert store.calls[1].limit == 1

    store.fail_with = None
    assert await engine.retest_remote()
    assert not engine.fallback_active
    assert len(engine.rows) == 20
    assert engine.rows[0].id == "c001"
    assert recorder.kinds == [NoticeKind.FALLBACK_ACTIVATED, NoticeKind.REMOTE_RESTORED]


@pytest.mark.asyncio
async def test_retest_remote_needs_a_position(store) -> None:
    store.fail_with = RLS_ERROR
    engine = _engine(store)
    await engine.start()
    store.fail_with = None

    view = await engine.update_filters(position=None)
    assert view.condition == RosterCondition.POSITION_REQUIRED
    assert not await engine.retest_remote()
    assert len(store.calls) == 1
    assert engine.fallback_active


@pytest.mark.asyncio
async def test_transient_failure_on_load_more_keeps_rows(store) -> None:
    recorder = Recorder()
    engine = _engine(store)
    engine.subscribe(recorder)
    await engine.start()

    store.fail_with = NetworkError("HTTP 503: Service Unavailable")
    view = await engine.load_more()
    assert view.condition == RosterCondition.ERROR
    assert "503" in view.error
    assert len(view.rows) == 20
    assert view.state == PageState.HAS_DATA
    assert not view.fallback_active
    assert recorder.kinds == [NoticeKind.LOAD_FAILED]

    store.fail_with = None
    view = await engine.retry()
    assert len(view.rows) == 25
    assert view.error is None
    assert store.calls[-1].start == 20


@pytest.mark.asyncio
async def test_transient_failure_on_first_page(store) -> None:
    store.fail_with = NetworkError("connection reset")
    engine = _engine(store)
    view = await engine.start()
    assert view.condition == RosterCondition.ERROR
    assert view.rows == ()
    assert not view.fallback_active

    store.fail_with = None
    view = await engine.retry()
    assert len(view.rows) == 20
    assert store.calls[-1].start == 0


@pytest.mark.asyncio
async def test_selection_survives_filter_changes(mixed_store) -> None:
    recorder = Recorder()
    engine = _engine(mixed_store)
    engine.subscribe(recorder)
    await engine.start()

    assert engine.toggle("c003", True) == SelectionResult.APPLIED
    assert engine.toggle("c010", True) == SelectionResult.APPLIED
    view = await engine.update_filters(roles=["freelancer"])
    assert view.visible_selection == ()
    assert view.selected_count == 2

    engine.toggle("c031", True)
    engine.confirm()
    confirmed = recorder.confirmed[-1]
    assert [r.id for r in confirmed] == ["c003", "c010", "c031"]
    assert confirmed[0].name == "Crew 003"


@pytest.mark.asyncio
async def test_selection_persists_across_load_more(store) -> None:
    engine = _engine(store)
    await engine.start()
    engine.toggle("c003", True)

    view = await engine.load_more()
    assert engine.toggle("c022", True) == SelectionResult.APPLIED
    # visible_selection is derived from the accumulated roster (pages 0 and 1),
    # so the page-0 pick stays visible next to the page-1 pick.
    assert [r.id for r in engine.view.visible_selection] == ["c003", "c022"]
    assert "c003" in view.visible_ids and "c022" in view.visible_ids
    assert engine.view.selected_count == 2


@pytest.mark.asyncio
async def test_initial_ids_are_filled_in_when_loaded(store) -> None:
    recorder = Recorder()
    engine = _engine(store, selected_crew_ids=["c022"])
    engine.subscribe(recorder)
    await engine.start()
    assert engine.selection.records()[0].is_placeholder
    assert engine.view.visible_selection == ()

    await engine.load_more()
    assert engine.selection.records()[0].name == "Crew 022"
    assert [r.id for r in engine.view.visible_selection] == ["c022"]
    assert recorder.selections[-1][0].id == "c022"


@pytest.mark.asyncio
async def test_capacity_notices(store) -> None:
    recorder = Recorder()
    engine = _engine(store, max_selections=3)
    engine.subscribe(recorder)
    await engine.start()

    engine.toggle("c001", True)
    bulk = engine.select_all_visible(True)
    assert (bulk.added, bulk.skipped) == (2, 17)
    assert len(engine.selection) == 3
    assert engine.toggle("c020", True) == SelectionResult.CAPACITY_EXCEEDED
    assert recorder.kinds == [NoticeKind.CAPACITY_EXCEEDED, NoticeKind.CAPACITY_EXCEEDED]
    assert "3" in recorder.notices[-1].message


@pytest.mark.asyncio
async def test_search_is_debounced(store) -> None:
    engine = _engine(store)
    await engine.start()

    view = await engine.update_filters(search="C")
    assert len(store.calls) == 1
    assert view.filters.search == ""
    for text in ["Cr", "Crew", "Crew 0", "Crew 02"]:
        engine.type_search(text)
    await asyncio.sleep(0.05)
    await engine.wait_idle()

    assert len(store.calls) == 2
    assert store.calls[1].predicate_for("name", Op.ILIKE).value == "Crew 02"
    assert engine.filters.search == "Crew 02"
    assert engine.view.visible_ids == ["c020", "c021", "c022", "c023", "c024", "c025"]


@pytest.mark.asyncio
async def test_flush_search_runs_immediately(store) -> None:
    engine = CrewRosterEngine(store, EngineOptions(required_position="captain"), debounce_seconds=10)
    await engine.start()
    engine.type_search("crew 001")
    assert engine.flush_search()
    await engine.wait_idle()
    assert engine.view.visible_ids == ["c001"]
    await engine.aclose()


@pytest.mark.asyncio
async def test_whitespace_only_search_change_is_ignored(store) -> None:
    engine = CrewRosterEngine(store, EngineOptions(required_position="captain"), debounce_seconds=10)
    await engine.start()
    engine.type_search("Crew 02")
    engine.flush_search()
    await engine.wait_idle()
    assert len(store.calls) == 2

    engine.type_search("Crew 02 ")
    engine.flush_search()
    await engine.wait_idle()
    assert len(store.calls) == 2
    assert len(engine.rows) == 6
    await engine.aclose()


@pytest.mark.asyncio
async def test_reset_filters_keeps_selection(mixed_store) -> None:
    engine = _engine(mixed_store)
    await engine.start()
    engine.toggle("c002", True)
    await engine.update_filters(roles=["freelancer"], sort="name:asc")
    assert engine.filters.sort_option == "name:asc"

    view = await engine.reset_filters()
    assert view.filters.sort_option == "last_active:desc"
    assert len(view.rows) == 20
    assert [r.id for r in view.visible_selection] == ["c002"]


@pytest.mark.asyncio
async def test_reset_selection(store) -> None:
    recorder = Recorder()
    engine = _engine(store, selected_crew_ids=["c001"])
    engine.subscribe(recorder)
    await engine.start()
    events = len(recorder.selections)

    engine.reset_selection(["c001"])
    assert len(recorder.selections) == events

    engine.reset_selection(["c002"], [SelectionRecord(id="c050", name="Off roster")])
    assert engine.selection.ids == ["c002", "c050"]
    assert engine.selection.records()[0].name == "Crew 002"
    assert len(recorder.selections) == events + 1

    engine.clear_selection()
    assert len(engine.selection) == 0


@pytest.mark.asyncio
async def test_unsubscribe(store) -> None:
    recorder = Recorder()
    engine = _engine(store)
    unsubscribe = engine.subscribe(recorder)
    unsubscribe()
    await engine.start()
    assert recorder.views == []


def test_engine_options_validation() -> None:
    with pytest.raises(ConfigurationError):
        EngineOptions(max_selections=0)
    with pytest.raises(ConfigurationError):
        EngineOptions(selected_crew_ids="c001")

    options = EngineOptions(
        selected_crew_ids=["a", "a"],
        selected_crew=[SelectionRecord(id="b", name="Bee")],
    )
    assert options.selected_crew_ids == ("a", "b")
