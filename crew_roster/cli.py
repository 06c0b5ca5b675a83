"""Command-line front-end: query the crew roster with the same engine the picker uses."""

import argparse
import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from .core.config import get_settings
from .core.logging import configure_logging
from .models.crew import POSITION_LABELS, CrewRecord
from .models.filters import SORT_OPTIONS, FilterState
from .services.engine import CrewRosterEngine, EngineObserver, EngineOptions, Notice, RosterCondition
from .services.roster_store import RosterStore, SupabaseRosterStore


def format_relative_time(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    if when is None:
        return "never"
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    hours = abs((now - when).total_seconds()) / 3600
    if hours < 1:
        return "just now"
    if hours < 24:
        return f"{int(hours)}h ago"
    return f"{int(hours // 24)}d ago"


def format_row(crew: CrewRecord, now: Optional[datetime] = None) -> str:
    bases, overflow = crew.bases_display()
    bases_text = ",".join(bases) + (f" +{overflow}" if overflow else "")
    years = f"{crew.experience_years}y" if crew.experience_years is not None else "-"
    return (
        f"{crew.id:>10}  {crew.name:<24} {POSITION_LABELS[crew.position]:<16} {crew.role.value:<10} "
        f"{bases_text:<20} {years:>4}  {format_relative_time(crew.last_active, now)}"
    )


class _PrintNotices(EngineObserver):
    def on_notice(self, notice: Notice) -> None:
        print(f"! {notice.message}")


def filters_from_args(args) -> FilterState:
    filters = FilterState(position=args.position, search=args.search or "")
    changes = {}
    if args.role:
        changes["roles"] = args.role
    if args.status is not None:
        changes["status"] = args.status
    if args.validation is not None:
        changes["validation_status"] = args.validation
    if args.base:
        changes["preferred_bases"] = args.base
    if args.currency:
        changes["currency"] = args.currency
    if args.sort:
        filters = filters.with_sort(args.sort)
    return filters.replace(**changes)


async def run(args, store: Optional[RosterStore] = None) -> int:
    settings = get_settings()
    owned = store is None
    store = store or SupabaseRosterStore(
        base_url=args.url or settings.supabase_url,
        api_key=args.key or settings.supabase_anon_key,
        access_token=settings.access_token,
        table=settings.roster_table,
        timeout=args.timeout or settings.request_timeout,
    )
    engine = CrewRosterEngine(
        store,
        EngineOptions(required_position=args.position, preset_filters=filters_from_args(args)),
        page_size=args.page_size or settings.page_size,
        debounce_seconds=0,
        request_timeout=args.timeout or settings.request_timeout,
    )
    engine.subscribe(_PrintNotices())

    try:
        view = await engine.start()
        for _ in range(args.pages - 1):
            if not view.has_more:
                break
            view = await engine.load_more()

        if view.condition == RosterCondition.ERROR and not view.rows:
            print(f"✗ Roster query failed: {view.error}")
            return 2

        now = datetime.now(timezone.utc)
        for crew in view.rows:
            print(format_row(crew, now))
        print()
        total = f" of {view.total_count}" if view.total_count is not None else ""
        print(f"{len(view.rows)}{total} crew member(s); more available: {'yes' if view.has_more else 'no'}")
        if view.fallback_active:
            print("[illustrative data] live roster unavailable, showing sample crew")
        if view.condition == RosterCondition.ERROR:
            print(f"✗ Last page failed: {view.error}")
        return 0
    finally:
        await engine.aclose()
        if owned:
            await store.aclose()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser("crew-roster", description="Query the crew roster")
    ap.add_argument("--position", required=True, help="captain|first_officer|cabin_crew|engineer")
    ap.add_argument("--role", action="append", help="internal|freelancer|admin (repeatable)")
    ap.add_argument("--status", help="active|inactive|pending ('' for any)")
    ap.add_argument("--validation", help="approved|pending|rejected ('' for any)")
    ap.add_argument("--base", action="append", help="required preferred base, e.g. LFPB (repeatable)")
    ap.add_argument("--currency", help="e.g. EUR")
    ap.add_argument("--search", help="name contains (case-insensitive)")
    ap.add_argument("--sort", choices=sorted(SORT_OPTIONS), help="field:direction")
    ap.add_argument("--pages", type=int, default=1, help="pages to load (default 1)")
    ap.add_argument("--page-size", type=int)
    ap.add_argument("--url", help="Supabase project URL")
    ap.add_argument("--key", help="Supabase anon key")
    ap.add_argument("--timeout", type=float, help="request timeout in seconds")
    ap.add_argument("--log-level", help="DEBUG, INFO, WARNING ...")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or get_settings().log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
