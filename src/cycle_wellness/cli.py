"""Command-line interface for the cycle wellness service."""

import argparse
import asyncio
import logging
import sys

from cycle_wellness import __version__
from cycle_wellness.cycle.phase import CyclePhase, TimeOfDay
from cycle_wellness.energy.coefficients import get_event_coefficient, search_events
from cycle_wellness.energy.impact import calculate_impact


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from cycle_wellness.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "cycle_wellness.api.app:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


async def _with_session(job):
    from cycle_wellness.database.connection import close_db, get_db, init_db

    await init_db()
    try:
        async with get_db() as db:
            return await job(db)
    finally:
        await close_db()


async def _init_db(db) -> int:
    from cycle_wellness.database.connection import create_tables
    from cycle_wellness.energy.seed import seed_energy_reference

    await create_tables()
    return await seed_energy_reference(db)


async def _plan_week(db) -> int:
    from cycle_wellness.ai.client import LLMClient
    from cycle_wellness.ai.planner import WeekPlanner
    from cycle_wellness.monitoring.ai_logging import AIMonitor

    created = await WeekPlanner(db, LLMClient(monitor=AIMonitor(db))).run_for_all_users()
    await db.commit()
    return created


async def _check_notifications(db) -> int:
    from cycle_wellness.notifications import check_period_notifications

    return await check_period_notifications(db)


async def _check_replies(db) -> int:
    from cycle_wellness.ai.client import LLMClient
    from cycle_wellness.ai.moves import EventMoveService
    from cycle_wellness.monitoring.ai_logging import AIMonitor

    result = await EventMoveService(db, LLMClient(monitor=AIMonitor(db))).check_replies()
    await db.commit()
    return result.processed


def _coefficient(args: argparse.Namespace) -> int:
    reference = get_event_coefficient(args.name)
    if reference is None:
        matches = search_events(args.name)
        if not matches:
            print(f"Unknown activity: {args.name}", file=sys.stderr)
            return 1
        reference = matches[0]

    impact = calculate_impact(
        reference,
        CyclePhase(args.phase),
        TimeOfDay(args.time),
        args.stress,
    )
    for key, value in impact.to_dict().items():
        print(f"{key:>20}: {value}")
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Cycle Wellness - cycle-aware energy forecasts and calendar advice"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind address (default from settings)")
    serve_parser.add_argument("--port", type=int, help="Port (default from settings)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("init-db", help="Create tables and seed the activity catalogue")
    subparsers.add_parser("plan-week", help="Run the week planner for all users")
    subparsers.add_parser(
        "check-notifications", help="Create period reminders due today"
    )
    subparsers.add_parser(
        "check-replies", help="Process email replies to move suggestions"
    )

    coefficient_parser = subparsers.add_parser(
        "coefficient", help="Energy impact of a catalogue activity"
    )
    coefficient_parser.add_argument("name", help="Activity name")
    coefficient_parser.add_argument(
        "--phase",
        choices=[p.value for p in CyclePhase],
        default=CyclePhase.FOLLICULAR.value,
    )
    coefficient_parser.add_argument(
        "--time",
        choices=[t.value for t in TimeOfDay],
        default=TimeOfDay.AFTERNOON.value,
    )
    coefficient_parser.add_argument(
        "--stress", type=int, choices=range(1, 6), default=3, help="Stress level 1-5"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return _serve(args)
    if args.command == "coefficient":
        return _coefficient(args)

    if args.command == "init-db":
        inserted = asyncio.run(_with_session(_init_db))
        print(f"Database ready, {inserted} catalogue rows added")
    elif args.command == "plan-week":
        print(f"Move suggestions created: {asyncio.run(_with_session(_plan_week))}")
    elif args.command == "check-notifications":
        print(f"Notifications created: {asyncio.run(_with_session(_check_notifications))}")
    elif args.command == "check-replies":
        print(f"Replies processed: {asyncio.run(_with_session(_check_replies))}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
