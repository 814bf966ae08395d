"""CLI entry point for inspecting calendars, program metadata and events."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
from typing import Any, Sequence

import psycopg
from pydantic import BaseModel

from .calendar import CalendarService, default_calendars
from .config import Config
from .events import AggregateContext, build_aggregate_context
from .logging import parse_level, setup_logging
from .services import Services, build_services
from .settings import SystemSettingManager
from .users import load_user


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hmis-services",
        description="Inspect calendars, program metadata and events.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("calendars", help="List supported calendars and date formats.")
    sub.add_parser("system-calendar", help="Show the configured system calendar.")
    sub.add_parser("programs", help="Dump programs with stages and sharing.")

    events = sub.add_parser("events", help="Load events for enrollments.")
    events.add_argument(
        "--enrollment-id",
        action="append",
        type=int,
        required=True,
        help="Enrollment database id (repeatable).",
    )
    events.add_argument(
        "--user",
        default=None,
        help="User uid whose sharing filters the events. Omit to load unfiltered.",
    )
    events.add_argument(
        "--details",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Attach data values and notes.",
    )
    return parser


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


def _list_calendars() -> dict[str, Any]:
    service = CalendarService(SystemSettingManager(), default_calendars())
    return {
        "calendars": [c.name for c in service.get_all_calendars()],
        "date_formats": [dataclasses.asdict(f) for f in service.get_all_date_formats()],
    }


async def _resolve_context(
    conn: psycopg.AsyncConnection[Any], services: Services, user_uid: str | None
) -> AggregateContext:
    if user_uid is None:
        return AggregateContext(super_user=True)
    user = await load_user(conn, user_uid)
    if user is None:
        raise SystemExit(f"Unknown user: {user_uid}")
    programs = await services.programs.get(conn)
    return build_aggregate_context(services.acl, user, programs.values())


async def _run(args: argparse.Namespace, config: Config) -> Any:
    services = build_services(config)

    async with await psycopg.AsyncConnection.connect(config.database_url) as conn:
        if args.command == "system-calendar":
            calendar = await services.calendars.get_system_calendar(conn)
            date_format = await services.calendars.get_system_date_format(conn)
            return {
                "calendar": calendar.name,
                "date_format": date_format.name,
                "today": calendar.format_date(calendar.today()),
            }

        if args.command == "programs":
            programs = await services.programs.get(conn)
            return _to_jsonable(programs)

        ctx = await _resolve_context(conn, services, args.user)
        if args.details:
            events = await services.events.get_full_events_by_enrollment_ids(
                conn, args.enrollment_id, ctx
            )
        else:
            events = await services.events.get_events_by_enrollment_ids(
                conn, args.enrollment_id, ctx
            )
        return _to_jsonable(events)


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "calendars":
        result = _list_calendars()
    else:
        config = Config.from_env()
        setup_logging(config.log_format, parse_level(config.log_level))
        result = asyncio.run(_run(args, config))

    print(json.dumps(result, indent=2, sort_keys=True, default=_json_default))


if __name__ == "__main__":
    main()
