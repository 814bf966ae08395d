"""Batched event loader.

Events, their data values and their notes are fetched for lists of
database ids. Id lists are split into partitions so each ANY(%s) array
stays bounded; results from all partitions are merged.

Non-superusers only see events of programs in the context's allowed lists.
For event programs (WITHOUT_REGISTRATION) the stage and tracked entity
type must be allowed as well.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import psycopg
from pydantic import ValidationError

from ..db import DEFAULT_PARTITION_SIZE, fetch_all, partition
from ..models import Event, EventDataValue, Note

logger = logging.getLogger(__name__)

_EVENTS_SQL = """
    SELECT psi.programstageinstanceid AS id, psi.uid,
           pi.uid AS enrollment_uid, p.uid AS program_uid,
           ps.uid AS program_stage_uid, ou.uid AS org_unit_uid,
           ou.name AS org_unit_name, tei.uid AS tei_uid,
           psi.status, psi.executiondate, psi.duedate,
           psi.created, psi.lastupdated, psi.completedby,
           psi.completeddate, psi.storedby, psi.deleted,
           coc.uid AS attribute_option_combo_uid,
           ST_AsGeoJSON(psi.geometry) AS geometry
    FROM programstageinstance psi
    JOIN programinstance pi ON psi.programinstanceid = pi.programinstanceid
    JOIN program p ON pi.programid = p.programid
    JOIN programstage ps ON psi.programstageid = ps.programstageid
    JOIN organisationunit ou ON psi.organisationunitid = ou.organisationunitid
    LEFT JOIN trackedentityinstance tei ON pi.trackedentityinstanceid = tei.trackedentityinstanceid
    LEFT JOIN categoryoptioncombo coc ON psi.attributeoptioncomboid = coc.categoryoptioncomboid
    WHERE pi.programinstanceid = ANY(%(ids)s)
"""

_ACL_FILTER_SQL = """
    AND CASE WHEN p.type = 'WITHOUT_REGISTRATION'
        THEN psi.programstageid = ANY(%(program_stage_ids)s)
             AND p.trackedentitytypeid = ANY(%(tracked_entity_type_ids)s)
        ELSE true END
    AND pi.programid = ANY(%(program_ids)s)
"""

_ACL_FILTER_SQL_NO_PROGRAM_STAGE = """
    AND CASE WHEN p.type = 'WITHOUT_REGISTRATION'
        THEN p.trackedentitytypeid = ANY(%(tracked_entity_type_ids)s)
        ELSE true END
    AND pi.programid = ANY(%(program_ids)s)
"""

_ORDER_SQL = "\n    ORDER BY psi.programstageinstanceid"

_DATA_VALUES_SQL = """
    SELECT psi.uid AS key, psi.eventdatavalues
    FROM programstageinstance psi
    WHERE psi.programstageinstanceid = ANY(%s)
"""

_NOTES_SQL = """
    SELECT psi.uid AS key, tec.uid, tec.commenttext, tec.creator, tec.created
    FROM trackedentitycomment tec
    JOIN programstageinstancecomments psic
        ON tec.trackedentitycommentid = psic.trackedentitycommentid
    JOIN programstageinstance psi
        ON psic.programstageinstanceid = psi.programstageinstanceid
    WHERE psic.programstageinstanceid = ANY(%s)
    ORDER BY tec.created, tec.trackedentitycommentid
"""


@dataclass(frozen=True)
class AggregateContext:
    """Who is asking and which metadata they may see, as database ids."""

    user_id: int | None = None
    super_user: bool = False
    programs: tuple[int, ...] = field(default_factory=tuple)
    program_stages: tuple[int, ...] = field(default_factory=tuple)
    tracked_entity_types: tuple[int, ...] = field(default_factory=tuple)


def events_query(ctx: AggregateContext) -> str:
    """Event query with the ACL filter the context calls for."""
    if ctx.super_user:
        return _EVENTS_SQL + _ORDER_SQL
    acl = _ACL_FILTER_SQL_NO_PROGRAM_STAGE if not ctx.program_stages else _ACL_FILTER_SQL
    return _EVENTS_SQL + acl + _ORDER_SQL


def events_params(ids: list[int], ctx: AggregateContext) -> dict[str, Any]:
    return {
        "ids": ids,
        "program_ids": list(ctx.programs),
        "program_stage_ids": list(ctx.program_stages),
        "tracked_entity_type_ids": list(ctx.tracked_entity_types),
    }


def _parse_geometry(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Ignoring unparsable event geometry")
        return None


def _to_event(row: dict[str, Any]) -> Event:
    return Event(
        id=row["id"],
        uid=row["uid"],
        enrollment_uid=row["enrollment_uid"],
        program_uid=row["program_uid"],
        program_stage_uid=row["program_stage_uid"],
        org_unit_uid=row["org_unit_uid"],
        org_unit_name=row["org_unit_name"],
        tracked_entity_instance_uid=row["tei_uid"],
        status=row["status"],
        occurred_at=row["executiondate"],
        scheduled_at=row["duedate"],
        created_at=row["created"],
        updated_at=row["lastupdated"],
        completed_by=row["completedby"],
        completed_at=row["completeddate"],
        stored_by=row["storedby"],
        deleted=bool(row["deleted"]),
        attribute_option_combo_uid=row["attribute_option_combo_uid"],
        geometry=_parse_geometry(row["geometry"]),
    )


def parse_event_data_values(event_uid: str, raw: Any) -> list[EventDataValue]:
    """Validate the eventdatavalues JSON object; malformed entries are skipped."""
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Event %s has unparsable eventdatavalues, ignoring", event_uid)
            return []
    if not isinstance(raw, dict):
        logger.warning("Event %s has non-object eventdatavalues, ignoring", event_uid)
        return []

    values: list[EventDataValue] = []
    for data_element, entry in raw.items():
        if not isinstance(entry, dict):
            logger.warning(
                "Event %s data value %s is not an object, skipping", event_uid, data_element
            )
            continue
        try:
            values.append(EventDataValue.model_validate({**entry, "dataElement": data_element}))
        except ValidationError as exc:
            logger.warning(
                "Event %s data value %s failed validation: %s",
                event_uid, data_element, exc.errors(include_url=False),
            )
    return values


def _to_note(row: dict[str, Any]) -> Note:
    return Note(
        uid=row["uid"],
        value=row["commenttext"],
        stored_by=row["creator"],
        stored_at=row["created"],
    )


class EventStore:
    def __init__(self, *, partition_size: int = DEFAULT_PARTITION_SIZE) -> None:
        if partition_size <= 0:
            raise ValueError(f"partition_size must be positive, got {partition_size}")
        self.partition_size = partition_size

    async def get_events_by_enrollment_ids(
        self,
        conn: psycopg.AsyncConnection[Any],
        enrollment_ids: list[int],
        ctx: AggregateContext,
    ) -> dict[str, list[Event]]:
        """Events keyed by enrollment uid."""
        events: dict[str, list[Event]] = {}
        query = events_query(ctx)
        for chunk in partition(enrollment_ids, self.partition_size):
            rows = await fetch_all(conn, query, events_params(chunk, ctx), loader="events")
            for row in rows:
                event = _to_event(row)
                events.setdefault(event.enrollment_uid, []).append(event)
        return events

    async def get_data_values(
        self, conn: psycopg.AsyncConnection[Any], event_ids: list[int]
    ) -> dict[str, list[EventDataValue]]:
        """Data values keyed by event uid."""
        data_values: dict[str, list[EventDataValue]] = {}
        for chunk in partition(event_ids, self.partition_size):
            rows = await fetch_all(conn, _DATA_VALUES_SQL, (chunk,), loader="event_data_values")
            for row in rows:
                data_values[row["key"]] = parse_event_data_values(row["key"], row["eventdatavalues"])
        return data_values

    async def get_notes(
        self, conn: psycopg.AsyncConnection[Any], event_ids: list[int]
    ) -> dict[str, list[Note]]:
        """Notes keyed by event uid, oldest first."""
        notes: dict[str, list[Note]] = {}
        for chunk in partition(event_ids, self.partition_size):
            rows = await fetch_all(conn, _NOTES_SQL, (chunk,), loader="event_notes")
            for row in rows:
                notes.setdefault(row["key"], []).append(_to_note(row))
        return notes

    async def get_full_events_by_enrollment_ids(
        self,
        conn: psycopg.AsyncConnection[Any],
        enrollment_ids: list[int],
        ctx: AggregateContext,
    ) -> dict[str, list[Event]]:
        """Events keyed by enrollment uid with data values and notes attached."""
        events = await self.get_events_by_enrollment_ids(conn, enrollment_ids, ctx)
        event_ids = [e.id for group in events.values() for e in group if e.id is not None]
        if not event_ids:
            return events

        data_values = await self.get_data_values(conn, event_ids)
        notes = await self.get_notes(conn, event_ids)
        for group in events.values():
            for event in group:
                event.data_values = data_values.get(event.uid, [])
                event.notes = notes.get(event.uid, [])
        return events
