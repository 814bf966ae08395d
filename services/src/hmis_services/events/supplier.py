"""Program metadata supplier for event import and export.

Loads every program with its stages, tracked entity type, org units and
sharing grants in a handful of queries, merges the grants onto the domain
objects and caches the whole map. The map is reloaded at most once per
TTL window; user-group membership is cached separately with a longer TTL.

Table and column names of the grant queries are composed with
psycopg.sql.Identifier, never by string substitution.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
from cachetools import TTLCache
from psycopg import sql

from ..db import dedupe_by, fetch_all, group_rows
from ..metrics import record_cache_hit, record_cache_miss
from ..models import (
    CategoryCombo,
    Event,
    FeatureType,
    OrganisationUnit,
    Program,
    ProgramStage,
    ProgramType,
    Sharing,
    TrackedEntityType,
    User,
    UserAccess,
    UserGroup,
    UserGroupAccess,
)

logger = logging.getLogger(__name__)

PROGRAM_CACHE_KEY = "000P"
PROGRAM_CACHE = "event_program"
USER_GROUP_CACHE = "event_user_group"

_PROGRAMS_SQL = """
    SELECT p.programid, p.uid, p.name, p.type, p.publicaccess,
           tet.trackedentitytypeid, tet.uid AS tet_uid,
           tet.publicaccess AS tet_public_access,
           c.categorycomboid AS catcombo_id, c.uid AS catcombo_uid,
           c.name AS catcombo_name,
           ps.programstageid AS ps_id, ps.uid AS ps_uid,
           ps.featuretype AS ps_feature_type, ps.sort_order,
           ps.publicaccess AS ps_public_access
    FROM program p
    LEFT JOIN categorycombo c ON p.categorycomboid = c.categorycomboid
    LEFT JOIN trackedentitytype tet ON p.trackedentitytypeid = tet.trackedentitytypeid
    LEFT JOIN programstage ps ON p.programid = ps.programid
    ORDER BY p.programid, ps.sort_order
"""

_ORG_UNITS_SQL = """
    SELECT pou.programid, ou.uid, ou.organisationunitid
    FROM program_organisationunits pou
    JOIN organisationunit ou ON pou.organisationunitid = ou.organisationunitid
    ORDER BY pou.programid
"""

_USER_ACCESS_SQL = sql.SQL("""
    SELECT eua.{column} AS owner_id, ua.useraccessid, ua.access, ua.userid, u.uid
    FROM {table} eua
    JOIN useraccess ua ON eua.useraccessid = ua.useraccessid
    JOIN users u ON ua.userid = u.userid
    ORDER BY eua.{column}
""")

_USER_GROUP_ACCESS_SQL = sql.SQL("""
    SELECT ega.{column} AS owner_id, ega.usergroupaccessid, uga.access,
           uga.usergroupid, ug.uid, ug.name
    FROM {table} ega
    JOIN usergroupaccess uga ON ega.usergroupaccessid = uga.usergroupaccessid
    JOIN usergroup ug ON uga.usergroupid = ug.usergroupid
    ORDER BY ega.{column}
""")

_USER_GROUP_MEMBERS_SQL = """
    SELECT ugm.usergroupid, u.uid AS user_uid, u.userid AS user_id
    FROM usergroupmembers ugm
    JOIN users u ON ugm.userid = u.userid
    WHERE ugm.usergroupid = ANY(%s)
"""

# (table, owner column) per shareable type
PROGRAM_USER_ACCESSES = ("programuseraccesses", "programid")
PROGRAM_STAGE_USER_ACCESSES = ("programstageuseraccesses", "programstageid")
TET_USER_ACCESSES = ("trackedentitytypeuseraccesses", "trackedentitytypeid")
PROGRAM_USER_GROUP_ACCESSES = ("programusergroupaccesses", "programid")
# The stage group-grant table keeps the stage id in a column named programid
PROGRAM_STAGE_USER_GROUP_ACCESSES = ("programstageusergroupaccesses", "programid")
TET_USER_GROUP_ACCESSES = ("trackedentitytypeusergroupaccesses", "trackedentitytypeid")


def acl_query(template: sql.SQL, table: str, column: str) -> sql.Composed:
    return template.format(table=sql.Identifier(table), column=sql.Identifier(column))


def _to_program_stage(row: dict[str, Any]) -> ProgramStage:
    return ProgramStage(
        id=row["ps_id"],
        uid=row["ps_uid"],
        sort_order=row["sort_order"],
        feature_type=FeatureType.from_name(row["ps_feature_type"]),
        sharing=Sharing(public_access=row["ps_public_access"]),
    )


def _to_program(row: dict[str, Any]) -> Program:
    program = Program(
        id=row["programid"],
        uid=row["uid"],
        name=row["name"],
        program_type=ProgramType.from_value(row["type"]),
        sharing=Sharing(public_access=row["publicaccess"]),
    )
    if row["catcombo_id"] is not None:
        program.category_combo = CategoryCombo(
            id=row["catcombo_id"],
            uid=row["catcombo_uid"],
            name=row["catcombo_name"],
        )
    if row["trackedentitytypeid"] is not None:
        program.tracked_entity_type = TrackedEntityType(
            id=row["trackedentitytypeid"],
            uid=row["tet_uid"],
            sharing=Sharing(public_access=row["tet_public_access"]),
        )
    return program


def _to_org_unit(row: dict[str, Any]) -> OrganisationUnit:
    return OrganisationUnit(uid=row["uid"], id=row["organisationunitid"])


def _to_user_access(row: dict[str, Any]) -> UserAccess:
    return UserAccess(
        id=row["useraccessid"],
        access=row["access"],
        user=User(uid=row["uid"], id=row["userid"]),
    )


def _to_user_group_access(row: dict[str, Any]) -> UserGroupAccess:
    return UserGroupAccess(
        id=row["usergroupaccessid"],
        access=row["access"],
        user_group=UserGroup(id=row["usergroupid"], uid=row["uid"], name=row["name"]),
    )


def build_program_map(rows: list[dict[str, Any]]) -> dict[str, Program]:
    """Fold the program/stage join into programs keyed by uid.

    Rows arrive ordered by program id, so a change of id starts a new
    program. A program without stages yields one row with null stage
    columns.
    """
    results: dict[str, Program] = {}
    current: Program | None = None
    for row in rows:
        if current is None or current.id != row["programid"]:
            current = _to_program(row)
            results[current.uid] = current
        if row["ps_id"] is not None:
            current.program_stages.append(_to_program_stage(row))
    return results


class ProgramSupplier:
    def __init__(
        self,
        *,
        program_cache_ttl_seconds: float = 1800.0,
        user_group_cache_ttl_seconds: float = 3600.0,
        user_group_cache_size: int = 10000,
    ) -> None:
        self._programs_cache: TTLCache[str, dict[str, Program]] = TTLCache(
            maxsize=1, ttl=program_cache_ttl_seconds
        )
        self._user_group_cache: TTLCache[int, list[User]] = TTLCache(
            maxsize=user_group_cache_size, ttl=user_group_cache_ttl_seconds
        )

    async def get(
        self,
        conn: psycopg.AsyncConnection[Any],
        events: list[Event] | None = None,
    ) -> dict[str, Program]:
        """Return every program keyed by uid.

        ``events`` is the batch being processed. It does not narrow the load:
        programs are always loaded in full so one cached map serves every batch.
        """
        cached = self._programs_cache.get(PROGRAM_CACHE_KEY)
        if cached is not None:
            record_cache_hit(PROGRAM_CACHE)
            return cached

        record_cache_miss(PROGRAM_CACHE)
        program_map = await self._load_programs(conn)

        ou_map = await self._load_org_units(conn)
        program_user_accesses = await self._fetch_user_accesses(conn, *PROGRAM_USER_ACCESSES)
        stage_user_accesses = await self._fetch_user_accesses(conn, *PROGRAM_STAGE_USER_ACCESSES)
        tet_user_accesses = await self._fetch_user_accesses(conn, *TET_USER_ACCESSES)

        program_group_accesses = await self._fetch_user_group_accesses(
            conn, *PROGRAM_USER_GROUP_ACCESSES
        )
        stage_group_accesses = await self._fetch_user_group_accesses(
            conn, *PROGRAM_STAGE_USER_GROUP_ACCESSES
        )
        tet_group_accesses = await self._fetch_user_group_accesses(
            conn, *TET_USER_GROUP_ACCESSES
        )
        await self._attach_members(
            conn, program_group_accesses, stage_group_accesses, tet_group_accesses
        )

        for program in program_map.values():
            program.organisation_units = ou_map.get(program.id, [])
            program.sharing.user_accesses = program_user_accesses.get(program.id, [])
            program.sharing.user_group_accesses = program_group_accesses.get(program.id, [])

            tet = program.tracked_entity_type
            if tet is not None:
                tet.sharing.user_accesses = tet_user_accesses.get(tet.id, [])
                tet.sharing.user_group_accesses = tet_group_accesses.get(tet.id, [])

            for stage in program.program_stages:
                stage.sharing.user_accesses = stage_user_accesses.get(stage.id, [])
                stage.sharing.user_group_accesses = stage_group_accesses.get(stage.id, [])

        self._programs_cache[PROGRAM_CACHE_KEY] = program_map
        logger.info(
            "Loaded %d programs into the event program cache", len(program_map),
            extra={"hmis_loader": "programs", "hmis_programs": len(program_map)},
        )
        return program_map

    def invalidate(self) -> None:
        self._programs_cache.clear()
        self._user_group_cache.clear()

    async def _load_programs(self, conn: psycopg.AsyncConnection[Any]) -> dict[str, Program]:
        rows = await fetch_all(conn, _PROGRAMS_SQL, None, loader="programs")
        return build_program_map(rows)

    async def _load_org_units(
        self, conn: psycopg.AsyncConnection[Any]
    ) -> dict[int, list[OrganisationUnit]]:
        rows = await fetch_all(conn, _ORG_UNITS_SQL, None, loader="program_org_units")
        grouped = group_rows(rows, "programid", _to_org_unit)
        return {pid: dedupe_by(ous, lambda ou: ou.uid) for pid, ous in grouped.items()}

    async def _fetch_user_accesses(
        self, conn: psycopg.AsyncConnection[Any], table: str, column: str
    ) -> dict[int, list[UserAccess]]:
        rows = await fetch_all(
            conn, acl_query(_USER_ACCESS_SQL, table, column), None, loader=table
        )
        grouped = group_rows(rows, "owner_id", _to_user_access)
        return {oid: dedupe_by(grants, lambda g: g.id) for oid, grants in grouped.items()}

    async def _fetch_user_group_accesses(
        self, conn: psycopg.AsyncConnection[Any], table: str, column: str
    ) -> dict[int, list[UserGroupAccess]]:
        rows = await fetch_all(
            conn, acl_query(_USER_GROUP_ACCESS_SQL, table, column), None, loader=table
        )
        grouped = group_rows(rows, "owner_id", _to_user_group_access)
        return {oid: dedupe_by(grants, lambda g: g.id) for oid, grants in grouped.items()}

    async def _attach_members(
        self,
        conn: psycopg.AsyncConnection[Any],
        *grant_maps: dict[int, list[UserGroupAccess]],
    ) -> None:
        """Set members on every loaded user group, loading uncached groups in one query."""
        groups = [
            grant.user_group
            for grant_map in grant_maps
            for grants in grant_map.values()
            for grant in grants
        ]
        # Members come from this map; the cache may evict entries while it is filled
        resolved: dict[int, list[User]] = {}
        missing: list[int] = []
        for group_id in sorted({g.id for g in groups}):
            cached = self._user_group_cache.get(group_id)
            if cached is None:
                missing.append(group_id)
            else:
                resolved[group_id] = cached

        if resolved:
            record_cache_hit(USER_GROUP_CACHE, len(resolved))
        if missing:
            record_cache_miss(USER_GROUP_CACHE, len(missing))
            members = await self._load_user_group_members(conn, missing)
            for group_id in missing:
                resolved[group_id] = members.get(group_id, [])
                self._user_group_cache[group_id] = resolved[group_id]

        for group in groups:
            group.members = resolved[group.id]

    async def _load_user_group_members(
        self, conn: psycopg.AsyncConnection[Any], group_ids: list[int]
    ) -> dict[int, list[User]]:
        rows = await fetch_all(
            conn, _USER_GROUP_MEMBERS_SQL, (group_ids,), loader="user_group_members"
        )
        grouped = group_rows(
            rows,
            "usergroupid",
            lambda row: User(uid=row["user_uid"], id=row["user_id"]),
        )
        return {gid: dedupe_by(users, lambda u: u.uid) for gid, users in grouped.items()}
