"""Resolve a user with group memberships and the superuser flag."""

import logging
from typing import Any

import psycopg
from psycopg.rows import dict_row

from .models import User

logger = logging.getLogger(__name__)

SUPERUSER_AUTHORITY = "ALL"


async def load_user(conn: psycopg.AsyncConnection[Any], uid: str) -> User | None:
    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(
            """
            SELECT u.userid, u.uid, u.username,
                   EXISTS (
                       SELECT 1
                       FROM userrolemembers urm
                       JOIN userroleauthorities ura ON urm.userroleid = ura.userroleid
                       WHERE urm.userid = u.userid AND ura.authority = %s
                   ) AS is_super
            FROM users u
            WHERE u.uid = %s
            """,
            (SUPERUSER_AUTHORITY, uid),
        )
        row = await cur.fetchone()

    if not row:
        logger.info("User %s not found", uid)
        return None

    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(
            """
            SELECT ug.uid
            FROM usergroupmembers ugm
            JOIN usergroup ug ON ugm.usergroupid = ug.usergroupid
            WHERE ugm.userid = %s
            """,
            (row["userid"],),
        )
        groups = await cur.fetchall()

    return User(
        uid=row["uid"],
        id=row["userid"],
        username=row["username"],
        is_super=bool(row["is_super"]),
        groups={g["uid"] for g in groups},
    )
