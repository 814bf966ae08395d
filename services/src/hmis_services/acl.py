"""Sharing-based access checks.

Access strings are 8 characters. Positions 0/1 are metadata read/write,
2/3 are data read/write, 4..7 are reserved and always '-':

    rwrw----   metadata read+write, data read+write
    r-r-----   metadata read, data read

A user is granted a permission on an object if the public access string,
one of the object's user accesses (matched by user uid), or one of its
user-group accesses for a group the user belongs to enables it.
Superusers are granted everything.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from .models import Sharing, User, UserGroupAccess

logger = logging.getLogger(__name__)

ACCESS_STRING_LENGTH = 8

DEFAULT = "--------"
READ = "r-------"
READ_WRITE = "rw------"
DATA_READ = "r-r-----"
DATA_READ_WRITE = "r-rw----"
FULL = "rwrw----"


class Permission(Enum):
    READ = (0, "r")
    WRITE = (1, "w")
    DATA_READ = (2, "r")
    DATA_WRITE = (3, "w")

    @property
    def position(self) -> int:
        return self.value[0]

    @property
    def flag(self) -> str:
        return self.value[1]


def is_valid(access: str | None) -> bool:
    if access is None or len(access) != ACCESS_STRING_LENGTH:
        return False
    for permission in Permission:
        if access[permission.position] not in (permission.flag, "-"):
            return False
    return access[4:] == "----"


def is_enabled(access: str | None, permission: Permission) -> bool:
    """Malformed or missing access strings grant nothing."""
    if access is None or len(access) != ACCESS_STRING_LENGTH:
        return False
    return access[permission.position] == permission.flag


def with_permission(access: str | None, permission: Permission) -> str:
    """Return ``access`` with ``permission`` switched on."""
    chars = list(access if is_valid(access) else DEFAULT)
    chars[permission.position] = permission.flag
    return "".join(chars)


class Shareable(Protocol):
    uid: str
    sharing: Sharing


def _belongs_to(user: User, group_access: UserGroupAccess) -> bool:
    group = group_access.user_group
    return group.uid in user.groups or group.has_member(user)


class AclService:
    """Answer read/write questions for shareable objects."""

    def can_read(self, user: User | None, obj: Shareable) -> bool:
        return self._granted(user, obj, (Permission.READ, Permission.WRITE))

    def can_write(self, user: User | None, obj: Shareable) -> bool:
        return self._granted(user, obj, (Permission.WRITE,))

    def can_data_read(self, user: User | None, obj: Shareable) -> bool:
        # data write implies data read
        return self._granted(user, obj, (Permission.DATA_READ, Permission.DATA_WRITE))

    def can_data_write(self, user: User | None, obj: Shareable) -> bool:
        return self._granted(user, obj, (Permission.DATA_WRITE,))

    def _granted(
        self,
        user: User | None,
        obj: Shareable,
        permissions: tuple[Permission, ...],
    ) -> bool:
        if user is not None and user.is_super:
            return True

        sharing = obj.sharing
        if any(is_enabled(sharing.public_access, p) for p in permissions):
            return True

        if user is None:
            return False

        for user_access in sharing.user_accesses:
            if user_access.user.uid != user.uid:
                continue
            if any(is_enabled(user_access.access, p) for p in permissions):
                return True

        for group_access in sharing.user_group_accesses:
            if not _belongs_to(user, group_access):
                continue
            if any(is_enabled(group_access.access, p) for p in permissions):
                return True

        logger.debug(
            "Access denied for user %s on %s (permissions=%s)",
            user.uid, obj.uid, [p.name for p in permissions],
        )
        return False
