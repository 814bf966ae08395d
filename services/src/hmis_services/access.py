"""Aggregate data access manager.

Every check returns a list of human-readable violations; an empty list
means the user is authorized. Callers must inspect the list, nothing here
raises on denial.

A missing user or a superuser always passes. For data values and data
element operands the category options of both the category option combo
and the attribute option combo are checked, each option once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from cachetools import TTLCache

from .acl import AclService
from .metrics import record_access_denied, record_cache_hit, record_cache_miss
from .models import (
    AggregateDataValue,
    CategoryOption,
    CategoryOptionCombo,
    DataElementOperand,
    DataSet,
    User,
)

logger = logging.getLogger(__name__)

WRITE_COC_CACHE = "can_data_write_coc"


def _bypass(user: User | None) -> bool:
    return user is None or user.is_super


def _collect_options(*combos: CategoryOptionCombo | None) -> list[CategoryOption]:
    """Union of the combos' options, deduplicated by uid, first seen wins."""
    options: dict[str, CategoryOption] = {}
    for combo in combos:
        if combo is None:
            continue
        for option in combo.category_options:
            options.setdefault(option.uid, option)
    return list(options.values())


class AggregateAccessManager:
    def __init__(
        self,
        acl_service: AclService,
        *,
        cache_ttl_seconds: float = 3600.0,
        cache_size: int = 20000,
    ) -> None:
        if acl_service is None:
            raise ValueError("acl_service is required")
        self._acl = acl_service
        self._write_coc_cache: TTLCache[str, list[str]] = TTLCache(
            maxsize=cache_size, ttl=cache_ttl_seconds
        )

    def can_read_data_value(self, user: User | None, data_value: AggregateDataValue) -> list[str]:
        if _bypass(user):
            return []
        options = _collect_options(
            data_value.category_option_combo, data_value.attribute_option_combo
        )
        return self._option_read_errors(user, options)

    def can_write_data_set(self, user: User | None, data_set: DataSet) -> list[str]:
        if _bypass(user):
            return []
        errors = []
        if not self._acl.can_data_write(user, data_set):
            errors.append(f"User does not have write access for DataSet: {data_set.uid}")
        return self._report(user, errors)

    def can_read_data_set(self, user: User | None, data_set: DataSet) -> list[str]:
        if _bypass(user):
            return []
        errors = []
        if not self._acl.can_data_read(user, data_set):
            errors.append(f"User does not have read access for DataSet: {data_set.uid}")
        return self._report(user, errors)

    def can_write_option_combo(self, user: User | None, option_combo: CategoryOptionCombo) -> list[str]:
        if _bypass(user):
            return []
        return self._option_write_errors(user, option_combo.category_options)

    def can_write_option_combo_cached(
        self, user: User | None, option_combo: CategoryOptionCombo
    ) -> list[str]:
        """Same as can_write_option_combo, memoised per (user, combo) until the TTL expires."""
        if _bypass(user):
            return []

        cache_key = f"{user.uid}-{option_combo.uid}"
        cached = self._write_coc_cache.get(cache_key)
        if cached is not None:
            record_cache_hit(WRITE_COC_CACHE)
            return list(cached)

        record_cache_miss(WRITE_COC_CACHE)
        errors = self.can_write_option_combo(user, option_combo)
        self._write_coc_cache[cache_key] = errors
        return list(errors)

    def can_read_option_combo(self, user: User | None, option_combo: CategoryOptionCombo) -> list[str]:
        if _bypass(user):
            return []
        return self._option_read_errors(user, option_combo.category_options)

    def can_write_operand(self, user: User | None, operand: DataElementOperand) -> list[str]:
        if _bypass(user):
            return []
        options = _collect_options(
            operand.category_option_combo, operand.attribute_option_combo
        )
        return self._option_write_errors(user, options)

    def invalidate(self) -> None:
        self._write_coc_cache.clear()

    def _option_read_errors(self, user: User, options: Iterable[CategoryOption]) -> list[str]:
        errors = [
            f"User has no data read access for CategoryOption: {option.uid}"
            for option in options
            if not self._acl.can_data_read(user, option)
        ]
        return self._report(user, errors)

    def _option_write_errors(self, user: User, options: Iterable[CategoryOption]) -> list[str]:
        errors = [
            f"User has no data write access for CategoryOption: {option.uid}"
            for option in options
            if not self._acl.can_data_write(user, option)
        ]
        return self._report(user, errors)

    def _report(self, user: User, errors: list[str]) -> list[str]:
        if errors:
            record_access_denied(len(errors))
            logger.info(
                "Aggregate access denied for user %s (%d violations)",
                user.uid, len(errors),
                extra={"hmis_user_uid": user.uid, "hmis_violations": len(errors)},
            )
        return errors
