"""Builds the service objects from Config.

Each object owns its caches, so one Services instance should live for the
whole process.
"""

from dataclasses import dataclass

from .access import AggregateAccessManager
from .acl import AclService
from .calendar import CalendarService, default_calendars
from .config import Config
from .events import EventStore, ProgramSupplier
from .settings import SystemSettingManager


@dataclass(frozen=True)
class Services:
    acl: AclService
    settings: SystemSettingManager
    calendars: CalendarService
    aggregate_access: AggregateAccessManager
    programs: ProgramSupplier
    events: EventStore


def build_services(config: Config) -> Services:
    acl = AclService()
    settings = SystemSettingManager(cache_ttl_seconds=config.settings_cache_ttl_seconds)
    return Services(
        acl=acl,
        settings=settings,
        calendars=CalendarService(settings, default_calendars()),
        aggregate_access=AggregateAccessManager(
            acl,
            cache_ttl_seconds=config.access_cache_ttl_seconds,
            cache_size=config.access_cache_size,
        ),
        programs=ProgramSupplier(
            program_cache_ttl_seconds=config.program_cache_ttl_seconds,
            user_group_cache_ttl_seconds=config.user_group_cache_ttl_seconds,
        ),
        events=EventStore(partition_size=config.partition_size),
    )
