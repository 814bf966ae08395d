import os
from dataclasses import dataclass

from .logging import parse_level


@dataclass(frozen=True)
class Config:
    database_url: str
    log_format: str = "json"
    log_level: str = "INFO"
    partition_size: int = 20000
    program_cache_ttl_seconds: float = 1800.0
    user_group_cache_ttl_seconds: float = 3600.0
    access_cache_ttl_seconds: float = 3600.0
    access_cache_size: int = 20000
    settings_cache_ttl_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        partition_size = int(os.environ.get("HMIS_PARTITION_SIZE", "20000"))
        if partition_size <= 0:
            raise RuntimeError("HMIS_PARTITION_SIZE must be positive")

        log_level = os.environ.get("HMIS_LOG_LEVEL", "INFO")
        try:
            parse_level(log_level)
        except ValueError as exc:
            raise RuntimeError(f"HMIS_LOG_LEVEL is invalid: {exc}") from exc

        return cls(
            database_url=database_url,
            log_format=os.environ.get("HMIS_LOG_FORMAT", "json"),
            log_level=log_level,
            partition_size=partition_size,
            program_cache_ttl_seconds=float(os.environ.get("HMIS_PROGRAM_CACHE_TTL", "1800")),
            user_group_cache_ttl_seconds=float(os.environ.get("HMIS_USER_GROUP_CACHE_TTL", "3600")),
            access_cache_ttl_seconds=float(os.environ.get("HMIS_ACCESS_CACHE_TTL", "3600")),
            access_cache_size=int(os.environ.get("HMIS_ACCESS_CACHE_SIZE", "20000")),
            settings_cache_ttl_seconds=float(os.environ.get("HMIS_SETTINGS_CACHE_TTL", "60")),
        )
