"""Environment-driven settings for tablespine.

``TableSpineSettings`` collects the knobs an application sets once at process
start: log configuration, the relationship fan-out width, read consistency and
the DynamoDB connection parameters.

Examples:
    >>> from tablespine.core.settings import TableSpineSettings
    >>> settings = TableSpineSettings(fanout_max_concurrency=8)
    >>> settings.fanout_max_concurrency
    8

Environment variables use the ``TABLESPINE_`` prefix
(``TABLESPINE_LOG_LEVEL=DEBUG``, ``TABLESPINE_FANOUT_MAX_CONCURRENCY=16``).

Tags:
    settings, configuration, pydantic, environment, tablespine
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TableSpineSettings(BaseSettings):
    """Settings shared by the repository and the store adapters.

    Fields
    ──────
    log_level              : Structlog log level
    json_logs              : JSON output (None = auto-detect from tty)
    service_name           : ``service.name`` stamped on log events
    fanout_max_concurrency : Cap on concurrent relationship point-reads
                             (None = unbounded)
    consistent_reads       : Default read consistency for point reads / queries
    aws_region             : Region for the DynamoDB client
    dynamodb_endpoint_url  : Override endpoint (DynamoDB Local, LocalStack)
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLESPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    service_name: str = "tablespine"

    # ── Read path ────────────────────────────────────────────────
    fanout_max_concurrency: int | None = Field(
        default=None,
        description="Maximum concurrent point-reads per resolution call",
    )
    consistent_reads: bool = False

    # ── DynamoDB ─────────────────────────────────────────────────
    aws_region: str | None = None
    dynamodb_endpoint_url: str | None = None

    @field_validator("fanout_max_concurrency")
    @classmethod
    def _positive_fanout(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("fanout_max_concurrency must be >= 1 or unset")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> TableSpineSettings:
    """Cached settings, loaded once per process."""
    return TableSpineSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    get_settings.cache_clear()


__all__ = ["TableSpineSettings", "get_settings", "clear_settings_cache"]
