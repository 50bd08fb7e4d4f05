from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

"""Config dataclasses for the FMECA staging engine.

Populated by fmeca_staging.config.loader from YAML; environment variables take
precedence over the database section at connection time.
"""

DEFAULT_KEY_FIELDS = ["Asset Type", "Component", "FLOC"]
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection fallback configuration.

    Used when environment variables are not set.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class StagingConfig:
    """Root configuration object."""
    key_fields: list[str] = field(default_factory=lambda: list(DEFAULT_KEY_FIELDS))  # RowKey 構成列
    new_column_policy: str = "extend"  # extend | reject
    error_log_directory: Path = Path("./logs")
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
