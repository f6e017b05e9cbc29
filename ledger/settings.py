"""
Environment-driven configuration.

Values come from environment variables with the same defaults the MinIO
development server uses. Invalid values fail at startup with a Pydantic
ValidationError.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, field_validator

from ledger.domain import WriteMode

ENVIRONMENT_VARIABLES = {
    "minio_endpoint": "MINIO_ENDPOINT",
    "minio_access_key": "MINIO_ROOT_USER",
    "minio_secret_key": "MINIO_ROOT_PASSWORD",
    "minio_secure": "MINIO_SECURE",
    "bucket_name": "LEDGER_BUCKET_NAME",
    "refresh_interval": "LEDGER_REFRESH_INTERVAL",
    "page_size": "LEDGER_PAGE_SIZE",
    "deleted_page_size": "LEDGER_DELETED_PAGE_SIZE",
    "write_mode": "LEDGER_WRITE_MODE",
    "max_write_attempts": "LEDGER_MAX_WRITE_ATTEMPTS",
    "catalog_path": "LEDGER_CATALOG_PATH",
    "log_level": "LEDGER_LOG_LEVEL",
}


class LedgerSettings(BaseModel):
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_secure: bool = False
    bucket_name: str = "order-ledger"
    refresh_interval: float = 5.0
    page_size: int = 15
    deleted_page_size: int = 20
    write_mode: WriteMode = WriteMode.CONDITIONAL
    max_write_attempts: int = 3
    catalog_path: Optional[str] = None
    log_level: str = "INFO"

    @field_validator("refresh_interval")
    @classmethod
    def refresh_interval_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Refresh interval must be positive")
        return v

    @field_validator("page_size", "deleted_page_size", "max_write_attempts")
    @classmethod
    def must_be_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides: object
    ) -> "LedgerSettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            overrides: Field values that win over the environment; None
                values are ignored so unset command line options fall
                through
        """
        environ = os.environ if environ is None else environ
        values = {
            field: environ[variable]
            for field, variable in ENVIRONMENT_VARIABLES.items()
            if environ.get(variable)
        }
        values.update(
            {key: value for key, value in overrides.items() if value is not None}
        )
        return cls.model_validate(values)
