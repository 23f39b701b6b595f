"""Configuration helpers for the capture tooling.

The settings default to values that work for a local capture run but can be
overridden via environment variables, so the gather command and the archive
inspection service behave the same in scripts and in deployment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

TOOL_VERSION = "0.3.0"


@dataclass
class CaptureSettings:
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "info"
    api_key: str | None = None
    request_id_header: str = "x-request-id"
    archive_path: str | None = None
    output_dir: str = "captures"
    archive_retention_days: int | None = 30
    request_timeout: float = 5.0
    max_workers: int = 8
    overwrite: bool = False

    @classmethod
    def from_env(cls) -> "CaptureSettings":
        """Load settings from environment variables with safe defaults."""

        def as_bool(value: str, default: bool) -> bool:
            truthy = {"1", "true", "t", "yes", "y"}
            falsy = {"0", "false", "f", "no", "n"}
            if value.lower() in truthy:
                return True
            if value.lower() in falsy:
                return False
            return default

        def as_int(value: str | None, default: int | None) -> int | None:
            if value is None:
                return default
            if value.lower() in {"none", "", "-1"}:
                return None
            return int(value)

        return cls(
            host=os.getenv("CAPTURE_HOST", cls.host),
            port=int(os.getenv("CAPTURE_PORT", cls.port)),
            reload=as_bool(os.getenv("CAPTURE_RELOAD", str(cls.reload)), cls.reload),
            log_level=os.getenv("CAPTURE_LOG_LEVEL", cls.log_level),
            api_key=os.getenv("CAPTURE_API_KEY") or None,
            request_id_header=os.getenv("CAPTURE_REQUEST_ID_HEADER", cls.request_id_header),
            archive_path=os.getenv("CAPTURE_ARCHIVE_PATH") or None,
            output_dir=os.getenv("CAPTURE_OUTPUT_DIR", cls.output_dir),
            archive_retention_days=as_int(
                os.getenv("CAPTURE_ARCHIVE_RETENTION_DAYS"), cls.archive_retention_days
            ),
            request_timeout=float(os.getenv("CAPTURE_REQUEST_TIMEOUT", cls.request_timeout)),
            max_workers=int(os.getenv("CAPTURE_MAX_WORKERS", cls.max_workers)),
            overwrite=as_bool(os.getenv("CAPTURE_OVERWRITE", str(cls.overwrite)), cls.overwrite),
        )


def configure_logging(level: str) -> None:
    """Apply a simple logging configuration for the tooling."""

    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
