"""File-backed housekeeping for capture archives in an output directory."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

from capture_services.archive.errors import ArchiveError
from capture_services.archive.reader import ArchiveReader

logger = logging.getLogger("capture_services.storage")

ARCHIVE_PREFIX = "capture_"
ARCHIVE_SUFFIX = ".zip"


def archive_path(output_dir: str, *, now: datetime | None = None) -> Path:
    """Return the path of a new archive named after the current UTC time."""

    current = now or datetime.now(timezone.utc)
    return Path(output_dir) / f"{ARCHIVE_PREFIX}{current.strftime('%Y%m%dT%H%M%SZ')}{ARCHIVE_SUFFIX}"


def list_archives(output_dir: str) -> List[str]:
    """Return sorted file names of the archives stored in ``output_dir``."""

    directory = Path(output_dir)
    if not directory.exists():
        return []
    return sorted(path.name for path in directory.glob(f"{ARCHIVE_PREFIX}*{ARCHIVE_SUFFIX}"))


def prune_archives(output_dir: str, max_age_days: int, *, now: datetime | None = None) -> List[str]:
    """Delete archives started more than ``max_age_days`` ago and return their names."""

    directory = Path(output_dir)
    if not directory.exists():
        return []

    current = now or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=max_age_days)
    removed: List[str] = []

    for path in directory.glob(f"{ARCHIVE_PREFIX}*{ARCHIVE_SUFFIX}"):
        try:
            with ArchiveReader(path) as archive:
                info = archive.info()
        except ArchiveError as exc:
            logger.warning("not pruning unreadable archive %s: %s", path, exc)
            continue
        if info is None:
            logger.warning("not pruning archive %s without run metadata", path)
            continue

        started_at = info.started_at
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=timezone.utc)
        if started_at < cutoff:
            path.unlink(missing_ok=True)
            removed.append(path.name)

    return sorted(removed)
