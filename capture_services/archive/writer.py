"""Write-once capture archive.

An :class:`ArchiveWriter` owns one ZIP container for the duration of a capture
session. Artifacts are added with a set of tags, which decide where in the
archive they land; every successful add is recorded in the manifest. Closing
the writer stores the manifest, the capture log and the run metadata at fixed
paths and seals the container.

Example::

    with open_archive("captures/run.zip", parameters={"servers": urls}) as archive:
        archive.add(varz, tag_server("n1"), tag_cluster("east"), tag_server_vars())
        archive.add(profile_bytes, tag_server("n1"), tag_server_profile(), tag_profile_name("heap"))

``add`` may be called from many threads at once. ``close`` must only be
called once every ``add`` has returned.
"""
from __future__ import annotations

import dataclasses
import enum
import json
import logging
import platform
import socket
import threading
import uuid
import zipfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from pydantic import BaseModel

from capture_services.archive.capture_log import CaptureLog
from capture_services.archive.errors import (
    ArchiveClosedError,
    ArchiveError,
    ArchiveIOError,
    ArtifactSerializationError,
    DuplicatePathError,
    FinalizeError,
    InvalidPathError,
    ResolutionError,
)
from capture_services.archive.manifest import CaptureInfo, Manifest, ManifestEntry, TagRecord
from capture_services.archive.paths import (
    CAPTURE_LOG_PATH,
    MANIFEST_PATH,
    METADATA_PATH,
    RESERVED_PATHS,
    is_profile_path,
    resolve_path,
)
from capture_services.archive.tags import Tag
from capture_services.config import TOOL_VERSION

logger = logging.getLogger("capture_services.archive")

_WRITE_ERRORS = (OSError, zipfile.LargeZipFile)
_FINALIZE_ERRORS = (OSError, ValueError, zipfile.BadZipFile, zipfile.LargeZipFile)
_BYTES_TYPES = (bytes, bytearray, memoryview)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


def _dump_json(payload: Any) -> str:
    options = dict(indent=2, ensure_ascii=False, default=_json_default)
    try:
        return json.dumps(payload, sort_keys=True, **options)
    except TypeError:
        # Mappings with mixed key types cannot be sorted.
        return json.dumps(payload, **options)


def serialize_artifact(payload: Any, path: str) -> bytes:
    """Return the bytes stored for ``payload`` at ``path``.

    Byte payloads are stored as-is; profiles must be bytes. Anything else is
    rendered as indented UTF-8 JSON.
    """

    if isinstance(payload, _BYTES_TYPES):
        return bytes(payload)
    if is_profile_path(path):
        raise ArtifactSerializationError(
            f"profile artifact {path} must be raw bytes, got {type(payload).__name__}"
        )
    try:
        text = _dump_json(payload)
    except (TypeError, ValueError) as exc:
        raise ArtifactSerializationError(f"cannot serialize artifact for {path}: {exc}") from exc
    return text.encode("utf-8")


def _check_raw_path(path: str) -> str:
    if not isinstance(path, str) or not path:
        raise InvalidPathError(f"artifact path must be a non-empty string, got {path!r}")
    if path.startswith("/") or "\\" in path:
        raise InvalidPathError(f"artifact path must be relative and use '/' separators: {path!r}")
    if any(part in {"", ".", ".."} for part in path.split("/")):
        raise InvalidPathError(f"artifact path has an empty or relative segment: {path!r}")
    return path


class ArchiveWriter:
    """Collision-free, indexed writer for one capture session.

    Args:
        destination: Path of the ZIP file to create. Missing parent
            directories are created.
        overwrite: Replace an existing file at ``destination``. By default an
            existing file is never touched and opening fails.
        parameters: Run parameters recorded in ``capture_info.json``.
        compression: ``zipfile`` compression constant.

    Raises:
        ArchiveIOError: If the container cannot be created.
    """

    def __init__(
        self,
        destination: Union[str, Path],
        *,
        overwrite: bool = False,
        parameters: Optional[Dict[str, Any]] = None,
        compression: int = zipfile.ZIP_DEFLATED,
    ):
        self._path = Path(destination)
        self._lock = threading.Lock()
        self._entries: List[ManifestEntry] = []
        self._written: set[str] = set()
        self._closed = False
        self._failure: Optional[BaseException] = None
        self._rejected = 0
        self._captured_loggers = 0
        self._parameters: Dict[str, Any] = dict(parameters or {})
        self._capture_id = str(uuid.uuid4())
        self._started_at = datetime.now(timezone.utc)
        self._capture_log = CaptureLog()

        mode = "w" if overwrite else "x"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArchiveIOError(f"cannot create directory for archive {self._path}: {exc}") from exc
        try:
            self._zip = zipfile.ZipFile(self._path, mode, compression=compression)
        except FileExistsError as exc:
            raise ArchiveIOError(
                f"archive already exists: {self._path} (pass overwrite=True to replace it)"
            ) from exc
        except OSError as exc:
            raise ArchiveIOError(f"cannot create archive {self._path}: {exc}") from exc

        self._capture_log.note(logging.INFO, "capture %s started, writing %s", self._capture_id, self._path)
        logger.info("opened capture archive %s", self._path)

    # Properties -----------------------------------------------------------
    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def capture_id(self) -> str:
        return self._capture_id

    @property
    def artifact_count(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def rejected_count(self) -> int:
        with self._lock:
            return self._rejected

    @property
    def manifest(self) -> Manifest:
        """Snapshot of the manifest built so far."""

        with self._lock:
            return Manifest(entries=[entry.model_copy(deep=True) for entry in self._entries])

    # Ingestion ------------------------------------------------------------
    def add(self, payload: Any, *tags: Tag) -> str:
        """Serialize ``payload`` and store it at the path resolved from ``tags``.

        Returns the archive path written. A failed add leaves the session
        usable; the same path can never be written twice.

        Raises:
            ResolutionError: The tag set does not map to a path.
            ArtifactSerializationError: The payload cannot be serialized.
            DuplicatePathError: The path was already written in this session.
            ArchiveClosedError: The writer is closed.
            ArchiveIOError: The container could not be written.
        """

        self._ensure_open()
        try:
            path = resolve_path(tags)
            data = serialize_artifact(payload, path)
        except (ResolutionError, ArtifactSerializationError) as exc:
            self._reject(exc)
            raise
        self._store(path, data, tags)
        return path

    def add_artifact(self, path: str, data: bytes) -> str:
        """Store raw ``data`` at an explicit ``path``, bypassing tag resolution.

        The manifest records the entry with an empty tag set.
        """

        self._ensure_open()
        try:
            path = _check_raw_path(path)
            if not isinstance(data, _BYTES_TYPES):
                raise ArtifactSerializationError(
                    f"raw artifact {path} must be bytes, got {type(data).__name__}"
                )
        except (InvalidPathError, ArtifactSerializationError) as exc:
            self._reject(exc)
            raise
        self._store(path, bytes(data), ())
        return path

    def log_event(self, message: str, *args: Any, level: int = logging.INFO) -> None:
        """Record a session event in the capture log."""

        self._capture_log.note(level, message, *args)
        logger.log(level, message, *args)

    def set_parameters(self, **parameters: Any) -> None:
        with self._lock:
            self._parameters.update(parameters)

    @contextmanager
    def capture_logs(self, logger_name: str = "capture_services") -> Iterator[CaptureLog]:
        """Copy records of ``logger_name`` into the capture log while active.

        The captured logger is expected to report rejected artifacts with its
        own context, so the writer's rejection notes drop to DEBUG meanwhile.
        """

        target = logging.getLogger(logger_name)
        target.addHandler(self._capture_log)
        with self._lock:
            self._captured_loggers += 1
        try:
            yield self._capture_log
        finally:
            with self._lock:
                self._captured_loggers -= 1
            target.removeHandler(self._capture_log)

    # Finalization ---------------------------------------------------------
    def close(self) -> None:
        """Write the manifest, capture log and metadata, then seal the archive.

        Every step is attempted even when an earlier one fails, and the
        container is always released. A single failure is raised as
        :class:`ArchiveIOError`, several as :class:`FinalizeError`.

        Raises:
            ArchiveClosedError: ``close`` was already called.
        """

        with self._lock:
            if self._closed:
                raise ArchiveClosedError(f"archive {self._path} is already closed")
            self._closed = True
            entries = list(self._entries)
            rejected = self._rejected
            parameters = dict(self._parameters)

        errors: List[BaseException] = []
        if self._failure is not None:
            errors.append(self._failure)

        finished_at = datetime.now(timezone.utc)
        self._capture_log.note(
            logging.INFO, "capture finished: %d artifacts written, %d rejected", len(entries), rejected
        )

        steps = (
            (MANIFEST_PATH, lambda: Manifest(entries=entries).to_json().encode("utf-8")),
            (CAPTURE_LOG_PATH, lambda: self._capture_log.text().encode("utf-8")),
            (METADATA_PATH, lambda: self._capture_info(finished_at, len(entries), rejected, parameters)),
        )
        try:
            for name, render in steps:
                try:
                    self._zip.writestr(name, render())
                except _FINALIZE_ERRORS as exc:
                    logger.error("failed to write %s to %s: %s", name, self._path, exc)
                    errors.append(exc)
        finally:
            try:
                self._zip.close()
            except _FINALIZE_ERRORS as exc:
                logger.error("failed to seal %s: %s", self._path, exc)
                errors.append(exc)

        if not errors:
            logger.info("sealed capture archive %s (%d artifacts)", self._path, len(entries))
            return
        if len(errors) == 1:
            raise ArchiveIOError(f"failed to finalize archive {self._path}: {errors[0]}") from errors[0]
        raise FinalizeError(errors) from errors[0]

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._closed:
            return False
        if exc_type is None:
            self.close()
            return False
        try:
            self.close()
        except ArchiveError:
            logger.exception("failed to finalize archive %s after an error", self._path)
        return False

    # Internal helpers -----------------------------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise ArchiveClosedError(f"cannot add artifacts to closed archive {self._path}")

    def _rejection_level(self) -> int:
        return logging.DEBUG if self._captured_loggers else logging.WARNING

    def _reject(self, exc: BaseException) -> None:
        with self._lock:
            self._rejected += 1
            level = self._rejection_level()
        self._capture_log.note(level, "rejected artifact: %s", exc)

    def _store(self, path: str, data: bytes, tags: Sequence[Tag]) -> None:
        with self._lock:
            if self._closed:
                raise ArchiveClosedError(f"cannot add artifacts to closed archive {self._path}")
            if self._failure is not None:
                raise ArchiveIOError(
                    f"archive {self._path} is unusable after an earlier write failure"
                ) from self._failure
            if path in RESERVED_PATHS or path in self._written:
                self._rejected += 1
                error = DuplicatePathError(path)
                if path in RESERVED_PATHS:
                    error = DuplicatePathError(path, f"path is reserved for the archive index: {path}")
                self._capture_log.note(self._rejection_level(), "rejected artifact: %s", error)
                raise error
            try:
                self._zip.writestr(path, data)
            except _WRITE_ERRORS as exc:
                self._failure = exc
                raise ArchiveIOError(f"failed to write {path} to {self._path}: {exc}") from exc
            self._written.add(path)
            self._entries.append(ManifestEntry(path=path, tags=[TagRecord.from_tag(tag) for tag in tags]))
        logger.debug("archived %s (%d bytes)", path, len(data))

    def _capture_info(self, finished_at: datetime, count: int, rejected: int, parameters: Dict[str, Any]) -> bytes:
        info = CaptureInfo(
            capture_id=self._capture_id,
            tool_version=TOOL_VERSION,
            hostname=socket.gethostname(),
            python_version=platform.python_version(),
            started_at=self._started_at,
            finished_at=finished_at,
            artifact_count=count,
            rejected_count=rejected,
            parameters=parameters,
        )
        return info.to_json().encode("utf-8")


def open_archive(destination: Union[str, Path], **kwargs: Any) -> ArchiveWriter:
    """Create a new capture archive at ``destination``; see :class:`ArchiveWriter`."""

    return ArchiveWriter(destination, **kwargs)
