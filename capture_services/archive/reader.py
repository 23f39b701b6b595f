"""Read access to sealed capture archives."""
from __future__ import annotations

import json
import zipfile
import zlib
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from capture_services.archive.errors import ArchiveFormatError, ArtifactNotFoundError
from capture_services.archive.manifest import CaptureInfo, Manifest, ManifestEntry
from capture_services.archive.paths import CAPTURE_LOG_PATH, MANIFEST_PATH, METADATA_PATH, resolve_path
from capture_services.archive.tags import Tag, TagLabel

# Damaged entries surface as any of these while inflating or checking CRCs.
_CORRUPTION_ERRORS = (zipfile.BadZipFile, zlib.error, OSError, EOFError)


class ArchiveReader:
    """Open a capture archive produced by ``ArchiveWriter`` for inspection.

    Usage:
        with ArchiveReader("captures/run.zip") as archive:
            for entry in archive.find(tag_server("n1")):
                print(entry.path, archive.load_json(entry.path))
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if not self.path.exists():
            raise ArchiveFormatError(f"archive not found: {self.path}")
        if not zipfile.is_zipfile(self.path):
            raise ArchiveFormatError(f"not a zip file: {self.path}")

        try:
            self._zip = zipfile.ZipFile(self.path, "r")
        except _CORRUPTION_ERRORS as exc:
            raise ArchiveFormatError(f"cannot open archive {self.path}: {exc}") from exc
        try:
            raw = self._read_entry(MANIFEST_PATH)
        except KeyError as exc:
            self._zip.close()
            raise ArchiveFormatError(f"archive {self.path} has no manifest") from exc
        except ArchiveFormatError:
            self._zip.close()
            raise
        try:
            self.manifest = Manifest.from_json(raw)
        except ValidationError as exc:
            self._zip.close()
            raise ArchiveFormatError(f"archive {self.path} has a malformed manifest: {exc}") from exc

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _read_entry(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except _CORRUPTION_ERRORS as exc:
            raise ArchiveFormatError(f"entry {name} of {self.path} is damaged: {exc}") from exc

    def names(self) -> List[str]:
        """Every file stored in the container, including the fixed entries."""

        return self._zip.namelist()

    def read(self, path: str) -> bytes:
        try:
            return self._read_entry(path)
        except KeyError as exc:
            raise ArtifactNotFoundError(f"artifact not found: {path}") from exc

    def load_json(self, path: str) -> Any:
        try:
            return json.loads(self.read(path).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ArchiveFormatError(f"artifact {path} is not JSON: {exc}") from exc

    def info(self) -> Optional[CaptureInfo]:
        try:
            raw = self._read_entry(METADATA_PATH)
        except KeyError:
            return None
        try:
            return CaptureInfo.model_validate_json(raw)
        except ValidationError as exc:
            raise ArchiveFormatError(f"archive {self.path} has malformed run metadata: {exc}") from exc

    def capture_log(self) -> str:
        try:
            raw = self._read_entry(CAPTURE_LOG_PATH)
        except KeyError:
            return ""
        return raw.decode("utf-8", errors="replace")

    def find(self, *tags: Tag) -> List[ManifestEntry]:
        """Manifest entries whose tag set contains all of ``tags``."""

        return self.manifest.find(tags)

    def artifact(self, *tags: Tag) -> bytes:
        """Read the artifact stored for exactly this tag set."""

        return self.read(resolve_path(tags))

    def summary(self) -> Dict[str, Any]:
        by_label: Dict[str, Counter] = {
            label.value: Counter()
            for label in (TagLabel.ARTIFACT_TYPE, TagLabel.SERVER, TagLabel.CLUSTER, TagLabel.ACCOUNT)
        }
        untagged = 0
        for entry in self.manifest.entries:
            if not entry.tags:
                untagged += 1
                continue
            for label, counter in by_label.items():
                value = entry.tag_value(label)
                if value is not None:
                    counter[value] += 1

        info = self.info()
        return {
            "path": str(self.path),
            "artifacts": len(self.manifest.entries),
            "untagged": untagged,
            "capture_id": info.capture_id if info else None,
            "started_at": info.started_at.isoformat() if info else None,
            "finished_at": info.finished_at.isoformat() if info and info.finished_at else None,
            "by_type": dict(sorted(by_label[TagLabel.ARTIFACT_TYPE.value].items())),
            "by_server": dict(sorted(by_label[TagLabel.SERVER.value].items())),
            "by_cluster": dict(sorted(by_label[TagLabel.CLUSTER.value].items())),
            "by_account": dict(sorted(by_label[TagLabel.ACCOUNT.value].items())),
        }
