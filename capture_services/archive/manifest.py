"""Index and run metadata persisted inside every capture archive."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from capture_services.archive.tags import Tag

MANIFEST_VERSION = "1.0"


class TagRecord(BaseModel):
    name: str
    value: str

    @classmethod
    def from_tag(cls, tag: Tag) -> "TagRecord":
        return cls(name=tag.name, value=tag.value)

    def to_tag(self) -> Tag:
        return Tag(self.name, self.value)


class ManifestEntry(BaseModel):
    """One archived artifact: where it was written and the tags it was added with.

    Entries written through ``ArchiveWriter.add_artifact`` carry an empty tag
    list; they are addressable by path only.
    """

    path: str
    tags: List[TagRecord] = Field(default_factory=list)

    def tag_set(self) -> frozenset:
        return frozenset(record.to_tag() for record in self.tags)

    def matches(self, tags: Iterable[Tag]) -> bool:
        return frozenset(tags) <= self.tag_set()

    def tag_value(self, label: str) -> Optional[str]:
        label = getattr(label, "value", label)
        for record in self.tags:
            if record.name == label:
                return record.value
        return None


class Manifest(BaseModel):
    version: str = MANIFEST_VERSION
    entries: List[ManifestEntry] = Field(default_factory=list)

    def paths(self) -> List[str]:
        return [entry.path for entry in self.entries]

    def find(self, tags: Iterable[Tag]) -> List[ManifestEntry]:
        wanted = frozenset(tags)
        return [entry for entry in self.entries if entry.matches(wanted)]

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Manifest":
        return cls.model_validate_json(raw)


class CaptureInfo(BaseModel):
    """Run metadata written to ``capture/capture_info.json``."""

    capture_id: str
    tool_version: str
    hostname: str
    python_version: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    artifact_count: int = 0
    rejected_count: int = 0
    parameters: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)
