"""Exceptions raised by the capture archive."""
from __future__ import annotations

from typing import Iterable, List, Sequence


class ArchiveError(Exception):
    """Base class for every archive failure."""


class ResolutionError(ArchiveError, ValueError):
    """A tag set cannot be mapped to a path inside the archive."""

    def __init__(self, message: str, tags: Iterable = ()):
        super().__init__(message)
        self.tags = tuple(tags)


class SpecialTagError(ResolutionError):
    pass


class DuplicateTagError(ResolutionError):
    pass


class UnsupportedTagError(ResolutionError):
    pass


class InvalidTagValueError(ResolutionError):
    pass


class MissingTagError(ResolutionError):
    def __init__(self, message: str, label: str, tags: Iterable = ()):
        super().__init__(message, tags)
        self.label = label


class DuplicatePathError(ArchiveError):
    """The resolved path was already written in this session."""

    def __init__(self, path: str, message: str | None = None):
        super().__init__(message or f"duplicate artifact path: {path}")
        self.path = path


class InvalidPathError(ArchiveError, ValueError):
    pass


class ArtifactSerializationError(ArchiveError, TypeError):
    pass


class ArchiveClosedError(ArchiveError, RuntimeError):
    """The writer was used after ``close``."""


class ArchiveIOError(ArchiveError):
    """Creating, writing or sealing the container failed."""


class FinalizeError(ArchiveIOError):
    """More than one finalization step failed."""

    def __init__(self, errors: Sequence[BaseException]):
        self.errors: List[BaseException] = list(errors)
        details = "; ".join(f"{type(err).__name__}: {err}" for err in self.errors)
        super().__init__(f"{len(self.errors)} finalization steps failed: {details}")


class ArchiveFormatError(ArchiveError):
    """A file is not a readable capture archive."""


class ArtifactNotFoundError(ArchiveError, KeyError):
    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""
