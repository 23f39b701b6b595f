"""Map a set of tags to the canonical path of an artifact inside the archive.

Layout under the ``capture/`` root::

    capture/manifest.json
    capture/capture.log
    capture/capture_info.json
    capture/accounts/<account>/server_<server>__<type>.json
    capture/accounts/<account>/streams/<stream>/server_<server>__<type>.json
    capture/clusters/<cluster>/server_<server>__<type>.json
    capture/clusters/<cluster>/profiles/server_<server>__profile_<name>.prof

Streams belong to accounts, accounts span servers, and server-wide artifacts
are grouped by cluster, so the archive can be browsed with any ZIP tool. The
manifest remains the authoritative index when artifacts must be looked up by
tag rather than by path.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, List

from capture_services.archive.errors import (
    DuplicateTagError,
    InvalidTagValueError,
    MissingTagError,
    ResolutionError,
    SpecialTagError,
    UnsupportedTagError,
)
from capture_services.archive.tags import (
    NO_CLUSTER,
    ArtifactType,
    Tag,
    TagClass,
    TagLabel,
    _tag_manifest,
)

ROOT_PREFIX = "capture/"
SEPARATOR = "__"
JSON_EXTENSION = ".json"
PROFILE_EXTENSION = ".prof"

MANIFEST_PATH = ROOT_PREFIX + "manifest.json"
CAPTURE_LOG_PATH = ROOT_PREFIX + "capture.log"
METADATA_PATH = ROOT_PREFIX + "capture_info.json"

# Tags that stand alone and map straight to a fixed path.
SPECIAL_PATHS = MappingProxyType({
    _tag_manifest(): MANIFEST_PATH,
})

# Written by the writer on close, never by callers.
RESERVED_PATHS = frozenset({MANIFEST_PATH, CAPTURE_LOG_PATH, METADATA_PATH})

_FORBIDDEN_SEGMENTS = frozenset({"", ".", ".."})


def classify(tag: Tag) -> TagClass:
    """Return whether ``tag`` is a special, dimension or unsupported tag."""

    if tag in SPECIAL_PATHS:
        return TagClass.SPECIAL
    if tag.label is TagLabel.UNSUPPORTED:
        return TagClass.UNSUPPORTED
    return TagClass.DIMENSION


def _check_value(tag: Tag, tags: List[Tag]) -> str:
    value = tag.value
    if not isinstance(value, str) or value in _FORBIDDEN_SEGMENTS or "/" in value or "\\" in value:
        raise InvalidTagValueError(f"tag '{tag.name}' has a value unusable in a path: {value!r}", tags)
    return value


def resolve_path(tags: Iterable[Tag]) -> str:
    """Return the archive path for an artifact described by ``tags``.

    Raises a :class:`ResolutionError` subclass when the combination is not
    supported: special tags mixed with others, repeated dimension labels,
    unrecognised labels, a missing ``artifact_type`` or ``server`` tag, or a
    shape-specific tag missing (account/cluster for streams, profile name for
    profiles).
    """

    tags = list(tags)
    if not tags:
        raise ResolutionError("at least one tag is required", tags)

    if len(tags) == 1 and tags[0] in SPECIAL_PATHS:
        return SPECIAL_PATHS[tags[0]]

    dimensions: Dict[TagLabel, Tag] = {}
    other_tags: List[Tag] = []

    for tag in tags:
        kind = classify(tag)
        if kind is TagClass.SPECIAL:
            raise SpecialTagError(
                f"tag '{tag}' is special and should not be combined with other tags", tags
            )
        if kind is TagClass.UNSUPPORTED:
            other_tags.append(tag)
            continue
        if tag.label in dimensions:
            raise DuplicateTagError(f"multiple values not allowed for tag '{tag.name}'", tags)
        dimensions[tag.label] = tag

    if other_tags:
        names = ", ".join(str(tag) for tag in other_tags)
        raise UnsupportedTagError(f"unsupported tags: {names}", tags)

    type_tag = dimensions.get(TagLabel.ARTIFACT_TYPE)
    server_tag = dimensions.get(TagLabel.SERVER)
    if type_tag is None:
        raise MissingTagError("missing required tag for artifact type", TagLabel.ARTIFACT_TYPE.value, tags)
    if server_tag is None:
        raise MissingTagError("missing required tag for source server", TagLabel.SERVER.value, tags)

    for tag in dimensions.values():
        _check_value(tag, tags)

    account_tag = dimensions.get(TagLabel.ACCOUNT)
    cluster_tag = dimensions.get(TagLabel.CLUSTER)
    stream_tag = dimensions.get(TagLabel.STREAM)
    profile_tag = dimensions.get(TagLabel.PROFILE_NAME)

    server = server_tag.value
    artifact_type = type_tag.value
    extension = JSON_EXTENSION

    if stream_tag is not None:
        if account_tag is None or cluster_tag is None:
            missing = TagLabel.ACCOUNT if account_tag is None else TagLabel.CLUSTER
            raise MissingTagError("stream artifact is missing cluster or account tags", missing.value, tags)
        name = f"accounts/{account_tag.value}/streams/{stream_tag.value}/server_{server}{SEPARATOR}{artifact_type}"
    elif account_tag is not None:
        name = f"accounts/{account_tag.value}/server_{server}{SEPARATOR}{artifact_type}"
    elif server_tag is not None:
        cluster = cluster_tag.value if cluster_tag is not None else NO_CLUSTER
        if artifact_type == ArtifactType.PROFILE.value:
            if profile_tag is None:
                raise MissingTagError(
                    "profile artifact is missing profile name", TagLabel.PROFILE_NAME.value, tags
                )
            extension = PROFILE_EXTENSION
            name = f"clusters/{cluster}/profiles/server_{server}{SEPARATOR}profile_{profile_tag.value}"
        else:
            name = f"clusters/{cluster}/server_{server}{SEPARATOR}{artifact_type}"
    else:
        raise ResolutionError(f"unhandled tag combination: {', '.join(str(t) for t in tags)}", tags)

    return ROOT_PREFIX + name + extension


def is_profile_path(path: str) -> bool:
    return path.endswith(PROFILE_EXTENSION)
