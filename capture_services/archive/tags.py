"""Semantic tags describing one dimension of an archived artifact.

A tag is an immutable ``(name, value)`` pair. Callers build a small set of
tags for every artifact (which server produced it, which account or stream it
covers, what kind of artifact it is) and hand them to the archive writer,
which turns the set into a canonical path inside the capture archive.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass


NO_CLUSTER = "unclustered"


class TagLabel(str, enum.Enum):
    """Labels recognised by the archive, plus an explicit catch-all."""

    SERVER = "server"
    CLUSTER = "cluster"
    ACCOUNT = "account"
    STREAM = "stream"
    ARTIFACT_TYPE = "artifact_type"
    PROFILE_NAME = "profile_name"
    UNSUPPORTED = "unsupported"

    @classmethod
    def classify(cls, name: str) -> "TagLabel":
        try:
            return cls(name)
        except ValueError:
            return cls.UNSUPPORTED

    def __str__(self) -> str:
        return self.value


DIMENSION_LABELS = frozenset(label for label in TagLabel if label is not TagLabel.UNSUPPORTED)


class ArtifactType(str, enum.Enum):
    HEALTH = "health"
    VARIABLES = "variables"
    CONNECTIONS = "connections"
    ROUTES = "routes"
    GATEWAYS = "gateways"
    LEAFS = "leafs"
    SUBS = "subs"
    JETSTREAM = "jetstream"
    ACCOUNTS = "accounts"
    STREAM_DETAILS = "stream_details"
    PROFILE = "profile"
    # Reserved for the archive's own index, see ``archive.paths``.
    MANIFEST = "manifest"

    def __str__(self) -> str:
        return self.value


class TagClass(enum.Enum):
    DIMENSION = "dimension"
    SPECIAL = "special"
    UNSUPPORTED = "unsupported"


def _plain(value) -> str:
    if isinstance(value, enum.Enum):
        return str(value.value)
    return value


@dataclass(frozen=True)
class Tag:
    name: str
    value: str

    def __post_init__(self) -> None:
        # str-mixin enums hash by member name, so store plain strings only.
        object.__setattr__(self, "name", _plain(self.name))
        object.__setattr__(self, "value", _plain(self.value))

    @property
    def label(self) -> TagLabel:
        return TagLabel.classify(self.name)

    def as_dict(self) -> dict:
        return {"name": self.name, "value": self.value}

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


# Dimension tag constructors -------------------------------------------------
def tag_server(server_name: str) -> Tag:
    return Tag(TagLabel.SERVER, server_name)


def tag_cluster(cluster_name: str) -> Tag:
    return Tag(TagLabel.CLUSTER, cluster_name)


def tag_no_cluster() -> Tag:
    return Tag(TagLabel.CLUSTER, NO_CLUSTER)


def tag_account(account_name: str) -> Tag:
    return Tag(TagLabel.ACCOUNT, account_name)


def tag_stream(stream_name: str) -> Tag:
    return Tag(TagLabel.STREAM, stream_name)


def tag_artifact_type(artifact_type: str) -> Tag:
    return Tag(TagLabel.ARTIFACT_TYPE, artifact_type)


def tag_profile_name(profile_name: str) -> Tag:
    return Tag(TagLabel.PROFILE_NAME, profile_name)


# Artifact type shortcuts ----------------------------------------------------
def tag_health() -> Tag:
    return tag_artifact_type(ArtifactType.HEALTH)


def tag_server_vars() -> Tag:
    return tag_artifact_type(ArtifactType.VARIABLES)


def tag_connections() -> Tag:
    return tag_artifact_type(ArtifactType.CONNECTIONS)


def tag_routes() -> Tag:
    return tag_artifact_type(ArtifactType.ROUTES)


def tag_gateways() -> Tag:
    return tag_artifact_type(ArtifactType.GATEWAYS)


def tag_leafs() -> Tag:
    return tag_artifact_type(ArtifactType.LEAFS)


def tag_subs() -> Tag:
    return tag_artifact_type(ArtifactType.SUBS)


def tag_jetstream() -> Tag:
    return tag_artifact_type(ArtifactType.JETSTREAM)


def tag_accounts() -> Tag:
    return tag_artifact_type(ArtifactType.ACCOUNTS)


def tag_stream_details() -> Tag:
    return tag_artifact_type(ArtifactType.STREAM_DETAILS)


def tag_server_profile() -> Tag:
    return tag_artifact_type(ArtifactType.PROFILE)


def _tag_manifest() -> Tag:
    return tag_artifact_type(ArtifactType.MANIFEST)
