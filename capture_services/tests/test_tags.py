from dataclasses import FrozenInstanceError

import pytest

from capture_services.archive.tags import (
    DIMENSION_LABELS,
    NO_CLUSTER,
    ArtifactType,
    Tag,
    TagLabel,
    tag_account,
    tag_accounts,
    tag_artifact_type,
    tag_cluster,
    tag_connections,
    tag_gateways,
    tag_health,
    tag_jetstream,
    tag_leafs,
    tag_no_cluster,
    tag_profile_name,
    tag_routes,
    tag_server,
    tag_server_profile,
    tag_server_vars,
    tag_stream,
    tag_stream_details,
    tag_subs,
)


def test_dimension_constructors_use_recognised_labels():
    assert tag_server("n1") == Tag("server", "n1")
    assert tag_cluster("east") == Tag("cluster", "east")
    assert tag_account("APP") == Tag("account", "APP")
    assert tag_stream("ORDERS") == Tag("stream", "ORDERS")
    assert tag_artifact_type("custom") == Tag("artifact_type", "custom")
    assert tag_profile_name("heap") == Tag("profile_name", "heap")
    assert tag_no_cluster() == Tag("cluster", NO_CLUSTER)
    assert NO_CLUSTER == "unclustered"


def test_artifact_type_shortcuts():
    expected = {
        tag_health(): "health",
        tag_server_vars(): "variables",
        tag_connections(): "connections",
        tag_routes(): "routes",
        tag_gateways(): "gateways",
        tag_leafs(): "leafs",
        tag_subs(): "subs",
        tag_jetstream(): "jetstream",
        tag_accounts(): "accounts",
        tag_stream_details(): "stream_details",
        tag_server_profile(): "profile",
    }
    for tag, value in expected.items():
        assert tag.name == "artifact_type"
        assert tag.value == value


def test_enum_members_are_stored_as_plain_strings():
    tag = Tag(TagLabel.ARTIFACT_TYPE, ArtifactType.HEALTH)

    assert type(tag.name) is str
    assert type(tag.value) is str
    assert tag == Tag("artifact_type", "health")
    assert hash(tag) == hash(Tag("artifact_type", "health"))
    assert {tag: 1}[Tag("artifact_type", "health")] == 1


def test_tags_are_immutable():
    tag = tag_server("n1")
    with pytest.raises(FrozenInstanceError):
        tag.value = "n2"


def test_label_classification():
    assert tag_server("n1").label is TagLabel.SERVER
    assert Tag("region", "eu").label is TagLabel.UNSUPPORTED
    assert TagLabel.classify("profile_name") is TagLabel.PROFILE_NAME
    assert TagLabel.UNSUPPORTED not in DIMENSION_LABELS
    assert len(DIMENSION_LABELS) == 6


def test_string_forms():
    assert str(tag_server("n1")) == "server=n1"
    assert tag_server("n1").as_dict() == {"name": "server", "value": "n1"}
    assert str(TagLabel.STREAM) == "stream"
