import zipfile
from importlib import reload

import pytest
from fastapi.testclient import TestClient

from capture_services.api import server
from capture_services.archive.tags import (
    tag_account,
    tag_cluster,
    tag_health,
    tag_jetstream,
    tag_profile_name,
    tag_server,
    tag_server_profile,
)
from capture_services.archive.writer import open_archive


@pytest.fixture
def archive_file(tmp_path):
    destination = tmp_path / "capture.zip"
    with open_archive(destination, parameters={"servers": ["http://n1:8222"]}) as archive:
        archive.add({"status": "ok"}, tag_server("n1"), tag_cluster("east"), tag_health())
        archive.add({"streams": 1}, tag_server("n1"), tag_account("APP"), tag_jetstream())
        archive.add(b"heap", tag_server("n1"), tag_server_profile(), tag_profile_name("heap"))
    return destination


def _client(monkeypatch, archive_path=None, api_key=None):
    monkeypatch.delenv("CAPTURE_ARCHIVE_PATH", raising=False)
    monkeypatch.delenv("CAPTURE_API_KEY", raising=False)
    if archive_path is not None:
        monkeypatch.setenv("CAPTURE_ARCHIVE_PATH", str(archive_path))
    if api_key is not None:
        monkeypatch.setenv("CAPTURE_API_KEY", api_key)
    reload(server)
    return TestClient(server.app)


def test_health_reports_configured_archive(monkeypatch, archive_file):
    client = _client(monkeypatch, archive_file)
    response = client.get("/health", headers={"x-request-id": "req-1"})

    assert response.status_code == 200
    assert response.json()["archive"] == str(archive_file)
    assert response.headers["x-request-id"] == "req-1"


def test_manifest_info_summary_and_log(monkeypatch, archive_file):
    client = _client(monkeypatch, archive_file)

    manifest = client.get("/archive/manifest").json()
    assert [entry["path"] for entry in manifest["entries"]] == [
        "capture/clusters/east/server_n1__health.json",
        "capture/accounts/APP/server_n1__jetstream.json",
        "capture/clusters/unclustered/profiles/server_n1__profile_heap.prof",
    ]

    info = client.get("/archive/info").json()
    assert info["artifact_count"] == 3
    assert info["parameters"] == {"servers": ["http://n1:8222"]}

    summary = client.get("/archive/summary").json()
    assert summary["by_type"] == {"health": 1, "jetstream": 1, "profile": 1}

    log = client.get("/archive/log")
    assert log.headers["content-type"].startswith("text/plain")
    assert "capture finished: 3 artifacts written" in log.text


def test_search_artifacts_by_tags(monkeypatch, archive_file):
    client = _client(monkeypatch, archive_file)

    response = client.get("/archive/artifacts", params={"server": "n1", "artifact_type": "jetstream"})
    payload = response.json()
    assert payload["filters"] == {"server": "n1", "artifact_type": "jetstream"}
    assert payload["total"] == 1
    assert payload["results"][0]["path"] == "capture/accounts/APP/server_n1__jetstream.json"

    assert client.get("/archive/artifacts", params={"server": "n1"}).json()["total"] == 3
    assert client.get("/archive/artifacts", params={"account": "OTHER"}).json()["total"] == 0


def test_download_artifacts(monkeypatch, archive_file):
    client = _client(monkeypatch, archive_file)

    response = client.get("/archive/files/capture/clusters/east/server_n1__health.json")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

    profile = client.get("/archive/files/capture/clusters/unclustered/profiles/server_n1__profile_heap.prof")
    assert profile.content == b"heap"
    assert profile.headers["content-type"] == "application/octet-stream"
    assert 'filename="server_n1__profile_heap.prof"' in profile.headers["content-disposition"]

    assert client.get("/archive/files/capture/absent.json").status_code == 404


def test_missing_or_invalid_archive(monkeypatch, tmp_path):
    client = _client(monkeypatch)
    assert client.get("/archive/manifest").status_code == 404

    broken = tmp_path / "broken.zip"
    broken.write_text("not a zip")
    client = _client(monkeypatch, broken)
    assert client.get("/archive/manifest").status_code == 422


def test_api_key_is_enforced(monkeypatch, archive_file):
    client = _client(monkeypatch, archive_file, api_key="secret")

    rejected = client.get("/archive/manifest")
    assert rejected.status_code == 401
    assert rejected.json() == {"detail": "invalid api key"}

    accepted = client.get("/archive/manifest", headers={"x-api-key": "secret"})
    assert accepted.status_code == 200


def test_metrics_count_requests(monkeypatch, archive_file):
    client = _client(monkeypatch, archive_file)
    client.get("/archive/manifest")
    client.get("/archive/manifest")
    client.get("/archive/summary")

    counters = client.get("/metrics").json()["counters"]
    assert counters == {"archive.manifest": 2, "archive.summary": 1}


def test_damaged_artifact_is_unprocessable(monkeypatch, tmp_path, flip_byte):
    destination = tmp_path / "capture.zip"
    with open_archive(destination, compression=zipfile.ZIP_STORED) as archive:
        archive.add({"marker": "damaged-payload"}, tag_server("n1"), tag_health())
    flip_byte(destination, b"damaged-payload")
    client = _client(monkeypatch, destination)

    assert client.get("/archive/manifest").status_code == 200
    response = client.get("/archive/files/capture/clusters/unclustered/server_n1__health.json")
    assert response.status_code == 422
    assert "damaged" in response.json()["detail"]
