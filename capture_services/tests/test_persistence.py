import zipfile
from datetime import datetime, timedelta, timezone

from capture_services.archive.tags import tag_health, tag_server
from capture_services.archive.writer import open_archive
from capture_services.storage import persistence


def _write(path):
    with open_archive(path) as archive:
        archive.add({"status": "ok"}, tag_server("n1"), tag_health())


def test_archive_path_is_timestamped(tmp_path):
    now = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    path = persistence.archive_path(str(tmp_path), now=now)
    assert path == tmp_path / "capture_20260304T050607Z.zip"


def test_list_archives(tmp_path):
    assert persistence.list_archives(str(tmp_path / "missing")) == []

    _write(tmp_path / "capture_b.zip")
    _write(tmp_path / "capture_a.zip")
    (tmp_path / "other.zip").write_bytes(b"")

    assert persistence.list_archives(str(tmp_path)) == ["capture_a.zip", "capture_b.zip"]


def test_prune_archives_removes_only_expired(tmp_path):
    _write(tmp_path / "capture_old.zip")
    _write(tmp_path / "capture_new.zip")
    (tmp_path / "capture_broken.zip").write_text("not an archive")

    future = datetime.now(timezone.utc) + timedelta(days=10)
    assert persistence.prune_archives(str(tmp_path), 30, now=future) == []

    removed = persistence.prune_archives(str(tmp_path), 5, now=future)
    assert removed == ["capture_new.zip", "capture_old.zip"]
    assert persistence.list_archives(str(tmp_path)) == ["capture_broken.zip"]


def test_prune_missing_directory(tmp_path):
    assert persistence.prune_archives(str(tmp_path / "missing"), 1) == []


def test_prune_skips_archives_with_damaged_entries(tmp_path, flip_byte):
    damaged = tmp_path / "capture_damaged.zip"
    with open_archive(damaged, compression=zipfile.ZIP_STORED) as archive:
        archive.add({"status": "ok"}, tag_server("n1"), tag_health())
    flip_byte(damaged, b'"capture_id"')
    _write(tmp_path / "capture_old.zip")

    future = datetime.now(timezone.utc) + timedelta(days=10)
    assert persistence.prune_archives(str(tmp_path), 5, now=future) == ["capture_old.zip"]
    assert damaged.exists()
