import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor

from capture_services.archive.errors import DuplicatePathError
from capture_services.archive.manifest import Manifest
from capture_services.archive.paths import MANIFEST_PATH
from capture_services.archive.tags import tag_cluster, tag_health, tag_server
from capture_services.archive.writer import open_archive


def test_concurrent_adds_to_distinct_paths_all_succeed(tmp_path):
    destination = tmp_path / "capture.zip"
    servers = [f"n{index}" for index in range(64)]

    with open_archive(destination) as archive:
        with ThreadPoolExecutor(max_workers=16) as pool:
            paths = list(pool.map(lambda name: archive.add({"server": name}, tag_server(name), tag_health()), servers))

    assert len(set(paths)) == len(servers)
    with zipfile.ZipFile(destination) as zf:
        manifest = Manifest.from_json(zf.read(MANIFEST_PATH))
        names = set(zf.namelist())

    assert sorted(manifest.paths()) == sorted(paths)
    assert set(paths) <= names


def test_concurrent_adds_to_the_same_path_succeed_once(tmp_path):
    destination = tmp_path / "capture.zip"
    start = threading.Barrier(12)
    outcomes = []
    outcomes_lock = threading.Lock()

    def attempt(worker):
        start.wait()
        try:
            archive.add({"worker": worker}, tag_server("n1"), tag_cluster("east"), tag_health())
        except DuplicatePathError:
            result = "duplicate"
        else:
            result = "written"
        with outcomes_lock:
            outcomes.append(result)

    with open_archive(destination) as archive:
        threads = [threading.Thread(target=attempt, args=(worker,)) for worker in range(12)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert archive.rejected_count == 11

    assert outcomes.count("written") == 1
    assert outcomes.count("duplicate") == 11

    with zipfile.ZipFile(destination) as zf:
        entries = [info for info in zf.infolist() if info.filename == "capture/clusters/east/server_n1__health.json"]
        manifest = Manifest.from_json(zf.read(MANIFEST_PATH))
    assert len(entries) == 1
    assert manifest.paths() == ["capture/clusters/east/server_n1__health.json"]
