"""Lightweight smoke test harness for the capture archive.

Writes a synthetic archive covering every path layout (cluster, profile,
account and stream artifacts plus a raw entry), then reopens it to validate
the manifest, the capture log and the run metadata without contacting any
server.
"""
from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Dict, Tuple

from capture_services.archive.paths import CAPTURE_LOG_PATH, MANIFEST_PATH, METADATA_PATH
from capture_services.archive.reader import ArchiveReader
from capture_services.archive.tags import (
    tag_account,
    tag_cluster,
    tag_health,
    tag_jetstream,
    tag_profile_name,
    tag_server,
    tag_server_profile,
    tag_server_vars,
    tag_stream,
    tag_stream_details,
)
from capture_services.archive.writer import open_archive


def _write_sample(destination: Path) -> int:
    with open_archive(destination, overwrite=True, parameters={"tool": "smoke"}) as archive:
        archive.add({"server_name": "smoke-1"}, tag_server("smoke-1"), tag_server_vars())
        archive.add({"status": "ok"}, tag_server("smoke-1"), tag_cluster("smoke"), tag_health())
        archive.add(b"\x00smoke-profile", tag_server("smoke-1"), tag_server_profile(), tag_profile_name("heap"))
        archive.add({"streams": 1}, tag_server("smoke-1"), tag_account("APP"), tag_jetstream())
        archive.add(
            {"name": "ORDERS"},
            tag_server("smoke-1"),
            tag_cluster("smoke"),
            tag_account("APP"),
            tag_stream("ORDERS"),
            tag_stream_details(),
        )
        archive.add_artifact("capture/notes/smoke.txt", b"raw entry\n")
        return archive.artifact_count


def run_smoke(output_dir: str | None = None) -> Tuple[str, Dict[str, object]]:
    """Write and reread a sample archive and return a human-friendly summary."""

    with tempfile.TemporaryDirectory() as default_dir:
        destination = Path(output_dir or default_dir) / "smoke.zip"
        written = _write_sample(destination)

        with ArchiveReader(destination) as archive:
            names = archive.names()
            missing = [name for name in (MANIFEST_PATH, CAPTURE_LOG_PATH, METADATA_PATH) if name not in names]
            info = archive.info()
            report = {
                "archive": str(destination),
                "written": written,
                "manifest_entries": len(archive.manifest.entries),
                "paths": archive.manifest.paths(),
                "missing": missing,
                "artifact_count": info.artifact_count if info else None,
                "summary": archive.summary(),
            }

        healthy = not missing and report["manifest_entries"] == written == report["artifact_count"]
        return ("ok" if healthy else "failed"), report


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Write and verify a sample capture archive")
    parser.add_argument("--output-dir", dest="output_dir", default=None, help="Directory to keep the sample archive in")

    args = parser.parse_args()
    status, report = run_smoke(output_dir=args.output_dir)
    print(json.dumps({"status": status, "report": report}, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
