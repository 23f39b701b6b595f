"""Command line entry point for the capture tooling.

Examples:
    python -m capture_services gather http://n1:8222 http://n2:8222 --profile heap
    python -m capture_services analyze captures/capture_20260101T000000Z.zip
    CAPTURE_PORT=8080 python -m capture_services serve captures/capture_20260101T000000Z.zip
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from capture_services.archive.errors import ArchiveError
from capture_services.archive.reader import ArchiveReader
from capture_services.archive.writer import open_archive
from capture_services.client import MonitoringClient
from capture_services.config import TOOL_VERSION, CaptureSettings, configure_logging
from capture_services.gather.collector import Gatherer
from capture_services.storage import persistence

logger = logging.getLogger("capture_services.cli")


def _build_parser(settings: CaptureSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="capture-services", description="Capture server diagnostics into a portable archive")
    parser.add_argument("--version", action="version", version=f"%(prog)s {TOOL_VERSION}")
    parser.add_argument("--log-level", dest="log_level", default=settings.log_level, help="Logging level (default: %(default)s)")
    commands = parser.add_subparsers(dest="command", required=True)

    gather = commands.add_parser("gather", help="Poll monitoring endpoints and write a capture archive")
    gather.add_argument("servers", nargs="+", help="Monitoring base URLs, e.g. http://localhost:8222")
    gather.add_argument("--output", default=None, help=f"Archive path (default: timestamped file in {settings.output_dir})")
    gather.add_argument("--profile", dest="profiles", action="append", default=[], help="Profile to fetch from /debug/pprof (repeatable)")
    gather.add_argument("--no-accounts", dest="include_accounts", action="store_false", help="Skip per-account and per-stream artifacts")
    gather.add_argument("--timeout", type=float, default=settings.request_timeout, help="HTTP timeout in seconds")
    gather.add_argument("--workers", type=int, default=settings.max_workers, help="Servers polled in parallel")
    gather.add_argument("--overwrite", action="store_true", default=settings.overwrite, help="Replace an existing archive at --output")

    analyze = commands.add_parser("analyze", help="Summarize an existing capture archive")
    analyze.add_argument("archive", help="Path of the archive to inspect")
    analyze.add_argument("--json", dest="as_json", action="store_true", help="Print the summary as JSON")

    serve = commands.add_parser("serve", help="Serve an archive over HTTP for inspection")
    serve.add_argument("archive", help="Path of the archive to serve")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)
    return parser


def run_gather(args: argparse.Namespace, settings: CaptureSettings) -> int:
    destination = args.output or persistence.archive_path(settings.output_dir)
    clients = [MonitoringClient(url, timeout=args.timeout) for url in args.servers]

    with open_archive(destination, overwrite=args.overwrite, parameters={"tool": "gather"}) as archive:
        report = Gatherer(
            clients,
            archive,
            include_accounts=args.include_accounts,
            profiles=args.profiles,
            max_workers=args.workers,
        ).run()

    print(f"Wrote {report.artifacts} artifacts from {len(report.servers)} servers to {destination}")
    if report.skipped:
        print(f"Skipped {len(report.skipped)} artifacts, see capture/capture.log in the archive")

    if args.output is None and settings.archive_retention_days is not None:
        removed = persistence.prune_archives(settings.output_dir, settings.archive_retention_days)
        if removed:
            logger.info("pruned %d archives older than %d days", len(removed), settings.archive_retention_days)

    return 0 if report.servers else 1


def run_analyze(args: argparse.Namespace) -> int:
    with ArchiveReader(args.archive) as archive:
        summary = archive.summary()

    if args.as_json:
        print(json.dumps(summary, indent=2, sort_keys=True))
        return 0

    print(f"Archive: {summary['path']}")
    print(f"Capture: {summary['capture_id']} ({summary['started_at']} -> {summary['finished_at']})")
    print(f"Artifacts: {summary['artifacts']} ({summary['untagged']} untagged)")
    for section in ("by_type", "by_cluster", "by_server", "by_account"):
        if summary[section]:
            print(f"{section.replace('_', ' ').capitalize()}:")
            for name, count in summary[section].items():
                print(f"  {name}: {count}")
    return 0


def run_serve(args: argparse.Namespace, settings: CaptureSettings) -> int:
    import uvicorn
    from uvicorn.config import Config

    from capture_services.api import server

    server.settings.archive_path = args.archive
    config = Config(
        app=server.app,
        host=args.host,
        port=args.port,
        log_level=settings.log_level,
    )
    uvicorn.Server(config).run()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    settings = CaptureSettings.from_env()
    args = _build_parser(settings).parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "gather":
            return run_gather(args, settings)
        if args.command == "analyze":
            return run_analyze(args)
        return run_serve(args, settings)
    except ArchiveError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
