"""Poll server monitoring endpoints and store the responses in a capture archive.

Each monitored server is visited on its own worker thread. Server-wide
endpoints are stored per cluster, account endpoints per account, and the
stream details reported by each account's JetStream endpoint per stream. A
failing endpoint is logged and skipped so one unhealthy peer never aborts the
whole capture.
"""
from __future__ import annotations

import logging
import threading
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from capture_services.archive.errors import ArtifactSerializationError, DuplicatePathError, ResolutionError
from capture_services.archive.tags import (
    ArtifactType,
    Tag,
    tag_account,
    tag_artifact_type,
    tag_cluster,
    tag_connections,
    tag_jetstream,
    tag_no_cluster,
    tag_profile_name,
    tag_server,
    tag_server_profile,
    tag_server_vars,
    tag_stream,
    tag_stream_details,
)
from capture_services.archive.writer import ArchiveWriter
from capture_services.client import MonitoringClient, MonitoringError
from capture_services.ops.metrics import MetricsRegistry

logger = logging.getLogger("capture_services.gather")

VARZ_PATH = "/varz"
PROFILE_PATH = "/debug/pprof/{name}"

SERVER_ENDPOINTS: Tuple[Tuple[str, ArtifactType], ...] = (
    ("/healthz", ArtifactType.HEALTH),
    ("/connz", ArtifactType.CONNECTIONS),
    ("/routez", ArtifactType.ROUTES),
    ("/gatewayz", ArtifactType.GATEWAYS),
    ("/leafz", ArtifactType.LEAFS),
    ("/subsz", ArtifactType.SUBS),
    ("/jsz", ArtifactType.JETSTREAM),
    ("/accountz", ArtifactType.ACCOUNTS),
)


@dataclass
class SkippedArtifact:
    server: str
    endpoint: str
    reason: str


@dataclass
class GatherReport:
    servers: List[str] = field(default_factory=list)
    artifacts: int = 0
    skipped: List[SkippedArtifact] = field(default_factory=list)


def _describe(path: str, params: Dict[str, Any] | None) -> str:
    if not params:
        return path
    return f"{path}?{urllib.parse.urlencode(params)}"


def _server_name(varz: Dict[str, Any], client: MonitoringClient) -> str:
    name = varz.get("server_name") or varz.get("server_id")
    if name:
        return str(name)
    return urllib.parse.urlsplit(client.base_url).netloc or client.base_url


class Gatherer:
    """Collect monitoring artifacts from many servers into one archive.

    Args:
        clients: One monitoring client per server.
        writer: Open archive receiving the artifacts.
        include_accounts: Also collect per-account and per-stream artifacts.
        profiles: Profile names fetched from ``/debug/pprof/<name>``.
        max_workers: Upper bound on servers polled in parallel.
        metrics: Optional registry receiving ``gather.*`` counters.
    """

    def __init__(
        self,
        clients: Sequence[MonitoringClient],
        writer: ArchiveWriter,
        *,
        include_accounts: bool = True,
        profiles: Iterable[str] = (),
        max_workers: int = 8,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.clients = list(clients)
        self.writer = writer
        self.include_accounts = include_accounts
        self.profiles = list(profiles)
        self.max_workers = max_workers
        self.metrics = metrics or MetricsRegistry()
        self.report = GatherReport()
        self._lock = threading.Lock()

    def run(self) -> GatherReport:
        self.writer.set_parameters(
            servers=[client.base_url for client in self.clients],
            include_accounts=self.include_accounts,
            profiles=self.profiles,
        )
        workers = max(1, min(self.max_workers, len(self.clients)))
        with self.writer.capture_logs(logger.name):
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gather") as pool:
                futures = [pool.submit(self._gather_server, client) for client in self.clients]
                for future in futures:
                    future.result()

        self.writer.log_event(
            "gathered %d artifacts from %d servers, skipped %d",
            self.report.artifacts,
            len(self.report.servers),
            len(self.report.skipped),
        )
        return self.report

    # Per-server flow --------------------------------------------------------
    def _gather_server(self, client: MonitoringClient) -> None:
        varz = self._fetch(client, client.base_url, VARZ_PATH)
        if not isinstance(varz, dict):
            return

        server = _server_name(varz, client)
        cluster_info = varz.get("cluster")
        cluster = cluster_info.get("name") if isinstance(cluster_info, dict) else None
        base_tags = [tag_server(server), tag_cluster(cluster) if cluster else tag_no_cluster()]
        with self._lock:
            self.report.servers.append(server)
        self.metrics.counter("gather.servers").inc()
        logger.info("gathering from %s (%s)", server, client.base_url)

        self._add(server, VARZ_PATH, varz, *base_tags, tag_server_vars())

        accounts: List[str] = []
        for path, artifact_type in SERVER_ENDPOINTS:
            payload = self._fetch(client, server, path)
            if payload is None:
                continue
            self._add(server, path, payload, *base_tags, tag_artifact_type(artifact_type))
            if artifact_type is ArtifactType.ACCOUNTS and isinstance(payload, dict):
                accounts = [str(name) for name in payload.get("accounts") or []]

        if self.include_accounts:
            for account in accounts:
                self._gather_account(client, server, base_tags, account)

        for name in self.profiles:
            path = PROFILE_PATH.format(name=name)
            try:
                blob = client.get_bytes(path)
            except MonitoringError as exc:
                self._skip(server, path, exc)
                continue
            self._add(server, path, blob, *base_tags, tag_server_profile(), tag_profile_name(name))

    def _gather_account(self, client: MonitoringClient, server: str, base_tags: List[Tag], account: str) -> None:
        account_tags = [*base_tags, tag_account(account)]

        params = {"acc": account}
        connz = self._fetch(client, server, "/connz", params)
        if connz is not None:
            self._add(server, _describe("/connz", params), connz, *account_tags, tag_connections())

        params = {"acc": account, "streams": "true", "config": "true"}
        jsz = self._fetch(client, server, "/jsz", params)
        if jsz is None:
            return
        self._add(server, _describe("/jsz", params), jsz, *account_tags, tag_jetstream())

        if not isinstance(jsz, dict):
            return
        for details in jsz.get("account_details") or []:
            if not isinstance(details, dict) or details.get("name", account) != account:
                continue
            for stream in details.get("stream_detail") or []:
                name = stream.get("name") if isinstance(stream, dict) else None
                if not name:
                    continue
                self._add(server, f"stream {name}", stream, *account_tags, tag_stream(name), tag_stream_details())

    # Helpers ----------------------------------------------------------------
    def _fetch(self, client: MonitoringClient, server: str, path: str, params: Dict[str, Any] | None = None) -> Any:
        try:
            return client.get_json(path, params)
        except MonitoringError as exc:
            self._skip(server, _describe(path, params), exc)
            return None

    def _add(self, server: str, endpoint: str, payload: Any, *tags: Tag) -> None:
        try:
            self.writer.add(payload, *tags)
        except (ResolutionError, DuplicatePathError, ArtifactSerializationError) as exc:
            logger.error("cannot archive %s from %s: %s", endpoint, server, exc)
            self._record_skip(server, endpoint, exc)
            return
        with self._lock:
            self.report.artifacts += 1
        self.metrics.counter("gather.artifacts").inc()

    def _skip(self, server: str, endpoint: str, exc: Exception) -> None:
        logger.warning("skipping %s from %s: %s", endpoint, server, exc)
        self._record_skip(server, endpoint, exc)

    def _record_skip(self, server: str, endpoint: str, exc: Exception) -> None:
        with self._lock:
            self.report.skipped.append(SkippedArtifact(server=server, endpoint=endpoint, reason=str(exc)))
        self.metrics.counter("gather.skipped").inc()
