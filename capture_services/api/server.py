"""FastAPI wiring for inspecting a sealed capture archive.

The archive is chosen with ``CAPTURE_ARCHIVE_PATH`` (or ``serve ARCHIVE`` on
the command line) and opened per request, so the service never holds the
file open between calls.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, List

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from capture_services.archive.errors import ArchiveFormatError, ArtifactNotFoundError
from capture_services.archive.paths import is_profile_path
from capture_services.archive.reader import ArchiveReader
from capture_services.archive.tags import Tag, TagLabel
from capture_services.config import TOOL_VERSION, CaptureSettings
from capture_services.ops.metrics import MetricsRegistry

settings = CaptureSettings.from_env()
logger = logging.getLogger("capture_services.api")

app = FastAPI(title="Capture Archive Inspector", version=TOOL_VERSION)
metrics = MetricsRegistry()


@app.middleware("http")
async def enforce_security(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or str(uuid.uuid4())

    if settings.api_key:
        provided = request.headers.get("x-api-key")
        if provided != settings.api_key:
            logger.warning("rejecting request: missing or invalid API key", extra={"path": request.url.path})
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "invalid api key"},
                headers={settings.request_id_header: request_id},
            )

    response = await call_next(request)
    response.headers[settings.request_id_header] = request_id
    return response


@contextmanager
def _open_archive() -> Iterator[ArchiveReader]:
    if not settings.archive_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no archive configured")
    try:
        reader = ArchiveReader(settings.archive_path)
    except ArchiveFormatError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    try:
        yield reader
    except ArchiveFormatError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    finally:
        reader.close()


@app.get("/health")
def healthcheck():
    return {"status": "ok", "archive": settings.archive_path, "version": TOOL_VERSION}


@app.get("/archive/info")
def archive_info():
    with _open_archive() as archive:
        info = archive.info()
    metrics.counter("archive.info").inc()
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="archive has no run metadata")
    return info.model_dump(mode="json")


@app.get("/archive/manifest")
def archive_manifest():
    with _open_archive() as archive:
        manifest = archive.manifest
    metrics.counter("archive.manifest").inc()
    return manifest.model_dump(mode="json")


@app.get("/archive/summary")
def archive_summary():
    with _open_archive() as archive:
        summary = archive.summary()
    metrics.counter("archive.summary").inc()
    return summary


@app.get("/archive/log")
def archive_log():
    with _open_archive() as archive:
        text = archive.capture_log()
    metrics.counter("archive.log").inc()
    return PlainTextResponse(text)


@app.get("/archive/artifacts")
def search_artifacts(
    server: str | None = None,
    cluster: str | None = None,
    account: str | None = None,
    stream: str | None = None,
    artifact_type: str | None = None,
    profile_name: str | None = None,
):
    filters = {
        TagLabel.SERVER: server,
        TagLabel.CLUSTER: cluster,
        TagLabel.ACCOUNT: account,
        TagLabel.STREAM: stream,
        TagLabel.ARTIFACT_TYPE: artifact_type,
        TagLabel.PROFILE_NAME: profile_name,
    }
    tags: List[Tag] = [Tag(label, value) for label, value in filters.items() if value is not None]

    with _open_archive() as archive:
        entries = archive.find(*tags)
    metrics.counter("archive.search").inc()
    return {
        "filters": {tag.name: tag.value for tag in tags},
        "results": [entry.model_dump(mode="json") for entry in entries],
        "total": len(entries),
    }


@app.get("/archive/files/{path:path}")
def download_artifact(path: str):
    with _open_archive() as archive:
        try:
            body = archive.read(path)
        except ArtifactNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    metrics.counter("archive.download").inc()
    if path.endswith(".json"):
        media_type = "application/json"
    elif path.endswith(".log"):
        media_type = "text/plain"
    else:
        media_type = "application/octet-stream"

    headers = {}
    if is_profile_path(path):
        filename = path.rsplit("/", 1)[-1]
        headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return Response(content=body, media_type=media_type, headers=headers)


@app.get("/metrics")
def metric_snapshot():
    """Expose collected counters for lightweight observability."""

    return {"counters": metrics.snapshot()}
