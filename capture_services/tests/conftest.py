import pytest
from fastapi import FastAPI, HTTPException, Response
from fastapi.testclient import TestClient

from capture_services.client import MonitoringClient


def _fake_server(name, cluster=None, broken=(), streams=("ORDERS", "EVENTS")):
    """Monitoring client backed by an in-process app mimicking one server."""

    app = FastAPI()
    stream_names = list(streams)

    def check(path):
        if path in broken:
            raise HTTPException(status_code=503, detail=f"{path} unavailable")

    @app.get("/varz")
    def varz():
        check("/varz")
        body = {"server_name": name, "version": "2.10.0"}
        if cluster:
            body["cluster"] = {"name": cluster}
        return body

    def static(path):
        def endpoint():
            check(path)
            return {"endpoint": path, "server": name}

        return endpoint

    for path in ("/healthz", "/routez", "/gatewayz", "/leafz", "/subsz"):
        app.add_api_route(path, static(path), methods=["GET"])

    @app.get("/connz")
    def connz(acc: str | None = None):
        check("/connz")
        return {"server": name, "account": acc, "connections": []}

    @app.get("/accountz")
    def accountz():
        check("/accountz")
        return {"server_id": name, "accounts": ["APP"]}

    @app.get("/jsz")
    def jsz(acc: str | None = None, streams: bool = False, config: bool = False):
        check("/jsz")
        if acc is None:
            return {"server_id": name, "streams": len(stream_names)}
        details = [{"name": stream, "config": {"subjects": [f"{stream.lower()}.>"]}} for stream in stream_names]
        return {"account_details": [{"name": acc, "stream_detail": details if streams else []}]}

    @app.get("/debug/pprof/{profile}")
    def pprof(profile: str):
        check(f"/debug/pprof/{profile}")
        return Response(content=f"{name}:{profile}".encode(), media_type="application/octet-stream")

    return MonitoringClient("http://testserver", http_client=TestClient(app))


@pytest.fixture
def fake_server():
    return _fake_server


def _flip_byte(path, marker):
    """Corrupt the stored bytes of an uncompressed entry containing ``marker``."""

    data = bytearray(path.read_bytes())
    data[data.index(marker)] ^= 0x01
    path.write_bytes(bytes(data))


@pytest.fixture
def flip_byte():
    return _flip_byte
