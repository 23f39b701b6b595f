import pytest
from fastapi import FastAPI, HTTPException, Response
from fastapi.testclient import TestClient

from capture_services.client import MonitoringClient, MonitoringError


def _monitoring_app() -> FastAPI:
    app = FastAPI()

    @app.get("/varz")
    def varz():
        return {"server_name": "n1", "cluster": {"name": "east"}}

    @app.get("/connz")
    def connz(acc: str | None = None):
        return {"account": acc, "num_connections": 2}

    @app.get("/debug/pprof/heap")
    def heap():
        return Response(content=b"\x00\x01profile", media_type="application/octet-stream")

    @app.get("/broken")
    def broken():
        raise HTTPException(status_code=503, detail="unavailable")

    @app.get("/garbage")
    def garbage():
        return Response(content=b"not json", media_type="text/plain")

    return app


@pytest.fixture
def client():
    return MonitoringClient("http://testserver/", http_client=TestClient(_monitoring_app()))


def test_get_json_reads_endpoint(client):
    assert client.base_url == "http://testserver"
    assert client.get_json("/varz") == {"server_name": "n1", "cluster": {"name": "east"}}


def test_query_parameters_are_forwarded(client):
    assert client.get_json("/connz", {"acc": "APP"}) == {"account": "APP", "num_connections": 2}


def test_get_bytes_returns_raw_body(client):
    assert client.get_bytes("/debug/pprof/heap") == b"\x00\x01profile"


def test_error_status_raises(client):
    with pytest.raises(MonitoringError, match="503"):
        client.get_json("/broken")
    with pytest.raises(MonitoringError, match="404"):
        client.get_json("/missing")


def test_invalid_json_raises(client):
    with pytest.raises(MonitoringError, match="invalid JSON"):
        client.get_json("/garbage")


def test_unreachable_server_raises():
    # Port 9 on localhost is reserved for the discard service and normally closed.
    client = MonitoringClient("http://127.0.0.1:9", timeout=0.5)
    with pytest.raises(MonitoringError):
        client.get_json("/varz")
