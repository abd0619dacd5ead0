from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from wanderlens.core.error_handlers import error_handler, setup_error_handlers
from wanderlens.core.exceptions import NotFoundError, SupersededError

app = FastAPI()
setup_error_handlers(app)


@app.get("/superseded")
async def superseded():
    raise SupersededError("place search")


@app.get("/missing")
async def missing():
    raise NotFoundError("No last-known location stored")


@app.get("/boom")
async def boom():
    raise RuntimeError("unexpected")


@app.get("/validated")
async def validated(latitude: float = Query(..., ge=-90, le=90)):
    return {"latitude": latitude}


client = TestClient(app, raise_server_exceptions=False)


def test_wanderlens_exception_envelope():
    r = client.get("/superseded")
    assert r.status_code == 409
    body = r.json()
    assert body["status"] == "error"
    assert body["error"] == "superseded"
    assert body["data"]["error_code"] == "superseded"
    assert body["data"]["message"] == "place search was superseded by a newer request"
    assert body["data"]["details"] == {"operation": "place search"}


def test_not_found_envelope():
    r = client.get("/missing")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_validation_error_envelope():
    r = client.get("/validated?latitude=123")
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == "validation_error"
    fields = [e["field"] for e in body["data"]["details"]["validation_errors"]]
    assert fields == ["query.latitude"]


def test_unknown_route_envelope():
    r = client.get("/nowhere")
    assert r.status_code == 404
    assert r.json()["status"] == "error"


def test_unhandled_exception_envelope():
    r = client.get("/boom")
    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "internal_server_error"
    assert "unexpected" not in body["data"]["message"]


def test_error_statistics_count_codes():
    client.get("/superseded")
    client.get("/superseded")
    stats = error_handler.get_error_statistics()
    assert stats["error_counts"]["superseded"] == 2
    assert stats["total_errors"] == 2
