"""
Tests for request logging middleware and the contextual logger.
"""
import json
import logging

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.logging import build_formatter, get_log_level_for_env
from middleware.logging_middleware import (
    RequestLoggingMiddleware,
    get_logger,
    get_session_id,
    request_id_var,
    session_id_from_path,
    session_id_var,
)

app = FastAPI()
app.add_middleware(RequestLoggingMiddleware)


@app.get("/api/fusion/sessions/{session_id}")
async def echo_session(session_id: str):
    return {"session_id": get_session_id()}


@app.get("/api/grid/context")
async def echo_log_context():
    return structlog.contextvars.get_contextvars()


@app.get("/api/fusion/sessions/{session_id}/context")
async def echo_session_log_context(session_id: str):
    return structlog.contextvars.get_contextvars()


@pytest.fixture
def client():
    return TestClient(app)


def test_response_carries_request_id(client):
    response = client.get("/api/fusion/sessions/abc123")

    assert response.status_code == 200
    assert len(response.headers["X-Request-ID"]) == 8


def test_session_id_is_available_to_handlers(client):
    response = client.get("/api/fusion/sessions/abc123")
    assert response.json()["session_id"] == "abc123"


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/fusion/sessions/abc/compose", "abc"),
        ("/api/fusion/sessions/xyz", "xyz"),
        ("/api/grid/slice", ""),
    ],
)
def test_session_id_from_path(path, expected):
    assert session_id_from_path(path) == expected


def test_contextual_logger_prefixes_ids(caplog):
    request_token = request_id_var.set("req12345")
    session_token = session_id_var.set("session-abcdefgh-1234")
    try:
        with caplog.at_level(logging.INFO, logger="fusion.test"):
            get_logger("fusion.test").info("sliced grid")
    finally:
        request_id_var.reset(request_token)
        session_id_var.reset(session_token)

    assert "[req12345][sess:session-] sliced grid" in caplog.text


def test_request_id_is_bound_into_log_context(client):
    response = client.get("/api/grid/context")

    context = response.json()
    assert context == {"request_id": response.headers["X-Request-ID"]}


def test_fusion_session_is_bound_into_log_context(client):
    response = client.get("/api/fusion/sessions/abc123/context")

    assert response.json()["fusion_session"] == "abc123"
    assert response.json()["request_id"] == response.headers["X-Request-ID"]


def test_stdlib_records_render_with_bound_context():
    record = logging.LogRecord("services.grid_service", logging.INFO, __file__, 1, "sliced %d cells", (9,), None)
    structlog.contextvars.bind_contextvars(request_id="req12345", fusion_session="abc123")
    try:
        line = build_formatter(json_output=True).format(record)
    finally:
        structlog.contextvars.clear_contextvars()

    payload = json.loads(line)
    assert payload["event"] == "sliced 9 cells"
    assert payload["request_id"] == "req12345"
    assert payload["fusion_session"] == "abc123"
    assert payload["level"] == "info"
    assert payload["logger"] == "services.grid_service"


@pytest.mark.parametrize(
    "environment, configured, expected",
    [
        ("development", "INFO", logging.DEBUG),
        ("development", "WARNING", logging.WARNING),
        ("production", "INFO", logging.INFO),
        ("production", "bogus", logging.INFO),
    ],
)
def test_log_level_for_env(environment, configured, expected):
    assert get_log_level_for_env(environment, configured) == expected
