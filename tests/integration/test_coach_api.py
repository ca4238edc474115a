"""
HTTP tests for the coach endpoint and the health, readiness and info routes.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from coachsmith.api.identity import get_current_user_id
from coachsmith.api.server import create_app
from coachsmith.config import Settings

COACH_URL = "/api/ai/coach"
USER = {"X-User-Id": "U1"}
COUNT_SQL = '{"sql_query": "SELECT COUNT(*) AS count FROM properties"}'
SCOPED_COUNT_SQL = "SELECT COUNT(*) AS count FROM properties WHERE properties.user_id = 'U1'"


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_anonymous_request_is_rejected_before_any_model_call(client, fake_genai):
    resp = await client.post(COACH_URL, json={"message": "How many properties do I have?"})

    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}
    assert fake_genai.calls == []


@pytest.mark.asyncio
async def test_missing_api_key_is_a_server_error(orchestrator, fake_genai):
    settings = Settings(_env_file=None, gemini_api_key=None, environment="production", database_url=None)

    async with _client(create_app(settings, orchestrator=orchestrator)) as ac:
        resp = await ac.post(COACH_URL, json={"message": "hi"}, headers=USER)

    assert resp.status_code == 500
    body = resp.json()
    assert "GEMINI_API_KEY" in body["error"]
    assert "details" not in body
    assert fake_genai.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": 42}, {"message": None}, ["hi"]])
async def test_bad_message_is_rejected(client, fake_genai, body):
    resp = await client.post(COACH_URL, json=body, headers=USER)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Message is required"}
    assert fake_genai.calls == []


@pytest.mark.asyncio
async def test_non_json_body_is_rejected(client):
    resp = await client.post(
        COACH_URL, content=b"message=hi", headers={**USER, "Content-Type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Request body must be valid JSON"}


# ---------------------------------------------------------------------------
# Buffered replies
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_buffered_reply_carries_data_info(client, fake_genai, executor):
    fake_genai.sql = COUNT_SQL
    fake_genai.answer = "You have 3 properties."
    executor.rows = [{"count": 3}]

    resp = await client.post(
        COACH_URL, json={"message": "How many properties do I have?", "stream": False}, headers=USER
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "reply": "You have 3 properties.",
        "cached": False,
        "dataInfo": {
            "sqlQuery": SCOPED_COUNT_SQL,
            "resultCount": 1,
            "hasData": True,
            "sampleData": [{"count": 3}],
        },
    }


@pytest.mark.asyncio
async def test_no_sql_is_reported_as_placeholder(client, fake_genai, executor):
    fake_genai.sql = "I cannot write SQL for that."

    resp = await client.post(COACH_URL, json={"message": "Motivate me", "stream": False}, headers=USER)

    data_info = resp.json()["dataInfo"]
    assert data_info == {"sqlQuery": "No SQL generated", "resultCount": 0, "hasData": False, "sampleData": None}
    assert executor.calls == []


@pytest.mark.asyncio
async def test_repeat_question_is_cached_with_debug_in_development(client, fake_genai, executor):
    fake_genai.sql = COUNT_SQL
    executor.rows = [{"count": 3}]
    payload = {"message": "How many properties do I have?", "stream": False}

    first = await client.post(COACH_URL, json=payload, headers=USER)
    second = await client.post(COACH_URL, json=payload, headers=USER)

    assert first.json()["cached"] is False
    assert second.json() == {
        "reply": first.json()["reply"],
        "cached": True,
        "debug": {"sqlQuery": SCOPED_COUNT_SQL, "resultCount": 1},
    }
    assert len(executor.calls) == 1


@pytest.mark.asyncio
async def test_cached_reply_hides_debug_outside_development(orchestrator, fake_genai):
    settings = Settings(_env_file=None, gemini_api_key="test-key", environment="production", database_url=None)
    payload = {"message": "Any tips?", "stream": False}

    async with _client(create_app(settings, orchestrator=orchestrator)) as ac:
        await ac.post(COACH_URL, json=payload, headers=USER)
        resp = await ac.post(COACH_URL, json=payload, headers=USER)

    assert resp.json() == {"reply": "Keep stacking doors!", "cached": True}


@pytest.mark.asyncio
async def test_total_generation_failure_is_a_server_error(client, fake_genai):
    fake_genai.answer = lambda prompt: ""

    resp = await client.post(COACH_URL, json={"message": "hi", "stream": False}, headers=USER)

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"].startswith("All Gemini models failed for synthesis")
    assert "Traceback" in body["details"]


# ---------------------------------------------------------------------------
# Streaming replies
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stream_is_plain_text_matching_buffered_text(client, fake_genai):
    fake_genai.answer = "Raise rents on the vacant unit first."
    fake_genai.chunks = ["Raise rents ", "on the vacant ", "unit first."]

    streamed = await client.post(COACH_URL, json={"message": "What next?"}, headers=USER)
    buffered = await client.post(COACH_URL, json={"message": "What next?", "stream": False}, headers=USER)

    assert streamed.status_code == 200
    assert streamed.headers["content-type"] == "text/plain; charset=utf-8"
    assert streamed.headers["cache-control"] == "no-cache, no-transform"
    assert streamed.headers["x-accel-buffering"] == "no"
    assert streamed.text == buffered.json()["reply"]
    # the buffered call after a completed stream is a cache hit
    assert buffered.json()["cached"] is True


@pytest.mark.asyncio
async def test_stream_always_recomputes(client, fake_genai):
    fake_genai.chunks = ["fresh"]
    await client.post(COACH_URL, json={"message": "Tips?", "stream": False}, headers=USER)

    resp = await client.post(COACH_URL, json={"message": "Tips?", "stream": True}, headers=USER)

    assert resp.text == "fresh"
    assert [stream for _, kind, stream in fake_genai.calls if kind == "answer"] == [False, True]


@pytest.mark.asyncio
async def test_stream_open_failure_returns_json_reply(client, fake_genai):
    fake_genai.stream_open_error = RuntimeError("stream refused")

    resp = await client.post(COACH_URL, json={"message": "Any tips?"}, headers=USER)

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/json"
    body = resp.json()
    assert body["reply"] == "Keep stacking doors!"
    assert body["cached"] is False


@pytest.mark.asyncio
async def test_mid_stream_failure_appends_error_line(client, fake_genai):
    fake_genai.chunks = ["Start with ", "your vacant ", "units."]
    fake_genai.stream_error = RuntimeError("socket closed")
    fake_genai.stream_fail_after = 2

    resp = await client.post(COACH_URL, json={"message": "What next?"}, headers=USER)

    assert resp.status_code == 200
    assert resp.text == "Start with your vacant \n\nError: socket closed"


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_identity_provider_can_be_overridden(settings, orchestrator, executor, fake_genai):
    fake_genai.sql = COUNT_SQL
    app = create_app(settings, orchestrator=orchestrator)
    app.dependency_overrides[get_current_user_id] = lambda: "U9"

    async with _client(app) as ac:
        resp = await ac.post(COACH_URL, json={"message": "How many properties?", "stream": False})

    assert resp.status_code == 200
    assert executor.calls == ["SELECT COUNT(*) AS count FROM properties WHERE properties.user_id = 'U9'"]


@pytest.mark.asyncio
async def test_blank_identity_header_is_anonymous(client):
    resp = await client.post(COACH_URL, json={"message": "hi"}, headers={"X-User-Id": "   "})
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Service status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_when_wired(client):
    resp = await client.get("/ready")
    assert resp.status_code == 200
    assert resp.json() == {
        "ready": True,
        "components": {"gemini_api_key": True, "orchestrator": True},
        "database": "connected",
    }


@pytest.mark.asyncio
async def test_ready_reports_unreachable_database(client, executor):
    executor.connected = False

    resp = await client.get("/ready")

    assert resp.status_code == 200
    assert resp.json()["ready"] is True
    assert resp.json()["database"] == "unavailable"


@pytest.mark.asyncio
async def test_ready_reports_unconfigured_database(client, executor):
    executor.configured = False

    resp = await client.get("/ready")

    assert resp.status_code == 200
    assert resp.json()["database"] == "not_configured"


@pytest.mark.asyncio
async def test_not_ready_without_api_key():
    settings = Settings(_env_file=None, gemini_api_key=None, environment="development", database_url=None)

    async with _client(create_app(settings)) as ac:
        resp = await ac.get("/ready")

    assert resp.status_code == 503
    assert resp.json()["detail"] == {
        "ready": False,
        "components": {"gemini_api_key": False, "orchestrator": False},
    }


@pytest.mark.asyncio
async def test_info_reports_cache_counters(client):
    payload = {"message": "Any tips?", "stream": False}
    await client.post(COACH_URL, json=payload, headers=USER)
    await client.post(COACH_URL, json=payload, headers=USER)

    resp = await client.get("/info")

    body = resp.json()
    assert body["app"] == "CoachSmith API"
    assert body["environment"] == "development"
    assert body["initialized"] is True
    assert body["database_configured"] is True
    assert body["cache"] == {
        "entries": 1,
        "hits": 1,
        "misses": 1,
        "writes": 1,
        "evictions": 0,
        "expirations": 0,
        "hit_rate": 0.5,
    }


@pytest.mark.asyncio
async def test_request_id_is_echoed_or_generated(client):
    echoed = await client.get("/health", headers={"X-Request-ID": "req-123"})
    generated = await client.get("/health")

    assert echoed.headers["x-request-id"] == "req-123"
    assert len(generated.headers["x-request-id"]) == 32
