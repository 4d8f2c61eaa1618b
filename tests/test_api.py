import pytest
from httpx import ASGITransport, AsyncClient

from conftest import LONG_TEXT, S1_TEXT, FakeProvider, make_pool, make_settings
from summarize_this.main import create_application
from summarize_this.pipeline.coordinator import build_coordinator


@pytest.fixture
def test_app():
    settings = make_settings(max_body_bytes=16 * 1024)
    coordinator = build_coordinator(settings, pool=make_pool(FakeProvider()))
    return create_application(settings=settings, coordinator=coordinator)


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


async def _grant(client, user_id, amount):
    response = await client.post(f"/v1/credits/{user_id}/grants", json={"amount": amount})
    assert response.status_code == 200
    return response.json()


@pytest.mark.anyio
async def test_extractive_summary_returns_completed_result(test_app):
    async with _client(test_app) as client:
        await _grant(client, "u1", 50)
        response = await client.post(
            "/v1/summarize",
            json={"user_id": "u1", "text": S1_TEXT, "options": {"max_length": 80}},
        )
        balance = await client.get("/v1/credits/u1")

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == S1_TEXT
    assert body["method_used"] == "extractive"
    assert body["confidence"] == 0.7
    assert body["cached"] is False
    assert body["credits_charged"] == 1
    assert body["key_takeaways"]["sentiment"] in {"positive", "neutral", "negative"}
    assert balance.json() == {
        "user_id": "u1",
        "credits": 49,
        "available": 49,
        "held": 0,
        "open_reservations": 0,
    }


@pytest.mark.anyio
async def test_long_generative_request_is_queued_and_pollable(test_app):
    async with _client(test_app) as client:
        await _grant(client, "u1", 100)
        response = await client.post(
            "/v1/summarize",
            json={
                "user_id": "u1",
                "text": LONG_TEXT,
                "method": "generative",
                "request_id": "req-long",
            },
        )
        polled = await client.get("/v1/summarize/req-long")
        cancelled = await client.delete("/v1/summarize/req-long")
        balance = await client.get("/v1/credits/u1")

    assert response.status_code == 202
    body = response.json()
    assert body["request_id"] == "req-long"
    assert body["state"] == "queued"
    assert body["job_id"]
    assert body["estimated_seconds"] > 0
    assert body["queue_position"] == 1

    assert polled.status_code == 200
    assert polled.json()["state"] == "queued"
    assert polled.json()["progress"] == 0.0

    assert cancelled.status_code == 200
    assert cancelled.json()["state"] == "cancelled"
    assert balance.json()["available"] == 100


@pytest.mark.anyio
async def test_insufficient_credits_is_402(test_app):
    async with _client(test_app) as client:
        await _grant(client, "u1", 2)
        response = await client.post(
            "/v1/summarize",
            json={"user_id": "u1", "text": S1_TEXT, "method": "generative"},
        )
    assert response.status_code == 402
    body = response.json()
    assert body["error_kind"] == "InsufficientCredits"
    assert body["details"] == {"required": 10, "available": 2}


@pytest.mark.anyio
async def test_schema_errors_are_400_validation(test_app):
    async with _client(test_app) as client:
        response = await client.post(
            "/v1/summarize",
            json={"user_id": "u1", "text": S1_TEXT, "method": "abstractive"},
        )
    assert response.status_code == 400
    body = response.json()
    assert body["error_kind"] == "Validation"
    assert body["details"]["errors"][0]["loc"][-1] == "method"


@pytest.mark.anyio
async def test_rule_violations_report_the_field(test_app):
    async with _client(test_app) as client:
        short = await client.post("/v1/summarize", json={"user_id": "u1", "text": "too short"})
        length = await client.post(
            "/v1/summarize",
            json={"user_id": "u1", "text": S1_TEXT, "options": {"max_length": 10}},
        )
    assert short.status_code == 400
    assert short.json()["details"]["field"] == "text"
    assert length.status_code == 400
    assert length.json()["details"]["field"] == "options.max_length"


@pytest.mark.anyio
async def test_invalid_json_is_400(test_app):
    async with _client(test_app) as client:
        response = await client.post(
            "/v1/summarize",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
    assert response.status_code == 400
    assert response.json()["error_kind"] == "Validation"


@pytest.mark.anyio
async def test_payload_too_large_error_structured(test_app):
    async with _client(test_app) as client:
        response = await client.post(
            "/v1/summarize", json={"user_id": "u1", "text": "x" * (20 * 1024)}
        )
    assert response.status_code == 413
    body = response.json()
    assert body["error_kind"] == "Validation"
    assert body["details"]["limit_bytes"] == 16 * 1024


@pytest.mark.anyio
async def test_unknown_request_is_404(test_app):
    async with _client(test_app) as client:
        status = await client.get("/v1/summarize/missing")
        cancel = await client.delete("/v1/summarize/missing")
        route = await client.get("/v1/nowhere")
    assert status.status_code == 404
    assert status.json()["error_kind"] == "NotFound"
    assert cancel.status_code == 404
    assert route.status_code == 404
    assert route.json()["error_kind"] == "NotFound"


@pytest.mark.anyio
async def test_grant_rejects_non_positive_amounts(test_app):
    async with _client(test_app) as client:
        response = await client.post("/v1/credits/u1/grants", json={"amount": 0})
    assert response.status_code == 400


@pytest.mark.anyio
async def test_methods_and_health(test_app):
    async with _client(test_app) as client:
        methods = await client.get("/v1/methods")
        health = await client.get("/healthz")

    assert methods.status_code == 200
    catalog = methods.json()["methods"]
    assert catalog["composite"]["cost"] == 6
    assert catalog["ranked"]["speed"] == "medium"

    assert health.status_code == 200
    body = health.json()
    assert body["status"] == "ok"
    assert body["providers"] == {"default": "closed"}
    assert body["queue_depth"] == 0
