"""Tests for the call API HTTP server."""

from datetime import timedelta

import pytest
from aiohttp.test_utils import TestClient, TestServer

from src.api.server import ApiServer, create_app
from src.calls.engine import CallLifecycleEngine

CALL_ID = "3f2b8c1e-9a4d-4e7b-8c2a-1d5e6f7a8b9c"


# -- Helpers -----------------------------------------------------------------


def _body(clock, **overrides) -> dict:
    body = {
        "recipient_id": 42,
        "scheduled_at": int((clock() + timedelta(hours=1)).timestamp() * 1000),
        "device_handle": "device-token",
        "display_name": "Grandma",
        "platform": "ios",
    }
    body.update(overrides)
    return body


@pytest.fixture
async def client(engine: CallLifecycleEngine):
    server = TestServer(create_app(engine))
    client = TestClient(server)
    await client.start_server()
    yield client
    await client.close()


# -- Health ------------------------------------------------------------------


async def test_health_check(client: TestClient) -> None:
    resp = await client.get("/health")
    assert resp.status == 200
    assert (await resp.json())["status"] == "ok"


# -- Schedule ----------------------------------------------------------------


async def test_schedule(client: TestClient, clock) -> None:
    resp = await client.post("/calls/schedule", json=_body(clock, id=CALL_ID.upper()))
    assert resp.status == 201
    data = await resp.json()
    assert data["id"] == CALL_ID
    assert data["state"] == "scheduled"
    assert data["enabled"] is True


async def test_schedule_past_time_is_400(client: TestClient, clock) -> None:
    past = int((clock() - timedelta(minutes=1)).timestamp() * 1000)
    resp = await client.post("/calls/schedule", json=_body(clock, scheduled_at=past))
    assert resp.status == 400
    assert "future" in (await resp.json())["error"]


async def test_schedule_invalid_body_is_400(client: TestClient, clock) -> None:
    resp = await client.post("/calls/schedule", json=_body(clock, platform="windows"))
    assert resp.status == 400


async def test_schedule_out_of_range_time_is_400(client: TestClient, clock) -> None:
    resp = await client.post("/calls/schedule", json=_body(clock, scheduled_at=10**20))
    assert resp.status == 400
    assert "scheduled_at" in (await resp.json())["error"]


async def test_schedule_negative_time_is_400(client: TestClient, clock) -> None:
    resp = await client.post("/calls/schedule", json=_body(clock, scheduled_at=-1))
    assert resp.status == 400


async def test_immediate_out_of_range_time_is_400(client: TestClient, clock, router) -> None:
    resp = await client.post("/calls/immediate", json=_body(clock, scheduled_at=10**20))
    assert resp.status == 400
    assert router.sent == []


async def test_schedule_invalid_json_is_400(client: TestClient) -> None:
    resp = await client.post("/calls/schedule", data="{not json")
    assert resp.status == 400
    assert (await resp.json())["error"] == "invalid JSON"


async def test_immediate(client: TestClient, clock, router) -> None:
    resp = await client.post("/calls/immediate", json=_body(clock))
    assert resp.status == 201
    data = await resp.json()
    assert data["state"] == "dispatched"
    assert data["delivered"] is True
    assert len(router.sent) == 1


# -- Queries -----------------------------------------------------------------


async def test_list_get_and_by_recipient(client: TestClient, clock) -> None:
    await client.post("/calls/schedule", json=_body(clock, id=CALL_ID))

    resp = await client.get("/calls")
    assert [c["id"] for c in await resp.json()] == [CALL_ID]

    resp = await client.get(f"/calls/{CALL_ID}")
    assert resp.status == 200

    resp = await client.get("/calls/recipient/42")
    assert [c["id"] for c in await resp.json()] == [CALL_ID]


async def test_unknown_call_is_404(client: TestClient) -> None:
    resp = await client.get(f"/calls/{CALL_ID}")
    assert resp.status == 404


async def test_unknown_recipient_is_404(client: TestClient) -> None:
    resp = await client.get("/calls/recipient/7")
    assert resp.status == 404


# -- Cancel ------------------------------------------------------------------


async def test_cancel_by_id(client: TestClient, clock) -> None:
    await client.post("/calls/schedule", json=_body(clock, id=CALL_ID))
    resp = await client.delete(f"/calls/{CALL_ID}")
    assert resp.status == 200
    assert (await resp.json())["state"] == "cancelled"


async def test_cancel_by_recipient(client: TestClient, clock) -> None:
    await client.post("/calls/schedule", json=_body(clock, id=CALL_ID))
    resp = await client.delete("/calls/recipient/42")
    assert resp.status == 200
    assert (await resp.json())["id"] == CALL_ID

    resp = await client.delete("/calls/recipient/42")
    assert resp.status == 404


# -- Toggle ------------------------------------------------------------------


async def test_toggle(client: TestClient, clock) -> None:
    await client.post("/calls/schedule", json=_body(clock, id=CALL_ID))
    resp = await client.post(
        "/calls/toggle", json={"recipient_id": 42, "id": CALL_ID, "enabled": False}
    )
    assert resp.status == 200
    assert (await resp.json())["enabled"] is False


async def test_toggle_wrong_recipient_is_403(client: TestClient, clock) -> None:
    await client.post("/calls/schedule", json=_body(clock, id=CALL_ID))
    resp = await client.post(
        "/calls/toggle", json={"recipient_id": 7, "id": CALL_ID, "enabled": False}
    )
    assert resp.status == 403


# -- Responses, stats, history -----------------------------------------------


async def test_response_stats_and_history(client: TestClient, clock) -> None:
    await client.post("/calls/immediate", json=_body(clock, id=CALL_ID))

    resp = await client.post(
        "/calls/response",
        json={"id": CALL_ID, "status": "declined", "responded_at": "2030-01-01T09:00:00Z"},
    )
    assert resp.status == 200
    response = (await resp.json())["response"]
    assert response["status"] == "declined"
    assert response["responded_at"] == "2030-01-01T09:00:00+00:00"

    resp = await client.get("/calls/stats")
    assert await resp.json() == {
        "total": 1,
        "answered": 0,
        "declined": 1,
        "missed": 0,
        "no_response": 0,
        "answer_rate": "100.0%",
    }

    resp = await client.get("/calls/stats", params={"recipient_id": "7"})
    assert (await resp.json())["answer_rate"] == "0.0%"

    resp = await client.get("/calls/recipient/42/history")
    history = await resp.json()
    assert [h["status"] for h in history] == ["declined"]


async def test_response_unknown_call_is_404(client: TestClient) -> None:
    resp = await client.post("/calls/response", json={"id": CALL_ID, "status": "answered"})
    assert resp.status == 404


async def test_stats_bad_recipient_is_400(client: TestClient) -> None:
    resp = await client.get("/calls/stats", params={"recipient_id": "abc"})
    assert resp.status == 400


# -- Server lifecycle --------------------------------------------------------


async def test_server_start_stop(engine: CallLifecycleEngine, unused_tcp_port: int) -> None:
    server = ApiServer(engine, host="127.0.0.1", port=unused_tcp_port)
    await server.start()
    try:
        assert server._runner is not None
    finally:
        await server.stop()
    assert server._runner is None
