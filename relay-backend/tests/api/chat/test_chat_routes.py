from typing import Iterator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from features.chat.dependencies import get_chat_relay_service
from features.chat.service import ChatRelayService
from features.gateway.exceptions import ConnectionLost, RequestRejected
from main import app
from tests.helpers.gateway import FakeGatewayService, wait_until


@pytest.fixture(autouse=True)
def reset_dependency_overrides() -> Iterator[None]:
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def broadcast() -> AsyncMock:
    return AsyncMock(return_value=1)


@pytest.fixture
def gateway(gateway_config) -> FakeGatewayService:
    return FakeGatewayService(gateway_config)


@pytest.fixture
def relay(gateway, broadcast) -> ChatRelayService:
    service = ChatRelayService(gateway, broadcast)
    app.dependency_overrides[get_chat_relay_service] = lambda: service
    return service


async def _post(json: object):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        return await client.post("/api/chat", json=json)


@pytest.mark.anyio
async def test_chat_relays_turn_and_returns_key(relay, gateway) -> None:
    response = await _post({"text": "  こんにちは  "})

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    key = payload["data"]["idempotencyKey"]
    assert key

    assert gateway.submitted == [
        (
            "chat.send",
            {
                "sessionKey": "agent:main:main",
                "message": "こんにちは",
                "deliver": False,
                "idempotencyKey": key,
            },
        )
    ]
    assert relay.in_flight == 1
    await relay.aclose()


@pytest.mark.anyio
async def test_chat_forwards_caller_key_unchanged(relay, gateway) -> None:
    response = await _post({"text": "hi", "idempotencyKey": "turn-42"})

    assert response.json()["data"] == {"idempotencyKey": "turn-42"}
    assert gateway.submitted[0][1]["idempotencyKey"] == "turn-42"
    await relay.aclose()


@pytest.mark.anyio
@pytest.mark.parametrize("body", [{}, {"text": ""}, {"text": "   "}, {"text": None}])
async def test_chat_requires_text(relay, gateway, body) -> None:
    response = await _post(body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["success"] is False
    assert payload["data"]["error"] == "validation_error"
    assert payload["data"]["context"] == {"field": "text"}
    assert gateway.submitted == []


@pytest.mark.anyio
async def test_chat_rejects_non_string_text(relay, gateway) -> None:
    response = await _post({"text": 5})

    assert response.status_code == 422
    assert gateway.submitted == []


@pytest.mark.anyio
async def test_chat_returns_503_when_gateway_not_ready(relay, gateway) -> None:
    gateway.is_ready = False

    response = await _post({"text": "hi"})

    assert response.status_code == 503
    payload = response.json()
    assert payload["data"]["error"] == "service_unavailable"
    assert gateway.submitted == []


@pytest.mark.anyio
async def test_rejected_send_broadcasts_chat_error(relay, gateway, broadcast) -> None:
    response = await _post({"text": "hi", "idempotencyKey": "turn-1"})
    assert response.status_code == 200

    gateway.futures[0].set_exception(RequestRejected("INVALID_REQUEST", "session not found"))
    await wait_until(lambda: broadcast.await_count == 1)

    broadcast.assert_awaited_once_with({"type": "chat.error", "runId": "turn-1", "error": "session not found"})
    assert relay.in_flight == 0


@pytest.mark.anyio
async def test_lost_connection_broadcasts_chat_error(relay, gateway, broadcast) -> None:
    await _post({"text": "hi", "idempotencyKey": "turn-2"})

    gateway.futures[0].set_exception(ConnectionLost("socket closed", 1006))
    await wait_until(lambda: broadcast.await_count == 1)

    message = broadcast.await_args.args[0]
    assert message["type"] == "chat.error"
    assert message["runId"] == "turn-2"
    assert "socket closed" in message["error"]


@pytest.mark.anyio
async def test_accepted_send_broadcasts_nothing(relay, gateway, broadcast) -> None:
    await _post({"text": "hi"})

    gateway.futures[0].set_result({"runId": "run-1"})
    await wait_until(lambda: relay.in_flight == 0)

    broadcast.assert_not_awaited()
