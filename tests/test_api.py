"""Tests for the RPC server."""

import asyncio

import pytest
from aiohttp import WSMsgType
from aiohttp.test_utils import TestClient, TestServer

from swarmlib.api.server import RpcServer, error_status
from swarmlib.core.errors import AgentNotFoundError, OperationTimeoutError, ProviderError, StateError
from swarmlib.core.settings import ApiSettings, SwarmSettings
from swarmlib.core.store import MemoryPersistence
from swarmlib.runtime import SwarmRuntime

from .conftest import ScriptedBackend

TOKEN = "secret"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
async def runtime():
    runtime = SwarmRuntime(SwarmSettings(), persistence=MemoryPersistence())
    await runtime.start()
    yield runtime
    await runtime.shutdown()


@pytest.fixture
async def client(runtime):
    server = RpcServer(runtime, ApiSettings(auth_token=TOKEN))
    client = TestClient(TestServer(server.app))
    await client.start_server()
    yield client
    await client.close()


async def call(client, method, **params):
    response = await client.post("/rpc", json={"method": method, "params": params}, headers=AUTH)
    return response.status, await response.json()


class TestErrorMapping:

    @pytest.mark.parametrize("error,status", [
        (AgentNotFoundError("a"), 404),
        (OperationTimeoutError("slow"), 408),
        (StateError("bad"), 409),
        (ProviderError("down"), 502),
        (ValueError("bad"), 422),
        (RuntimeError("boom"), 500),
    ])
    def test_error_status(self, error, status):
        assert error_status(error) == status


class TestRpc:
    """Request/response surface."""

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.post("/rpc", json={"method": "agent.list"})
        assert response.status == 401

    @pytest.mark.asyncio
    async def test_unknown_method_and_bad_params(self, client):
        status, body = await call(client, "agent.fly")
        assert status == 404
        assert body["error"]["type"] == "MethodNotFound"

        status, body = await call(client, "agent.get", wrong="x")
        assert status == 422

    @pytest.mark.asyncio
    async def test_bad_body(self, client):
        response = await client.post("/rpc", data="not json", headers=AUTH)
        assert response.status == 400

    @pytest.mark.asyncio
    async def test_agent_round_trip(self, client, runtime):
        provider_id = await runtime.gateway.register({"kind": "local", "api_key": "k"}, backend=ScriptedBackend())

        status, body = await call(client, "agent.create", data={
            "name": "writer",
            "provider_id": provider_id,
            "model": "m",
        })
        assert status == 200
        agent_id = body["result"]["id"]
        assert body["result"]["status"] == "idle"

        status, body = await call(client, "agent.list")
        assert [a["id"] for a in body["result"]] == [agent_id]

        status, body = await call(client, "agent.get", agent_id="missing")
        assert status == 404
        assert body["error"]["type"] == "AgentNotFoundError"
        assert body["error"]["context"] == {"resource_id": "missing", "resource_type": "agent"}
        assert body["error"]["cause"] is None

        status, body = await call(client, "provider.list")
        assert body["result"][0]["api_key"] == "***"

    @pytest.mark.asyncio
    async def test_rejected_command(self, client):
        status, body = await call(client, "command.execute", command="sudo rm -rf /")
        assert status == 403
        assert body["error"]["type"] == "PermissionDeniedError"

        status, body = await call(client, "command.is_safe", command="echo hi")
        assert body["result"] is True

    @pytest.mark.asyncio
    async def test_memory_and_prompts(self, client):
        status, body = await call(client, "memory.set", key="k", value=[1, 2], agent_id="a")
        assert body["result"] is True
        status, body = await call(client, "memory.get", key="k", agent_id="b")
        assert body["result"] == [1, 2]

        status, body = await call(client, "prompt.pending")
        assert body["result"] == []
        status, body = await call(client, "prompt.respond", prompt_id="nope", response="yes")
        assert body["result"] is False


class TestEvents:
    """Websocket push notifications."""

    @pytest.mark.asyncio
    async def test_events_are_forwarded(self, client):
        ws = await client.ws_connect(f"/events?topics=memory:*&token={TOKEN}")
        await asyncio.sleep(0.05)
        await call(client, "memory.set", key="shared", value=1, agent_id="a")

        msg = await asyncio.wait_for(ws.receive(), 2)
        assert msg.type == WSMsgType.TEXT
        event = msg.json()
        assert event["topic"] == "memory:updated"
        assert event["payload"]["key"] == "shared"
        await ws.close()

    @pytest.mark.asyncio
    async def test_events_require_token(self, client):
        response = await client.get("/events")
        assert response.status == 401
