"""Tests for the completion gateway and its HTTP backends."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from swarmlib.core.errors import ConfigurationError, ProviderError, ProviderNotFoundError
from swarmlib.core.store import MemoryPersistence
from swarmlib.providers.gateway import CompletionGateway
from swarmlib.providers.llm import ChatMessage, CompletionOptions


@pytest.fixture
async def llm_server():
    """Fake LLM endpoints speaking each supported dialect."""
    requests = []

    async def openai(request):
        body = await request.json()
        requests.append({"path": request.path, "headers": dict(request.headers), "body": body})
        return web.json_response({
            "model": body["model"],
            "choices": [{"message": {"role": "assistant", "content": "openai reply"}}],
            "usage": {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10},
        })

    async def anthropic(request):
        body = await request.json()
        requests.append({"path": request.path, "headers": dict(request.headers), "body": body})
        return web.json_response({
            "content": [{"type": "text", "text": "anthropic "}, {"type": "text", "text": "reply"}],
            "usage": {"input_tokens": 4, "output_tokens": 2},
        })

    async def custom(request):
        body = await request.json()
        requests.append({"path": request.path, "headers": dict(request.headers), "body": body})
        return web.json_response({"content": "custom reply"})

    async def failing(request):
        return web.Response(status=500, text="upstream exploded")

    async def garbage(request):
        return web.Response(text="this is not json")

    async def empty(request):
        return web.json_response({"choices": [{"message": {"content": ""}}]})

    app = web.Application()
    app.add_routes([
        web.post("/v1/chat/completions", openai),
        web.post("/anthropic/messages", anthropic),
        web.post("/custom", custom),
        web.post("/fail/chat/completions", failing),
        web.post("/garbage/chat/completions", garbage),
        web.post("/empty/chat/completions", empty),
    ])
    server = TestServer(app)
    await server.start_server()
    server.requests = requests
    yield server
    await server.close()


@pytest.fixture
async def http_gateway():
    gateway = CompletionGateway(persistence=MemoryPersistence())
    yield gateway
    await gateway.shutdown()


MESSAGES = [
    ChatMessage(role="system", content="You are terse."),
    ChatMessage(role="user", content="Hi"),
]


class TestDialects:
    """Each backend kind maps to the right wire format."""

    @pytest.mark.asyncio
    async def test_openai_dialect(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({
            "kind": "openai",
            "api_key": "sk-test",
            "api_url": str(llm_server.make_url("/v1")),
            "models": ["gpt-test"],
        })
        response = await http_gateway.complete(provider_id, "gpt-test", MESSAGES, CompletionOptions(max_tokens=50))

        assert response.content == "openai reply"
        assert response.usage.total_tokens == 10
        sent = llm_server.requests[-1]
        assert sent["headers"]["Authorization"] == "Bearer sk-test"
        assert sent["body"]["max_tokens"] == 50
        assert [m["role"] for m in sent["body"]["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_anthropic_dialect(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({
            "kind": "anthropic",
            "api_key": "ak-test",
            "api_url": str(llm_server.make_url("/anthropic")),
        })
        response = await http_gateway.complete(provider_id, "claude-test", MESSAGES)

        assert response.content == "anthropic reply"
        assert response.usage.prompt_tokens == 4
        assert response.usage.total_tokens == 6
        sent = llm_server.requests[-1]
        assert sent["headers"]["x-api-key"] == "ak-test"
        assert "anthropic-version" in sent["headers"]
        assert sent["body"]["system"] == "You are terse."
        assert sent["body"]["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_custom_dialect_merges_config(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({
            "kind": "custom",
            "api_key": "token",
            "api_url": str(llm_server.make_url("/custom")),
            "config": {"stream": False, "auth_header": "X-Key", "auth_scheme": ""},
        })
        response = await http_gateway.complete(provider_id, "m", MESSAGES)

        assert response.content == "custom reply"
        assert response.usage.total_tokens == 0
        sent = llm_server.requests[-1]
        assert sent["body"]["stream"] is False
        assert sent["headers"]["X-Key"] == "token"


class TestErrors:
    """Failures surface as typed errors."""

    @pytest.mark.asyncio
    async def test_unknown_provider(self, http_gateway):
        with pytest.raises(ProviderNotFoundError):
            await http_gateway.complete("missing", "m", MESSAGES)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/fail", "/garbage"])
    async def test_bad_responses(self, http_gateway, llm_server, path):
        provider_id = await http_gateway.register({"kind": "local", "api_url": str(llm_server.make_url(path))})
        with pytest.raises(ProviderError):
            await http_gateway.complete(provider_id, "m", MESSAGES)

    @pytest.mark.asyncio
    async def test_http_status_is_kept(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({"kind": "local", "api_url": str(llm_server.make_url("/fail"))})
        with pytest.raises(ProviderError) as exc_info:
            await http_gateway.complete(provider_id, "m", MESSAGES)
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_disabled_provider(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({
            "kind": "local",
            "api_url": str(llm_server.make_url("/v1")),
            "enabled": False,
        })
        with pytest.raises(ProviderError):
            await http_gateway.complete(provider_id, "m", MESSAGES)

    @pytest.mark.asyncio
    async def test_custom_without_url(self, http_gateway):
        with pytest.raises(ConfigurationError):
            await http_gateway.register({"kind": "custom"})


class TestRegistry:
    """Provider records and the probe."""

    @pytest.mark.asyncio
    async def test_register_update_delete(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({"kind": "openai", "api_url": str(llm_server.make_url("/fail"))})
        assert provider_id.startswith("openai_")
        assert await http_gateway.test_provider(provider_id) is False

        updated = await http_gateway.update_provider(
            provider_id, {"id": "ignored", "api_url": str(llm_server.make_url("/v1"))}
        )
        assert updated.id == provider_id
        assert await http_gateway.test_provider(provider_id) is True

        assert await http_gateway.delete_provider(provider_id) is True
        assert http_gateway.list_providers() == []
        assert await http_gateway.test_provider(provider_id) is False

    @pytest.mark.asyncio
    async def test_probe_needs_content(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({"kind": "local", "api_url": str(llm_server.make_url("/empty"))})
        assert await http_gateway.test_provider(provider_id) is False

    @pytest.mark.asyncio
    async def test_probe_sends_tiny_request(self, http_gateway, llm_server):
        provider_id = await http_gateway.register({
            "kind": "local",
            "api_url": str(llm_server.make_url("/v1")),
            "models": ["small"],
        })
        assert await http_gateway.test_provider(provider_id) is True
        body = llm_server.requests[-1]["body"]
        assert body["model"] == "small"
        assert body["max_tokens"] == http_gateway.settings.test_max_tokens

    @pytest.mark.asyncio
    async def test_records_persist_and_mask_keys(self, llm_server):
        persistence = MemoryPersistence()
        gateway = CompletionGateway(persistence=persistence)
        provider_id = await gateway.register({"kind": "openai", "api_key": "secret", "name": "main"})

        reloaded = CompletionGateway(persistence=persistence)
        assert await reloaded.load() == 1
        provider = reloaded.get_provider(provider_id)
        assert provider.name == "main"
        assert provider.public_view()["api_key"] == "***"
        await gateway.shutdown()
        await reloaded.shutdown()
