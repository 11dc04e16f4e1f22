"""RPC server for a swarm runtime.

Exposes the component operations as ``POST /rpc`` calls of the form
``{"method": "agent.start", "params": {"agent_id": "..."}}`` and forwards
every published event to ``GET /events`` websocket clients.
"""

import asyncio
import functools
import inspect
import json
import logging
from typing import Any, Callable, Dict, Optional

from aiohttp import WSMsgType, web
from pydantic import BaseModel, ValidationError

from ..core.errors import (
    BaseError,
    NotFoundError,
    OperationCancelledError,
    OperationTimeoutError,
    ParseError,
    PermissionDeniedError,
    ProviderError,
    StateError
)
from ..core.settings import ApiSettings
from ..runtime import SwarmRuntime

logger = logging.getLogger(__name__)

RpcMethod = Callable[..., Any]

# First matching class wins
ERROR_STATUS = (
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (OperationTimeoutError, 408),
    (OperationCancelledError, 409),
    (StateError, 409),
    (ProviderError, 502),
    (ParseError, 422),
    (ValidationError, 422),
    (ValueError, 422),
)


def error_status(error: Exception) -> int:
    """HTTP status for an exception raised by an RPC method."""
    for error_class, status in ERROR_STATUS:
        if isinstance(error, error_class):
            return status
    return 500


def to_jsonable(value: Any) -> Any:
    """Convert models (and containers of models) into JSON-friendly data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


_dumps = functools.partial(json.dumps, default=str)


class RpcServer:
    """aiohttp application serving one ``SwarmRuntime``.

    Requests carry an optional ``Authorization: Bearer <token>`` header,
    checked when ``auth_token`` is configured. Websocket clients may pass
    the token as a ``token`` query parameter instead.
    """

    def __init__(self, runtime: SwarmRuntime, settings: Optional[ApiSettings] = None):
        self.runtime = runtime
        self.settings = settings or runtime.settings.api
        self.auth_token = self.settings.auth_token
        self.methods: Dict[str, RpcMethod] = {}
        self._register_methods()

        self.app = web.Application()
        self.app.add_routes([
            web.post('/rpc', self.handle_rpc),
            web.get('/events', self.handle_events),
            web.get('/health', self.handle_health),
        ])
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def _register_methods(self) -> None:
        orchestrator = self.runtime.orchestrator
        bus = self.runtime.bus
        executor = self.runtime.executor
        gate = self.runtime.gate
        gateway = self.runtime.gateway

        self.methods.update({
            "agent.create": orchestrator.create_agent,
            "agent.start": orchestrator.start_agent,
            "agent.stop": orchestrator.stop_agent,
            "agent.delete": orchestrator.delete_agent,
            "agent.list": orchestrator.list_agents,
            "agent.get": orchestrator.get_agent,
            "agent.update": orchestrator.update_agent,

            "message.send": orchestrator.send_message,
            "message.get": orchestrator.get_messages,
            "message.tasks": orchestrator.get_tasks,
            "message.delegate": orchestrator.delegate_task,
            "message.mark_read": bus.mark_as_read,
            "message.conversation": bus.get_conversation,

            "memory.set": bus.set_shared_data,
            "memory.get": bus.get_shared_data,
            "memory.list": bus.list_shared_keys,
            "memory.delete": bus.delete_shared_data,

            "command.execute": executor.execute_command,
            "command.kill": executor.kill_command,
            "command.running": executor.get_running_commands,
            "command.history": executor.get_history,
            "command.clear_history": executor.clear_history,
            "command.is_safe": executor.is_command_safe,
            "command.permissions": executor.get_permissions,
            "command.update_permissions": executor.update_permissions,

            "prompt.respond": gate.respond_to_prompt,
            "prompt.cancel": gate.cancel_prompt,
            "prompt.pending": gate.get_pending_prompts,
            "prompt.current": gate.get_current_prompt,
            "prompt.history": gate.get_prompt_history,
            "prompt.clear_history": gate.clear_history,
            "prompt.set_timeout": gate.set_prompt_timeout,

            "provider.register": gateway.register,
            "provider.list": self._list_providers,
            "provider.get": self._get_provider,
            "provider.update": self._update_provider,
            "provider.test": gateway.test_provider,
            "provider.delete": gateway.delete_provider,
        })

    # Provider records leave the server with their credential masked

    def _list_providers(self):
        return [p.public_view() for p in self.runtime.gateway.list_providers()]

    def _get_provider(self, provider_id: str):
        return self.runtime.gateway.get_provider(provider_id).public_view()

    async def _update_provider(self, provider_id: str, updates: Dict[str, Any]):
        provider = await self.runtime.gateway.update_provider(provider_id, updates)
        return provider.public_view()

    # Handlers

    def _authorized(self, request: web.Request) -> bool:
        if not self.auth_token:
            return True
        if request.headers.get('Authorization') == f"Bearer {self.auth_token}":
            return True
        return request.query.get('token') == self.auth_token

    @staticmethod
    def _error(error_type: str, message: str, status: int) -> web.Response:
        return web.json_response({"error": {"type": error_type, "message": message}}, status=status)

    async def handle_rpc(self, request: web.Request) -> web.Response:
        """Dispatch one RPC call."""
        if not self._authorized(request):
            return self._error("Unauthorized", "Missing or invalid token", 401)

        try:
            body = await request.json()
        except json.JSONDecodeError:
            return self._error("BadRequest", "Request body must be JSON", 400)
        if not isinstance(body, dict) or not isinstance(body.get("method"), str):
            return self._error("BadRequest", "Request needs a 'method' string", 400)

        name = body["method"]
        params = body.get("params") or {}
        method = self.methods.get(name)
        if method is None:
            return self._error("MethodNotFound", f"Unknown method '{name}'", 404)
        if not isinstance(params, dict):
            return self._error("InvalidParams", "'params' must be an object", 422)

        try:
            bound = inspect.signature(method).bind(**params)
        except TypeError as e:
            return self._error("InvalidParams", f"{name}: {e}", 422)

        try:
            result = method(*bound.args, **bound.kwargs)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            raise
        except BaseError as e:
            logger.info(f"RPC {name} failed: {e}")
            return web.json_response(
                {"error": e.to_dict()},
                status=error_status(e),
                dumps=_dumps
            )
        except (ValidationError, ValueError) as e:
            return self._error(e.__class__.__name__, str(e), error_status(e))
        except Exception as e:
            logger.error(f"RPC {name} raised unexpectedly: {e}", exc_info=True)
            return self._error("InternalError", str(e), 500)

        return web.json_response({"result": to_jsonable(result)}, dumps=_dumps)

    async def handle_events(self, request: web.Request) -> web.StreamResponse:
        """Stream events matching the ``topics`` query pattern (default all)."""
        if not self._authorized(request):
            return self._error("Unauthorized", "Missing or invalid token", 401)

        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)
        subscription = self.runtime.events.subscribe(request.query.get('topics', '*'))
        sender = asyncio.ensure_future(self._forward_events(ws, subscription))
        logger.info(f"Event client connected ({subscription.pattern})")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    logger.warning(f"Event websocket error: {ws.exception()}")
                    break
        finally:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            subscription.close()
            logger.info("Event client disconnected")
        return ws

    @staticmethod
    async def _forward_events(ws: web.WebSocketResponse, subscription) -> None:
        async for event in subscription:
            if ws.closed:
                return
            try:
                await ws.send_str(_dumps(event.model_dump(mode="json")))
            except ConnectionResetError:
                return

    async def handle_health(self, request: web.Request) -> web.Response:
        orchestrator = self.runtime.orchestrator
        return web.json_response({
            "status": "ok",
            "agents": len(orchestrator.list_agents()),
            "running": sum(1 for a in orchestrator.list_agents() if a.status.value == "running"),
        })

    # Lifecycle

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.settings.host, self.settings.port)
        await self.site.start()
        logger.info(f"RPC server started at http://{self.settings.host}:{self.settings.port}")

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            self.site = None
            logger.info("RPC server stopped")
