"""RPC surface over aiohttp."""

from .server import RpcServer, error_status, to_jsonable

__all__ = ["RpcServer", "error_status", "to_jsonable"]
