from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable
from datetime import datetime
from typing import Any

from shared.proc_rpc import ProcClient
from shared.protocol import METHOD_CALL_TOOL, METHOD_LIST_TOOLS, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COMMAND = [sys.executable, "-m", "services.tool_worker.__main__"]


class ToolClient:
    """Request/response view of the tool worker.

    ``call_tool`` never raises: any failure on the way (write error, closed
    channel, error reply) comes back as an ``isError`` result.
    """

    def __init__(self, command: list[str] | None = None, *, cwd=None, env=None, headers: dict[str, str] | None = None):
        self.rpc = ProcClient(command or DEFAULT_WORKER_COMMAND, cwd=cwd, env=env)
        self.headers = dict(headers or {})
        self._tools_cache: list[dict] | None = None

    @property
    def connected(self) -> bool:
        return self.rpc.connected

    async def connect(self) -> None:
        await self.rpc.start()

    async def list_tools(self) -> list[dict]:
        if self._tools_cache is not None:
            return self._tools_cache
        try:
            result = await self.rpc.request(METHOD_LIST_TOOLS, {})
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to list tools: %s", exc)
            return []
        tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools, list):
            logger.error("malformed tools/list result: %r", result)
            return []
        self._tools_cache = tools
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None, *, headers: dict[str, str] | None = None) -> ToolResult:
        merged = {**self.headers, **(headers or {})}
        try:
            result = await self.rpc.request(METHOD_CALL_TOOL, {"name": name, "arguments": arguments or {}}, headers=merged)
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to call tool %s: %s", name, exc)
            return ToolResult.error(f"Error: {exc}")
        if not isinstance(result, dict):
            return ToolResult.error(f"Error: malformed result from tool '{name}'")
        return ToolResult.from_dict(result)

    async def generate_api_key(self, label: str, *, expires_at: datetime | None = None, headers: dict[str, str] | None = None) -> str:
        params: dict[str, Any] = {"label": label}
        if expires_at is not None:
            params["expiresAt"] = expires_at.isoformat()
        result = await self.rpc.request("auth/keys.generate", params, headers={**self.headers, **(headers or {})})
        return result["apiKey"]

    async def revoke_api_key(self, api_key: str, *, headers: dict[str, str] | None = None) -> bool:
        result = await self.rpc.request("auth/keys.revoke", {"apiKey": api_key}, headers={**self.headers, **(headers or {})})
        return result.get("status") == "revoked"

    async def list_api_keys(self, *, headers: dict[str, str] | None = None) -> list[dict]:
        result = await self.rpc.request("auth/keys.list", {}, headers={**self.headers, **(headers or {})})
        return list(result.get("keys", []))

    async def close(self) -> None:
        await self.rpc.close()
        self._tools_cache = None

    async def __aenter__(self) -> ToolClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class ToolClientHolder:
    """Process-wide ``ToolClient`` created on first use.

    Concurrent first callers share one creation under the lock, so only one
    worker process is ever spawned. A client whose worker died is handed back
    as is; reconnecting is the caller's explicit decision.
    """

    def __init__(self, factory: Callable[[], ToolClient] = ToolClient):
        self._factory = factory
        self._client: ToolClient | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> ToolClient:
        client = self._client
        if client is not None:
            return client
        async with self._lock:
            if self._client is None:
                client = self._factory()
                await client.connect()
                self._client = client
            return self._client

    async def close(self) -> None:
        async with self._lock:
            client, self._client = self._client, None
        if client is not None:
            await client.close()
