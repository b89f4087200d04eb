from __future__ import annotations

import importlib
import logging
import time
from datetime import datetime, timezone

from services.tool_worker.auth import APIKeyManager, AuthMiddleware
from services.tool_worker.registry import ToolContext, ToolRegistry
from shared.config import RuntimeConfig
from shared.protocol import METHOD_CALL_TOOL, METHOD_LIST_TOOLS, VERSION
from shared.repository import Repositories
from shared.tokens import TokenSigner

logger = logging.getLogger(__name__)

BUILTIN_TOOL_MODULES = (
    "services.tool_worker.tools.basic",
    "services.tool_worker.tools.organization",
    "services.tool_worker.tools.entities",
)


class ToolWorkerService:
    def __init__(self, config: RuntimeConfig, *, repositories: Repositories | None = None) -> None:
        self.config = config
        self.repositories = repositories or Repositories()
        self.signer = TokenSigner(config.token_secret)
        self.keys = APIKeyManager(prefix=config.api_key_prefix)
        self.auth = AuthMiddleware(self.keys, self.signer.subject)
        self.registry = ToolRegistry(
            self.auth,
            ToolContext(repositories=self.repositories, version=VERSION, started_at=time.monotonic()),
        )
        for module_name in (*BUILTIN_TOOL_MODULES, *config.tool_modules):
            self._load_tools(module_name)

    def _load_tools(self, module_name: str) -> None:
        module = importlib.import_module(module_name)
        register = getattr(module, "register", None)
        if not callable(register):
            raise ValueError(f"tool module {module_name} has no register(registry) function")
        before = len(self.registry.list_tools())
        register(self.registry)
        logger.info("loaded %d tools from %s", len(self.registry.list_tools()) - before, module_name)

    async def list_tools(self, params, headers, req_id):
        return {"tools": [d.to_dict() for d in self.registry.list_tools()]}

    async def call_tool(self, params, headers, req_id):
        # malformed calls come back as tool errors once the caller is authenticated
        result = await self.registry.dispatch(params.get("name"), params.get("arguments"), headers)
        return result.to_dict()

    async def generate_key(self, params, headers, req_id):
        ctx = self.auth.authenticate_token(headers)
        expires_at = None
        if params.get("expiresAt"):
            expires_at = datetime.fromisoformat(params["expiresAt"])
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
        raw = self.keys.generate_api_key(ctx.principal_id, params["label"], expires_at)
        return {
            "apiKey": raw,
            "message": "API key generated successfully. Save this key securely.",
        }

    async def revoke_key(self, params, headers, req_id):
        ctx = self.auth.authenticate_token(headers)
        revoked = self.keys.revoke_api_key(params["apiKey"], ctx.principal_id)
        return {"status": "revoked" if revoked else "not_found"}

    async def list_keys(self, params, headers, req_id):
        ctx = self.auth.authenticate_token(headers)
        return {"keys": self.keys.list_api_keys(ctx.principal_id)}

    def ops(self):
        return {
            METHOD_LIST_TOOLS: self.list_tools,
            METHOD_CALL_TOOL: self.call_tool,
            "auth/keys.generate": self.generate_key,
            "auth/keys.revoke": self.revoke_key,
            "auth/keys.list": self.list_keys,
        }
