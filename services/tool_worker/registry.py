from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from services.tool_worker.auth import AuthContext, AuthMiddleware
from shared.errors import AuthenticationError, ToolRegistrationError
from shared.protocol import VERSION, ToolResult
from shared.repository import Repositories

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
}


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: dict[str, Any]

    @classmethod
    def build(cls, name: str, description: str, properties: dict[str, dict] | None = None, required: list[str] | None = None) -> ToolDescriptor:
        return cls(
            name=name,
            description=description,
            input_schema={"type": "object", "properties": dict(properties or {}), "required": list(required or [])},
        )

    @property
    def required(self) -> list[str]:
        return list(self.input_schema.get("required") or [])

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


@dataclass(slots=True)
class ToolContext:
    repositories: Repositories
    auth: AuthContext | None = None
    version: str = VERSION
    started_at: float = 0.0

    @property
    def principal_id(self) -> str | None:
        return self.auth.principal_id if self.auth else None


ToolHandler = Callable[[dict[str, Any], ToolContext], "ToolResult | Awaitable[ToolResult]"]


def validate_arguments(schema: Mapping[str, Any], arguments: Mapping[str, Any]) -> list[str]:
    problems: list[str] = []
    properties = schema.get("properties") or {}
    for name in schema.get("required") or []:
        if arguments.get(name) is None:
            problems.append(f"missing required field '{name}'")
    for name, value in arguments.items():
        spec = properties.get(name)
        if not spec or value is None:
            continue
        allowed = _JSON_TYPES.get(spec.get("type", ""))
        if allowed is None:
            continue
        # bool is an int subclass; JSON keeps them apart
        if isinstance(value, bool) and bool not in allowed:
            problems.append(f"field '{name}' must be {spec['type']}")
        elif isinstance(value, float) and spec["type"] == "integer":
            # JSON has one number type, so 2.0 is still an integer
            if not value.is_integer():
                problems.append(f"field '{name}' must be integer")
        elif not isinstance(value, allowed):
            problems.append(f"field '{name}' must be {spec['type']}")
    return problems


@dataclass(slots=True)
class _Entry:
    descriptor: ToolDescriptor
    handler: ToolHandler


class ToolRegistry:
    def __init__(self, auth: AuthMiddleware, context: ToolContext):
        self.auth = auth
        self.context = context
        self._tools: dict[str, _Entry] = {}

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler) -> None:
        if not descriptor.name:
            raise ToolRegistrationError("tool has no name")
        if descriptor.name in self._tools:
            raise ToolRegistrationError(f"tool already registered: {descriptor.name}")
        self._tools[descriptor.name] = _Entry(descriptor, handler)
        logger.debug("registered tool %s", descriptor.name)

    def tool(self, name: str, description: str, properties: dict[str, dict] | None = None, required: list[str] | None = None):
        """Decorator form of ``register``."""

        def _wrap(handler: ToolHandler) -> ToolHandler:
            self.register(ToolDescriptor.build(name, description, properties, required), handler)
            return handler

        return _wrap

    def list_tools(self) -> list[ToolDescriptor]:
        return [entry.descriptor for entry in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def dispatch(self, name: Any, arguments: Any, headers: Mapping[str, Any] | None) -> ToolResult:
        try:
            auth = self.auth.authenticate(headers)
        except AuthenticationError as exc:
            logger.info("rejected call to %s: %s", name, exc)
            return ToolResult.error(str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("auth middleware failed for %s", name)
            return ToolResult.error(f"Error: {exc}")

        if not isinstance(name, str) or not name:
            return ToolResult.error("Invalid tool call: name must be a non-empty string")
        if arguments is not None and not isinstance(arguments, dict):
            return ToolResult.error(f"Invalid tool call: arguments must be an object, got {type(arguments).__name__}")

        entry = self._tools.get(name)
        if entry is None:
            return ToolResult.error(f"Tool '{name}' not found")

        args = dict(arguments or {})
        problems = validate_arguments(entry.descriptor.input_schema, args)
        if problems:
            return ToolResult.error(f"Invalid arguments for tool '{name}': " + "; ".join(problems))
        properties = entry.descriptor.input_schema.get("properties") or {}
        for key, value in args.items():
            if isinstance(value, float) and (properties.get(key) or {}).get("type") == "integer":
                args[key] = int(value)

        context = replace(self.context, auth=auth)
        try:
            result = entry.handler(args, context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001
            logger.exception("tool %s raised", name)
            return ToolResult.error(f"Error: {exc}")

        if not isinstance(result, ToolResult):
            logger.error("tool %s returned %r instead of ToolResult", name, type(result).__name__)
            return ToolResult.error(f"Error: tool '{name}' returned an invalid result")
        return result
