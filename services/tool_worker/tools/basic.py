from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone

from services.tool_worker.registry import ToolContext, ToolDescriptor, ToolRegistry
from shared.protocol import ToolResult

logger = logging.getLogger(__name__)


async def echo(args: dict, context: ToolContext) -> ToolResult:
    return ToolResult.text(args["text"])


def health_report(context: ToolContext) -> dict:
    checks = {"repositories": False, "database": False}
    try:
        repos = context.repositories
        checks["repositories"] = True
        probe = repos.users.find("health-check")
        checks["database"] = probe.ok
    except Exception as exc:  # noqa: BLE001
        logger.warning("health probe failed: %s", exc)
    healthy = all(checks.values())
    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": context.version,
        "uptime": int(time.monotonic() - context.started_at) if context.started_at else 0,
        "checks": checks,
    }


async def health_check(args: dict, context: ToolContext) -> ToolResult:
    report = health_report(context)
    result = ToolResult.text(json.dumps(report, indent=2))
    result.is_error = report["status"] != "healthy"
    return result


def register(registry: ToolRegistry) -> None:
    registry.register(
        ToolDescriptor.build(
            "echo",
            "Echo the given text back unchanged. Useful for testing the channel.",
            {"text": {"type": "string", "description": "Text to echo"}},
            ["text"],
        ),
        echo,
    )
    registry.register(
        ToolDescriptor.build("health_check", "Report worker status, version, uptime and repository reachability."),
        health_check,
    )
