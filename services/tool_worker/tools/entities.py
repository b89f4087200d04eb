from __future__ import annotations

import json
from datetime import date

from services.tool_worker.auth import validate_organization_access
from services.tool_worker.registry import ToolContext, ToolDescriptor, ToolRegistry
from shared.protocol import ToolResult

_COMMON = {
    "name": {"type": "string", "description": "Name"},
    "description": {"type": "string", "description": "Description"},
    "organizationId": {"type": "string", "description": "Owning organization ID"},
}

_EXTRA = {
    "project": {},
    "team": {},
    "department": {"parentId": {"type": "string", "description": "Parent department ID"}},
    "task": {
        "assigneeId": {"type": "string", "description": "User the task is assigned to"},
        "dueDate": {"type": "string", "description": "Due date, YYYY-MM-DD"},
        "projectId": {"type": "string", "description": "Project the task belongs to"},
    },
}


def _create_handler(entity_type: str):
    fields = tuple(_COMMON) + tuple(_EXTRA[entity_type])

    async def handler(args: dict, context: ToolContext) -> ToolResult:
        org_id = args.get("organizationId")
        if org_id and not validate_organization_access(context.principal_id, org_id, context.repositories):
            return ToolResult.error("Access denied. You are not a member of this organization.")
        if args.get("dueDate"):
            try:
                date.fromisoformat(args["dueDate"])
            except ValueError:
                return ToolResult.error(f"Invalid dueDate '{args['dueDate']}', expected YYYY-MM-DD")
        data = {k: args[k] for k in fields if args.get(k) is not None}
        data.setdefault("description", "")
        data["createdBy"] = context.principal_id
        created = context.repositories.for_entity(entity_type).create(data)
        if not created.ok:
            return ToolResult.error(f"Error: {created.error}")
        return ToolResult.text(json.dumps(created.value, indent=2))

    handler.__name__ = f"create_{entity_type}"
    return handler


def register(registry: ToolRegistry) -> None:
    for entity_type, extra in _EXTRA.items():
        registry.register(
            ToolDescriptor.build(f"create_{entity_type}", f"Create a new {entity_type}", {**_COMMON, **extra}, ["name"]),
            _create_handler(entity_type),
        )
