from __future__ import annotations

import json

from services.tool_worker.auth import validate_organization_access, validate_organization_ownership
from services.tool_worker.registry import ToolContext, ToolDescriptor, ToolRegistry
from shared.protocol import ToolResult

ACCESS_DENIED = "Access denied. You are not a member of this organization."


def _public(org: dict) -> dict:
    return {k: org.get(k) for k in ("id", "name", "description", "ownerId", "createdAt", "updatedAt")}


def _json(data) -> ToolResult:
    return ToolResult.text(json.dumps(data, indent=2))


async def create_organization(args: dict, context: ToolContext) -> ToolResult:
    repos = context.repositories
    created = repos.organizations.create(
        {"name": args["name"], "description": args.get("description") or "", "ownerId": context.principal_id}
    )
    if not created.ok:
        return ToolResult.error(f"Error: {created.error}")
    org = created.value
    membership = repos.members.create({"organizationId": org["id"], "userId": context.principal_id, "role": "owner"})
    if not membership.ok:
        return ToolResult.error(f"Error: {membership.error}")
    return _json(_public(org))


async def get_organization(args: dict, context: ToolContext) -> ToolResult:
    org_id = args["organizationId"]
    if not validate_organization_access(context.principal_id, org_id, context.repositories):
        return ToolResult.error(ACCESS_DENIED)
    found = context.repositories.organizations.find(org_id)
    if not found.ok:
        return ToolResult.error(f"Error: {found.error}")
    if not found.value:
        return ToolResult.error("Organization not found")
    return _json(_public(found.value))


async def list_my_organizations(args: dict, context: ToolContext) -> ToolResult:
    repos = context.repositories
    memberships = repos.members.find_by(userId=context.principal_id)
    if not memberships.ok:
        return ToolResult.error(f"Error: {memberships.error}")
    orgs = []
    for m in memberships.value:
        found = repos.organizations.find(m["organizationId"])
        if found.ok and found.value:
            orgs.append({**_public(found.value), "role": m.get("role", "member")})
    return _json(orgs)


async def update_organization(args: dict, context: ToolContext) -> ToolResult:
    org_id = args["organizationId"]
    if not validate_organization_ownership(context.principal_id, org_id, context.repositories):
        return ToolResult.error("Access denied. Only the organization owner can update it.")
    changes = {k: args[k] for k in ("name", "description") if args.get(k) is not None}
    updated = context.repositories.organizations.update(org_id, changes)
    if not updated.ok:
        return ToolResult.error(f"Error: {updated.error}")
    return _json(_public(updated.value))


async def delete_organization(args: dict, context: ToolContext) -> ToolResult:
    org_id = args["organizationId"]
    repos = context.repositories
    if not validate_organization_ownership(context.principal_id, org_id, repos):
        return ToolResult.error("Access denied. Only the organization owner can delete it.")
    deleted = repos.organizations.delete(org_id)
    if not deleted.ok:
        return ToolResult.error(f"Error: {deleted.error}")
    for m in repos.members.find_by(organizationId=org_id).value or []:
        repos.members.delete(m["id"])
    return ToolResult.text(f"Organization {org_id} deleted")


def register(registry: ToolRegistry) -> None:
    org_id = {"organizationId": {"type": "string", "description": "Organization ID"}}
    registry.register(
        ToolDescriptor.build(
            "create_organization",
            "Create a new organization owned by the caller",
            {
                "name": {"type": "string", "description": "Organization name"},
                "description": {"type": "string", "description": "Organization description"},
            },
            ["name"],
        ),
        create_organization,
    )
    registry.register(ToolDescriptor.build("get_organization", "Get organization details", org_id, ["organizationId"]), get_organization)
    registry.register(ToolDescriptor.build("list_my_organizations", "List organizations the caller belongs to"), list_my_organizations)
    registry.register(
        ToolDescriptor.build(
            "update_organization",
            "Rename or re-describe an organization (owner only)",
            {
                **org_id,
                "name": {"type": "string", "description": "New name"},
                "description": {"type": "string", "description": "New description"},
            },
            ["organizationId"],
        ),
        update_organization,
    )
    registry.register(
        ToolDescriptor.build("delete_organization", "Delete an organization (owner only)", org_id, ["organizationId"]),
        delete_organization,
    )
