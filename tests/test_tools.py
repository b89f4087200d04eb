import json
import time

import pytest

from services.tool_worker.auth import AuthContext
from services.tool_worker.registry import ToolContext
from services.tool_worker.tools import basic, entities, organization
from shared.repository import Repositories
from shared.result import Result


def ctx(user: str = "user-1", repos: Repositories | None = None) -> ToolContext:
    return ToolContext(repositories=repos or Repositories(), auth=AuthContext(user, "token", "tok"), started_at=time.monotonic())


@pytest.mark.asyncio
async def test_echo():
    assert (await basic.echo({"text": "hi"}, ctx())).to_dict() == {"content": [{"type": "text", "text": "hi"}]}


@pytest.mark.asyncio
async def test_health_check_healthy():
    result = await basic.health_check({}, ctx())
    report = json.loads(result.first_text)

    assert not result.is_error
    assert report["status"] == "healthy"
    assert report["checks"] == {"repositories": True, "database": True}
    assert report["uptime"] >= 0


@pytest.mark.asyncio
async def test_health_check_unhealthy_when_store_fails():
    repos = Repositories()
    repos.users.find = lambda _id: Result.failure("db down")

    result = await basic.health_check({}, ctx(repos=repos))

    assert result.is_error
    assert json.loads(result.first_text)["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_organization_lifecycle():
    repos = Repositories()
    owner, member, stranger = ctx("owner", repos), ctx("member", repos), ctx("stranger", repos)

    created = json.loads((await organization.create_organization({"name": "Acme"}, owner)).first_text)
    org_id = created["id"]
    assert created["ownerId"] == "owner"
    repos.members.create({"organizationId": org_id, "userId": "member", "role": "member"})

    assert json.loads((await organization.get_organization({"organizationId": org_id}, member)).first_text)["name"] == "Acme"
    denied = await organization.get_organization({"organizationId": org_id}, stranger)
    assert denied.is_error and denied.first_text == organization.ACCESS_DENIED

    mine = json.loads((await organization.list_my_organizations({}, owner)).first_text)
    assert [(o["name"], o["role"]) for o in mine] == [("Acme", "owner")]

    assert (await organization.update_organization({"organizationId": org_id, "name": "Nope"}, member)).is_error
    renamed = await organization.update_organization({"organizationId": org_id, "name": "Acme 2"}, owner)
    assert json.loads(renamed.first_text)["name"] == "Acme 2"

    assert (await organization.delete_organization({"organizationId": org_id}, member)).is_error
    assert not (await organization.delete_organization({"organizationId": org_id}, owner)).is_error
    assert repos.members.find_by(organizationId=org_id).value == []


@pytest.mark.asyncio
async def test_create_entities():
    repos = Repositories()
    project = entities._create_handler("project")

    result = await project({"name": "Roadmap"}, ctx(repos=repos))
    row = json.loads(result.first_text)

    assert row["name"] == "Roadmap"
    assert row["description"] == ""
    assert row["createdBy"] == "user-1"
    assert repos.projects.find(row["id"]).value["name"] == "Roadmap"


@pytest.mark.asyncio
async def test_create_task_validates_due_date():
    task = entities._create_handler("task")

    bad = await task({"name": "Ship", "dueDate": "next week"}, ctx())
    good = await task({"name": "Ship", "dueDate": "2026-03-01", "assigneeId": "user-2"}, ctx())

    assert bad.is_error and "dueDate" in bad.first_text
    assert json.loads(good.first_text)["assigneeId"] == "user-2"


@pytest.mark.asyncio
async def test_create_entity_in_foreign_organization_is_denied():
    repos = Repositories()
    org = repos.organizations.create({"name": "Other", "ownerId": "someone"}).value

    result = await entities._create_handler("team")({"name": "Ops", "organizationId": org["id"]}, ctx(repos=repos))

    assert result.is_error
    assert "Access denied" in result.first_text
    assert repos.teams.find_by().value == []
