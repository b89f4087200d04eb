import itertools
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.assistant.workflows import WorkflowCoordinator
from shared.protocol import ToolResult


def tool(name):
    return {"name": name, "description": name, "inputSchema": {"type": "object", "properties": {}, "required": []}}


@pytest.fixture
def client():
    c = MagicMock()
    c.list_tools = AsyncMock(return_value=[tool("create_task"), tool("create_organization")])
    c.call_tool = AsyncMock(return_value=ToolResult.text('{"id": "t1"}'))
    return c


@pytest.fixture
def coordinator(client):
    ids = itertools.count(1)
    return WorkflowCoordinator(client, id_factory=lambda: f"wf-{next(ids)}")


@pytest.mark.asyncio
async def test_task_conversation_ends_in_one_tool_call(coordinator, client):
    started = await coordinator.start("task", {"name": "Ship"})
    assert started["ok"]
    assert started["workflowId"] == "wf-1"
    assert started["step"] == "collect_description"

    await coordinator.reply("wf-1", {"description": "v1"})
    await coordinator.reply("wf-1", {"assigneeId": "user-2"})
    ready = await coordinator.reply("wf-1", {"dueDate": "2026-03-01"})
    assert ready["status"] == "confirming"
    assert "proceed" in ready["prompt"]
    client.call_tool.assert_not_awaited()

    done = await coordinator.confirm("wf-1", headers={"x-session-token": "tok"})

    assert done["ok"]
    assert done["status"] == "completed"
    assert done["result"] == {"content": [{"type": "text", "text": '{"id": "t1"}'}]}
    client.call_tool.assert_awaited_once_with(
        "create_task",
        {"name": "Ship", "description": "v1", "assigneeId": "user-2", "dueDate": "2026-03-01"},
        headers={"x-session-token": "tok"},
    )


@pytest.mark.asyncio
async def test_tool_failure_cancels_workflow(coordinator, client):
    client.call_tool.return_value = ToolResult.error("Access denied. You are not a member of this organization.")
    await coordinator.start("organization", {"name": "Acme", "description": "x"})

    done = await coordinator.confirm("wf-1")

    assert not done["ok"]
    assert done["status"] == "cancelled"
    assert done["error"].startswith("Access denied")
    again = await coordinator.confirm("wf-1")
    assert not again["ok"]
    assert client.call_tool.await_count == 1


@pytest.mark.asyncio
async def test_start_requires_tool_in_catalog(coordinator, client):
    result = await coordinator.start("project")

    assert not result["ok"]
    assert "create_project" in result["error"]
    assert coordinator.get("wf-1") is None


@pytest.mark.asyncio
async def test_start_unknown_entity(coordinator, client):
    result = await coordinator.start("widget")

    assert not result["ok"]
    client.list_tools.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_workflow_and_bad_order(coordinator):
    assert not (await coordinator.reply("nope", {}))["ok"]
    assert not (await coordinator.confirm("nope"))["ok"]
    assert not coordinator.cancel("nope")["ok"]

    await coordinator.start("task")
    early = await coordinator.confirm("wf-1")
    assert not early["ok"]
    assert "nothing to confirm" in early["error"]


@pytest.mark.asyncio
async def test_cancel(coordinator, client):
    await coordinator.start("task")

    cancelled = coordinator.cancel("wf-1")

    assert cancelled["ok"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["prompt"] is None
    assert not (await coordinator.reply("wf-1", {"name": "late"}))["ok"]
    client.call_tool.assert_not_awaited()
