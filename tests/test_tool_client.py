import asyncio
from unittest.mock import AsyncMock

import pytest

from shared.errors import ConnectionClosedError, RemoteCallError
from shared.tool_client import DEFAULT_WORKER_COMMAND, ToolClient, ToolClientHolder

ECHO = {"name": "echo", "description": "Echo", "inputSchema": {"type": "object", "properties": {}, "required": []}}


@pytest.fixture
def client():
    c = ToolClient(headers={"x-api-key": "twk_default"})
    c.rpc = AsyncMock()
    return c


def test_default_command_runs_the_worker_module():
    assert ToolClient().rpc.command == DEFAULT_WORKER_COMMAND
    assert DEFAULT_WORKER_COMMAND[1:] == ["-m", "services.tool_worker.__main__"]


@pytest.mark.asyncio
async def test_list_tools_is_cached_until_close(client):
    client.rpc.request.return_value = {"tools": [ECHO]}

    assert await client.list_tools() == [ECHO]
    assert await client.list_tools() == [ECHO]
    client.rpc.request.assert_awaited_once_with("tools/list", {})

    await client.close()
    await client.list_tools()
    assert client.rpc.request.await_count == 2


@pytest.mark.asyncio
async def test_list_tools_failure_is_not_cached(client):
    client.rpc.request.side_effect = [ConnectionClosedError(), {"tools": [ECHO]}]

    assert await client.list_tools() == []
    assert await client.list_tools() == [ECHO]


@pytest.mark.asyncio
async def test_call_tool_merges_default_and_call_headers(client):
    client.rpc.request.return_value = {"content": [{"type": "text", "text": "hi"}]}

    result = await client.call_tool("echo", {"text": "hi"}, headers={"x-session-token": "tok"})

    assert result.first_text == "hi"
    assert not result.is_error
    client.rpc.request.assert_awaited_once_with(
        "tools/call",
        {"name": "echo", "arguments": {"text": "hi"}},
        headers={"x-api-key": "twk_default", "x-session-token": "tok"},
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc, expected",
    [
        (ConnectionClosedError(), "Error: connection closed"),
        (RemoteCallError("Invalid params: boom", -32602), "Error: Invalid params: boom"),
    ],
)
async def test_call_tool_never_raises(client, exc, expected):
    client.rpc.request.side_effect = exc

    result = await client.call_tool("echo", {"text": "hi"})

    assert result.is_error
    assert result.to_dict() == {"content": [{"type": "text", "text": expected}], "isError": True}


@pytest.mark.asyncio
async def test_call_tool_malformed_result(client):
    client.rpc.request.return_value = ["not", "a", "result"]

    result = await client.call_tool("echo", {"text": "hi"})

    assert result.is_error
    assert "malformed" in result.first_text


@pytest.mark.asyncio
async def test_key_management_calls(client):
    client.rpc.request.side_effect = [
        {"apiKey": "twk_new", "message": "ok"},
        {"keys": [{"label": "ci"}]},
        {"status": "revoked"},
        {"status": "not_found"},
    ]

    assert await client.generate_api_key("ci") == "twk_new"
    assert await client.list_api_keys() == [{"label": "ci"}]
    assert await client.revoke_api_key("twk_new") is True
    assert await client.revoke_api_key("twk_new") is False
    assert client.rpc.request.await_args_list[0].args == ("auth/keys.generate", {"label": "ci"})


class CountingClient:
    created = 0

    def __init__(self):
        type(self).created += 1
        self.connect_calls = 0
        self.closed = False

    async def connect(self):
        self.connect_calls += 1
        await asyncio.sleep(0.01)

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_holder_creates_one_client_for_concurrent_first_callers():
    CountingClient.created = 0
    holder = ToolClientHolder(CountingClient)

    clients = await asyncio.gather(*(holder.get() for _ in range(5)))

    assert CountingClient.created == 1
    assert all(c is clients[0] for c in clients)
    assert clients[0].connect_calls == 1


@pytest.mark.asyncio
async def test_holder_close_then_get_builds_fresh_client():
    CountingClient.created = 0
    holder = ToolClientHolder(CountingClient)
    first = await holder.get()

    await holder.close()
    second = await holder.get()

    assert first.closed
    assert second is not first
    assert CountingClient.created == 2
