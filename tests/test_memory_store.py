import threading

from shared.memory_store import MemoryStore
from shared.protocol import ToolResult
from shared.repository import Repositories


def test_get_put_delete():
    store = MemoryStore()
    store.put("a", 1)

    assert store.get("a") == 1
    assert store.delete("a") is True
    assert store.delete("a") is False
    assert store.get("a") is None


def test_expire_only_drops_matching_values():
    store = MemoryStore()
    store.put("old", {"age": 10})
    store.put("new", {"age": 1})

    assert store.expire("old", lambda v: v["age"] > 5) is True
    assert store.expire("new", lambda v: v["age"] > 5) is False
    assert store.expire("missing", lambda v: True) is False
    assert store.values() == [{"age": 1}]


def test_concurrent_puts_are_serialized():
    store = MemoryStore()

    def writer(prefix):
        for i in range(200):
            store.put(f"{prefix}-{i}", i)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store) == 800


def test_repository_results():
    repos = Repositories()
    created = repos.tasks.create({"name": "t"})

    assert created.ok
    assert repos.tasks.update(created.value["id"], {"name": "u"}).value["name"] == "u"
    assert repos.tasks.delete(created.value["id"]).ok
    missing = repos.tasks.delete(created.value["id"])
    assert not missing.ok
    assert missing.error.startswith("task not_found")


def test_tool_result_wire_shape():
    ok = ToolResult.text("hi")
    err = ToolResult.error("nope")

    assert ok.to_dict() == {"content": [{"type": "text", "text": "hi"}]}
    assert err.to_dict() == {"content": [{"type": "text", "text": "nope"}], "isError": True}
    parsed = ToolResult.from_dict({"content": [{"type": "image", "data": "...", "mimeType": "image/png"}], "isError": False})
    assert parsed.first_text == ""
    assert parsed.content[0].to_dict() == {"type": "image", "data": "...", "mimeType": "image/png"}
