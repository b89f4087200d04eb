from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

VERSION = "1.0.0"
JSONRPC = "2.0"

METHOD_LIST_TOOLS = "tools/list"
METHOD_CALL_TOOL = "tools/call"
NOTIFY_READY = "notifications/ready"

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
AUTH_ERROR = -32001


@dataclass(slots=True)
class ContentBlock:
    type: str
    text: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, **self.data}
        if self.text is not None:
            out["text"] = self.text
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ContentBlock:
        extra = {k: v for k, v in raw.items() if k not in {"type", "text"}}
        return cls(type=str(raw.get("type", "text")), text=raw.get("text"), data=extra)


@dataclass(slots=True)
class ToolResult:
    content: list[ContentBlock]
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> ToolResult:
        return cls([ContentBlock("text", text)])

    @classmethod
    def error(cls, message: str) -> ToolResult:
        return cls([ContentBlock("text", message)], is_error=True)

    @property
    def first_text(self) -> str:
        for block in self.content:
            if block.type == "text" and block.text is not None:
                return block.text
        return ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"content": [b.to_dict() for b in self.content]}
        if self.is_error:
            out["isError"] = True
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ToolResult:
        blocks = [ContentBlock.from_dict(b) for b in raw.get("content") or [] if isinstance(b, dict)]
        return cls(blocks, is_error=bool(raw.get("isError", False)))


def request(req_id: str, method: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> dict[str, Any]:
    frame: dict[str, Any] = {"jsonrpc": JSONRPC, "id": req_id, "method": method, "params": params or {}}
    if headers:
        frame["headers"] = dict(headers)
    return frame


def notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC, "method": method, "params": params or {}}


def ok_response(req_id: str, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC, "id": req_id, "result": result}


def error_response(req_id: str | None, message: str, code: int = INTERNAL_ERROR) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC, "id": req_id, "error": {"code": code, "message": message}}
