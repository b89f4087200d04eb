from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from shared.errors import AuthenticationError
from shared.ndjson import MAX_FRAME_BYTES, encode_frame, read_frames
from shared.protocol import (
    AUTH_ERROR,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    NOTIFY_READY,
    error_response,
    notification,
    ok_response,
)

logger = logging.getLogger(__name__)

# (params, headers, req_id) -> result
Handler = Callable[[dict[str, Any], dict[str, str], str], Awaitable[Any]]


class NDJSONService:
    """JSON-RPC over newline-delimited JSON on stdin/stdout.

    Each request runs in its own task, so replies go out in completion order
    and a slow method never holds up the others.
    """

    def __init__(self, *, name: str, version: str, ops: dict[str, Handler]):
        self.name = name
        self.version = version
        self.ops = dict(ops)
        self.ops.setdefault("meta", self._meta)
        self.ops.setdefault("health", self._health)
        self.ops.setdefault("ping", self._ping)

    async def _meta(self, params: dict, headers: dict, req_id: str) -> dict:
        return {"name": self.name, "version": self.version, "methods": sorted(self.ops.keys())}

    async def _health(self, params: dict, headers: dict, req_id: str) -> dict:
        return {"status": "ok"}

    async def _ping(self, params: dict, headers: dict, req_id: str) -> dict:
        return {}

    async def handle_frame(self, frame: dict) -> dict | None:
        req_id = frame.get("id")
        method = frame.get("method")
        if req_id is None:
            # notifications never get a reply
            return None
        req_id = str(req_id)
        handler = self.ops.get(method) if isinstance(method, str) else None
        if handler is None:
            return error_response(req_id, f"Method not found: {method}", METHOD_NOT_FOUND)
        params = frame.get("params") or {}
        headers = frame.get("headers") or {}
        if not isinstance(params, dict) or not isinstance(headers, dict):
            return error_response(req_id, "params and headers must be objects", INVALID_PARAMS)
        try:
            result = await handler(params, {str(k): str(v) for k, v in headers.items()}, req_id)
        except AuthenticationError as exc:
            return error_response(req_id, str(exc), AUTH_ERROR)
        except (KeyError, TypeError, ValueError) as exc:
            logger.info("invalid params for %s: %s", method, exc)
            return error_response(req_id, f"Invalid params: {exc}", INVALID_PARAMS)
        except Exception as exc:  # noqa: BLE001
            logger.exception("method %s failed", method)
            return error_response(req_id, str(exc) or exc.__class__.__name__, INTERNAL_ERROR)
        return ok_response(req_id, {} if result is None else result)

    async def serve(self, reader: asyncio.StreamReader, write: Callable[[bytes], None]) -> None:
        write(encode_frame(notification(NOTIFY_READY, {"name": self.name, "version": self.version})))
        inflight: set[asyncio.Task] = set()

        async def _run(frame: dict) -> None:
            reply = await self.handle_frame(frame)
            if reply is not None:
                write(encode_frame(reply))

        async for frame in read_frames(reader):
            task = asyncio.create_task(_run(frame))
            inflight.add(task)
            task.add_done_callback(inflight.discard)

        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)

    async def run_stdio(self) -> None:
        reader = asyncio.StreamReader(limit=MAX_FRAME_BYTES)
        protocol = asyncio.StreamReaderProtocol(reader)
        await asyncio.get_running_loop().connect_read_pipe(lambda: protocol, sys.stdin)
        stdout = sys.stdout.buffer

        def write(data: bytes) -> None:
            stdout.write(data)
            stdout.flush()

        logger.info("%s %s serving on stdio with %d methods", self.name, self.version, len(self.ops))
        await self.serve(reader, write)
