from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

from shared.errors import ChannelWriteError, ConnectionClosedError, ProtocolError, RemoteCallError, ServiceCrashedError
from shared.ndjson import FrameDecoder, encode_frame
from shared.protocol import request as build_request

logger = logging.getLogger(__name__)
stderr_logger = logging.getLogger("toolwire.worker.stderr")

_READ_CHUNK = 64 * 1024


class ProcClient:
    """One child process, one NDJSON channel, many requests in flight.

    Requests are tagged with a per-client monotonically increasing id and
    resolved by id when the matching reply arrives, in whatever order replies
    come back. When the channel closes every outstanding request fails with
    ``ConnectionClosedError``.
    """

    def __init__(self, command: list[str], *, cwd=None, env=None):
        if not command:
            raise ValueError("command required")
        self.command = list(command)
        self.cwd = cwd
        self.env = env
        self.proc: asyncio.subprocess.Process | None = None
        self._stderr_tail: deque[str] = deque(maxlen=80)
        self._pending: dict[str, asyncio.Future] = {}
        self._next_id = 0
        self._tasks: list[asyncio.Task] = []
        self._start_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.proc is not None and self.proc.returncode is None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def stderr_tail(self) -> list[str]:
        return list(self._stderr_tail)

    async def start(self) -> None:
        async with self._start_lock:
            if self.connected:
                return
            try:
                proc = await asyncio.create_subprocess_exec(
                    *self.command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=self.cwd,
                    env=self.env,
                )
            except OSError as exc:
                raise ServiceCrashedError(f"failed to start worker {self.command[0]!r}: {exc}") from exc

            logger.info("started worker pid=%s: %s", proc.pid, " ".join(self.command))
            self.proc = proc
            self._pending = {}
            ready = asyncio.Event()
            reader = asyncio.create_task(self._read_loop(proc, self._pending, ready))
            self._tasks = [reader, asyncio.create_task(self._drain_stderr(proc))]
            await self._wait_ready(ready, reader)

    @staticmethod
    async def _wait_ready(ready: asyncio.Event, reader: asyncio.Task) -> None:
        # first byte on stdout, or the reader finishing because the child is already gone
        waiter = asyncio.create_task(ready.wait())
        try:
            await asyncio.wait({waiter, reader}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if not ready.is_set():
            logger.error("worker exited before becoming ready")

    async def _drain_stderr(self, proc) -> None:
        if proc.stderr is None:
            return
        while True:
            line = await proc.stderr.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            self._stderr_tail.append(text)
            stderr_logger.info("%s", text)

    async def _read_loop(self, proc, pending: dict[str, asyncio.Future], ready: asyncio.Event) -> None:
        decoder = FrameDecoder()
        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                ready.set()
                for frame in decoder.feed(chunk):
                    self._dispatch(frame, pending)
        finally:
            if self.proc is proc:
                self.proc = None
                logger.warning("worker channel closed; stderr tail:\n%s", "\n".join(self._stderr_tail))
            self._fail_pending(pending, ConnectionClosedError())

    @staticmethod
    def _dispatch(frame: dict, pending: dict[str, asyncio.Future]) -> None:
        req_id = frame.get("id")
        if req_id is None:
            logger.debug("worker notification: %s", frame.get("method"))
            return
        fut = pending.pop(str(req_id), None)
        if fut is None:
            logger.debug("ignoring reply with unknown id %r", req_id)
            return
        if fut.done():
            return
        error = frame.get("error")
        if error is not None:
            if isinstance(error, dict):
                fut.set_exception(RemoteCallError(str(error.get("message") or "Unknown error"), error.get("code")))
            else:
                fut.set_exception(RemoteCallError(str(error)))
        elif "result" in frame:
            fut.set_result(frame["result"])
        else:
            fut.set_exception(ProtocolError(f"reply {req_id} has neither result nor error"))

    @staticmethod
    def _fail_pending(pending: dict[str, asyncio.Future], exc: Exception) -> None:
        while pending:
            _, fut = pending.popitem()
            if not fut.done():
                fut.set_exception(exc)
                # retrieved here so abandoned futures do not warn at GC time
                fut.exception()

    async def _write(self, proc, data: bytes) -> None:
        async with self._write_lock:
            stdin = proc.stdin
            if stdin is None or stdin.is_closing():
                raise ChannelWriteError("worker stdin not available")
            try:
                stdin.write(data)
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise ChannelWriteError(f"failed to write to worker: {exc}") from exc

    async def request(self, method: str, params: dict[str, Any] | None = None, *, headers: dict[str, str] | None = None) -> Any:
        proc = self.proc
        if proc is None or proc.returncode is not None:
            raise ConnectionClosedError("worker is not running")
        pending = self._pending
        self._next_id += 1
        req_id = str(self._next_id)
        # encode first: params that are not JSON serializable raise here with nothing registered
        data = encode_frame(build_request(req_id, method, params, headers))
        fut = asyncio.get_running_loop().create_future()
        pending[req_id] = fut
        try:
            await self._write(proc, data)
        except ChannelWriteError:
            pending.pop(req_id, None)
            raise
        return await fut

    async def close(self) -> None:
        proc = self.proc
        self.proc = None
        tasks, self._tasks = self._tasks, []
        if proc is not None:
            if proc.stdin is not None and not proc.stdin.is_closing():
                proc.stdin.close()
            if proc.returncode is None:
                try:
                    proc.terminate()
                    await asyncio.wait_for(proc.wait(), timeout=5)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    proc.kill()
                    await proc.wait()
            logger.info("stopped worker pid=%s", proc.pid)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001
                logger.exception("worker channel task failed")
        self._fail_pending(self._pending, ConnectionClosedError())
