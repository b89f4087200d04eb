from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_PREVIEW = 200

MAX_FRAME_BYTES = 16 * 1024 * 1024


def encode_frame(frame: dict) -> bytes:
    # json.dumps escapes control characters, so a frame never spans two lines
    return (json.dumps(frame, separators=(",", ":"), ensure_ascii=False) + "\n").encode("utf-8")


def decode_line(line: bytes | str) -> dict | None:
    """Parse one line into a frame, or return None (and log) if it is not a JSON object."""
    text = line.decode("utf-8", errors="replace") if isinstance(line, (bytes, bytearray)) else line
    text = text.strip()
    if not text:
        return None
    try:
        frame = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("dropping unparsable frame: %r", text[:_PREVIEW])
        return None
    if not isinstance(frame, dict):
        logger.warning("dropping non-object frame: %r", text[:_PREVIEW])
        return None
    return frame


class FrameDecoder:
    """Accumulates raw bytes and yields every complete newline-terminated frame.

    A line longer than ``max_frame_bytes`` is discarded up to its newline.
    """

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self.max_frame_bytes = max_frame_bytes
        self._buffer = bytearray()
        self._discarding = False

    def feed(self, data: bytes) -> list[dict]:
        self._buffer.extend(data)
        frames: list[dict] = []
        while True:
            idx = self._buffer.find(b"\n")
            if idx == -1:
                break
            line = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]
            if self._discarding:
                self._discarding = False
                continue
            if len(line) > self.max_frame_bytes:
                logger.warning("dropping oversized frame: %d bytes", len(line))
                continue
            frame = decode_line(line)
            if frame is not None:
                frames.append(frame)
        if len(self._buffer) > self.max_frame_bytes:
            logger.warning("dropping oversized frame: %d bytes and no newline yet", len(self._buffer))
            self._buffer.clear()
            self._discarding = True
        return frames

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)


async def read_frames(reader) -> AsyncIterator[dict]:
    while True:
        try:
            line = await reader.readline()
        except ValueError as exc:
            # StreamReader has already thrown away the over-limit data
            logger.warning("dropping frame over the stream limit: %s", exc)
            continue
        if not line:
            break
        frame = decode_line(line)
        if frame is not None:
            yield frame
