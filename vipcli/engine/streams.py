"""In-process byte channels for one transport connection.

A ByteStream is one direction of traffic. Readers get, in order, either a
`bytes` chunk, an `Exception` describing a stream error (the stream stays
open after an error), or `None` once the stream has ended.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field


class ByteStream:
    def __init__(self, name: str = "stream"):
        self.name = name
        self.ended = False
        self._queue: asyncio.Queue[bytes | Exception | None] = asyncio.Queue()

    def __repr__(self) -> str:
        return f"<ByteStream {self.name} ended={self.ended} pending={self._queue.qsize()}>"

    def write(self, data: bytes | str) -> None:
        if self.ended:
            return

        if isinstance(data, str):
            data = data.encode()

        if data:
            self._queue.put_nowait(data)

    def fail(self, err: Exception) -> None:
        if not self.ended:
            self._queue.put_nowait(err)

    def end(self) -> None:
        if not self.ended:
            self.ended = True
            self._queue.put_nowait(None)

    async def read(self) -> bytes | Exception | None:
        return await self._queue.get()

    def drained(self) -> bool:
        return self._queue.empty()


@dataclass(slots=True)
class StreamPair:
    """Input (to remote) and output (from remote) for exactly one connection."""

    input: ByteStream = field(default_factory=lambda: ByteStream("stdin"))
    output: ByteStream = field(default_factory=lambda: ByteStream("stdout"))

    # placeholder pairs only absorb keystrokes during a reconnect gap
    placeholder: bool = False

    @classmethod
    def createPlaceholder(cls) -> StreamPair:
        return cls(
            ByteStream("stdin-placeholder"), ByteStream("stdout-placeholder"), placeholder=True
        )
