"""Wires a StreamPair to the local terminal.

Local keystrokes are fed in through `feed()` and go to whichever input
stream is currently bound. Output chunks from the bound pair are counted by
the offset tracker and written to local stdout in arrival order.

At most one Binding exists at a time: `bind()` refuses to run while a
previous binding is still live, so the same local input can never be piped
into two remote inputs at once.
"""
from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from loguru import logger

from vipcli.engine.session import OutputOffsetTracker
from vipcli.engine.streams import StreamPair


class BindingError(RuntimeError):
    pass


@dataclass(slots=True)
class Binding:
    pair: StreamPair
    pump: asyncio.Task | None = None
    released: bool = False

    def release(self) -> None:
        if self.released:
            return

        self.released = True

        # the pump may be the one releasing us (end-of-output handling)
        if self.pump and self.pump is not asyncio.current_task() and not self.pump.done():
            self.pump.cancel()


@dataclass
class StreamCoordinator:
    tracker: OutputOffsetTracker

    # where output bytes go (local stdout)
    write: Callable[[bytes], None]

    # output stream lifecycle notifications
    onEnd: Callable[[], Awaitable[None]]
    onError: Callable[[Exception], Awaitable[None]]

    binding: Binding | None = None

    # keystrokes typed while nothing is bound (waiting on dispatch)
    pending: deque[bytes] = field(default_factory=deque)

    @property
    def bound(self) -> bool:
        return self.binding is not None

    def bind(self, pair: StreamPair) -> Binding:
        if self.binding is not None:
            raise BindingError(f"Cannot bind {pair}: {self.binding.pair} is still bound")

        binding = Binding(pair)
        self.binding = binding

        while self.pending:
            pair.input.write(self.pending.popleft())

        binding.pump = asyncio.create_task(self._pump(binding), name=f"output pump {pair.output.name}")
        logger.debug("Bound {}", pair.output.name)
        return binding

    def unbind(self) -> StreamPair | None:
        if not (binding := self.binding):
            return None

        self.binding = None
        binding.release()
        logger.debug("Unbound {}", binding.pair.output.name)
        return binding.pair

    def bindPlaceholder(self) -> Binding:
        """Swap in a throwaway pair so keystrokes during a reconnect gap go somewhere."""
        self.unbind()
        return self.bind(StreamPair.createPlaceholder())

    def feed(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode()

        if self.binding:
            self.binding.pair.input.write(data)
        else:
            self.pending.append(data)

    def endOutput(self) -> None:
        if self.binding:
            self.binding.pair.output.end()

    def discardPending(self) -> None:
        self.pending.clear()

    async def _pump(self, binding: Binding) -> None:
        output = binding.pair.output
        while not binding.released:
            got = await output.read()
            if binding.released:
                break

            if got is None:
                await self.onEnd()
                break

            if isinstance(got, Exception):
                await self.onError(got)
                continue

            self.tracker.observe(got)
            self.write(got)
