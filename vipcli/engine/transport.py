"""Websocket transport to the remote wp-cli execution service.

One SessionTransport owns one reconnecting websocket. Each `open()` sends a
`cmd` event on the live connection and returns a fresh StreamPair; binary
frames flow between that pair and the socket, and text frames carry
lifecycle events:

    client -> server   {"event": "cmd", "data": {guid, inputToken, columns, rows, offset, commandAction}}
                       <binary stdin bytes>
    server -> client   <binary stdout bytes>
                       {"event": "end" | "stream_error" | "error" | "cancel" | "unauthorized", "data": ...}

Connection-level events are handed to `emit` as machine events so the
controller can run them through the prompt state machine.

Any close we didn't ask for while the current command's output is still open
counts as a drop, even a clean 1000/1001 close during a server restart.
After MAX_RETRIES consecutive failed connects the session is reported lost.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Final

import orjson
import websockets
from loguru import logger
from websockets.asyncio.client import process_exception
from websockets.exceptions import InvalidStatus

from vipcli.engine.machine import (
    Event,
    Reconnected,
    ReconnectAttempt,
    SessionLost,
    TransportCancelled,
    TransportFailed,
    TransportUnauthorized,
)
from vipcli.engine.session import SessionParams
from vipcli.engine.streams import StreamPair

# how long close() waits for queued stdin (e.g. a final cancel byte) to go out
FLUSH_TIMEOUT: Final = 1.0

UNAUTHORIZED_STATUS: Final = {401, 403}

# consecutive failed connection attempts before the session is given up
MAX_RETRIES: Final = 5


class StreamError(Exception):
    """The remote side reported an error on the output stream."""


@dataclass
class SessionTransport:
    url: str

    # returns the bearer credential for the handshake
    token: Callable[[], Awaitable[str]]

    # receives connection-level events (reconnect, cancel, ...)
    emit: Callable[[Event], Awaitable[None]]

    # injectable for tests
    connect: Callable[..., Any] = websockets.connect
    maxRetries: int = MAX_RETRIES

    pair: StreamPair | None = None
    ws: Any | None = None
    closing: bool = False
    retries: int = 0

    connected: asyncio.Event = field(default_factory=asyncio.Event)
    connection: asyncio.Task | None = None
    sender: asyncio.Task | None = None

    async def open(self, params: SessionParams) -> StreamPair:
        """Start (or reuse) the connection and begin a command stream on it."""
        if self.closing:
            raise RuntimeError("Transport is closed")

        if not self.connection:
            bearer = await self.token()
            self.connection = asyncio.create_task(
                self._run(bearer), name=f"wp-cli transport {params.commandId}"
            )

        # a new pair replaces the old one; old input stops flowing
        if self.sender:
            self.sender.cancel()

        pair = StreamPair()
        self.pair = pair
        self.sender = asyncio.create_task(self._send(params, pair), name="wp-cli stdin")

        logger.debug(
            "[{}] Opening stream at offset {} (action: {})",
            params.commandId,
            params.offset,
            params.commandAction,
        )

        return pair

    async def close(self) -> None:
        if self.closing:
            return

        self.closing = True

        if self.sender and not self.sender.done() and self.pair and self.connected.is_set():
            # give already-typed input (like a cancel byte) a chance to go out
            self.pair.input.end()
            try:
                await asyncio.wait_for(asyncio.shield(self.sender), FLUSH_TIMEOUT)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass

        for task in (self.sender, self.connection):
            if task and not task.done() and task is not asyncio.current_task():
                task.cancel()

        if self.ws:
            await self.ws.close()
            self.ws = None

        logger.debug("Transport to {} closed", self.url)

    async def _send(self, params: SessionParams, pair: StreamPair) -> None:
        cmd = orjson.dumps(dict(event="cmd", data=params.payload())).decode()
        try:
            await self.connected.wait()
            await self.ws.send(cmd)

            while (chunk := await pair.input.read()) is not None:
                if isinstance(chunk, Exception):
                    continue

                # wait out a reconnect gap instead of dropping input
                await self.connected.wait()
                await self.ws.send(chunk)
        except websockets.ConnectionClosed as e:
            # a reconnect opens a fresh pair with its own sender
            logger.debug("[{}] Input stopped, connection closed: {}", params.commandId, e)

    def _retryable(self, exc: Exception) -> Exception | None:
        """Tell the connect iterator to retry `exc` (None) or raise it."""
        fatal = process_exception(exc)
        if fatal is not None:
            return fatal

        if self.closing:
            return exc

        if self.retries >= self.maxRetries:
            logger.warning("Giving up on {} after {} retries: {}", self.url, self.retries, exc)
            return exc

        self.retries += 1
        logger.warning("Connection to {} failed ({}), retrying...", self.url, exc)
        return None

    async def _run(self, bearer: str) -> None:
        dropped = False
        try:
            # the connect iterator reconnects with backoff; _retryable bounds it
            async for ws in self.connect(
                self.url,
                additional_headers={"Authorization": f"Bearer {bearer}"},
                open_timeout=10,
                ping_interval=20,
                max_size=None,
                process_exception=self._retryable,
            ):
                self.ws = ws
                self.retries = 0
                self.connected.set()
                if dropped:
                    dropped = False
                    logger.info("Reconnected to {}", self.url)
                    await self.emit(Reconnected())

                try:
                    async for msg in ws:
                        await self._receive(msg)
                except websockets.ConnectionClosed as e:
                    logger.debug("Connection to {} closed: {}", self.url, e)

                # clean (1000/1001) and abnormal closes both land here
                self.connected.clear()
                self.ws = None
                if self.closing:
                    return

                if self.pair and not self.pair.output.ended:
                    dropped = True
                    logger.warning("Connection to {} dropped, reconnecting...", self.url)
                    await self.emit(ReconnectAttempt())
        except InvalidStatus as e:
            status = e.response.status_code
            if status in UNAUTHORIZED_STATUS:
                await self.emit(TransportUnauthorized(f"HTTP {status}"))
            else:
                await self.emit(SessionLost(f"Connection to {self.url} failed: HTTP {status}"))
        except asyncio.CancelledError:
            raise
        except (OSError, EOFError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            logger.debug("Transport failure: {}", e)
            await self.emit(SessionLost(f"Connection to {self.url} failed: {e}"))
        finally:
            self.connected.clear()

    async def _receive(self, msg: bytes | str) -> None:
        pair = self.pair
        if isinstance(msg, bytes):
            if pair:
                pair.output.write(msg)

            return

        try:
            got = orjson.loads(msg)
            event = got["event"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed control frame: {}", msg[:200])
            return

        data = got.get("data")
        match event:
            case "end":
                if pair:
                    pair.output.end()
            case "stream_error":
                if pair:
                    pair.output.fail(StreamError(data or "stream error"))
            case "error":
                await self.emit(TransportFailed(data))
            case "cancel":
                await self.emit(TransportCancelled(data))
            case "unauthorized":
                message = data.get("message") if isinstance(data, dict) else data
                await self.emit(TransportUnauthorized(message))
            case _:
                logger.debug("Ignoring unknown event: {}", event)
