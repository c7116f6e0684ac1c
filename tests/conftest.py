"""Shared test fixtures for vipcli test suite.

The fakes here stand in for the network-facing collaborators (GraphQL API,
command dispatcher, websocket transport, local terminal) so the engine can
be exercised headless.
"""

import asyncio
from dataclasses import dataclass, field
from io import StringIO
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from loguru import logger

from vipcli.context import App, Context, Environment
from vipcli.engine.session import Session, SessionParams
from vipcli.engine.streams import StreamPair


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks (output pumps, senders) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ── Fakes for engine collaborators ──


@dataclass
class FakeAPI:
    """GraphQLClient double: canned responses, recorded calls."""

    result: dict[str, Any] = field(default_factory=dict)
    error: Exception | None = None
    calls: list[tuple[str, str, dict | None]] = field(default_factory=list)
    close: AsyncMock = field(default_factory=AsyncMock)

    async def _answer(self, kind, query, variables):
        self.calls.append((kind, query, variables))
        if self.error:
            raise self.error

        return self.result

    async def query(self, query, variables=None):
        return await self._answer("query", query, variables)

    async def mutate(self, mutation, variables=None):
        return await self._answer("mutate", mutation, variables)


@dataclass
class FakeDispatcher:
    commandId: str = "cmd-1"
    error: Exception | None = None
    dispatched: list[str] = field(default_factory=list)
    attached: list[str] = field(default_factory=list)

    async def dispatch(self, commandLine: str) -> Session:
        self.dispatched.append(commandLine)
        if self.error:
            raise self.error

        return Session(commandId=self.commandId, inputToken="input-token", commandLine=commandLine)

    def attach(self, commandId: str) -> Session:
        self.attached.append(commandId)
        return Session(commandId=commandId, commandAction="logs")


@dataclass
class FakeTransport:
    """Transport double: every open() returns a fresh StreamPair.

    `script` chunks (bytes, or exceptions delivered as stream errors) are
    written to each new output stream, followed by an end marker when
    `autoEnd` is set.
    """

    emit: Any = None
    script: list[bytes | Exception] = field(default_factory=list)
    autoEnd: bool = False
    failOpen: Exception | None = None

    opens: list[SessionParams] = field(default_factory=list)
    pairs: list[StreamPair] = field(default_factory=list)
    closed: bool = False

    async def open(self, params: SessionParams) -> StreamPair:
        if self.failOpen:
            raise self.failOpen

        self.opens.append(params)
        pair = StreamPair()
        self.pairs.append(pair)

        for chunk in self.script:
            if isinstance(chunk, Exception):
                pair.output.fail(chunk)
            else:
                pair.output.write(chunk)

        if self.autoEnd:
            pair.output.end()

        return pair

    async def close(self) -> None:
        self.closed = True

    @property
    def pair(self) -> StreamPair:
        return self.pairs[-1]


@dataclass
class FakeTransportFactory:
    """Callable matching `transportFactory(emit)`; remembers what it built."""

    template: dict[str, Any] = field(default_factory=dict)
    built: list[FakeTransport] = field(default_factory=list)

    def __call__(self, emit) -> FakeTransport:
        transport = FakeTransport(emit=emit, **self.template)
        self.built.append(transport)
        return transport

    @property
    def transport(self) -> FakeTransport:
        return self.built[-1]


@dataclass
class FakeTerminal:
    columns: int | None = 120
    rows: int | None = 40
    written: bytearray = field(default_factory=bytearray)
    forwarding: bool = False
    feed: Any = None
    interrupt: Any = None
    starts: int = 0

    def size(self):
        return self.columns, self.rows

    def write(self, data: bytes) -> None:
        self.written.extend(data)

    def startForwarding(self, feed, interrupt) -> None:
        self.forwarding = True
        self.feed = feed
        self.interrupt = interrupt
        self.starts += 1

    def stopForwarding(self) -> None:
        self.forwarding = False


# ── Fixtures ──


@pytest.fixture(autouse=True)
def printed():
    """Capture everything the formatting helpers would print."""
    with patch("vipcli.format.print_formatted_text") as mock:
        yield mock


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
def fake_dispatcher():
    return FakeDispatcher()


@pytest.fixture
def fake_terminal():
    return FakeTerminal()


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def report_error():
    return MagicMock()


def make_context(envType: str = "develop", appName: str = "mysite") -> Context:
    env = Environment(id=22, appId=11, type=envType, primaryDomain=f"{envType}.{appName}.example")
    app = App(id=11, name=appName, type="WordPress", environments=(env,))
    return Context(app=app, env=env)


@pytest.fixture
def log_capture():
    """Capture loguru output for assertion. Yields a StringIO buffer."""
    buf = StringIO()
    handler_id = logger.add(buf, format="{level} {message}", level="TRACE")
    yield buf
    logger.remove(handler_id)
