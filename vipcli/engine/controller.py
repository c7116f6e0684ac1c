"""Session controller: runs prompt machine effects against real collaborators.

One controller exists per prompt loop. It owns the current Session, its
transport, the offset tracker, and the stream coordinator; the state machine
decides *what* happens and the controller makes it happen.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

import vipcli.format as fmt
from vipcli.api import GraphQLError, NotAuthenticatedError
from vipcli.config import CANCEL_COMMAND_CHAR
from vipcli.engine.coordinator import StreamCoordinator
from vipcli.engine.machine import (
    BindPlaceholder,
    Dispatch,
    DispatchFailed,
    DispatchSucceeded,
    Effect,
    EndOutput,
    Event,
    Exit,
    FinishCommand,
    Interrupted,
    LineSubmitted,
    OpenSession,
    OutputEnded,
    OutputFailed,
    PauseInput,
    Prompt,
    PromptState,
    Reopen,
    ReportDispatchError,
    ReportError,
    ResumeInput,
    Say,
    SendCancelByte,
    SessionLost,
    State,
    TransportUnauthorized,
    transition,
)
from vipcli.engine.protocols import CommandDispatcher, ErrorReporter, LocalTerminal, Transport
from vipcli.engine.session import OutputOffsetTracker, Session, SessionParams

TransportFactory = Callable[[Callable[[Event], Awaitable[None]]], Transport]


def logErrorReport(err: Any) -> None:
    """Default error tracker: full details to the log files only."""
    if isinstance(err, BaseException):
        logger.opt(exception=err).debug("Unexpected error: {}", err)
    else:
        logger.debug("Unexpected error: {}", err)


@dataclass
class SessionController:
    dispatcher: CommandDispatcher
    transportFactory: TransportFactory
    terminal: LocalTerminal

    interactive: bool = True

    # attach to this existing command's log output instead of running lines
    logCommandId: str | None = None

    reportError: ErrorReporter = logErrorReport

    prompt: PromptState = field(init=False)
    session: Session | None = None
    transport: Transport | None = None
    tracker: OutputOffsetTracker = field(default_factory=OutputOffsetTracker)
    coordinator: StreamCoordinator = field(init=False)

    exitCode: int | None = None
    forced: bool = False

    # set whenever the loop is ready for a new line (or finished)
    idle: asyncio.Event = field(default_factory=asyncio.Event)
    closed: asyncio.Event = field(default_factory=asyncio.Event)

    # fire-and-forget tasks started from sync callbacks
    background: set[asyncio.Task] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.prompt = PromptState(
            interactive=self.interactive, logMode=self.logCommandId is not None
        )
        self.coordinator = StreamCoordinator(
            tracker=self.tracker,
            write=self.terminal.write,
            onEnd=lambda: self.handle(OutputEnded()),
            onError=lambda err: self.handle(OutputFailed(err)),
        )
        self.idle.set()

    @property
    def state(self) -> State:
        return self.prompt.state

    @property
    def commandRunning(self) -> bool:
        return self.prompt.commandRunning

    async def submit(self, line: str) -> None:
        logger.trace("wp> {}", line)
        await self.handle(LineSubmitted(line))

    async def run(self, line: str) -> int:
        """Run a single command line non-interactively and return its exit code."""
        self.prompt = dataclasses.replace(self.prompt, interactive=False)
        await self.handle(LineSubmitted(line))
        await self.closed.wait()
        return self.exitCode or 0

    async def waitIdle(self) -> None:
        await self.idle.wait()

    def interrupt(self) -> None:
        """Sync entry point for Ctrl-C / SIGINT callbacks."""
        self._spawn(self.handle(Interrupted()))

    async def handle(self, event: Event) -> None:
        before = self.prompt.state
        self.prompt, effects = transition(self.prompt, event)

        if before is not self.prompt.state:
            logger.debug("{} -> {} on {}", before.value, self.prompt.state.value, type(event).__name__)

        if self.prompt.state in {State.AWAITING_DISPATCH, State.STREAMING}:
            self.idle.clear()

        for effect in effects:
            try:
                await self.perform(effect)
            except Exception as e:
                # never leave the prompt wedged because one effect blew up
                self.reportError(e)
                fmt.error(str(e))

    async def perform(self, effect: Effect) -> None:
        match effect:
            case Prompt():
                self.idle.set()
            case Say(message=message, level="error"):
                fmt.error(message)
            case Say(message=message, level="warning"):
                fmt.warning(message)
            case Say(message=message):
                fmt.say("{}", message)
            case ReportDispatchError(error=err):
                self._reportDispatchError(err)
            case ReportError(error=err):
                self.reportError(err)
            case PauseInput():
                self.terminal.startForwarding(self.coordinator.feed, self.interrupt)
            case ResumeInput():
                self.terminal.stopForwarding()
                self.coordinator.discardPending()
            case Dispatch(commandLine=commandLine):
                await self._dispatch(commandLine)
            case OpenSession(session=session):
                await self._open(session)
            case BindPlaceholder():
                self.coordinator.bindPlaceholder()
            case Reopen():
                await self._reopen()
            case SendCancelByte():
                self.coordinator.feed(CANCEL_COMMAND_CHAR)
            case EndOutput():
                self.coordinator.endOutput()
            case FinishCommand():
                await self._finish()
            case Exit(code=code, force=force):
                await self._exit(code, force)

    def _reportDispatchError(self, err: Exception) -> None:
        if isinstance(err, GraphQLError):
            for message in err.messages:
                fmt.error(message)

            return

        # anything else: just dump it
        self.reportError(err)
        fmt.error(str(err))

    async def _dispatch(self, commandLine: str) -> None:
        if self.logCommandId is not None:
            await self.handle(DispatchSucceeded(self.dispatcher.attach(self.logCommandId)))
            return

        try:
            session = await self.dispatcher.dispatch(commandLine)
        except Exception as e:
            await self.handle(DispatchFailed(e))
            return

        await self.handle(DispatchSucceeded(session))

    def _params(self) -> SessionParams:
        columns, rows = self.terminal.size()
        return self.session.params(columns, rows)

    async def _open(self, session: Session) -> None:
        self.session = session
        self.tracker.attach(session)
        self.transport = self.transportFactory(self.handle)

        try:
            pair = await self.transport.open(self._params())
        except NotAuthenticatedError as e:
            await self.handle(TransportUnauthorized(str(e)))
            return
        except Exception as e:
            self.reportError(e)
            await self.handle(SessionLost(e))
            return

        self.coordinator.bind(pair)

    async def _reopen(self) -> None:
        if not (self.session and self.transport):
            return

        # old pair (or placeholder) must be fully released before rebinding
        self.coordinator.unbind()

        logger.debug("[{}] Resuming at offset {}", self.session.commandId, self.session.offset)
        pair = await self.transport.open(self._params())
        self.coordinator.bind(pair)

    async def _finish(self) -> None:
        if self.session and fmt.needsTrailingNewline(self.session.commandLine):
            self.terminal.write(b"\r\n")

        if self.transport:
            transport, self.transport = self.transport, None
            await transport.close()

        self.coordinator.unbind()
        self.tracker.reset()
        self.session = None

    async def _exit(self, code: int, force: bool) -> None:
        self.exitCode = code
        self.forced = force

        if not force:
            self.terminal.stopForwarding()
            await self._finish()

        self.closed.set()
        self.idle.set()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self.background.add(task)
        task.add_done_callback(self.background.discard)
