"""Prompt loop state machine.

`transition(prompt, event)` is a pure function returning the next
PromptState plus the ordered effects the controller must perform. Nothing
in here touches the network, the terminal, or the clock, so every
reconnect/cancel interleaving can be exercised directly in tests.
"""
from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any, Final

from vipcli.config import CANCEL_COMMAND_CHAR
from vipcli.engine.session import Session

WP_PREFIX: Final = "wp "
RATE_LIMIT_MESSAGE: Final = "Rate limit exceeded"


class State(enum.Enum):
    IDLE = "idle"
    AWAITING_DISPATCH = "awaiting-dispatch"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class PromptState:
    state: State = State.IDLE

    # only one command may run at a time per prompt loop
    commandRunning: bool = False

    # consecutive interrupts since the last command completion
    countSIGINT: int = 0

    # subshell (True) or one-shot (False)
    interactive: bool = True

    # attaching to an existing command's log output instead of running lines
    logMode: bool = False

    # the output stream reported an error during this command
    streamFailed: bool = False


# ── Events ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class LineSubmitted:
    line: str


@dataclass(frozen=True, slots=True)
class DispatchSucceeded:
    session: Session


@dataclass(frozen=True, slots=True)
class DispatchFailed:
    error: Exception


@dataclass(frozen=True, slots=True)
class OutputEnded:
    pass


@dataclass(frozen=True, slots=True)
class OutputFailed:
    error: Exception


@dataclass(frozen=True, slots=True)
class TransportCancelled:
    message: Any = None


@dataclass(frozen=True, slots=True)
class TransportUnauthorized:
    message: Any = None


@dataclass(frozen=True, slots=True)
class TransportFailed:
    error: Any = None


@dataclass(frozen=True, slots=True)
class SessionLost:
    """The session can't continue (e.g. the transport couldn't be opened)."""

    error: Any = None


@dataclass(frozen=True, slots=True)
class ReconnectAttempt:
    pass


@dataclass(frozen=True, slots=True)
class Reconnected:
    pass


@dataclass(frozen=True, slots=True)
class Interrupted:
    pass


Event = (
    LineSubmitted
    | DispatchSucceeded
    | DispatchFailed
    | OutputEnded
    | OutputFailed
    | TransportCancelled
    | TransportUnauthorized
    | TransportFailed
    | SessionLost
    | ReconnectAttempt
    | Reconnected
    | Interrupted
)


# ── Effects ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Prompt:
    pass


@dataclass(frozen=True, slots=True)
class Say:
    message: str
    level: str = "info"  # info | error | warning


@dataclass(frozen=True, slots=True)
class ReportDispatchError:
    error: Exception


@dataclass(frozen=True, slots=True)
class ReportError:
    error: Any


@dataclass(frozen=True, slots=True)
class PauseInput:
    pass


@dataclass(frozen=True, slots=True)
class ResumeInput:
    pass


@dataclass(frozen=True, slots=True)
class Dispatch:
    commandLine: str


@dataclass(frozen=True, slots=True)
class OpenSession:
    session: Session


@dataclass(frozen=True, slots=True)
class BindPlaceholder:
    pass


@dataclass(frozen=True, slots=True)
class Reopen:
    pass


@dataclass(frozen=True, slots=True)
class SendCancelByte:
    pass


@dataclass(frozen=True, slots=True)
class EndOutput:
    pass


@dataclass(frozen=True, slots=True)
class FinishCommand:
    pass


@dataclass(frozen=True, slots=True)
class Exit:
    code: int = 0
    force: bool = False


Effect = (
    Prompt
    | Say
    | ReportDispatchError
    | ReportError
    | PauseInput
    | ResumeInput
    | Dispatch
    | OpenSession
    | BindPlaceholder
    | Reopen
    | SendCancelByte
    | EndOutput
    | FinishCommand
    | Exit
)

INVALID_COMMAND: Final = "invalid command, please pass a valid WP CLI command."
RECONNECTING: Final = "There was an error connecting to the server. Retrying..."


def isExit(line: str) -> bool:
    return line.startswith("exit")


def isValidLine(line: str, logMode: bool = False) -> bool:
    if logMode or line == CANCEL_COMMAND_CHAR:
        return True

    return line.startswith(WP_PREFIX)


def commandForDispatch(line: str) -> str:
    """Strip the leading `wp ` the user typed; the remote already runs wp."""
    return line.replace(WP_PREFIX, "", 1)


def _toIdle(prompt: PromptState) -> PromptState:
    return dataclasses.replace(
        prompt, state=State.IDLE, commandRunning=False, countSIGINT=0, streamFailed=False
    )


def _closed(prompt: PromptState) -> PromptState:
    return dataclasses.replace(prompt, state=State.CLOSED, commandRunning=False)


def _abandon(prompt: PromptState, notice: Say) -> tuple[PromptState, list[Effect]]:
    """Give up on the running command without waiting for an end event."""
    if prompt.state is not State.STREAMING:
        return prompt, [notice]

    if not prompt.interactive:
        return _closed(prompt), [notice, FinishCommand(), Exit(1)]

    return _toIdle(prompt), [notice, FinishCommand(), ResumeInput(), Prompt()]


def transition(prompt: PromptState, event: Event) -> tuple[PromptState, list[Effect]]:
    match event:
        case LineSubmitted(line=line):
            if prompt.state is not State.IDLE or prompt.commandRunning:
                return prompt, []

            if not line:
                return prompt, [Prompt()]

            if isExit(line):
                return _closed(prompt), [Exit(0)]

            if not isValidLine(line, prompt.logMode):
                return prompt, [Say(INVALID_COMMAND, "error"), Prompt()]

            return dataclasses.replace(prompt, state=State.AWAITING_DISPATCH), [
                PauseInput(),
                Dispatch(commandForDispatch(line)),
            ]

        case DispatchSucceeded(session=session):
            if prompt.state is not State.AWAITING_DISPATCH:
                return prompt, []

            return dataclasses.replace(prompt, state=State.STREAMING, commandRunning=True), [
                OpenSession(session)
            ]

        case DispatchFailed(error=err):
            if prompt.state is not State.AWAITING_DISPATCH:
                return prompt, []

            if not prompt.interactive:
                return _closed(prompt), [ReportDispatchError(err), Exit(1)]

            return _toIdle(prompt), [ReportDispatchError(err), ResumeInput(), Prompt()]

        case OutputEnded():
            if prompt.state is not State.STREAMING:
                return prompt, []

            if not prompt.interactive:
                return _closed(prompt), [FinishCommand(), Exit(1 if prompt.streamFailed else 0)]

            return _toIdle(prompt), [FinishCommand(), ResumeInput(), Prompt()]

        case OutputFailed(error=err):
            # no implicit recovery: an explicit end or cancel has to follow
            return dataclasses.replace(prompt, commandRunning=False, streamFailed=True), [
                Say(str(err), "error")
            ]

        case TransportCancelled(message=message):
            return _closed(prompt), [
                Say(f"Cancel received from server: {message}"),
                FinishCommand(),
                Exit(1),
            ]

        case TransportUnauthorized(message=message):
            return _abandon(
                prompt, Say(f"There was an error with the authentication: {message}", "error")
            )

        case SessionLost(error=err):
            return _abandon(prompt, Say(str(err), "error"))

        case TransportFailed(error=err):
            if err == RATE_LIMIT_MESSAGE:
                return prompt, [
                    Say("Rate limit exceeded: Please wait a moment and try again.", "error")
                ]

            return prompt, [ReportError(err), Say(str(err), "error")]

        case ReconnectAttempt():
            if prompt.state is not State.STREAMING:
                return prompt, []

            return prompt, [BindPlaceholder(), Say(RECONNECTING, "warning")]

        case Reconnected():
            if prompt.state is not State.STREAMING:
                return prompt, []

            return prompt, [Reopen()]

        case Interrupted():
            if prompt.countSIGINT >= 1:
                return _closed(prompt), [Exit(0, force=True)]

            interrupted = dataclasses.replace(prompt, countSIGINT=prompt.countSIGINT + 1)
            effects = [SendCancelByte(), EndOutput(), Say("Command cancelled by user")]

            # nothing running means there's nothing to wait for
            if not prompt.commandRunning:
                return _closed(interrupted), effects + [Exit(0)]

            return interrupted, effects

    raise TypeError(f"Unknown prompt event: {event!r}")
