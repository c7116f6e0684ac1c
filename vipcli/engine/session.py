"""Remote command session state."""
from __future__ import annotations

import dataclasses
from typing import Any

from vipcli.config import NON_TTY_COLUMNS, NON_TTY_ROWS


@dataclasses.dataclass
class Session:
    """One logical remote command execution.

    A Session may span several transport connections (reconnects), but
    its `offset` keeps counting across all of them. Only
    `OutputOffsetTracker` writes `offset`.
    """

    commandId: str
    inputToken: str | None = dataclasses.field(default=None, repr=False)
    commandLine: str = ""
    commandAction: str | None = None
    offset: int = 0

    def params(self, columns: int | None = None, rows: int | None = None) -> SessionParams:
        return SessionParams(
            commandId=self.commandId,
            inputToken=self.inputToken,
            columns=columns or NON_TTY_COLUMNS,
            rows=rows or NON_TTY_ROWS,
            offset=self.offset,
            commandAction=self.commandAction,
        )


@dataclasses.dataclass(frozen=True)
class SessionParams:
    """Everything the transport sends with a `cmd` event."""

    commandId: str
    inputToken: str | None = dataclasses.field(repr=False)
    columns: int = NON_TTY_COLUMNS
    rows: int = NON_TTY_ROWS
    offset: int = 0
    commandAction: str | None = None

    def payload(self) -> dict[str, Any]:
        # the remote service still calls command ids "guid"
        return dict(
            guid=self.commandId,
            inputToken=self.inputToken,
            columns=self.columns,
            rows=self.rows,
            offset=self.offset,
            commandAction=self.commandAction,
        )


class OutputOffsetTracker:
    """Counts output bytes delivered for the active session."""

    def __init__(self, session: Session | None = None):
        self.session = session

    def attach(self, session: Session) -> None:
        self.session = session

    def observe(self, chunk: bytes) -> None:
        if self.session is not None:
            self.session.offset += len(chunk)

    def reset(self) -> None:
        if self.session is not None:
            self.session.offset = 0

    @property
    def offset(self) -> int:
        return self.session.offset if self.session is not None else 0
