"""Narrow protocols for cross-module method calls.

These protocols define the minimal interfaces the engine needs from its
collaborators (API client, transport, local terminal), so the controller can
be driven by fakes in tests and never imports the CLI layer.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from vipcli.engine.session import Session, SessionParams
from vipcli.engine.streams import StreamPair


@runtime_checkable
class GraphQLClient(Protocol):
    """Remote procedure boundary: `mutate(query, variables) -> result | error`."""

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]: ...
    async def mutate(self, mutation: str, variables: dict[str, Any] | None = None) -> dict[str, Any]: ...


@runtime_checkable
class CommandDispatcher(Protocol):
    async def dispatch(self, commandLine: str) -> Session: ...
    def attach(self, commandId: str) -> Session: ...


@runtime_checkable
class Transport(Protocol):
    async def open(self, params: SessionParams) -> StreamPair: ...
    async def close(self) -> None: ...


@runtime_checkable
class LocalTerminal(Protocol):
    """Local stdin/stdout as seen by the controller."""

    def size(self) -> tuple[int | None, int | None]: ...
    def write(self, data: bytes) -> None: ...
    def startForwarding(self, feed: Callable[[bytes], None], interrupt: Callable[[], None]) -> None: ...
    def stopForwarding(self) -> None: ...


@runtime_checkable
class ErrorReporter(Protocol):
    def __call__(self, err: Any) -> None: ...
