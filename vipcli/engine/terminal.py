"""Local terminal adapter.

While a command runs, local keystrokes are read in raw mode through
prompt_toolkit's input layer and handed to the coordinator byte-for-byte,
except Ctrl-C which becomes an interrupt event.
"""
from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import sys
from collections.abc import Callable
from typing import Any

from loguru import logger
from prompt_toolkit.input import Input, create_input
from prompt_toolkit.keys import Keys


class ProcessTerminal:
    """LocalTerminal over the real process stdin/stdout."""

    def __init__(self, stdin: Any = None, stdout: Any = None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.input: Input | None = None
        self._stack: contextlib.ExitStack | None = None
        self._signal = False

    def isatty(self) -> bool:
        try:
            return self.stdout.isatty()
        except (AttributeError, ValueError):
            return False

    def size(self) -> tuple[int | None, int | None]:
        if not self.isatty():
            return None, None

        try:
            got = os.get_terminal_size(self.stdout.fileno())
        except (OSError, ValueError):
            return None, None

        return got.columns, got.lines

    def write(self, data: bytes) -> None:
        out = getattr(self.stdout, "buffer", None)
        if out is not None:
            out.write(data)
        else:
            self.stdout.write(data.decode(errors="replace"))

        self.stdout.flush()

    def startForwarding(self, feed: Callable[[bytes], None], interrupt: Callable[[], None]) -> None:
        if self._stack:
            return

        self.input = self.input or create_input(self.stdin)
        inp = self.input

        def keysReady() -> None:
            for press in inp.read_keys():
                if press.key == Keys.ControlC:
                    interrupt()
                    continue

                # raw mode delivers Enter as a bare carriage return
                data = press.data.replace("\r", "\n")
                if data:
                    feed(data.encode())

            if inp.closed:
                # local EOF; the remote side decides when the command is done
                self.stopForwarding()

        stack = contextlib.ExitStack()
        stack.enter_context(inp.raw_mode())
        stack.enter_context(inp.attach(keysReady))
        self._stack = stack

        # raw mode swallows Ctrl-C, but piped stdin still gets a real SIGINT
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGINT, interrupt)
            self._signal = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler not installed")

    def stopForwarding(self) -> None:
        if self._signal:
            with contextlib.suppress(RuntimeError):
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

            self._signal = False

        if stack := self._stack:
            self._stack = None
            stack.close()
