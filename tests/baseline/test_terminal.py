"""Tests for vipcli.engine.terminal: local keystroke forwarding."""
import asyncio
import io
from unittest.mock import MagicMock

import pytest
from prompt_toolkit.input import create_pipe_input

from vipcli.engine.terminal import ProcessTerminal


class FakeStdout(io.StringIO):
    def __init__(self):
        super().__init__()
        self.buffer = io.BytesIO()


def test_size_unknown_when_not_a_tty():
    assert ProcessTerminal(stdout=FakeStdout()).size() == (None, None)


def test_write_goes_to_binary_buffer():
    out = FakeStdout()
    ProcessTerminal(stdout=out).write(b"\x1b[32mok\x1b[0m\n")
    assert out.buffer.getvalue() == b"\x1b[32mok\x1b[0m\n"


class TestForwarding:
    @pytest.mark.asyncio
    async def test_keys_forwarded_with_enter_as_newline(self):
        with create_pipe_input() as pipe:
            terminal = ProcessTerminal(stdout=FakeStdout())
            terminal.input = pipe
            fed = []
            interrupt = MagicMock()

            terminal.startForwarding(fed.append, interrupt)
            pipe.send_text("y\r")
            await asyncio.sleep(0.05)
            terminal.stopForwarding()

        assert b"".join(fed) == b"y\n"
        interrupt.assert_not_called()

    @pytest.mark.asyncio
    async def test_ctrl_c_interrupts_instead_of_forwarding(self):
        with create_pipe_input() as pipe:
            terminal = ProcessTerminal(stdout=FakeStdout())
            terminal.input = pipe
            fed = []
            interrupt = MagicMock()

            terminal.startForwarding(fed.append, interrupt)
            pipe.send_text("\x03")
            await asyncio.sleep(0.05)
            terminal.stopForwarding()

        assert fed == []
        interrupt.assert_called_once()

    @pytest.mark.asyncio
    async def test_nothing_forwarded_after_stop(self):
        with create_pipe_input() as pipe:
            terminal = ProcessTerminal(stdout=FakeStdout())
            terminal.input = pipe
            fed = []

            terminal.startForwarding(fed.append, MagicMock())
            terminal.stopForwarding()
            pipe.send_text("late")
            await asyncio.sleep(0.05)

        assert fed == []
