#!/usr/bin/env python3

original_print = print
import asyncio
import itertools
import logging
import pathlib
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Final

import questionary
import whenever
from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.formatted_text.html import html_escape
from prompt_toolkit.history import FileHistory, ThreadedHistory
from prompt_toolkit.patch_stdout import patch_stdout

import vipcli.format as fmt
from vipcli.api import API, APIError, GraphQLError
from vipcli.completer import WPCommandCompleter
from vipcli.config import COMPLETED_COMMANDS_LIMIT, SUBSHELL_HISTORY_SIZE, Config
from vipcli.context import Context, ContextError, resolveContext
from vipcli.engine.controller import SessionController
from vipcli.engine.dispatcher import RemoteCommandDispatcher
from vipcli.engine.machine import Event, Interrupted
from vipcli.engine.terminal import ProcessTerminal
from vipcli.engine.transport import SessionTransport

# terminal escape to show the cursor again (confirmation prompts can leave it hidden)
SHOW_CURSOR: Final = "\x1b[?25h"


@dataclass(frozen=True, slots=True)
class WPOptions:
    """Everything `vip-wp` understands on its command line."""

    # @app.env (or @app when the app has one environment)
    target: str

    # wp-cli arguments for one-shot mode; empty means subshell
    args: tuple[str, ...] = ()

    # skip the production confirmation prompt
    yes: bool = False

    # None: normal run; True: list recent completed commands; str: attach to that command's log
    log: bool | str | None = None

    def __post_init__(self) -> None:
        if self.log is not None and self.args:
            raise ValueError("--log can't be combined with a wp command")

        if self.log is False or self.log == "":
            raise ValueError("--log needs a command id (or no value to list recent commands)")

    @property
    def isSubShell(self) -> bool:
        return not self.args and self.log is None

    @property
    def command(self) -> str:
        # the shell already ate our quoting, so put it back for the remote shell
        return " ".join(fmt.requoteArgs(self.args))


class BoundedFileHistory(FileHistory):
    """FileHistory that only loads the most recent `limit` entries."""

    def __init__(self, filename: str, limit: int = SUBSHELL_HISTORY_SIZE):
        super().__init__(filename)
        self.limit = limit

    def load_history_strings(self) -> Iterable[str]:
        # newest first, so the cut keeps the most recent
        return itertools.islice(super().load_history_strings(), self.limit)


@dataclass(slots=True)
class VipCmdlineApp:
    options: WPOptions

    config: Config = field(default_factory=Config.load)

    # Local process terminal (raw keystroke forwarding and output)
    terminal: Any = field(default_factory=ProcessTerminal)

    api: API = field(init=False)
    context: Context | None = None
    controller: SessionController | None = None

    # Console log handler (set by setupLogging)
    _console_handler_id: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.setupLogging()
        self.api = API(self.config)

    def setupLogging(self) -> None:
        # library loggers (httpx, websockets) go to their own file so they never
        # interleave with remote command output on the terminal
        now = whenever.ZonedDateTime.now("UTC")
        LOGDIR = pathlib.Path(self.config.logdir) / f"{now.year}" / f"{now.month:02}"
        LOGDIR.mkdir(exist_ok=True, parents=True)
        LOG_FILE_TEMPLATE = str(LOGDIR / f"vip-wp-{now.format_common_iso()}".replace(" ", "_"))
        logging.basicConfig(
            level=logging.INFO,
            filename=LOG_FILE_TEMPLATE + "-libs.log",
            format="%(asctime)s %(name)s %(message)s",
        )

        def asink(x):
            # plain print, so nothing here fights prompt_toolkit for the terminal
            original_print(x, end="")

        logger.remove()
        self._console_handler_id = logger.add(asink, colorize=True, level=self.config.loglevel)

        # user input and transport lifecycle go to TRACE/DEBUG so only the files keep them
        logger.add(sink=LOG_FILE_TEMPLATE + "-vip.log", level="TRACE", colorize=False)
        logger.add(sink=LOG_FILE_TEMPLATE + "-vip-color.log", level="TRACE", colorize=True)

        logger.debug("Logging session with prefix: {}", LOG_FILE_TEMPLATE)

    async def bearer(self) -> str:
        return (await self.api.token()).raw

    def makeTransport(self, emit: Callable[[Event], Awaitable[None]]) -> SessionTransport:
        return SessionTransport(self.config.wpcliUrl, token=self.bearer, emit=emit)

    def makeController(self) -> SessionController:
        assert self.context
        dispatcher = RemoteCommandDispatcher(self.api, self.context.app.id, self.context.env.id)
        return SessionController(
            dispatcher=dispatcher,
            transportFactory=self.makeTransport,
            terminal=self.terminal,
            interactive=self.options.isSubShell,
            logCommandId=self.options.log if isinstance(self.options.log, str) else None,
        )

    async def listCompletedCommands(self) -> int:
        assert self.context
        dispatcher = RemoteCommandDispatcher(self.api, self.context.app.id, self.context.env.id)
        try:
            commands = await dispatcher.completedCommands(COMPLETED_COMMANDS_LIMIT)
        except APIError as e:
            logger.opt(exception=e).debug("Command listing failed")
            fmt.error(f"Failed to get commands for ({self.context.app.id}) details: {e}")
            return 1

        for command in commands:
            original_print(command.describe())

        return 0

    async def confirmProduction(self) -> bool:
        assert self.context
        if self.options.yes:
            return True

        fmt.say(fmt.keyValue([("command", f"wp {self.options.command}")]))
        env = self.context.env.type.upper()
        got = await questionary.confirm(
            f"Are you sure you want to run this command on {env} for site {self.context.app.name}?",
            default=False,
        ).ask_async()

        # None means the prompt itself was cancelled (Ctrl-C / Ctrl-D)
        return bool(got)

    def welcome(self) -> None:
        assert self.context
        # reset the cursor (questionary/enquirer style prompts can leave it hidden)
        original_print(SHOW_CURSOR, end="")
        fmt.say(
            "Welcome to the WP CLI shell for the "
            + fmt.formatEnvironment(self.context.env.type)
            + " environment of <ansigreen>"
            + html_escape(self.context.app.name)
            + "</ansigreen> ("
            + html_escape(self.context.env.primaryDomain or f"#{self.context.env.id}")
            + ")!"
        )

    async def runall(self) -> int:
        try:
            try:
                self.context = await resolveContext(self.api, self.options.target)
            except GraphQLError as e:
                for message in e.messages:
                    fmt.error(message)

                return 1
            except (ContextError, APIError) as e:
                fmt.error(str(e))
                return 1

            if self.options.log is True:
                return await self.listCompletedCommands()

            if self.options.isSubShell:
                self.welcome()
            elif self.context.isProduction and not await self.confirmProduction():
                original_print("Command cancelled")
                return 0

            self.controller = self.makeController()

            if self.options.isSubShell:
                return await self.dorepl()

            return await self.controller.run(f"wp {self.options.command}")
        finally:
            self.terminal.stopForwarding()
            await self.api.close()

    async def dorepl(self) -> int:
        assert self.context and self.controller
        controller = self.controller

        session: PromptSession = PromptSession(
            history=ThreadedHistory(BoundedFileHistory(str(self.config.historyPath))),
            auto_suggest=AutoSuggestFromHistory(),
            completer=WPCommandCompleter(),
        )

        prompt = HTML("<b><ansibrightyellow>{}:</ansibrightyellow></b><ansiblue>~</ansiblue>$ ").format(
            self.context.promptIdentifier
        )

        # The Command Processing REPL
        # (console log lines go through the patched stdout so they never overwrite the prompt)
        with patch_stdout(raw=True):
            while not controller.closed.is_set():
                try:
                    text1 = await session.prompt_async(prompt, complete_while_typing=False)
                except KeyboardInterrupt:
                    # Control-C at the prompt: same handling as during a command
                    await controller.handle(Interrupted())
                    continue
                except EOFError:
                    # Control-D pressed
                    break

                await controller.submit(text1)
                await controller.waitIdle()

        if controller.forced:
            logger.debug("Forced exit requested")

        return controller.exitCode or 0


def run(options: WPOptions) -> int:
    app = VipCmdlineApp(options)
    try:
        return asyncio.run(app.runall())
    except KeyboardInterrupt:
        # only reachable before the controller owns Ctrl-C handling
        return 1
