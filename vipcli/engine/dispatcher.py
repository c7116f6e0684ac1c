"""Remote command registration.

Before a command can stream, the API has to register it and hand back a
command id plus a one-time input token. That handshake lives here, along
with the "completed commands" listing used by `--log`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Final

import whenever
from loguru import logger

from vipcli.engine.protocols import GraphQLClient
from vipcli.engine.session import Session

TRIGGER_COMMAND_MUTATION: Final = """
mutation TriggerWPCLICommandMutation($input: AppEnvironmentTriggerWPCLICommandInput) {
    triggerWPCLICommandOnAppEnvironment(input: $input) {
        inputToken
        command {
            guid
        }
    }
}
"""

COMMANDS_QUERY: Final = """
query App($id: Int, $status: String, $first: Int) {
    app(id: $id) {
        environments {
            id
            name
            commands(status: $status, first: $first) {
                total
                nextCursor
                nodes {
                    id
                    guid
                    command
                    startedAt
                    endedAt
                    status
                }
            }
        }
    }
}
"""

LOGS_ACTION: Final = "logs"


@dataclass(frozen=True, slots=True)
class CompletedCommand:
    commandId: str
    commandLine: str
    startedAt: whenever.Instant | None

    def describe(self) -> str:
        started = self.startedAt.format_common_iso() if self.startedAt else "-"
        return f"{started} {self.commandLine} {self.commandId}"


def parseTimestamp(value: str | None) -> whenever.Instant | None:
    if not value:
        return None

    try:
        return whenever.Instant.parse_common_iso(value)
    except ValueError:
        logger.warning("Unparseable command timestamp: {}", value)
        return None


@dataclass(slots=True)
class RemoteCommandDispatcher:
    api: GraphQLClient
    appId: int
    envId: int

    async def dispatch(self, commandLine: str) -> Session:
        """Register `commandLine` for execution and return its new Session.

        Raises whatever the API client raises (GraphQLError for structured
        errors, APIError for everything else); callers decide how to report.
        """
        got = await self.api.mutate(
            TRIGGER_COMMAND_MUTATION,
            dict(input=dict(id=self.appId, environmentId=self.envId, command=commandLine)),
        )

        triggered = got["triggerWPCLICommandOnAppEnvironment"]
        session = Session(
            commandId=triggered["command"]["guid"],
            inputToken=triggered["inputToken"],
            commandLine=commandLine,
        )

        logger.debug("[{}] Registered command", session.commandId)
        return session

    def attach(self, commandId: str) -> Session:
        """Session for replaying an existing command's output (no round trip)."""
        return Session(commandId=commandId, commandAction=LOGS_ACTION)

    async def completedCommands(self, limit: int = 5) -> list[CompletedCommand]:
        got = await self.api.query(
            COMMANDS_QUERY, dict(id=self.appId, status="complete", first=limit)
        )

        environments = (got.get("app") or {}).get("environments") or []
        env = next((e for e in environments if e.get("id") == self.envId), None)
        if not env:
            return []

        return [
            CompletedCommand(
                commandId=node["guid"],
                commandLine=node.get("command") or "",
                startedAt=parseTimestamp(node.get("startedAt")),
            )
            for node in (env.get("commands") or {}).get("nodes") or []
        ]
