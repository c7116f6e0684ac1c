"""Runtime configuration.

Values are layered as: built-in defaults, then `.env.vip` in the working
directory, then the process environment (so `VIP_TOKEN=... vip-wp` always wins).
"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, field
from typing import Final

from dotenv import dotenv_values

# geometry reported to the remote terminal when stdout isn't a TTY
NON_TTY_COLUMNS: Final = 100
NON_TTY_ROWS: Final = 15

# single control byte the remote side interprets as SIGINT
CANCEL_COMMAND_CHAR: Final = "\x03"

SUBSHELL_HISTORY_SIZE: Final = 200
COMPLETED_COMMANDS_LIMIT: Final = 5

VIP_DEFAULTS: Final = dict(
    VIP_API_HOST="https://api.wpvip.com",
    VIP_LOGDIR="runlogs",
    VIP_LOGLEVEL="INFO",
    VIP_HISTORY="~/.vip_wp_history",
)


def loadValues(envfile: str = ".env.vip") -> dict[str, str]:
    return {**VIP_DEFAULTS, **dotenv_values(envfile), **os.environ}  # type: ignore


@dataclass(slots=True)
class Config:
    apiHost: str = VIP_DEFAULTS["VIP_API_HOST"]
    token: str | None = None
    logdir: str = VIP_DEFAULTS["VIP_LOGDIR"]
    loglevel: str = VIP_DEFAULTS["VIP_LOGLEVEL"]
    historyFile: str = VIP_DEFAULTS["VIP_HISTORY"]

    # anything else found in the environment (unused keys are harmless)
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, envfile: str = ".env.vip") -> Config:
        values = loadValues(envfile)
        return cls(
            apiHost=values["VIP_API_HOST"].rstrip("/"),
            token=values.get("VIP_TOKEN") or None,
            logdir=values["VIP_LOGDIR"],
            loglevel=values["VIP_LOGLEVEL"].upper(),
            historyFile=values["VIP_HISTORY"],
            extra={k: v for k, v in values.items() if k.startswith("VIP_")},
        )

    @property
    def graphqlUrl(self) -> str:
        return f"{self.apiHost}/graphql"

    @property
    def wpcliUrl(self) -> str:
        """Websocket endpoint for the remote wp-cli execution service."""
        host = self.apiHost
        if host.startswith("https://"):
            host = "wss://" + host.removeprefix("https://")
        elif host.startswith("http://"):
            host = "ws://" + host.removeprefix("http://")

        return f"{host}/wp-cli"

    @property
    def historyPath(self) -> pathlib.Path:
        return pathlib.Path(os.path.expanduser(self.historyFile))
