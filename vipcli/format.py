"""Terminal formatting helpers.

Everything here returns prompt_toolkit HTML markup (as str) so callers can
compose it into larger messages before printing with `say()` / `error()`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.formatted_text.html import html_escape

RULE = "==================================="

# --k="v w" style re-quoting for options with values containing spaces
REQUOTE_OPTION = re.compile(r"^--(.*)=(.*)$")

# output formats where wp-cli doesn't end its output with a newline
FORMATS_WITHOUT_TRAILING_NEWLINE = {"count", "ids"}
FORMAT_OPTION = re.compile(r"--format(?:=|\s+)[\"']?(\w+)")


def formatEnvironment(environment: str) -> str:
    if environment.lower() == "production":
        return f"<ansired>{html_escape(environment.upper())}</ansired>"

    return f"<ansibrightblue>{html_escape(environment.lower())}</ansibrightblue>"


def keyValue(values: Sequence[tuple[str, str]]) -> str:
    """Render key/value pairs as a framed summary block."""
    lines = []
    if values:
        lines.append(RULE)

    for key, value in values:
        v = formatEnvironment(value) if key.lower() == "environment" else html_escape(value)
        lines.append(f"+ {html_escape(key)}: {v}")

    lines.append(RULE)
    return "\n".join(lines)


def requoteArgs(args: Iterable[str]) -> list[str]:
    """Re-quote arguments the shell already unquoted so the remote shell sees them intact."""
    quoted = []
    for arg in args:
        if "--" in arg and "=" in arg and " " in arg:
            quoted.append(REQUOTE_OPTION.sub(r'--\1="\2"', arg))
        elif " " in arg:
            quoted.append(f'"{arg}"')
        else:
            quoted.append(arg)

    return quoted


def needsTrailingNewline(commandLine: str) -> bool:
    """True when the command's --format is one wp-cli prints without a final newline."""
    if m := FORMAT_OPTION.search(commandLine):
        return m.group(1).lower() in FORMATS_WITHOUT_TRAILING_NEWLINE

    return False


def say(markup: str, *args) -> None:
    print_formatted_text(HTML(markup).format(*args) if args else HTML(markup))


def error(message: str) -> None:
    print_formatted_text(HTML("<ansired>Error:</ansired> {}").format(message))


def warning(message: str) -> None:
    print_formatted_text(HTML("<ansiyellow>{}</ansiyellow>").format(message))
