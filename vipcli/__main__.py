"""vip-wp: run WP-CLI commands against a VIP environment.

    vip-wp @mysite.develop                      # interactive subshell
    vip-wp @mysite.develop option get siteurl   # one command, then exit
    vip-wp @mysite.production --yes cache flush
    vip-wp @mysite.develop --log                # recent completed commands
    vip-wp @mysite.develop --log <command-id>   # replay a command's output
"""

from __future__ import annotations

import argparse
import sys

from vipcli.cli import WPOptions, run

OWN_FLAGS = {"--yes", "-y", "--help", "-h"}


def splitArgv(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split argv into our own arguments and the wp-cli command.

    Everything from the first token after the target that isn't one of our
    flags belongs to wp-cli verbatim (so `--format=count` etc. pass through).
    A literal `--` also starts the wp-cli part.

    The target is always returned first so a bare `--log` never swallows it.
    """
    target: list[str] = []
    flags: list[str] = []
    i = 0
    while i < len(argv):
        tok = argv[i]
        if tok == "--":
            return target + flags, argv[i + 1 :]

        if tok in OWN_FLAGS or tok.startswith("--log="):
            flags.append(tok)
        elif tok == "--log":
            flags.append(tok)
            nxt = argv[i + 1] if i + 1 < len(argv) else None
            if nxt and not nxt.startswith(("-", "@")) and target:
                flags.append(nxt)
                i += 1
        elif not target:
            target.append(tok)
        else:
            return target + flags, argv[i:]

        i += 1

    return target + flags, []


def buildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vip-wp",
        description="Run WP-CLI commands on a VIP application environment.",
        usage="vip-wp @app.env [--yes] [--log [ID]] [wp-cli command ...]",
    )
    parser.add_argument("target", help="Application environment, like @mysite.develop")
    parser.add_argument(
        "-y", "--yes", action="store_true", help="Run the command in production without a confirmation prompt"
    )
    parser.add_argument(
        "--log",
        nargs="?",
        const=True,
        default=None,
        metavar="ID",
        help="Get the command from a completed log (without ID: list recent commands)",
    )
    return parser


def parseArgs(argv: list[str]) -> WPOptions:
    own, wpargs = splitArgv(argv)
    parser = buildParser()
    got = parser.parse_args(own)

    # `vip-wp @app.env wp option get` works too
    if wpargs[:1] == ["wp"]:
        wpargs = wpargs[1:]

    try:
        return WPOptions(target=got.target, args=tuple(wpargs), yes=got.yes, log=got.log)
    except ValueError as e:
        parser.error(str(e))
        raise


def main(argv: list[str] | None = None) -> int:
    options = parseArgs(sys.argv[1:] if argv is None else argv)
    return run(options)


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
