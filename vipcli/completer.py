"""Tab completion for the wp subshell.

Completes `wp` itself, then top-level wp-cli commands (with a short
description), then a handful of well-known subcommands.
"""

from prompt_toolkit.completion import Completer, Completion


class WPCommandCompleter(Completer):
    """Completer for wp-cli command lines typed at the subshell prompt."""

    COMMANDS = {
        "cache": "Adds, removes, fetches, and flushes the WP Object Cache object.",
        "cap": "Adds, removes, and lists capabilities of a user role.",
        "comment": "Creates, updates, deletes, and moderates comments.",
        "cron": "Tests, runs, and deletes WP-Cron events; manages WP-Cron schedules.",
        "db": "Performs basic database operations.",
        "help": "Gets help on WP-CLI, or on a specific command.",
        "media": "Imports files as attachments, regenerates thumbnails.",
        "menu": "Lists, creates, assigns, and deletes the active theme's navigation menus.",
        "option": "Retrieves and sets site options, including plugin and WordPress settings.",
        "plugin": "Manages plugins, including installs, activations, and updates.",
        "post": "Manages posts, content, and meta.",
        "rewrite": "Lists or flushes the site's rewrite rules.",
        "role": "Manages user roles, including creating new roles and resetting to defaults.",
        "search-replace": "Searches/replaces strings in the database.",
        "site": "Creates, deletes, empties, moderates, and lists one or more sites.",
        "term": "Manages taxonomy terms and term meta.",
        "theme": "Manages themes, including installs, activations, and updates.",
        "transient": "Adds, gets, and deletes entries in the WordPress Transient Cache.",
        "user": "Manages users, along with their roles, capabilities, and meta.",
        "vip": "VIP-specific commands.",
    }

    SUBCOMMANDS = {
        "cache": ["add", "delete", "flush", "get", "set", "type"],
        "cron": ["event", "schedule", "test"],
        "option": ["add", "delete", "get", "list", "patch", "pluck", "update"],
        "plugin": ["activate", "deactivate", "get", "list", "status", "toggle"],
        "post": ["create", "delete", "get", "list", "meta", "update"],
        "rewrite": ["flush", "list", "structure"],
        "theme": ["activate", "get", "list", "status"],
        "transient": ["delete", "get", "set", "type"],
        "user": ["add-role", "create", "delete", "get", "list", "meta", "update"],
    }

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        parts = text.split()
        typing_new = not text or text.endswith(" ")

        if typing_new:
            parts.append("")

        prefix = parts[-1]

        if len(parts) == 1:
            if "wp".startswith(prefix):
                yield Completion("wp", start_position=-len(prefix))
            return

        if parts[0] != "wp":
            return

        if len(parts) == 2:
            for name in sorted(self.COMMANDS):
                if name.startswith(prefix):
                    yield Completion(
                        name, start_position=-len(prefix), display_meta=self.COMMANDS[name]
                    )
        elif len(parts) == 3:
            for sub in self.SUBCOMMANDS.get(parts[1], []):
                if sub.startswith(prefix):
                    yield Completion(sub, start_position=-len(prefix))
