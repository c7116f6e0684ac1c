"""vipcli: command-line client for running WP-CLI on hosted WordPress environments."""

__version__ = "0.1.0"
