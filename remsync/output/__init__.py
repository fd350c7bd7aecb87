# remsync Output Module
# Rich console output

from remsync.output.console import Console, create_console

__all__ = [
    "Console",
    "create_console",
]
