"""Rich console output for sync sessions."""

from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.text import Text

from remsync.sync.actions import ActionResult, ActionType, SyncAction

if TYPE_CHECKING:
    from remsync.sync.notifications import DispatcherState
    from remsync.sync.session import SessionPhase
    from remsync.transport.wire import Notification


class SyncLogger:
    """Progress lines for sync sessions, one per phase change and applied action.

    Used by SyncSession; output goes to the same rich console as the CLI.
    """

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose

    def _emit(self, color: str, mark: str, message: str) -> None:
        self.console.print(f"[{color}]{mark}[/{color}] {message}")

    def info(self, message: str) -> None:
        self._emit("blue", "ℹ", message)

    def success(self, message: str) -> None:
        self._emit("green", "✓", message)

    def warning(self, message: str) -> None:
        self._emit("yellow", "⚠", message)

    def error(self, message: str) -> None:
        self._emit("red", "✗", message)

    def debug(self, message: str) -> None:
        """Dim detail line; printed only in verbose mode."""
        if self.verbose:
            self.console.print(f"[dim]· {message}[/dim]")

    def phase(self, phase: "SessionPhase") -> None:
        """Announce a session phase transition."""
        label = phase.value.replace("_", " ")
        style = "red" if phase.value == "aborted" else "magenta"
        self.console.print(f"[{style}]▸[/{style}] [bold]{label}[/bold]")

    def dispatcher(self, state: "DispatcherState") -> None:
        """Notification dispatcher state change."""
        self.debug(f"notifications: {state.value}")

    def notification(self, notification: "Notification") -> None:
        """An applied change event and the device it came from."""
        source = notification.source_device_id or "unknown device"
        self.console.print(f"[magenta]⚡[/magenta] {notification.event.value} {notification.id} [dim]from {source}[/dim]")

    def action(self, action: SyncAction, result: Optional[ActionResult] = None) -> None:
        """Display action with appropriate styling."""
        style_map = {
            ActionType.UPLOAD: ("green", "↑ upload"),
            ActionType.DOWNLOAD: ("blue", "↓ download"),
            ActionType.LOCAL_DELETE: ("red", "✗ local"),
            ActionType.REMOTE_DELETE: ("red", "✗ server"),
            ActionType.METADATA_CLOBBER: ("cyan", "= metadata"),
            ActionType.RENAME_UPLOAD: ("yellow", "⇄ rename"),
            ActionType.SKIP: ("dim", "○ skip"),
        }

        color, direction = style_map.get(action.action_type, ("white", "?"))
        if result is not None and not result.success:
            color = "red"

        text = Text()
        text.append(f"  [{direction:>12}] ", style=color)
        text.append(action.name or action.node_id, style="cyan bold")

        if result is not None and result.version is not None:
            text.append(f" v{result.version}", style="dim")

        if result is not None and not result.success:
            text.append(f" - {result.error_kind}: {result.error}", style="red")
        elif self.verbose and action.reason:
            text.append(f" - {action.reason}", style="dim")

        self.console.print(text)
