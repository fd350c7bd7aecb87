# remsync Console Output
# Rich-based console output for user-friendly display

from collections.abc import Sequence
from typing import Union

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from remsync.sync.actions import ActionType, SyncAction
from remsync.sync.node import ROOT, Node, RemoteNode, SyncState
from remsync.sync.session import SessionReport
from remsync.utils.timestamps import format_millis

TreeNode = Union[Node, RemoteNode]


class Console:
    """
    Console output manager using Rich.

    Provides formatted output for plans, session reports and node trees.
    """

    def __init__(self, *, verbose: bool = False, colored: bool = True):
        """
        Initialize console.

        Args:
            verbose: Enable verbose output.
            colored: Enable colored output.
        """
        self.verbose = verbose
        self._console = RichConsole(force_terminal=colored, no_color=not colored)

    @property
    def rich(self) -> RichConsole:
        """Underlying rich console, e.g. for a SyncLogger."""
        return self._console

    def print(self, *args, **kwargs) -> None:
        """Print to console."""
        self._console.print(*args, **kwargs)

    def print_error(self, message: str) -> None:
        """Print error message."""
        self._console.print(f"[red]Error:[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self._console.print(f"[yellow]Warning:[/yellow] {message}")

    def print_success(self, message: str) -> None:
        """Print success message."""
        self._console.print(f"[green]{message}[/green]")

    def print_info(self, message: str) -> None:
        """Print info message."""
        self._console.print(f"[blue]{message}[/blue]")

    def print_plan(self, actions: Sequence[SyncAction], *, dry_run: bool = False) -> None:
        """
        Print planned actions as a table.

        Args:
            actions: Planned actions, in plan order.
            dry_run: Whether nothing will be applied (changes the title).
        """
        shown = [a for a in actions if a.needs_action or a.blocked_by]
        if not shown:
            self._console.print("[green]Everything is in sync[/green]")
            return

        title = "Planned Changes (dry-run)" if dry_run else "Changes to Apply"
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Node", style="cyan")
        table.add_column("Action")
        table.add_column("Direction", justify="center")
        table.add_column("Version", justify="right")
        table.add_column("Reason", style="dim")

        for action in shown:
            label = action.action_type.value.replace("_", " ")
            if action.forced:
                label += " (ancestor)"
            version = "" if action.version is None else str(action.version)
            name = action.name or action.node_id
            if self.verbose and action.name:
                name = f"{action.name} [dim]{action.node_id}[/dim]"
            table.add_row(name, self._style_action(action.action_type, label), action.direction, version, action.reason)

        self._console.print()
        self._console.print(table)
        self._console.print()

    def _style_action(self, action_type: ActionType, label: str) -> str:
        """Color an action label by its direction."""
        colors = {
            ActionType.UPLOAD: "green",
            ActionType.RENAME_UPLOAD: "yellow",
            ActionType.DOWNLOAD: "blue",
            ActionType.METADATA_CLOBBER: "cyan",
            ActionType.LOCAL_DELETE: "red",
            ActionType.REMOTE_DELETE: "red",
            ActionType.SKIP: "dim",
        }
        color = colors.get(action_type, "white")
        return f"[{color}]{label}[/{color}]"

    def print_session_report(self, report: SessionReport) -> None:
        """
        Print the outcome of a sync session.

        Args:
            report: Report returned by SyncSession.establish.
        """
        self._console.print()

        if report.aborted:
            self._console.print(
                Panel(
                    f"[red]Sync aborted[/red]\n{report.error_kind}: {report.error}",
                    title="Summary",
                    border_style="red",
                )
            )
            return

        failures = report.failures
        for result in failures:
            name = result.action.name or result.node_id
            self._console.print(f"  [red]✗[/red] {name} ({result.node_id}): {result.error_kind}: {result.error}")

        lines = [
            "[green]Sync completed[/green]" if not failures else "[yellow]Sync completed with errors[/yellow]",
            f"Server: {report.host}",
            f"Uploaded: {report.count(ActionType.UPLOAD) + report.count(ActionType.RENAME_UPLOAD)}, "
            f"downloaded: {report.count(ActionType.DOWNLOAD)}, "
            f"metadata: {report.count(ActionType.METADATA_CLOBBER)}",
            f"Deleted on server: {report.count(ActionType.REMOTE_DELETE)}, "
            f"deleted locally: {report.count(ActionType.LOCAL_DELETE)}",
        ]
        if failures:
            by_kind = ", ".join(f"{kind} {len(ids)}" for kind, ids in sorted(report.failures_by_kind().items()))
            lines.append(f"Failures: {by_kind}")

        self._console.print(
            Panel(
                "\n".join(lines),
                title="Summary",
                border_style="green" if not failures else "yellow",
            )
        )

    def print_tree(self, nodes: Sequence[TreeNode], *, title: str = "Documents") -> None:
        """
        Print nodes as a tree, collections before documents.

        Nodes whose parent isn't in the listing are shown at the top level
        and marked as orphans.

        Args:
            nodes: Local or server nodes.
            title: Label of the tree root.
        """
        by_id = {n.id: n for n in nodes}
        children: dict[str, list[TreeNode]] = {}
        for node in nodes:
            parent = node.parent if node.parent in by_id else ROOT
            children.setdefault(parent, []).append(node)

        root = Tree(f"[bold]{title}[/bold]")
        if not nodes:
            root.add("[dim]empty[/dim]")

        def add(branch: Tree, parent: str, seen: set[str]) -> None:
            items = sorted(children.get(parent, []), key=lambda n: (not n.is_collection, n.name, n.id))
            for node in items:
                if node.id in seen:
                    continue
                seen.add(node.id)
                orphan = node.parent != ROOT and node.parent not in by_id
                sub = branch.add(self._tree_label(node, orphan=orphan))
                add(sub, node.id, seen)

        add(root, ROOT, set())
        self._console.print(root)

    def _tree_label(self, node: TreeNode, *, orphan: bool = False) -> str:
        if node.is_collection:
            label = f"[bold blue]{node.name or node.id}/[/bold blue]"
        else:
            label = f"{node.name or node.id}"

        marks = []
        if node.pinned:
            marks.append("[yellow]★[/yellow]")
        if isinstance(node, Node) and node.state != SyncState.SYNCED:
            marks.append(f"[magenta]{node.state.value.replace('_', ' ')}[/magenta]")
        if orphan:
            marks.append(f"[red](orphan of {node.parent})[/red]")
        if self.verbose:
            details = f"{node.id} v{node.version}"
            if node.last_modified:
                details += f" {format_millis(node.last_modified)}"
            marks.append(f"[dim]{details}[/dim]")
        return " ".join([label, *marks])

    def print_config_summary(self, config_path: str, device_id: str, store_path: str, server: str) -> None:
        """Print configuration summary."""
        self._console.print(
            Panel(
                f"Config: {config_path}\n" f"Device: {device_id}\n" f"Store: {store_path}\n" f"Server: {server}",
                title="remsync Configuration",
                border_style="blue",
            )
        )


def create_console(*, verbose: bool = False, colored: bool = True) -> Console:
    """
    Create a console instance.

    Args:
        verbose: Enable verbose output.
        colored: Enable colored output.

    Returns:
        Console instance.
    """
    return Console(verbose=verbose, colored=colored)
