"""Click-based CLI for remsync - document tree synchronization."""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Optional

import click
import yaml
from pydantic import ValidationError

from remsync import __version__
from remsync.config import (
    ConflictPolicy,
    RemsyncConfig,
    ServerKind,
    ensure_config_exists,
    generate_default_config,
    get_config_path,
    load_config,
    validate_config_file,
)
from remsync.logger import SyncLogger
from remsync.output import Console, create_console
from remsync.sync.errors import RemsyncError
from remsync.sync.index import LocalIndex, NodeStore
from remsync.sync.node import ROOT, NodeKind
from remsync.sync.session import SessionContext, SyncSession
from remsync.transport import DirectoryServer, MemoryServer, MemoryTransport, StorageClient
from remsync.utils.paths import ensure_dir


def _load(console: Console) -> RemsyncConfig:
    """Load configuration or exit with a message."""
    try:
        return load_config()
    except FileNotFoundError as e:
        console.print_error(str(e))
        sys.exit(1)
    except yaml.YAMLError as e:
        console.print_error(f"Invalid YAML in {get_config_path()}: {e}")
        sys.exit(1)
    except ValidationError as e:
        console.print_error(f"Invalid configuration: {get_config_path()}")
        for error in e.errors():
            loc = " -> ".join(str(part) for part in error["loc"])
            console.print(f"  [red]•[/red] {loc}: {error['msg']}")
        sys.exit(1)


def _open_index(config: RemsyncConfig) -> LocalIndex:
    return LocalIndex(NodeStore(Path(config.store.path)))


def _build_transport(config: RemsyncConfig) -> MemoryTransport:
    """Connect to the configured passive server as this device."""
    if config.server.kind == ServerKind.DIRECTORY:
        if not config.server.path:
            raise click.UsageError("Directory server requires 'server.path' in the configuration")
        server: MemoryServer = DirectoryServer(Path(config.server.path))
    else:
        server = MemoryServer()
    return MemoryTransport(server, config.device.id)


def _build_session(config: RemsyncConfig, index: LocalIndex, logger: SyncLogger) -> SyncSession:
    return SyncSession(SessionContext.from_config(config, index, _build_transport(config), logger=logger))


def _resolve_parent(index: LocalIndex, parent: Optional[str], console: Console) -> str:
    if not parent:
        return ROOT
    node = index.get(parent)
    if node is None or not node.is_collection or node.is_deleted:
        console.print_error(f"Parent collection '{parent}' not found")
        sys.exit(1)
    return parent


@click.group()
@click.version_option(version=__version__, prog_name="remsync")
def cli() -> None:
    """remsync - document tree synchronization.

    Reconciles the local document store with a passive storage server.

    \b
    Workflow:
      remsync init              Create configuration and store
      remsync status            Preview what a sync would do
      remsync sync              Delete propagation, snapshot, reconciliation
      remsync watch             Stay in sync, applying notifications
      remsync ls [--local]      Show the server or local tree
    """
    pass


@cli.command()
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing configuration")
def init(force: bool) -> None:
    """Create the configuration file and local store."""
    console = create_console()
    config_path = get_config_path()

    if config_path.exists() and not force:
        console.print_warning(f"Configuration already exists: {config_path}")
    else:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        console.print_success(f"Created configuration: {config_path}")

    config = _load(console)
    ensure_dir(Path(config.store.path))
    if config.server.kind == ServerKind.DIRECTORY and config.server.path:
        ensure_dir(Path(config.server.path))

    console.print_config_summary(
        str(config_path), config.device.id, config.store.path, config.server.path or config.server.kind.value
    )


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Show node ids")
def status(verbose: bool) -> None:
    """Show what a sync would do, without changing anything."""
    console = create_console(verbose=verbose)
    config = _load(console)
    index = _open_index(config)
    session = _build_session(config, index, SyncLogger(console.rich, verbose=verbose))

    try:
        actions = session.preview()
    except RemsyncError as e:
        console.print_error(f"{e.kind}: {e.message}")
        sys.exit(1)

    pending = index.pending_changes()
    console.print_info(f"Local nodes: {len(index)}, with pending changes: {len(pending)}")
    console.print_plan(actions, dry_run=True)


@cli.command()
@click.option("--dry-run", "-n", is_flag=True, help="Preview changes without applying")
@click.option(
    "--policy",
    "-p",
    type=click.Choice([p.value for p in ConflictPolicy]),
    help="Conflict policy when the server is newer and local changes are pending",
)
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
def sync(dry_run: bool, policy: Optional[str], verbose: bool) -> None:
    """Synchronize the local store with the server.

    Pending deletes are sent first, then a full snapshot is fetched and
    every node is reconciled.
    """
    console = create_console(verbose=verbose)
    config = _load(console)
    if policy:
        config.sync.conflict_policy = ConflictPolicy(policy)

    index = _open_index(config)
    logger = SyncLogger(console.rich, verbose=verbose or config.output.verbose)
    session = _build_session(config, index, logger)

    if dry_run:
        try:
            actions = session.preview()
        except RemsyncError as e:
            console.print_error(f"{e.kind}: {e.message}")
            sys.exit(1)
        console.print_plan(actions, dry_run=True)
        console.print_info("Dry run - no changes applied")
        return

    try:
        report = session.establish()
    finally:
        session.close()

    console.print_session_report(report)
    if not report.success:
        sys.exit(1)


@cli.command()
@click.option("--interval", "-i", type=float, default=60.0, show_default=True, help="Seconds between full resyncs")
@click.option("--cycles", type=int, default=0, help="Stop after this many sessions (0: until interrupted)")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
def watch(interval: float, cycles: int, verbose: bool) -> None:
    """Stay in sync, applying change notifications as they arrive.

    Every applied notification is printed. The session is re-established
    every INTERVAL seconds, which recovers a dropped notification channel
    and picks up changes other processes wrote to a directory server.
    """
    console = create_console(verbose=verbose)
    config = _load(console)
    index = _open_index(config)
    logger = SyncLogger(console.rich, verbose=verbose or config.output.verbose)
    session = _build_session(config, index, logger)

    report = None
    sessions = 0
    try:
        report = session.establish(background=True)
        while not report.aborted:
            sessions += 1
            if sessions == 1:
                console.print_info(f"Watching {report.host}, press Ctrl+C to stop")
            if cycles and sessions >= cycles:
                break
            time.sleep(interval)
            report = session.reconnect(background=True)
    except KeyboardInterrupt:
        console.print_info("Stopped")
    finally:
        session.close()

    if report is not None:
        console.print_session_report(report)
        if report.aborted:
            sys.exit(1)


@cli.command("ls")
@click.option("--local", "local_only", is_flag=True, help="List the local store instead of the server")
@click.option("--verbose", "-v", is_flag=True, help="Show ids and versions")
def list_nodes(local_only: bool, verbose: bool) -> None:
    """Show the document tree."""
    console = create_console(verbose=verbose)
    config = _load(console)

    if local_only:
        index = _open_index(config)
        console.print_tree(index.nodes(), title=f"Local ({config.store.path})")
        return

    client = StorageClient(_build_transport(config), config.sync.retry)
    try:
        host = client.discover()
        snapshot = client.fetch_snapshot()
    except RemsyncError as e:
        console.print_error(f"{e.kind}: {e.message}")
        sys.exit(1)
    console.print_tree(snapshot.nodes(), title=host)


@cli.command()
@click.argument("name")
@click.option("--parent", help="Parent collection id")
def mkdir(name: str, parent: Optional[str]) -> None:
    """Create a collection in the local store."""
    console = create_console()
    config = _load(console)
    index = _open_index(config)

    node = index.create_node(NodeKind.COLLECTION, name, parent=_resolve_parent(index, parent, console))
    console.print_success(f"Created collection {name}: {node.id}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--parent", help="Parent collection id")
@click.option("--name", help="Visible name (default: file name without extension)")
def add(file: Path, parent: Optional[str], name: Optional[str]) -> None:
    """Add a document to the local store."""
    console = create_console()
    config = _load(console)
    index = _open_index(config)

    node = index.create_node(
        NodeKind.DOCUMENT,
        name or file.stem,
        parent=_resolve_parent(index, parent, console),
        content=file.read_bytes(),
    )
    console.print_success(f"Added document {node.name}: {node.id}")


@cli.command()
@click.argument("node_id")
def rm(node_id: str) -> None:
    """Delete a node (and everything below it) on the next sync."""
    console = create_console()
    config = _load(console)
    index = _open_index(config)

    try:
        deleted = index.delete_node(node_id)
    except KeyError as e:
        console.print_error(e.args[0])
        sys.exit(1)
    console.print_success(f"Marked {len(deleted)} node(s) for deletion")


@cli.command("fetch-blob")
@click.argument("node_id")
@click.argument("out", type=click.Path(dir_okay=False, path_type=Path))
def fetch_blob(node_id: str, out: Path) -> None:
    """Download one node's blob from the server to a file."""
    console = create_console()
    config = _load(console)
    client = StorageClient(_build_transport(config), config.sync.retry)

    try:
        client.discover()
        content = client.download_blob(node_id)
    except RemsyncError as e:
        console.print_error(f"{e.kind}: {e.message}")
        sys.exit(1)

    out.write_bytes(content)
    console.print_success(f"Wrote {len(content)} bytes to {out}")


# ============================================================================
# Configuration Commands
# ============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
def config_show() -> None:
    """Print the effective configuration."""
    console = create_console()
    loaded = _load(console)
    console.print_info(f"# {get_config_path()}")
    console.print(
        yaml.dump(loaded.model_dump(mode="json"), default_flow_style=False, sort_keys=False, allow_unicode=True),
        markup=False,
    )


@config.command("validate")
def config_validate() -> None:
    """Validate the configuration file."""
    console = create_console()
    config_path = get_config_path()
    valid, errors = validate_config_file(config_path)

    if valid:
        console.print_success(f"Configuration is valid: {config_path}")
        return

    console.print_error(f"Configuration is invalid: {config_path}")
    for error in errors:
        console.print(f"  [red]•[/red] {error}")
    sys.exit(1)


@config.command("init")
def config_init() -> None:
    """Create a default configuration file if none exists."""
    console = create_console()
    config_path, created = ensure_config_exists()
    if created:
        console.print_success(f"Created configuration: {config_path}")
    else:
        console.print_warning(f"Configuration already exists: {config_path}")
