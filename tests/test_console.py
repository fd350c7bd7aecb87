# Tests for remsync.output.console and remsync.logger
# Rich-based console output

from io import StringIO

from rich.console import Console as RichConsole

from remsync.logger import SyncLogger
from remsync.output.console import Console, create_console
from remsync.sync.actions import ActionResult, ActionType, SyncAction
from remsync.sync.node import Node, NodeKind, RemoteNode, SyncState
from remsync.sync.notifications import DispatcherState
from remsync.sync.session import SessionPhase, SessionReport
from remsync.transport.wire import Notification, NotificationEventType


def _make_console(verbose: bool = False) -> Console:
    """Create a console with captured output."""
    console = Console(verbose=verbose, colored=False)
    console._console = RichConsole(file=StringIO(), no_color=True, width=120)
    return console


def _get_output(console: Console) -> str:
    """Get captured output from console."""
    console._console.file.seek(0)
    return console._console.file.read()


def _make_logger(verbose: bool = False) -> SyncLogger:
    return SyncLogger(RichConsole(file=StringIO(), no_color=True, width=120), verbose=verbose)


def _logged(logger: SyncLogger) -> str:
    logger.console.file.seek(0)
    return logger.console.file.read()


class TestConsoleBasic:
    """Tests for basic console methods."""

    def test_print(self):
        c = _make_console()
        c.print("hello world")
        assert "hello world" in _get_output(c)

    def test_print_error(self):
        c = _make_console()
        c.print_error("something failed")
        output = _get_output(c)
        assert "Error:" in output
        assert "something failed" in output

    def test_print_warning(self):
        c = _make_console()
        c.print_warning("be careful")
        output = _get_output(c)
        assert "Warning:" in output
        assert "be careful" in output

    def test_print_success(self):
        c = _make_console()
        c.print_success("all good")
        assert "all good" in _get_output(c)

    def test_print_info(self):
        c = _make_console()
        c.print_info("fyi")
        assert "fyi" in _get_output(c)


class TestConsolePlan:
    """Tests for plan display."""

    def test_nothing_to_do(self):
        c = _make_console()
        c.print_plan([SyncAction("a", ActionType.SKIP)])
        assert "Everything is in sync" in _get_output(c)

    def test_dry_run_title(self):
        c = _make_console()
        c.print_plan([SyncAction("a", ActionType.UPLOAD, reason="Never uploaded", version=1, name="Notes")], dry_run=True)
        output = _get_output(c)
        assert "Planned Changes (dry-run)" in output
        assert "Notes" in output
        assert "upload" in output
        assert "Never uploaded" in output

    def test_forced_ancestor_marked(self):
        c = _make_console()
        c.print_plan([SyncAction("f", ActionType.UPLOAD, version=1, forced=True, name="Folder")])
        output = _get_output(c)
        assert "Changes to Apply" in output
        assert "(ancestor)" in output

    def test_blocked_skip_shown(self):
        c = _make_console()
        c.print_plan([SyncAction("x", ActionType.SKIP, reason="Parent p unknown", blocked_by="p", name="Orphan")])
        output = _get_output(c)
        assert "Orphan" in output
        assert "skip" in output


class TestConsoleSessionReport:
    """Tests for session report display."""

    def test_successful_report(self):
        c = _make_console()
        upload = SyncAction("a", ActionType.UPLOAD, version=1)
        download = SyncAction("b", ActionType.DOWNLOAD, version=2)
        report = SessionReport(
            phase=SessionPhase.STEADY,
            host="memory.local",
            actions=[upload, download],
            results=[ActionResult(upload, success=True, version=1), ActionResult(download, success=True, version=2)],
        )

        c.print_session_report(report)

        output = _get_output(c)
        assert "Sync completed" in output
        assert "Uploaded: 1" in output
        assert "downloaded: 1" in output
        assert "memory.local" in output

    def test_report_with_failures(self):
        c = _make_console()
        action = SyncAction("x", ActionType.SKIP, blocked_by="p", name="Orphan")
        report = SessionReport(
            phase=SessionPhase.STEADY,
            results=[ActionResult(action, success=False, error="Parent p unknown", error_kind="UnresolvableAncestor")],
        )

        c.print_session_report(report)

        output = _get_output(c)
        assert "Sync completed with errors" in output
        assert "Orphan" in output
        assert "UnresolvableAncestor 1" in output

    def test_aborted_report(self):
        c = _make_console()
        report = SessionReport(
            phase=SessionPhase.ABORTED, error="No storage service registered", error_kind="PersistentDiscoveryFailure"
        )
        c.print_session_report(report)
        output = _get_output(c)
        assert "Sync aborted" in output
        assert "PersistentDiscoveryFailure" in output


class TestConsoleTree:
    """Tests for node tree display."""

    def test_empty_tree(self):
        c = _make_console()
        c.print_tree([], title="Server")
        output = _get_output(c)
        assert "Server" in output
        assert "empty" in output

    def test_nested_local_tree(self):
        c = _make_console()
        nodes = [
            Node(id="f", kind=NodeKind.COLLECTION, name="Notes", version=1, state=SyncState.SYNCED),
            Node(id="d", kind=NodeKind.DOCUMENT, parent="f", name="Todo", pinned=True),
        ]
        c.print_tree(nodes)
        output = _get_output(c)
        assert "Notes/" in output
        assert "Todo" in output
        assert "★" in output
        assert "unsynced" in output

    def test_orphan_marked(self):
        c = _make_console()
        c.print_tree([RemoteNode(id="d", version=1, parent="gone", name="Lost")])
        output = _get_output(c)
        assert "Lost" in output
        assert "orphan of gone" in output

    def test_verbose_shows_ids(self):
        c = _make_console(verbose=True)
        c.print_tree([RemoteNode(id="node-1", version=4, name="Doc")])
        assert "node-1 v4" in _get_output(c)

    def test_config_summary(self):
        c = _make_console()
        c.print_config_summary("/tmp/config.yaml", "dev-1", "/tmp/store", "/tmp/server")
        output = _get_output(c)
        assert "dev-1" in output
        assert "/tmp/store" in output


class TestSyncLogger:
    """Tests for session progress output."""

    def test_action_success(self):
        logger = _make_logger()
        action = SyncAction("a", ActionType.UPLOAD, version=1, name="Notes")
        logger.action(action, ActionResult(action, success=True, version=1))
        output = _logged(logger)
        assert "upload" in output
        assert "Notes" in output
        assert "v1" in output

    def test_action_failure(self):
        logger = _make_logger()
        action = SyncAction("a", ActionType.UPLOAD, version=1)
        logger.action(action, ActionResult(action, success=False, error="Quota exceeded", error_kind="QuotaOrServerReject"))
        assert "QuotaOrServerReject: Quota exceeded" in _logged(logger)

    def test_reason_only_when_verbose(self):
        quiet = _make_logger()
        loud = _make_logger(verbose=True)
        action = SyncAction("a", ActionType.DOWNLOAD, reason="Server newer")
        quiet.action(action)
        loud.action(action)
        assert "Server newer" not in _logged(quiet)
        assert "Server newer" in _logged(loud)

    def test_debug_hidden_unless_verbose(self):
        logger = _make_logger()
        logger.debug("details")
        logger.dispatcher(DispatcherState.LIVE)
        assert _logged(logger) == ""

    def test_phase(self):
        logger = _make_logger()
        logger.phase(SessionPhase.SNAPSHOT_FETCH)
        assert "snapshot fetch" in _logged(logger)

    def test_levels(self):
        logger = _make_logger()
        logger.info("one")
        logger.success("two")
        logger.warning("three")
        logger.error("four")
        output = _logged(logger)
        for word in ("one", "two", "three", "four"):
            assert word in output


class TestCreateConsole:
    """Tests for create_console factory."""

    def test_default(self):
        c = create_console()
        assert isinstance(c, Console)
        assert c.verbose is False

    def test_verbose(self):
        assert create_console(verbose=True).verbose is True

    def test_notification(self):
        logger = _make_logger()
        logger.notification(Notification(event=NotificationEventType.DOC_ADDED, id="n1", source_device_id="device-b"))
        logger.notification(Notification(event=NotificationEventType.DOC_DELETED, id="n2"))
        output = _logged(logger)
        assert "DocAdded n1" in output
        assert "from device-b" in output
        assert "DocDeleted n2" in output
        assert "from unknown device" in output
