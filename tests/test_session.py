# remsync Session Tests
# End-to-end sessions of one or two devices sharing a memory server

import threading
import time

import pytest

from remsync.config.schema import ConflictPolicy, RemsyncConfig, StaleServerPolicy
from remsync.sync.actions import ActionType, rename_id
from remsync.sync.errors import TransportFailure
from remsync.sync.index import LocalIndex
from remsync.sync.node import NodeKind, SyncState
from remsync.sync.session import SessionContext, SessionPhase
from remsync.transport.memory import MemoryServer, MemoryTransport, seed_record

OTHER_DEVICE_ID = "device-b"


def _offline(*args, **kwargs):
    raise TransportFailure("connection refused")


class TestEstablish:
    """Tests for the establishment sequence."""

    def test_two_devices_converge(self, server: MemoryServer, make_session):
        index_a = LocalIndex()
        index_a.create_node(NodeKind.COLLECTION, "Notes", node_id="f")
        index_a.create_node(NodeKind.DOCUMENT, "Todo", parent="f", content=b"pages", node_id="d")

        report = make_session(index_a).establish()

        assert report.phase == SessionPhase.STEADY
        assert report.success
        assert report.host == "memory.local"
        assert report.count(ActionType.UPLOAD) == 2
        assert server.docs()["d"].parent == "f"
        assert server.blob("d") == b"pages"

        index_b = LocalIndex()
        report_b = make_session(index_b, OTHER_DEVICE_ID).establish()

        assert report_b.count(ActionType.DOWNLOAD) == 2
        assert index_b.get("d").state == SyncState.SYNCED
        assert index_b.get("d").version == 1
        assert index_b.get("d").parent == "f"
        assert index_b.read_blob("d") == b"pages"

    def test_second_sync_changes_nothing(self, server: MemoryServer, make_session):
        index = LocalIndex()
        index.create_node(NodeKind.DOCUMENT, "Doc", content=b"x", node_id="d")
        session = make_session(index)
        session.establish()

        report = session.establish()

        assert report.count(ActionType.UPLOAD) == 0
        assert [a.action_type for a in report.actions] == [ActionType.METADATA_CLOBBER]
        assert server.docs()["d"].version == 1

    def test_deletes_sent_before_snapshot(self, server: MemoryServer, make_session):
        index = LocalIndex()
        index.create_node(NodeKind.DOCUMENT, "Doc", node_id="d")
        session = make_session(index)
        session.establish()
        index.delete_node("d")
        server.calls.clear()

        report = session.reconnect()

        assert server.calls.index("delete") < server.calls.index("fetch_docs")
        assert report.count(ActionType.REMOTE_DELETE) == 1
        assert "d" not in server.docs()
        assert "d" not in index
        assert report.actions == []

    def test_preview_lists_tombstones_as_deletes(self, server: MemoryServer, make_session):
        index = LocalIndex()
        index.create_node(NodeKind.DOCUMENT, "Doc", node_id="d")
        session = make_session(index)
        session.establish()
        index.delete_node("d")

        actions = session.preview()

        assert [(a.node_id, a.action_type) for a in actions] == [("d", ActionType.REMOTE_DELETE)]
        assert "d" in server.docs()
        assert index.get("d").state == SyncState.PENDING_DELETE

        report = session.reconnect()

        assert [r.node_id for r in report.deletions] == ["d"]
        assert report.actions == []

    def test_never_uploaded_tombstone_stays_local(self, server: MemoryServer, make_session):
        index = LocalIndex()
        index.create_node(NodeKind.DOCUMENT, "Draft", node_id="d")
        index.delete_node("d")

        report = make_session(index).establish()

        assert report.success
        assert "delete" not in server.calls
        assert len(index) == 0

    def test_concurrent_edit_beats_delete(self, server: MemoryServer, make_session):
        server.seed(seed_record("d", 2, name="Doc"), b"v2")
        index_a, index_b = LocalIndex(), LocalIndex()
        session_a = make_session(index_a)
        session_b = make_session(index_b, OTHER_DEVICE_ID)
        session_a.establish()
        session_b.establish()

        index_b.touch_content("d", b"v3")
        session_b.establish()
        assert server.docs()["d"].version == 3

        index_a.delete_node("d")
        report = session_a.establish()

        assert report.success
        assert report.deletions[0].error_kind == "VersionConflict"
        assert index_a.get("d").state == SyncState.SYNCED
        assert index_a.get("d").version == 3
        assert index_a.read_blob("d") == b"v3"
        assert "d" in server.docs()

    def test_dangling_parent_reported(self, server: MemoryServer, make_session, make_node):
        index = LocalIndex()
        index.put(make_node("x", parent="ghost"))

        report = make_session(index).establish()

        assert report.phase == SessionPhase.STEADY
        assert not report.success
        assert report.failures_by_kind() == {"UnresolvableAncestor": ["x"]}
        assert "x" not in server.docs()

    def test_missing_ancestor_uploaded_first(self, server: MemoryServer, make_session, make_node):
        index = LocalIndex()
        index.put(make_node("f", 1, SyncState.SYNCED, kind=NodeKind.COLLECTION))
        index.create_node(NodeKind.DOCUMENT, "Doc", parent="f", node_id="d")

        report = make_session(index).establish()

        assert report.success
        assert report.actions[0].forced
        assert set(server.docs()) == {"f", "d"}

    def test_parallel_workers(self, server: MemoryServer, make_session):
        index = LocalIndex()
        index.create_node(NodeKind.COLLECTION, "A", node_id="a")
        index.create_node(NodeKind.COLLECTION, "B", parent="a", node_id="b")
        for i in range(6):
            index.create_node(NodeKind.DOCUMENT, f"Doc {i}", parent="b" if i % 2 else "a", node_id=f"d{i}")

        report = make_session(index, max_workers=4).establish()

        assert report.success
        assert len(server.docs()) == 8


class TestPolicies:
    """Tests for conflict and stale server resolution."""

    @pytest.fixture
    def stale(self, server: MemoryServer, make_node) -> LocalIndex:
        server.seed(seed_record("d", 2), b"old")
        index = LocalIndex()
        index.put(make_node("d", 5, SyncState.SYNCED))
        index.write_blob("d", b"local")
        return index

    @pytest.fixture
    def conflicted(self, server: MemoryServer, make_node) -> LocalIndex:
        server.seed(seed_record("d", 3), b"server")
        index = LocalIndex()
        index.put(make_node("d", 2, SyncState.MODIFIED))
        index.write_blob("d", b"local")
        return index

    def test_stale_server_clobbered(self, server: MemoryServer, make_session, stale):
        make_session(stale).establish()
        assert server.docs()["d"].version == 5
        assert server.blob("d") == b"local"

    def test_stale_server_rename(self, server: MemoryServer, make_session, stale):
        make_session(stale, stale_server_policy=StaleServerPolicy.RENAME).establish()

        copy_id = rename_id("d", 5, 2)
        assert server.blob(copy_id) == b"local"
        assert stale.get("d").version == 2
        assert stale.read_blob("d") == b"old"

    def test_conflict_keeps_server_by_default(self, server: MemoryServer, make_session, conflicted):
        make_session(conflicted).establish()
        assert conflicted.get("d").version == 3
        assert conflicted.read_blob("d") == b"server"

    def test_conflict_upload_policy(self, server: MemoryServer, make_session, conflicted):
        make_session(conflicted, conflict_policy=ConflictPolicy.UPLOAD).establish()
        assert server.docs()["d"].version == 4
        assert server.blob("d") == b"local"
        assert conflicted.get("d").version == 4

    def test_conflict_rename_policy(self, server: MemoryServer, make_session, conflicted):
        make_session(conflicted, conflict_policy=ConflictPolicy.RENAME).establish()

        copy_id = rename_id("d", 2, 3)
        assert server.blob(copy_id) == b"local"
        assert conflicted.read_blob("d") == b"server"
        assert len(conflicted) == 2

    def test_metadata_only_change_under_upload_policy_sends_content(self, server: MemoryServer, make_session):
        index_a = LocalIndex()
        index_a.create_node(NodeKind.DOCUMENT, "Doc", content=b"v1", node_id="d")
        session_a = make_session(index_a, conflict_policy=ConflictPolicy.UPLOAD)
        session_a.establish()

        index_b = LocalIndex()
        session_b = make_session(index_b, OTHER_DEVICE_ID)
        session_b.establish()
        index_b.touch_content("d", b"v2-from-b")
        session_b.establish()

        index_a.rename("d", "Renamed")
        report = session_a.reconnect()

        assert report.success
        assert server.docs()["d"].version == 3
        assert server.docs()["d"].name == "Renamed"
        assert index_a.get("d").version == 3
        assert server.blob("d") == index_a.read_blob("d") == b"v1"

    def test_refused_delete_keeps_content_edit(self, server: MemoryServer, make_session):
        index_a = LocalIndex()
        index_a.create_node(NodeKind.DOCUMENT, "Doc", content=b"v1", node_id="d")
        session_a = make_session(index_a, conflict_policy=ConflictPolicy.UPLOAD)
        session_a.establish()

        index_b = LocalIndex()
        session_b = make_session(index_b, OTHER_DEVICE_ID)
        session_b.establish()
        index_b.touch_content("d", b"v2-from-b")
        session_b.establish()

        index_a.touch_content("d", b"edit-a")
        index_a.delete_node("d")
        report = session_a.reconnect()

        assert report.deletions[0].error_kind == "VersionConflict"
        assert index_a.get("d").state == SyncState.SYNCED
        assert index_a.get("d").version == 3
        assert server.blob("d") == index_a.read_blob("d") == b"edit-a"


class TestAbort:
    """Tests for fatal failures."""

    def test_discovery_failure(self, server: MemoryServer, make_session, make_node):
        server.discoverable = False
        index = LocalIndex()
        index.put(make_node("d"))
        session = make_session(index)

        report = session.establish()

        assert report.aborted
        assert session.phase == SessionPhase.ABORTED
        assert report.error_kind == "PersistentDiscoveryFailure"
        assert "fetch_docs" not in server.calls
        assert index.get("d").state == SyncState.UNSYNCED

    def test_unreachable_server(self, server: MemoryServer, make_session):
        server.online = False
        report = make_session(LocalIndex()).establish()
        assert report.error_kind == "PersistentDiscoveryFailure"

    def test_channel_open_failure(self, server: MemoryServer, make_session, monkeypatch):
        monkeypatch.setattr(server, "subscribe", _offline)
        report = make_session(LocalIndex()).establish()
        assert report.aborted
        assert report.error_kind == "NotificationChannelLost"

    def test_snapshot_failure(self, server: MemoryServer, make_session, monkeypatch):
        monkeypatch.setattr(server, "fetch_docs", _offline)
        report = make_session(LocalIndex()).establish()
        assert report.aborted
        assert report.error_kind == "TransportFailure"

    def test_run_stops_after_abort(self, server: MemoryServer, make_session):
        server.discoverable = False
        assert make_session(LocalIndex()).run().aborted


class TestSteadyState:
    """Tests for notifications after establishment."""

    def test_notifications_applied_then_reconnect(self, server: MemoryServer, make_session):
        index_a = LocalIndex()
        index_a.create_node(NodeKind.DOCUMENT, "Shared", node_id="d")
        session_a = make_session(index_a)
        session_a.establish()

        index_b = LocalIndex()
        index_b.create_node(NodeKind.DOCUMENT, "From B", content=b"b", node_id="n")
        session_b = make_session(index_b, OTHER_DEVICE_ID)
        session_b.establish()
        index_b.delete_node("d")
        session_b.establish()

        server.drop_notifications()
        session_a.listen()

        assert index_a.read_blob("n") == b"b"
        assert "d" not in index_a
        assert session_a.dispatcher.suppressed == 1
        assert all(r.success for r in session_a.notification_results)
        assert session_a.phase == SessionPhase.INIT
        assert not session_a.connected

        report = session_a.reconnect()
        assert report.phase == SessionPhase.STEADY
        assert report.success

    def test_own_notifications_applied_when_not_suppressed(self, server: MemoryServer, make_session):
        index = LocalIndex()
        index.create_node(NodeKind.DOCUMENT, "Doc", node_id="d")
        session = make_session(index, suppress_self=False)
        session.establish()

        server.drop_notifications()
        session.listen()

        assert session.dispatcher.applied == 1
        assert index.get("d").version == 1
        assert session.notification_results[0].action.action_type == ActionType.METADATA_CLOBBER

    def test_background_listener(self, server: MemoryServer, make_session):
        index_a = LocalIndex()
        session_a = make_session(index_a)
        assert session_a.establish(background=True).phase == SessionPhase.STEADY

        index_b = LocalIndex()
        index_b.create_node(NodeKind.DOCUMENT, "From B", content=b"b", node_id="n")
        make_session(index_b, OTHER_DEVICE_ID).establish()

        deadline = time.monotonic() + 5
        while "n" not in index_a and time.monotonic() < deadline:
            time.sleep(0.01)
        session_a.close()

        assert index_a.read_blob("n") == b"b"

    def test_notifications_with_parallel_workers(self, server: MemoryServer, make_session):
        index_a = LocalIndex()
        session_a = make_session(index_a, max_workers=2)
        session_a.establish()

        index_b = LocalIndex()
        index_b.create_node(NodeKind.COLLECTION, "Folder", node_id="f")
        index_b.create_node(NodeKind.DOCUMENT, "From B", parent="f", content=b"b", node_id="d")
        make_session(index_b, OTHER_DEVICE_ID).establish()
        server.drop_notifications()

        listener = threading.Thread(target=session_a.listen, daemon=True)
        listener.start()
        listener.join(timeout=5)

        assert not listener.is_alive()
        assert index_a.get("f").is_collection
        assert index_a.read_blob("d") == b"b"
        assert session_a.dispatcher.applied == 2
        assert all(r.success for r in session_a.notification_results)

    def test_reconcile_one_with_parallel_workers(self, server: MemoryServer, make_session):
        index = LocalIndex()
        session = make_session(index, max_workers=2)
        session.establish()
        index.create_node(NodeKind.COLLECTION, "Folder", node_id="f")
        index.create_node(NodeKind.DOCUMENT, "Doc", parent="f", node_id="d")

        worker = threading.Thread(target=session.reconcile_one, args=("d",), daemon=True)
        worker.start()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert set(server.docs()) == {"f", "d"}
        assert [r.node_id for r in session.notification_results] == ["f", "d"]

    def test_malformed_notification_skipped(self, server: MemoryServer, make_session):
        index_a = LocalIndex()
        session_a = make_session(index_a)
        session_a.establish()

        server.inject({"event": "DocMoved", "id": "x"})
        index_b = LocalIndex()
        index_b.create_node(NodeKind.DOCUMENT, "From B", content=b"b", node_id="n")
        make_session(index_b, OTHER_DEVICE_ID).establish()
        server.drop_notifications()

        session_a.listen()

        assert index_a.read_blob("n") == b"b"
        failure = session_a.dispatcher.failures[0]
        assert failure.notification is None
        assert failure.error_kind == "ValueError"
        assert failure.record == {"event": "DocMoved", "id": "x"}
        assert session_a.phase == SessionPhase.INIT
        assert not session_a.connected


class TestSessionContext:
    def test_from_config(self, sample_config: dict, server: MemoryServer):
        sample_config["sync"]["conflict_policy"] = "rename"
        sample_config["sync"]["max_workers"] = 3
        config = RemsyncConfig.model_validate(sample_config)

        context = SessionContext.from_config(config, LocalIndex(), MemoryTransport(server, config.device.id))

        assert context.device_id == "device-a"
        assert context.engine.conflict_policy == ConflictPolicy.RENAME
        assert context.max_workers == 3
        assert context.client.retry.attempts == 1
