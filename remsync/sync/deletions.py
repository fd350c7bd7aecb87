# remsync Deletion Propagator
# Flushes local tombstones to the server before a snapshot is taken

import threading
from typing import TYPE_CHECKING, Optional

from remsync.sync.actions import ActionResult, ActionType, SyncAction
from remsync.sync.errors import RemsyncError, VersionConflict
from remsync.sync.index import LocalIndex
from remsync.transport.client import StorageClient, classify_rejection
from remsync.transport.wire import DeleteRequest

if TYPE_CHECKING:
    from remsync.logger import SyncLogger


class DeletionPropagator:
    """
    Manages the pending-delete set.

    Holds the ids the device has tombstoned but the server hasn't confirmed
    removing, each keyed by the version the delete was issued against. The
    set is persisted beside the node store when the index has one.
    """

    def __init__(self, index: LocalIndex, client: StorageClient, logger: Optional["SyncLogger"] = None):
        self.index = index
        self.client = client
        self.logger = logger
        self._lock = threading.RLock()
        self._pending: dict[str, int] = index.store.load_pending_deletes() if index.store else {}

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> dict[str, int]:
        """Copy of the pending set as id -> version."""
        with self._lock:
            return dict(self._pending)

    def enqueue(self, node_id: str, version: int) -> None:
        """Queue a delete for id at version."""
        with self._lock:
            self._pending[node_id] = version
            self._save()

    def discard(self, node_id: str) -> None:
        """Drop an id from the pending set. Unknown ids are ignored."""
        with self._lock:
            if self._pending.pop(node_id, None) is not None:
                self._save()

    def collect(self) -> dict[str, int]:
        """
        Sync the pending set with the Local Index.

        Every tombstoned node is queued at its current version. A queued id
        whose local node is present but no longer tombstoned was recreated
        after the delete was issued, so its delete is dropped.

        Returns:
            The resulting pending set.
        """
        with self.index.lock, self._lock:
            for node in self.index.nodes():
                if node.is_deleted:
                    self._pending[node.id] = node.version
            for node_id in list(self._pending):
                node = self.index.get(node_id)
                if node is not None and not node.is_deleted:
                    del self._pending[node_id]
            self._save()
            return dict(self._pending)

    def flush(self) -> list[ActionResult]:
        """
        Send every pending delete.

        Tombstones that never reached the server (version 0) are purged
        locally. A confirmed delete removes the node. A version mismatch
        restores the node and drops the delete so normal reconciliation
        handles the id. Any other failure keeps the delete queued.

        Returns:
            One result per pending id.
        """
        results: list[ActionResult] = []

        with self._lock:
            pending = dict(sorted(self._pending.items()))

        remote: dict[str, int] = {}
        for node_id, version in pending.items():
            if version == 0:
                action = SyncAction(node_id, ActionType.LOCAL_DELETE, reason="Never uploaded")
                self.index.remove(node_id)
                self.discard(node_id)
                results.append(ActionResult(action, success=True))
            else:
                remote[node_id] = version

        if not remote:
            return self._report(results)

        actions = {
            node_id: SyncAction(node_id, ActionType.REMOTE_DELETE, reason="Pending delete", version=version)
            for node_id, version in remote.items()
        }

        try:
            rows = self.client.delete([DeleteRequest(node_id, version) for node_id, version in remote.items()])
        except RemsyncError as e:
            if self.logger:
                self.logger.warning(f"Pending deletes not sent: {e.message}")
            failed = [
                ActionResult(action, success=False, error=e.message, error_kind=e.kind)
                for action in actions.values()
            ]
            return self._report(results + failed)

        by_id = {row.id: row for row in rows}
        for node_id, action in actions.items():
            row = by_id.get(node_id)
            if row is None:
                results.append(
                    ActionResult(action, success=False, error="No response from server", error_kind="TransportFailure")
                )
                continue

            if row.success:
                self.index.remove(node_id)
                self.discard(node_id)
                results.append(ActionResult(action, success=True, version=action.version))
                continue

            error = classify_rejection(node_id, remote[node_id], row.version, row.message)
            if isinstance(error, VersionConflict):
                self._restore(node_id)
            results.append(ActionResult(action, success=False, error=error.message, error_kind=error.kind))

        return self._report(results)

    def _report(self, results: list[ActionResult]) -> list[ActionResult]:
        if self.logger:
            for result in results:
                self.logger.action(result.action, result)
        return results

    def _restore(self, node_id: str) -> None:
        with self.index.lock:
            node = self.index.get(node_id)
            if node is not None:
                node.restore()
                self.index.put(node)
        self.discard(node_id)

    def _save(self) -> None:
        if self.index.store:
            self.index.store.save_pending_deletes(self._pending)
