# remsync Action Executor
# Applies planned actions to the Local Index and the storage service

import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import TYPE_CHECKING, Optional

from remsync.sync.actions import ActionResult, ActionType, SyncAction
from remsync.sync.errors import RemsyncError, UnresolvableAncestor, VersionConflict
from remsync.sync.index import COLLECTION_PLACEHOLDER, LocalIndex, RemoteSnapshot
from remsync.sync.node import Node, SyncState
from remsync.sync.planner import ReconciliationEngine
from remsync.transport.client import StorageClient, classify_rejection
from remsync.transport.wire import CompletionRequest, DeleteRequest, UploadSlotRequest

if TYPE_CHECKING:
    from remsync.logger import SyncLogger
    from remsync.sync.deletions import DeletionPropagator


class NodeLocks:
    """Per-id mutual exclusion shared by every code path that mutates a node."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, node_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(node_id, threading.RLock())
        with lock:
            yield


class ActionExecutor:
    """
    Executes a plan.

    Actions run in plan order, or in dependency waves on a thread pool when
    max_workers > 1, so an upload never starts before the ancestor uploads
    it depends on have finished. A failed action is reported and the batch
    carries on.
    """

    def __init__(
        self,
        index: LocalIndex,
        client: StorageClient,
        engine: ReconciliationEngine,
        *,
        locks: Optional[NodeLocks] = None,
        deletions: Optional["DeletionPropagator"] = None,
        logger: Optional["SyncLogger"] = None,
        max_workers: int = 1,
    ):
        """
        Initialize executor.

        Args:
            index: Local Index to apply results to.
            client: Storage client.
            engine: Engine used to re-classify an id after a version conflict.
            locks: Per-id locks, shared with the notification path.
            deletions: Pending-delete set to clear ids from on success.
            logger: Optional progress logger.
            max_workers: Parallel transport operations.
        """
        self.index = index
        self.client = client
        self.engine = engine
        self.locks = locks or NodeLocks()
        self.deletions = deletions
        self.logger = logger
        self.max_workers = max(1, max_workers)

    def execute(
        self, actions: list[SyncAction], remote: RemoteSnapshot, *, inline: bool = False
    ) -> list[ActionResult]:
        """
        Execute a plan.

        Args:
            actions: Planned actions, ancestors first.
            remote: The snapshot the plan was computed from.
            inline: Run every action on the calling thread, in plan order.
                Required when the caller already holds a node lock, since
                pool threads would block on it.

        Returns:
            One result per action, in plan order.
        """
        results: dict[str, ActionResult] = {}

        if inline or self.max_workers == 1:
            for action in actions:
                results[action.node_id] = self._run(action, remote, results)
        else:
            batch = {a.node_id for a in actions}
            pending = list(actions)
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                while pending:
                    wave = [
                        a for a in pending if all(d in results or d not in batch for d in a.depends_on)
                    ]
                    if not wave:
                        wave = pending[:1]
                    for action, result in zip(wave, pool.map(lambda a: self._run(a, remote, results), wave)):
                        results[action.node_id] = result
                    pending = [a for a in pending if a.node_id not in results]

        return [results[a.node_id] for a in actions]

    def _run(self, action: SyncAction, remote: RemoteSnapshot, results: dict[str, ActionResult]) -> ActionResult:
        for dep in action.depends_on:
            dep_result = results.get(dep)
            if dep_result is not None and not dep_result.success:
                error = UnresolvableAncestor(action.node_id, dep)
                result = ActionResult(action, success=False, error=error.message, error_kind=error.kind)
                self._log(action, result)
                return result

        with self.locks.hold(action.node_id):
            result = self.apply(action, remote)
        self._log(action, result)
        return result

    def apply(self, action: SyncAction, remote: RemoteSnapshot, *, reclassify: bool = True) -> ActionResult:
        """
        Apply one action. The caller holds the id's lock.

        A version conflict on an upload or remote delete triggers one scoped
        re-fetch and re-classification of the id.
        """
        try:
            version = self._dispatch(action, remote)
        except VersionConflict as e:
            if reclassify and action.action_type in (ActionType.UPLOAD, ActionType.REMOTE_DELETE):
                return self._reclassify(action, e)
            return ActionResult(action, success=False, error=e.message, error_kind=e.kind)
        except RemsyncError as e:
            return ActionResult(action, success=False, error=e.message, error_kind=e.kind)
        except OSError as e:
            return ActionResult(action, success=False, error=str(e), error_kind=type(e).__name__)

        if action.action_type == ActionType.SKIP and action.blocked_by:
            error = UnresolvableAncestor(action.node_id, action.blocked_by)
            return ActionResult(action, success=False, error=error.message, error_kind=error.kind)
        return ActionResult(action, success=True, version=version)

    def _dispatch(self, action: SyncAction, remote: RemoteSnapshot) -> Optional[int]:
        handlers = {
            ActionType.UPLOAD: self._upload,
            ActionType.DOWNLOAD: self._download,
            ActionType.LOCAL_DELETE: self._local_delete,
            ActionType.REMOTE_DELETE: self._remote_delete,
            ActionType.METADATA_CLOBBER: self._metadata_clobber,
            ActionType.RENAME_UPLOAD: self._rename_upload,
        }
        handler = handlers.get(action.action_type)
        if handler is None:
            return None
        return handler(action, remote)

    def _reclassify(self, action: SyncAction, conflict: VersionConflict) -> ActionResult:
        node_id = action.node_id
        if self.logger:
            self.logger.warning(f"{conflict.message}, re-checking {node_id}")

        if action.action_type == ActionType.REMOTE_DELETE:
            self._restore(node_id)

        try:
            remote = self.client.fetch_snapshot([node_id])
        except RemsyncError as e:
            return ActionResult(action, success=False, error=e.message, error_kind=e.kind)

        with self.index.lock:
            local = self.index.snapshot()
        result = ActionResult(action, success=False, error=conflict.message, error_kind=conflict.kind)
        for follow_up in self.engine.reconcile_one(node_id, local, remote):
            with self.locks.hold(follow_up.node_id):
                outcome = self.apply(follow_up, remote, reclassify=False)
            if follow_up.node_id == node_id:
                result = outcome
            elif not outcome.success:
                return outcome
        return result

    def _restore(self, node_id: str) -> None:
        with self.index.lock:
            node = self.index.get(node_id)
            if node is not None:
                node.restore()
                self.index.put(node)
        if self.deletions is not None:
            self.deletions.discard(node_id)

    def _require_local(self, node_id: str) -> Node:
        node = self.index.get(node_id)
        if node is None:
            raise RemsyncError(f"Node {node_id} is no longer present locally", node_id)
        return node

    # Handlers

    def _upload(self, action: SyncAction, remote: RemoteSnapshot) -> int:
        node_id = action.node_id
        node = self._require_local(node_id)
        version = action.version if action.version is not None else max(node.version, 1)

        if action.content:
            slot = self.client.request_upload_slots([UploadSlotRequest(node_id, node.parent, node.kind, version)])[0]
            if not slot.success:
                raise classify_rejection(node_id, version, slot.version, slot.message)
            content = self.index.read_blob(node_id)
            if content is None:
                content = COLLECTION_PLACEHOLDER if node.is_collection else b""
            self.client.put_blob(slot.put_url, content)

        row = self.client.complete_uploads(
            [
                CompletionRequest(
                    id=node_id,
                    parent=node.parent,
                    kind=node.kind,
                    version=version,
                    name=node.name,
                    bookmarked=node.pinned,
                    current_page=node.current_page,
                    modified_client=node.last_modified,
                )
            ]
        )[0]
        if not row.success:
            raise classify_rejection(node_id, version, row.version, row.message)

        with self.index.lock:
            node = self._require_local(node_id)
            node.mark_uploaded(version)
            self.index.put(node)
        if self.deletions is not None:
            self.deletions.discard(node_id)
        return version

    def _download(self, action: SyncAction, remote: RemoteSnapshot) -> int:
        node_id = action.node_id
        record = remote.get(node_id)
        if record is None:
            raise RemsyncError(f"Node {node_id} is not in the server listing", node_id)

        content = self.client.download_blob(node_id)
        with self.index.lock:
            node = self.index.get(node_id)
            if node is None:
                node = record.to_node()
            else:
                node.adopt_remote(record)
            self.index.write_blob(node_id, content)
            self.index.put(node)
        if self.deletions is not None:
            self.deletions.discard(node_id)
        return record.version

    def _local_delete(self, action: SyncAction, remote: RemoteSnapshot) -> None:
        self.index.remove(action.node_id)
        if self.deletions is not None:
            self.deletions.discard(action.node_id)

    def _remote_delete(self, action: SyncAction, remote: RemoteSnapshot) -> int:
        node_id = action.node_id
        version = action.version or 0
        row = self.client.delete([DeleteRequest(node_id, version)])[0]
        if not row.success:
            raise classify_rejection(node_id, version, row.version, row.message)
        self.index.remove(node_id)
        if self.deletions is not None:
            self.deletions.discard(node_id)
        return version

    def _metadata_clobber(self, action: SyncAction, remote: RemoteSnapshot) -> Optional[int]:
        record = remote.get(action.node_id)
        if record is None:
            return None
        with self.index.lock:
            node = self._require_local(action.node_id)
            node.adopt_remote_metadata(record)
            self.index.put(node)
        return node.version

    def _rename_upload(self, action: SyncAction, remote: RemoteSnapshot) -> int:
        """Keep the local copy under a new id, then take the server's copy of the original."""
        node_id = action.node_id
        new_id = action.new_id
        if not new_id:
            raise RemsyncError(f"No replacement id for {node_id}", node_id)

        with self.index.lock:
            original = self._require_local(node_id)
            if new_id not in self.index:
                copy = Node(
                    id=new_id,
                    kind=original.kind,
                    parent=original.parent,
                    name=original.name,
                    pinned=original.pinned,
                    current_page=original.current_page,
                    state=SyncState.UNSYNCED,
                )
                self.index.write_blob(new_id, self.index.read_blob(node_id) or b"")
                self.index.put(copy)

        with self.locks.hold(new_id):
            self._upload(SyncAction(new_id, ActionType.UPLOAD, version=1, name=original.name), remote)

        return self._download(SyncAction(node_id, ActionType.DOWNLOAD, name=original.name), remote)

    def _log(self, action: SyncAction, result: ActionResult) -> None:
        if self.logger is None:
            return
        if action.needs_action or not result.success:
            self.logger.action(action, result)
