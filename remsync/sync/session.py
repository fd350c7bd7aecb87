# remsync Sync Session
# Phase state machine: delete propagation, snapshot fetch, full reconciliation, steady state

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from remsync.config.schema import RemsyncConfig
from remsync.sync.actions import ActionResult, ActionType, SyncAction
from remsync.sync.deletions import DeletionPropagator
from remsync.sync.errors import (
    NotificationChannelLost,
    PersistentDiscoveryFailure,
    RemsyncError,
)
from remsync.sync.executor import ActionExecutor, NodeLocks
from remsync.sync.index import LocalIndex
from remsync.sync.notifications import NotificationDispatcher
from remsync.sync.planner import ReconciliationEngine
from remsync.transport.base import Transport
from remsync.transport.client import NotificationStream, StorageClient
from remsync.transport.wire import Notification, NotificationEventType

if TYPE_CHECKING:
    from remsync.logger import SyncLogger


class SessionPhase(str, Enum):
    """Session phases, in establishment order."""

    INIT = "init"
    DELETE_PROPAGATION = "delete_propagation"
    SNAPSHOT_FETCH = "snapshot_fetch"
    FULL_RECONCILIATION = "full_reconciliation"
    STEADY = "steady"
    ABORTED = "aborted"


@dataclass
class SessionContext:
    """
    Everything one session owns.

    Passed explicitly so independent sessions (several devices in one
    test, say) never share state.
    """

    device_id: str
    index: LocalIndex
    client: StorageClient
    engine: ReconciliationEngine = field(default_factory=ReconciliationEngine)
    locks: NodeLocks = field(default_factory=NodeLocks)
    logger: Optional["SyncLogger"] = None
    max_workers: int = 1
    suppress_self_notifications: bool = True

    @classmethod
    def from_config(
        cls,
        config: RemsyncConfig,
        index: LocalIndex,
        transport: Transport,
        *,
        logger: Optional["SyncLogger"] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "SessionContext":
        """
        Build a context from configuration.

        Args:
            config: Loaded configuration.
            index: The device's Local Index.
            transport: Storage service collaborator.
            logger: Optional progress logger.
            sleep: Wait function used between retries.
        """
        return cls(
            device_id=config.device.id,
            index=index,
            client=StorageClient(transport, config.sync.retry, sleep=sleep),
            engine=ReconciliationEngine.from_config(config.sync),
            logger=logger,
            max_workers=config.sync.max_workers,
            suppress_self_notifications=config.sync.suppress_self_notifications,
        )


@dataclass
class SessionReport:
    """Outcome of establishing a session."""

    phase: SessionPhase = SessionPhase.INIT
    host: Optional[str] = None
    deletions: list[ActionResult] = field(default_factory=list)
    actions: list[SyncAction] = field(default_factory=list)
    results: list[ActionResult] = field(default_factory=list)
    drained: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.phase == SessionPhase.ABORTED

    @property
    def failures(self) -> list[ActionResult]:
        """
        Per-node failures.

        Rejected deletes that came back as version conflicts are not counted;
        their ids were restored and reconciled in the same session.
        """
        failed = [r for r in self.deletions if not r.success and r.error_kind != "VersionConflict"]
        return failed + [r for r in self.results if not r.success]

    @property
    def success(self) -> bool:
        return not self.aborted and not self.failures

    def failures_by_kind(self) -> dict[str, list[str]]:
        """Failed ids grouped by classification."""
        grouped: dict[str, list[str]] = {}
        for result in self.failures:
            grouped.setdefault(result.error_kind or "Error", []).append(result.node_id)
        return grouped

    def count(self, action_type: ActionType) -> int:
        """Number of successful results of one action type, deletions included."""
        return sum(1 for r in self.deletions + self.results if r.success and r.action.action_type == action_type)


class SyncSession:
    """
    Orchestrates one device's connection to the storage service.

    establish() runs Init → DeletePropagation → SnapshotFetch →
    FullReconciliation → Steady. Discovery and notification channel
    failures abort the session. Once steady, every notification is applied
    through the dispatcher; losing the channel leaves steady state until
    reconnect() re-establishes the session from scratch.
    """

    def __init__(self, context: SessionContext):
        """
        Initialize sync session.

        Args:
            context: Session-owned state and collaborators.
        """
        self.context = context
        self.phase = SessionPhase.INIT
        self.report = SessionReport()
        self.connected = False
        self.deletions = DeletionPropagator(context.index, context.client, context.logger)
        self.executor = ActionExecutor(
            context.index,
            context.client,
            context.engine,
            locks=context.locks,
            deletions=self.deletions,
            logger=context.logger,
            max_workers=context.max_workers,
        )
        self.dispatcher = NotificationDispatcher(
            self._apply_notification,
            device_id=context.device_id,
            suppress_self=context.suppress_self_notifications,
            logger=context.logger,
        )
        self.notification_results: list[ActionResult] = []
        self._stream: Optional[NotificationStream] = None
        self._listener: Optional[threading.Thread] = None

    @property
    def logger(self) -> Optional["SyncLogger"]:
        return self.context.logger

    def establish(self, *, background: bool = False) -> SessionReport:
        """
        Run the full establishment sequence.

        Args:
            background: Consume notifications on a listener thread. Events
                arriving before steady state are buffered by the dispatcher.

        Returns:
            SessionReport. Its phase is STEADY on success, ABORTED otherwise.
        """
        self.report = SessionReport()
        self.dispatcher.reset()
        self._set_phase(SessionPhase.INIT)

        client = self.context.client
        try:
            self.report.host = client.discover()
            self._open_channel(background)
        except (PersistentDiscoveryFailure, NotificationChannelLost) as e:
            return self._abort(e)

        # Deletes go out before the snapshot is taken, so the snapshot never
        # lists an id this device just deleted as new.
        self._set_phase(SessionPhase.DELETE_PROPAGATION)
        self.deletions.collect()
        self.report.deletions = self.deletions.flush()

        self._set_phase(SessionPhase.SNAPSHOT_FETCH)
        try:
            remote = client.fetch_snapshot()
        except RemsyncError as e:
            return self._abort(e)

        self._set_phase(SessionPhase.FULL_RECONCILIATION)
        with self.context.index.lock:
            local = self.context.index.snapshot()
        self.report.actions = self.context.engine.plan(local, remote)
        self.report.results = self.executor.execute(self.report.actions, remote)

        if not self.connected:
            return self._abort(NotificationChannelLost("Notification channel lost during reconciliation"))

        self.report.drained = self.dispatcher.drain()
        self._set_phase(SessionPhase.STEADY)
        return self.report

    def preview(self) -> list[SyncAction]:
        """
        Plan a reconciliation without changing anything.

        Pending deletes are not flushed, so tombstones appear as delete
        actions in the plan. establish() sends them before fetching the
        snapshot and leaves them out of its reconciliation plan.

        Raises:
            RemsyncError: If discovery or the snapshot fetch fails.
        """
        self.context.client.discover()
        remote = self.context.client.fetch_snapshot()
        with self.context.index.lock:
            local = self.context.index.snapshot()
        return self.context.engine.plan(local, remote)

    def reconcile_one(self, node_id: str) -> list[ActionResult]:
        """
        Fetch one id from the server and reconcile it.

        The id stays locked from the fetch until its actions are applied, so
        the scoped plan runs on this thread whatever max_workers is.

        Raises:
            RemsyncError: If the scoped fetch fails.
        """
        with self.context.locks.hold(node_id):
            remote = self.context.client.fetch_snapshot([node_id])
            with self.context.index.lock:
                local = self.context.index.snapshot()
            actions = self.context.engine.reconcile_one(node_id, local, remote)
            results = self.executor.execute(actions, remote, inline=True)
        self.notification_results.extend(results)
        return results

    def listen(self) -> None:
        """Consume the notification channel until it closes or drops."""
        stream = self._stream
        if stream is None:
            raise NotificationChannelLost("Notification channel is not open")
        try:
            for notification in stream:
                self.dispatcher.receive(notification)
        except NotificationChannelLost as e:
            self.on_disconnect(e)

    def run(self) -> SessionReport:
        """Establish the session, then apply notifications until the channel ends."""
        report = self.establish()
        if not report.aborted:
            self.listen()
        return report

    def on_disconnect(self, error: NotificationChannelLost) -> None:
        """Leave steady state after the notification channel dropped."""
        self.connected = False
        self._stream = None
        self.dispatcher.reset()
        if self.logger:
            self.logger.warning(f"{error.message}, reconnect to resume")
        if self.phase == SessionPhase.STEADY:
            self._set_phase(SessionPhase.INIT)

    def reconnect(self, *, background: bool = False) -> SessionReport:
        """Re-establish with a fresh delete propagation and full snapshot."""
        self.close()
        return self.establish(background=background)

    def close(self) -> None:
        """Close the notification channel and stop the listener."""
        stream, self._stream = self._stream, None
        self.connected = False
        if stream is not None:
            stream.close()
        listener, self._listener = self._listener, None
        if listener is not None and listener is not threading.current_thread():
            listener.join(timeout=5)

    def _open_channel(self, background: bool) -> None:
        self.close()
        self._stream = self.context.client.open_notifications(on_malformed=self.dispatcher.reject)
        self.connected = True
        if background:
            self._listener = threading.Thread(target=self.listen, name="remsync-notifications", daemon=True)
            self._listener.start()

    def _apply_notification(self, notification: Notification) -> None:
        node_id = notification.id
        if notification.event == NotificationEventType.DOC_DELETED:
            with self.context.locks.hold(node_id):
                self.context.index.remove(node_id)
                self.deletions.discard(node_id)
            return
        self.reconcile_one(node_id)

    def _abort(self, error: RemsyncError) -> SessionReport:
        self.report.error = error.message
        self.report.error_kind = error.kind
        self.close()
        self._set_phase(SessionPhase.ABORTED)
        if self.logger:
            self.logger.error(f"{error.kind}: {error.message}")
        return self.report

    def _set_phase(self, phase: SessionPhase) -> None:
        self.phase = phase
        self.report.phase = phase
        if self.logger:
            self.logger.phase(phase)
