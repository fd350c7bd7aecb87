# remsync Sync Module
# Core synchronization engine and components

from remsync.sync.actions import ActionResult, ActionType, SyncAction, determine_action
from remsync.sync.errors import (
    NotificationChannelLost,
    PersistentDiscoveryFailure,
    QuotaOrServerReject,
    RemsyncError,
    TransportFailure,
    UnresolvableAncestor,
    VersionConflict,
)
from remsync.sync.index import LocalIndex, NodeStore, RemoteSnapshot
from remsync.sync.node import ROOT, Node, NodeKind, RemoteNode, SyncState
from remsync.sync.planner import ReconciliationEngine

__all__ = [
    # Node
    "ROOT",
    "Node",
    "NodeKind",
    "RemoteNode",
    "SyncState",
    # Index
    "LocalIndex",
    "NodeStore",
    "RemoteSnapshot",
    # Actions
    "ActionType",
    "SyncAction",
    "ActionResult",
    "determine_action",
    # Engine
    "ReconciliationEngine",
    "ActionExecutor",
    "NodeLocks",
    "DeletionPropagator",
    "NotificationDispatcher",
    "DispatcherState",
    # Session
    "SyncSession",
    "SessionContext",
    "SessionPhase",
    "SessionReport",
    # Errors
    "RemsyncError",
    "TransportFailure",
    "VersionConflict",
    "QuotaOrServerReject",
    "PersistentDiscoveryFailure",
    "NotificationChannelLost",
    "UnresolvableAncestor",
]


def __getattr__(name: str):
    """Lazy import for components that depend on the transport package."""
    if name in ("ActionExecutor", "NodeLocks"):
        from remsync.sync import executor

        return getattr(executor, name)
    if name == "DeletionPropagator":
        from remsync.sync.deletions import DeletionPropagator

        return DeletionPropagator
    if name in ("NotificationDispatcher", "DispatcherState"):
        from remsync.sync import notifications

        return getattr(notifications, name)
    if name in ("SyncSession", "SessionContext", "SessionPhase", "SessionReport"):
        from remsync.sync import session

        return getattr(session, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
