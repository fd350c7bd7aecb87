"""remsync - document tree synchronization.

Reconciles a device's local document store with a passive storage
server using per-node version counters, local modification states and
a live change-notification stream.
"""

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "Node",
    "NodeKind",
    "SyncState",
    "LocalIndex",
    "RemoteSnapshot",
    "ReconciliationEngine",
    "SyncAction",
    "ActionType",
    "SyncSession",
    "SessionContext",
    "SessionPhase",
]


def __getattr__(name: str):
    """Lazy import to avoid loading dependencies during setup."""
    if name in ("Node", "NodeKind", "SyncState"):
        from remsync.sync import node

        return getattr(node, name)
    if name in ("LocalIndex", "RemoteSnapshot"):
        from remsync.sync import index

        return getattr(index, name)
    if name == "ReconciliationEngine":
        from remsync.sync.planner import ReconciliationEngine

        return ReconciliationEngine
    if name in ("SyncAction", "ActionType"):
        from remsync.sync import actions

        return getattr(actions, name)
    if name in ("SyncSession", "SessionContext", "SessionPhase"):
        from remsync.sync import session

        return getattr(session, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
