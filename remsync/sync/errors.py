# remsync Sync Errors
# Failure taxonomy for transport calls and per-node reconciliation


class RemsyncError(Exception):
    """Base exception for remsync failures."""

    def __init__(self, message: str, node_id: str | None = None):
        self.message = message
        self.node_id = node_id
        super().__init__(message)

    @property
    def kind(self) -> str:
        """Classification name used in reports."""
        return type(self).__name__


class TransportFailure(RemsyncError):
    """Network error or timeout talking to the server."""

    def __init__(self, message: str, node_id: str | None = None, *, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message, node_id)


class VersionConflict(RemsyncError):
    """The server holds a different version than the one the request was keyed on."""

    def __init__(self, node_id: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Version conflict on {node_id}: expected {expected}, server has {actual}", node_id)


class QuotaOrServerReject(RemsyncError):
    """The server refused a request for a reason other than a version mismatch."""


class PersistentDiscoveryFailure(RemsyncError):
    """No storage endpoint could be located. Fatal for the session."""


class NotificationChannelLost(RemsyncError):
    """The push-notification connection could not be opened or was dropped."""


class UnresolvableAncestor(RemsyncError):
    """A node's parent chain references a node neither side can materialize."""

    def __init__(self, node_id: str, missing: str):
        self.missing = missing
        super().__init__(f"Parent {missing} of {node_id} is unknown to both sides", node_id)
