# remsync Sync Actions
# Action types and per-node classification

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from remsync.config.schema import ConflictPolicy, StaleServerPolicy
from remsync.sync.node import Node, RemoteNode, SyncState

# Namespace for ids minted when a local copy is renamed on conflict
RENAME_NAMESPACE = uuid.UUID("6f1d3c52-8a0e-4c1b-9a57-2f4f5e0c9b21")


class ActionType(str, Enum):
    """Types of sync actions."""

    # Push local content and metadata to the server
    UPLOAD = "upload"

    # Pull server content and metadata, replacing the local copy
    DOWNLOAD = "download"

    # Remove the node locally (server no longer has it)
    LOCAL_DELETE = "local_delete"

    # Remove the node on the server (tombstoned locally)
    REMOTE_DELETE = "remote_delete"

    # Adopt server name/parent/pinned, no content transfer
    METADATA_CLOBBER = "metadata_clobber"

    # Re-upload the local copy under a fresh id, then download the server copy
    RENAME_UPLOAD = "rename_upload"

    # Nothing can be done this round
    SKIP = "skip"


@dataclass(frozen=True)
class SyncAction:
    """
    A synchronization decision for one node id.

    For uploads `version` is the version claimed on the server; for remote
    deletes it is the version the delete is keyed on; for downloads it is
    the server version being adopted. A SKIP with `blocked_by` names the
    ancestor that could not be materialized.
    """

    node_id: str
    action_type: ActionType
    reason: str = ""
    version: Optional[int] = None
    content: bool = True
    forced: bool = False
    new_id: Optional[str] = None
    depends_on: tuple[str, ...] = ()
    name: str = ""
    blocked_by: Optional[str] = None

    @property
    def is_upload(self) -> bool:
        """Check if this action writes to the server."""
        return self.action_type in (ActionType.UPLOAD, ActionType.RENAME_UPLOAD)

    @property
    def is_delete(self) -> bool:
        """Check if this is a delete action."""
        return self.action_type in (ActionType.LOCAL_DELETE, ActionType.REMOTE_DELETE)

    @property
    def needs_action(self) -> bool:
        """Check if this action requires execution."""
        return self.action_type != ActionType.SKIP

    @property
    def direction(self) -> str:
        """Get human-readable direction of action."""
        if self.action_type in (ActionType.UPLOAD, ActionType.RENAME_UPLOAD, ActionType.REMOTE_DELETE):
            return "local → server"
        elif self.action_type in (ActionType.DOWNLOAD, ActionType.LOCAL_DELETE, ActionType.METADATA_CLOBBER):
            return "server → local"
        else:
            return "—"


@dataclass
class ActionResult:
    """Result of executing an action."""

    action: SyncAction
    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    version: Optional[int] = None

    @property
    def node_id(self) -> str:
        """Get the node id."""
        return self.action.node_id


def rename_id(node_id: str, local_version: int, remote_version: int) -> str:
    """
    Derive the id a conflicting local copy is re-uploaded under.

    Deterministic so that planning twice yields the same actions.
    """
    return str(uuid.uuid5(RENAME_NAMESPACE, f"{node_id}:{local_version}:{remote_version}"))


def determine_action(
    node_id: str,
    local: Optional[Node],
    remote: Optional[RemoteNode],
    *,
    conflict_policy: ConflictPolicy = ConflictPolicy.DOWNLOAD,
    stale_server_policy: StaleServerPolicy = StaleServerPolicy.CLOBBER,
) -> SyncAction:
    """
    Determine what action to take for a node id.

    Args:
        node_id: The id being classified.
        local: Local record, None if the device doesn't know the id.
        remote: Server record, None if the snapshot doesn't list the id.
        conflict_policy: Resolution when the server is newer and local has changes.
        stale_server_policy: Resolution when the server is behind the local version.

    Returns:
        SyncAction describing what to do. Ancestor repair is left to the planner.
    """
    name = local.name if local else remote.name if remote else ""

    # Case 1: Known to neither side
    if local is None and remote is None:
        return SyncAction(node_id, ActionType.SKIP, reason="Unknown to both sides")

    # Case 2: Only on the server
    if local is None:
        return SyncAction(
            node_id, ActionType.DOWNLOAD, reason="New on server", version=remote.version, name=name
        )

    state = local.state

    # Case 3: Only local
    if remote is None:
        if state == SyncState.UNSYNCED:
            return SyncAction(node_id, ActionType.UPLOAD, reason="Never uploaded", version=1, name=name)
        if state == SyncState.SYNCED:
            return SyncAction(node_id, ActionType.LOCAL_DELETE, reason="Removed on server", name=name)
        if state == SyncState.PENDING_DELETE:
            return SyncAction(node_id, ActionType.LOCAL_DELETE, reason="Already absent on server", name=name)
        # Server lost a node that has local changes: push it back at its current version
        return SyncAction(
            node_id,
            ActionType.UPLOAD,
            reason="Missing on server, local changes pending",
            version=max(local.version, 1),
            name=name,
        )

    # Case 4: On both sides
    if state == SyncState.PENDING_DELETE:
        if remote.version > local.version:
            return SyncAction(
                node_id,
                ActionType.DOWNLOAD,
                reason="Modified on server after local delete",
                version=remote.version,
                name=name,
            )
        return SyncAction(
            node_id, ActionType.REMOTE_DELETE, reason="Deleted locally", version=remote.version, name=name
        )

    if remote.version < local.version:
        if stale_server_policy == StaleServerPolicy.RENAME:
            return SyncAction(
                node_id,
                ActionType.RENAME_UPLOAD,
                reason="Server behind local, keeping both copies",
                version=1,
                new_id=rename_id(node_id, local.version, remote.version),
                name=name,
            )
        return SyncAction(
            node_id, ActionType.UPLOAD, reason="Server behind local", version=local.version, name=name
        )

    if remote.version == local.version:
        if state == SyncState.SYNCED:
            return SyncAction(
                node_id,
                ActionType.METADATA_CLOBBER,
                reason="Versions match, adopting server metadata",
                version=remote.version,
                name=name,
            )
        return SyncAction(
            node_id,
            ActionType.UPLOAD,
            reason="Local changes" if state != SyncState.METADATA_MODIFIED else "Local metadata changes",
            version=local.version + 1,
            content=state != SyncState.METADATA_MODIFIED,
            name=name,
        )

    # Server is ahead
    if state == SyncState.SYNCED:
        return SyncAction(
            node_id, ActionType.DOWNLOAD, reason="Server newer", version=remote.version, name=name
        )

    if conflict_policy == ConflictPolicy.UPLOAD:
        # The server holds a newer blob; even a metadata-only change sends ours
        return SyncAction(
            node_id,
            ActionType.UPLOAD,
            reason="Both changed, keeping local",
            version=remote.version + 1,
            name=name,
        )
    if conflict_policy == ConflictPolicy.RENAME:
        return SyncAction(
            node_id,
            ActionType.RENAME_UPLOAD,
            reason="Both changed, keeping both copies",
            version=1,
            new_id=rename_id(node_id, local.version, remote.version),
            name=name,
        )
    return SyncAction(
        node_id,
        ActionType.DOWNLOAD,
        reason="Both changed, keeping server",
        version=remote.version,
        name=name,
    )
