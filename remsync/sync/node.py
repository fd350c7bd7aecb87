# remsync Node Records
# The shared data unit of the synchronized document tree

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from remsync.utils.timestamps import now_millis

# Parent of a top-level node
ROOT = ""


class NodeKind(str, Enum):
    """Kind of node. Values are the wire names."""

    DOCUMENT = "DocumentType"
    COLLECTION = "CollectionType"


class SyncState(str, Enum):
    """
    Local synchronization state of a node.

    Replaces the four on-disk flags (synced, modified, metadatamodified,
    deleted) with one variant. A deleted node is PENDING_DELETE no matter
    what else changed before the deletion.
    """

    # Created locally, never uploaded (version 0)
    UNSYNCED = "unsynced"

    # Uploaded at least once, no pending changes
    SYNCED = "synced"

    # Content changed since the last successful sync
    MODIFIED = "modified"

    # Only name, parent or pinned changed since the last successful sync
    METADATA_MODIFIED = "metadata_modified"

    # Tombstoned locally, remote delete not yet confirmed
    PENDING_DELETE = "pending_delete"

    @property
    def has_pending_changes(self) -> bool:
        """Check if the local side holds changes the server hasn't seen."""
        return self in (
            SyncState.UNSYNCED,
            SyncState.MODIFIED,
            SyncState.METADATA_MODIFIED,
            SyncState.PENDING_DELETE,
        )


@dataclass
class Node:
    """
    A document or collection known to the local device.

    Mutators follow the device's metadata rules: every change stamps
    last_modified and moves the node into the matching modification state.
    """

    id: str
    kind: NodeKind
    parent: str = ROOT
    name: str = ""
    version: int = 0
    pinned: bool = False
    current_page: int = 0
    last_modified: str = field(default_factory=now_millis)
    state: SyncState = SyncState.UNSYNCED

    @property
    def is_collection(self) -> bool:
        """Check if this node is a collection."""
        return self.kind == NodeKind.COLLECTION

    @property
    def is_deleted(self) -> bool:
        """Check if this node is tombstoned."""
        return self.state == SyncState.PENDING_DELETE

    @property
    def has_pending_changes(self) -> bool:
        """Check if this node carries changes not yet on the server."""
        return self.state.has_pending_changes

    def set_parent(self, parent: str) -> None:
        """Move the node under another collection."""
        if self.parent != parent:
            self.parent = parent
            self._metadata_changed()

    def set_name(self, name: str) -> None:
        """Rename the node."""
        if self.name != name:
            self.name = name
            self._metadata_changed()

    def set_pinned(self, pinned: bool) -> None:
        """Pin or unpin the node."""
        if self.pinned != pinned:
            self.pinned = pinned
            self._metadata_changed()

    def set_modified(self) -> None:
        """Record a content change."""
        if self.state in (SyncState.SYNCED, SyncState.METADATA_MODIFIED):
            self.state = SyncState.MODIFIED
        self.last_modified = now_millis()

    def delete_node(self) -> None:
        """Tombstone the node."""
        if self.state != SyncState.PENDING_DELETE:
            self.state = SyncState.PENDING_DELETE
            self.last_modified = now_millis()

    def restore(self) -> None:
        """
        Undo a tombstone whose remote delete was refused.

        The tombstone does not record whether the content changed before the
        delete, so an uploaded node comes back as MODIFIED and re-sends it.
        """
        if self.state == SyncState.PENDING_DELETE:
            self.state = SyncState.MODIFIED if self.version > 0 else SyncState.UNSYNCED

    def mark_uploaded(self, version: int) -> None:
        """Record a successful upload at the given version."""
        self.version = version
        self.state = SyncState.SYNCED

    def adopt_remote(self, remote: "RemoteNode") -> None:
        """Take every field from the server's record, including the version."""
        self.kind = remote.kind
        self.version = remote.version
        self.last_modified = remote.last_modified or self.last_modified
        self.current_page = remote.current_page
        self.adopt_remote_metadata(remote)
        self.state = SyncState.SYNCED

    def adopt_remote_metadata(self, remote: "RemoteNode") -> None:
        """Take the server's descriptive fields without touching the version."""
        self.parent = remote.parent
        self.name = remote.name
        self.pinned = remote.pinned

    def copy(self) -> "Node":
        """Return an independent copy of this node."""
        return replace(self)

    def _metadata_changed(self) -> None:
        if self.state == SyncState.SYNCED:
            self.state = SyncState.METADATA_MODIFIED
        self.last_modified = now_millis()

    def to_metadata(self) -> dict[str, Any]:
        """Convert to the on-disk metadata layout."""
        state = self.state
        if state == SyncState.PENDING_DELETE:
            synced = self.version > 0
        else:
            synced = state != SyncState.UNSYNCED
        return {
            "deleted": state == SyncState.PENDING_DELETE,
            "lastModified": self.last_modified,
            "metadatamodified": state in (SyncState.METADATA_MODIFIED, SyncState.PENDING_DELETE),
            "modified": state in (SyncState.MODIFIED, SyncState.UNSYNCED),
            "parent": self.parent,
            "pinned": self.pinned,
            "synced": synced,
            "type": self.kind.value,
            "version": self.version,
            "visibleName": self.name,
        }

    @classmethod
    def from_metadata(cls, node_id: str, data: dict[str, Any]) -> "Node":
        """Create from the on-disk metadata layout."""
        if data.get("deleted", False):
            state = SyncState.PENDING_DELETE
        elif not data.get("synced", False):
            state = SyncState.UNSYNCED
        elif data.get("modified", False):
            state = SyncState.MODIFIED
        elif data.get("metadatamodified", False):
            state = SyncState.METADATA_MODIFIED
        else:
            state = SyncState.SYNCED

        return cls(
            id=node_id,
            kind=NodeKind(data.get("type", NodeKind.DOCUMENT.value)),
            parent=data.get("parent", ROOT),
            name=data.get("visibleName", ""),
            version=int(data.get("version", 0)),
            pinned=bool(data.get("pinned", False)),
            last_modified=str(data.get("lastModified", "")),
            state=state,
        )


@dataclass(frozen=True)
class RemoteNode:
    """A node as listed by the server in a snapshot."""

    id: str
    version: int
    kind: NodeKind = NodeKind.DOCUMENT
    parent: str = ROOT
    name: str = ""
    pinned: bool = False
    current_page: int = 0
    last_modified: str = ""

    @property
    def is_collection(self) -> bool:
        """Check if this node is a collection."""
        return self.kind == NodeKind.COLLECTION

    def to_node(self) -> Node:
        """Create a local record adopting everything from the server."""
        node = Node(id=self.id, kind=self.kind)
        node.adopt_remote(self)
        return node
