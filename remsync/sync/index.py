# remsync Node Indexes
# Local Index (device view), Remote Snapshot (server view) and on-disk persistence

from __future__ import annotations

import json
import threading
import uuid
from collections.abc import Iterable, Iterator
from datetime import datetime
from pathlib import Path

import yaml

from remsync.sync.node import ROOT, Node, NodeKind, RemoteNode
from remsync.utils.paths import atomic_write, ensure_dir, remove_file

# Content kept for collections, which have no pages of their own
COLLECTION_PLACEHOLDER = b"{}"

METADATA_SUFFIX = ".metadata"
CONTENT_SUFFIX = ".content"
PENDING_DELETES_FILE = ".pending_deletes.yaml"


class NodeStore:
    """
    Directory-backed persistence for node records and their blobs.

    Each node is stored as <id>.metadata (JSON) with its opaque payload
    beside it as <id>.content.
    """

    def __init__(self, base_path: Path):
        """
        Initialize node store.

        Args:
            base_path: Directory holding the node files. Created if missing.
        """
        self.base_path = ensure_dir(Path(base_path))

    def metadata_path(self, node_id: str) -> Path:
        return self.base_path / f"{node_id}{METADATA_SUFFIX}"

    def content_path(self, node_id: str) -> Path:
        return self.base_path / f"{node_id}{CONTENT_SUFFIX}"

    def load_all(self) -> dict[str, Node]:
        """Load every node record in the store."""
        nodes: dict[str, Node] = {}
        for path in sorted(self.base_path.glob(f"*{METADATA_SUFFIX}")):
            node_id = path.name[: -len(METADATA_SUFFIX)]
            with open(path, encoding="utf-8") as f:
                nodes[node_id] = Node.from_metadata(node_id, json.load(f))
        return nodes

    def save(self, node: Node) -> None:
        """Write a node record."""
        atomic_write(self.metadata_path(node.id), json.dumps(node.to_metadata(), indent=4, sort_keys=True))

    def delete(self, node_id: str) -> None:
        """Remove a node record and its blob."""
        remove_file(self.metadata_path(node_id))
        remove_file(self.content_path(node_id))

    def read_blob(self, node_id: str) -> bytes | None:
        path = self.content_path(node_id)
        if not path.exists():
            return None
        return path.read_bytes()

    def write_blob(self, node_id: str, content: bytes) -> None:
        atomic_write(self.content_path(node_id), content)

    def load_pending_deletes(self) -> dict[str, int]:
        """Load the persisted pending-delete set as id -> version."""
        path = self.base_path / PENDING_DELETES_FILE
        if not path.exists():
            return {}
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not data:
            return {}
        return {str(k): int(v) for k, v in data.get("pending", {}).items()}

    def save_pending_deletes(self, pending: dict[str, int]) -> None:
        """Persist the pending-delete set."""
        data = {"updated": datetime.now().isoformat(), "pending": dict(sorted(pending.items()))}
        atomic_write(
            self.base_path / PENDING_DELETES_FILE,
            yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True),
        )


class LocalIndex:
    """
    The device's known nodes.

    All reads and writes go through one re-entrant lock so a planner can
    take a consistent snapshot while notifications are being applied.
    """

    def __init__(self, store: NodeStore | None = None):
        """
        Initialize local index.

        Args:
            store: Optional persistence. Without one the index lives in memory only.
        """
        self.store = store
        self.lock = threading.RLock()
        self._nodes: dict[str, Node] = store.load_all() if store else {}
        self._blobs: dict[str, bytes] = {}

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes())

    def ids(self) -> list[str]:
        """All node ids, sorted."""
        with self.lock:
            return sorted(self._nodes)

    def nodes(self) -> list[Node]:
        """All nodes, sorted by id."""
        with self.lock:
            return [self._nodes[k] for k in sorted(self._nodes)]

    def get(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def put(self, node: Node) -> None:
        """Insert or replace a node."""
        with self.lock:
            self._nodes[node.id] = node
            if self.store:
                self.store.save(node)

    def remove(self, node_id: str) -> Node | None:
        """Remove a node and its blob. Removing an absent id is a no-op."""
        with self.lock:
            node = self._nodes.pop(node_id, None)
            self._blobs.pop(node_id, None)
            if self.store:
                self.store.delete(node_id)
            return node

    def snapshot(self) -> dict[str, Node]:
        """Independent copies of every node, taken atomically."""
        with self.lock:
            return {k: v.copy() for k, v in self._nodes.items()}

    def read_blob(self, node_id: str) -> bytes | None:
        if self.store:
            return self.store.read_blob(node_id)
        return self._blobs.get(node_id)

    def write_blob(self, node_id: str, content: bytes) -> None:
        with self.lock:
            if self.store:
                self.store.write_blob(node_id, content)
            else:
                self._blobs[node_id] = content

    def children(self, parent: str) -> list[Node]:
        """Direct children of a collection, sorted by id."""
        with self.lock:
            return [n for n in self.nodes() if n.parent == parent]

    def descendants(self, node_id: str) -> list[Node]:
        """Every node below a collection, parents before children."""
        result: list[Node] = []
        pending = [node_id]
        seen = {node_id}
        with self.lock:
            while pending:
                current = pending.pop(0)
                for child in self.children(current):
                    if child.id not in seen:
                        seen.add(child.id)
                        result.append(child)
                        pending.append(child.id)
        return result

    # Device-side editing

    def create_node(
        self,
        kind: NodeKind,
        name: str,
        *,
        parent: str = ROOT,
        content: bytes | None = None,
        node_id: str | None = None,
    ) -> Node:
        """
        Create a new, never-synced node.

        Args:
            kind: Document or collection.
            name: Visible name.
            parent: Containing collection id, or ROOT.
            content: Opaque payload. Collections get a placeholder.
            node_id: Explicit id, a fresh UUID4 otherwise.

        Returns:
            The created node.
        """
        with self.lock:
            if parent != ROOT and parent not in self._nodes:
                raise KeyError(f"Parent '{parent}' not found")
            node = Node(id=node_id or str(uuid.uuid4()), kind=kind, parent=parent, name=name)
            if node.id in self._nodes:
                raise ValueError(f"Node '{node.id}' already exists")
            if content is None and kind == NodeKind.COLLECTION:
                content = COLLECTION_PLACEHOLDER
            self.write_blob(node.id, content or b"")
            self.put(node)
            return node

    def rename(self, node_id: str, name: str) -> Node:
        with self.lock:
            node = self._require(node_id)
            node.set_name(name)
            self.put(node)
            return node

    def move(self, node_id: str, parent: str) -> Node:
        """Move a node under another collection, refusing moves that would create a cycle."""
        with self.lock:
            node = self._require(node_id)
            if parent != ROOT:
                target = self._require(parent)
                if not target.is_collection:
                    raise ValueError(f"'{parent}' is not a collection")
                if parent == node_id or parent in {d.id for d in self.descendants(node_id)}:
                    raise ValueError(f"Moving '{node_id}' under '{parent}' would create a cycle")
            node.set_parent(parent)
            self.put(node)
            return node

    def set_pinned(self, node_id: str, pinned: bool) -> Node:
        with self.lock:
            node = self._require(node_id)
            node.set_pinned(pinned)
            self.put(node)
            return node

    def touch_content(self, node_id: str, content: bytes) -> Node:
        """Replace a node's payload and flag it as modified."""
        with self.lock:
            node = self._require(node_id)
            self.write_blob(node_id, content)
            node.set_modified()
            self.put(node)
            return node

    def delete_node(self, node_id: str) -> list[Node]:
        """
        Tombstone a node and everything below it.

        Returns:
            The tombstoned nodes, the given node first.
        """
        with self.lock:
            node = self._require(node_id)
            deleted: list[Node] = []
            for target in [node, *self.descendants(node_id)]:
                target.delete_node()
                self.put(target)
                deleted.append(target)
            return deleted

    def pending_changes(self) -> list[Node]:
        """Nodes with changes the server hasn't seen."""
        return [n for n in self.nodes() if n.has_pending_changes]

    def _require(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(f"Node '{node_id}' not found")
        return node


class RemoteSnapshot:
    """
    A point-in-time listing of server-known nodes.

    Supplied by the session after a fetch; never performs I/O itself.
    """

    def __init__(self, nodes: Iterable[RemoteNode] = (), *, scope: Iterable[str] | None = None):
        """
        Initialize snapshot.

        Args:
            nodes: Records returned by the server.
            scope: Ids the fetch was filtered to, None for a full listing.
        """
        self._nodes: dict[str, RemoteNode] = {n.id: n for n in nodes}
        self.scope: frozenset[str] | None = frozenset(scope) if scope is not None else None

    @property
    def is_full(self) -> bool:
        """Check if this is a full listing rather than an id-filtered one."""
        return self.scope is None

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[RemoteNode]:
        return iter(self.nodes())

    def ids(self) -> list[str]:
        return sorted(self._nodes)

    def nodes(self) -> list[RemoteNode]:
        return [self._nodes[k] for k in sorted(self._nodes)]

    def get(self, node_id: str) -> RemoteNode | None:
        return self._nodes.get(node_id)

    def put(self, node: RemoteNode) -> None:
        self._nodes[node.id] = node

    def remove(self, node_id: str) -> RemoteNode | None:
        return self._nodes.pop(node_id, None)
