# remsync Reconciliation Engine
# Plans one action per node id over the union of local and server views

from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Optional

from remsync.config.schema import ConflictPolicy, StaleServerPolicy, SyncConfig
from remsync.sync.actions import ActionType, SyncAction, determine_action
from remsync.sync.errors import UnresolvableAncestor
from remsync.sync.index import RemoteSnapshot
from remsync.sync.node import ROOT, Node


class ReconciliationEngine:
    """
    Computes the actions that bring the local and server views together.

    Each id is classified on its own; the only cross-id coupling is parent
    chain repair. Planning reads plain values and performs no I/O, so the
    same inputs always give the same plan.
    """

    def __init__(
        self,
        *,
        conflict_policy: ConflictPolicy = ConflictPolicy.DOWNLOAD,
        stale_server_policy: StaleServerPolicy = StaleServerPolicy.CLOBBER,
    ):
        """
        Initialize reconciliation engine.

        Args:
            conflict_policy: Resolution when the server is newer and local has changes.
            stale_server_policy: Resolution when the server is behind the local version.
        """
        self.conflict_policy = conflict_policy
        self.stale_server_policy = stale_server_policy

    @classmethod
    def from_config(cls, config: SyncConfig) -> "ReconciliationEngine":
        return cls(conflict_policy=config.conflict_policy, stale_server_policy=config.stale_server_policy)

    def classify(self, node_id: str, local: Optional[Node], remote: RemoteSnapshot) -> SyncAction:
        """Classify a single id without looking at its ancestors."""
        return determine_action(
            node_id,
            local,
            remote.get(node_id),
            conflict_policy=self.conflict_policy,
            stale_server_policy=self.stale_server_policy,
        )

    def plan(self, local: Mapping[str, Node], remote: RemoteSnapshot) -> list[SyncAction]:
        """
        Plan a full reconciliation.

        Args:
            local: Snapshot of the Local Index (id -> Node).
            remote: Server listing, taken after pending deletes were flushed.

        Returns:
            One action per id in the union of both sides (plus forced
            ancestor uploads), every ancestor upload ahead of its dependents.
        """
        if remote.is_full:
            ids: Iterable[str] = set(local) | set(remote.ids())
        else:
            ids = remote.scope or ()
        return self._plan(local, remote, sorted(ids))

    def reconcile_one(self, node_id: str, local: Mapping[str, Node], remote: RemoteSnapshot) -> list[SyncAction]:
        """
        Plan a single id against an id-filtered listing.

        Ancestors outside the listing are taken to be on the server when the
        device has uploaded them before.

        Returns:
            The action for node_id, preceded by any ancestor uploads it needs.
        """
        return self._plan(local, remote, [node_id])

    def _plan(self, local: Mapping[str, Node], remote: RemoteSnapshot, ids: list[str]) -> list[SyncAction]:
        decisions: dict[str, SyncAction] = {
            node_id: self.classify(node_id, local.get(node_id), remote) for node_id in ids
        }
        depends: dict[str, tuple[str, ...]] = {}

        for node_id in ids:
            action = decisions[node_id]
            if not action.is_upload:
                continue

            try:
                needed = self._ancestors_to_upload(node_id, local, remote)
            except UnresolvableAncestor as e:
                decisions[node_id] = SyncAction(
                    node_id, ActionType.SKIP, reason=e.message, name=action.name, blocked_by=e.missing
                )
                continue

            # needed is nearest-first; dependencies are listed root-most first
            for i, ancestor_id in enumerate(needed):
                current = decisions.get(ancestor_id)
                if current is None or not current.is_upload:
                    decisions[ancestor_id] = self._forced_upload(local[ancestor_id], node_id)
                depends[ancestor_id] = tuple(reversed(needed[i + 1 :]))
            depends[node_id] = tuple(reversed(needed))

        ordered: list[SyncAction] = []
        emitted: set[str] = set()

        def emit(node_id: str) -> None:
            if node_id in emitted:
                return
            emitted.add(node_id)
            for dep in depends.get(node_id, ()):
                emit(dep)
            ordered.append(replace(decisions[node_id], depends_on=depends.get(node_id, ())))

        for node_id in sorted(decisions):
            emit(node_id)

        return ordered

    def _ancestors_to_upload(
        self, node_id: str, local: Mapping[str, Node], remote: RemoteSnapshot
    ) -> list[str]:
        """
        Walk a node's parent chain.

        Returns:
            Ancestors missing on the server, nearest first.

        Raises:
            UnresolvableAncestor: If an ancestor is unknown to both sides,
                tombstoned locally, or the chain loops.
        """
        needed: list[str] = []
        seen = {node_id}
        parent = local[node_id].parent

        while parent != ROOT:
            if parent in seen:
                raise UnresolvableAncestor(node_id, parent)
            seen.add(parent)

            ancestor = local.get(parent)
            if ancestor is not None and ancestor.is_deleted:
                raise UnresolvableAncestor(node_id, parent)
            if self._on_server(parent, ancestor, remote):
                break
            if ancestor is None:
                raise UnresolvableAncestor(node_id, parent)

            needed.append(parent)
            parent = ancestor.parent

        return needed

    @staticmethod
    def _on_server(node_id: str, local: Optional[Node], remote: RemoteSnapshot) -> bool:
        if node_id in remote:
            return True
        if remote.scope is None or node_id in remote.scope:
            return False
        return local is not None and local.version > 0

    @staticmethod
    def _forced_upload(ancestor: Node, dependent: str) -> SyncAction:
        return SyncAction(
            ancestor.id,
            ActionType.UPLOAD,
            reason=f"Missing ancestor of {dependent}",
            version=max(ancestor.version, 1),
            forced=True,
            name=ancestor.name,
        )
