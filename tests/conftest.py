# remsync Test Fixtures
# Pytest fixtures for remsync tests

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import yaml

from remsync.config.schema import ConflictPolicy, RetryConfig, StaleServerPolicy
from remsync.sync.index import LocalIndex, NodeStore, RemoteSnapshot
from remsync.sync.node import ROOT, Node, NodeKind, RemoteNode, SyncState
from remsync.sync.planner import ReconciliationEngine
from remsync.sync.session import SessionContext, SyncSession
from remsync.transport.client import StorageClient
from remsync.transport.memory import MemoryServer, MemoryTransport

DEVICE_ID = "device-a"
OTHER_DEVICE_ID = "device-b"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temporary home directory."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("REMSYNC_CONFIG", raising=False)
    return home


@pytest.fixture
def make_node() -> Callable[..., Node]:
    """Factory for local nodes in a given state."""

    def factory(
        node_id: str,
        version: int = 0,
        state: SyncState = SyncState.UNSYNCED,
        *,
        parent: str = ROOT,
        kind: NodeKind = NodeKind.DOCUMENT,
        name: str = "",
        pinned: bool = False,
    ) -> Node:
        return Node(
            id=node_id,
            kind=kind,
            parent=parent,
            name=name or node_id,
            version=version,
            pinned=pinned,
            state=state,
        )

    return factory


@pytest.fixture
def make_remote() -> Callable[..., RemoteNode]:
    """Factory for server snapshot records."""

    def factory(
        node_id: str,
        version: int,
        *,
        parent: str = ROOT,
        kind: NodeKind = NodeKind.DOCUMENT,
        name: str = "",
        pinned: bool = False,
    ) -> RemoteNode:
        return RemoteNode(
            id=node_id,
            version=version,
            kind=kind,
            parent=parent,
            name=name or node_id,
            pinned=pinned,
            last_modified="1700000000000",
        )

    return factory


@pytest.fixture
def engine() -> ReconciliationEngine:
    """Engine with the default policies."""
    return ReconciliationEngine()


@pytest.fixture
def empty_snapshot() -> RemoteSnapshot:
    return RemoteSnapshot()


@pytest.fixture
def server() -> MemoryServer:
    """A fresh passive server."""
    return MemoryServer()


@pytest.fixture
def index() -> LocalIndex:
    """An in-memory Local Index."""
    return LocalIndex()


@pytest.fixture
def store_index(temp_dir: Path) -> LocalIndex:
    """A Local Index persisted to a temporary store."""
    return LocalIndex(NodeStore(temp_dir / "store"))


@pytest.fixture
def no_retry() -> RetryConfig:
    return RetryConfig(attempts=2, backoff_base=0, backoff_max=0)


@pytest.fixture
def client(server: MemoryServer, no_retry: RetryConfig) -> StorageClient:
    """Storage client for this device."""
    return StorageClient(MemoryTransport(server, DEVICE_ID), no_retry, sleep=lambda _: None)


@pytest.fixture
def make_session(server: MemoryServer, no_retry: RetryConfig) -> Callable[..., SyncSession]:
    """Factory for sessions of different devices sharing the server."""

    def factory(
        index: LocalIndex,
        device_id: str = DEVICE_ID,
        *,
        conflict_policy: ConflictPolicy = ConflictPolicy.DOWNLOAD,
        stale_server_policy: StaleServerPolicy = StaleServerPolicy.CLOBBER,
        max_workers: int = 1,
        suppress_self: bool = True,
    ) -> SyncSession:
        context = SessionContext(
            device_id=device_id,
            index=index,
            client=StorageClient(MemoryTransport(server, device_id), no_retry, sleep=lambda _: None),
            engine=ReconciliationEngine(conflict_policy=conflict_policy, stale_server_policy=stale_server_policy),
            max_workers=max_workers,
            suppress_self_notifications=suppress_self,
        )
        return SyncSession(context)

    return factory


@pytest.fixture
def sample_config(temp_home: Path) -> dict:
    """Create sample configuration dict."""
    return {
        "device": {"id": DEVICE_ID, "description": "test-device"},
        "store": {"path": str(temp_home / "store")},
        "server": {"kind": "directory", "path": str(temp_home / "server")},
        "sync": {
            "conflict_policy": "download",
            "stale_server_policy": "clobber",
            "max_workers": 1,
            "retry": {"attempts": 1, "backoff_base": 0, "backoff_max": 0},
        },
        "output": {"verbose": False, "colored": False},
    }


@pytest.fixture
def config_file(temp_home: Path, sample_config: dict) -> Path:
    """Create a configuration file."""
    config_dir = temp_home / ".config" / "remsync"
    config_dir.mkdir(parents=True)
    config_path = config_dir / "config.yaml"

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(sample_config, f, default_flow_style=False)

    return config_path
