# remsync Memory Server
# A passive in-process storage service and the transport that talks to it

from __future__ import annotations

import queue
import secrets
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace
from typing import Any, Optional

from remsync.sync.errors import PersistentDiscoveryFailure, TransportFailure
from remsync.sync.node import NodeKind
from remsync.transport.base import NotificationChannel, Transport
from remsync.transport.wire import (
    CompletionRequest,
    DeleteRequest,
    DocRecord,
    Notification,
    NotificationEventType,
    StatusRow,
    UploadSlot,
    UploadSlotRequest,
)
from remsync.utils.timestamps import now_millis

_CLOSED = object()
_DROPPED = object()


@dataclass
class _Slot:
    node_id: str
    version: int
    expires_at: float
    kind: str = "put"


class MemoryChannel(NotificationChannel):
    """Notification channel fed by a MemoryServer."""

    def __init__(self, server: "MemoryServer"):
        self._server = server
        self._queue: queue.Queue = queue.Queue()
        self._closed = False

    def deliver(self, record: dict[str, Any]) -> None:
        if not self._closed:
            self._queue.put(record)

    def drop(self) -> None:
        self._queue.put(_DROPPED)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            if item is _DROPPED:
                raise TransportFailure("Notification connection lost")
            yield item

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(_CLOSED)
            self._server._unsubscribe(self)


class MemoryServer:
    """
    A passive storage service.

    Stores exactly the versions clients give it and never originates one.
    Upload and download URLs are one-time tokens that expire. Every
    successful mutation is published to open notification channels.
    """

    def __init__(
        self,
        *,
        host: str = "memory.local",
        url_ttl: float = 300.0,
        quota: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize memory server.

        Args:
            host: Host returned by discovery.
            url_ttl: Lifetime of pre-signed URLs in seconds.
            quota: Maximum number of stored nodes, None for unlimited.
            clock: Monotonic clock used for URL expiry.
        """
        self.host = host
        self.url_ttl = url_ttl
        self.quota = quota
        self._clock = clock
        self._lock = threading.RLock()
        self._docs: dict[str, DocRecord] = {}
        self._blobs: dict[str, bytes] = {}
        self._staged: dict[tuple[str, int], bytes] = {}
        self._slots: dict[str, _Slot] = {}
        self._channels: list[MemoryChannel] = []
        self.discoverable = True
        self.online = True
        self.calls: list[str] = []

    # Inspection helpers

    def docs(self) -> dict[str, DocRecord]:
        with self._lock:
            return dict(self._docs)

    def blob(self, node_id: str) -> Optional[bytes]:
        with self._lock:
            return self._blobs.get(node_id)

    def seed(self, record: DocRecord, content: bytes = b"") -> None:
        """Store a record directly, as if another client had uploaded it."""
        with self._lock:
            self._docs[record.id] = replace(record, success=True, message="")
            self._blobs[record.id] = content
            self._persist()

    def inject(self, record: Any) -> None:
        """Push a raw record, as is, to every open channel."""
        with self._lock:
            channels = list(self._channels)
        for channel in channels:
            channel.deliver(record)

    def drop_notifications(self) -> None:
        """Simulate loss of every push connection."""
        with self._lock:
            channels, self._channels = self._channels, []
        for channel in channels:
            channel.drop()

    # Service operations

    def discover(self) -> str:
        self._record("discover")
        if not self.discoverable:
            raise PersistentDiscoveryFailure("No storage service registered")
        return self.host

    def fetch_docs(self, ids: Optional[list[str]] = None) -> list[dict[str, Any]]:
        self._record("fetch_docs")
        with self._lock:
            if ids is None:
                return [self._docs[k].to_wire() for k in sorted(self._docs)]
            rows = []
            for node_id in ids:
                record = self._docs.get(node_id)
                if record is None:
                    rows.append(DocRecord(id=node_id, version=0, success=False, message="Not found").to_wire())
                else:
                    rows.append(record.to_wire())
            return rows

    def request_blob_url(self, node_id: str) -> dict[str, Any]:
        self._record("request_blob_url")
        with self._lock:
            if node_id not in self._docs:
                return {"BlobURLGet": "", "BlobURLGetExpires": ""}
            token = self._issue(node_id, self._docs[node_id].version, "get")
            return {"BlobURLGet": f"memory://{self.host}/get/{token}", "BlobURLGetExpires": self._expiry()}

    def request_upload(self, rows: list[dict[str, Any]], device: str = "") -> list[dict[str, Any]]:
        self._record("request_upload")
        results = []
        with self._lock:
            for row in rows:
                req = UploadSlotRequest.from_wire(row)
                stored = self._docs.get(req.id)
                if stored is not None and req.version < stored.version:
                    results.append(UploadSlot(False, "Version conflict", req.id, stored.version).to_wire())
                    continue
                if stored is None and self.quota is not None and len(self._docs) >= self.quota:
                    results.append(UploadSlot(False, "Quota exceeded", req.id, req.version).to_wire())
                    continue
                token = self._issue(req.id, req.version, "put")
                results.append(
                    UploadSlot(
                        True, "", req.id, req.version, f"memory://{self.host}/put/{token}", self._expiry()
                    ).to_wire()
                )
        return results

    def update_status(self, rows: list[dict[str, Any]], device: str = "") -> list[dict[str, Any]]:
        self._record("update_status")
        results = []
        published = []
        with self._lock:
            for row in rows:
                req = CompletionRequest.from_wire(row)
                stored = self._docs.get(req.id)
                if stored is not None and req.version < stored.version:
                    results.append(StatusRow(False, "Version conflict", req.id, stored.version).to_wire())
                    continue
                content = self._staged.pop((req.id, req.version), None)
                if content is None and stored is None:
                    results.append(StatusRow(False, "No blob uploaded", req.id, req.version).to_wire())
                    continue
                record = DocRecord(
                    id=req.id,
                    version=req.version,
                    kind=req.kind,
                    parent=req.parent,
                    name=req.name,
                    modified_client=req.modified_client or now_millis(),
                    bookmarked=req.bookmarked,
                    current_page=req.current_page,
                )
                self._docs[req.id] = record
                if content is not None:
                    self._blobs[req.id] = content
                results.append(StatusRow(True, "", req.id, req.version).to_wire())
                published.append(self._notification(NotificationEventType.DOC_ADDED, record, device))
            self._persist()
        for notification in published:
            self._publish(notification)
        return results

    def delete(self, rows: list[dict[str, Any]], device: str = "") -> list[dict[str, Any]]:
        self._record("delete")
        results = []
        published = []
        with self._lock:
            for row in rows:
                req = DeleteRequest.from_wire(row)
                stored = self._docs.get(req.id)
                if stored is None:
                    results.append(StatusRow(True, "Already deleted", req.id, req.version).to_wire())
                    continue
                if stored.version != req.version:
                    results.append(StatusRow(False, "Version mismatch", req.id, stored.version).to_wire())
                    continue
                del self._docs[req.id]
                self._blobs.pop(req.id, None)
                results.append(StatusRow(True, "", req.id, req.version).to_wire())
                published.append(self._notification(NotificationEventType.DOC_DELETED, stored, device))
            self._persist()
        for notification in published:
            self._publish(notification)
        return results

    def get_blob(self, url: str) -> bytes:
        self._record("get_blob")
        with self._lock:
            slot = self._redeem(url, "get")
            return self._blobs.get(slot.node_id, b"")

    def put_blob(self, url: str, content: bytes) -> None:
        self._record("put_blob")
        with self._lock:
            slot = self._redeem(url, "put")
            self._staged[(slot.node_id, slot.version)] = bytes(content)

    def subscribe(self) -> MemoryChannel:
        self._record("subscribe")
        channel = MemoryChannel(self)
        with self._lock:
            self._channels.append(channel)
        return channel

    # Internals

    def _record(self, call: str) -> None:
        if not self.online:
            raise TransportFailure(f"{call}: server unreachable")
        self.calls.append(call)

    def _issue(self, node_id: str, version: int, kind: str) -> str:
        token = secrets.token_hex(16)
        self._slots[token] = _Slot(node_id, version, self._clock() + self.url_ttl, kind)
        return token

    def _redeem(self, url: str, kind: str) -> _Slot:
        token = url.rsplit("/", 1)[-1]
        slot = self._slots.pop(token, None)
        if slot is None or slot.kind != kind:
            raise TransportFailure(f"Unknown or already used URL: {url}", retryable=kind == "get")
        if self._clock() > slot.expires_at:
            raise TransportFailure(f"URL expired: {url}", retryable=kind == "get")
        return slot

    def _expiry(self) -> str:
        return str(int((time.time() + self.url_ttl) * 1000))

    def _notification(self, event: NotificationEventType, record: DocRecord, device: str) -> Notification:
        return Notification(
            event=event,
            id=record.id,
            parent=record.parent,
            kind=record.kind,
            version=record.version,
            name=record.name,
            bookmarked=record.bookmarked,
            source_device_id=device,
            publish_time=now_millis(),
        )

    def _publish(self, notification: Notification) -> None:
        self.inject(notification.to_wire())

    def _unsubscribe(self, channel: MemoryChannel) -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)

    def _persist(self) -> None:
        """Hook for subclasses that keep the service state on disk."""


class MemoryTransport(Transport):
    """Transport bound to one device talking to a MemoryServer."""

    def __init__(self, server: MemoryServer, device_id: str = ""):
        self.server = server
        self.device_id = device_id

    def discover(self) -> str:
        return self.server.discover()

    def fetch_docs(self, ids: Optional[list[str]] = None) -> list[dict[str, Any]]:
        return self.server.fetch_docs(ids)

    def request_blob_url(self, node_id: str) -> dict[str, Any]:
        return self.server.request_blob_url(node_id)

    def request_upload(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return self.server.request_upload(rows, self.device_id)

    def update_status(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return self.server.update_status(rows, self.device_id)

    def delete(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return self.server.delete(rows, self.device_id)

    def get_blob(self, url: str) -> bytes:
        return self.server.get_blob(url)

    def put_blob(self, url: str, content: bytes) -> None:
        self.server.put_blob(url, content)

    def open_notifications(self) -> NotificationChannel:
        return self.server.subscribe()


def seed_record(
    node_id: str,
    version: int,
    *,
    name: str = "",
    parent: str = "",
    kind: NodeKind = NodeKind.DOCUMENT,
    pinned: bool = False,
) -> DocRecord:
    """Build a stored record for MemoryServer.seed."""
    return DocRecord(
        id=node_id,
        version=version,
        kind=kind,
        parent=parent,
        name=name or node_id,
        bookmarked=pinned,
        modified_client=now_millis(),
    )
