# remsync Storage Client
# Typed, retrying wrapper around a Transport

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from typing import Any, Optional

from remsync.config.schema import RetryConfig
from remsync.sync.errors import (
    NotificationChannelLost,
    PersistentDiscoveryFailure,
    QuotaOrServerReject,
    RemsyncError,
    TransportFailure,
    VersionConflict,
)
from remsync.sync.index import RemoteSnapshot
from remsync.transport.base import NotificationChannel, Transport
from remsync.transport.retry import with_retry
from remsync.transport.wire import (
    BlobUrl,
    CompletionRequest,
    DeleteRequest,
    DocRecord,
    Notification,
    StatusRow,
    UploadSlot,
    UploadSlotRequest,
)


def classify_rejection(node_id: str, expected: int, version: int, message: str) -> RemsyncError:
    """
    Turn a failed per-node row into an error.

    The server reports its stored version on failure; when that differs
    from the version the request was keyed on, it's a version conflict.
    """
    if version != expected:
        return VersionConflict(node_id, expected, version)
    return QuotaOrServerReject(message or "Rejected by server", node_id)


class StorageClient:
    """
    Storage service operations as the sync engine uses them.

    Idempotent reads, upload-slot requests, blob transfers and deletes are
    retried with backoff. Completions are sent once.
    """

    def __init__(
        self,
        transport: Transport,
        retry: Optional[RetryConfig] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize storage client.

        Args:
            transport: Raw wire-level collaborator.
            retry: Retry settings. Defaults to RetryConfig().
            sleep: Wait function used between retries.
        """
        self.transport = transport
        self.retry = retry or RetryConfig()
        self._sleep = sleep
        self.host: Optional[str] = None

    def _retrying(self, func):
        return with_retry(func, self.retry, sleep=self._sleep)

    def discover(self) -> str:
        """
        Locate the storage endpoint.

        Raises:
            PersistentDiscoveryFailure: If no endpoint answers after retries.
        """
        try:
            self.host = self._retrying(self.transport.discover)
        except TransportFailure as e:
            raise PersistentDiscoveryFailure(f"Storage discovery failed: {e.message}") from e
        if not self.host:
            raise PersistentDiscoveryFailure("Storage discovery returned no host")
        return self.host

    def fetch_snapshot(self, ids: Optional[list[str]] = None) -> RemoteSnapshot:
        """
        Fetch a full or id-filtered listing.

        Rows flagged unsuccessful (e.g. an id the server doesn't know) are
        left out of the snapshot.
        """
        scope = sorted(ids) if ids is not None else None
        rows = self._retrying(lambda: self.transport.fetch_docs(scope))
        records = [DocRecord.from_wire(row) for row in rows]
        return RemoteSnapshot((r.to_remote_node() for r in records if r.success), scope=scope)

    def download_blob(self, node_id: str) -> bytes:
        """Fetch a node's blob. A fresh one-time URL is requested per attempt."""

        def attempt() -> bytes:
            blob_url = BlobUrl.from_wire(self.transport.request_blob_url(node_id))
            if not blob_url.url:
                raise QuotaOrServerReject("Server returned no download URL", node_id)
            return self.transport.get_blob(blob_url.url)

        return self._retrying(attempt)

    def request_upload_slots(self, requests: list[UploadSlotRequest]) -> list[UploadSlot]:
        rows = self._retrying(lambda: self.transport.request_upload([r.to_wire() for r in requests]))
        return [UploadSlot.from_wire(row) for row in rows]

    def put_blob(self, url: str, content: bytes) -> None:
        self._retrying(lambda: self.transport.put_blob(url, content))

    def complete_uploads(self, requests: list[CompletionRequest]) -> list[StatusRow]:
        rows = self.transport.update_status([r.to_wire() for r in requests])
        return [StatusRow.from_wire(row) for row in rows]

    def delete(self, requests: list[DeleteRequest]) -> list[StatusRow]:
        rows = self._retrying(lambda: self.transport.delete([r.to_wire() for r in requests]))
        return [StatusRow.from_wire(row) for row in rows]

    def open_notifications(
        self, on_malformed: Optional[Callable[[Any, Exception], None]] = None
    ) -> NotificationStream:
        """
        Open the push channel.

        Args:
            on_malformed: Called with each record that isn't a valid notification.

        Raises:
            NotificationChannelLost: If the connection can't be established.
        """
        try:
            channel = self.transport.open_notifications()
        except TransportFailure as e:
            raise NotificationChannelLost(f"Unable to open notification channel: {e.message}") from e
        return NotificationStream(channel, on_malformed)


class NotificationStream:
    """
    Parsed view over a notification channel.

    A record that doesn't parse is counted, handed to ``on_malformed`` and
    skipped; the stream only ends when the channel closes or drops.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        on_malformed: Optional[Callable[[Any, Exception], None]] = None,
    ):
        self.channel = channel
        self.on_malformed = on_malformed
        self.malformed = 0

    def __iter__(self) -> Iterator[Notification]:
        try:
            for record in self.channel:
                try:
                    notification = Notification.from_wire(record)
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    self.malformed += 1
                    if self.on_malformed is not None:
                        self.on_malformed(record, e)
                    continue
                yield notification
        except TransportFailure as e:
            raise NotificationChannelLost(f"Notification channel dropped: {e.message}") from e

    def close(self) -> None:
        self.channel.close()
