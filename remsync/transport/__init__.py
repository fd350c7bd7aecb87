# remsync Transport Module
# Storage service interface, wire records and passive server implementations

from remsync.transport.base import NotificationChannel, Transport
from remsync.transport.client import NotificationStream, StorageClient, classify_rejection
from remsync.transport.directory import DirectoryServer
from remsync.transport.memory import MemoryServer, MemoryTransport, seed_record
from remsync.transport.retry import backoff_delays, with_retry
from remsync.transport.wire import (
    BlobUrl,
    CompletionRequest,
    DeleteRequest,
    DocRecord,
    Notification,
    NotificationEventType,
    StatusRow,
    UploadSlot,
    UploadSlotRequest,
)

__all__ = [
    # Interface
    "Transport",
    "NotificationChannel",
    # Client
    "StorageClient",
    "NotificationStream",
    "classify_rejection",
    "with_retry",
    "backoff_delays",
    # Servers
    "MemoryServer",
    "MemoryTransport",
    "DirectoryServer",
    "seed_record",
    # Wire
    "DocRecord",
    "BlobUrl",
    "UploadSlotRequest",
    "UploadSlot",
    "CompletionRequest",
    "DeleteRequest",
    "StatusRow",
    "Notification",
    "NotificationEventType",
]
