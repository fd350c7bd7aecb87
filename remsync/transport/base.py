# remsync Transport Interface
# Request/response operations the sync engine consumes from the storage service

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any


class NotificationChannel(ABC):
    """
    A long-lived push connection.

    Iterating yields raw notification records in receipt order. Iteration
    ends when the channel is closed and raises NotificationChannelLost when
    the connection drops.
    """

    @abstractmethod
    def __iter__(self) -> Iterator[dict[str, Any]]:
        """Yield notification records as they arrive."""

    @abstractmethod
    def close(self) -> None:
        """Close the connection. Safe to call more than once."""


class Transport(ABC):
    """
    Abstract storage service collaborator.

    Every call speaks wire records (lists of dicts with the service's field
    names). Implementations raise TransportFailure for network problems and
    PersistentDiscoveryFailure when no endpoint can be found.
    """

    @abstractmethod
    def discover(self) -> str:
        """Locate the storage endpoint and return its host."""

    @abstractmethod
    def fetch_docs(self, ids: list[str] | None = None) -> list[dict[str, Any]]:
        """List nodes, optionally filtered to the given ids."""

    @abstractmethod
    def request_blob_url(self, node_id: str) -> dict[str, Any]:
        """Get a one-time download URL for a node's blob."""

    @abstractmethod
    def request_upload(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Request upload slots."""

    @abstractmethod
    def update_status(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Complete uploads by sending node metadata."""

    @abstractmethod
    def delete(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Delete nodes keyed by id and version."""

    @abstractmethod
    def get_blob(self, url: str) -> bytes:
        """Download a blob from a pre-signed URL."""

    @abstractmethod
    def put_blob(self, url: str, content: bytes) -> None:
        """Upload a blob to a pre-signed URL."""

    @abstractmethod
    def open_notifications(self) -> NotificationChannel:
        """Open the push-notification connection."""
