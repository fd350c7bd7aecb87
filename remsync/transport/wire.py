# remsync Wire Records
# Request/response rows exchanged with the storage service, field names as on the wire

from dataclasses import dataclass
from enum import Enum
from typing import Any

from remsync.sync.node import ROOT, NodeKind, RemoteNode


class NotificationEventType(str, Enum):
    """Kinds of live notification."""

    DOC_ADDED = "DocAdded"
    DOC_DELETED = "DocDeleted"


@dataclass(frozen=True)
class DocRecord:
    """One row of a docs listing."""

    id: str
    version: int
    kind: NodeKind = NodeKind.DOCUMENT
    parent: str = ROOT
    name: str = ""
    modified_client: str = ""
    bookmarked: bool = False
    current_page: int = 0
    blob_url_get: str = ""
    blob_url_get_expires: str = ""
    success: bool = True
    message: str = ""

    def to_wire(self) -> dict[str, Any]:
        return {
            "Success": self.success,
            "Message": self.message,
            "ID": self.id,
            "Version": self.version,
            "BlobURLGet": self.blob_url_get,
            "BlobURLGetExpires": self.blob_url_get_expires,
            "ModifiedClient": self.modified_client,
            "Type": self.kind.value,
            "VissibleName": self.name,
            "CurrentPage": self.current_page,
            "Bookmarked": self.bookmarked,
            "Parent": self.parent,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "DocRecord":
        return cls(
            id=data["ID"],
            version=int(data.get("Version", 0)),
            kind=NodeKind(data.get("Type", NodeKind.DOCUMENT.value)),
            parent=data.get("Parent", ROOT),
            name=data.get("VissibleName", ""),
            modified_client=data.get("ModifiedClient", ""),
            bookmarked=bool(data.get("Bookmarked", False)),
            current_page=int(data.get("CurrentPage", 0)),
            blob_url_get=data.get("BlobURLGet", ""),
            blob_url_get_expires=data.get("BlobURLGetExpires", ""),
            success=bool(data.get("Success", True)),
            message=data.get("Message", ""),
        )

    def to_remote_node(self) -> RemoteNode:
        return RemoteNode(
            id=self.id,
            version=self.version,
            kind=self.kind,
            parent=self.parent,
            name=self.name,
            pinned=self.bookmarked,
            current_page=self.current_page,
            last_modified=self.modified_client,
        )


@dataclass(frozen=True)
class BlobUrl:
    """A one-time download URL."""

    url: str
    expires: str

    def to_wire(self) -> dict[str, Any]:
        return {"BlobURLGet": self.url, "BlobURLGetExpires": self.expires}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "BlobUrl":
        return cls(url=data.get("BlobURLGet", ""), expires=data.get("BlobURLGetExpires", ""))


@dataclass(frozen=True)
class UploadSlotRequest:
    """Request for a pre-signed upload URL."""

    id: str
    parent: str
    kind: NodeKind
    version: int

    def to_wire(self) -> dict[str, Any]:
        return {"ID": self.id, "Parent": self.parent, "Type": self.kind.value, "Version": self.version}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "UploadSlotRequest":
        return cls(
            id=data["ID"],
            parent=data.get("Parent", ROOT),
            kind=NodeKind(data.get("Type", NodeKind.DOCUMENT.value)),
            version=int(data.get("Version", 0)),
        )


@dataclass(frozen=True)
class UploadSlot:
    """Response to an upload slot request."""

    success: bool
    message: str
    id: str
    version: int
    put_url: str = ""
    put_expires: str = ""

    def to_wire(self) -> dict[str, Any]:
        return {
            "Success": self.success,
            "Message": self.message,
            "ID": self.id,
            "Version": self.version,
            "BlobURLPut": self.put_url,
            "BlobURLPutExpires": self.put_expires,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "UploadSlot":
        return cls(
            success=bool(data.get("Success", False)),
            message=data.get("Message", ""),
            id=data.get("ID", ""),
            version=int(data.get("Version", 0)),
            put_url=data.get("BlobURLPut", ""),
            put_expires=data.get("BlobURLPutExpires", ""),
        )


@dataclass(frozen=True)
class CompletionRequest:
    """Metadata sent once an upload's blob is in place (update-status)."""

    id: str
    parent: str
    kind: NodeKind
    version: int
    name: str
    bookmarked: bool = False
    current_page: int = 0
    modified_client: str = ""

    def to_wire(self) -> dict[str, Any]:
        return {
            "ID": self.id,
            "Parent": self.parent,
            "Type": self.kind.value,
            "Version": self.version,
            "Bookmarked": self.bookmarked,
            "CurrentPage": self.current_page,
            "VissibleName": self.name,
            "ModifiedClient": self.modified_client,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "CompletionRequest":
        return cls(
            id=data["ID"],
            parent=data.get("Parent", ROOT),
            kind=NodeKind(data.get("Type", NodeKind.DOCUMENT.value)),
            version=int(data.get("Version", 0)),
            name=data.get("VissibleName", ""),
            bookmarked=bool(data.get("Bookmarked", False)),
            current_page=int(data.get("CurrentPage", 0)),
            modified_client=data.get("ModifiedClient", ""),
        )


@dataclass(frozen=True)
class DeleteRequest:
    """A delete keyed by id and the version the client believes is stored."""

    id: str
    version: int

    def to_wire(self) -> dict[str, Any]:
        return {"ID": self.id, "Version": self.version}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "DeleteRequest":
        return cls(id=data["ID"], version=int(data.get("Version", 0)))


@dataclass(frozen=True)
class StatusRow:
    """Per-node outcome of a completion or delete request."""

    success: bool
    message: str
    id: str
    version: int

    def to_wire(self) -> dict[str, Any]:
        return {"Success": self.success, "Message": self.message, "ID": self.id, "Version": self.version}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "StatusRow":
        return cls(
            success=bool(data.get("Success", False)),
            message=data.get("Message", ""),
            id=data.get("ID", ""),
            version=int(data.get("Version", 0)),
        )


@dataclass(frozen=True)
class Notification:
    """A live change notification."""

    event: NotificationEventType
    id: str
    parent: str = ROOT
    kind: NodeKind = NodeKind.DOCUMENT
    version: int = 0
    name: str = ""
    bookmarked: bool = False
    source_device_id: str = ""
    source_device_desc: str = ""
    user_id: str = ""
    message_id: str = ""
    publish_time: str = ""
    subscription: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Render the service envelope. Scalar attributes travel as strings."""
        return {
            "message": {
                "attributes": {
                    "auth0UserID": self.user_id,
                    "bookmarked": "true" if self.bookmarked else "false",
                    "event": self.event.value,
                    "id": self.id,
                    "parent": self.parent,
                    "sourceDeviceDesc": self.source_device_desc,
                    "sourceDeviceID": self.source_device_id,
                    "type": self.kind.value,
                    "version": str(self.version),
                    "vissibleName": self.name,
                },
                "messageId": self.message_id,
                "message_id": self.message_id,
                "publishTime": self.publish_time,
                "publish_time": self.publish_time,
            },
            "subscription": self.subscription,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Notification":
        """Parse either the service envelope or a flat attribute record."""
        message = data.get("message")
        attributes = message.get("attributes", {}) if message else data
        message = message or {}

        bookmarked = attributes.get("bookmarked", False)
        if isinstance(bookmarked, str):
            if bookmarked not in ("true", "false"):
                raise ValueError(f"Invalid bookmarked value: {bookmarked!r}")
            bookmarked = bookmarked == "true"

        return cls(
            event=NotificationEventType(attributes["event"]),
            id=attributes["id"],
            parent=attributes.get("parent", ROOT),
            kind=NodeKind(attributes.get("type", NodeKind.DOCUMENT.value)),
            version=int(attributes.get("version", 0)),
            name=attributes.get("vissibleName", ""),
            bookmarked=bool(bookmarked),
            source_device_id=attributes.get("sourceDeviceID", ""),
            source_device_desc=attributes.get("sourceDeviceDesc", ""),
            user_id=attributes.get("auth0UserID", ""),
            message_id=message.get("messageId", ""),
            publish_time=message.get("publishTime", ""),
            subscription=data.get("subscription", ""),
        )
