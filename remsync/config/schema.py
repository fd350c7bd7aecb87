# remsync Configuration Schema
# Pydantic models for YAML configuration validation

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class ConflictPolicy(str, Enum):
    """Resolution when the server is newer and the local copy has pending changes."""

    DOWNLOAD = "download"  # discard local changes
    UPLOAD = "upload"  # clobber the server copy
    RENAME = "rename"  # keep both: re-upload local under a new id, then download


class StaleServerPolicy(str, Enum):
    """Resolution when the server holds an older version than the device."""

    CLOBBER = "clobber"
    RENAME = "rename"


class ServerKind(str, Enum):
    """Passive server collaborator to talk to."""

    DIRECTORY = "directory"
    MEMORY = "memory"


class DeviceConfig(BaseModel):
    """Identity of this device."""

    id: str = Field(description="Device id, reported as sourceDeviceID on notifications")
    description: str = Field(default="desktop-linux", description="Device descriptor")


class StoreConfig(BaseModel):
    """Local store holding the Local Index and blobs."""

    path: str = Field(description="Local store directory")

    @field_validator("path")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ in path."""
        return str(Path(v).expanduser())


class ServerConfig(BaseModel):
    """Server collaborator settings."""

    kind: ServerKind = Field(default=ServerKind.DIRECTORY, description="Server implementation")
    path: str | None = Field(default=None, description="Directory for the directory server")

    @field_validator("path")
    @classmethod
    def expand_optional_path(cls, v: str | None) -> str | None:
        """Expand ~ in optional path."""
        if v is None:
            return None
        return str(Path(v).expanduser())


class RetryConfig(BaseModel):
    """Backoff for idempotent transport calls."""

    attempts: int = Field(default=3, ge=1, description="Total attempts per call")
    backoff_base: float = Field(default=0.5, ge=0, description="First delay in seconds")
    backoff_max: float = Field(default=8.0, ge=0, description="Delay cap in seconds")


class SyncConfig(BaseModel):
    """Reconciliation settings."""

    conflict_policy: ConflictPolicy = Field(
        default=ConflictPolicy.DOWNLOAD, description="Client behind and locally modified"
    )
    stale_server_policy: StaleServerPolicy = Field(
        default=StaleServerPolicy.CLOBBER, description="Server behind the client"
    )
    max_workers: int = Field(default=1, ge=1, description="Parallel transport operations")
    suppress_self_notifications: bool = Field(
        default=True, description="Ignore notifications caused by this device"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retry settings")


class OutputConfig(BaseModel):
    """Output configuration."""

    verbose: bool = Field(default=False, description="Enable verbose output")
    colored: bool = Field(default=True, description="Enable colored output")


class RemsyncConfig(BaseModel):
    """Root configuration model for remsync."""

    device: DeviceConfig = Field(description="Device identity")
    store: StoreConfig = Field(description="Local store")
    server: ServerConfig = Field(default_factory=ServerConfig, description="Server settings")
    sync: SyncConfig = Field(default_factory=SyncConfig, description="Sync settings")
    output: OutputConfig = Field(default_factory=OutputConfig, description="Output settings")
