# remsync Directory Server
# The passive storage service with its state kept in a directory

from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from remsync.transport.memory import MemoryServer
from remsync.transport.wire import DocRecord
from remsync.utils.paths import atomic_write, ensure_dir, remove_file

DOCS_FILE = "docs.yaml"
BLOBS_DIR = "blobs"


class DirectoryServer(MemoryServer):
    """
    MemoryServer whose stored records and blobs survive the process.

    Layout:
        <path>/docs.yaml        stored records, wire field names
        <path>/blobs/<id>.blob  blob content

    Notifications only reach channels opened in the same process.
    """

    def __init__(self, path: Path, **kwargs: Any):
        """
        Initialize directory server.

        Args:
            path: Directory holding the service state. Created if missing.
            **kwargs: Passed to MemoryServer.
        """
        super().__init__(host=f"file://{Path(path).expanduser()}", **kwargs)
        self.path = ensure_dir(Path(path).expanduser())
        self.blobs_path = ensure_dir(self.path / BLOBS_DIR)
        self._load()

    def _blob_path(self, node_id: str) -> Path:
        return self.blobs_path / f"{node_id}.blob"

    def _load(self) -> None:
        docs_file = self.path / DOCS_FILE
        if not docs_file.exists():
            return

        with open(docs_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        for row in data.get("docs", []):
            record = DocRecord.from_wire(row)
            self._docs[record.id] = record
            blob_path = self._blob_path(record.id)
            self._blobs[record.id] = blob_path.read_bytes() if blob_path.exists() else b""

    def _persist(self) -> None:
        """Write records and blobs, removing blobs of deleted records."""
        with self._lock:
            data = {
                "updated": datetime.now().isoformat(),
                "docs": [self._docs[k].to_wire() for k in sorted(self._docs)],
            }
            atomic_write(
                self.path / DOCS_FILE,
                yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True),
            )

            for node_id, content in self._blobs.items():
                blob_path = self._blob_path(node_id)
                if not blob_path.exists() or blob_path.read_bytes() != content:
                    atomic_write(blob_path, content)

            for blob_path in self.blobs_path.glob("*.blob"):
                if blob_path.stem not in self._docs:
                    remove_file(blob_path)
