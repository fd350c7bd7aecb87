# remsync Utilities Module
# Helper functions for path handling and timestamps

from remsync.utils.paths import atomic_write, ensure_dir, remove_file
from remsync.utils.timestamps import format_millis, now_millis

__all__ = [
    # Paths
    "ensure_dir",
    "remove_file",
    "atomic_write",
    # Timestamps
    "now_millis",
    "format_millis",
]
