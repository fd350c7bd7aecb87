# remsync Default Configuration
# Full default configuration as Python dict and YAML generator

import copy
import uuid
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "device": {
        "id": "",
        "description": "desktop-linux",
    },
    "store": {
        "path": "~/.local/share/remsync/store",
    },
    "server": {
        "kind": "directory",
        "path": "~/.local/share/remsync/server",
    },
    "sync": {
        "conflict_policy": "download",
        "stale_server_policy": "clobber",
        "max_workers": 1,
        "suppress_self_notifications": True,
        "retry": {
            "attempts": 3,
            "backoff_base": 0.5,
            "backoff_max": 8.0,
        },
    },
    "output": {
        "verbose": False,
        "colored": True,
    },
}


def default_config_dict(device_id: str | None = None) -> dict[str, Any]:
    """Get a copy of the defaults with a device id filled in."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["device"]["id"] = device_id or str(uuid.uuid4())
    return config


def generate_default_config(device_id: str | None = None) -> str:
    """Generate default configuration as YAML string with comments."""
    header = """# remsync Configuration
#
# Synchronizes a local document store with a passive storage server.
#
# Conflict policies (server newer, local changes pending):
#   - download: keep the server copy, discard local changes
#   - upload:   keep the local copy, overwrite the server
#   - rename:   keep both, local copy is re-uploaded under a new id
#
# Stale server policies (server older than the device):
#   - clobber: overwrite the server with the local version
#   - rename:  re-upload local under a new id and download the server copy

"""
    return header + yaml.dump(
        default_config_dict(device_id), default_flow_style=False, sort_keys=False, allow_unicode=True
    )
