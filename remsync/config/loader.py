# remsync Configuration Loader
# Reads config.yaml, layers it over the defaults and validates it

import copy
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from remsync.config.defaults import DEFAULT_CONFIG, generate_default_config
from remsync.config.schema import RemsyncConfig, ServerKind

CONFIG_ENV_VAR = "REMSYNC_CONFIG"


def get_config_dir() -> Path:
    return Path.home() / ".config" / "remsync"


def get_config_path() -> Path:
    """Config file location; ``$REMSYNC_CONFIG`` wins over the per-user default."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> RemsyncConfig:
    """
    Load and validate the configuration.

    Keys missing from the file take their default values, so a file that
    only sets ``device.id`` is enough.

    Raises:
        FileNotFoundError: No file at ``config_path``.
        yaml.YAMLError: The file is not YAML.
        ValidationError: A value is out of range or of the wrong type.
    """
    path = config_path or get_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}\nRun 'remsync init' to create one.")

    return RemsyncConfig.model_validate(_with_defaults(_read_yaml(path) or {}))


def save_config(config: RemsyncConfig, config_path: Optional[Path] = None) -> Path:
    """Write ``config`` back as YAML and return where it went."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    # json mode turns the policy enums into their plain values
    document = config.model_dump(mode="json", exclude_none=True)
    path.write_text(
        yaml.safe_dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    return path


def ensure_config_exists(config_path: Optional[Path] = None) -> tuple[Path, bool]:
    """
    Write a commented default config with a fresh device id unless one exists.

    Returns:
        ``(path, created)``.
    """
    path = config_path or get_config_path()
    if path.exists():
        return path, False

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_default_config(), encoding="utf-8")
    return path, True


def validate_config_file(config_path: Optional[Path] = None) -> tuple[bool, list[str]]:
    """
    Check a config file and collect readable problems instead of raising.

    Returns:
        ``(is_valid, problems)``; schema problems are prefixed with their
        location, e.g. ``sync -> max_workers: ...``.
    """
    path = config_path or get_config_path()
    if not path.exists():
        return False, [f"Configuration file not found: {path}"]

    try:
        raw = _read_yaml(path)
    except yaml.YAMLError as e:
        return False, [f"Invalid YAML syntax: {e}"]
    if raw is None:
        return False, ["Configuration file is empty"]

    try:
        config = RemsyncConfig.model_validate(_with_defaults(raw))
    except ValidationError as e:
        return False, [f"{' -> '.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()]

    problems = []
    if not config.device.id:
        problems.append("Missing device id")
    if config.server.kind == ServerKind.DIRECTORY and not config.server.path:
        problems.append("Directory server requires 'server.path'")
    return not problems, problems


def _read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def _with_defaults(data: Any) -> Any:
    """Overlay ``data`` on a copy of the defaults, section by section."""
    if not isinstance(data, dict):
        # left for pydantic to reject
        return data
    return _overlay(copy.deepcopy(DEFAULT_CONFIG), data)


def _overlay(base: dict, extra: dict) -> dict:
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _overlay(base[key], value)
        else:
            base[key] = value
    return base
