"""Locate, interpolate and validate the hub's YAML configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from petrowise_hub.config.models import HubConfig

CONFIG_FILENAMES = (".petrowise.yaml", ".petrowise.yml")
CONFIG_ENV_VAR = "PETROWISE_CONFIG"

# ${NAME} or ${NAME:-fallback}
_ENV_VAR_PATTERN = re.compile(r"\$\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?::-([^}]*))?\}")


def _interpolate_env(value: str) -> str:
    """Substitute environment variables into *value*.

    An unset variable with no fallback is left as written so the validation
    error points at the placeholder.
    """

    def _replace(match: re.Match[str]) -> str:
        name, fallback = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        return fallback if fallback is not None else match.group(0)

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return _interpolate_env(data)
    if isinstance(data, dict):
        return {key: _interpolate_recursive(item) for key, item in data.items()}
    if isinstance(data, list):
        return [_interpolate_recursive(item) for item in data]
    return data


def find_config_file(start: Path | None = None) -> Path | None:
    """Resolve the config path.

    ``$PETROWISE_CONFIG`` wins when set; otherwise walk up from *start*
    (default cwd) for the first ``.petrowise.yaml`` or ``.petrowise.yml``.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        for name in CONFIG_FILENAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def load_config(path: Path | None = None) -> HubConfig:
    """Read *path* (or the discovered file), interpolate ``${VAR}`` and validate."""
    config_path = path or find_config_file()
    if config_path is None or not config_path.exists():
        raise FileNotFoundError(
            f"Could not find {CONFIG_FILENAMES[0]}. Copy .petrowise.yaml.example, "
            f"pass --path, or set {CONFIG_ENV_VAR}."
        )
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid configuration in {config_path}: top level must be a mapping")
    try:
        return HubConfig(**_interpolate_recursive(raw))
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration in {config_path}: {exc}") from exc


def load_config_or_default(path: Path | None = None) -> HubConfig:
    """Like load_config, but fall back to built-in defaults when no file exists."""
    try:
        return load_config(path)
    except FileNotFoundError:
        return HubConfig()
