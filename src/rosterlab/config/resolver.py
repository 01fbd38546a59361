"""Configuration precedence resolution."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import RosterLabConfig

ENV_PREFIX = "ROSTERLAB__"


def resolve_with_precedence(
    *,
    defaults: RosterLabConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> RosterLabConfig:
    """Layer overrides on top of defaults: file, then environment, then CLI.

    Args:
        defaults: Baseline configuration.
        file_overrides: Values read from the YAML configuration file.
        env_overrides: Nested values extracted from ``ROSTERLAB__`` variables.
        cli_overrides: Dotted-key values supplied on the command line.

    Returns:
        RosterLabConfig: Validated configuration.

    Raises:
        ConfigError: If an override is malformed or fails validation.
    """
    merged = defaults.model_dump(mode="python")
    layers = (("file", file_overrides), ("environment", env_overrides), ("cli", cli_overrides))
    for source_name, layer in layers:
        if layer is not None:
            merged = merge_mappings(merged, expand_dotted(layer, source_name=source_name))

    try:
        return RosterLabConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: RosterLabConfig) -> Dict[str, str]:
    """Render the config as ``ROSTERLAB__SECTION__KEY`` environment mappings."""
    flat: Dict[str, str] = {}

    def _walk(path: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _walk([*path, str(key)], child)
            return
        if isinstance(value, list):
            rendered = yaml.safe_dump(value, default_flow_style=True).strip()
        elif value is None:
            rendered = "null"
        else:
            rendered = str(value)
        flat[ENV_PREFIX + "__".join(part.upper() for part in path)] = rendered

    _walk([], config.model_dump(mode="python"))
    return flat


def expand_dotted(source: Mapping[str, Any], *, source_name: str = "cli") -> dict[str, Any]:
    """Expand ``{"a.b": 1}`` style keys into nested dictionaries."""
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        set_nested(expanded, key.split("."), value, source_name=source_name)
    return expanded


def set_nested(
    target: dict[str, Any], path: list[str], value: Any, *, source_name: str = "cli"
) -> None:
    """Assign ``value`` at ``path`` inside ``target``, creating parents as needed.

    Raises:
        ConfigError: If an intermediate key already holds a scalar.
    """
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{source_name.capitalize()} override for {'.'.join(path)} "
                "conflicts with existing value."
            )
        node = child

    leaf = path[-1]
    if isinstance(value, MappingABC):
        current = node.get(leaf)
        base = current if isinstance(current, dict) else {}
        node[leaf] = merge_mappings(base, expand_dotted(value, source_name=source_name))
    else:
        node[leaf] = value


def merge_mappings(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Return a deep copy of ``base`` with ``overrides`` merged recursively."""
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        existing = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(existing, MappingABC):
            merged[key] = merge_mappings(existing, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = [
    "ENV_PREFIX",
    "resolve_with_precedence",
    "flatten_for_env",
    "expand_dotted",
    "set_nested",
    "merge_mappings",
]
