"""
Configuration Loader (``erp_config.loader``).

Responsibility
--------------
Reads YAML configuration files and parses them into ``EngineConfig``.
Runtime callers go through ``erp_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A document that is not a mapping, or invalid values -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from erp_config.schema import EngineConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def load_config_file(path: Path | str) -> EngineConfig:
    """Parse one YAML file into an EngineConfig (defaults for missing keys)."""
    data = load_yaml_file(Path(path))
    config = EngineConfig.from_dict(data)
    return replace(config, checksum=compute_checksum(config.as_dict()))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (config identity)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

