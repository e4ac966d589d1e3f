"""
Configuration Loader (``receivables_config.loader``).

Responsibility
--------------
Loads YAML configuration sets and parses them into typed
``receivables_config.schema`` dataclass instances. Runtime callers use
``receivables_config.get_active_config()`` instead of calling this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (dates, version)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from receivables_config.schema import ConfigScope, ReceivablesConfigSet


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (possibly empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_scope(data: dict[str, Any]) -> ConfigScope:
    """Parse a ConfigScope from a dict."""
    return ConfigScope(
        legal_entity=data["legal_entity"],
        jurisdiction=data["jurisdiction"],
        currency=data["currency"],
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config_set(data: dict[str, Any]) -> ReceivablesConfigSet:
    """
    Parse a full configuration set.

    Raises:
        KeyError: if ``config_id`` or ``scope`` is missing.
        ValueError: if ``version`` is not a positive integer or a section
            is not a mapping.
    """
    version = data.get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        raise ValueError(f"Configuration version must be a positive integer, got {version!r}")

    payments = data.get("payments") or {}
    tax = data.get("tax") or {}
    for name, section in (("payments", payments), ("tax", tax)):
        if not isinstance(section, dict):
            raise ValueError(f"Configuration section '{name}' must be a mapping")

    return ReceivablesConfigSet(
        config_id=data["config_id"],
        version=version,
        scope=parse_scope(data["scope"]),
        payments=dict(payments),
        tax=dict(tax),
        checksum=compute_checksum(data),
    )


def load_config_set(path: Path) -> ReceivablesConfigSet:
    """Load and parse the configuration set stored in ``path`` (a root.yaml)."""
    return parse_config_set(load_yaml_file(path))
