"""
Configuration Schema (``receivables_config.schema``).

Frozen dataclasses describing a receivables configuration set as loaded
from YAML. Declarative data only; module-level settings objects (such as
``PaymentsConfig``) are built from these by their own modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any


@dataclass(frozen=True)
class ConfigScope:
    """Scope of applicability for a configuration set."""

    legal_entity: str
    jurisdiction: str
    currency: str
    effective_from: date
    effective_to: date | None = None

    def covers(self, as_of_date: date) -> bool:
        if as_of_date < self.effective_from:
            return False
        if self.effective_to is not None and as_of_date > self.effective_to:
            return False
        return True


@dataclass(frozen=True)
class ReceivablesConfigSet:
    """
    One versioned configuration set.

    Guarantees:
        - ``checksum`` is the SHA-256 of the canonical JSON form of the
          source YAML, so identical files always yield identical checksums.
    """

    config_id: str
    version: int
    scope: ConfigScope
    payments: dict[str, Any] = field(default_factory=dict)
    tax: dict[str, Any] = field(default_factory=dict)
    checksum: str = ""
