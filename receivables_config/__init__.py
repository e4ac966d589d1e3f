"""
receivables_config -- single public entrypoint for receivables configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``. Ledger and service code receive the resulting
    settings as constructor parameters; they never read files or
    environment variables themselves.

Architecture position:
    Configuration -- YAML-driven settings. Sits above ``receivables_kernel``
    and below ``receivables_modules``. The kernel and engines MUST NEVER
    import from ``receivables_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic identity: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- no matching configuration set for the
      requested legal entity / date.
    - ``ValueError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``RECEIVABLES_CONFIG_TRACE`` log entry with the config_id, version,
    checksum and scope.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

from receivables_config.loader import load_config_set
from receivables_config.schema import ConfigScope, ReceivablesConfigSet
from receivables_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    legal_entity: str = "default",
    as_of_date: date | None = None,
    config_dir: Path | None = None,
) -> ReceivablesConfigSet:
    """The ONLY public configuration entrypoint.

    Args:
        legal_entity: Legal entity identifier for scope matching.
        as_of_date: Date for effective date filtering. ``None`` skips the
            date check.
        config_dir: Override path to configuration sets directory.
            Defaults to receivables_config/sets/.

    Returns:
        The matching ReceivablesConfigSet.

    Raises:
        FileNotFoundError: If no matching configuration set is found.
        ValueError: If a configuration set is malformed.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    config_set = _find_matching_config(sets_dir, legal_entity, as_of_date)

    _logger.info(
        "RECEIVABLES_CONFIG_TRACE",
        extra={
            "trace_type": "RECEIVABLES_CONFIG_TRACE",
            "config_set_id": config_set.config_id,
            "config_set_version": config_set.version,
            "checksum": config_set.checksum,
            "scope_legal_entity": config_set.scope.legal_entity,
            "scope_jurisdiction": config_set.scope.jurisdiction,
            "scope_currency": config_set.scope.currency,
        },
    )
    return config_set


def _find_matching_config(
    sets_dir: Path,
    legal_entity: str,
    as_of_date: date | None,
) -> ReceivablesConfigSet:
    """Find the configuration set for a scope and date.

    Scans every subdirectory of *sets_dir* holding a ``root.yaml``. Falls
    back to the only available set when exactly one exists and its
    effective dates cover ``as_of_date``.

    Raises:
        FileNotFoundError: If ``sets_dir`` does not exist or nothing matches.
    """
    if not sets_dir.is_dir():
        raise FileNotFoundError(f"Configuration sets directory not found: {sets_dir}")

    candidates: list[ReceivablesConfigSet] = []
    for subdir in sorted(sets_dir.iterdir()):
        root_file = subdir / "root.yaml"
        if subdir.is_dir() and root_file.exists():
            candidates.append(load_config_set(root_file))

    matches = [
        c for c in candidates
        if c.scope.legal_entity == legal_entity
        and (as_of_date is None or c.scope.covers(as_of_date))
    ]
    if matches:
        # Highest version wins when several sets share a scope
        return max(matches, key=lambda c: c.version)

    if len(candidates) == 1 and (as_of_date is None or candidates[0].scope.covers(as_of_date)):
        _logger.warning(
            "config_scope_fallback",
            extra={
                "requested_legal_entity": legal_entity,
                "config_set_id": candidates[0].config_id,
            },
        )
        return candidates[0]

    raise FileNotFoundError(
        f"No configuration set for legal entity {legal_entity!r}"
        + (f" on {as_of_date}" if as_of_date else "")
        + f" in {sets_dir}"
    )


__all__ = [
    "ConfigScope",
    "ReceivablesConfigSet",
    "get_active_config",
]
