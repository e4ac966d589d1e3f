"""Tests for YAML configuration loading and get_active_config()."""

from datetime import date
from pathlib import Path

import pytest

from receivables_config import get_active_config
from receivables_config.loader import compute_checksum, parse_config_set, parse_date


def write_set(root: Path, name: str, body: str) -> Path:
    set_dir = root / name
    set_dir.mkdir(parents=True)
    path = set_dir / "root.yaml"
    path.write_text(body)
    return path


def set_yaml(config_id: str, version: int = 1, legal_entity: str = "acme",
             effective_from: str = "2024-01-01", effective_to: str | None = None) -> str:
    lines = [
        f"config_id: {config_id}",
        f"version: {version}",
        "scope:",
        f"  legal_entity: {legal_entity}",
        "  jurisdiction: US",
        "  currency: USD",
        f'  effective_from: "{effective_from}"',
    ]
    if effective_to:
        lines.append(f'  effective_to: "{effective_to}"')
    lines += [
        "payments:",
        "  allow_overpayment: false",
        "tax:",
        '  default_rate: "8.25"',
    ]
    return "\n".join(lines) + "\n"


class TestDefaultConfig:
    """The packaged default set."""

    def test_default_set_loads(self):
        config = get_active_config()

        assert config.config_id == "RECEIVABLES-DEFAULT"
        assert config.scope.currency == "KES"
        assert config.payments["allocation_policy"] == "due_date"
        assert config.tax["default_rate"] == "16"
        assert len(config.checksum) == 64

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_config_trace_logged(self, captured_logs):
        get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "RECEIVABLES_CONFIG_TRACE"]
        assert traces[0]["config_set_id"] == "RECEIVABLES-DEFAULT"


class TestSetSelection:
    """Scope and date matching across several sets."""

    def test_highest_version_wins(self, tmp_path):
        write_set(tmp_path, "v1", set_yaml("ACME", version=1))
        write_set(tmp_path, "v2", set_yaml("ACME", version=2))

        assert get_active_config("acme", config_dir=tmp_path).version == 2

    def test_effective_dates_respected(self, tmp_path):
        write_set(tmp_path, "old", set_yaml("OLD", effective_from="2023-01-01", effective_to="2023-12-31"))
        write_set(tmp_path, "new", set_yaml("NEW", version=2, effective_from="2024-01-01"))

        config = get_active_config("acme", as_of_date=date(2023, 6, 1), config_dir=tmp_path)

        assert config.config_id == "OLD"

    def test_single_set_fallback(self, tmp_path, captured_logs):
        """With only one set available, it is used for any entity."""
        write_set(tmp_path, "only", set_yaml("ONLY"))

        config = get_active_config("someone-else", config_dir=tmp_path)

        assert config.config_id == "ONLY"
        assert any(r["message"] == "config_scope_fallback" for r in captured_logs())

    def test_single_set_fallback_respects_dates(self, tmp_path):
        """The lone set is not used outside its effective dates."""
        write_set(tmp_path, "only", set_yaml("ONLY", effective_from="2024-01-01", effective_to="2024-12-31"))

        with pytest.raises(FileNotFoundError):
            get_active_config("someone-else", as_of_date=date(2025, 3, 1), config_dir=tmp_path)

    def test_no_match_raises(self, tmp_path):
        write_set(tmp_path, "a", set_yaml("A"))
        write_set(tmp_path, "b", set_yaml("B", legal_entity="beta"))

        with pytest.raises(FileNotFoundError):
            get_active_config("gamma", config_dir=tmp_path)

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(config_dir=tmp_path / "nope")


class TestParsing:
    """Structural validation."""

    def test_bad_version_rejected(self):
        data = {
            "config_id": "X",
            "version": 0,
            "scope": {"legal_entity": "x", "jurisdiction": "US", "currency": "USD",
                      "effective_from": "2024-01-01"},
        }
        with pytest.raises(ValueError):
            parse_config_set(data)

    def test_section_must_be_mapping(self):
        data = {
            "config_id": "X",
            "scope": {"legal_entity": "x", "jurisdiction": "US", "currency": "USD",
                      "effective_from": "2024-01-01"},
            "payments": ["not", "a", "mapping"],
        }
        with pytest.raises(ValueError):
            parse_config_set(data)

    def test_parse_date(self):
        assert parse_date("2024-02-29") == date(2024, 2, 29)
        assert parse_date(date(2024, 1, 1)) == date(2024, 1, 1)
        with pytest.raises(ValueError):
            parse_date(20240101)

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
