"""Tests for PaymentsConfig validation and construction."""

from decimal import Decimal

import pytest

from receivables_config import get_active_config
from receivables_engines.allocation import AllocationPolicy
from receivables_modules.payments.config import PaymentsConfig


class TestPaymentsConfig:
    """Settings validation."""

    def test_defaults(self):
        config = PaymentsConfig.with_defaults()

        assert config.currency == "KES"
        assert config.default_tax_rate == Decimal("16")
        assert config.policy == AllocationPolicy.DUE_DATE
        assert config.allow_overpayment is True

    def test_currency_normalized(self):
        assert PaymentsConfig(currency="usd").currency == "USD"

    @pytest.mark.parametrize("settings", [
        {"currency": "ZZZ"},
        {"default_tax_rate": Decimal("-1")},
        {"default_tax_rate": Decimal("101")},
        {"default_tax_rate": 16.0},
        {"allocation_policy": "largest_first"},
        {"receipt_number_prefix": " "},
        {"receipt_number_width": 0},
    ])
    def test_invalid_settings_rejected(self, settings):
        with pytest.raises(ValueError):
            PaymentsConfig(**settings)

    def test_receipt_number_format(self):
        config = PaymentsConfig(receipt_number_prefix="RCT", receipt_number_width=4)
        assert config.format_receipt_number(42) == "RCT-0042"

    def test_from_dict_converts_rate(self):
        config = PaymentsConfig.from_dict({"currency": "USD", "default_tax_rate": "8.25"})
        assert config.default_tax_rate == Decimal("8.25")

    def test_from_config_set(self):
        """The packaged default set produces the default settings."""
        config = PaymentsConfig.from_config_set(get_active_config())

        assert config.currency == "KES"
        assert config.default_tax_rate == Decimal("16")
        assert config.format_receipt_number(1) == "RCP-000001"
