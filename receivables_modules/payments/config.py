"""
Payments Configuration Schema.

Defines the structure and defaults for payment settings.
Actual values are loaded from the active configuration set at runtime.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from receivables_config.schema import ReceivablesConfigSet
from receivables_engines.allocation import AllocationPolicy
from receivables_kernel.domain.currency import CurrencyRegistry
from receivables_kernel.logging_config import get_logger

logger = get_logger("modules.payments.config")


@dataclass
class PaymentsConfig:
    """
    Configuration schema for the payments module.

    Override at instantiation with company-specific values:

        config = PaymentsConfig(
            currency="USD",
            allow_overpayment=False,
        )
    """

    currency: str = "KES"

    # Tax shown on receipts
    default_tax_rate: Decimal = Decimal("16")

    # Receipt application
    allocation_policy: str = "due_date"  # "due_date", "invoice_date"
    allow_overpayment: bool = True
    apply_credit_on_account: bool = False

    # Receipt numbering
    receipt_number_prefix: str = "RCP"
    receipt_number_width: int = 6

    def __post_init__(self):
        if not CurrencyRegistry.is_valid(self.currency.upper()):
            raise ValueError(f"currency must be an ISO 4217 code, got '{self.currency}'")
        self.currency = self.currency.upper()

        if isinstance(self.default_tax_rate, float):
            raise ValueError("default_tax_rate must not be a float")
        self.default_tax_rate = Decimal(str(self.default_tax_rate))
        if self.default_tax_rate < 0:
            raise ValueError("default_tax_rate cannot be negative")
        if self.default_tax_rate > Decimal("100"):
            raise ValueError("default_tax_rate cannot exceed 100%")

        valid_policies = {p.value for p in AllocationPolicy}
        if self.allocation_policy not in valid_policies:
            raise ValueError(
                f"allocation_policy must be one of {sorted(valid_policies)}, "
                f"got '{self.allocation_policy}'"
            )

        if not self.receipt_number_prefix or not self.receipt_number_prefix.strip():
            raise ValueError("receipt_number_prefix cannot be empty")
        if self.receipt_number_width <= 0:
            raise ValueError("receipt_number_width must be positive")

        logger.info(
            "payments_config_initialized",
            extra={
                "currency": self.currency,
                "default_tax_rate": str(self.default_tax_rate),
                "allocation_policy": self.allocation_policy,
                "allow_overpayment": self.allow_overpayment,
                "apply_credit_on_account": self.apply_credit_on_account,
            },
        )

    @property
    def policy(self) -> AllocationPolicy:
        return AllocationPolicy(self.allocation_policy)

    def format_receipt_number(self, sequence: int) -> str:
        """RCP-000001 style receipt number for a sequence value."""
        return f"{self.receipt_number_prefix}-{sequence:0{self.receipt_number_width}d}"

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the default settings."""
        logger.info("payments_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from database/file)."""
        logger.info(
            "payments_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "default_tax_rate" in data:
            data["default_tax_rate"] = Decimal(str(data["default_tax_rate"]))
        return cls(**data)

    @classmethod
    def from_config_set(cls, config_set: ReceivablesConfigSet) -> Self:
        """Build settings from a loaded configuration set."""
        data = {"currency": config_set.scope.currency, **config_set.payments}
        if "default_rate" in config_set.tax:
            data["default_tax_rate"] = config_set.tax["default_rate"]
        return cls.from_dict(data)
