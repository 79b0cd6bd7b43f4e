"""Billing configuration."""

from pydantic import BaseModel, Field, field_validator

from billing.models.payment import PaymentMethod


class BillingConfig(BaseModel):
    """
    Practice-level billing settings.

    Amounts and rates use the same integer units as the ledger: tax rate is
    basis points, so 8.5% is 850.
    """

    currency: str = Field(
        default="USD",
        description="ISO 4217 code used for display formatting",
        min_length=3,
        max_length=3,
    )
    tax_rate_bps: int = Field(
        default=850,
        description="Tax applied to every invoice subtotal",
        ge=0,
        le=10000,
    )
    payment_terms_days: int = Field(
        default=30,
        description="Default days between invoice date and due date",
        ge=0,
        le=365,
    )
    payment_methods: list[PaymentMethod] = Field(
        default_factory=lambda: list(PaymentMethod),
        description="Payment methods the practice accepts",
    )
    timezone: str = Field(
        default="UTC",
        description="IANA timezone used to decide what 'today' is for overdue checks",
    )
    sequence_retry_attempts: int = Field(
        default=3,
        description="Times to retry number allocation after a duplicate-number conflict",
        ge=1,
        le=10,
    )

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        return value.upper()


def load_billing_config() -> BillingConfig:
    """Practice billing settings from Vault (careledger/billing)."""
    from clients.vault_client import get_billing_settings

    return BillingConfig.model_validate(get_billing_settings())
