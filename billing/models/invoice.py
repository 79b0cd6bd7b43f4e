"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. Tax rate is basis points (10000 = 100%).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from billing import money
from billing.models.line_item import LineItem, LineItemCreate

INVOICE_NUMBER_PATTERN = r"^INV-\d{6}-\d{3,}$"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceTotals(BaseModel):
    """Subtotal, tax and total computed from a set of line items."""

    subtotal_cents: int
    tax_amount_cents: int
    total_amount_cents: int

    model_config = {"frozen": True}


class InvoiceDraft(BaseModel):
    """
    Invoice being edited, before it has a number.

    Drafts are immutable. Builder operations return a new draft and leave
    the original untouched.
    """

    patient_id: UUID | None = None
    invoice_date: date
    due_date: date
    line_items: tuple[LineItem, ...] = ()
    notes: str | None = Field(None, max_length=2000)

    model_config = {"frozen": True}


class InvoiceCreate(BaseModel):
    """Request payload for creating an invoice in one step."""

    patient_id: UUID | None = None
    invoice_date: date
    due_date: date | None = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    line_items: list[LineItemCreate] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=2000)


class Invoice(BaseModel):
    """
    Full invoice entity as stored.

    Validated on construction so rows loaded from storage with inconsistent
    totals are rejected instead of trusted.
    """

    id: UUID
    invoice_number: str = Field(..., pattern=INVOICE_NUMBER_PATTERN)
    patient_id: UUID
    invoice_date: date
    due_date: date
    line_items: list[LineItem] = Field(..., min_length=1)
    subtotal_cents: int = Field(..., ge=0)
    tax_rate_bps: int = Field(0, ge=0)
    tax_amount_cents: int = Field(0, ge=0)
    total_amount_cents: int = Field(..., ge=0)
    amount_paid_cents: int = Field(0, ge=0)
    status: InvoiceStatus
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_totals(self) -> "Invoice":
        """Reject invoices whose stored totals disagree with their line items."""
        subtotal = sum(item.total_cents for item in self.line_items)
        if self.subtotal_cents != subtotal:
            raise ValueError(
                f"subtotal_cents {self.subtotal_cents} does not match line items ({subtotal})"
            )

        tax = money.percentage(self.subtotal_cents, self.tax_rate_bps)
        if self.tax_amount_cents != tax:
            raise ValueError(
                f"tax_amount_cents {self.tax_amount_cents} does not match rate ({tax})"
            )

        if self.total_amount_cents != self.subtotal_cents + self.tax_amount_cents:
            raise ValueError("total_amount_cents must equal subtotal_cents + tax_amount_cents")

        if self.due_date < self.invoice_date:
            raise ValueError("due_date cannot be before invoice_date")

        return self

    @property
    def balance_due_cents(self) -> int:
        """Remaining amount to be paid in cents."""
        return self.total_amount_cents - self.amount_paid_cents

    @property
    def total_amount(self) -> Decimal:
        """Total amount in major units for display."""
        return money.to_decimal(self.total_amount_cents)

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID
