"""Payment domain models.

Amounts are stored in cents (integer). Payments reference an invoice but do
not own it.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

PAYMENT_NUMBER_PATTERN = r"^PAY-\d{6}-\d{3,}$"


class PaymentMethod(str, Enum):
    """How the patient paid."""

    CASH = "cash"
    CHECK = "check"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    INSURANCE = "insurance"


class PaymentStatus(str, Enum):
    """Payment processing status. Only COMPLETED counts toward the invoice."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentCreate(BaseModel):
    """Data required to record a payment against an invoice."""

    invoice_id: UUID
    amount_cents: int
    payment_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH
    status: PaymentStatus = PaymentStatus.PENDING
    reference_number: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=2000)


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    payment_number: str = Field(..., pattern=PAYMENT_NUMBER_PATTERN)
    invoice_id: UUID
    patient_id: UUID
    amount_cents: int = Field(..., gt=0)
    payment_date: date
    payment_method: PaymentMethod
    status: PaymentStatus
    reference_number: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED
