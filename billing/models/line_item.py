"""Line item domain models.

All prices are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents.
"""

from datetime import date
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, computed_field

from billing import money


class LineItemCreate(BaseModel):
    """Data supplied for one invoice line."""

    description: str = Field("", max_length=500)
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(0, ge=0)
    service_date: date | None = None


class LineItem(BaseModel):
    """
    One billed service on an invoice.

    total_cents is always quantity * unit_price_cents. It is derived, never
    stored independently, so it cannot drift from its inputs.
    """

    id: UUID = Field(default_factory=uuid4)
    description: str = Field("", max_length=500)
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(0, ge=0)
    service_date: date | None = None

    model_config = {"from_attributes": True, "frozen": True}

    @computed_field
    @property
    def total_cents(self) -> int:
        return money.multiply(self.unit_price_cents, self.quantity)
