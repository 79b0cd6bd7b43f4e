"""
Line item arithmetic.

A line total is quantity * unit price in whole cents. It is recomputed from
those two inputs whenever either changes; description and service date
never affect it.
"""

from datetime import date

from billing import money
from billing.exceptions import InvalidAmount, InvalidQuantity
from billing.models import LineItem, LineItemCreate


def validate_quantity(quantity) -> int:
    """
    Raises:
        InvalidQuantity: If quantity is not a whole number >= 1
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(f"Quantity must be a whole number, got {quantity!r}")
    if quantity < 1:
        raise InvalidQuantity(f"Quantity must be at least 1, got {quantity}")
    return quantity


def validate_unit_price(unit_price_cents) -> int:
    """
    Raises:
        InvalidAmount: If price is negative or not whole cents
    """
    if isinstance(unit_price_cents, bool) or not isinstance(unit_price_cents, int):
        raise InvalidAmount(f"Unit price must be a whole number of cents, got {unit_price_cents!r}")
    if unit_price_cents < 0:
        raise InvalidAmount(f"Unit price cannot be negative, got {unit_price_cents}")
    return unit_price_cents


def line_total(quantity: int, unit_price_cents: int) -> int:
    """Total for one line in cents."""
    quantity = validate_quantity(quantity)
    unit_price_cents = validate_unit_price(unit_price_cents)
    return money.multiply(unit_price_cents, quantity)


def build_line_item(data: LineItemCreate) -> LineItem:
    """Validate a line item request and build the item."""
    validate_quantity(data.quantity)
    validate_unit_price(data.unit_price_cents)
    return LineItem(
        description=data.description,
        quantity=data.quantity,
        unit_price_cents=data.unit_price_cents,
        service_date=data.service_date,
    )


def blank_line_item() -> LineItem:
    """Zero-valued line: quantity 1 at no charge."""
    return LineItem(description="", quantity=1, unit_price_cents=0)


def update_line_item(
    item: LineItem,
    *,
    description: str | None = None,
    quantity: int | None = None,
    unit_price_cents: int | None = None,
    service_date: date | None = None,
) -> LineItem:
    """
    Return a copy of the item with the given fields changed.

    The total follows from the new quantity and price.
    """
    updates = {}
    if description is not None:
        updates["description"] = description
    if quantity is not None:
        updates["quantity"] = validate_quantity(quantity)
    if unit_price_cents is not None:
        updates["unit_price_cents"] = validate_unit_price(unit_price_cents)
    if service_date is not None:
        updates["service_date"] = service_date

    if not updates:
        return item

    return item.model_copy(update=updates)
