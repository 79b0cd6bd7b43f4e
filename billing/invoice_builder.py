"""
Invoice builder.

Edits in-memory invoice drafts and turns a finished draft into an Invoice
ready for persistence. Everything here is pure: no storage access, no clock
reads unless a timestamp is not supplied.

Invoice numbers have the format INV-YYYYMM-### where ### is a sequence
allocated by storage per (year, month). This module only formats the number;
uniqueness under concurrent creation is the store's job.
"""

from datetime import date, datetime, timedelta
from typing import Iterable
from uuid import UUID, uuid4

from billing import money
from billing.calculator import blank_line_item, update_line_item
from billing.config import BillingConfig
from billing.exceptions import (
    InvalidStatusTransition,
    InvoiceValidationError,
    LastItemError,
    LineItemNotFound,
    ValidationReason,
)
from billing.models import (
    Invoice,
    InvoiceDraft,
    InvoiceStatus,
    InvoiceTotals,
    LineItem,
)
from utils.timezone import now_utc

_SUBMITTABLE_STATUSES = {InvoiceStatus.DRAFT, InvoiceStatus.SENT}


def format_sequence_number(prefix: str, year: int, month: int, sequence: int) -> str:
    """
    Format a human-readable document number: PREFIX-YYYYMM-###.

    Sequences above 999 widen instead of wrapping.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1-12, got {month}")
    if sequence < 1:
        raise ValueError(f"Sequence must be positive, got {sequence}")
    return f"{prefix}-{year:04d}{month:02d}-{sequence:03d}"


def generate_invoice_number(year: int, month: int, sequence: int) -> str:
    """generate_invoice_number(2025, 6, 7) -> "INV-202506-007"."""
    return format_sequence_number("INV", year, month, sequence)


def compute_totals(line_items: Iterable[LineItem], tax_rate_bps: int) -> InvoiceTotals:
    """
    Subtotal, tax and total for a set of line items.

    Tax is rounded half up to the cent. Deterministic for a given rate.
    """
    subtotal = 0
    for item in line_items:
        subtotal = money.add(subtotal, item.total_cents)

    tax = money.percentage(subtotal, tax_rate_bps)

    return InvoiceTotals(
        subtotal_cents=subtotal,
        tax_amount_cents=tax,
        total_amount_cents=money.add(subtotal, tax),
    )


class InvoiceBuilder:
    """Draft editing and submission at the configured tax rate."""

    def __init__(self, config: BillingConfig | None = None):
        self.config = config or BillingConfig()

    def new_draft(
        self,
        invoice_date: date,
        due_date: date | None = None,
        patient_id: UUID | None = None,
        notes: str | None = None,
    ) -> InvoiceDraft:
        """Start a draft with one blank line item and the default payment terms."""
        if due_date is None:
            due_date = invoice_date + timedelta(days=self.config.payment_terms_days)

        return InvoiceDraft(
            patient_id=patient_id,
            invoice_date=invoice_date,
            due_date=due_date,
            line_items=(blank_line_item(),),
            notes=notes,
        )

    def add_line_item(self, draft: InvoiceDraft) -> InvoiceDraft:
        """Append a zero-valued line item."""
        return draft.model_copy(update={"line_items": draft.line_items + (blank_line_item(),)})

    def remove_line_item(self, draft: InvoiceDraft, item_id: UUID) -> InvoiceDraft:
        """
        Remove a line item.

        Raises:
            LineItemNotFound: If the draft has no item with that id
            LastItemError: If it is the only item left
        """
        remaining = tuple(item for item in draft.line_items if item.id != item_id)

        if len(remaining) == len(draft.line_items):
            raise LineItemNotFound(f"Line item {item_id} not found on draft")
        if not remaining:
            raise LastItemError("An invoice must have at least one line item")

        return draft.model_copy(update={"line_items": remaining})

    def update_line_item(self, draft: InvoiceDraft, item_id: UUID, **changes) -> InvoiceDraft:
        """
        Change fields on one line item; its total is recomputed.

        Accepts description, quantity, unit_price_cents and service_date.

        Raises:
            LineItemNotFound: If the draft has no item with that id
        """
        updated = []
        found = False
        for item in draft.line_items:
            if item.id == item_id:
                item = update_line_item(item, **changes)
                found = True
            updated.append(item)

        if not found:
            raise LineItemNotFound(f"Line item {item_id} not found on draft")

        return draft.model_copy(update={"line_items": tuple(updated)})

    def compute_totals(self, draft: InvoiceDraft) -> InvoiceTotals:
        """Totals for the draft at the configured tax rate."""
        return compute_totals(draft.line_items, self.config.tax_rate_bps)

    def validate(self, draft: InvoiceDraft) -> None:
        """
        Check a draft is complete enough to submit.

        Raises:
            InvoiceValidationError: With the first problem found
        """
        if draft.patient_id is None:
            raise InvoiceValidationError(
                ValidationReason.MISSING_PATIENT,
                "Please select a patient",
            )

        if not draft.line_items:
            raise InvoiceValidationError(
                ValidationReason.NO_LINE_ITEMS,
                "An invoice must have at least one line item",
            )

        for position, item in enumerate(draft.line_items, start=1):
            if not item.description.strip():
                raise InvoiceValidationError(
                    ValidationReason.EMPTY_DESCRIPTION,
                    f"Line item {position} needs a description",
                )

        if draft.due_date < draft.invoice_date:
            raise InvoiceValidationError(
                ValidationReason.DUE_BEFORE_INVOICE_DATE,
                "Due date cannot be before the invoice date",
            )

    def submit(
        self,
        draft: InvoiceDraft,
        status: InvoiceStatus,
        sequence: int,
        invoice_id: UUID | None = None,
        now: datetime | None = None,
    ) -> Invoice:
        """
        Turn a draft into a fully computed invoice.

        Args:
            draft: Draft to submit
            status: DRAFT to save for later, SENT to issue immediately
            sequence: Number allocated by storage for the invoice date's month
            invoice_id: Optional id (generated if omitted)
            now: Optional creation timestamp

        Returns:
            Invoice ready for persistence

        Raises:
            InvalidStatusTransition: If status is not DRAFT or SENT
            InvoiceValidationError: If the draft is incomplete
        """
        status = InvoiceStatus(status)
        if status not in _SUBMITTABLE_STATUSES:
            raise InvalidStatusTransition(
                f"Invoices can only be created as draft or sent, not {status.value}"
            )

        self.validate(draft)

        totals = self.compute_totals(draft)
        now = now or now_utc()

        return Invoice(
            id=invoice_id or uuid4(),
            invoice_number=generate_invoice_number(
                draft.invoice_date.year, draft.invoice_date.month, sequence
            ),
            patient_id=draft.patient_id,
            invoice_date=draft.invoice_date,
            due_date=draft.due_date,
            line_items=list(draft.line_items),
            subtotal_cents=totals.subtotal_cents,
            tax_rate_bps=self.config.tax_rate_bps,
            tax_amount_cents=totals.tax_amount_cents,
            total_amount_cents=totals.total_amount_cents,
            amount_paid_cents=0,
            status=status,
            notes=draft.notes,
            created_at=now,
            updated_at=now,
        )
