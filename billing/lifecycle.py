"""
Invoice status state machine.

    draft ──► sent ──► paid
      │        │ ▲      │
      │        ▼ │      │ (refund reverts)
      │      overdue ◄──┘
      └──────► cancelled (terminal)

PAID is reached only through payment reconciliation (billing.payment_recorder)
and left only when a refund uncovers the balance again. CANCELLED is set by
explicit user action and nothing leaves it.
"""

from datetime import date, datetime

from billing.exceptions import InvalidStatusTransition
from billing.models import Invoice, InvoiceStatus
from utils.timezone import now_utc

# PAID is never a target here: only payment reconciliation sets it
_TRANSITIONS: dict[InvoiceStatus, set[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED},
    InvoiceStatus.SENT: {InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED},
    InvoiceStatus.OVERDUE: {InvoiceStatus.SENT, InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: {InvoiceStatus.SENT, InvoiceStatus.OVERDUE},
    InvoiceStatus.CANCELLED: set(),
}

# Statuses that never become overdue
_SETTLED = {InvoiceStatus.PAID, InvoiceStatus.CANCELLED}


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    """Whether an invoice may move from current to target."""
    return target in _TRANSITIONS[current]


def transition(invoice: Invoice, target: InvoiceStatus, now: datetime | None = None) -> Invoice:
    """
    Move an invoice to a new status.

    Same-status transitions are a no-op and return the invoice unchanged.

    Raises:
        InvalidStatusTransition: If the move is not allowed
    """
    target = InvoiceStatus(target)
    if invoice.status == target:
        return invoice

    if not can_transition(invoice.status, target):
        raise InvalidStatusTransition(
            f"Invoice {invoice.invoice_number} cannot move from "
            f"{invoice.status.value} to {target.value}"
        )

    return invoice.model_copy(update={"status": target, "updated_at": now or now_utc()})


def mark_sent(invoice: Invoice, now: datetime | None = None) -> Invoice:
    """
    Issue a draft invoice to the patient.

    Raises:
        InvalidStatusTransition: If the invoice is not a draft
    """
    if invoice.status != InvoiceStatus.DRAFT:
        raise InvalidStatusTransition(
            f"Invoice {invoice.invoice_number} is {invoice.status.value}; only drafts can be sent"
        )
    return transition(invoice, InvoiceStatus.SENT, now)


def cancel(invoice: Invoice, now: datetime | None = None) -> Invoice:
    """
    Cancel an invoice. Terminal.

    Raises:
        InvalidStatusTransition: If the invoice is paid or already cancelled
    """
    if invoice.status == InvoiceStatus.PAID:
        raise InvalidStatusTransition(
            f"Invoice {invoice.invoice_number} is paid and cannot be cancelled"
        )
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvalidStatusTransition(f"Invoice {invoice.invoice_number} is already cancelled")
    return transition(invoice, InvoiceStatus.CANCELLED, now)


def is_overdue(invoice: Invoice, today: date) -> bool:
    """Past its due date and not settled."""
    return invoice.status not in _SETTLED and today > invoice.due_date


def refresh_overdue(invoice: Invoice, today: date, now: datetime | None = None) -> Invoice:
    """Mark the invoice overdue if it is past due; otherwise return it unchanged."""
    if is_overdue(invoice, today) and invoice.status != InvoiceStatus.OVERDUE:
        return transition(invoice, InvoiceStatus.OVERDUE, now)
    return invoice
