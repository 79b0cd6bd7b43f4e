"""
Payment recording and invoice reconciliation.

Pure functions over an invoice and a snapshot of its payments. Callers must
supply a consistent, locked snapshot (see PaymentService) so two concurrent
payments cannot both pass the overpayment check.

Only COMPLETED payments count toward the amount paid. There is no partially
paid status: an underpaid invoice keeps its prior status.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable
from uuid import UUID, uuid4

from billing import money
from billing.exceptions import (
    InvalidAmount,
    InvalidPaymentTransition,
    InvoiceNotPayableError,
    OverpaymentError,
    PaymentMismatchError,
    ReversalError,
)
from billing.invoice_builder import format_sequence_number
from billing.models import Invoice, InvoiceStatus, Payment, PaymentCreate, PaymentStatus
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentApplication:
    """Invoice and payment after applying a payment."""

    invoice: Invoice
    payment: Payment
    invoice_changed: bool = False
    became_paid: bool = False


@dataclass(frozen=True)
class PaymentReversal:
    """
    Refunded payment.

    The owning invoice's status must be re-derived with reconcile_invoice.
    """

    payment: Payment


def generate_payment_number(year: int, month: int, sequence: int) -> str:
    """generate_payment_number(2025, 6, 7) -> "PAY-202506-007"."""
    return format_sequence_number("PAY", year, month, sequence)


def paid_to_date(payments: Iterable[Payment]) -> int:
    """Sum of completed payments in cents."""
    total = 0
    for payment in payments:
        if payment.status == PaymentStatus.COMPLETED:
            total = money.add(total, payment.amount_cents)
    return total


def _check_belongs(invoice_id: UUID, payments: Iterable[Payment]) -> list[Payment]:
    payments = list(payments)
    for payment in payments:
        if payment.invoice_id != invoice_id:
            raise PaymentMismatchError(
                f"Payment {payment.payment_number} belongs to invoice {payment.invoice_id}, "
                f"not {invoice_id}"
            )
    return payments


def _credit(invoice: Invoice, already_paid: int, amount: int, currency: str, now: datetime) -> Invoice:
    """Invoice with amount added to what is paid; PAID once the total is covered."""
    new_paid = money.add(already_paid, amount)

    if new_paid > invoice.total_amount_cents:
        excess = new_paid - invoice.total_amount_cents
        raise OverpaymentError(
            excess,
            f"Payment exceeds invoice balance by {money.format_amount(excess, currency)}",
        )

    status = InvoiceStatus.PAID if new_paid == invoice.total_amount_cents else invoice.status
    return invoice.model_copy(update={
        "amount_paid_cents": new_paid,
        "status": status,
        "updated_at": now,
    })


def apply_payment(
    invoice: Invoice,
    existing_payments: Iterable[Payment],
    new_payment: PaymentCreate,
    sequence: int,
    currency: str = "USD",
    payment_id: UUID | None = None,
    now: datetime | None = None,
) -> PaymentApplication:
    """
    Apply a payment to an invoice.

    Args:
        invoice: Invoice being paid
        existing_payments: All payments already recorded for the invoice
        new_payment: Payment to apply
        sequence: Number allocated by storage for the payment date's month
        currency: Currency used in error messages
        payment_id: Optional id (generated if omitted)
        now: Optional timestamp

    Returns:
        PaymentApplication with the updated invoice and numbered payment

    Raises:
        PaymentMismatchError: If any payment references another invoice
        InvalidAmount: If the amount is not a positive number of cents
        InvoiceNotPayableError: If the invoice is cancelled
        OverpaymentError: If completed payments would exceed the total
    """
    if new_payment.invoice_id != invoice.id:
        raise PaymentMismatchError(
            f"Payment is for invoice {new_payment.invoice_id}, not {invoice.id}"
        )
    existing = _check_belongs(invoice.id, existing_payments)

    amount = new_payment.amount_cents
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"Payment amount must be a positive number of cents, got {amount!r}")

    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvoiceNotPayableError(
            f"Invoice {invoice.invoice_number} is cancelled and cannot accept payments"
        )

    now = now or now_utc()
    updated_invoice = invoice

    if new_payment.status == PaymentStatus.COMPLETED:
        updated_invoice = _credit(invoice, paid_to_date(existing), amount, currency, now)

    payment = Payment(
        id=payment_id or uuid4(),
        payment_number=generate_payment_number(
            new_payment.payment_date.year, new_payment.payment_date.month, sequence
        ),
        invoice_id=invoice.id,
        patient_id=invoice.patient_id,
        amount_cents=amount,
        payment_date=new_payment.payment_date,
        payment_method=new_payment.payment_method,
        status=new_payment.status,
        reference_number=new_payment.reference_number,
        notes=new_payment.notes,
        created_at=now,
        updated_at=now,
    )

    return PaymentApplication(
        invoice=updated_invoice,
        payment=payment,
        invoice_changed=updated_invoice is not invoice,
        became_paid=(
            updated_invoice.status == InvoiceStatus.PAID
            and invoice.status != InvoiceStatus.PAID
        ),
    )


_SETTLEMENTS = {PaymentStatus.COMPLETED, PaymentStatus.FAILED}


def settle_payment(
    invoice: Invoice,
    existing_payments: Iterable[Payment],
    payment: Payment,
    status: PaymentStatus,
    currency: str = "USD",
    now: datetime | None = None,
) -> PaymentApplication:
    """
    Move a pending payment to COMPLETED or FAILED.

    Completing runs the same overpayment check as apply_payment against the
    invoice's other completed payments. Failing never touches the invoice.

    Raises:
        InvalidPaymentTransition: If the payment is not pending or status is not a settlement
        PaymentMismatchError: If any payment references another invoice
        InvoiceNotPayableError: If completing on a cancelled invoice
        OverpaymentError: If completed payments would exceed the total
    """
    status = PaymentStatus(status)
    if payment.status != PaymentStatus.PENDING or status not in _SETTLEMENTS:
        raise InvalidPaymentTransition(
            f"Payment {payment.payment_number} cannot move from "
            f"{payment.status.value} to {status.value}"
        )

    others = [
        p for p in _check_belongs(invoice.id, [payment, *existing_payments])
        if p.id != payment.id
    ]

    now = now or now_utc()
    updated_invoice = invoice

    if status == PaymentStatus.COMPLETED:
        if invoice.status == InvoiceStatus.CANCELLED:
            raise InvoiceNotPayableError(
                f"Invoice {invoice.invoice_number} is cancelled and cannot accept payments"
            )
        updated_invoice = _credit(invoice, paid_to_date(others), payment.amount_cents, currency, now)

    return PaymentApplication(
        invoice=updated_invoice,
        payment=payment.model_copy(update={"status": status, "updated_at": now}),
        invoice_changed=updated_invoice is not invoice,
        became_paid=(
            updated_invoice.status == InvoiceStatus.PAID
            and invoice.status != InvoiceStatus.PAID
        ),
    )


def reverse(payment: Payment, now: datetime | None = None) -> PaymentReversal:
    """
    Refund a completed payment.

    Raises:
        ReversalError: If the payment is not completed
    """
    if payment.status != PaymentStatus.COMPLETED:
        raise ReversalError(
            f"Payment {payment.payment_number} is {payment.status.value}; "
            f"only completed payments can be refunded"
        )

    refunded = payment.model_copy(update={
        "status": PaymentStatus.REFUNDED,
        "updated_at": now or now_utc(),
    })
    return PaymentReversal(payment=refunded)


def reconcile_invoice(
    invoice: Invoice,
    payments: Iterable[Payment],
    today: date,
    now: datetime | None = None,
) -> Invoice:
    """
    Re-derive amount paid and status from the invoice's current payments.

    Inverse of apply_payment, used after a refund. A PAID invoice that is no
    longer fully covered reverts to OVERDUE when past due, otherwise SENT.
    Cancelled invoices are left alone.

    Raises:
        PaymentMismatchError: If any payment references another invoice
        OverpaymentError: If completed payments exceed the total
    """
    payments = _check_belongs(invoice.id, payments)

    if invoice.status == InvoiceStatus.CANCELLED:
        return invoice

    paid = paid_to_date(payments)
    if paid > invoice.total_amount_cents:
        excess = paid - invoice.total_amount_cents
        raise OverpaymentError(
            excess,
            f"Completed payments exceed invoice {invoice.invoice_number} "
            f"by {money.format_amount(excess)}",
        )

    status = invoice.status
    if paid == invoice.total_amount_cents and paid > 0:
        status = InvoiceStatus.PAID
    elif invoice.status == InvoiceStatus.PAID:
        status = InvoiceStatus.OVERDUE if today > invoice.due_date else InvoiceStatus.SENT
        logger.info(
            f"Invoice {invoice.invoice_number} no longer fully paid; reverting to {status.value}"
        )

    if status == invoice.status and paid == invoice.amount_paid_cents:
        return invoice

    return invoice.model_copy(update={
        "amount_paid_cents": paid,
        "status": status,
        "updated_at": now or now_utc(),
    })
