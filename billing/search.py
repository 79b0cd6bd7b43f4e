"""List filters for the invoice and payment screens."""

from typing import Iterable, Mapping
from uuid import UUID

from billing.models import Invoice, InvoiceStatus, Payment, PaymentStatus


def filter_invoices(
    invoices: Iterable[Invoice],
    search: str | None = None,
    status: InvoiceStatus | None = None,
    patient_names: Mapping[UUID, str] | None = None,
) -> list[Invoice]:
    """
    Filter invoices by status and a case-insensitive search term.

    The term matches the invoice number or the patient's name.

    Returns:
        Matching invoices, newest invoice date first
    """
    patient_names = patient_names or {}
    term = (search or "").strip().lower()

    matches = []
    for invoice in invoices:
        if status is not None and invoice.status != status:
            continue
        if term:
            name = patient_names.get(invoice.patient_id, "").lower()
            if term not in invoice.invoice_number.lower() and term not in name:
                continue
        matches.append(invoice)

    matches.sort(key=lambda i: i.invoice_date, reverse=True)
    return matches


def filter_payments(
    payments: Iterable[Payment],
    search: str | None = None,
    status: PaymentStatus | None = None,
) -> list[Payment]:
    """
    Filter payments by status and a search term on payment or reference number.

    Returns:
        Matching payments, newest payment date first
    """
    term = (search or "").strip().lower()

    matches = []
    for payment in payments:
        if status is not None and payment.status != status:
            continue
        if term:
            reference = (payment.reference_number or "").lower()
            if term not in payment.payment_number.lower() and term not in reference:
                continue
        matches.append(payment)

    matches.sort(key=lambda p: p.payment_date, reverse=True)
    return matches
