"""Billing domain models."""

from billing.models.line_item import LineItem, LineItemCreate
from billing.models.invoice import (
    Invoice, InvoiceCreate, InvoiceDraft, InvoiceStatus, InvoiceTotals,
)
from billing.models.payment import Payment, PaymentCreate, PaymentMethod, PaymentStatus
from billing.models.report import (
    Expense, PeriodRevenue, PatientRevenue, BillingSummary, PaymentSummary, FinancialTotals,
)

__all__ = [
    # LineItem
    "LineItem", "LineItemCreate",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceDraft", "InvoiceStatus", "InvoiceTotals",
    # Payment
    "Payment", "PaymentCreate", "PaymentMethod", "PaymentStatus",
    # Reports
    "Expense", "PeriodRevenue", "PatientRevenue", "BillingSummary", "PaymentSummary",
    "FinancialTotals",
]
