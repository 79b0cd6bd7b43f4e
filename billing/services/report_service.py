"""
Report service.

Loads snapshots from the store and runs the pure report folds over them.
"""

from datetime import date

from billing import reports
from billing.exceptions import InvalidDateRange
from billing.models import (
    BillingSummary,
    FinancialTotals,
    PatientRevenue,
    PaymentSummary,
    PeriodRevenue,
)
from billing.store import LedgerStore


class ReportService:
    """Service for financial reports."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def revenue_by_period(
        self,
        start: date,
        end: date,
        include_empty: bool = False,
    ) -> list[PeriodRevenue]:
        """Monthly revenue, expenses and profit."""
        if end < start:
            raise InvalidDateRange(f"Report range ends ({end}) before it starts ({start})")

        return reports.revenue_by_period(
            self.store.list_invoices(start=start, end=end),
            self.store.list_expenses(start, end),
            start,
            end,
            include_empty=include_empty,
        )

    def revenue_by_patient(self, start: date, end: date) -> list[PatientRevenue]:
        """Per-patient revenue and outstanding balance."""
        if end < start:
            raise InvalidDateRange(f"Report range ends ({end}) before it starts ({start})")

        invoices = self.store.list_invoices(start=start, end=end)
        names = self.store.patient_names(i.patient_id for i in invoices)
        return reports.revenue_by_patient(invoices, start, end, names)

    def financial_totals(self, start: date, end: date) -> FinancialTotals:
        """Revenue, expenses, net profit and outstanding balance for a range."""
        if end < start:
            raise InvalidDateRange(f"Report range ends ({end}) before it starts ({start})")

        return reports.financial_totals(
            self.store.list_invoices(start=start, end=end),
            self.store.list_expenses(start, end),
            start,
            end,
        )

    def billing_summary(self) -> BillingSummary:
        """Invoice totals by status across all invoices."""
        return reports.billing_summary(self.store.list_invoices())

    def payment_summary(self) -> PaymentSummary:
        """Payment totals by status across all payments."""
        return reports.payment_summary(self.store.list_payments())
