"""Tests for ReportService."""

from datetime import date

import pytest

from billing.exceptions import InvalidDateRange
from billing.models import Expense, InvoiceStatus


@pytest.fixture
def seeded(store, make_invoice, patient_id, other_patient_id):
    """Two patients across two months plus one expense."""
    invoices = [
        make_invoice(status=InvoiceStatus.PAID, invoice_date=date(2025, 5, 3), patient=patient_id),
        make_invoice(status=InvoiceStatus.SENT, invoice_date=date(2025, 6, 3), patient=patient_id),
        make_invoice(status=InvoiceStatus.OVERDUE, invoice_date=date(2025, 6, 9), patient=other_patient_id),
    ]
    for invoice in invoices:
        store.save_invoice(invoice)
    store.expenses.append(Expense(transaction_date=date(2025, 6, 15), amount_cents=2000))
    return invoices


class TestReportService:

    def test_revenue_by_period(self, report_service, seeded):
        rows = report_service.revenue_by_period(date(2025, 1, 1), date(2025, 12, 31))

        assert [r.period_label for r in rows] == ["May 2025", "Jun 2025"]
        assert rows[0].revenue_cents == seeded[0].total_amount_cents
        assert rows[1].revenue_cents == 0
        assert rows[1].expenses_cents == 2000

    def test_revenue_by_period_with_empty_months(self, report_service, seeded):
        rows = report_service.revenue_by_period(date(2025, 4, 1), date(2025, 7, 31), include_empty=True)
        assert len(rows) == 4

    def test_revenue_by_patient_uses_store_names(self, report_service, seeded):
        rows = report_service.revenue_by_patient(date(2025, 1, 1), date(2025, 12, 31))

        assert [r.patient_name for r in rows] == ["Alice Adams", "Bob Brown"]
        alice, bob = rows
        assert alice.invoice_count == 2
        assert alice.total_revenue_cents == seeded[0].total_amount_cents
        assert alice.outstanding_amount_cents == seeded[1].total_amount_cents
        assert bob.outstanding_amount_cents == seeded[2].total_amount_cents

    def test_financial_totals(self, report_service, seeded):
        totals = report_service.financial_totals(date(2025, 6, 1), date(2025, 6, 30))

        assert totals.total_revenue_cents == 0
        assert totals.total_expenses_cents == 2000
        assert totals.net_profit_cents == -2000
        assert totals.outstanding_balance_cents == (
            seeded[1].total_amount_cents + seeded[2].total_amount_cents
        )

    def test_summaries(self, report_service, seeded):
        assert report_service.billing_summary().total_invoices == 3
        assert report_service.payment_summary().count == 0

    @pytest.mark.parametrize("method", ["revenue_by_period", "revenue_by_patient", "financial_totals"])
    def test_reversed_range(self, report_service, method):
        with pytest.raises(InvalidDateRange):
            getattr(report_service, method)(date(2025, 6, 1), date(2025, 5, 1))
