"""
Revenue and outstanding-balance reporting.

Pure folds over invoice, payment and expense snapshots. No hidden state:
re-running a report over corrected data gives corrected results.

Revenue is recognized on paid invoices by invoice date. Outstanding means
sent or overdue; drafts and cancelled invoices are neither.
"""

from collections import defaultdict
from datetime import date
from typing import Iterable, Mapping
from uuid import UUID

from billing import money
from billing.exceptions import InvalidDateRange
from billing.models import (
    BillingSummary,
    Expense,
    FinancialTotals,
    Invoice,
    InvoiceStatus,
    PatientRevenue,
    Payment,
    PaymentStatus,
    PaymentSummary,
    PeriodRevenue,
)

_OUTSTANDING = {InvoiceStatus.SENT, InvoiceStatus.OVERDUE}


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise InvalidDateRange(f"Report range ends ({end}) before it starts ({start})")


def _month_start(day: date) -> date:
    return day.replace(day=1)


def _next_month(month: date) -> date:
    if month.month == 12:
        return date(month.year + 1, 1, 1)
    return date(month.year, month.month + 1, 1)


def _months_between(start: date, end: date) -> list[date]:
    months = []
    current = _month_start(start)
    while current <= end:
        months.append(current)
        current = _next_month(current)
    return months


def period_label(month: date) -> str:
    """Display label for a monthly bucket, e.g. "Jun 2025"."""
    return month.strftime("%b %Y")


def revenue_by_period(
    invoices: Iterable[Invoice],
    expenses: Iterable[Expense],
    start: date,
    end: date,
    include_empty: bool = False,
) -> list[PeriodRevenue]:
    """
    Monthly revenue, expenses and profit between start and end inclusive.

    A month appears when at least one invoice (any status) or expense falls
    in it. With include_empty, every month in the range appears instead, as
    long as the range has any activity at all.

    Returns:
        Rows in chronological order
    """
    _check_range(start, end)

    revenue: dict[date, int] = defaultdict(int)
    spent: dict[date, int] = defaultdict(int)
    active: set[date] = set()

    for invoice in invoices:
        if not start <= invoice.invoice_date <= end:
            continue
        bucket = _month_start(invoice.invoice_date)
        active.add(bucket)
        if invoice.status == InvoiceStatus.PAID:
            revenue[bucket] = money.add(revenue[bucket], invoice.total_amount_cents)

    for expense in expenses:
        if not start <= expense.transaction_date <= end:
            continue
        bucket = _month_start(expense.transaction_date)
        active.add(bucket)
        spent[bucket] = money.add(spent[bucket], expense.amount_cents)

    if not active:
        return []

    buckets = _months_between(start, end) if include_empty else sorted(active)

    return [
        PeriodRevenue(
            period_label=period_label(bucket),
            period_start=bucket,
            revenue_cents=revenue[bucket],
            expenses_cents=spent[bucket],
            profit_cents=revenue[bucket] - spent[bucket],
        )
        for bucket in buckets
    ]


def revenue_by_patient(
    invoices: Iterable[Invoice],
    start: date,
    end: date,
    patient_names: Mapping[UUID, str] | None = None,
) -> list[PatientRevenue]:
    """
    Per-patient revenue, outstanding balance and invoice count.

    Patients are grouped by id; names come from patient_names and fall back
    to the id when unknown.

    Returns:
        Rows ordered by patient name
    """
    _check_range(start, end)
    patient_names = patient_names or {}

    stats: dict[UUID, dict[str, int]] = {}
    for invoice in invoices:
        if not start <= invoice.invoice_date <= end:
            continue

        row = stats.setdefault(invoice.patient_id, {"revenue": 0, "count": 0, "outstanding": 0})
        row["count"] += 1
        if invoice.status == InvoiceStatus.PAID:
            row["revenue"] = money.add(row["revenue"], invoice.total_amount_cents)
        elif invoice.status in _OUTSTANDING:
            row["outstanding"] = money.add(row["outstanding"], invoice.total_amount_cents)

    rows = [
        PatientRevenue(
            patient_id=patient_id,
            patient_name=patient_names.get(patient_id, str(patient_id)),
            total_revenue_cents=row["revenue"],
            invoice_count=row["count"],
            outstanding_amount_cents=row["outstanding"],
        )
        for patient_id, row in stats.items()
    ]
    rows.sort(key=lambda r: (r.patient_name.lower(), str(r.patient_id)))
    return rows


def billing_summary(invoices: Iterable[Invoice]) -> BillingSummary:
    """Paid, pending (sent) and overdue totals across all invoices."""
    by_status: dict[InvoiceStatus, int] = defaultdict(int)
    count = 0
    for invoice in invoices:
        count += 1
        by_status[invoice.status] = money.add(by_status[invoice.status], invoice.total_amount_cents)

    return BillingSummary(
        total_revenue_cents=by_status[InvoiceStatus.PAID],
        pending_amount_cents=by_status[InvoiceStatus.SENT],
        overdue_amount_cents=by_status[InvoiceStatus.OVERDUE],
        total_invoices=count,
    )


def payment_summary(payments: Iterable[Payment]) -> PaymentSummary:
    """Payment totals by status."""
    by_status: dict[PaymentStatus, int] = defaultdict(int)
    total = 0
    count = 0
    for payment in payments:
        count += 1
        total = money.add(total, payment.amount_cents)
        by_status[payment.status] = money.add(by_status[payment.status], payment.amount_cents)

    return PaymentSummary(
        total_amount_cents=total,
        pending_cents=by_status[PaymentStatus.PENDING],
        completed_cents=by_status[PaymentStatus.COMPLETED],
        failed_cents=by_status[PaymentStatus.FAILED],
        refunded_cents=by_status[PaymentStatus.REFUNDED],
        count=count,
    )


def financial_totals(
    invoices: Iterable[Invoice],
    expenses: Iterable[Expense],
    start: date,
    end: date,
) -> FinancialTotals:
    """Revenue, expenses, net profit and outstanding balance for a range."""
    _check_range(start, end)

    revenue = 0
    outstanding = 0
    for invoice in invoices:
        if not start <= invoice.invoice_date <= end:
            continue
        if invoice.status == InvoiceStatus.PAID:
            revenue = money.add(revenue, invoice.total_amount_cents)
        elif invoice.status in _OUTSTANDING:
            outstanding = money.add(outstanding, invoice.total_amount_cents)

    spent = 0
    for expense in expenses:
        if start <= expense.transaction_date <= end:
            spent = money.add(spent, expense.amount_cents)

    return FinancialTotals(
        total_revenue_cents=revenue,
        total_expenses_cents=spent,
        net_profit_cents=revenue - spent,
        outstanding_balance_cents=outstanding,
    )
