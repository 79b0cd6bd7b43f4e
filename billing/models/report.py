"""Report rows and the expense records they consume.

Every row is recomputable from invoice, payment and expense snapshots.
"""

from datetime import date
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Expense(BaseModel):
    """Expense transaction from the practice's external ledger."""

    id: UUID = Field(default_factory=uuid4)
    transaction_date: date
    amount_cents: int = Field(..., ge=0)
    description: str | None = None

    model_config = {"from_attributes": True}


class PeriodRevenue(BaseModel):
    """Revenue and expenses for one calendar month."""

    period_label: str
    period_start: date
    revenue_cents: int
    expenses_cents: int
    profit_cents: int


class PatientRevenue(BaseModel):
    """Billing totals for one patient within a date range."""

    patient_id: UUID
    patient_name: str
    total_revenue_cents: int
    invoice_count: int
    outstanding_amount_cents: int


class BillingSummary(BaseModel):
    """Invoice totals by status, for the billing dashboard."""

    total_revenue_cents: int
    pending_amount_cents: int
    overdue_amount_cents: int
    total_invoices: int


class PaymentSummary(BaseModel):
    """Payment totals by status."""

    total_amount_cents: int
    pending_cents: int
    completed_cents: int
    failed_cents: int
    refunded_cents: int
    count: int


class FinancialTotals(BaseModel):
    """Headline figures for a reporting range."""

    total_revenue_cents: int
    total_expenses_cents: int
    net_profit_cents: int
    outstanding_balance_cents: int
