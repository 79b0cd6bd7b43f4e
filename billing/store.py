"""
Storage contract consumed by the billing services.

The ledger never persists anything itself. A store provides:

- Atomic sequence allocation per (kind, year, month), so two concurrent
  creations never get the same invoice or payment number.
- transaction(): a context in which reads made with for_update=True lock
  the row until the block exits, giving PaymentService a consistent
  snapshot for its read-then-write of the amount paid.
- Parsed models. Rows are validated into pydantic models at this boundary,
  never handed upward as loose dicts.

Storage failures (network, permissions) propagate as the driver raised them.
A duplicate invoice or payment number raises SequenceConflictError.
"""

from contextlib import AbstractContextManager
from datetime import date
from enum import Enum
from typing import Iterable, Protocol
from uuid import UUID

from billing.audit import AuditEntry
from billing.models import Expense, Invoice, InvoiceStatus, Payment


class SequenceKind(str, Enum):
    """Document types that get numbered."""

    INVOICE = "invoice"
    PAYMENT = "payment"


class LedgerStore(Protocol):
    """Persistence for invoices, payments, expenses and the audit trail."""

    def transaction(self) -> AbstractContextManager[None]:
        """Group the enclosed reads and writes into one atomic unit."""
        ...

    def next_sequence(self, kind: SequenceKind, year: int, month: int) -> int:
        """Next unused sequence number for the bucket. Atomic."""
        ...

    def load_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        ...

    def save_invoice(self, invoice: Invoice) -> Invoice:
        """Insert or update the invoice and replace its line items."""
        ...

    def delete_invoice(self, invoice_id: UUID) -> bool:
        """Delete the invoice and its line items. False if not found."""
        ...

    def list_invoices(
        self,
        start: date | None = None,
        end: date | None = None,
        statuses: Iterable[InvoiceStatus] | None = None,
    ) -> list[Invoice]:
        """Invoices with invoice_date in [start, end], optionally by status."""
        ...

    def load_payment(self, payment_id: UUID, for_update: bool = False) -> Payment | None:
        ...

    def load_payments_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        ...

    def save_payment(self, payment: Payment) -> Payment:
        ...

    def list_payments(self) -> list[Payment]:
        ...

    def list_expenses(self, start: date, end: date) -> list[Expense]:
        ...

    def patient_names(self, patient_ids: Iterable[UUID]) -> dict[UUID, str]:
        """Display names ("First Last") for the given patients."""
        ...

    def append_audit_entry(self, entry: AuditEntry) -> None:
        ...

    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[AuditEntry]:
        """Entries for one entity, newest first."""
        ...
