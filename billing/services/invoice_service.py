"""
Invoice service for billing.

Wraps the pure invoice builder and lifecycle rules with storage, audit and
events. Invoice numbers are allocated by the store; a duplicate-number
conflict is retried with a fresh sequence.
"""

import logging
from datetime import date
from uuid import UUID

from billing import lifecycle
from billing.audit import AuditAction, AuditLogger, compute_changes
from billing.calculator import build_line_item
from billing.config import BillingConfig
from billing.event_bus import EventBus
from billing.events import InvoiceCancelled, InvoiceIssued, InvoiceOverdue, InvoiceSent
from billing.exceptions import (
    InvalidStatusTransition,
    InvoiceHasPayments,
    NotFoundError,
    SequenceConflictError,
)
from billing.invoice_builder import InvoiceBuilder
from billing.models import Invoice, InvoiceCreate, InvoiceDraft, InvoiceStatus
from billing.search import filter_invoices
from billing.store import LedgerStore, SequenceKind
from utils.timezone import today_in

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        store: LedgerStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BillingConfig | None = None,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or BillingConfig()
        self.builder = InvoiceBuilder(self.config)

    def _require(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        invoice = self.store.load_invoice(invoice_id, for_update=for_update)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def _log_update(self, old: Invoice, new: Invoice) -> None:
        changes = compute_changes(old.model_dump(mode="json"), new.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                entity_type="invoice",
                entity_id=new.id,
                action=AuditAction.UPDATE,
                changes=changes
            )

    def draft_from_request(self, data: InvoiceCreate) -> InvoiceDraft:
        """Build a draft from a one-shot create request."""
        draft = self.builder.new_draft(
            invoice_date=data.invoice_date,
            due_date=data.due_date,
            patient_id=data.patient_id,
            notes=data.notes,
        )
        if data.line_items:
            draft = draft.model_copy(update={
                "line_items": tuple(build_line_item(item) for item in data.line_items)
            })
        return draft

    def create(self, draft: InvoiceDraft, status: InvoiceStatus = InvoiceStatus.DRAFT) -> Invoice:
        """
        Submit a draft and persist the resulting invoice.

        Args:
            draft: Completed draft
            status: DRAFT or SENT

        Returns:
            Persisted invoice

        Raises:
            InvoiceValidationError: If the draft is incomplete
            SequenceConflictError: If numbering keeps colliding after all retries
        """
        self.builder.validate(draft)

        year, month = draft.invoice_date.year, draft.invoice_date.month
        attempts = self.config.sequence_retry_attempts

        for attempt in range(1, attempts + 1):
            sequence = self.store.next_sequence(SequenceKind.INVOICE, year, month)
            invoice = self.builder.submit(draft, status, sequence)
            try:
                invoice = self.store.save_invoice(invoice)
                break
            except SequenceConflictError:
                logger.warning(
                    f"Invoice number {invoice.invoice_number} taken "
                    f"(attempt {attempt}/{attempts}), allocating another"
                )
        else:
            raise SequenceConflictError(
                f"Could not allocate a unique invoice number after {attempts} attempts"
            )

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")}
        )

        logger.info(
            f"Invoice {invoice.invoice_number} created as {invoice.status.value} "
            f"(total {invoice.total_amount_cents} cents)"
        )

        self.event_bus.publish(InvoiceIssued(invoice=invoice))
        if invoice.status == InvoiceStatus.SENT:
            self.event_bus.publish(InvoiceSent(invoice=invoice))

        return invoice

    def create_from_request(self, data: InvoiceCreate) -> Invoice:
        """Build, validate and persist an invoice from a create request."""
        return self.create(self.draft_from_request(data), data.status)

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID.

        Returns:
            Invoice if found, None otherwise.
        """
        return self.store.load_invoice(invoice_id)

    def send(self, invoice_id: UUID) -> Invoice:
        """
        Send a draft invoice to the patient.

        Raises:
            NotFoundError: If invoice not found
            InvalidStatusTransition: If the invoice is not a draft
        """
        with self.store.transaction():
            current = self._require(invoice_id, for_update=True)
            updated = self.store.save_invoice(lifecycle.mark_sent(current))

        self._log_update(current, updated)
        self.event_bus.publish(InvoiceSent(invoice=updated))

        return updated

    def cancel(self, invoice_id: UUID) -> Invoice:
        """
        Cancel an invoice. Terminal.

        Raises:
            NotFoundError: If invoice not found
            InvalidStatusTransition: If the invoice is paid or already cancelled
        """
        with self.store.transaction():
            current = self._require(invoice_id, for_update=True)
            updated = self.store.save_invoice(lifecycle.cancel(current))

        self._log_update(current, updated)
        logger.info(f"Invoice {updated.invoice_number} cancelled")
        self.event_bus.publish(InvoiceCancelled(invoice=updated))

        return updated

    def delete(self, invoice_id: UUID) -> bool:
        """
        Delete a draft invoice and its line items.

        Returns:
            True if deleted, False if not found

        Raises:
            InvalidStatusTransition: If the invoice has been issued
            InvoiceHasPayments: If any payment references the invoice
        """
        with self.store.transaction():
            current = self.store.load_invoice(invoice_id, for_update=True)
            if current is None:
                return False

            if current.status != InvoiceStatus.DRAFT:
                raise InvalidStatusTransition(
                    f"Invoice {current.invoice_number} is {current.status.value}; "
                    f"only drafts can be deleted"
                )

            payments = self.store.load_payments_for_invoice(invoice_id)
            if payments:
                raise InvoiceHasPayments(
                    f"Invoice {current.invoice_number} has {len(payments)} payment(s) "
                    f"recorded and cannot be deleted; cancel it instead"
                )

            if not self.store.delete_invoice(invoice_id):
                return False

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def refresh_overdue(self, today: date | None = None) -> list[Invoice]:
        """
        Mark every past-due open invoice as overdue.

        The candidate list is only a hint: each invoice is re-read under a
        row lock and the overdue rule is applied to that fresh row, so a
        payment committed meanwhile is never overwritten.

        Args:
            today: Date to evaluate against (defaults to today in the practice timezone)

        Returns:
            Invoices that changed to OVERDUE
        """
        today = today or today_in(self.config.timezone)
        candidates = self.store.list_invoices(
            statuses=[InvoiceStatus.DRAFT, InvoiceStatus.SENT]
        )

        changed = []
        for candidate in candidates:
            if not lifecycle.is_overdue(candidate, today):
                continue

            with self.store.transaction():
                current = self.store.load_invoice(candidate.id, for_update=True)
                if current is None:
                    continue
                refreshed = lifecycle.refresh_overdue(current, today)
                if refreshed is current:
                    continue
                updated = self.store.save_invoice(refreshed)

            self._log_update(current, updated)
            self.event_bus.publish(InvoiceOverdue(invoice=updated))
            changed.append(updated)

        if changed:
            logger.info(f"Marked {len(changed)} invoice(s) overdue as of {today.isoformat()}")

        return changed

    def list_invoices(
        self,
        search: str | None = None,
        status: InvoiceStatus | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Invoice]:
        """
        List invoices, optionally filtered.

        Args:
            search: Matches invoice number or patient name
            status: Only invoices in this status
            start: Earliest invoice date
            end: Latest invoice date

        Returns:
            Invoices ordered by invoice date DESC
        """
        invoices = self.store.list_invoices(start=start, end=end)
        names = self.store.patient_names(i.patient_id for i in invoices) if search else {}
        return filter_invoices(invoices, search=search, status=status, patient_names=names)

    def history(self, invoice_id: UUID):
        """Audit history for an invoice, newest first."""
        return self.audit.get_entity_history("invoice", invoice_id)
