"""
Payment service for billing.

Records, settles and refunds payments against invoices. The invoice row is
locked for the whole read-check-write so concurrent payments on one invoice are
serialized and the overpayment check always sees every completed payment.
"""

import logging
from datetime import date
from uuid import UUID

from billing.audit import AuditAction, AuditLogger, compute_changes
from billing.config import BillingConfig
from billing.event_bus import EventBus
from billing.events import InvoicePaid, PaymentRecorded, PaymentRefunded, PaymentSettled
from billing.exceptions import (
    NotFoundError,
    OverpaymentError,
    PaymentMethodNotAccepted,
    SequenceConflictError,
)
from billing.models import Invoice, Payment, PaymentCreate, PaymentStatus
from billing.payment_recorder import (
    apply_payment,
    reconcile_invoice,
    reverse,
    settle_payment,
)
from billing.search import filter_payments
from billing.store import LedgerStore, SequenceKind
from utils.timezone import today_in

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for payment operations."""

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

    def _log_invoice_update(self, old: Invoice, new: Invoice, reason: dict) -> None:
        changes = compute_changes(old.model_dump(mode="json"), new.model_dump(mode="json"))
        if changes:
            changes.update(reason)
            self.audit.log_change(
                entity_type="invoice",
                entity_id=new.id,
                action=AuditAction.UPDATE,
                changes=changes
            )

    def record(self, data: PaymentCreate) -> Payment:
        """
        Record a payment against an invoice.

        Args:
            data: Payment details

        Returns:
            Persisted payment with its generated number

        Raises:
            NotFoundError: If the invoice does not exist
            PaymentMethodNotAccepted: If the practice does not take the method
            OverpaymentError: If completed payments would exceed the invoice total
            InvoiceNotPayableError: If the invoice is cancelled
        """
        if data.payment_method not in self.config.payment_methods:
            raise PaymentMethodNotAccepted(
                f"Payment method {data.payment_method.value} is not accepted"
            )

        year, month = data.payment_date.year, data.payment_date.month
        attempts = self.config.sequence_retry_attempts

        for attempt in range(1, attempts + 1):
            # Allocated outside the transaction so a rollback never hands the
            # same number out again
            sequence = self.store.next_sequence(SequenceKind.PAYMENT, year, month)
            try:
                with self.store.transaction():
                    invoice = self.store.load_invoice(data.invoice_id, for_update=True)
                    if invoice is None:
                        raise NotFoundError(f"Invoice {data.invoice_id} not found")

                    existing = self.store.load_payments_for_invoice(invoice.id)

                    try:
                        application = apply_payment(
                            invoice, existing, data, sequence, currency=self.config.currency
                        )
                    except OverpaymentError as e:
                        logger.warning(
                            f"Rejected payment on invoice {invoice.invoice_number}: {e}"
                        )
                        raise

                    self.store.save_payment(application.payment)
                    if application.invoice_changed:
                        self.store.save_invoice(application.invoice)
                break
            except SequenceConflictError:
                logger.warning(
                    f"Payment number collision (attempt {attempt}/{attempts}), allocating another"
                )
        else:
            raise SequenceConflictError(
                f"Could not allocate a unique payment number after {attempts} attempts"
            )

        payment = application.payment

        self.audit.log_change(
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.CREATE,
            changes={"created": payment.model_dump(mode="json")}
        )
        self._log_invoice_update(
            invoice, application.invoice, {"payment_recorded": payment.payment_number}
        )

        logger.info(
            f"Payment {payment.payment_number} ({payment.status.value}, "
            f"{payment.amount_cents} cents) recorded on invoice {invoice.invoice_number}"
        )

        self.event_bus.publish(PaymentRecorded(payment=payment))
        if application.became_paid:
            self.event_bus.publish(InvoicePaid(invoice=application.invoice))

        return payment

    def settle(self, payment_id: UUID, status: PaymentStatus) -> Payment:
        """
        Complete or fail a pending payment.

        A completed payment now counts toward its invoice, so the invoice is
        locked and the overpayment check runs again.

        Args:
            payment_id: Pending payment
            status: COMPLETED or FAILED

        Returns:
            Settled payment

        Raises:
            NotFoundError: If the payment or its invoice does not exist
            InvalidPaymentTransition: If the payment is not pending
            OverpaymentError: If completing would exceed the invoice total
            InvoiceNotPayableError: If completing on a cancelled invoice
        """
        with self.store.transaction():
            current = self.store.load_payment(payment_id, for_update=True)
            if current is None:
                raise NotFoundError(f"Payment {payment_id} not found")

            invoice = self.store.load_invoice(current.invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError(f"Invoice {current.invoice_id} not found")

            existing = self.store.load_payments_for_invoice(invoice.id)

            try:
                application = settle_payment(
                    invoice, existing, current, status, currency=self.config.currency
                )
            except OverpaymentError as e:
                logger.warning(
                    f"Rejected completion of {current.payment_number} on invoice "
                    f"{invoice.invoice_number}: {e}"
                )
                raise

            settled = self.store.save_payment(application.payment)
            if application.invoice_changed:
                self.store.save_invoice(application.invoice)

        self.audit.log_change(
            entity_type="payment",
            entity_id=settled.id,
            action=AuditAction.UPDATE,
            changes={"status": {"old": current.status.value, "new": settled.status.value}}
        )
        self._log_invoice_update(
            invoice, application.invoice, {"payment_settled": settled.payment_number}
        )

        logger.info(f"Payment {settled.payment_number} {settled.status.value}")

        self.event_bus.publish(PaymentSettled(payment=settled))
        if application.became_paid:
            self.event_bus.publish(InvoicePaid(invoice=application.invoice))

        return settled

    def refund(self, payment_id: UUID, today: date | None = None) -> Payment:
        """
        Refund a completed payment and re-derive its invoice's status.

        Args:
            payment_id: Payment to refund
            today: Date used to decide overdue vs sent if the invoice reverts

        Returns:
            Refunded payment

        Raises:
            NotFoundError: If the payment or its invoice does not exist
            ReversalError: If the payment is not completed
        """
        today = today or today_in(self.config.timezone)

        with self.store.transaction():
            current = self.store.load_payment(payment_id, for_update=True)
            if current is None:
                raise NotFoundError(f"Payment {payment_id} not found")

            invoice = self.store.load_invoice(current.invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError(f"Invoice {current.invoice_id} not found")

            reversal = reverse(current)
            refunded = self.store.save_payment(reversal.payment)

            payments = [
                refunded if p.id == refunded.id else p
                for p in self.store.load_payments_for_invoice(invoice.id)
            ]
            reconciled = reconcile_invoice(invoice, payments, today)
            if reconciled is not invoice:
                self.store.save_invoice(reconciled)

        self.audit.log_change(
            entity_type="payment",
            entity_id=refunded.id,
            action=AuditAction.UPDATE,
            changes={"status": {"old": current.status.value, "new": refunded.status.value}}
        )
        self._log_invoice_update(
            invoice, reconciled, {"payment_refunded": refunded.payment_number}
        )

        logger.info(
            f"Payment {refunded.payment_number} refunded; invoice {invoice.invoice_number} "
            f"is now {reconciled.status.value}"
        )

        self.event_bus.publish(PaymentRefunded(payment=refunded))

        return refunded

    def get_by_id(self, payment_id: UUID) -> Payment | None:
        return self.store.load_payment(payment_id)

    def list_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        """Payments on an invoice, oldest first."""
        return self.store.load_payments_for_invoice(invoice_id)

    def list_payments(
        self,
        search: str | None = None,
        status: PaymentStatus | None = None,
    ) -> list[Payment]:
        """All payments, optionally filtered, newest first."""
        return filter_payments(self.store.list_payments(), search=search, status=status)
