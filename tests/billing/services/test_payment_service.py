"""Tests for PaymentService."""

from datetime import date
from uuid import uuid4

import pytest

from billing.audit import AuditAction
from billing.config import BillingConfig
from billing.events import InvoicePaid, PaymentRecorded, PaymentRefunded, PaymentSettled
from billing.exceptions import (
    InvalidPaymentTransition,
    InvoiceNotPayableError,
    NotFoundError,
    OverpaymentError,
    PaymentMethodNotAccepted,
    ReversalError,
)
from billing.models import (
    InvoiceCreate,
    InvoiceStatus,
    LineItemCreate,
    PaymentCreate,
    PaymentMethod,
    PaymentStatus,
)


@pytest.fixture
def invoice(invoice_service, patient_id):
    """Sent invoice for 2 x $50.00 + 1 x $25.00 at 8.5%: total $135.63, due 2025-07-15."""
    created = invoice_service.create_from_request(InvoiceCreate(
        patient_id=patient_id,
        invoice_date=date(2025, 6, 15),
        status=InvoiceStatus.SENT,
        line_items=[
            LineItemCreate(description="Home visit", quantity=2, unit_price_cents=5000),
            LineItemCreate(description="Dressing supplies", quantity=1, unit_price_cents=2500),
        ],
    ))
    assert created.total_amount_cents == 13563
    return created


def _pay(invoice, amount_cents, status=PaymentStatus.COMPLETED, **kwargs):
    return PaymentCreate(
        invoice_id=invoice.id,
        amount_cents=amount_cents,
        payment_date=kwargs.pop("payment_date", date(2025, 6, 20)),
        payment_method=kwargs.pop("payment_method", PaymentMethod.CARD),
        status=status,
        **kwargs,
    )


class TestRecord:
    """Recording payments."""

    def test_full_payment_marks_invoice_paid(self, payment_service, store, invoice, published):
        published.clear()
        payment = payment_service.record(_pay(invoice, 13563))

        assert payment.payment_number == "PAY-202506-001"
        assert store.payments[payment.id] == payment
        assert store.invoices[invoice.id].status == InvoiceStatus.PAID
        assert store.invoices[invoice.id].amount_paid_cents == 13563
        assert [type(e) for e in published] == [PaymentRecorded, InvoicePaid]

    def test_partial_payment_keeps_status(self, payment_service, store, invoice, published):
        published.clear()
        payment_service.record(_pay(invoice, 5000))

        stored = store.invoices[invoice.id]
        assert stored.status == InvoiceStatus.SENT
        assert stored.balance_due_cents == 8563
        assert [type(e) for e in published] == [PaymentRecorded]

    def test_two_payments_complete_invoice(self, payment_service, store, invoice):
        payment_service.record(_pay(invoice, 10000))
        second = payment_service.record(_pay(invoice, 3563))

        assert second.payment_number == "PAY-202506-002"
        assert store.invoices[invoice.id].status == InvoiceStatus.PAID

    def test_overpayment_rejected_and_nothing_saved(self, payment_service, store, invoice, caplog):
        with pytest.raises(OverpaymentError, match=r"\$0.01"):
            payment_service.record(_pay(invoice, 13564))

        assert store.payments == {}
        assert store.invoices[invoice.id].status == InvoiceStatus.SENT
        assert "Rejected payment" in caplog.text

    def test_invoice_row_is_locked(self, payment_service, store, invoice):
        store.locked.clear()
        payment_service.record(_pay(invoice, 100))
        assert store.locked == [invoice.id]

    def test_pending_payment_does_not_touch_invoice(self, payment_service, store, invoice):
        before = store.invoices[invoice.id]
        payment = payment_service.record(_pay(invoice, 13563, PaymentStatus.PENDING))

        assert payment.status == PaymentStatus.PENDING
        assert store.invoices[invoice.id] is before

    def test_missing_invoice(self, payment_service, invoice):
        request = _pay(invoice, 100).model_copy(update={"invoice_id": uuid4()})
        with pytest.raises(NotFoundError):
            payment_service.record(request)

    def test_cancelled_invoice(self, payment_service, invoice_service, invoice):
        invoice_service.cancel(invoice.id)
        with pytest.raises(InvoiceNotPayableError):
            payment_service.record(_pay(invoice, 100))

    def test_method_not_accepted(self, store, audit, event_bus, invoice):
        from billing.services.payment_service import PaymentService

        service = PaymentService(
            store, audit, event_bus, BillingConfig(payment_methods=[PaymentMethod.CASH])
        )
        with pytest.raises(PaymentMethodNotAccepted, match="card"):
            service.record(_pay(invoice, 100))

    def test_number_collision_is_retried(self, payment_service, store, invoice):
        first = payment_service.record(_pay(invoice, 100))
        store.sequences.clear()

        second = payment_service.record(_pay(invoice, 100))

        assert first.payment_number == "PAY-202506-001"
        assert second.payment_number == "PAY-202506-002"
        assert store.invoices[invoice.id].amount_paid_cents == 200

    def test_record_is_audited(self, payment_service, store, invoice, as_staff):
        payment = payment_service.record(_pay(invoice, 13563))

        payment_entries = store.list_audit_entries("payment", payment.id)
        assert payment_entries[0].action == AuditAction.CREATE
        assert payment_entries[0].user_id == as_staff

        invoice_entry = store.list_audit_entries("invoice", invoice.id)[0]
        assert invoice_entry.changes["status"] == {"old": "sent", "new": "paid"}
        assert invoice_entry.changes["payment_recorded"] == payment.payment_number


class TestSettle:
    """Completing and failing pending payments."""

    def test_completing_pending_pays_invoice(self, payment_service, store, invoice, published):
        pending = payment_service.record(_pay(invoice, 13563, PaymentStatus.PENDING))
        published.clear()
        store.locked.clear()

        settled = payment_service.settle(pending.id, PaymentStatus.COMPLETED)

        assert settled.status == PaymentStatus.COMPLETED
        assert store.payments[pending.id].status == PaymentStatus.COMPLETED
        assert store.invoices[invoice.id].status == InvoiceStatus.PAID
        assert store.invoices[invoice.id].amount_paid_cents == 13563
        assert store.locked == [pending.id, invoice.id]
        assert [type(e) for e in published] == [PaymentSettled, InvoicePaid]

    def test_completing_partial_keeps_status(self, payment_service, store, invoice, published):
        pending = payment_service.record(_pay(invoice, 5000, PaymentStatus.PENDING))
        published.clear()

        payment_service.settle(pending.id, PaymentStatus.COMPLETED)

        assert store.invoices[invoice.id].status == InvoiceStatus.SENT
        assert store.invoices[invoice.id].balance_due_cents == 8563
        assert [type(e) for e in published] == [PaymentSettled]

    def test_completing_past_balance_rejected(self, payment_service, store, invoice, caplog):
        """A pending payment recorded before others completed can no longer fit."""
        pending = payment_service.record(_pay(invoice, 5000, PaymentStatus.PENDING))
        payment_service.record(_pay(invoice, 10000))
        before = store.invoices[invoice.id]

        with pytest.raises(OverpaymentError, match=r"\$14.37"):
            payment_service.settle(pending.id, PaymentStatus.COMPLETED)

        assert store.payments[pending.id].status == PaymentStatus.PENDING
        assert store.invoices[invoice.id] == before
        assert "Rejected completion" in caplog.text

    def test_failing_leaves_invoice_alone(self, payment_service, store, invoice, published):
        pending = payment_service.record(_pay(invoice, 13563, PaymentStatus.PENDING))
        before = store.invoices[invoice.id]
        published.clear()

        failed = payment_service.settle(pending.id, PaymentStatus.FAILED)

        assert failed.status == PaymentStatus.FAILED
        assert store.invoices[invoice.id] is before
        assert [type(e) for e in published] == [PaymentSettled]

    def test_completed_payment_cannot_settle(self, payment_service, invoice):
        payment = payment_service.record(_pay(invoice, 100))
        with pytest.raises(InvalidPaymentTransition, match="completed to failed"):
            payment_service.settle(payment.id, PaymentStatus.FAILED)

    def test_settle_missing_payment(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.settle(uuid4(), PaymentStatus.COMPLETED)

    def test_settle_is_audited(self, payment_service, store, invoice):
        pending = payment_service.record(_pay(invoice, 13563, PaymentStatus.PENDING))
        payment_service.settle(pending.id, PaymentStatus.COMPLETED)

        latest = store.list_audit_entries("payment", pending.id)[0]
        assert latest.changes == {"status": {"old": "pending", "new": "completed"}}

        invoice_entry = store.list_audit_entries("invoice", invoice.id)[0]
        assert invoice_entry.changes["payment_settled"] == pending.payment_number


class TestRefund:
    """Refunding payments."""

    def test_refund_reverts_paid_invoice(self, payment_service, store, invoice, published):
        payment = payment_service.record(_pay(invoice, 13563))
        published.clear()

        refunded = payment_service.refund(payment.id, today=date(2025, 6, 25))

        assert refunded.status == PaymentStatus.REFUNDED
        assert store.payments[payment.id].status == PaymentStatus.REFUNDED
        assert store.invoices[invoice.id].status == InvoiceStatus.SENT
        assert store.invoices[invoice.id].amount_paid_cents == 0
        assert [type(e) for e in published] == [PaymentRefunded]

    def test_refund_after_due_date_makes_overdue(self, payment_service, store, invoice):
        payment = payment_service.record(_pay(invoice, 13563))
        payment_service.refund(payment.id, today=date(2025, 8, 1))
        assert store.invoices[invoice.id].status == InvoiceStatus.OVERDUE

    def test_partial_refund_keeps_other_payments(self, payment_service, store, invoice):
        payment_service.record(_pay(invoice, 10000))
        second = payment_service.record(_pay(invoice, 3563))

        payment_service.refund(second.id, today=date(2025, 6, 25))

        stored = store.invoices[invoice.id]
        assert stored.status == InvoiceStatus.SENT
        assert stored.amount_paid_cents == 10000

    def test_refund_pending_rejected(self, payment_service, store, invoice):
        payment = payment_service.record(_pay(invoice, 100, PaymentStatus.PENDING))
        with pytest.raises(ReversalError):
            payment_service.refund(payment.id)
        assert store.payments[payment.id].status == PaymentStatus.PENDING

    def test_refund_twice_rejected(self, payment_service, invoice):
        payment = payment_service.record(_pay(invoice, 100))
        payment_service.refund(payment.id, today=date(2025, 6, 25))
        with pytest.raises(ReversalError):
            payment_service.refund(payment.id, today=date(2025, 6, 25))

    def test_refund_missing_payment(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.refund(uuid4())

    def test_refund_is_audited(self, payment_service, store, invoice):
        payment = payment_service.record(_pay(invoice, 100))
        payment_service.refund(payment.id, today=date(2025, 6, 25))

        latest = store.list_audit_entries("payment", payment.id)[0]
        assert latest.changes == {"status": {"old": "completed", "new": "refunded"}}


class TestListing:

    def test_list_for_invoice(self, payment_service, invoice):
        first = payment_service.record(_pay(invoice, 100, payment_date=date(2025, 6, 18)))
        second = payment_service.record(_pay(invoice, 100, payment_date=date(2025, 6, 19)))

        assert [p.id for p in payment_service.list_for_invoice(invoice.id)] == [first.id, second.id]

    def test_list_payments_search(self, payment_service, invoice):
        payment_service.record(_pay(invoice, 100))
        check = payment_service.record(
            _pay(invoice, 100, payment_method=PaymentMethod.CHECK, reference_number="CHK-1002")
        )

        assert [p.id for p in payment_service.list_payments(search="chk")] == [check.id]

    def test_get_by_id(self, payment_service, invoice):
        payment = payment_service.record(_pay(invoice, 100))
        assert payment_service.get_by_id(payment.id) == payment
        assert payment_service.get_by_id(uuid4()) is None
