"""Shared test fixtures for the ledger test suite."""

import os
import pytest
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from uuid import UUID, uuid4

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Drop any Vault client built before .env was loaded
from clients.vault_client import reset_vault_state
reset_vault_state()

from billing.audit import AuditEntry, AuditLogger
from billing.config import BillingConfig
from billing.event_bus import EventBus
from billing.events import LedgerEvent
from billing.exceptions import SequenceConflictError
from billing.invoice_builder import InvoiceBuilder
from billing.models import (
    Expense,
    Invoice,
    InvoiceStatus,
    LineItem,
    Payment,
)
from billing.store import SequenceKind
from utils.user_context import user_context, clear_current_user_id


# =============================================================================
# TEST CONSTANTS
# =============================================================================

# Staff member used for audit attribution
TEST_STAFF_ID = UUID("00000000-0000-0000-0000-000000000001")

PATIENT_ALICE_ID = UUID("00000000-0000-0000-0000-00000000a11c")
PATIENT_BOB_ID = UUID("00000000-0000-0000-0000-000000000b0b")


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


class InMemoryLedgerStore:
    """
    LedgerStore kept in dicts, for tests that don't need PostgreSQL.

    transaction() restores invoices and payments if the block raises, and
    duplicate numbers raise SequenceConflictError like the unique index does.
    """

    def __init__(self):
        self.invoices: dict[UUID, Invoice] = {}
        self.payments: dict[UUID, Payment] = {}
        self.expenses: list[Expense] = []
        self.patients: dict[UUID, str] = {}
        self.audit_entries: list[AuditEntry] = []
        self.sequences: dict[tuple[SequenceKind, int, int], int] = {}
        self.locked: list[UUID] = []
        self.transaction_depth = 0

    @contextmanager
    def transaction(self):
        snapshot = (dict(self.invoices), dict(self.payments))
        self.transaction_depth += 1
        try:
            yield
        except Exception:
            self.invoices, self.payments = snapshot
            raise
        finally:
            self.transaction_depth -= 1

    def next_sequence(self, kind: SequenceKind, year: int, month: int) -> int:
        key = (SequenceKind(kind), year, month)
        self.sequences[key] = self.sequences.get(key, 0) + 1
        return self.sequences[key]

    def load_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        if for_update:
            self.locked.append(invoice_id)
        return self.invoices.get(invoice_id)

    def save_invoice(self, invoice: Invoice) -> Invoice:
        for other in self.invoices.values():
            if other.id != invoice.id and other.invoice_number == invoice.invoice_number:
                raise SequenceConflictError(
                    f"Invoice number {invoice.invoice_number} already exists"
                )
        self.invoices[invoice.id] = invoice
        return invoice

    def delete_invoice(self, invoice_id: UUID) -> bool:
        return self.invoices.pop(invoice_id, None) is not None

    def list_invoices(self, start=None, end=None, statuses=None) -> list[Invoice]:
        statuses = set(statuses) if statuses is not None else None
        result = [
            i for i in self.invoices.values()
            if (start is None or i.invoice_date >= start)
            and (end is None or i.invoice_date <= end)
            and (statuses is None or i.status in statuses)
        ]
        result.sort(key=lambda i: (i.invoice_date, i.invoice_number), reverse=True)
        return result

    def load_payment(self, payment_id: UUID, for_update: bool = False) -> Payment | None:
        if for_update:
            self.locked.append(payment_id)
        return self.payments.get(payment_id)

    def load_payments_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        result = [p for p in self.payments.values() if p.invoice_id == invoice_id]
        result.sort(key=lambda p: (p.payment_date, p.created_at))
        return result

    def save_payment(self, payment: Payment) -> Payment:
        for other in self.payments.values():
            if other.id != payment.id and other.payment_number == payment.payment_number:
                raise SequenceConflictError(
                    f"Payment number {payment.payment_number} already exists"
                )
        self.payments[payment.id] = payment
        return payment

    def list_payments(self) -> list[Payment]:
        result = list(self.payments.values())
        result.sort(key=lambda p: (p.payment_date, p.payment_number), reverse=True)
        return result

    def list_expenses(self, start: date, end: date) -> list[Expense]:
        return [e for e in self.expenses if start <= e.transaction_date <= end]

    def patient_names(self, patient_ids) -> dict[UUID, str]:
        return {pid: self.patients[pid] for pid in set(patient_ids) if pid in self.patients}

    def append_audit_entry(self, entry: AuditEntry) -> None:
        self.audit_entries.append(entry)

    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[AuditEntry]:
        entries = [
            e for e in self.audit_entries
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return list(reversed(entries))


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def staff_id() -> UUID:
    """The test staff member's ID."""
    return TEST_STAFF_ID


@pytest.fixture
def as_staff(staff_id):
    """Act as the test staff member for the duration of the test."""
    with user_context(staff_id):
        yield staff_id


# =============================================================================
# LEDGER FIXTURES
# =============================================================================


@pytest.fixture
def config() -> BillingConfig:
    """Default practice settings: USD, 8.5% tax, 30-day terms."""
    return BillingConfig()


@pytest.fixture
def store() -> InMemoryLedgerStore:
    store = InMemoryLedgerStore()
    store.patients[PATIENT_ALICE_ID] = "Alice Adams"
    store.patients[PATIENT_BOB_ID] = "Bob Brown"
    return store


@pytest.fixture
def patient_id() -> UUID:
    return PATIENT_ALICE_ID


@pytest.fixture
def other_patient_id() -> UUID:
    return PATIENT_BOB_ID


@pytest.fixture
def audit(store) -> AuditLogger:
    return AuditLogger(store)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(event_bus) -> list[LedgerEvent]:
    """Every event published on the bus, in order."""
    events: list[LedgerEvent] = []
    event_bus.subscribe(LedgerEvent, events.append)
    return events


@pytest.fixture
def builder(config) -> InvoiceBuilder:
    return InvoiceBuilder(config)


@pytest.fixture
def make_invoice(builder, patient_id):
    """
    Factory for submitted invoices.

    make_invoice([(qty, unit_price_cents), ...], status=..., invoice_date=...)
    """
    counter = {"seq": 0}

    def _make(
        items=((1, 10000),),
        status: InvoiceStatus = InvoiceStatus.SENT,
        invoice_date: date = date(2025, 6, 1),
        due_date: date | None = None,
        patient: UUID | None = None,
    ) -> Invoice:
        draft = builder.new_draft(
            invoice_date=invoice_date,
            due_date=due_date,
            patient_id=patient or patient_id,
        )
        draft = draft.model_copy(update={
            "line_items": tuple(
                LineItem(description=f"Service {n}", quantity=qty, unit_price_cents=price)
                for n, (qty, price) in enumerate(items, start=1)
            )
        })
        counter["seq"] += 1

        submitted_status = status if status in (InvoiceStatus.DRAFT, InvoiceStatus.SENT) else InvoiceStatus.SENT
        invoice = builder.submit(draft, submitted_status, counter["seq"])
        if status == InvoiceStatus.PAID:
            invoice = invoice.model_copy(update={
                "status": status, "amount_paid_cents": invoice.total_amount_cents,
            })
        elif status != submitted_status:
            invoice = invoice.model_copy(update={"status": status})
        return invoice

    return _make


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def invoice_service(store, audit, event_bus, config):
    from billing.services.invoice_service import InvoiceService
    return InvoiceService(store, audit, event_bus, config)


@pytest.fixture
def payment_service(store, audit, event_bus, config):
    from billing.services.payment_service import PaymentService
    return PaymentService(store, audit, event_bus, config)


@pytest.fixture
def report_service(store):
    from billing.services.report_service import ReportService
    return ReportService(store)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """Session-scoped PostgresClient. Skips when Vault is not configured."""
    if not os.getenv("VAULT_ADDR"):
        pytest.skip("VAULT_ADDR not set; PostgreSQL tests need Vault credentials")

    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    client = PostgresClient(get_database_url())
    client.execute((Path(__file__).parent.parent / "schema" / "billing.sql").read_text())
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty ledger tables before the test."""
    db.execute("""
        TRUNCATE
            audit_log, payments, invoice_line_items, invoices,
            billing_sequences, financial_transactions, patients
        CASCADE
    """)
    yield db
