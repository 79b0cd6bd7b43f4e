"""
LedgerStore backed by PostgreSQL.

Schema lives in schema/billing.sql. Rows are parsed into pydantic models
before leaving this module.
"""

import logging
from datetime import date
from typing import Any, Iterable
from uuid import UUID

from psycopg2.errors import UniqueViolation
from psycopg2.extras import Json

from billing.audit import AuditEntry
from billing.exceptions import SequenceConflictError
from billing.models import Expense, Invoice, InvoiceStatus, LineItem, Payment
from billing.store import SequenceKind
from clients.postgres_client import PostgresClient

logger = logging.getLogger(__name__)


class PostgresLedgerStore:
    """LedgerStore implementation over PostgresClient."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def transaction(self):
        return self.postgres.transaction()

    # -------------------------------------------------------------------------
    # Sequences
    # -------------------------------------------------------------------------

    def next_sequence(self, kind: SequenceKind, year: int, month: int) -> int:
        """
        Allocate the next number for (kind, year, month).

        A single upsert increments and returns in one statement, so concurrent
        callers serialize on the row lock and never see the same value.
        """
        return self.postgres.execute_scalar(
            """
            INSERT INTO billing_sequences (kind, year, month, last_value)
            VALUES (%s, %s, %s, 1)
            ON CONFLICT (kind, year, month)
            DO UPDATE SET last_value = billing_sequences.last_value + 1
            RETURNING last_value
            """,
            (SequenceKind(kind).value, year, month)
        )

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def _line_items_for(self, invoice_ids: list[UUID]) -> dict[UUID, list[LineItem]]:
        if not invoice_ids:
            return {}

        rows = self.postgres.execute(
            """
            SELECT * FROM invoice_line_items
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY invoice_id, position ASC
            """,
            (invoice_ids,)
        )

        items: dict[UUID, list[LineItem]] = {}
        for row in rows:
            items.setdefault(UUID(str(row["invoice_id"])), []).append(LineItem.model_validate(row))
        return items

    def _invoices_from_rows(self, rows: list[dict[str, Any]]) -> list[Invoice]:
        items = self._line_items_for([UUID(str(row["id"])) for row in rows])
        return [
            Invoice.model_validate({**row, "line_items": items.get(UUID(str(row["id"])), [])})
            for row in rows
        ]

    def load_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        query = "SELECT * FROM invoices WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"

        row = self.postgres.execute_single(query, (invoice_id,))
        if row is None:
            return None

        return self._invoices_from_rows([row])[0]

    def save_invoice(self, invoice: Invoice) -> Invoice:
        """
        Upsert the invoice row and replace its line items.

        Raises:
            SequenceConflictError: If the invoice number is already taken
        """
        with self.postgres.transaction():
            try:
                self.postgres.execute(
                    """
                    INSERT INTO invoices (
                        id, invoice_number, patient_id,
                        invoice_date, due_date,
                        subtotal_cents, tax_rate_bps, tax_amount_cents, total_amount_cents,
                        amount_paid_cents, status, notes,
                        created_at, updated_at
                    ) VALUES (
                        %s, %s, %s,
                        %s, %s,
                        %s, %s, %s, %s,
                        %s, %s, %s,
                        %s, %s
                    )
                    ON CONFLICT (id) DO UPDATE SET
                        due_date = EXCLUDED.due_date,
                        subtotal_cents = EXCLUDED.subtotal_cents,
                        tax_rate_bps = EXCLUDED.tax_rate_bps,
                        tax_amount_cents = EXCLUDED.tax_amount_cents,
                        total_amount_cents = EXCLUDED.total_amount_cents,
                        amount_paid_cents = EXCLUDED.amount_paid_cents,
                        status = EXCLUDED.status,
                        notes = EXCLUDED.notes,
                        updated_at = EXCLUDED.updated_at
                    """,
                    (
                        invoice.id, invoice.invoice_number, invoice.patient_id,
                        invoice.invoice_date, invoice.due_date,
                        invoice.subtotal_cents, invoice.tax_rate_bps,
                        invoice.tax_amount_cents, invoice.total_amount_cents,
                        invoice.amount_paid_cents, invoice.status.value, invoice.notes,
                        invoice.created_at, invoice.updated_at
                    )
                )
            except UniqueViolation:
                raise SequenceConflictError(
                    f"Invoice number {invoice.invoice_number} already exists"
                )

            self.postgres.execute(
                "DELETE FROM invoice_line_items WHERE invoice_id = %s",
                (invoice.id,)
            )
            for position, item in enumerate(invoice.line_items):
                self.postgres.execute(
                    """
                    INSERT INTO invoice_line_items (
                        id, invoice_id, position,
                        description, quantity, unit_price_cents, total_cents,
                        service_date
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        item.id, invoice.id, position,
                        item.description, item.quantity, item.unit_price_cents, item.total_cents,
                        item.service_date
                    )
                )

        return invoice

    def delete_invoice(self, invoice_id: UUID) -> bool:
        # Line items go with it via ON DELETE CASCADE
        rows = self.postgres.execute(
            "DELETE FROM invoices WHERE id = %s RETURNING id",
            (invoice_id,)
        )
        return bool(rows)

    def list_invoices(
        self,
        start: date | None = None,
        end: date | None = None,
        statuses: Iterable[InvoiceStatus] | None = None,
    ) -> list[Invoice]:
        conditions = []
        params: list[Any] = []

        if start is not None:
            conditions.append("invoice_date >= %s")
            params.append(start)
        if end is not None:
            conditions.append("invoice_date <= %s")
            params.append(end)
        if statuses is not None:
            conditions.append("status = ANY(%s)")
            params.append([InvoiceStatus(s).value for s in statuses])

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.postgres.execute(
            f"SELECT * FROM invoices {where} ORDER BY invoice_date DESC, invoice_number DESC",
            tuple(params)
        )
        return self._invoices_from_rows(rows)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def load_payment(self, payment_id: UUID, for_update: bool = False) -> Payment | None:
        query = "SELECT * FROM payments WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"

        row = self.postgres.execute_single(query, (payment_id,))
        if row is None:
            return None

        return Payment.model_validate(row)

    def load_payments_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        rows = self.postgres.execute(
            """
            SELECT * FROM payments
            WHERE invoice_id = %s
            ORDER BY payment_date ASC, created_at ASC
            """,
            (invoice_id,)
        )
        return [Payment.model_validate(row) for row in rows]

    def save_payment(self, payment: Payment) -> Payment:
        """
        Upsert a payment.

        Raises:
            SequenceConflictError: If the payment number is already taken
        """
        try:
            self.postgres.execute(
                """
                INSERT INTO payments (
                    id, payment_number, invoice_id, patient_id,
                    amount_cents, payment_date, payment_method, status,
                    reference_number, notes, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s
                )
                ON CONFLICT (id) DO UPDATE SET
                    status = EXCLUDED.status,
                    reference_number = EXCLUDED.reference_number,
                    notes = EXCLUDED.notes,
                    updated_at = EXCLUDED.updated_at
                """,
                (
                    payment.id, payment.payment_number, payment.invoice_id, payment.patient_id,
                    payment.amount_cents, payment.payment_date,
                    payment.payment_method.value, payment.status.value,
                    payment.reference_number, payment.notes,
                    payment.created_at, payment.updated_at
                )
            )
        except UniqueViolation:
            raise SequenceConflictError(
                f"Payment number {payment.payment_number} already exists"
            )
        return payment

    def list_payments(self) -> list[Payment]:
        rows = self.postgres.execute(
            "SELECT * FROM payments ORDER BY payment_date DESC, payment_number DESC"
        )
        return [Payment.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Reference data
    # -------------------------------------------------------------------------

    def list_expenses(self, start: date, end: date) -> list[Expense]:
        rows = self.postgres.execute(
            """
            SELECT id, transaction_date, amount_cents, description
            FROM financial_transactions
            WHERE transaction_type = 'expense'
              AND transaction_date >= %s AND transaction_date <= %s
            ORDER BY transaction_date ASC
            """,
            (start, end)
        )
        return [Expense.model_validate(row) for row in rows]

    def patient_names(self, patient_ids: Iterable[UUID]) -> dict[UUID, str]:
        ids = list(set(patient_ids))
        if not ids:
            return {}

        rows = self.postgres.execute(
            "SELECT id, first_name, last_name FROM patients WHERE id = ANY(%s::uuid[])",
            (ids,)
        )
        return {
            UUID(str(row["id"])): f"{row['first_name']} {row['last_name']}".strip()
            for row in rows
        }

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    def append_audit_entry(self, entry: AuditEntry) -> None:
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry.id,
                entry.user_id,
                entry.entity_type,
                entry.entity_id,
                entry.action.value,
                Json(entry.changes),
                entry.created_at
            )
        )

    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[AuditEntry]:
        rows = self.postgres.execute(
            """
            SELECT id, user_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id)
        )
        return [AuditEntry.model_validate(row) for row in rows]
