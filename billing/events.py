"""
Domain events for the billing ledger.

Immutable event objects that represent state changes in billing. Services
publish what happened; handlers (notifications, dashboards) react without
the publisher knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (issued, sent, paid, overdue, cancelled)
- PaymentEvent: Payment lifecycle (recorded, settled, refunded)

Events carry the full domain object so handlers don't need to re-fetch state.
They are published only after the store write has committed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from billing.models import Invoice, Payment
from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class LedgerEvent:
    """Base class for all billing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class InvoiceEvent(LedgerEvent):
    """Events related to invoice lifecycle."""
    invoice: Invoice


@dataclass(frozen=True, kw_only=True)
class InvoiceIssued(InvoiceEvent):
    """A new invoice was created (as draft or sent)."""


@dataclass(frozen=True, kw_only=True)
class InvoiceSent(InvoiceEvent):
    """A draft invoice was sent to the patient."""


@dataclass(frozen=True, kw_only=True)
class InvoicePaid(InvoiceEvent):
    """Completed payments now cover the invoice total."""


@dataclass(frozen=True, kw_only=True)
class InvoiceOverdue(InvoiceEvent):
    """Invoice passed its due date unpaid."""


@dataclass(frozen=True, kw_only=True)
class InvoiceCancelled(InvoiceEvent):
    """Invoice was cancelled by staff."""


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class PaymentEvent(LedgerEvent):
    """Events related to payment lifecycle."""
    payment: Payment


@dataclass(frozen=True, kw_only=True)
class PaymentRecorded(PaymentEvent):
    """A payment was recorded against an invoice."""


@dataclass(frozen=True, kw_only=True)
class PaymentRefunded(PaymentEvent):
    """A completed payment was refunded."""


@dataclass(frozen=True, kw_only=True)
class PaymentSettled(PaymentEvent):
    """A pending payment was completed or marked failed."""
