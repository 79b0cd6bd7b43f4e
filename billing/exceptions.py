"""Typed exceptions for billing ledger failures.

Every expected business failure has its own type and a message that can be
shown to staff as-is. All inherit from ValueError so generic request handling
still classifies them as client errors.
"""

from enum import Enum


class LedgerError(ValueError):
    """Base class for billing ledger errors."""


class NotFoundError(LedgerError):
    """Invoice or payment does not exist."""


class InvalidAmount(LedgerError):
    """Amount is negative, non-integral, or otherwise malformed."""


class InvalidQuantity(LedgerError):
    """Quantity is zero, negative, or not a whole number."""


class InvalidDateRange(LedgerError):
    """Report range ends before it starts."""


class ValidationReason(str, Enum):
    """Why an invoice draft was rejected on submit."""

    MISSING_PATIENT = "missing_patient"
    EMPTY_DESCRIPTION = "empty_description"
    NO_LINE_ITEMS = "no_line_items"
    DUE_BEFORE_INVOICE_DATE = "due_before_invoice_date"


class InvoiceValidationError(LedgerError):
    """Draft cannot be submitted until the user corrects it."""

    def __init__(self, reason: ValidationReason, message: str):
        self.reason = reason
        super().__init__(message)


class LastItemError(LedgerError):
    """Removing the item would leave the invoice with no line items."""


class LineItemNotFound(LedgerError):
    """Draft has no line item with the given id."""


class InvalidStatusTransition(LedgerError):
    """Invoice cannot move from its current status to the requested one."""


class InvoiceHasPayments(LedgerError):
    """Invoice has payments recorded against it and cannot be deleted."""


class PaymentError(LedgerError):
    """Payment cannot be applied to the invoice."""


class OverpaymentError(PaymentError):
    """
    Completed payments would exceed the invoice total.

    Never clamped. Callers must route the excess through a refund or credit
    workflow explicitly.
    """

    def __init__(self, excess_cents: int, message: str):
        self.excess_cents = excess_cents
        super().__init__(message)


class InvoiceNotPayableError(PaymentError):
    """Invoice is cancelled and accepts no payments."""


class PaymentMismatchError(PaymentError):
    """Payment references a different invoice."""


class PaymentMethodNotAccepted(PaymentError):
    """Practice does not take this payment method."""


class InvalidPaymentTransition(PaymentError):
    """Only a pending payment can be completed or marked failed."""


class ReversalError(LedgerError):
    """Only completed payments can be refunded."""


class SequenceConflictError(LedgerError):
    """
    Generated invoice or payment number already exists.

    Raised by storage on a unique-constraint violation. The caller retries
    with a freshly allocated sequence.
    """
