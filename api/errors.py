"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from billing.exceptions import (
    InvalidAmount,
    InvalidDateRange,
    InvalidPaymentTransition,
    InvalidQuantity,
    InvalidStatusTransition,
    InvoiceHasPayments,
    InvoiceNotPayableError,
    InvoiceValidationError,
    LastItemError,
    LedgerError,
    LineItemNotFound,
    NotFoundError,
    OverpaymentError,
    PaymentMethodNotAccepted,
    PaymentMismatchError,
    ReversalError,
    SequenceConflictError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
LEDGER_ERROR_MAP: list[tuple[type[LedgerError], int, str]] = [
    (NotFoundError, 404, ErrorCodes.NOT_FOUND),
    (LineItemNotFound, 404, ErrorCodes.LINE_ITEM_NOT_FOUND),
    (OverpaymentError, 409, ErrorCodes.OVERPAYMENT),
    (InvoiceNotPayableError, 409, ErrorCodes.INVOICE_NOT_PAYABLE),
    (PaymentMismatchError, 400, ErrorCodes.PAYMENT_MISMATCH),
    (PaymentMethodNotAccepted, 400, ErrorCodes.PAYMENT_METHOD_NOT_ACCEPTED),
    (ReversalError, 409, ErrorCodes.PAYMENT_NOT_REFUNDABLE),
    (InvalidPaymentTransition, 409, ErrorCodes.INVALID_PAYMENT_TRANSITION),
    (InvalidStatusTransition, 409, ErrorCodes.INVALID_STATUS_TRANSITION),
    (InvoiceHasPayments, 409, ErrorCodes.INVOICE_HAS_PAYMENTS),
    (SequenceConflictError, 409, ErrorCodes.SEQUENCE_CONFLICT),
    (InvoiceValidationError, 422, ErrorCodes.INVOICE_INCOMPLETE),
    (LastItemError, 422, ErrorCodes.LAST_LINE_ITEM),
    (InvalidAmount, 400, ErrorCodes.INVALID_AMOUNT),
    (InvalidQuantity, 400, ErrorCodes.INVALID_QUANTITY),
    (InvalidDateRange, 400, ErrorCodes.INVALID_DATE_RANGE),
]


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def classify_ledger_error(exc: LedgerError) -> tuple[int, str, dict | None]:
    """HTTP status, error code and structured details for a ledger error."""
    details = None
    if isinstance(exc, OverpaymentError):
        details = {"excess_cents": exc.excess_cents}
    elif isinstance(exc, InvoiceValidationError):
        details = {"reason": exc.reason.value}

    for exc_type, status_code, code in LEDGER_ERROR_MAP:
        if isinstance(exc, exc_type):
            return status_code, code, details

    return 400, ErrorCodes.INVALID_REQUEST, details


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code, code, details = classify_ledger_error(exc)
        logger.info(f"{request.method} {request.url.path} rejected: {code} {exc}")
        return JSONResponse(
            status_code=status_code,
            content=error_response(
                code, str(exc), details, request_id=_request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.INVALID_REQUEST, str(exc), request_id=_request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )
