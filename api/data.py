"""GET /api/data — unified read endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from billing.exceptions import NotFoundError
from billing.models import InvoiceStatus, PaymentStatus


VALID_TYPES = {"invoices", "payments"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payment_svc = services["payment"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        search: str | None = Query(None),
        status: str | None = Query(None),
        invoice_id: str | None = Query(None),
        start: date | None = Query(None),
        end: date | None = Query(None),
        include: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        includes = set(include.split(",")) if include else set()
        request_id = getattr(request.state, "request_id", None)

        if type == "invoices":
            data = _handle_invoices(
                invoice_svc, payment_svc, id, search, status, start, end, includes, limit, offset
            )
        else:
            data = _handle_payments(payment_svc, id, search, status, invoice_id, limit, offset)

        return success_response(data, request_id=request_id).model_dump(mode="json")

    return router


def _handle_invoices(invoice_svc, payment_svc, id, search, status, start, end, includes, limit, offset):
    if id:
        invoice = invoice_svc.get_by_id(UUID(id))
        if invoice is None:
            raise NotFoundError(f"Invoice {id} not found")

        data = invoice.model_dump(mode="json")
        data["balance_due_cents"] = invoice.balance_due_cents
        if "payments" in includes:
            payments = payment_svc.list_for_invoice(invoice.id)
            data["payments"] = [p.model_dump(mode="json") for p in payments]
        if "history" in includes:
            entries = invoice_svc.history(invoice.id)
            data["history"] = [e.model_dump(mode="json") for e in entries]

        return data

    invoices = invoice_svc.list_invoices(
        search=search,
        status=InvoiceStatus(status) if status else None,
        start=start,
        end=end,
    )
    return [i.model_dump(mode="json") for i in invoices[offset:offset + limit]]


def _handle_payments(payment_svc, id, search, status, invoice_id, limit, offset):
    if id:
        payment = payment_svc.get_by_id(UUID(id))
        if payment is None:
            raise NotFoundError(f"Payment {id} not found")
        return payment.model_dump(mode="json")

    if invoice_id:
        payments = payment_svc.list_for_invoice(UUID(invoice_id))
    else:
        payments = payment_svc.list_payments(
            search=search,
            status=PaymentStatus(status) if status else None,
        )
    return [p.model_dump(mode="json") for p in payments[offset:offset + limit]]
