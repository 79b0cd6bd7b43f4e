"""POST /api/actions — unified mutation endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from billing.exceptions import NotFoundError
from billing.models import InvoiceCreate, PaymentCreate, PaymentStatus


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"]),
        "payment": PaymentHandler(services["payment"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(body.data)
        return success_response(
            result, request_id=getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {"preview", "create", "send", "cancel", "delete", "refresh_overdue"}

    def __init__(self, service):
        self.service = service

    def _handle_preview(self, data: dict):
        draft = self.service.draft_from_request(InvoiceCreate(**data))
        totals = self.service.builder.compute_totals(draft)
        return totals.model_dump(mode="json")

    def _handle_create(self, data: dict):
        invoice = self.service.create_from_request(InvoiceCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_send(self, data: dict):
        invoice = self.service.send(UUID(data["id"]))
        return invoice.model_dump(mode="json")

    def _handle_cancel(self, data: dict):
        invoice = self.service.cancel(UUID(data["id"]))
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        invoice_id = UUID(data["id"])
        deleted = self.service.delete(invoice_id)
        if not deleted:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return {"deleted": True}

    def _handle_refresh_overdue(self, data: dict):
        today = date.fromisoformat(data["today"]) if data.get("today") else None
        changed = self.service.refresh_overdue(today)
        return [i.model_dump(mode="json") for i in changed]


class PaymentHandler:
    ALLOWED_ACTIONS = {"record", "complete", "fail", "refund"}

    def __init__(self, service):
        self.service = service

    def _handle_record(self, data: dict):
        payment = self.service.record(PaymentCreate(**data))
        return payment.model_dump(mode="json")

    def _handle_complete(self, data: dict):
        payment = self.service.settle(UUID(data["id"]), PaymentStatus.COMPLETED)
        return payment.model_dump(mode="json")

    def _handle_fail(self, data: dict):
        payment = self.service.settle(UUID(data["id"]), PaymentStatus.FAILED)
        return payment.model_dump(mode="json")

    def _handle_refund(self, data: dict):
        today = date.fromisoformat(data["today"]) if data.get("today") else None
        payment = self.service.refund(UUID(data["id"]), today)
        return payment.model_dump(mode="json")
