"""GET /api/reports — financial reports."""

from datetime import date

from fastapi import APIRouter, Query, Request

from api.base import success_response


def create_reports_router(services: dict) -> APIRouter:
    router = APIRouter()

    report_svc = services["report"]

    @router.get("/reports/revenue")
    async def revenue(
        request: Request,
        start: date = Query(...),
        end: date = Query(...),
        include_empty: bool = Query(False),
    ):
        periods = report_svc.revenue_by_period(start, end, include_empty=include_empty)
        return success_response(
            [p.model_dump(mode="json") for p in periods],
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    @router.get("/reports/patients")
    async def patients(
        request: Request,
        start: date = Query(...),
        end: date = Query(...),
    ):
        rows = report_svc.revenue_by_patient(start, end)
        return success_response(
            [r.model_dump(mode="json") for r in rows],
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    @router.get("/reports/totals")
    async def totals(
        request: Request,
        start: date = Query(...),
        end: date = Query(...),
    ):
        return success_response(
            report_svc.financial_totals(start, end).model_dump(mode="json"),
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    @router.get("/reports/summary")
    async def summary(request: Request):
        return success_response(
            {
                "invoices": report_svc.billing_summary().model_dump(mode="json"),
                "payments": report_svc.payment_summary().model_dump(mode="json"),
            },
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    return router
