"""FastAPI application factory."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, StaffContextMiddleware
from api.reports import create_reports_router
from billing.audit import AuditLogger
from billing.config import BillingConfig, load_billing_config
from billing.event_bus import EventBus
from billing.postgres_store import PostgresLedgerStore
from billing.services.invoice_service import InvoiceService
from billing.services.payment_service import PaymentService
from billing.services.report_service import ReportService
from billing.store import LedgerStore

logger = logging.getLogger(__name__)


def build_services(
    store: LedgerStore,
    config: BillingConfig | None = None,
    event_bus: EventBus | None = None,
) -> dict:
    """Wire the ledger services around one store."""
    config = config or BillingConfig()
    event_bus = event_bus or EventBus()
    audit = AuditLogger(store)

    return {
        "invoice": InvoiceService(store, audit, event_bus, config),
        "payment": PaymentService(store, audit, event_bus, config),
        "report": ReportService(store),
    }


def create_app(services: dict) -> FastAPI:
    """FastAPI app with middleware, error handlers and ledger routes."""
    app = FastAPI(title="CareLedger")

    # Added last runs first: request id is assigned before staff context
    app.add_middleware(StaffContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_reports_router(services), prefix="/api")

    return app


def create_production_app() -> FastAPI:
    """App backed by PostgreSQL with settings and credentials from Vault."""
    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    config = load_billing_config()
    store = PostgresLedgerStore(PostgresClient(get_database_url()))
    logger.info(f"Starting ledger API ({config.currency}, tax {config.tax_rate_bps} bps)")

    return create_app(build_services(store, config))
