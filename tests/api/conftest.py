"""API test fixtures — TestClient over the in-memory ledger store."""

import pytest
from starlette.testclient import TestClient

from api.app import build_services, create_app


# =============================================================================
# SERVICES & APP
# =============================================================================


@pytest.fixture
def services(store, config, event_bus):
    return build_services(store, config, event_bus)


@pytest.fixture
def app(services):
    """FastAPI app with middleware, error handlers and ledger routes."""
    return create_app(services)


@pytest.fixture
def client(app, staff_id):
    """Test client acting as the test staff member."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Staff-Id"] = str(staff_id)
    return c


@pytest.fixture
def anonymous_client(app):
    """Test client with no staff header."""
    return TestClient(app, raise_server_exceptions=False)


# =============================================================================
# HELPERS
# =============================================================================


@pytest.fixture
def act(client):
    """POST an action and return the response."""
    def _act(domain: str, action: str, data: dict):
        return client.post("/api/actions", json={"domain": domain, "action": action, "data": data})
    return _act


@pytest.fixture
def invoice_payload(patient_id):
    """Create payload: $125.00 + 8.5% tax = $135.63."""
    return {
        "patient_id": str(patient_id),
        "invoice_date": "2025-06-15",
        "status": "sent",
        "line_items": [
            {"description": "Home visit", "quantity": 2, "unit_price_cents": 5000},
            {"description": "Dressing supplies", "quantity": 1, "unit_price_cents": 2500},
        ],
    }


@pytest.fixture
def created_invoice(act, invoice_payload):
    """A sent invoice created through the API, as JSON."""
    response = act("invoice", "create", invoice_payload)
    assert response.status_code == 200
    return response.json()["data"]
