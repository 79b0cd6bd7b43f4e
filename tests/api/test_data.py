"""Tests for GET /api/data."""

from uuid import uuid4


class TestValidation:

    def test_type_required(self, client):
        response = client.get("/api/data")
        assert response.status_code == 400
        assert "'type'" in response.json()["error"]["message"]

    def test_unknown_type(self, client):
        response = client.get("/api/data", params={"type": "patients"})
        assert response.status_code == 400


class TestInvoices:

    def test_get_by_id_with_payments_and_history(self, client, act, created_invoice):
        act("payment", "record", {
            "invoice_id": created_invoice["id"],
            "amount_cents": 5000,
            "payment_date": "2025-06-20",
            "status": "completed",
        })

        response = client.get("/api/data", params={
            "type": "invoices", "id": created_invoice["id"], "include": "payments,history",
        })

        data = response.json()["data"]
        assert data["balance_due_cents"] == 8563
        assert len(data["payments"]) == 1
        assert [e["action"] for e in data["history"]] == ["update", "create"]

    def test_get_missing(self, client):
        response = client.get("/api/data", params={"type": "invoices", "id": str(uuid4())})
        assert response.status_code == 404

    def test_list_with_filters(self, client, act, created_invoice, invoice_payload):
        invoice_payload["status"] = "draft"
        act("invoice", "create", invoice_payload)

        response = client.get("/api/data", params={"type": "invoices", "status": "sent"})

        assert [i["id"] for i in response.json()["data"]] == [created_invoice["id"]]

    def test_list_search(self, client, created_invoice):
        response = client.get("/api/data", params={"type": "invoices", "search": "alice"})
        assert len(response.json()["data"]) == 1

        response = client.get("/api/data", params={"type": "invoices", "search": "nobody"})
        assert response.json()["data"] == []

    def test_bad_status(self, client):
        response = client.get("/api/data", params={"type": "invoices", "status": "partial"})
        assert response.status_code == 400


class TestPayments:

    def test_list_for_invoice(self, client, act, created_invoice):
        act("payment", "record", {
            "invoice_id": created_invoice["id"],
            "amount_cents": 100,
            "payment_date": "2025-06-20",
        })

        response = client.get("/api/data", params={
            "type": "payments", "invoice_id": created_invoice["id"],
        })

        [payment] = response.json()["data"]
        assert payment["status"] == "pending"
        assert payment["payment_method"] == "cash"

    def test_get_missing(self, client):
        response = client.get("/api/data", params={"type": "payments", "id": str(uuid4())})
        assert response.status_code == 404
