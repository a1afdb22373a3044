"""
Tests for the FastAPI application

Drives the fund flow end to end over HTTP with the seeded in-memory
services.
"""

import pytest
from fastapi.testclient import TestClient

from sitefunds.api.deps import get_services
from sitefunds.api.main import app
from sitefunds.services import Services


@pytest.fixture
def client(services: Services):
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict[str, str]:
    return {"X-User-ID": user_id}


@pytest.fixture
def allocation_id(client: TestClient) -> str:
    """A 50000 allocation from manager to supervisor, disbursed over the API."""
    response = client.post(
        "/api/allocations",
        json={"to_user": "supervisor", "amount": "50000", "site_id": "site-1"},
        headers=as_user("manager"),
    )
    assert response.status_code == 201
    allocation_id = response.json()["id"]

    response = client.put(
        f"/api/allocations/{allocation_id}/status", json={"status": "approved"}, headers=as_user("director")
    )
    assert response.status_code == 200
    response = client.put(
        f"/api/allocations/{allocation_id}/status", json={"status": "disbursed"}, headers=as_user("supervisor")
    )
    assert response.json()["status"] == "disbursed"
    return allocation_id


# =============================================================================
# Basic Endpoint Tests
# =============================================================================

class TestBasics:
    """Tests for root, health and authentication."""

    def test_health(self, client: TestClient):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").json()["status"] == "running"

    def test_unknown_user_forbidden(self, client: TestClient):
        response = client.get("/api/allocations", headers=as_user("ghost"))
        assert response.status_code == 403

    def test_development_user_without_header(self, client: TestClient):
        """The configured dev user acts as the top authority."""
        response = client.get("/api/wallet/me")
        assert response.status_code == 200
        assert response.json()["user_id"] == "dev"

        response = client.post("/api/allocations", json={"to_user": "manager", "amount": "1000"})
        assert response.status_code == 201
        response = client.put(f"/api/allocations/{response.json()['id']}/status", json={"status": "approved"})
        assert response.json()["approved_by"] == "dev"

    def test_configured_users_without_overrides(self, monkeypatch):
        """The process-wide services load the user directory from config."""
        monkeypatch.setenv("ENVIRONMENT", "development")
        monkeypatch.delenv("REPOSITORY_BACKEND", raising=False)
        monkeypatch.delenv("FUND_FLOW_CONFIG_DIR", raising=False)
        get_services.cache_clear()
        try:
            with TestClient(app) as test_client:
                assert test_client.get("/api/wallet/me").status_code == 200
                response = test_client.get("/api/allocations", headers=as_user("dev"))
                assert response.status_code == 200
        finally:
            get_services.cache_clear()


# =============================================================================
# Fund Flow Tests
# =============================================================================

class TestFundFlow:
    """Allocation, expense and utilization over HTTP."""

    def test_expense_approved_below_request(self, client: TestClient, allocation_id: str):
        response = client.post(
            "/api/expenses",
            json={
                "site_id": "site-1",
                "category_id": "materials",
                "fund_allocation_id": allocation_id,
                "amount": "5000",
            },
            headers=as_user("supervisor"),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["warnings"] == []
        expense_id = body["record"]["id"]

        response = client.put(
            f"/api/expenses/{expense_id}/decision",
            json={"action": "approve", "approved_amount": "4500"},
            headers=as_user("director"),
        )
        assert response.json()["approved_amount"] == "4500"

        response = client.put(
            f"/api/expenses/{expense_id}/decision",
            json={"action": "pay", "payment_method": "cash"},
            headers=as_user("director"),
        )
        assert response.json()["status"] == "paid"

        utilization = client.get(
            f"/api/allocations/{allocation_id}/utilization", headers=as_user("supervisor")
        ).json()
        assert utilization["total_utilized"] == "4500.00"
        assert utilization["remaining_balance"] == "45500.00"

        wallet = client.get("/api/wallet/me", headers=as_user("supervisor")).json()
        assert wallet["remaining_balance"] == "45500.00"

    def test_amounts_hidden_from_mid_level(self, client: TestClient, allocation_id: str):
        expense_id = client.post(
            "/api/expenses",
            json={"site_id": "site-1", "category_id": "fuel", "fund_allocation_id": allocation_id, "amount": "800"},
            headers=as_user("supervisor"),
        ).json()["record"]["id"]

        response = client.get(f"/api/expenses/{expense_id}", headers=as_user("manager"))
        assert response.status_code == 200
        assert response.json()["requested_amount"] is None

    def test_errors_render_code_and_message(self, client: TestClient, allocation_id: str):
        expense_id = client.post(
            "/api/expenses",
            json={"site_id": "site-1", "category_id": "fuel", "fund_allocation_id": allocation_id, "amount": "800"},
            headers=as_user("supervisor"),
        ).json()["record"]["id"]

        response = client.put(
            f"/api/expenses/{expense_id}/decision",
            json={"action": "approve", "approved_amount": "800"},
            headers=as_user("supervisor"),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

        response = client.put(
            f"/api/expenses/{expense_id}/decision",
            json={"action": "pay", "payment_method": "cash"},
            headers=as_user("director"),
        )
        assert response.status_code == 409
        assert response.json()["details"]["current_status"] == "pending"

        response = client.get("/api/allocations/missing", headers=as_user("director"))
        assert response.status_code == 404

    def test_summaries(self, client: TestClient, allocation_id: str):
        client.post(
            "/api/expenses",
            json={"site_id": "site-1", "category_id": "fuel", "fund_allocation_id": allocation_id, "amount": "800"},
            headers=as_user("supervisor"),
        )
        client.post("/api/bills", json={"vendor_name": "Cement Co", "base_amount": "5000"}, headers=as_user("manager"))

        summary = client.get("/api/expenses/summary", headers=as_user("director")).json()
        assert summary["by_category"]["fuel"]["requested_amount"] == "800"
        assert len(summary["monthly"]) == 1

        summary = client.get("/api/bills/summary", headers=as_user("director")).json()
        assert summary["totals"]["gst_amount"] == "900.00"
        assert summary["by_type"]["material"]["count"] == 1

    def test_bill_gst_preview(self, client: TestClient):
        response = client.get("/api/bills/gst", params={"base_amount": "5000", "gst_rate": 18})
        assert response.json()["total_amount"] == "5900.00"


# =============================================================================
# Contract and Ledger Tests
# =============================================================================

class TestContractsAndLedger:
    """Contracts, attendance and the worker ledger over HTTP."""

    def test_contract_payment_updates_ledger(self, client: TestClient):
        response = client.post(
            "/api/contracts",
            json={
                "worker_id": "worker",
                "site_id": "site-1",
                "title": "Plastering",
                "total_amount": "100000",
                "number_of_installments": 6,
            },
            headers=as_user("supervisor"),
        )
        assert response.status_code == 201
        contract = response.json()
        assert [i["amount"] for i in contract["installments"]][-1] == "16670"

        client.put(f"/api/contracts/{contract['id']}/status", json={"action": "activate"}, headers=as_user("supervisor"))
        response = client.post(
            f"/api/contracts/{contract['id']}/payment",
            json={"installment_number": 1, "amount": "16666"},
            headers=as_user("supervisor"),
        )
        assert response.status_code == 200
        assert response.json()["contract"]["total_paid"] == "16666.00"

        balance = client.get("/api/ledger/worker/balance", headers=as_user("worker")).json()
        assert balance["total_debits"] == "16666.00"

        response = client.get("/api/ledger/worker/balance", headers=as_user("supervisor2"))
        assert response.status_code == 403

    def test_attendance_earnings(self, client: TestClient):
        for day in ("2026-04-06", "2026-04-07"):
            response = client.post(
                "/api/attendance",
                json={"worker_id": "worker", "site_id": "site-1", "day": day},
                headers=as_user("supervisor"),
            )
            assert response.status_code == 201

        summary = client.get("/api/attendance/worker/summary", headers=as_user("supervisor")).json()
        assert summary["total_earned"] == "710.00"

        pending = client.get("/api/ledger/worker/pending-salary", headers=as_user("supervisor")).json()
        assert pending["unposted_earnings"] == "710.00"

        response = client.post("/api/ledger/worker/attendance-earnings", json={}, headers=as_user("supervisor"))
        assert len(response.json()["posted"]) == 2
        response = client.post("/api/ledger/worker/attendance-earnings", json={}, headers=as_user("supervisor"))
        assert response.json()["posted"] == []
        assert response.json()["balance"]["balance"] == "710.00"
