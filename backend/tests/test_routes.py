"""
HTTP surface: actor header, JSON shapes and error kind to status mapping.
"""

import pytest

from rentalshop.extensions import db

HEADERS = {"X-Actor-Id": "counter-staff"}


@pytest.fixture
def ids(branch, staff, customer, db_session):
    values = {"branch_id": branch.id, "staff_id": staff.id, "customer_id": customer.id}
    db_session.commit()
    return values


def _order_body(ids, **overrides):
    body = {
        **ids,
        "start_date": "2025-01-10",
        "end_date": "2025-01-12",
        "end_datetime": "2025-01-12T18:00:00Z",
        "items": [{"product_name": "Bridal Lehenga", "quantity": 2, "price_per_day": 1000}],
        "security_deposit_amount": 1000,
        "security_deposit_collected": True,
    }
    body.update(overrides)
    return body


def _create(client, ids, **overrides):
    response = client.post("/api/orders", json=_order_body(ids, **overrides), headers=HEADERS)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["order"]


# =============================================================================
# SYSTEM AND ORDERS
# =============================================================================


class TestOrderEndpoints:
    """Order create, read and error mapping."""

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"

    def test_writes_require_actor_header(self, client, ids):
        response = client.post("/api/orders", json=_order_body(ids))
        assert response.status_code == 401

    def test_create_order(self, client, ids):
        order = _create(client, ids)
        assert order["status"] == "active"
        assert order["total_amount"] == 2100.0
        assert order["deposit_balance"] == 1000.0
        assert order["outstanding_amount"] == 1100.0
        assert order["can_cancel"] is True
        assert order["invoice_number"].startswith("GLAORD-")
        assert len(order["items"]) == 1

    def test_invalid_body_maps_to_400(self, client, ids):
        response = client.post("/api/orders", json=_order_body(ids, items=[]), headers=HEADERS)
        assert response.status_code == 400
        assert response.get_json()["kind"] == "validation"

        response = client.post("/api/orders", json=_order_body(ids, end_date="2025-01-01"), headers=HEADERS)
        assert response.status_code == 400

    def test_missing_order_maps_to_404(self, client, db_session):
        response = client.get("/api/orders/424242")
        assert response.status_code == 404
        assert response.get_json()["kind"] == "not_found"


# =============================================================================
# RETURNS AND MONEY
# =============================================================================


class TestReturnAndDepositEndpoints:
    def test_return_then_refund(self, client, ids):
        order = _create(client, ids)
        item_id = order["items"][0]["id"]

        response = client.post(
            f"/api/orders/{order['id']}/returns",
            json={"items": [{"item_id": item_id, "return_status": "returned", "damage_cost": 500, "description": "torn"}]},
            headers=HEADERS,
        )
        assert response.status_code == 200
        returned = response.get_json()["order"]
        assert returned["status"] == "flagged"
        assert returned["damage_fee_total"] == 500.0
        assert returned["total_amount"] == 2600.0

        response = client.post(f"/api/orders/{order['id']}/deposit/refund", json={"amount": 1500}, headers=HEADERS)
        assert response.status_code == 400

        response = client.post(f"/api/orders/{order['id']}/deposit/refund", json={"amount": 1000, "method": "cash"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.get_json()["order"]["security_deposit_refunded"] is True

        transactions = client.get(f"/api/orders/{order['id']}/transactions").get_json()["transactions"]
        assert [t["transaction_type"] for t in transactions] == ["deposit_collected", "deposit_refund"]

    def test_empty_return_list_is_rejected(self, client, ids):
        order = _create(client, ids)
        response = client.post(f"/api/orders/{order['id']}/returns", json={"items": []}, headers=HEADERS)
        assert response.status_code == 400

    def test_stale_version_maps_to_409(self, client, ids):
        order = _create(client, ids)
        response = client.patch(
            f"/api/orders/{order['id']}/charges",
            json={"late_fee": 100, "expected_version": order["version_id"] + 10},
            headers=HEADERS,
        )
        assert response.status_code == 409
        assert response.get_json()["kind"] == "conflict"

    def test_outstanding_collection(self, client, ids):
        order = _create(client, ids, security_deposit_amount=500)
        assert order["outstanding_amount"] == 1600.0

        response = client.post(f"/api/orders/{order['id']}/outstanding/collect", json={"amount": 1600}, headers=HEADERS)
        assert response.status_code == 200
        assert response.get_json()["order"]["outstanding_amount"] == 0.0

    def test_timeline_and_snapshot(self, client, ids):
        order = _create(client, ids)
        events = client.get(f"/api/orders/{order['id']}/timeline").get_json()["events"]
        assert events[0]["action"] == "order_created"

        snapshot = client.get(f"/api/orders/{order['id']}/snapshot").get_json()
        assert snapshot["billing"]["company_name"] == "Glamour Rentals"

    def test_list_orders(self, client, ids):
        _create(client, ids)
        response = client.get("/api/orders", query_string={"status": "active"})
        assert response.status_code == 200
        assert len(response.get_json()["orders"]) == 1

        response = client.get("/api/orders", query_string={"limit": "many"})
        assert response.status_code == 400


# =============================================================================
# CUSTOMERS AND REPORTS
# =============================================================================


class TestCustomerAndReportEndpoints:
    def test_customer_endpoints(self, client, db_session):
        response = client.post("/api/customers", json={"name": "Meera", "phone": "9123456780"}, headers=HEADERS)
        assert response.status_code == 201
        customer = response.get_json()["customer"]
        assert customer["customer_number"] == "GLA-00001"

        response = client.post("/api/customers", json={"name": "Meera", "phone": "12345"}, headers=HEADERS)
        assert response.status_code == 400

        listing = client.get("/api/customers", query_string={"search": "Meera"}).get_json()
        assert listing["total"] == 1

        detail = client.get(f"/api/customers/{customer['id']}").get_json()["customer"]
        assert detail["due_amount"] == 0.0

    def test_dashboard(self, client, ids):
        _create(client, ids)
        stats = client.get("/api/reports/dashboard").get_json()
        assert stats["total_orders"] == 1
        assert stats["by_status"]["active"] == 1
        assert stats["late_returns"] == 1
        assert stats["total_customers"] == 1

        response = client.get("/api/reports/dashboard", query_string={"start": "2025-01-01"})
        assert response.status_code == 400


# =============================================================================
# BRANCHES AND STAFF
# =============================================================================


class TestDirectoryEndpoints:
    def test_branch_crud(self, client, ids):
        response = client.post("/api/branches", json={"name": "Indiranagar", "address": "100ft Road"}, headers=HEADERS)
        assert response.status_code == 201
        branch = response.get_json()["branch"]

        response = client.post("/api/branches", json={"name": "Indiranagar"}, headers=HEADERS)
        assert response.status_code == 400

        response = client.put(f"/api/branches/{branch['id']}", json={"name": "Indiranagar HAL"}, headers=HEADERS)
        assert response.get_json()["branch"]["name"] == "Indiranagar HAL"

        names = [b["name"] for b in client.get("/api/branches").get_json()["branches"]]
        assert names == ["Indiranagar HAL", "Main Branch"]

        assert client.delete(f"/api/branches/{branch['id']}", headers=HEADERS).status_code == 200
        assert client.get(f"/api/branches/{branch['id']}").status_code == 404
        assert client.delete(f"/api/branches/{ids['branch_id']}", headers=HEADERS).status_code == 400

    def test_staff_and_invoice_settings(self, client, ids):
        response = client.post(
            "/api/staff", json={"username": "priya", "role": "branch_admin", "branch_id": ids["branch_id"]}, headers=HEADERS,
        )
        assert response.status_code == 201
        assert response.get_json()["staff"]["role"] == "branch_admin"

        staff = client.get("/api/staff", query_string={"branch_id": ids["branch_id"]}).get_json()["staff"]
        assert {s["username"] for s in staff} == {"owner", "counter", "priya"}

        owner_id = next(s["id"] for s in staff if s["username"] == "owner")
        response = client.put(
            f"/api/staff/{owner_id}/invoice-settings",
            json={"gst_enabled": True, "gst_rate": 12, "gst_included": False, "upi_id": "new@upi"},
            headers=HEADERS,
        )
        assert response.status_code == 200
        settings = response.get_json()["staff"]
        assert settings["gst_rate"] == 12.0
        assert settings["upi_id"] == "new@upi"

        order = _create(client, ids)
        assert order["gst_amount"] == 240.0
        assert order["total_amount"] == 2240.0

        snapshot = client.get(f"/api/orders/{order['id']}/snapshot").get_json()
        assert snapshot["billing"]["upi_id"] == "new@upi"

    def test_invoice_settings_require_gst_flag(self, client, ids):
        response = client.put(f"/api/staff/{ids['staff_id']}/invoice-settings", json={"gst_rate": 5}, headers=HEADERS)
        assert response.status_code == 400
        response = client.put("/api/staff/9999/invoice-settings", json={"gst_enabled": False}, headers=HEADERS)
        assert response.status_code == 404
