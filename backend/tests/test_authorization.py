"""
Authorization tests.

Verifies:
- Requests without a valid, active X-User-Id return 401
- Sales and technician roles are denied admin operations (403)
- Technicians only reach service requests assigned to them
"""

import pytest


# =============================================================================
# UNIDENTIFIED ACCESS (401)
# =============================================================================


class TestUnidentifiedAccess:
    """All protected endpoints return 401 without an acting user."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/products"),
            ("GET", "/api/inventory"),
            ("GET", "/api/customers"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/commissions"),
            ("GET", "/api/service-requests"),
            ("GET", "/api/reports/dashboard"),
        ],
    )
    def test_requires_identity(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_user_id(self, client, db_session):
        resp = client.get("/api/products", headers={"X-User-Id": "999999"})
        assert resp.status_code == 401

    def test_malformed_user_id(self, client, db_session):
        resp = client.get("/api/products", headers={"X-User-Id": "abc"})
        assert resp.status_code == 401

    def test_inactive_user(self, client, inactive_user):
        resp = client.get("/api/products", headers={"X-User-Id": str(inactive_user.id)})
        assert resp.status_code == 401

    def test_health_is_open(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200


# =============================================================================
# ROLE CHECKS (403)
# =============================================================================


class TestSalesDeniedAdminOperations:
    def test_cannot_list_users(self, client, sales_headers):
        assert client.get("/api/users", headers=sales_headers).status_code == 403

    def test_cannot_create_product(self, client, sales_headers):
        resp = client.post("/api/products", json={"sku": "X-1", "name": "Thing"}, headers=sales_headers)
        assert resp.status_code == 403

    def test_cannot_adjust_stock(self, client, sales_headers, ssd):
        inventory_id = ssd.inventory.id
        resp = client.post(
            f"/api/inventory/{inventory_id}/stock", json={"quantity": 5, "mode": "add"}, headers=sales_headers
        )
        assert resp.status_code == 403

    def test_cannot_mark_commission_paid(self, client, sales_headers):
        resp = client.patch("/api/commissions", json={"id": 1, "is_paid": True}, headers=sales_headers)
        assert resp.status_code == 403

    def test_cannot_run_commission_repair(self, client, sales_headers):
        assert client.post("/api/commissions/repair", headers=sales_headers).status_code == 403

    def test_cannot_view_admin_reports(self, client, sales_headers):
        assert client.get("/api/reports/sales-performance", headers=sales_headers).status_code == 403


class TestTechnicianRestrictions:
    def test_cannot_create_sale(self, client, technician_headers, ssd):
        resp = client.post(
            "/api/sales",
            json={"sale": {}, "items": [{"product_id": ssd.id, "quantity": 1}]},
            headers=technician_headers,
        )
        assert resp.status_code == 403

    def test_cannot_create_service_request(self, client, technician_headers, service_category):
        resp = client.post(
            "/api/service-requests",
            json={
                "title": "Broken screen",
                "description": "Display cracked in corner",
                "service_category_id": service_category.id,
            },
            headers=technician_headers,
        )
        assert resp.status_code == 403

    def test_cannot_open_unassigned_request(self, client, admin_headers, technician_headers, service_category):
        created = client.post(
            "/api/service-requests",
            json={
                "title": "Broken screen",
                "description": "Display cracked in corner",
                "service_category_id": service_category.id,
            },
            headers=admin_headers,
        ).json["data"]

        resp = client.get(f"/api/service-requests/{created['id']}", headers=technician_headers)
        assert resp.status_code == 403

        listing = client.get("/api/service-requests", headers=technician_headers)
        assert listing.status_code == 200
        assert listing.json["data"] == []
