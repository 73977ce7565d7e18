"""
Report endpoints end to end.

Only paid sales count toward revenue reports. Detailed arithmetic is
covered in test_aggregation.py; these tests check wiring, role access and
the shape of each payload.
"""

import pytest


def sell(client, headers, product, quantity, **sale):
    sale.setdefault("payment_status", "paid")
    resp = client.post(
        "/api/sales",
        json={"sale": sale, "items": [{"product_id": product.id, "quantity": quantity}]},
        headers=headers,
    )
    assert resp.status_code == 201, resp.json
    return resp.json["data"]


@pytest.fixture
def sales_history(client, sales_user, other_sales_user, ssd, cable, customer):
    """Two paid sales today plus one unpaid sale that reports must ignore."""
    sam = {"X-User-Id": str(sales_user.id)}
    sue = {"X-User-Id": str(other_sales_user.id)}
    sell(client, sam, ssd, 2, customer_id=customer.id)
    sell(client, sue, cable, 4)
    sell(client, sam, ssd, 1, payment_status="pending")


class TestSalesReports:
    def test_sales_performance(self, client, admin_headers, sales_history):
        data = client.get("/api/reports/sales-performance", headers=admin_headers).json["data"]
        assert data["total_sales"] == 2
        assert data["total_revenue_cents"] == 22000
        assert data["average_order_value_cents"] == 11000
        assert [p["name"] for p in data["top_performers"]] == ["Sam Sales", "Sue Seller"]
        assert len(data["trend"]) == 30
        assert data["trend"][-1]["sales_count"] == 2

    def test_bad_range(self, client, admin_headers, sales_history):
        resp = client.get(
            "/api/reports/sales-performance?startDate=2026-02-01&endDate=2026-01-01", headers=admin_headers
        )
        assert resp.status_code == 400

    def test_product_performance(self, client, admin_headers, product_factory, sales_history):
        product_factory(sku="LOW", name="Thermal paste", price_cents=900, quantity=2, reorder_level=5)

        data = client.get("/api/reports/product-performance", headers=admin_headers).json["data"]
        top = data["top_products"][0]
        assert (top["sku"], top["quantity_sold"], top["revenue_cents"]) == ("SSD-1", 2, 20000)
        assert data["categories"][0]["category"] == "Components"
        assert data["categories"][0]["product_count"] == 2
        assert [r["product"]["sku"] for r in data["low_stock"]] == ["LOW"]

    def test_customer_report(self, client, sales_headers, sales_history):
        data = client.get("/api/reports/customers", headers=sales_headers).json["data"]
        assert data["customer_count"] == 1
        assert data["active_customers"] == 1
        assert data["top_customers"][0]["name"] == "Carol Customer"
        assert data["top_customers"][0]["total_spent_cents"] == 20000

    def test_time_based(self, client, admin_headers, sales_history):
        data = client.get("/api/reports/time-based", headers=admin_headers).json["data"]
        assert len(data["hourly"]) == 24
        assert len(data["day_of_week"]) == 7
        assert sum(d["sales_count"] for d in data["daily"]) == 2
        assert sum(m["revenue_cents"] for m in data["monthly"]) == 22000

    @pytest.mark.parametrize(
        "path",
        ["sales-performance", "product-performance", "time-based", "service-analytics", "technician-workload"],
    )
    def test_admin_only(self, client, sales_headers, path):
        assert client.get(f"/api/reports/{path}", headers=sales_headers).status_code == 403


class TestServiceReports:
    def _ticket(self, client, headers, category, **extra):
        payload = {
            "title": "Keyboard swap",
            "description": "Several keys no longer register",
            "service_category_id": category.id,
        }
        payload.update(extra)
        resp = client.post("/api/service-requests", json=payload, headers=headers)
        assert resp.status_code == 201, resp.json
        return resp.json["data"]

    def test_service_analytics(self, client, admin_headers, service_category):
        done = self._ticket(client, admin_headers, service_category, priority="urgent")
        self._ticket(client, admin_headers, service_category)
        client.post(f"/api/service-requests/{done['id']}/status", json={"status": "completed"},
                    headers=admin_headers)

        data = client.get("/api/reports/service-analytics?days=7", headers=admin_headers).json["data"]
        assert data["days"] == 7
        assert data["total"] == 2
        assert data["completed"] == 1
        assert data["pending"] == 1
        assert data["completion_rate"] == 50.0
        assert data["priority_counts"]["urgent"] == 1
        assert data["category_stats"][0]["name"] == "Screen Repair"
        assert len(data["daily_trend"]) == 7

    def test_service_analytics_window(self, client, admin_headers):
        resp = client.get("/api/reports/service-analytics?days=45", headers=admin_headers)
        assert resp.status_code == 400

    def test_technician_workload(self, client, admin_headers, technician_user, service_category):
        mine = self._ticket(client, admin_headers, service_category, assigned_technician_id=technician_user.id)
        loose = self._ticket(client, admin_headers, service_category)
        client.post(f"/api/service-requests/{mine['id']}/status", json={"status": "in_progress"},
                    headers=admin_headers)

        data = client.get("/api/reports/technician-workload", headers=admin_headers).json["data"]
        row = next(t for t in data["technicians"] if t["technician_id"] == technician_user.id)
        assert row["in_progress"] == 1
        assert row["total_active"] == 1
        assert row["total_assigned"] == 1
        assert [r["id"] for r in data["unassigned"]] == [loose["id"]]


class TestDashboard:
    def test_admin(self, client, admin_headers, sales_history):
        data = client.get("/api/reports/dashboard", headers=admin_headers).json["data"]
        assert data["role"] == "admin"
        assert data["sales_today"] == 3
        assert data["revenue_today_cents"] == 22000
        assert data["total_sales"] == 3
        assert data["customer_count"] == 1

    def test_sales_person_sees_own_numbers(self, client, sales_headers, sales_history):
        data = client.get("/api/reports/dashboard", headers=sales_headers).json["data"]
        assert data["role"] == "sales"
        assert data["sales_today"] == 2
        assert data["revenue_today_cents"] == 30000
        assert data["total_commission_cents"] == 3000

    def test_technician(self, client, admin_headers, technician_user, technician_headers, service_category):
        client.post(
            "/api/service-requests",
            json={
                "title": "Battery swap",
                "description": "Battery no longer holds charge",
                "service_category_id": service_category.id,
                "assigned_technician_id": technician_user.id,
            },
            headers=admin_headers,
        )
        data = client.get("/api/reports/dashboard", headers=technician_headers).json["data"]
        assert data == {
            "role": "technician",
            "assigned_requests": 1,
            "open_requests": 1,
            "completed_today": 0,
            "overdue": 0,
        }
