"""
Cached reads pick up edits to the records they embed.

Sales, commissions and tickets carry summaries of their user, product and
category. Each test warms the cache first, edits the embedded record
through the API and reads again.
"""

import pytest


@pytest.fixture
def sell(client, sales_headers):
    def _sell(product, quantity):
        resp = client.post(
            "/api/sales",
            json={"sale": {"payment_status": "paid"}, "items": [{"product_id": product.id, "quantity": quantity}]},
            headers=sales_headers,
        )
        assert resp.status_code == 201, resp.json
        return resp.json["data"]
    return _sell


def sale_ids(resp) -> list:
    assert resp.status_code == 200, resp.json
    return [row["id"] for row in resp.json["data"]]


class TestUserEdits:
    def test_rename_reaches_sales_and_commissions(self, client, admin_headers, sell, sales_user, ssd):
        sale = sell(ssd, 1)
        assert sale_ids(client.get("/api/sales?search=Sam", headers=admin_headers)) == [sale["id"]]
        client.get(f"/api/sales/{sale['id']}", headers=admin_headers)
        client.get("/api/commissions", headers=admin_headers)

        resp = client.put(f"/api/users/{sales_user.id}", json={"full_name": "Zed Renamed"}, headers=admin_headers)
        assert resp.status_code == 200

        assert sale_ids(client.get("/api/sales?search=Zed", headers=admin_headers)) == [sale["id"]]
        assert sale_ids(client.get("/api/sales?search=Sam", headers=admin_headers)) == []
        detail = client.get(f"/api/sales/{sale['id']}", headers=admin_headers).json["data"]
        assert detail["sales_person"]["full_name"] == "Zed Renamed"
        commissions = client.get("/api/commissions", headers=admin_headers).json["data"]
        assert [c["sales_person"]["full_name"] for c in commissions] == ["Zed Renamed"]

    def test_rename_reaches_assigned_tickets(self, client, admin_headers, technician_user, service_category):
        client.post(
            "/api/service-requests",
            json={
                "title": "Dead battery",
                "description": "Laptop will not hold a charge",
                "service_category_id": service_category.id,
                "assigned_technician_id": technician_user.id,
            },
            headers=admin_headers,
        )
        client.get("/api/service-requests", headers=admin_headers)

        client.put(f"/api/users/{technician_user.id}", json={"full_name": "Tom Fixer"}, headers=admin_headers)

        tickets = client.get("/api/service-requests", headers=admin_headers).json["data"]
        assert [t["technician"]["full_name"] for t in tickets] == ["Tom Fixer"]


class TestCatalogEdits:
    def test_product_change_reaches_report(self, client, admin_headers, sell, ssd):
        sold = sell(ssd, 1)
        client.get(f"/api/sales/{sold['id']}", headers=admin_headers)
        top = client.get("/api/reports/product-performance", headers=admin_headers).json["data"]["top_products"]
        assert (top[0]["name"], top[0]["profit_cents"]) == ("SSD 1TB", 4000)

        resp = client.put(
            f"/api/products/{ssd.id}", json={"cost_price_cents": 9000, "name": "SSD renamed"}, headers=admin_headers
        )
        assert resp.status_code == 200

        top = client.get("/api/reports/product-performance", headers=admin_headers).json["data"]["top_products"]
        assert (top[0]["name"], top[0]["profit_cents"]) == ("SSD renamed", 1000)
        sale = client.get(f"/api/sales/{sold['id']}", headers=admin_headers).json["data"]
        assert sale["items"][0]["product"]["name"] == "SSD renamed"

    def test_category_rename_reaches_report(self, client, admin_headers, sell, ssd, category):
        sell(ssd, 1)
        data = client.get("/api/reports/product-performance", headers=admin_headers).json["data"]
        assert data["categories"][0]["category"] == "Components"

        resp = client.put(f"/api/categories/{category.id}", json={"name": "Storage"}, headers=admin_headers)
        assert resp.status_code == 200

        data = client.get("/api/reports/product-performance", headers=admin_headers).json["data"]
        assert data["categories"][0]["category"] == "Storage"
