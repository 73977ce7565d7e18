"""
Commission API tests.

Verifies:
- Paid state toggles set and clear payment_date
- Bulk pay marks one person's unpaid commissions for a day
- The repair action recomputes stored amounts from sale items
- Sales persons only ever see their own commissions
"""

from repairdesk.extensions import db
from repairdesk.models import Commission
from repairdesk.services.commission_service import compute_commission_cents
from repairdesk.time_utils import utcnow


def make_sale(client, headers, product, quantity=1):
    resp = client.post(
        "/api/sales",
        json={"sale": {"payment_status": "paid"}, "items": [{"product_id": product.id, "quantity": quantity}]},
        headers=headers,
    )
    assert resp.status_code == 201, resp.json
    return resp.json["data"]


class TestComputeCommission:
    def test_sums_then_rounds_half_up(self):
        items = [
            {"quantity": 1, "unit_price_cents": 333, "commission_rate_bps": 150},
            {"quantity": 1, "unit_price_cents": 333, "commission_rate_bps": 150},
        ]
        # 4.995 + 4.995 = 9.99 -> 10
        assert compute_commission_cents(items) == 10

    def test_missing_values_are_zero(self):
        assert compute_commission_cents([{"quantity": 2, "unit_price_cents": None, "commission_rate_bps": 500}]) == 0
        assert compute_commission_cents([]) == 0


class TestPaidState:
    def test_mark_paid_sets_payment_date(self, client, sales_headers, admin_headers, ssd):
        sale = make_sale(client, sales_headers, ssd)
        commission_id = sale["commission"]["id"]

        resp = client.patch("/api/commissions", json={"id": commission_id, "is_paid": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["is_paid"] is True
        assert resp.json["data"]["payment_date"] is not None

        resp = client.patch(f"/api/commissions/{commission_id}", json={"is_paid": False}, headers=admin_headers)
        assert resp.json["data"]["is_paid"] is False
        assert resp.json["data"]["payment_date"] is None

    def test_is_paid_must_be_boolean(self, client, sales_headers, admin_headers, ssd):
        sale = make_sale(client, sales_headers, ssd)
        resp = client.patch(
            f"/api/commissions/{sale['commission']['id']}", json={"is_paid": "yes"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_unknown_commission(self, client, admin_headers):
        resp = client.patch("/api/commissions", json={"id": 99999, "is_paid": True}, headers=admin_headers)
        assert resp.status_code == 404


class TestBulkPay:
    def test_pays_only_that_person(self, client, sales_user, other_sales_user, admin_headers, ssd, cable):
        mine = {"X-User-Id": str(sales_user.id)}
        theirs = {"X-User-Id": str(other_sales_user.id)}
        make_sale(client, mine, ssd)
        make_sale(client, mine, cable, quantity=4)
        make_sale(client, theirs, ssd)

        resp = client.post(
            "/api/commissions/bulk-pay",
            json={"sales_person_id": sales_user.id, "date": utcnow().date().isoformat()},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        result = resp.json["data"]
        assert result["updated"] == 2
        assert result["total_paid_cents"] == 1000 + 100

        rows = db.session.query(Commission).all()
        paid = {c.sales_person_id: c.is_paid for c in rows if c.sales_person_id == other_sales_user.id}
        assert paid == {other_sales_user.id: False}

    def test_other_day_pays_nothing(self, client, sales_user, sales_headers, admin_headers, ssd):
        make_sale(client, sales_headers, ssd)
        resp = client.post(
            "/api/commissions/bulk-pay",
            json={"sales_person_id": sales_user.id, "date": "2001-01-01"},
            headers=admin_headers,
        )
        assert resp.json["data"]["updated"] == 0

    def test_requires_date(self, client, sales_user, admin_headers):
        resp = client.post("/api/commissions/bulk-pay", json={"sales_person_id": sales_user.id}, headers=admin_headers)
        assert resp.status_code == 400


class TestRepair:
    def test_recomputes_zero_amounts(self, client, sales_headers, admin_headers, ssd):
        sale = make_sale(client, sales_headers, ssd, quantity=2)
        commission = db.session.get(Commission, sale["commission"]["id"])
        commission.commission_amount_cents = 0
        db.session.commit()

        resp = client.post("/api/commissions/repair?onlyZeroAmount=true", headers=admin_headers)
        assert resp.status_code == 200
        result = resp.json["data"]
        assert result["total"] == 1
        assert result["success"] == 1
        assert result["failure"] == 0
        assert result["details"] == [{"id": commission.id, "success": True}]

        fetched = client.get(f"/api/commissions/{commission.id}", headers=admin_headers).json["data"]
        assert fetched["commission_amount_cents"] == 2000

    def test_only_zero_skips_correct_rows(self, client, sales_headers, admin_headers, ssd):
        make_sale(client, sales_headers, ssd)
        resp = client.post("/api/commissions/repair?onlyZeroAmount=true", headers=admin_headers)
        assert resp.json["data"]["total"] == 0


class TestVisibility:
    def test_sales_person_sees_only_own(self, client, sales_user, other_sales_user, admin_headers, ssd):
        mine = {"X-User-Id": str(sales_user.id)}
        theirs = {"X-User-Id": str(other_sales_user.id)}
        make_sale(client, mine, ssd)
        other_sale = make_sale(client, theirs, ssd)

        listed = client.get("/api/commissions", headers=mine).json["data"]
        assert {c["sales_person_id"] for c in listed} == {sales_user.id}

        # asking for someone else's rows still returns only your own
        listed = client.get(f"/api/commissions?salesPersonId={other_sales_user.id}", headers=mine).json["data"]
        assert {c["sales_person_id"] for c in listed} == {sales_user.id}

        assert client.get("/api/commissions", headers=admin_headers).json["data"].__len__() == 2
        assert client.get(f"/api/commissions/{other_sale['commission']['id']}", headers=mine).status_code == 404
        assert client.get(f"/api/commissions/summary/{other_sales_user.id}", headers=mine).status_code == 403

    def test_summary_and_stats(self, client, sales_user, sales_headers, admin_headers, ssd, cable):
        first = make_sale(client, sales_headers, ssd)
        make_sale(client, sales_headers, cable, quantity=2)
        client.patch("/api/commissions", json={"id": first["commission"]["id"], "is_paid": True}, headers=admin_headers)

        summary = client.get(f"/api/commissions/summary/{sales_user.id}", headers=sales_headers).json["data"]
        assert summary["total_commission_cents"] == 1050
        assert summary["paid_commission_cents"] == 1000
        assert summary["unpaid_commission_cents"] == 50
        assert summary["sale_count"] == 2

        stats = client.get("/api/commissions/stats", headers=admin_headers).json["data"]
        assert stats["total_commission_cents"] == 1050
        assert stats["top_performers"][0]["sales_person_id"] == sales_user.id

    def test_reports(self, client, sales_headers, admin_headers, ssd):
        make_sale(client, sales_headers, ssd)
        summary = client.get("/api/commissions/reports", headers=admin_headers).json["data"]
        assert summary["totals"]["sale_count"] == 1
        assert len(summary["summary"]) == 1

        detailed = client.get("/api/commissions/reports?reportType=detailed", headers=admin_headers).json["data"]
        assert len(detailed["commissions"]) == 1

        bad = client.get("/api/commissions/reports?reportType=weird", headers=admin_headers)
        assert bad.status_code == 400
