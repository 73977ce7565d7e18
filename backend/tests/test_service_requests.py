"""
Service request API tests.

Verifies:
- New tickets start pending with an SR- number and a creation entry
- Status changes stamp their dates once and log status_change entries
- completed / cancelled are terminal for non-admins
- Technician field and assignment restrictions
- Parts move stock; payments and attachments are recorded
"""

import io
import os
import re

import pytest

from repairdesk.extensions import db
from repairdesk.models import Inventory, ServiceRequest, ServiceRequestAttachment


def ticket_payload(category, **overrides):
    payload = {
        "title": "Cracked laptop screen",
        "description": "Screen cracked after a drop, touch still works",
        "service_category_id": category.id,
        "priority": "high",
        "device_type": "Laptop",
    }
    payload.update(overrides)
    return payload


def create_ticket(client, headers, category, **overrides):
    resp = client.post("/api/service-requests", json=ticket_payload(category, **overrides), headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json["data"]


def timeline(client, headers, request_id, **params):
    query = "&".join(f"{k}={v}" for k, v in params.items())
    resp = client.get(f"/api/service-requests/{request_id}/updates?{query}", headers=headers)
    assert resp.status_code == 200, resp.json
    return resp.json["data"]


# =============================================================================
# CREATE
# =============================================================================


class TestCreate:
    def test_starts_pending_with_number(self, client, sales_headers, sales_user, service_category, customer):
        ticket = create_ticket(client, sales_headers, service_category, customer_id=customer.id, status="completed")
        assert ticket["status"] == "pending"
        assert re.fullmatch(r"SR-\d{6}-0001", ticket["request_number"])
        assert ticket["created_by_id"] == sales_user.id
        assert ticket["customer"]["name"] == "Carol Customer"
        assert ticket["assigned_date"] is None

        entries = timeline(client, sales_headers, ticket["id"])
        assert [e["title"] for e in entries] == ["Service request created"]

    def test_admin_can_assign_on_create(self, client, admin_headers, technician_user, service_category):
        ticket = create_ticket(
            client, admin_headers, service_category, assigned_technician_id=technician_user.id
        )
        assert ticket["status"] == "assigned"
        assert ticket["assigned_date"] is not None
        types = [e["update_type"] for e in timeline(client, admin_headers, ticket["id"])]
        assert sorted(types) == ["general_update", "status_change", "technician_assigned"]

    def test_sales_cannot_assign(self, client, sales_headers, technician_user, service_category):
        resp = client.post(
            "/api/service-requests",
            json=ticket_payload(service_category, assigned_technician_id=technician_user.id),
            headers=sales_headers,
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"title": "X"}, "title must be at least 2"),
            ({"description": "short"}, "description must be at least 10"),
            ({"priority": "whenever"}, "priority must be one of"),
            ({"service_category_id": 98765}, "Service category not found"),
        ],
    )
    def test_validation(self, client, sales_headers, service_category, overrides, message):
        resp = client.post(
            "/api/service-requests", json=ticket_payload(service_category, **overrides), headers=sales_headers
        )
        assert resp.status_code == 400
        assert message in resp.json["error"]

    def test_assigning_non_technician_is_rejected(self, client, admin_headers, sales_user, service_category):
        resp = client.post(
            "/api/service-requests",
            json=ticket_payload(service_category, assigned_technician_id=sales_user.id),
            headers=admin_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# STATUS WORKFLOW
# =============================================================================


class TestStatusWorkflow:
    def test_dates_stamped_once(self, client, admin_headers, technician_user, technician_headers, service_category):
        ticket = create_ticket(client, admin_headers, service_category, assigned_technician_id=technician_user.id)
        rid = ticket["id"]

        started = client.post(
            f"/api/service-requests/{rid}/status", json={"status": "in_progress"}, headers=technician_headers
        ).json["data"]
        assert started["started_date"] is not None

        client.post(f"/api/service-requests/{rid}/status", json={"status": "waiting_parts"}, headers=technician_headers)
        again = client.post(
            f"/api/service-requests/{rid}/status", json={"status": "in_progress"}, headers=technician_headers
        ).json["data"]
        assert again["started_date"] == started["started_date"]

        done = client.post(
            f"/api/service-requests/{rid}/status",
            json={"status": "completed", "notes": "Replaced panel"},
            headers=technician_headers,
        ).json["data"]
        assert done["completed_date"] is not None
        assert done["technician_notes"] == "Replaced panel"

        changes = timeline(client, admin_headers, rid, update_type="status_change")
        assert [(e["status_from"], e["status_to"]) for e in changes][:2] == [
            ("in_progress", "completed"),
            ("waiting_parts", "in_progress"),
        ]

    def test_completed_is_terminal_for_non_admin(self, client, admin_headers, sales_headers, service_category):
        ticket = create_ticket(client, admin_headers, service_category)
        rid = ticket["id"]
        client.post(f"/api/service-requests/{rid}/status", json={"status": "completed"}, headers=admin_headers)

        resp = client.post(f"/api/service-requests/{rid}/status", json={"status": "in_progress"}, headers=sales_headers)
        assert resp.status_code == 409

        resp = client.post(f"/api/service-requests/{rid}/status", json={"status": "in_progress"}, headers=admin_headers)
        assert resp.status_code == 200

    def test_rejected_status_discards_field_edits(self, client, admin_headers, sales_headers, service_category):
        ticket = create_ticket(client, admin_headers, service_category)
        rid = ticket["id"]
        client.post(f"/api/service-requests/{rid}/status", json={"status": "completed"}, headers=admin_headers)
        entries = len(timeline(client, admin_headers, rid))

        resp = client.put(
            f"/api/service-requests/{rid}",
            json={"title": "Changed title", "status": "in_progress"},
            headers=sales_headers,
        )
        assert resp.status_code == 409

        stored = db.session.get(ServiceRequest, rid)
        assert stored.title == "Cracked laptop screen"
        assert stored.status == "completed"
        assert len(timeline(client, admin_headers, rid)) == entries

    def test_unknown_status(self, client, admin_headers, service_category):
        ticket = create_ticket(client, admin_headers, service_category)
        resp = client.post(
            f"/api/service-requests/{ticket['id']}/status", json={"status": "teleported"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_assign_endpoint(self, client, admin_headers, technician_user, service_category):
        ticket = create_ticket(client, admin_headers, service_category)
        resp = client.post(
            f"/api/service-requests/{ticket['id']}/assign",
            json={"technician_id": technician_user.id},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "assigned"
        assert resp.json["data"]["technician"]["id"] == technician_user.id


class TestTechnicianAccess:
    def test_limited_fields(self, client, admin_headers, technician_user, technician_headers, service_category):
        ticket = create_ticket(client, admin_headers, service_category, assigned_technician_id=technician_user.id)
        rid = ticket["id"]

        ok = client.put(
            f"/api/service-requests/{rid}",
            json={"internal_notes": "Ordered panel", "status": "in_progress"},
            headers=technician_headers,
        )
        assert ok.status_code == 200
        assert ok.json["data"]["status"] == "in_progress"

        denied = client.put(f"/api/service-requests/{rid}", json={"title": "Renamed"}, headers=technician_headers)
        assert denied.status_code == 403

    def test_other_technician_is_denied(self, client, admin_headers, technician_user, other_technician,
                                        service_category):
        ticket = create_ticket(client, admin_headers, service_category, assigned_technician_id=technician_user.id)
        other = {"X-User-Id": str(other_technician.id)}
        assert client.get(f"/api/service-requests/{ticket['id']}", headers=other).status_code == 403
        resp = client.post(
            f"/api/service-requests/{ticket['id']}/status", json={"status": "in_progress"}, headers=other
        )
        assert resp.status_code == 403

    def test_list_only_shows_assigned(self, client, admin_headers, technician_user, technician_headers,
                                      service_category):
        mine = create_ticket(client, admin_headers, service_category, assigned_technician_id=technician_user.id)
        create_ticket(client, admin_headers, service_category)

        rows = client.get("/api/service-requests", headers=technician_headers).json["data"]
        assert [r["id"] for r in rows] == [mine["id"]]
        assert len(client.get("/api/service-requests", headers=admin_headers).json["data"]) == 2


class TestListFilters:
    def test_query_status_priority(self, client, admin_headers, service_category):
        create_ticket(client, admin_headers, service_category, title="Dead battery", priority="low")
        create_ticket(client, admin_headers, service_category, title="Broken hinge", priority="urgent")

        def ids(qs):
            return client.get(f"/api/service-requests?{qs}", headers=admin_headers).json["data"]

        assert [r["title"] for r in ids("q=hinge")] == ["Broken hinge"]
        assert [r["title"] for r in ids("priority=low")] == ["Dead battery"]
        assert len(ids("status=all")) == 2
        assert ids("q=nothing-like-this") == []


# =============================================================================
# TIMELINE / PARTS / PAYMENT / DELETE
# =============================================================================


class TestTimeline:
    def test_add_and_filter_updates(self, client, admin_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = client.post(
            f"/api/service-requests/{rid}/updates",
            json={"update_type": "customer_contacted", "title": "Called customer", "is_customer_visible": False},
            headers=admin_headers,
        )
        assert resp.status_code == 201

        hidden = timeline(client, admin_headers, rid, customer_visible="false")
        assert [e["title"] for e in hidden] == ["Called customer"]
        assert len(timeline(client, admin_headers, rid)) == 2

    def test_update_type_must_be_known(self, client, admin_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = client.post(
            f"/api/service-requests/{rid}/updates",
            json={"update_type": "gossip", "title": "Hmm"},
            headers=admin_headers,
        )
        assert resp.status_code == 400


class TestParts:
    def test_parts_move_stock(self, client, admin_headers, service_category, ssd):
        rid = create_ticket(client, admin_headers, service_category)["id"]

        resp = client.post(
            f"/api/service-requests/{rid}/parts", json={"product_id": ssd.id, "quantity": 2}, headers=admin_headers
        )
        assert resp.status_code == 201
        part = resp.json["data"]
        assert part["unit_cost_cents"] == 6000
        assert part["total_cost_cents"] == 12000
        assert db.session.query(Inventory.quantity).filter_by(product_id=ssd.id).scalar() == 18
        assert [e["update_type"] for e in timeline(client, admin_headers, rid, update_type="parts_added")] == [
            "parts_added"
        ]

        resp = client.delete(f"/api/service-requests/{rid}/parts/{part['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert db.session.query(Inventory.quantity).filter_by(product_id=ssd.id).scalar() == 20
        assert client.get(f"/api/service-requests/{rid}/parts", headers=admin_headers).json["data"] == []

    def test_not_enough_stock(self, client, admin_headers, service_category, ssd):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = client.post(
            f"/api/service-requests/{rid}/parts", json={"product_id": ssd.id, "quantity": 99}, headers=admin_headers
        )
        assert resp.status_code == 409
        assert db.session.query(Inventory.quantity).filter_by(product_id=ssd.id).scalar() == 20


class TestPaymentAndDelete:
    def test_record_payment(self, client, sales_headers, service_category):
        rid = create_ticket(client, sales_headers, service_category)["id"]
        resp = client.post(
            f"/api/service-requests/{rid}/payment",
            json={"final_cost_cents": 12000, "payment_method": "card", "payment_status": "paid"},
            headers=sales_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["payment_status"] == "paid"
        assert resp.json["data"]["final_cost_cents"] == 12000

        entry = timeline(client, sales_headers, rid, update_type="payment_received")[0]
        assert (entry["status_from"], entry["status_to"]) == ("pending", "paid")
        assert "120.00" in entry["description"]

    def test_payment_requires_fields(self, client, sales_headers, service_category):
        rid = create_ticket(client, sales_headers, service_category)["id"]
        resp = client.post(f"/api/service-requests/{rid}/payment", json={"payment_method": "card"},
                           headers=sales_headers)
        assert resp.status_code == 400

    def test_delete_restores_parts(self, client, admin_headers, sales_headers, service_category, ssd):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        client.post(f"/api/service-requests/{rid}/parts", json={"product_id": ssd.id, "quantity": 3},
                    headers=admin_headers)

        assert client.delete(f"/api/service-requests/{rid}", headers=sales_headers).status_code == 403
        assert client.delete(f"/api/service-requests/{rid}", headers=admin_headers).status_code == 200
        assert db.session.query(Inventory.quantity).filter_by(product_id=ssd.id).scalar() == 20
        assert client.get(f"/api/service-requests/{rid}", headers=admin_headers).status_code == 404

    def test_completed_cannot_be_deleted(self, client, admin_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        client.post(f"/api/service-requests/{rid}/status", json={"status": "completed"}, headers=admin_headers)
        assert client.delete(f"/api/service-requests/{rid}", headers=admin_headers).status_code == 409


# =============================================================================
# ATTACHMENTS
# =============================================================================


class TestAttachments:
    def _upload(self, client, headers, rid, content=b"diagnostic log", name="log.txt", mimetype="text/plain"):
        return client.post(
            "/api/service-requests/upload",
            data={
                "file": (io.BytesIO(content), name, mimetype),
                "serviceRequestId": str(rid),
                "description": "Boot log",
                "isCustomerVisible": "true",
            },
            headers=headers,
            content_type="multipart/form-data",
        )

    def test_upload_download_delete(self, app, client, admin_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]

        resp = self._upload(client, admin_headers, rid)
        assert resp.status_code == 201, resp.json
        attachment = resp.json["data"]
        assert attachment["file_size"] == len(b"diagnostic log")
        assert attachment["is_customer_visible"] is True
        assert attachment["file_url"].endswith(f"/attachments/{attachment['id']}/download")

        downloaded = client.get(attachment["file_url"], headers=admin_headers)
        assert downloaded.status_code == 200
        assert downloaded.data == b"diagnostic log"

        stored = db.session.get(ServiceRequestAttachment, attachment["id"]).storage_path
        path = os.path.join(app.config["UPLOAD_FOLDER"], stored)
        assert os.path.exists(path)

        resp = client.delete(f"/api/service-requests/{rid}/attachments/{attachment['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert not os.path.exists(path)

    def test_rejects_disallowed_type(self, client, admin_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = self._upload(client, admin_headers, rid, name="setup.exe", mimetype="application/x-msdownload")
        assert resp.status_code == 400
        assert resp.json["error"] == "File type not allowed"

    def test_rejects_empty_file(self, client, admin_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = self._upload(client, admin_headers, rid, content=b"")
        assert resp.status_code == 400

    def test_rejects_oversized_file(self, app, client, admin_headers, service_category, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_ATTACHMENT_BYTES", 8)
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = self._upload(client, admin_headers, rid, content=b"0123456789")
        assert resp.status_code == 400
        assert "exceeds" in resp.json["error"]

    def test_url_attachment_and_update(self, client, admin_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = client.post(
            f"/api/service-requests/{rid}/attachments",
            json={"file_name": "photo.jpg", "file_url": "https://files.example.com/photo.jpg"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        att_id = resp.json["data"]["id"]

        resp = client.put(
            f"/api/service-requests/{rid}/attachments/{att_id}",
            json={"description": "Before repair", "is_customer_visible": True},
            headers=admin_headers,
        )
        assert resp.json["data"]["description"] == "Before repair"

        visible = client.get(
            f"/api/service-requests/{rid}/attachments?customer_visible=true", headers=admin_headers
        ).json["data"]
        assert [a["id"] for a in visible] == [att_id]

        bad = client.post(
            f"/api/service-requests/{rid}/attachments",
            json={"file_name": "x", "file_url": "ftp://nope"},
            headers=admin_headers,
        )
        assert bad.status_code == 400

    def test_unassigned_technician_cannot_upload(self, client, admin_headers, technician_headers, service_category):
        rid = create_ticket(client, admin_headers, service_category)["id"]
        resp = self._upload(client, technician_headers, rid)
        assert resp.status_code == 403
