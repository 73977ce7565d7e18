# Overview: Flask API routes for repair tickets, their timeline, parts and attachments.

# backend/repairdesk/routes/service_requests.py
"""
Service request routes.

Role checks that depend on the ticket itself (technician assignment,
uploader ownership) live in the services; the routes only parse input.
"""
from flask import Blueprint, current_app, g, request, send_from_directory

from ..decorators import require_role, require_user
from ..services import attachment_service, service_request_service
from ..validation import ValidationError
from .params import arg_bool, arg_int, arg_str, json_body

service_requests_bp = Blueprint("service_requests", __name__, url_prefix="/api/service-requests")


def _form_bool(name: str) -> bool:
    return (request.form.get(name) or "").strip().lower() in {"true", "1", "yes"}


# =============================================================================
# Tickets
# =============================================================================


@service_requests_bp.get("")
@require_user
def list_service_requests():
    """
    Query params:
    - q / search: request number, title, customer, device
    - status, priority: exact match ("all" ignored)
    - technician_id, category_id, customer_id: int
    """
    rows = service_request_service.list_service_requests(
        actor=g.current_user,
        query=arg_str("q", "search"),
        status=arg_str("status"),
        priority=arg_str("priority"),
        technician_id=arg_int("technician_id", "technicianId"),
        category_id=arg_int("category_id", "categoryId"),
        customer_id=arg_int("customer_id", "customerId"),
    )
    return {"data": rows}


@service_requests_bp.post("")
@require_user
@require_role("admin", "sales")
def create_service_request():
    created = service_request_service.create_service_request(payload=json_body(), actor=g.current_user)
    return {"data": created}, 201


@service_requests_bp.get("/<int:request_id>")
@require_user
def get_service_request(request_id: int):
    return {"data": service_request_service.get_service_request(request_id, actor=g.current_user)}


@service_requests_bp.put("/<int:request_id>")
@require_user
def update_service_request(request_id: int):
    updated = service_request_service.update_service_request(request_id, payload=json_body(), actor=g.current_user)
    return {"data": updated}


@service_requests_bp.delete("/<int:request_id>")
@require_user
@require_role("admin")
def delete_service_request(request_id: int):
    service_request_service.delete_service_request(request_id, actor=g.current_user)
    return {"ok": True}


@service_requests_bp.post("/<int:request_id>/status")
@require_user
def update_status(request_id: int):
    """Body: {"status": str, "notes"?: str}"""
    payload = json_body()
    status = payload.get("status")
    if not status:
        raise ValidationError("status is required")
    updated = service_request_service.update_status(
        request_id, status=status, actor=g.current_user, notes=payload.get("notes")
    )
    return {"data": updated}


@service_requests_bp.post("/<int:request_id>/assign")
@require_user
@require_role("admin")
def assign_technician(request_id: int):
    """Body: {"technician_id": int | null}"""
    payload = json_body()
    if "technician_id" not in payload:
        raise ValidationError("technician_id is required")
    updated = service_request_service.assign_technician(
        request_id, technician_id=payload["technician_id"], actor=g.current_user
    )
    return {"data": updated}


@service_requests_bp.post("/<int:request_id>/payment")
@require_user
@require_role("admin", "sales")
def record_payment(request_id: int):
    payload = json_body()
    updated = service_request_service.record_payment(
        request_id,
        final_cost_cents=payload.get("final_cost_cents"),
        payment_method=payload.get("payment_method"),
        payment_status=payload.get("payment_status"),
        payment_notes=payload.get("payment_notes"),
        actor=g.current_user,
    )
    return {"data": updated}


# =============================================================================
# Timeline
# =============================================================================


@service_requests_bp.get("/<int:request_id>/updates")
@require_user
def list_updates(request_id: int):
    rows = service_request_service.list_updates(
        request_id,
        actor=g.current_user,
        customer_visible=arg_bool("customer_visible", "customerVisible"),
        update_type=arg_str("update_type", "updateType"),
    )
    return {"data": rows}


@service_requests_bp.post("/<int:request_id>/updates")
@require_user
def add_update(request_id: int):
    entry = service_request_service.add_update(request_id, payload=json_body(), actor=g.current_user)
    return {"data": entry}, 201


# =============================================================================
# Parts used
# =============================================================================


@service_requests_bp.get("/<int:request_id>/parts")
@require_user
def list_parts(request_id: int):
    return {"data": service_request_service.list_parts(request_id, actor=g.current_user)}


@service_requests_bp.post("/<int:request_id>/parts")
@require_user
def add_part(request_id: int):
    """Body: {"product_id": int, "quantity": int, "unit_cost_cents"?: int}"""
    payload = json_body()
    product_id = payload.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        raise ValidationError("product_id is required")
    part = service_request_service.add_part(
        request_id,
        product_id=product_id,
        quantity=payload.get("quantity"),
        unit_cost_cents=payload.get("unit_cost_cents"),
        actor=g.current_user,
    )
    return {"data": part}, 201


@service_requests_bp.delete("/<int:request_id>/parts/<int:part_id>")
@require_user
def remove_part(request_id: int, part_id: int):
    service_request_service.remove_part(request_id, part_id, actor=g.current_user)
    return {"ok": True}


# =============================================================================
# Attachments
# =============================================================================


@service_requests_bp.get("/<int:request_id>/attachments")
@require_user
def list_attachments(request_id: int):
    rows = attachment_service.list_attachments(
        request_id,
        actor=g.current_user,
        customer_visible=arg_bool("customer_visible", "customerVisible"),
    )
    return {"data": rows}


@service_requests_bp.post("/<int:request_id>/attachments")
@require_user
def create_attachment(request_id: int):
    created = attachment_service.create_attachment_record(request_id, payload=json_body(), actor=g.current_user)
    return {"data": created}, 201


@service_requests_bp.post("/upload")
@require_user
def upload_attachment():
    """Multipart form: file, serviceRequestId, description, isCustomerVisible."""
    raw_id = request.form.get("serviceRequestId") or request.form.get("service_request_id")
    if not raw_id:
        raise ValidationError("serviceRequestId is required")
    try:
        request_id = int(raw_id)
    except ValueError:
        raise ValidationError("serviceRequestId must be an integer")

    created = attachment_service.upload_attachment(
        request_id,
        file=request.files.get("file"),
        actor=g.current_user,
        description=request.form.get("description") or None,
        is_customer_visible=_form_bool("isCustomerVisible"),
    )
    return {"data": created}, 201


@service_requests_bp.get("/<int:request_id>/attachments/<int:attachment_id>")
@require_user
def get_attachment(request_id: int, attachment_id: int):
    return {"data": attachment_service.get_attachment(request_id, attachment_id, actor=g.current_user)}


@service_requests_bp.put("/<int:request_id>/attachments/<int:attachment_id>")
@require_user
def update_attachment(request_id: int, attachment_id: int):
    updated = attachment_service.update_attachment(
        request_id, attachment_id, payload=json_body(), actor=g.current_user
    )
    return {"data": updated}


@service_requests_bp.delete("/<int:request_id>/attachments/<int:attachment_id>")
@require_user
def delete_attachment(request_id: int, attachment_id: int):
    attachment_service.delete_attachment(request_id, attachment_id, actor=g.current_user)
    return {"ok": True}


@service_requests_bp.get("/<int:request_id>/attachments/<int:attachment_id>/download")
@require_user
def download_attachment(request_id: int, attachment_id: int):
    storage_path, attachment = attachment_service.attachment_download_path(
        request_id, attachment_id, actor=g.current_user
    )
    return send_from_directory(
        current_app.config["UPLOAD_FOLDER"],
        storage_path,
        mimetype=attachment.file_type,
        download_name=attachment.file_name,
    )
