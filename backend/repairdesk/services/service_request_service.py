# backend/repairdesk/services/service_request_service.py
"""
Repair ticket workflow.

Status writes go through _apply_status so that:
- assigned/in_progress/completed stamp assigned_date/started_date/
  completed_date the first time the ticket enters that status
- completed and cancelled are terminal for everyone except admins
  (when ENFORCE_STATUS_TRANSITIONS is on)
- every change appends a status_change entry to the timeline

Role rules:
- admin and sales create tickets; only admin assigns technicians
- technicians only see and touch tickets assigned to them, and only the
  fields in TECHNICIAN_WRITABLE_FIELDS
- only admin deletes, and never a completed ticket
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db, query_cache
from ..models import (
    Customer,
    Product,
    ServiceCategory,
    ServicePartUsed,
    ServiceRequest,
    ServiceRequestUpdate,
    User,
    SERVICE_PAYMENT_METHODS,
    SERVICE_PAYMENT_STATUSES,
    SERVICE_PRIORITIES,
    SERVICE_STATUSES,
    UPDATE_TYPES,
)
from ..query_cache import freeze
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    enforce_rules_service_request,
    require_choice,
    validate_payload,
)
from .document_service import SERVICE_REQUEST_PREFIX, next_document_number
from .filters import SERVICE_REQUEST_SEARCH_FIELDS, filter_rows
from .inventory_service import adjust_product_stock

SERVICE_REQUEST_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "description", "service_category_id", "customer_id",
        "assigned_technician_id", "status", "priority",
        "device_type", "device_brand", "device_model", "device_serial_number",
        "estimated_completion", "estimated_cost_cents", "final_cost_cents",
        "payment_status", "payment_method", "payment_notes",
        "customer_notes", "internal_notes", "technician_notes", "completed_date",
    },
    required_on_create={"title", "description", "service_category_id"},
    min_lengths={"title": 2, "description": 10},
    max_lengths={"customer_notes": 1000, "internal_notes": 1000, "technician_notes": 1000, "payment_notes": 1000},
)

UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "update_type", "title", "description", "status_from", "status_to",
        "is_customer_visible", "notification_sent",
    },
    required_on_create={"update_type", "title"},
    min_lengths={"title": 1},
)

TECHNICIAN_WRITABLE_FIELDS = {"status", "internal_notes", "technician_notes", "final_cost_cents", "completed_date"}
TERMINAL_STATUSES = ("completed", "cancelled")
STATUS_TIMESTAMPS = {
    "assigned": "assigned_date",
    "in_progress": "started_date",
    "completed": "completed_date",
}

CACHE_PREFIXES = ("service-requests", "service-request-updates", "customers", "reports")


# =============================================================================
# Helpers
# =============================================================================


def _get_request_or_404(request_id: int) -> ServiceRequest:
    service_request = db.session.get(ServiceRequest, request_id)
    if not service_request:
        raise NotFoundError("Service request not found")
    return service_request


def ensure_can_access(service_request: ServiceRequest, actor: User) -> None:
    """Technicians only reach tickets assigned to them."""
    if actor.role == "technician" and service_request.assigned_technician_id != actor.id:
        raise PermissionDeniedError("You can only access service requests assigned to you")


def get_request_for(request_id: int, actor: User) -> ServiceRequest:
    service_request = _get_request_or_404(request_id)
    ensure_can_access(service_request, actor)
    return service_request


def _check_references(patch: dict) -> None:
    if "service_category_id" in patch:
        category = db.session.get(ServiceCategory, patch["service_category_id"])
        if not category:
            raise ValidationError("Service category not found")
    if patch.get("customer_id") is not None and not db.session.get(Customer, patch["customer_id"]):
        raise ValidationError("Customer not found")
    if patch.get("assigned_technician_id") is not None:
        tech = db.session.get(User, patch["assigned_technician_id"])
        if not tech or tech.role not in ("technician", "admin") or not tech.is_active:
            raise ValidationError("Technician not found")


def _check_choices(patch: dict) -> None:
    require_choice(patch, "status", SERVICE_STATUSES)
    require_choice(patch, "priority", SERVICE_PRIORITIES)
    require_choice(patch, "payment_status", SERVICE_PAYMENT_STATUSES)
    require_choice(patch, "payment_method", SERVICE_PAYMENT_METHODS)
    enforce_rules_service_request(patch)


def _log(
    service_request: ServiceRequest,
    *,
    actor: User | None,
    update_type: str,
    title: str,
    description: str | None = None,
    status_from: str | None = None,
    status_to: str | None = None,
    is_customer_visible: bool = True,
) -> ServiceRequestUpdate:
    entry = ServiceRequestUpdate(
        service_request=service_request,
        updated_by_id=actor.id if actor else None,
        update_type=update_type,
        title=title[:200],
        description=description[:1000] if description else None,
        status_from=status_from,
        status_to=status_to,
        is_customer_visible=is_customer_visible,
    )
    db.session.add(entry)
    return entry


def is_transition_allowed(current: str, new: str, *, role: str) -> bool:
    if current == new:
        return True
    if not current_app.config.get("ENFORCE_STATUS_TRANSITIONS", True):
        return True
    if current in TERMINAL_STATUSES and role != "admin":
        return False
    return True


def _apply_status(service_request: ServiceRequest, new_status: str, *, actor: User, notes: str | None = None) -> None:
    require_choice({"status": new_status}, "status", SERVICE_STATUSES)
    previous = service_request.status
    if previous == new_status:
        return
    if not is_transition_allowed(previous, new_status, role=actor.role):
        raise ConflictError(f"Cannot change status from {previous} to {new_status}")

    service_request.status = new_status
    stamp_field = STATUS_TIMESTAMPS.get(new_status)
    if stamp_field and getattr(service_request, stamp_field) is None:
        setattr(service_request, stamp_field, utcnow())

    _log(
        service_request,
        actor=actor,
        update_type="status_change",
        title=f"Status changed to {new_status.replace('_', ' ')}",
        description=notes,
        status_from=previous,
        status_to=new_status,
    )


def _apply_assignment(service_request: ServiceRequest, technician_id: int | None, *, actor: User) -> None:
    if service_request.assigned_technician_id == technician_id:
        return
    service_request.assigned_technician_id = technician_id
    if technician_id is None:
        _log(service_request, actor=actor, update_type="technician_assigned",
             title="Technician unassigned", is_customer_visible=False)
        return

    tech = db.session.get(User, technician_id)
    _log(service_request, actor=actor, update_type="technician_assigned",
         title=f"Assigned to {tech.full_name}")
    if service_request.status == "pending":
        _apply_status(service_request, "assigned", actor=actor)
    elif service_request.assigned_date is None:
        service_request.assigned_date = utcnow()


def _commit(service_request: ServiceRequest) -> dict:
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return service_request.to_dict()


# =============================================================================
# Service requests
# =============================================================================


def list_service_requests(
    *,
    actor: User | None = None,
    query: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    technician_id: int | None = None,
    category_id: int | None = None,
    customer_id: int | None = None,
) -> list[dict]:
    """Newest first. Technicians are limited to their own assignments."""
    if actor is not None and actor.role == "technician":
        technician_id = actor.id
    if status and status != "all":
        require_choice({"status": status}, "status", SERVICE_STATUSES)
    if priority and priority != "all":
        require_choice({"priority": priority}, "priority", SERVICE_PRIORITIES)

    filters = {
        "technician_id": technician_id,
        "category_id": category_id,
        "customer_id": customer_id,
    }

    def _load():
        q = db.session.query(ServiceRequest)
        if technician_id is not None:
            q = q.filter(ServiceRequest.assigned_technician_id == technician_id)
        if category_id is not None:
            q = q.filter(ServiceRequest.service_category_id == category_id)
        if customer_id is not None:
            q = q.filter(ServiceRequest.customer_id == customer_id)
        rows = q.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc()).all()
        return [r.to_dict() for r in rows]

    rows = query_cache.get_or_load(("service-requests", "list", freeze(filters)), _load)
    return filter_rows(
        rows,
        search=query,
        search_fields=SERVICE_REQUEST_SEARCH_FIELDS,
        equals={"status": status, "priority": priority},
    )


def get_service_request(request_id: int, *, actor: User | None = None) -> dict:
    service_request = _get_request_or_404(request_id)
    if actor is not None:
        ensure_can_access(service_request, actor)
    data = service_request.to_dict()
    data["updates"] = [u.to_dict() for u in reversed(service_request.updates)]
    data["parts_used"] = [p.to_dict() for p in service_request.parts_used]
    data["attachments"] = [a.to_dict() for a in service_request.attachments]
    return data


def create_service_request(*, payload: dict, actor: User) -> dict:
    if actor.role not in ("admin", "sales"):
        raise PermissionDeniedError("Only admin and sales can create service requests")

    patch = validate_payload(model=ServiceRequest, payload=payload, policy=SERVICE_REQUEST_POLICY, partial=False)
    technician_id = patch.pop("assigned_technician_id", None)
    if technician_id is not None and actor.role != "admin":
        raise PermissionDeniedError("Only admin can assign technicians")
    # new tickets always start pending; assignment moves them on
    patch.pop("status", None)
    patch.pop("completed_date", None)
    _check_choices(patch)
    _check_references({**patch, "assigned_technician_id": technician_id})

    service_request = ServiceRequest(**patch)
    service_request.status = "pending"
    service_request.created_by_id = actor.id
    try:
        service_request.request_number = next_document_number(prefix=SERVICE_REQUEST_PREFIX)
        db.session.add(service_request)
        _log(service_request, actor=actor, update_type="general_update", title="Service request created")
        if technician_id is not None:
            _apply_assignment(service_request, technician_id, actor=actor)
        result = _commit(service_request)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Service request %s created by user %s", service_request.request_number, actor.id)
    return result


def update_service_request(request_id: int, *, payload: dict, actor: User) -> dict:
    service_request = get_request_for(request_id, actor)

    if actor.role == "technician":
        forbidden = sorted(set(payload) - TECHNICIAN_WRITABLE_FIELDS)
        if forbidden:
            raise PermissionDeniedError(f"Technicians cannot update: {', '.join(forbidden)}")
    if "assigned_technician_id" in payload and actor.role != "admin":
        raise PermissionDeniedError("Only admin can assign technicians")

    patch = validate_payload(model=ServiceRequest, payload=payload, policy=SERVICE_REQUEST_POLICY, partial=True)
    _check_choices(patch)
    _check_references(patch)

    new_status = patch.pop("status", None)
    has_assignment = "assigned_technician_id" in patch
    technician_id = patch.pop("assigned_technician_id", None)

    try:
        for k, v in patch.items():
            setattr(service_request, k, v)
        if has_assignment:
            _apply_assignment(service_request, technician_id, actor=actor)
        if new_status is not None:
            _apply_status(service_request, new_status, actor=actor)
        return _commit(service_request)
    except Exception:
        db.session.rollback()
        raise


def update_status(request_id: int, *, status: str, actor: User, notes: str | None = None) -> dict:
    service_request = get_request_for(request_id, actor)
    if notes is not None and len(notes) > 1000:
        raise ValidationError("notes exceeds max length 1000")
    _apply_status(service_request, status, actor=actor, notes=notes)
    if notes:
        service_request.technician_notes = notes
    return _commit(service_request)


def assign_technician(request_id: int, *, technician_id: int | None, actor: User) -> dict:
    if actor.role != "admin":
        raise PermissionDeniedError("Only admin can assign technicians")
    service_request = _get_request_or_404(request_id)
    _check_references({"assigned_technician_id": technician_id})
    _apply_assignment(service_request, technician_id, actor=actor)
    return _commit(service_request)


def record_payment(
    request_id: int,
    *,
    final_cost_cents: int,
    payment_method: str,
    payment_status: str,
    actor: User,
    payment_notes: str | None = None,
) -> dict:
    """Store the payment fields and log a customer-visible payment_received entry."""
    if actor.role not in ("admin", "sales"):
        raise PermissionDeniedError("Only admin and sales can record payments")
    service_request = _get_request_or_404(request_id)

    patch = validate_payload(
        model=ServiceRequest,
        payload={
            "final_cost_cents": final_cost_cents,
            "payment_method": payment_method,
            "payment_status": payment_status,
            "payment_notes": payment_notes,
        },
        policy=SERVICE_REQUEST_POLICY,
        partial=True,
    )
    if patch.get("final_cost_cents") is None:
        raise ValidationError("final_cost_cents is required")
    if not patch.get("payment_method") or not patch.get("payment_status"):
        raise ValidationError("payment_method and payment_status are required")
    _check_choices(patch)

    previous = service_request.payment_status or "pending"
    for k, v in patch.items():
        setattr(service_request, k, v)

    description = f"Payment method: {patch['payment_method']}. Final cost: {patch['final_cost_cents'] / 100:.2f}"
    if patch.get("payment_notes"):
        description += f". Notes: {patch['payment_notes']}"
    _log(
        service_request,
        actor=actor,
        update_type="payment_received",
        title=f"Payment status updated to {patch['payment_status']}",
        description=description,
        status_from=previous,
        status_to=patch["payment_status"],
    )
    return _commit(service_request)


def delete_service_request(request_id: int, *, actor: User) -> None:
    if actor.role != "admin":
        raise PermissionDeniedError("Only admin can delete service requests")
    service_request = _get_request_or_404(request_id)
    if service_request.status == "completed":
        raise ConflictError("Cannot delete a completed service request")

    stored_files = [a.storage_path for a in service_request.attachments if a.storage_path]
    for part in service_request.parts_used:
        adjust_product_stock(part.product_id, part.quantity)
    db.session.delete(service_request)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES, "inventory", "products", "products-with-inventory")

    from .attachment_service import remove_stored_file
    for path in stored_files:
        remove_stored_file(path)
    current_app.logger.info("Service request %s deleted by user %s", request_id, actor.id)


# =============================================================================
# Timeline
# =============================================================================


def list_updates(
    request_id: int,
    *,
    actor: User | None = None,
    customer_visible: bool | None = None,
    update_type: str | None = None,
) -> list[dict]:
    service_request = _get_request_or_404(request_id)
    if actor is not None:
        ensure_can_access(service_request, actor)
    if update_type:
        require_choice({"update_type": update_type}, "update_type", UPDATE_TYPES)

    def _load():
        rows = (
            db.session.query(ServiceRequestUpdate)
            .filter(ServiceRequestUpdate.service_request_id == request_id)
            .order_by(ServiceRequestUpdate.created_at.desc(), ServiceRequestUpdate.id.desc())
            .all()
        )
        return [u.to_dict() for u in rows]

    rows = query_cache.get_or_load(("service-request-updates", request_id), _load)
    return filter_rows(rows, equals={"is_customer_visible": customer_visible, "update_type": update_type})


def add_update(request_id: int, *, payload: dict, actor: User) -> dict:
    service_request = get_request_for(request_id, actor)
    patch = validate_payload(model=ServiceRequestUpdate, payload=payload, policy=UPDATE_POLICY, partial=False)
    require_choice(patch, "update_type", UPDATE_TYPES)

    entry = ServiceRequestUpdate(service_request=service_request, updated_by_id=actor.id, **patch)
    db.session.add(entry)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return entry.to_dict()


# =============================================================================
# Parts used
# =============================================================================


def list_parts(request_id: int, *, actor: User | None = None) -> list[dict]:
    service_request = _get_request_or_404(request_id)
    if actor is not None:
        ensure_can_access(service_request, actor)
    return [p.to_dict() for p in service_request.parts_used]


def add_part(
    request_id: int,
    *,
    product_id: int,
    quantity: int,
    actor: User,
    unit_cost_cents: int | None = None,
) -> dict:
    """Record a part consumed by the repair and take it out of stock."""
    service_request = get_request_for(request_id, actor)
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("quantity must be > 0")
    product = db.session.get(Product, product_id)
    if not product:
        raise ValidationError("Product not found")
    if unit_cost_cents is None:
        unit_cost_cents = product.cost_price_cents or 0
    if not isinstance(unit_cost_cents, int) or unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents must be a non-negative integer")

    try:
        adjust_product_stock(product.id, -quantity)
        part = ServicePartUsed(
            service_request=service_request,
            product_id=product.id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            total_cost_cents=quantity * unit_cost_cents,
        )
        db.session.add(part)
        _log(
            service_request,
            actor=actor,
            update_type="parts_added",
            title=f"Added {quantity} x {product.name}",
            is_customer_visible=False,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    query_cache.invalidate(*CACHE_PREFIXES, "inventory", "products", "products-with-inventory")
    return part.to_dict()


def remove_part(request_id: int, part_id: int, *, actor: User) -> None:
    service_request = get_request_for(request_id, actor)
    part = db.session.get(ServicePartUsed, part_id)
    if not part or part.service_request_id != service_request.id:
        raise NotFoundError("Part not found")
    try:
        adjust_product_stock(part.product_id, part.quantity)
        db.session.delete(part)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    query_cache.invalidate(*CACHE_PREFIXES, "inventory", "products", "products-with-inventory")
