# Overview: Service category routes.

from flask import Blueprint

from ..decorators import require_role, require_user
from ..models import ServiceCategory
from ..services import service_categories_service
from ..validation import ModelValidationPolicy, validate_payload
from .params import arg_bool, json_body

SERVICE_CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
    min_lengths={"name": 2},
)

service_categories_bp = Blueprint("service_categories", __name__, url_prefix="/api/service-categories")


@service_categories_bp.get("")
@require_user
def list_service_categories():
    include_inactive = bool(arg_bool("include_inactive", "includeInactive"))
    return {"data": service_categories_service.list_service_categories(include_inactive=include_inactive)}


@service_categories_bp.post("")
@require_user
@require_role("admin")
def create_service_category():
    patch = validate_payload(
        model=ServiceCategory, payload=json_body(), policy=SERVICE_CATEGORY_POLICY, partial=False
    )
    return {"data": service_categories_service.create_service_category(patch=patch)}, 201


@service_categories_bp.put("/<int:category_id>")
@require_user
@require_role("admin")
def update_service_category(category_id: int):
    patch = validate_payload(
        model=ServiceCategory, payload=json_body(), policy=SERVICE_CATEGORY_POLICY, partial=True
    )
    return {"data": service_categories_service.update_service_category(category_id, patch=patch)}
