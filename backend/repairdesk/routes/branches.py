# Overview: Branch routes (admin only for writes).

from flask import Blueprint

from ..decorators import require_role, require_user
from ..models import Branch
from ..services import branch_service
from ..validation import ModelValidationPolicy, enforce_rules_branch, validate_payload
from .params import json_body

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={"name", "location", "commission_cutoff_cents", "commission_bps"},
    required_on_create={"name"},
)

branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


def _validated(partial: bool) -> dict:
    patch = validate_payload(model=Branch, payload=json_body(), policy=BRANCH_POLICY, partial=partial)
    enforce_rules_branch(patch)
    return patch


@branches_bp.get("")
@require_user
def list_branches():
    return {"data": branch_service.list_branches()}


@branches_bp.post("")
@require_user
@require_role("admin")
def create_branch():
    return {"data": branch_service.create_branch(patch=_validated(partial=False))}, 201


@branches_bp.patch("/<int:branch_id>")
@branches_bp.put("/<int:branch_id>")
@require_user
@require_role("admin")
def update_branch(branch_id: int):
    return {"data": branch_service.update_branch(branch_id, patch=_validated(partial=True))}


@branches_bp.delete("/<int:branch_id>")
@require_user
@require_role("admin")
def delete_branch(branch_id: int):
    branch_service.delete_branch(branch_id)
    return {"ok": True}
