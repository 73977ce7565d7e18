# Overview: Shop branches; an employee may belong to one.

from __future__ import annotations

from ..extensions import db, query_cache
from ..models import Branch, User
from ..validation import ConflictError, NotFoundError

BRANCH_MUTABLE_FIELDS = {"name", "location", "commission_cutoff_cents", "commission_bps"}


def _get_branch_or_404(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFoundError("Branch not found")
    return branch


def _check_name(name: str | None, exclude_id: int | None = None) -> None:
    if name is None:
        return
    query = db.session.query(Branch).filter(Branch.name == name)
    if exclude_id is not None:
        query = query.filter(Branch.id != exclude_id)
    if query.first():
        raise ConflictError("Branch name already exists")


def list_branches() -> list[dict]:
    def _load():
        return [b.to_dict() for b in db.session.query(Branch).order_by(Branch.name.asc()).all()]

    return query_cache.get_or_load(("branches",), _load)


def create_branch(*, patch: dict) -> dict:
    _check_name(patch.get("name"))
    branch = Branch(**patch)
    db.session.add(branch)
    db.session.commit()
    query_cache.invalidate("branches")
    return branch.to_dict()


def update_branch(branch_id: int, *, patch: dict) -> dict:
    branch = _get_branch_or_404(branch_id)
    _check_name(patch.get("name"), exclude_id=branch.id)
    for k, v in patch.items():
        if k in BRANCH_MUTABLE_FIELDS:
            setattr(branch, k, v)
    db.session.commit()
    query_cache.invalidate("branches")
    return branch.to_dict()


def delete_branch(branch_id: int) -> None:
    branch = _get_branch_or_404(branch_id)
    if db.session.query(User.id).filter(User.branch_id == branch.id).first():
        raise ConflictError("Cannot delete branch with associated employees")
    db.session.delete(branch)
    db.session.commit()
    query_cache.invalidate("branches", "users")
