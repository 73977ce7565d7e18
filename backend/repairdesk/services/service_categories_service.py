# Overview: Categories for repair tickets (screen repair, data recovery, ...).

from __future__ import annotations

from ..extensions import db, query_cache
from ..models import ServiceCategory
from ..validation import ConflictError, NotFoundError

SERVICE_CATEGORY_MUTABLE_FIELDS = {"name", "description", "is_active"}


def _check_name(name: str | None, exclude_id: int | None = None) -> None:
    if name is None:
        return
    query = db.session.query(ServiceCategory).filter(db.func.lower(ServiceCategory.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(ServiceCategory.id != exclude_id)
    if query.first():
        raise ConflictError("Service category already exists")


def list_service_categories(*, include_inactive: bool = False) -> list[dict]:
    def _load():
        query = db.session.query(ServiceCategory)
        if not include_inactive:
            query = query.filter(ServiceCategory.is_active.is_(True))
        return [c.to_dict() for c in query.order_by(ServiceCategory.name.asc()).all()]

    return query_cache.get_or_load(("service-categories", include_inactive), _load)


def create_service_category(*, patch: dict) -> dict:
    _check_name(patch.get("name"))
    category = ServiceCategory(**patch)
    db.session.add(category)
    db.session.commit()
    query_cache.invalidate("service-categories")
    return category.to_dict()


def update_service_category(category_id: int, *, patch: dict) -> dict:
    category = db.session.get(ServiceCategory, category_id)
    if not category:
        raise NotFoundError("Service category not found")
    _check_name(patch.get("name"), exclude_id=category.id)
    for k, v in patch.items():
        if k in SERVICE_CATEGORY_MUTABLE_FIELDS:
            setattr(category, k, v)
    db.session.commit()
    query_cache.invalidate("service-categories", "service-requests", "reports")
    return category.to_dict()
