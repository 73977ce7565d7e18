# Overview: Product categories.

from __future__ import annotations

from ..extensions import db, query_cache
from ..models import Product, ProductCategory
from ..validation import ConflictError, NotFoundError

CATEGORY_MUTABLE_FIELDS = {"name", "description"}

# products and sale items embed the category
CACHE_PREFIXES = ("categories", "products", "products-with-inventory", "inventory", "sales", "reports")


def _get_category_or_404(category_id: int) -> ProductCategory:
    category = db.session.get(ProductCategory, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _check_name(name: str | None, exclude_id: int | None = None) -> None:
    if name is None:
        return
    query = db.session.query(ProductCategory).filter(db.func.lower(ProductCategory.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(ProductCategory.id != exclude_id)
    if query.first():
        raise ConflictError("Category name already exists")


def list_categories() -> list[dict]:
    def _load():
        rows = db.session.query(ProductCategory).order_by(ProductCategory.name.asc()).all()
        return [c.to_dict() for c in rows]

    return query_cache.get_or_load(("categories",), _load)


def get_category(category_id: int) -> dict:
    return _get_category_or_404(category_id).to_dict()


def create_category(*, patch: dict) -> dict:
    _check_name(patch.get("name"))
    category = ProductCategory(**patch)
    db.session.add(category)
    db.session.commit()
    query_cache.invalidate("categories")
    return category.to_dict()


def update_category(category_id: int, *, patch: dict) -> dict:
    category = _get_category_or_404(category_id)
    _check_name(patch.get("name"), exclude_id=category.id)
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(category, k, v)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return category.to_dict()


def delete_category(category_id: int) -> None:
    category = _get_category_or_404(category_id)
    in_use = (
        db.session.query(Product.id)
        .filter(Product.category_id == category.id, Product.is_active.is_(True))
        .first()
    )
    if in_use:
        raise ConflictError("Cannot delete category with active products")

    db.session.query(Product).filter(Product.category_id == category.id).update(
        {Product.category_id: None}, synchronize_session=False
    )
    db.session.delete(category)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
