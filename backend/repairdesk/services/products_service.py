# backend/repairdesk/services/products_service.py
"""
Products service.

Creating a product also creates its inventory row (quantity 0) so every
product shows up on the stock screens immediately. Deletes are soft:
is_active flips to False and the row stays for sales history.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db, query_cache
from ..models import Inventory, Product, ProductCategory
from ..validation import ConflictError, NotFoundError, ValidationError
from .filters import PRODUCT_SEARCH_FIELDS, filter_rows

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "category_id", "cost_price_cents",
    "selling_price_cents", "commission_rate_bps", "image_url", "is_active",
}

# sale items embed the product summary
CACHE_PREFIXES = ("products", "products-with-inventory", "inventory", "sales", "reports")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _get_product_or_404(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def _check_sku(sku: str | None, exclude_id: int | None = None) -> None:
    if sku is None:
        return
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists")


def _check_category(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None and not db.session.get(ProductCategory, category_id):
        raise ValidationError("Category not found")


def list_products(
    *,
    category_id: int | None = None,
    is_active: bool | None = None,
    search: str | None = None,
) -> list[dict]:
    def _load():
        rows = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
        return [p.to_dict(include_inventory=True) for p in rows]

    rows = query_cache.get_or_load(("products", "all"), _load)
    return filter_rows(
        rows,
        search=search,
        search_fields=PRODUCT_SEARCH_FIELDS,
        equals={"category_id": category_id, "is_active": is_active},
    )


def get_product(product_id: int) -> dict:
    return query_cache.get_or_load(
        ("products", "detail", product_id),
        lambda: _get_product_or_404(product_id).to_dict(include_inventory=True),
    )


def create_product(*, patch: dict, created_by_id: int | None = None) -> dict:
    _check_sku(patch.get("sku"))
    _check_category(patch)

    product = Product(**patch)
    product.created_by_id = created_by_id
    db.session.add(product)
    db.session.flush()

    db.session.add(Inventory(
        product_id=product.id,
        quantity=0,
        reorder_level=current_app.config.get("DEFAULT_REORDER_LEVEL", 10),
    ))
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return product.to_dict(include_inventory=True)


def update_product(product_id: int, *, patch: dict) -> dict:
    product = _get_product_or_404(product_id)
    _check_sku(patch.get("sku"), exclude_id=product.id)
    _check_category(patch)

    apply_product_patch(product, patch)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return product.to_dict(include_inventory=True)


def delete_product(product_id: int) -> bool:
    """Soft delete. Returns False when the product does not exist."""
    product = db.session.get(Product, product_id)
    if not product:
        return False
    product.is_active = False
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return True


def list_products_with_inventory() -> list[dict]:
    """Active products that can be sold right now (stock > 0)."""
    def _load():
        rows = (
            db.session.query(Product)
            .join(Inventory, Inventory.product_id == Product.id)
            .filter(Product.is_active.is_(True), Inventory.quantity > 0)
            .order_by(Product.name.asc())
            .all()
        )
        return [p.to_dict(include_inventory=True) for p in rows]

    return query_cache.get_or_load(("products-with-inventory",), _load)
