# Overview: Stock levels per product; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db, query_cache
from ..models import Inventory, Product
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .aggregation import DEFAULT_REORDER_LEVEL, stock_status
from .concurrency import run_with_retry
from .filters import INVENTORY_SEARCH_FIELDS, filter_by_stock, filter_rows

INVENTORY_MUTABLE_FIELDS = {"quantity", "reorder_level", "last_restock_date"}
STOCK_MODES = ("set", "add", "subtract")

CACHE_PREFIXES = ("inventory", "products", "products-with-inventory", "reports")


def _get_inventory_or_404(inventory_id: int) -> Inventory:
    inventory = db.session.get(Inventory, inventory_id)
    if not inventory:
        raise NotFoundError("Inventory not found")
    return inventory


def _serialize(inventory: Inventory) -> dict:
    data = inventory.to_dict(include_product=True)
    data["stock_status"] = stock_status(inventory.quantity, inventory.reorder_level)
    return data


def list_inventory(
    *,
    product_id: int | None = None,
    low_stock: bool = False,
    out_of_stock: bool = False,
    stock_filter: str | None = None,
    search: str | None = None,
) -> list[dict]:
    """
    Inventory rows with their product.

    low_stock keeps rows at or under their reorder level (out of stock
    included); out_of_stock keeps rows with nothing left.
    """
    def _load():
        rows = (
            db.session.query(Inventory)
            .join(Product, Product.id == Inventory.product_id)
            .order_by(Product.name.asc(), Inventory.id.asc())
            .all()
        )
        return [_serialize(i) for i in rows]

    rows = query_cache.get_or_load(("inventory", "all"), _load)

    def _stock_flags(row: dict) -> bool:
        quantity = row.get("quantity") or 0
        if out_of_stock and quantity > 0:
            return False
        if low_stock and quantity > (row.get("reorder_level") or DEFAULT_REORDER_LEVEL):
            return False
        return True

    rows = filter_rows(
        rows,
        search=search,
        search_fields=INVENTORY_SEARCH_FIELDS,
        equals={"product_id": product_id},
        predicate=_stock_flags,
    )
    try:
        return filter_by_stock(rows, stock_filter)
    except ValueError as e:
        raise ValidationError(str(e))


def get_inventory(inventory_id: int) -> dict:
    return _serialize(_get_inventory_or_404(inventory_id))


def get_inventory_by_product(product_id: int) -> dict:
    inventory = db.session.query(Inventory).filter_by(product_id=product_id).first()
    if not inventory:
        raise NotFoundError("Inventory not found")
    return _serialize(inventory)


def create_inventory(*, patch: dict) -> dict:
    product_id = patch.get("product_id")
    if not db.session.get(Product, product_id):
        raise ValidationError("Product not found")
    if db.session.query(Inventory.id).filter_by(product_id=product_id).first():
        raise ConflictError("Inventory record already exists for this product")

    inventory = Inventory(**patch)
    if inventory.quantity and inventory.quantity > 0 and inventory.last_restock_date is None:
        inventory.last_restock_date = utcnow()
    db.session.add(inventory)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return _serialize(inventory)


def update_inventory(inventory_id: int, *, patch: dict) -> dict:
    def _op():
        inventory = _get_inventory_or_404(inventory_id)
        before = inventory.quantity or 0
        for k, v in patch.items():
            if k in INVENTORY_MUTABLE_FIELDS:
                setattr(inventory, k, v)
        if (inventory.quantity or 0) > before and "last_restock_date" not in patch:
            inventory.last_restock_date = utcnow()
        db.session.commit()
        return inventory

    inventory = run_with_retry(_op)
    query_cache.invalidate(*CACHE_PREFIXES)
    return _serialize(inventory)


def update_stock(inventory_id: int, *, quantity: int, mode: str = "set") -> dict:
    """
    mode=set replaces the quantity; add/subtract apply a delta.
    Stock can never go below zero.
    """
    if mode not in STOCK_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(STOCK_MODES)}")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer")

    def _op():
        inventory = _get_inventory_or_404(inventory_id)
        current = inventory.quantity or 0
        if mode == "set":
            new_quantity = quantity
        elif mode == "add":
            new_quantity = current + quantity
        else:
            new_quantity = current - quantity
        if new_quantity < 0:
            raise ConflictError(f"Insufficient stock: {current} on hand")

        inventory.quantity = new_quantity
        if new_quantity > current:
            inventory.last_restock_date = utcnow()
        db.session.commit()
        return inventory

    inventory = run_with_retry(_op)
    query_cache.invalidate(*CACHE_PREFIXES)
    return _serialize(inventory)


def adjust_product_stock(product_id: int, delta: int) -> Inventory:
    """
    Apply delta to a product's stock inside the caller's transaction.

    Does not commit. Raises ConflictError when stock would go negative.
    """
    inventory = db.session.query(Inventory).filter_by(product_id=product_id).first()
    current = inventory.quantity if inventory else 0
    if current + delta < 0:
        product = db.session.get(Product, product_id)
        name = product.name if product else f"#{product_id}"
        raise ConflictError(f"Insufficient stock for {name}: {current} available")
    if inventory is None:
        inventory = Inventory(product_id=product_id, quantity=0, reorder_level=DEFAULT_REORDER_LEVEL)
        db.session.add(inventory)
    inventory.quantity = current + delta
    if delta > 0:
        inventory.last_restock_date = utcnow()
    return inventory


def delete_inventory(inventory_id: int) -> None:
    inventory = _get_inventory_or_404(inventory_id)
    db.session.delete(inventory)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
