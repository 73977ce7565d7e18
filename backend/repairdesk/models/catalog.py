from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ProductCategory(db.Model):
    __tablename__ = "product_categories"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable item.

    Prices are integer cents; commission_rate_bps is the default commission
    copied onto sale items (500 == 5%). Deleting a product only flips
    is_active so historical sales keep their product reference.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    image_url = db.Column(db.String(1024), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))
    inventory = db.relationship("Inventory", uselist=False, back_populates="product")

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self, *, include_inventory: bool = False) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category": self.category.to_dict() if self.category else None,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "commission_rate_bps": self.commission_rate_bps,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_inventory:
            data["inventory"] = self.inventory.to_dict() if self.inventory else None
        return data

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "category": self.category.to_dict() if self.category else None,
        }


class Inventory(db.Model):
    """
    Stock on hand for one product.

    At most one row per product (unique product_id). reorder_level may be
    null, in which case the shop-wide default threshold applies.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=True, default=10)
    last_restock_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", back_populates="inventory")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Inventory product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self, *, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "last_restock_date": to_utc_z(self.last_restock_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_product:
            data["product"] = self.product.to_summary() if self.product else None
        return data
