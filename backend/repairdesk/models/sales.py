from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


PAYMENT_STATUSES = ("pending", "paid", "partial", "cancelled")
PAYMENT_METHODS = ("cash", "card", "transfer", "check", "other")


class Sale(db.Model):
    """
    Point-of-sale transaction.

    Money is stored in cents. Items and the commission record belong to
    the sale and are removed with it.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_person_date", "sales_person_id", "sale_date"),
        db.Index("ix_sales_status_date", "payment_status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    sales_person_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(16), nullable=False, default="cash")

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    sales_person = db.relationship("User", foreign_keys=[sales_person_id])
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    commission = db.relationship(
        "Commission",
        back_populates="sale",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} invoice={self.invoice_number!r} total={self.total_amount_cents}>"

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "sales_person_id": self.sales_person_id,
            "sales_person": self.sales_person.to_summary() if self.sales_person else None,
            "sale_date": to_utc_z(self.sale_date),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_amount_cents": self.total_amount_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_bps": self.discount_bps,
            "commission_rate_bps": self.commission_rate_bps,
            "total_price_cents": self.total_price_cents,
        }


class Commission(db.Model):
    """Commission owed to the sales person for one sale (at most one per sale)."""
    __tablename__ = "sales_commissions"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_sales_commissions_sale"),
        db.Index("ix_sales_commissions_person_paid", "sales_person_id", "is_paid"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False)
    sales_person_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    commission_amount_cents = db.Column(db.Integer, nullable=True, default=0)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    sale = db.relationship("Sale", back_populates="commission")
    sales_person = db.relationship("User", foreign_keys=[sales_person_id])

    def __repr__(self) -> str:
        return f"<Commission id={self.id} sale_id={self.sale_id} amount={self.commission_amount_cents}>"

    def to_dict(self) -> dict:
        sale = self.sale
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sales_person_id": self.sales_person_id,
            "sales_person": self.sales_person.to_summary() if self.sales_person else None,
            "commission_amount_cents": self.commission_amount_cents or 0,
            "is_paid": self.is_paid,
            "payment_date": to_utc_z(self.payment_date),
            "sale": {
                "invoice_number": sale.invoice_number,
                "sale_date": to_utc_z(sale.sale_date),
                "total_amount_cents": sale.total_amount_cents,
            } if sale else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
