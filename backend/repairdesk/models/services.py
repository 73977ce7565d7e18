from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SERVICE_STATUSES = (
    "pending",
    "assigned",
    "in_progress",
    "waiting_parts",
    "completed",
    "cancelled",
    "on_hold",
)
SERVICE_PRIORITIES = ("low", "medium", "high", "urgent")
SERVICE_PAYMENT_STATUSES = ("pending", "paid", "partial", "refunded", "cancelled")
SERVICE_PAYMENT_METHODS = ("cash", "card", "transfer", "check", "other")
UPDATE_TYPES = (
    "status_change",
    "note_added",
    "technician_assigned",
    "parts_added",
    "customer_contacted",
    "payment_received",
    "completion_notice",
    "issue_found",
    "progress_update",
    "general_update",
)


class ServiceCategory(db.Model):
    __tablename__ = "service_categories"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ServiceRequest(db.Model):
    """
    Repair ticket.

    Lifecycle timestamps (assigned_date, started_date, completed_date) are
    stamped once, the first time the request enters the matching status.
    Every status change is mirrored in service_request_updates.
    """
    __tablename__ = "service_requests"
    __table_args__ = (
        db.Index("ix_service_requests_status_priority", "status", "priority"),
        db.Index("ix_service_requests_technician_status", "assigned_technician_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_number = db.Column(db.String(32), nullable=False, unique=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)

    service_category_id = db.Column(db.Integer, db.ForeignKey("service_categories.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    assigned_technician_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(32), nullable=False, default="pending")
    priority = db.Column(db.String(16), nullable=False, default="medium")

    device_type = db.Column(db.String(100), nullable=True)
    device_brand = db.Column(db.String(100), nullable=True)
    device_model = db.Column(db.String(100), nullable=True)
    device_serial_number = db.Column(db.String(100), nullable=True)

    estimated_completion = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_cost_cents = db.Column(db.Integer, nullable=True)
    final_cost_cents = db.Column(db.Integer, nullable=True)

    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(16), nullable=True)
    payment_notes = db.Column(db.Text, nullable=True)

    customer_notes = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)
    technician_notes = db.Column(db.Text, nullable=True)

    assigned_date = db.Column(db.DateTime(timezone=True), nullable=True)
    started_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("ServiceCategory")
    customer = db.relationship("Customer", backref=db.backref("service_requests", lazy=True))
    technician = db.relationship("User", foreign_keys=[assigned_technician_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    updates = db.relationship(
        "ServiceRequestUpdate",
        back_populates="service_request",
        cascade="all, delete-orphan",
        order_by="ServiceRequestUpdate.id",
    )
    parts_used = db.relationship(
        "ServicePartUsed",
        back_populates="service_request",
        cascade="all, delete-orphan",
        order_by="ServicePartUsed.id",
    )
    attachments = db.relationship(
        "ServiceRequestAttachment",
        back_populates="service_request",
        cascade="all, delete-orphan",
        order_by="ServiceRequestAttachment.id",
    )

    def __repr__(self) -> str:
        return f"<ServiceRequest id={self.id} number={self.request_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_number": self.request_number,
            "title": self.title,
            "description": self.description,
            "service_category_id": self.service_category_id,
            "category": self.category.to_dict() if self.category else None,
            "customer_id": self.customer_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "assigned_technician_id": self.assigned_technician_id,
            "technician": self.technician.to_summary() if self.technician else None,
            "created_by_id": self.created_by_id,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "status": self.status,
            "priority": self.priority,
            "device_type": self.device_type,
            "device_brand": self.device_brand,
            "device_model": self.device_model,
            "device_serial_number": self.device_serial_number,
            "estimated_completion": to_utc_z(self.estimated_completion),
            "estimated_cost_cents": self.estimated_cost_cents,
            "final_cost_cents": self.final_cost_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "payment_notes": self.payment_notes,
            "customer_notes": self.customer_notes,
            "internal_notes": self.internal_notes,
            "technician_notes": self.technician_notes,
            "assigned_date": to_utc_z(self.assigned_date),
            "started_date": to_utc_z(self.started_date),
            "completed_date": to_utc_z(self.completed_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ServiceRequestUpdate(db.Model):
    """Append-only timeline entry for a service request."""
    __tablename__ = "service_request_updates"
    __table_args__ = (
        db.Index("ix_service_request_updates_request_created", "service_request_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    service_request_id = db.Column(
        db.Integer, db.ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False
    )
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    update_type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    status_from = db.Column(db.String(32), nullable=True)
    status_to = db.Column(db.String(32), nullable=True)
    is_customer_visible = db.Column(db.Boolean, nullable=False, default=True)
    notification_sent = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    service_request = db.relationship("ServiceRequest", back_populates="updates")
    updated_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_request_id": self.service_request_id,
            "updated_by_id": self.updated_by_id,
            "updated_by": self.updated_by.to_summary() if self.updated_by else None,
            "update_type": self.update_type,
            "title": self.title,
            "description": self.description,
            "status_from": self.status_from,
            "status_to": self.status_to,
            "is_customer_visible": self.is_customer_visible,
            "notification_sent": self.notification_sent,
            "created_at": to_utc_z(self.created_at),
        }


class ServicePartUsed(db.Model):
    __tablename__ = "service_parts_used"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    service_request_id = db.Column(
        db.Integer, db.ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    service_request = db.relationship("ServiceRequest", back_populates="parts_used")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_request_id": self.service_request_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "created_at": to_utc_z(self.created_at),
        }


class ServiceRequestAttachment(db.Model):
    __tablename__ = "service_request_attachments"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    service_request_id = db.Column(
        db.Integer, db.ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(1024), nullable=False)
    file_type = db.Column(db.String(128), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    # Relative path under UPLOAD_FOLDER; null for URL-referenced attachments
    storage_path = db.Column(db.String(1024), nullable=True)
    description = db.Column(db.String(500), nullable=True)
    is_customer_visible = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    service_request = db.relationship("ServiceRequest", back_populates="attachments")
    uploaded_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_request_id": self.service_request_id,
            "uploaded_by_id": self.uploaded_by_id,
            "uploaded_by": self.uploaded_by.to_summary() if self.uploaded_by else None,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "description": self.description,
            "is_customer_visible": self.is_customer_visible,
            "created_at": to_utc_z(self.created_at),
        }
