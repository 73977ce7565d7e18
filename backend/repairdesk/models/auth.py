from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


USER_ROLES = ("admin", "sales", "technician")


class User(db.Model):
    """
    Shop employee.

    Role decides what the API lets the user do:
    - admin: everything, including employee management and deletes
    - sales: sales, customers, creating service requests
    - technician: only service requests assigned to them

    Users are deactivated (is_active=False), never deleted.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    staff_id = db.Column(db.String(64), nullable=False, unique=True)
    role = db.Column(db.String(32), nullable=False, default="sales")

    contact_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    profile_image_url = db.Column(db.String(1024), nullable=True)

    # bcrypt hash; sign-in is handled upstream so this may be empty
    password_hash = db.Column(db.String(255), nullable=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "staff_id": self.staff_id,
            "role": self.role,
            "contact_number": self.contact_number,
            "address": self.address,
            "profile_image_url": self.profile_image_url,
            "branch_id": self.branch_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "full_name": self.full_name, "email": self.email, "role": self.role}
