from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Branch(db.Model):
    """
    Shop location. Employees may belong to one branch.

    commission_cutoff_cents / commission_bps describe the branch's
    commission scheme (bonus rate once monthly sales pass the cutoff).
    """
    __tablename__ = "branches"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    location = db.Column(db.String(255), nullable=True)
    commission_cutoff_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_bps = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "commission_cutoff_cents": self.commission_cutoff_cents,
            "commission_bps": self.commission_bps,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
