from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-prefix counter for generated document numbers.

    sequence_key is the full prefix including the day stamp
    ("INV-240101"), so numbering restarts every day.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("sequence_key", name="uq_document_sequences_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_key = db.Column(db.String(64), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<DocumentSequence key={self.sequence_key!r} next={self.next_number}>"
