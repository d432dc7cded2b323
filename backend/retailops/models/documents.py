from __future__ import annotations

from ..extensions import db
from retailops.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-outlet document sequences.

    WHY: Order and PO numbers must be unique. A counter per
    (outlet, document_type, period) incremented with a single UPDATE replaces
    random suffixes that could collide.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "document_type", "period", name="uq_doc_sequences_outlet_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    # YYYYMMDD; numbering restarts each day
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    outlet = db.relationship("Outlet", backref=db.backref("document_sequences", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "document_type": self.document_type,
            "period": self.period,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
