from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SequenceCounter(db.Model):
    """
    Atomic named counters.

    WHY: Prevent race conditions when generating invoice numbers.
    `sequence` holds the last value issued; the first value issued is 1.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(64), nullable=False, unique=True, index=True)
    sequence = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "sequence": self.sequence,
            "updated_at": to_utc_z(self.updated_at),
        }
