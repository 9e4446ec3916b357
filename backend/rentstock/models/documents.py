from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ACTIVITY_ACTIONS = ("create", "update", "delete")
ACTIVITY_ENTITY_TYPES = ("product", "stock", "asset", "rental", "sale")


class DocumentSequence(db.Model):
    """
    Per-day counter backing rental and bill numbers.

    One row per (document_type, period); next_number is bumped with an
    atomic UPDATE so concurrent writers never receive the same number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_document_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)


class ActivityLog(db.Model):
    """
    Audit trail written after each committed mutation.

    Written outside the mutating transaction; a failed write here never
    undoes the mutation it describes.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_activity_logs_actor_created", "actor", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(16), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    entity_name = db.Column(db.String(200), nullable=False)
    changes = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor": self.actor,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "changes": self.changes,
            "created_at": to_utc_z(self.created_at),
        }
