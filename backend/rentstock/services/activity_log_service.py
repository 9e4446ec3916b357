# Overview: Audit trail writes and queries; failures never reach the caller.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, select

from ..extensions import db
from ..models import ActivityLog
from ..models.documents import ACTIVITY_ACTIONS, ACTIVITY_ENTITY_TYPES
from ..validation import ValidationError


def _write_activity(
    *,
    actor: str | None,
    action: str,
    entity_type: str,
    entity_id,
    entity_name: str,
    changes: dict | None,
) -> ActivityLog:
    entry = ActivityLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        entity_name=(entity_name or "")[:200],
        changes=changes,
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def record_activity(
    *,
    actor: str | None,
    action: str,
    entity_type: str,
    entity_id,
    entity_name: str,
    old: dict | None = None,
    new: dict | None = None,
) -> None:
    """
    Record one audit entry for a mutation that has already been committed.

    WHY: the audit trail is a side channel. A failure here is logged and
    dropped so it can never undo or fail the mutation it describes.
    """
    changes = {}
    if old is not None:
        changes["old"] = old
    if new is not None:
        changes["new"] = new

    try:
        _write_activity(
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            changes=changes or None,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to record %s activity for %s %s", action, entity_type, entity_id
        )


def list_activity_logs(
    *,
    entity_type: str | None = None,
    entity_id=None,
    actor: str | None = None,
    action: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[ActivityLog], int]:
    """Newest first."""
    if entity_type is not None and entity_type not in ACTIVITY_ENTITY_TYPES:
        raise ValidationError(f"Invalid entity_type '{entity_type}'")
    if action is not None and action not in ACTIVITY_ACTIONS:
        raise ValidationError(f"Invalid action '{action}'")

    filters = []
    if entity_type:
        filters.append(ActivityLog.entity_type == entity_type)
    if entity_id is not None:
        filters.append(ActivityLog.entity_id == str(entity_id))
    if actor:
        filters.append(ActivityLog.actor == actor)
    if action:
        filters.append(ActivityLog.action == action)

    total = db.session.execute(
        select(func.count(ActivityLog.id)).where(*filters)
    ).scalar_one()

    rows = db.session.execute(
        select(ActivityLog)
        .where(*filters)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return list(rows), total
