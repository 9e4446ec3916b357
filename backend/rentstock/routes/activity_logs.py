# backend/rentstock/routes/activity_logs.py
"""
Audit trail listing.

- GET /api/activity-logs  - newest first (entity_type, entity_id, actor, action, page, limit)
"""
from flask import Blueprint, request

from ..decorators import paginated
from ..services import activity_log_service
from ..validation import normalize_paging

activity_logs_bp = Blueprint("activity_logs", __name__, url_prefix="/api/activity-logs")


@activity_logs_bp.get("")
def list_activity_logs_route():
    page, limit = normalize_paging(request.args.get("page"), request.args.get("limit"))
    logs, total = activity_log_service.list_activity_logs(
        entity_type=request.args.get("entity_type") or None,
        entity_id=request.args.get("entity_id") or None,
        actor=request.args.get("actor") or None,
        action=request.args.get("action") or None,
        page=page,
        limit=limit,
    )
    return paginated([log.to_dict() for log in logs], total, page, limit)
