# Overview: Flask API routes for the notification feed.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_permission("VIEW_NOTIFICATIONS")
def list_notifications_route():
    """
    Poll recent events (newest first).

    Query params:
    - event: newOrder | orderStatusChanged | lowStockAlert | nearExpiryAlert | inventoryUpdate
    - since_id: only rows with a larger id
    - limit: default 50, max 200
    """
    rows = notification_service.list_notifications(
        event=request.args.get("event"),
        since_id=request.args.get("since_id", type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify({"notifications": [n.to_dict() for n in rows]}), 200
