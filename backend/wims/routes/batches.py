# Overview: Flask API routes for batches operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, error_response
from ..models import Batch
from ..services import batch_service
from ..validation import ModelValidationPolicy, validate_payload

BATCH_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "batch_no", "quantity", "manufactured_date", "expiry_date"},
    required_on_create={"product_id", "batch_no", "quantity", "manufactured_date", "expiry_date"},
    immutable_fields={"product_id"},
)

batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


def _days_arg() -> int:
    return request.args.get("days", current_app.config["NEAR_EXPIRY_DAYS"], type=int)


@batches_bp.get("/near-expiry")
@require_auth
@require_permission("VIEW_INVENTORY")
def near_expiry_route():
    days = _days_arg()
    try:
        batches = batch_service.list_near_expiry(days)
    except ServiceError as e:
        return error_response(e)
    return jsonify({
        "days": days,
        "count": len(batches),
        "batches": [b.to_dict() | {"product_name": b.product.name} for b in batches],
    }), 200


@batches_bp.get("/expired")
@require_auth
@require_permission("VIEW_INVENTORY")
def expired_route():
    batches = batch_service.list_expired()
    return jsonify({
        "count": len(batches),
        "total_quantity": sum(b.quantity for b in batches),
        "batches": [b.to_dict() | {"product_name": b.product.name} for b in batches],
    }), 200


@batches_bp.get("/product/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_batches_route(product_id: int):
    """
    Query params:
    - include_expired: "true" to include expired batches
    - near_expiry_days: only batches expiring within N days
    """
    include_expired = request.args.get("include_expired", "false").lower() in ("1", "true", "yes")
    try:
        batches = batch_service.list_batches(
            product_id,
            include_expired=include_expired,
            near_expiry_days=request.args.get("near_expiry_days", type=int),
        )
    except ServiceError as e:
        return error_response(e)
    return jsonify({"product_id": product_id, "batches": [b.to_dict() for b in batches]}), 200


@batches_bp.get("/<int:batch_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_batch_route(batch_id: int):
    try:
        batch = batch_service.get_batch(batch_id)
    except ServiceError as e:
        return error_response(e)
    return jsonify({"batch": batch.to_dict() | {"product": batch.product.to_dict()}}), 200


@batches_bp.post("")
@require_auth
@require_permission("MANAGE_BATCHES")
def create_batch_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Batch, payload=payload, policy=BATCH_POLICY, partial=False)
        batch = batch_service.create_batch(patch)
        return jsonify({"batch": batch.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.put("/<int:batch_id>")
@require_auth
@require_permission("MANAGE_BATCHES")
def update_batch_route(batch_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Batch, payload=payload, policy=BATCH_POLICY, partial=True)
        batch = batch_service.update_batch(batch_id, patch)
        return jsonify({"batch": batch.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.delete("/<int:batch_id>")
@require_auth
@require_permission("DELETE_BATCHES")
def delete_batch_route(batch_id: int):
    try:
        deleted = batch_service.delete_batch(batch_id)
        return jsonify({"ok": True, "deleted": deleted}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete batch")
        return jsonify({"error": "Internal server error"}), 500
