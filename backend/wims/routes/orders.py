# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

"""
Order API routes.

Status codes:
- 400 ValidationFailed: malformed payload, bad batch reference, negative net
- 404 NotFound: order, customer, product or batch
- 409 InsufficientStock / InvalidState / InvalidTransition
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, error_response
from ..services import order_service
from ..services.order_service import CreateOrderRequest, UpdateOrderRequest

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    """
    Query params:
    - search: order number or customer name
    - status: Pending | Confirmed | Delivered | Cancelled
    - sort_by: created_at (default) | order_no | net_amount | status
    - sort_dir: desc (default) | asc
    - page (default 1), limit (default 10, max 100)
    """
    try:
        result = order_service.list_orders(
            search=request.args.get("search"),
            status=request.args.get("status"),
            sort_by=request.args.get("sort_by", "created_at"),
            sort_dir=request.args.get("sort_dir", "desc"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 10, type=int),
        )
        result["orders"] = [o.to_dict(include_lines=False) for o in result["orders"]]
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
@require_permission("CREATE_ORDER")
def create_order_route():
    """
    Body: {"customer_id", "items": [{"product_id", "quantity", "batch_id"?}],
           "discount"?, "tax"?, "notes"?}
    """
    try:
        req = CreateOrderRequest.from_payload(request.get_json(silent=True))
        order = order_service.create_order(req, acting_user_id=g.current_user.id)
        return jsonify({"order": order.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>")
@require_auth
@require_permission("EDIT_ORDER")
def update_order_route(order_id: int):
    """Only Pending orders can be edited. Supplying items replaces all lines."""
    try:
        req = UpdateOrderRequest.from_payload(request.get_json(silent=True))
        order = order_service.update_order(order_id, req)
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_permission("DELETE_ORDER")
def delete_order_route(order_id: int):
    try:
        deleted = order_service.delete_order(order_id)
        return jsonify({"ok": True, "deleted": deleted}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_permission("CHANGE_ORDER_STATUS")
def update_order_status_route(order_id: int):
    """Body: {"status": "Confirmed"}"""
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.update_order_status(order_id, data.get("status"))
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/invoice")
@require_auth
@require_permission("VIEW_ORDERS")
def invoice_route(order_id: int):
    try:
        return jsonify({"invoice": order_service.get_invoice(order_id)}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build invoice")
        return jsonify({"error": "Internal server error"}), 500
