# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

- Read operations require VIEW_INVENTORY
- Create/update require MANAGE_PRODUCTS, direct stock edits ADJUST_STOCK
- Delete requires DELETE_PRODUCTS
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, ValidationError, error_response
from ..models import Product
from ..services import product_service
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_product,
    parse_int_arg,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "category", "unit", "price", "supplier_id"},
    required_on_create={"sku", "name", "category", "price"},
    immutable_fields={"sku"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _threshold() -> int:
    return current_app.config["LOW_STOCK_THRESHOLD"]


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products_route():
    """
    Query params:
    - category: exact category
    - search: name or SKU substring
    - sort_by: name (default) | sku | price | current_stock | created_at
    - sort_dir: asc (default) | desc
    - page (default 1), limit (default 20, max 100)
    """
    try:
        result = product_service.list_products(
            category=request.args.get("category"),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by", "name"),
            sort_dir=request.args.get("sort_dir", "asc"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 20, type=int),
        )
        result["products"] = [p.to_dict(_threshold()) for p in result["products"]]
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)


@products_bp.get("/categories")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_categories_route():
    return jsonify({"categories": product_service.list_categories()}), 200


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    threshold = request.args.get("threshold", _threshold(), type=int)
    products = product_service.list_low_stock(threshold)
    return jsonify({
        "threshold": threshold,
        "count": len(products),
        "products": [p.to_dict(threshold) for p in products],
    }), 200


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
    except ServiceError as e:
        return error_response(e)
    data = product.to_dict(_threshold())
    data["batch_count"] = product_service.count_batches(product_id)
    data["supplier"] = product.supplier.to_dict() if product.supplier else None
    return jsonify({"product": data}), 200


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = product_service.create_product(patch)
        return jsonify({"product": product.to_dict(_threshold())}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = product_service.update_product(product_id, patch)
        return jsonify({"product": product.to_dict(_threshold())}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_permission("ADJUST_STOCK")
def set_stock_route(product_id: int):
    """Body: {"current_stock": 25, "note"?: "cycle count"}"""
    data = request.get_json(silent=True) or {}
    try:
        if data.get("current_stock") is None:
            raise ValidationError("current_stock is required", {"field": "current_stock"})
        new_stock = parse_int_arg(data["current_stock"], "current_stock", minimum=0)
        product = product_service.set_stock(
            product_id,
            new_stock,
            acting_user_id=g.current_user.id,
            note=data.get("note"),
        )
        return jsonify({"product": product.to_dict(_threshold())}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set product stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/adjustments")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_adjustments_route(product_id: int):
    try:
        adjustments = product_service.list_adjustments(product_id)
    except ServiceError as e:
        return error_response(e)
    return jsonify({"adjustments": [a.to_dict() for a in adjustments]}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("DELETE_PRODUCTS")
def delete_product_route(product_id: int):
    try:
        deleted = product_service.delete_product(product_id)
        return jsonify({"ok": True, "deleted": deleted}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
