# Overview: Flask API routes for suppliers operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, error_response
from ..models import Supplier
from ..services import supplier_service
from ..validation import ModelValidationPolicy, enforce_rules_party, validate_payload

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "tax_id"},
    required_on_create={"name", "email", "phone", "address"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def list_suppliers_route():
    result = supplier_service.list_suppliers(
        search=request.args.get("search"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    result["suppliers"] = [s.to_dict() for s in result["suppliers"]]
    return jsonify(result), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def get_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(supplier_id)
    except ServiceError as e:
        return error_response(e)
    data = supplier.to_dict()
    data["product_count"] = len(supplier.products)
    return jsonify({"supplier": data}), 200


@suppliers_bp.post("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        enforce_rules_party(patch)
        supplier = supplier_service.create_supplier(patch)
        return jsonify({"supplier": supplier.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        enforce_rules_party(patch)
        supplier = supplier_service.update_supplier(supplier_id, patch)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_permission("DELETE_SUPPLIERS")
def delete_supplier_route(supplier_id: int):
    try:
        deleted = supplier_service.delete_supplier(supplier_id)
        return jsonify({"ok": True, "deleted": deleted}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete supplier")
        return jsonify({"error": "Internal server error"}), 500
