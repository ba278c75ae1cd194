# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, error_response
from ..models import Customer
from ..services import customer_service
from ..validation import ModelValidationPolicy, enforce_rules_party, validate_payload

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address"},
    required_on_create={"name", "email", "phone", "address"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    result = customer_service.list_customers(
        search=request.args.get("search"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    result["customers"] = [c.to_dict() for c in result["customers"]]
    return jsonify(result), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except ServiceError as e:
        return error_response(e)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.post("")
@require_auth
@require_permission("CREATE_CUSTOMER")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_party(patch)
        customer = customer_service.create_customer(patch)
        return jsonify({"customer": customer.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("EDIT_CUSTOMER")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_party(patch)
        customer = customer_service.update_customer(customer_id, patch)
        return jsonify({"customer": customer.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_permission("DELETE_CUSTOMER")
def delete_customer_route(customer_id: int):
    try:
        deleted = customer_service.delete_customer(customer_id)
        return jsonify({"ok": True, "deleted": deleted}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500
