# Overview: Flask API routes for user administration; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, ValidationError, error_response
from ..models import User
from ..services import auth_service
from ..validation import ModelValidationPolicy, enforce_rules_user, validate_payload

USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "role", "is_active"},
    required_on_create={"name", "email"},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _split_password(payload: dict) -> tuple[dict, str | None]:
    payload = dict(payload)
    password = payload.pop("password", None)
    if password is not None and not isinstance(password, str):
        raise ValidationError("password must be a string", {"field": "password"})
    return payload, password


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    return jsonify({"users": [u.to_dict() for u in auth_service.list_users()]}), 200


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def get_user_route(user_id: int):
    try:
        user = auth_service.get_user(user_id)
    except ServiceError as e:
        return error_response(e)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """Body: {"name", "email", "password", "role"?: "clerk"}"""
    try:
        payload, password = _split_password(request.get_json(silent=True) or {})
        if not password:
            raise ValidationError("password is required", {"field": "password"})
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
        enforce_rules_user(patch)
        user = auth_service.create_user(
            name=patch["name"],
            email=patch["email"],
            password=password,
            role=patch.get("role", "clerk"),
        )
        current_app.logger.info("User %s created by %s", user.email, g.current_user.email)
        return jsonify({"user": user.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    try:
        payload, password = _split_password(request.get_json(silent=True) or {})
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
        enforce_rules_user(patch)
        user = auth_service.update_user(user_id, patch, password=password or None)
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def delete_user_route(user_id: int):
    try:
        deleted = auth_service.delete_user(user_id, acting_user_id=g.current_user.id)
        return jsonify({"ok": True, "deleted": deleted}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500
