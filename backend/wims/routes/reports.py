# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ServiceError, error_response
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def sales_report_route():
    """
    Query params:
    - start_date, end_date: YYYY-MM-DD, inclusive (default: month to date)
    - group_by: daily (default) | monthly | yearly
    """
    try:
        report = reporting_service.sales_summary(
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            group_by=request.args.get("group_by", "daily"),
        )
    except ServiceError as e:
        return error_response(e)
    return jsonify(report), 200


@reports_bp.get("/top-products")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def top_products_route():
    try:
        report = reporting_service.top_products(
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            limit=request.args.get("limit", 10, type=int),
        )
    except ServiceError as e:
        return error_response(e)
    return jsonify(report), 200


@reports_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_REPORTS")
def low_stock_report_route():
    threshold = request.args.get("threshold", current_app.config["LOW_STOCK_THRESHOLD"], type=int)
    try:
        report = reporting_service.low_stock_report(threshold=threshold)
    except ServiceError as e:
        return error_response(e)
    return jsonify(report), 200


@reports_bp.get("/near-expiry")
@require_auth
@require_permission("VIEW_REPORTS")
def near_expiry_report_route():
    days = request.args.get("days", current_app.config["NEAR_EXPIRY_DAYS"], type=int)
    try:
        report = reporting_service.near_expiry_report(days=days)
    except ServiceError as e:
        return error_response(e)
    return jsonify(report), 200


@reports_bp.get("/inventory-summary")
@require_auth
@require_permission("VIEW_REPORTS")
def inventory_summary_route():
    report = reporting_service.inventory_summary(
        low_stock_threshold=current_app.config["LOW_STOCK_THRESHOLD"],
    )
    return jsonify(report), 200


@reports_bp.get("/order-status")
@require_auth
@require_permission("VIEW_REPORTS")
def order_status_route():
    return jsonify(reporting_service.order_status_breakdown()), 200
