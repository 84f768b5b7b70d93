# Overview: Flask API routes for customer assignment and progress history.

# backend/crm/routes/history.py
"""
Read access to the append-only customer audit trails, plus manual progress
entries posted by the web client.
"""

from flask import Blueprint, request, g

from ..api_response import api_error_response, success_response
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..services import history_service

assignments_bp = Blueprint("customer_assignments", __name__, url_prefix="/api/customerAssignments")
progress_bp = Blueprint("customer_progress", __name__, url_prefix="/api/customer-progress")


@assignments_bp.get("/<int:customer_id>")
@require_auth
@require_permission("customers", "read")
def assignment_history_route(customer_id: int):
    return success_response({"history": history_service.list_assignment_history(customer_id)})


@progress_bp.get("/<int:customer_id>")
@require_auth
@require_permission("customers", "read")
def progress_history_route(customer_id: int):
    return success_response(history_service.list_progress_history(customer_id))


@progress_bp.post("")
@require_auth
@require_permission("customers", "update")
def create_progress_route():
    """Body: {customerId, fromProgress, toProgress, remark?}"""
    payload = request.get_json(silent=True) or {}

    try:
        entry = history_service.create_progress_entry(g.current_user, payload)
    except ApiError as e:
        return api_error_response(e)

    return success_response(entry.to_dict(), "进展记录已保存", 201)


@progress_bp.get("")
@require_auth
@require_permission("customers", "read")
def query_progress_route():
    """Query params: startDate, endDate (inclusive), progress (matches from or to)."""
    try:
        rows = history_service.query_progress_history(
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
            progress=request.args.get("progress") or None,
        )
    except ApiError as e:
        return api_error_response(e)

    return success_response(rows)
