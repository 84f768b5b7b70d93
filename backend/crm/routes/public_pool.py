# Overview: Flask API routes for the customer public pool; parses input and returns JSON responses.

# backend/crm/routes/public_pool.py

from flask import Blueprint, request, g

from ..api_response import api_error_response, success_response
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..services import public_pool_service

public_pool_bp = Blueprint("public_pool", __name__, url_prefix="/api/public-pool")


@public_pool_bp.get("")
@require_auth
@require_permission("publicPool", "read")
def list_pool_route():
    """Query params: keyword (name), nature, importance, applicationField."""
    customers = public_pool_service.list_pool(
        keyword=request.args.get("keyword"),
        nature=request.args.get("nature") or None,
        importance=request.args.get("importance") or None,
        application_field=request.args.get("applicationField") or None,
    )
    return success_response({"publicCustomers": customers})


@public_pool_bp.get("/assignable-users")
@require_auth
def assignable_users_route():
    try:
        data = public_pool_service.assignable_users(g.current_user)
    except ApiError as e:
        return api_error_response(e)
    return success_response(data)


@public_pool_bp.post("/<int:customer_id>/assign")
@require_auth
@require_permission("publicPool", "assign")
def claim_route(customer_id: int):
    """Body: {targetId, targetType: FACTORY_SALES | AGENT}"""
    payload = request.get_json(silent=True) or {}

    try:
        customer = public_pool_service.claim(
            actor=g.current_user,
            customer_id=customer_id,
            target_id=payload.get("targetId"),
            target_type=payload.get("targetType"),
        )
    except ApiError as e:
        return api_error_response(e)

    return success_response(customer.to_dict(), "客户认领成功")
