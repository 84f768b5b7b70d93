# Overview: Flask API route for reassigning a customer's sales rep and agent.

# backend/crm/routes/change_customers.py

from flask import Blueprint, request, g

from ..api_response import api_error_response, success_response
from ..decorators import require_auth
from ..errors import ApiError
from ..services import customer_service

change_customers_bp = Blueprint("change_customers", __name__, url_prefix="/api/change_customers")


@change_customers_bp.post("/<int:customer_id>/assign")
@require_auth
def assign_customer_route(customer_id: int):
    """
    Body: {salesId, agentId?}

    agentId omitted keeps the current agent; null or "" clears it.
    """
    payload = request.get_json(silent=True) or {}
    agent_id = payload.get("agentId")
    if "agentId" in payload and agent_id is None:
        agent_id = ""

    try:
        data = customer_service.assign_customer(
            actor=g.current_user,
            customer_id=customer_id,
            sales_id=payload.get("salesId"),
            agent_id=agent_id,
        )
    except ApiError as e:
        return api_error_response(e)

    return success_response(data, "客户分配成功")
