# Overview: Flask API routes for agents operations; parses input and returns JSON responses.

# backend/crm/routes/agents.py
"""
Agent management routes.

SECURITY: All routes require authentication.
- Sales reps only ever see and edit their own agents (enforced in agent_service)
- Delete and CSV export are admin permissions
"""

from flask import Blueprint, Response, request, g

from ..api_response import api_error_response, success_response
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..models import Agent
from ..services import agent_service, export_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_agent,
)
from crm.time_utils import utcnow

AGENT_POLICY = ModelValidationPolicy(
    writable_fields={"companyName", "contactPerson", "password", "phone", "relatedSalesId"},
    required_on_create={"companyName", "contactPerson", "password", "phone"},
    aliases={
        "companyName": "company_name",
        "contactPerson": "contact_person",
        "relatedSalesId": "related_sales_id",
    },
    virtual_fields={"password"},
)

agents_bp = Blueprint("agents", __name__, url_prefix="/api/agents")


@agents_bp.get("")
@require_auth
@require_permission("agents", "read")
def list_agents_route():
    return success_response(agent_service.list_agents(g.current_user))


@agents_bp.post("")
@require_auth
@require_permission("agents", "create")
def create_agent_route():
    """
    Create an agent.

    Sales reps create pending agents related to themselves; admins create
    approved agents with any (or no) related sales rep.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Agent, payload=payload, policy=AGENT_POLICY, partial=False)
        enforce_rules_agent(patch)
        agent = agent_service.create_agent(actor=g.current_user, patch=patch)
    except ApiError as e:
        return api_error_response(e)

    message = "代理商创建成功，请等待管理员审批" if g.current_user.is_sales else "代理商创建成功"
    return success_response(agent.to_dict(), message, 201)


@agents_bp.put("/<int:agent_id>")
@require_auth
@require_permission("agents", "update")
def update_agent_route(agent_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Agent, payload=payload, policy=AGENT_POLICY, partial=True)
        enforce_rules_agent(patch)
        agent = agent_service.update_agent(actor=g.current_user, agent_id=agent_id, patch=patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(agent.to_dict(), "代理商更新成功")


@agents_bp.delete("/<int:agent_id>")
@require_auth
@require_permission("agents", "delete")
def delete_agent_route(agent_id: int):
    try:
        agent_service.delete_agent(agent_id)
    except ApiError as e:
        return api_error_response(e)

    return success_response(None, "删除代理商成功")


@agents_bp.get("/by-sales/<int:sales_id>")
@require_auth
def agents_by_sales_route(sales_id: int):
    try:
        agents = agent_service.agents_by_sales(actor=g.current_user, sales_id=sales_id)
    except ApiError as e:
        return api_error_response(e)

    return success_response({"agents": agents})


@agents_bp.get("/assignable")
@require_auth
def assignable_agents_route():
    try:
        agents = agent_service.assignable_agents(g.current_user)
    except ApiError as e:
        return api_error_response(e)

    return success_response({"agents": agents})


@agents_bp.get("/export/csv")
@require_auth
@require_permission("exports", "agents")
def export_agents_route():
    filename = f"agents_export_{utcnow().date().isoformat()}.csv"
    return Response(
        export_service.agents_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
