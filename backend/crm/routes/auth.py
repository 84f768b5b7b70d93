# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/crm/routes/auth.py
"""
Authentication API routes

- Staff users and agent companies share one login endpoint
- Self-registration creates pending accounts that an admin must approve
- Tokens are stateless JWTs; require_auth re-checks the account on every request
"""

from flask import Blueprint, request, g

from ..api_response import api_error_response, error_response, success_response
from ..constants import UserRole
from ..decorators import require_auth
from ..errors import ApiError
from ..models import Agent, User
from ..services import auth_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_agent,
    enforce_rules_user,
)

REGISTER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "password", "phone", "role"},
    required_on_create={"username", "password", "phone", "role"},
    virtual_fields={"password"},
)

AGENT_REGISTER_POLICY = ModelValidationPolicy(
    writable_fields={"companyName", "contactPerson", "password", "phone", "relatedSalesId"},
    required_on_create={"companyName", "contactPerson", "password", "phone"},
    aliases={
        "companyName": "company_name",
        "contactPerson": "contact_person",
        "relatedSalesId": "related_sales_id",
    },
    virtual_fields={"password"},
)


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _credentials(payload: dict, name_key: str):
    name = payload.get(name_key)
    password = payload.get("password")
    if not isinstance(name, str) or not name.strip() or not isinstance(password, str) or not password:
        return None, None
    return name.strip(), password


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a user or agent and issue a bearer token.

    Body: {username, password, isAgent?}
    """
    payload = request.get_json(silent=True) or {}
    username, password = _credentials(payload, "username")
    if username is None:
        return error_response("用户名和密码不能为空", 400)

    try:
        result = auth_service.login(username, password, is_agent=bool(payload.get("isAgent")))
    except ApiError as e:
        return api_error_response(e)

    return success_response(result, "登录成功")


@auth_bp.post("/agent/login")
def agent_login_route():
    payload = request.get_json(silent=True) or {}
    company_name, password = _credentials(payload, "companyName")
    if company_name is None:
        return error_response("公司名和密码不能为空", 400)

    try:
        result = auth_service.login_agent(company_name, password)
    except ApiError as e:
        return api_error_response(e)

    return success_response(result, "登录成功")


@auth_bp.post("/register")
def register_route():
    """Self-registration for sales reps and inventory managers (pending approval)."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=User, payload=payload, policy=REGISTER_POLICY, partial=False)
        enforce_rules_user(patch, allowed_roles=UserRole.SELF_REGISTERABLE)
        user = auth_service.register_user(patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(user.to_dict(), "注册申请已提交，请等待管理员审批", 201)


@auth_bp.post("/agent/register")
def agent_register_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Agent, payload=payload, policy=AGENT_REGISTER_POLICY, partial=False)
        enforce_rules_agent(patch)
        agent = auth_service.register_agent(patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(agent.to_dict(), "注册申请已提交，请等待管理员审批", 201)


@auth_bp.get("/validate")
@require_auth
def validate_route():
    """Return the current principal's account (token sanity check for the client)."""
    try:
        account = auth_service.load_account(g.current_user)
    except ApiError as e:
        return api_error_response(e)
    return success_response({"user": auth_service.public_account_dict(account)}, "令牌有效")
