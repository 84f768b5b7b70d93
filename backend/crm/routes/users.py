# Overview: Flask API routes for user administration; parses input and returns JSON responses.

# backend/crm/routes/users.py
"""
User management routes.

SECURITY: All routes require authentication.
- Listing requires users:read
- Approval of pending users and agents requires users:approve
- Create / update / delete require the matching users:* permission
"""

from flask import Blueprint, request, g

from ..api_response import api_error_response, error_response, success_response
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..models import User
from ..services import user_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_user,
)

USER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "password", "phone", "role"},
    required_on_create={"username", "password", "phone", "role"},
    virtual_fields={"password"},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("users", "read")
def list_users_route():
    return success_response(user_service.list_users())


@users_bp.get("/sales")
@require_auth
def list_sales_route():
    """Approved sales reps, for assignment pickers."""
    return success_response(user_service.list_sales())


@users_bp.get("/pending/approval")
@require_auth
@require_permission("users", "read")
def pending_accounts_route():
    return success_response({"pendingAccounts": user_service.list_pending_accounts()})


@users_bp.post("/approve")
@require_auth
@require_permission("users", "approve")
def approve_route():
    """
    Approve or reject a pending account.

    Body: {id, type: "user" | "agent", approved: bool, reason?}
    """
    payload = request.get_json(silent=True) or {}
    account_id = payload.get("id")
    approved = payload.get("approved")
    reason = payload.get("reason")

    if isinstance(account_id, bool) or not isinstance(account_id, int):
        return error_response("账户ID无效", 400)
    if not isinstance(approved, bool):
        return error_response("approved 必须是布尔值", 400)
    if reason is not None and not isinstance(reason, str):
        return error_response("reason 必须是字符串", 400)

    try:
        message = user_service.approve_account(
            account_id=account_id,
            account_type=payload.get("type"),
            approved=approved,
            reason=reason,
        )
    except ApiError as e:
        return api_error_response(e)

    return success_response(None, message)


@users_bp.post("")
@require_auth
@require_permission("users", "create")
def create_user_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
        enforce_rules_user(patch)
        user = user_service.create_user(patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(user.to_dict(), "创建用户成功", 201)


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("users", "update")
def update_user_route(user_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
        enforce_rules_user(patch)
        changed = user_service.update_user(actor=g.current_user, user_id=user_id, patch=patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(None, "更新用户成功" if changed else "用户数据未变更")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("users", "delete")
def delete_user_route(user_id: int):
    try:
        user_service.delete_user(actor=g.current_user, user_id=user_id)
    except ApiError as e:
        return api_error_response(e)

    return success_response(None, "删除用户成功")
