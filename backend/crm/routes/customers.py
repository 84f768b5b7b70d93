# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

# backend/crm/routes/customers.py
"""
Customer routes.

SECURITY: All routes require authentication.
- Row-level access (owner / related sales / related agent) is enforced in customer_service
- Inventory managers have no access to customer data
"""

from flask import Blueprint, request, g

from ..api_response import (
    api_error_response,
    error_response,
    pagination_meta,
    parse_pagination,
    success_response,
)
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..models import Customer
from ..services import customer_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "nature", "importance", "applicationField", "productNeeds",
        "contactPerson", "contactPhone", "address", "progress", "annualDemand",
        "relatedSalesId", "relatedAgentId",
    },
    required_on_create={
        "name", "nature", "importance", "applicationField", "productNeeds",
        "contactPerson", "contactPhone", "address", "progress", "annualDemand",
        "relatedSalesId",
    },
    aliases={
        "applicationField": "application_field",
        "productNeeds": "product_needs",
        "contactPerson": "contact_person",
        "contactPhone": "contact_phone",
        "annualDemand": "annual_demand",
        "relatedSalesId": "related_sales_id",
        "relatedAgentId": "related_agent_id",
    },
)

MAX_BULK_IMPORT = 1000

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _customer_patch(payload, partial: bool) -> dict:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=partial)
    enforce_rules_customer(patch)
    return patch


def _parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() == "true"


@customers_bp.get("")
@require_auth
@require_permission("customers", "read")
def list_customers_route():
    """
    List customers visible to the caller.

    Query params: keyword, nature, importance, progress, isInPublicPool, page, limit (default 10)
    """
    page, limit = parse_pagination(customer_service.DEFAULT_PAGE_SIZE)

    try:
        customers, total = customer_service.list_customers(
            actor=g.current_user,
            page=page,
            limit=limit,
            keyword=(request.args.get("keyword") or "").strip() or None,
            nature=request.args.get("nature") or None,
            importance=request.args.get("importance") or None,
            progress=request.args.get("progress") or None,
            in_public_pool=_parse_bool_arg("isInPublicPool"),
        )
    except ApiError as e:
        return api_error_response(e)

    return success_response({
        "customers": customers,
        "pagination": pagination_meta(total, page, limit),
    })


@customers_bp.get("/check-duplicate")
@require_auth
def check_duplicate_route():
    try:
        result = customer_service.check_duplicate(request.args.get("name"))
    except ApiError as e:
        return api_error_response(e)
    return success_response(result)


@customers_bp.post("")
@require_auth
@require_permission("customers", "create")
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = _customer_patch(payload, partial=False)
        customer = customer_service.create_customer(actor=g.current_user, patch=patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(customer.to_dict(), "客户创建成功", 201)


@customers_bp.post("/bulk-import")
@require_auth
@require_permission("customers", "create")
def bulk_import_route():
    """
    Import many customers in one transaction.

    Body: {customers: [...]} with the same fields as a single create.
    """
    payload = request.get_json(silent=True) or {}
    rows = payload.get("customers")
    if not isinstance(rows, list) or not rows:
        return error_response("customers 必须是非空数组", 400)
    if len(rows) > MAX_BULK_IMPORT:
        return error_response(f"单次最多导入{MAX_BULK_IMPORT}个客户", 400)

    try:
        patches = []
        for index, row in enumerate(rows):
            try:
                patches.append(_customer_patch(row, partial=False))
            except ApiError as e:
                e.message = f"第{index + 1}个客户: {e.message}"
                raise
        count = customer_service.bulk_import_customers(actor=g.current_user, patches=patches)
    except ApiError as e:
        return api_error_response(e)

    return success_response({"insertedCount": count}, "批量导入客户成功", 201)


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.view_customer(actor=g.current_user, customer_id=customer_id)
    except ApiError as e:
        return api_error_response(e)
    return success_response(customer)


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("customers", "update")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = _customer_patch(payload, partial=True)
        customer = customer_service.update_customer(actor=g.current_user, customer_id=customer_id, patch=patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(customer.to_dict(), "客户更新成功")


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_permission("customers", "delete")
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(actor=g.current_user, customer_id=customer_id)
    except ApiError as e:
        return api_error_response(e)
    return success_response(None, "客户删除成功")


@customers_bp.post("/<int:customer_id>/move-to-public")
@require_auth
def move_to_public_route(customer_id: int):
    try:
        customer_service.move_to_public_pool(actor=g.current_user, customer_id=customer_id)
    except ApiError as e:
        return api_error_response(e)
    return success_response(None, "客户已成功移入公海")
