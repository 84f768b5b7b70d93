# Overview: Flask API routes for inventory records and statistics.

# backend/crm/routes/inventory.py

from flask import Blueprint, request

from ..api_response import api_error_response, pagination_meta, parse_pagination, success_response
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..services import inventory_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

RECORDS_PAGE_SIZE = 20


@inventory_bp.get("/records")
@require_auth
@require_permission("inventory", "read")
def list_records_route():
    """
    Stock movement history, newest first.

    Query params:
    - productId, modelName (substring), operationType (in | out | all)
    - startDate / endDate (ISO dates, end inclusive) or days (default 30)
    - page, limit (default 20)
    """
    page, limit = parse_pagination(RECORDS_PAGE_SIZE)

    try:
        records, total = inventory_service.list_inventory_records(
            page=page,
            limit=limit,
            product_id=request.args.get("productId", type=int),
            model_name=(request.args.get("modelName") or "").strip() or None,
            operation_type=request.args.get("operationType") or None,
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
            days=request.args.get("days", type=int),
        )
    except ApiError as e:
        return api_error_response(e)

    return success_response({
        "records": records,
        "pagination": pagination_meta(total, page, limit),
    })


@inventory_bp.get("/stats")
@require_auth
@require_permission("inventory", "read")
def stats_route():
    return success_response(inventory_service.inventory_stats())
