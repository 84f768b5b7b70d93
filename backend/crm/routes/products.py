# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/crm/routes/products.py
"""
Product management and stock movement routes.

SECURITY: All routes require authentication.
- Read operations require products:read
- Catalog writes require products:create / update / delete
- Stock-in / stock-out require inventory:create

STOCK: Product.stock is never writable through PUT; it only moves through
stock-in / stock-out / bulk-stock (inventory_service.apply_stock_operation).
Clients may send operationId (or an Idempotency-Key header) so a retried
request is recognised instead of applied twice.
"""

from flask import Blueprint, Response, request, g

from ..api_response import (
    api_error_response,
    error_response,
    pagination_meta,
    parse_pagination,
    success_response,
    uncertain_response,
)
from ..constants import StockOperationType
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..models import Product
from ..services import export_service, inventory_service, product_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from crm.time_utils import utcnow

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"modelName", "packageType", "stock", "pricing"},
    required_on_create={"modelName", "packageType", "pricing"},
    aliases={"modelName": "model_name", "packageType": "package_type"},
)

MAX_BULK_IMPORT = 1000
PRODUCTS_PAGE_SIZE = 20

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_patch(payload, partial: bool) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch


@products_bp.get("")
@require_auth
@require_permission("products", "read")
def list_products_route():
    """Query params: keyword (modelName / packageType), page, limit (default 20)."""
    page, limit = parse_pagination(PRODUCTS_PAGE_SIZE)
    keyword = (request.args.get("keyword") or "").strip() or None

    products, total = product_service.list_products(page=page, limit=limit, keyword=keyword)
    return success_response({
        "products": products,
        "pagination": pagination_meta(total, page, limit),
    })


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("products", "read")
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
    except ApiError as e:
        return api_error_response(e)
    return success_response(product.to_dict())


@products_bp.post("")
@require_auth
@require_permission("products", "create")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = _product_patch(payload, partial=False)
        product = product_service.create_product(patch=patch, operator=g.current_user)
    except ApiError as e:
        return api_error_response(e)

    return success_response(product.to_dict(), "产品创建成功", 201)


@products_bp.post("/bulk-import")
@require_auth
@require_permission("products", "create")
def bulk_import_route():
    payload = request.get_json(silent=True) or {}
    rows = payload.get("products")
    if not isinstance(rows, list) or not rows:
        return error_response("products 必须是非空数组", 400)
    if len(rows) > MAX_BULK_IMPORT:
        return error_response(f"单次最多导入{MAX_BULK_IMPORT}个产品", 400)

    try:
        patches = [_product_patch(row, partial=False) for row in rows]
        count = product_service.bulk_import_products(patches=patches, operator=g.current_user)
    except ApiError as e:
        return api_error_response(e)

    return success_response({"insertedCount": count}, "批量导入产品成功", 201)


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("products", "update")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = _product_patch(payload, partial=True)
        product = product_service.update_product(product_id=product_id, patch=patch)
    except ApiError as e:
        return api_error_response(e)

    return success_response(product.to_dict(), "产品更新成功")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("products", "delete")
def delete_product_route(product_id: int):
    try:
        product_service.delete_product(product_id)
    except ApiError as e:
        return api_error_response(e)
    return success_response(None, "产品删除成功")


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================


def _stock_route(product_id: int, operation_type: str):
    payload = request.get_json(silent=True) or {}
    operation_id = payload.get("operationId") or request.headers.get("Idempotency-Key")

    try:
        result = inventory_service.apply_stock_operation(
            product_id=product_id,
            quantity=payload.get("quantity"),
            operation_type=operation_type,
            operator=g.current_user,
            remark=payload.get("remark"),
            operation_id=operation_id,
        )
    except ApiError as e:
        return api_error_response(e)

    if result.is_uncertain:
        return uncertain_response(result.uncertain_message())
    return success_response(result.to_dict())


@products_bp.post("/<int:product_id>/stock-in")
@require_auth
@require_permission("inventory", "create")
def stock_in_route(product_id: int):
    """Body: {quantity, remark?, operationId?}"""
    return _stock_route(product_id, StockOperationType.IN)


@products_bp.post("/<int:product_id>/stock-out")
@require_auth
@require_permission("inventory", "create")
def stock_out_route(product_id: int):
    """Body: {quantity, remark?, operationId?}"""
    return _stock_route(product_id, StockOperationType.OUT)


@products_bp.post("/bulk-stock")
@require_auth
@require_permission("inventory", "create")
def bulk_stock_route():
    """
    Body: {operations: [{productId, quantity, type: in|out, remark?, operationId?}]}

    Stops at the first rejected entry; earlier entries stay applied.
    """
    payload = request.get_json(silent=True) or {}

    try:
        results = inventory_service.apply_bulk_stock_operations(
            operations=payload.get("operations"),
            operator=g.current_user,
        )
    except ApiError as e:
        return api_error_response(e)

    summary = [
        {
            "productId": r.product_id,
            "type": r.operation_type,
            "quantity": r.quantity,
            "outcome": r.outcome,
            "operationId": r.operation_id,
            "newStock": r.new_stock,
        }
        for r in results
    ]
    if any(r.is_uncertain for r in results):
        return uncertain_response("部分库存操作状态不确定，请刷新页面查看最新库存", data={"results": summary})
    return success_response({"results": summary}, "批量库存操作成功")


@products_bp.get("/export")
@require_auth
@require_permission("exports", "products")
def export_products_route():
    filename = f"products_export_{utcnow().date().isoformat()}.csv"
    return Response(
        export_service.products_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@products_bp.get("/inventory-records")
@require_auth
@require_permission("inventory", "read")
def product_inventory_records_route():
    """Query params: productId, operationType, days (default 30), page, limit."""
    page, limit = parse_pagination(PRODUCTS_PAGE_SIZE)

    try:
        records, total = inventory_service.list_inventory_records(
            page=page,
            limit=limit,
            product_id=request.args.get("productId", type=int),
            operation_type=request.args.get("operationType") or None,
            days=request.args.get("days", type=int),
        )
    except ApiError as e:
        return api_error_response(e)

    return success_response({
        "records": records,
        "pagination": pagination_meta(total, page, limit),
    })
