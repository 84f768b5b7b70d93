# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/crm/services/inventory_service.py
"""
Stock mutation, audit records and inventory statistics.

Stock invariants (authoritative):
- Product.stock is never negative (CHECK constraint plus the conditional UPDATE below).
- Every successful movement appends exactly one InventoryRecord in the same
  transaction as the stock change.
- InventoryRecord.operation_id is unique. Replaying an operation id never
  changes stock twice: the insert fails and the whole transaction rolls back.

Outcomes:
- SUCCESS: the movement committed (possibly confirmed by verification after an
  ambiguous commit failure).
- ALREADY_COMPLETED: this operation id had already been applied to the same
  product, type and quantity. A key reused for a different operation is a 409.
- STATUS_UNCERTAIN: the commit may or may not have landed and verification
  could not tell. Callers answer 202 and the client must refresh.

Canonical time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- Date filters accept ISO-8601; end dates are inclusive to the end of that day.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..constants import StockOperationType
from ..errors import ApiError, ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryRecord, Product
from ..validation import parse_positive_quantity
from .concurrency import is_transient_error, run_with_retry
from crm.time_utils import end_of_day, parse_iso_datetime, utcnow

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "SUCCESS"
OUTCOME_ALREADY_COMPLETED = "ALREADY_COMPLETED"
OUTCOME_STATUS_UNCERTAIN = "STATUS_UNCERTAIN"

OPERATION_LABEL = {
    StockOperationType.IN: "入库",
    StockOperationType.OUT: "出库",
}

MAX_OPERATION_ID_LENGTH = 64
DEFAULT_RECORD_DAYS = 30


@dataclass
class StockOperationResult:
    outcome: str
    product_id: int
    operation_type: str
    quantity: int
    operation_id: str
    new_stock: int | None = None
    expected_stock: int | None = None
    error: str | None = None

    @property
    def label(self) -> str:
        return OPERATION_LABEL[self.operation_type]

    @property
    def is_uncertain(self) -> bool:
        return self.outcome == OUTCOME_STATUS_UNCERTAIN

    def to_dict(self) -> dict:
        """Payload for the data field of a 200 response."""
        if self.outcome == OUTCOME_ALREADY_COMPLETED:
            return {
                "message": f"{self.label}操作已完成",
                "warning": "此操作可能是重复提交",
                "newStock": self.new_stock,
                "operationId": self.operation_id,
            }
        return {
            "message": f"{self.label}操作成功",
            "newStock": self.new_stock,
            "expectedStock": self.expected_stock,
            "operationId": self.operation_id,
        }

    def uncertain_message(self) -> str:
        return f"{self.label}操作状态不确定，请刷新页面查看最新库存"


class _VerifiedCommit(Exception):
    """Raised inside the retry loop when verification proved the commit landed."""


def new_operation_id() -> str:
    return uuid.uuid4().hex


def normalize_operation_id(value) -> str:
    """Client keys are trimmed strings; absent keys get a fresh random id."""
    if value is None:
        return new_operation_id()
    if not isinstance(value, str):
        raise ValidationError("operationId 必须是字符串")
    value = value.strip()
    if not value:
        return new_operation_id()
    if len(value) > MAX_OPERATION_ID_LENGTH:
        raise ValidationError(f"operationId 长度不能超过{MAX_OPERATION_ID_LENGTH}")
    return value


def _current_stock(product_id: int) -> int | None:
    return db.session.query(Product.stock).filter(Product.id == product_id).scalar()


def _find_record(operation_id: str) -> InventoryRecord | None:
    return db.session.query(InventoryRecord).filter(InventoryRecord.operation_id == operation_id).first()


def _is_same_operation(record: InventoryRecord, product_id, operation_type, quantity) -> bool:
    return (
        record.product_id == product_id
        and record.operation_type == operation_type
        and record.quantity == quantity
    )


def _replay_of(operation_id, product_id, operation_type, quantity) -> bool:
    """
    True when operation_id was already applied to this exact operation.

    A key reused for a different product, type or quantity is a client bug and
    raises ConflictError instead of reporting the earlier operation as done.
    """
    record = _find_record(operation_id)
    if record is None:
        return False
    if not _is_same_operation(record, product_id, operation_type, quantity):
        logger.warning(
            "operation id %s reused: recorded %s %s x%s, requested %s %s x%s",
            operation_id, record.operation_type, record.product_id, record.quantity,
            operation_type, product_id, quantity,
        )
        raise ConflictError("operationId 已用于其他库存操作", error_code="OPERATION_ID_CONFLICT")
    return True


def _already_completed(product_id, operation_type, quantity, operation_id) -> StockOperationResult:
    logger.info("stock operation %s already applied, skipping", operation_id)
    return StockOperationResult(
        outcome=OUTCOME_ALREADY_COMPLETED,
        product_id=product_id,
        operation_type=operation_type,
        quantity=quantity,
        operation_id=operation_id,
        new_stock=_current_stock(product_id),
    )


def _apply_once(*, product_id, quantity, operation_type, operator, remark, operation_id) -> StockOperationResult:
    """One attempt: conditional UPDATE + audit insert + commit."""
    if _replay_of(operation_id, product_id, operation_type, quantity):
        return _already_completed(product_id, operation_type, quantity, operation_id)

    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("产品不存在")

    previous_stock = product.stock
    if operation_type == StockOperationType.OUT and previous_stock < quantity:
        raise InsufficientStockError(previous_stock)

    if operation_type == StockOperationType.IN:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity, updated_at=utcnow())
        )
        expected_stock = previous_stock + quantity
    else:
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity, updated_at=utcnow())
        )
        expected_stock = previous_stock - quantity

    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 0:
        db.session.rollback()
        stock = _current_stock(product_id)
        if stock is None:
            raise NotFoundError("产品不存在")
        raise InsufficientStockError(stock)

    db.session.add(InventoryRecord(
        product_id=product.id,
        model_name=product.model_name,
        package_type=product.package_type,
        operation_type=operation_type,
        quantity=quantity,
        remark=remark,
        operator=operator.username if operator is not None else None,
        operator_id=operator.id if operator is not None else None,
        operation_time=utcnow(),
        operation_id=operation_id,
    ))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if not _replay_of(operation_id, product_id, operation_type, quantity):
            raise
        return _already_completed(product_id, operation_type, quantity, operation_id)
    except Exception as exc:
        if not is_transient_error(exc):
            raise
        db.session.rollback()
        # The commit may have landed before the connection failed
        if _replay_of(operation_id, product_id, operation_type, quantity):
            raise _VerifiedCommit() from exc
        raise

    return StockOperationResult(
        outcome=OUTCOME_SUCCESS,
        product_id=product_id,
        operation_type=operation_type,
        quantity=quantity,
        operation_id=operation_id,
        new_stock=_current_stock(product_id),
        expected_stock=expected_stock,
    )


def apply_stock_operation(
    *,
    product_id: int,
    quantity,
    operation_type: str,
    operator=None,
    remark: str | None = None,
    operation_id: str | None = None,
) -> StockOperationResult:
    """
    Apply one stock-in or stock-out.

    Raises ValidationError / NotFoundError / InsufficientStockError for hard
    failures; those are never retried. Transient database failures are retried
    under run_with_retry and end in STATUS_UNCERTAIN if they persist.
    """
    if operation_type not in StockOperationType.ALL:
        raise ValidationError("无效的操作类型")
    quantity = parse_positive_quantity(quantity)
    operation_id = normalize_operation_id(operation_id)
    if remark is not None and not isinstance(remark, str):
        raise ValidationError("remark 必须是字符串")

    def attempt():
        return _apply_once(
            product_id=product_id,
            quantity=quantity,
            operation_type=operation_type,
            operator=operator,
            remark=remark,
            operation_id=operation_id,
        )

    try:
        result = run_with_retry(attempt)
    except ApiError as e:
        logger.info(
            "stock operation %s (%s %s x%s) rejected: %s",
            operation_id, operation_type, product_id, quantity, e.message,
        )
        raise
    except _VerifiedCommit:
        logger.info("stock operation %s confirmed after ambiguous commit", operation_id)
        result = StockOperationResult(
            outcome=OUTCOME_SUCCESS,
            product_id=product_id,
            operation_type=operation_type,
            quantity=quantity,
            operation_id=operation_id,
        )
        try:
            result.new_stock = _current_stock(product_id)
        except Exception as exc:
            if not is_transient_error(exc):
                raise
            db.session.rollback()
        return result
    except Exception as exc:
        if not is_transient_error(exc):
            raise
        db.session.rollback()
        logger.error(
            "stock operation %s (%s %s x%s) status uncertain: %s",
            operation_id, operation_type, product_id, quantity, exc,
        )
        return StockOperationResult(
            outcome=OUTCOME_STATUS_UNCERTAIN,
            product_id=product_id,
            operation_type=operation_type,
            quantity=quantity,
            operation_id=operation_id,
            error=str(exc),
        )

    if result.outcome == OUTCOME_SUCCESS:
        logger.info(
            "stock %s product=%s qty=%s stock=%s op=%s",
            operation_type, product_id, quantity, result.new_stock, operation_id,
        )
    return result


def apply_bulk_stock_operations(*, operations, operator) -> list[StockOperationResult]:
    """
    Run each entry through apply_stock_operation in order.

    Processing stops at the first hard failure (the ApiError propagates);
    entries already applied stay applied.
    """
    if not isinstance(operations, list) or not operations:
        raise ValidationError("operations 必须是非空数组")

    results = []
    for index, op in enumerate(operations):
        if not isinstance(op, dict):
            raise ValidationError(f"第{index + 1}条操作格式无效")
        product_id = op.get("productId")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"第{index + 1}条操作缺少有效的 productId")
        results.append(apply_stock_operation(
            product_id=product_id,
            quantity=op.get("quantity"),
            operation_type=op.get("type"),
            operator=operator,
            remark=op.get("remark"),
            operation_id=op.get("operationId"),
        ))
    return results


def record_initial_stock(product: Product, operator) -> None:
    """Opening balance entry for a newly created product (caller commits)."""
    db.session.add(InventoryRecord(
        product_id=product.id,
        model_name=product.model_name,
        package_type=product.package_type,
        operation_type=StockOperationType.IN,
        quantity=product.stock,
        remark="产品初始库存",
        operator=operator.username,
        operator_id=operator.id,
        operation_time=utcnow(),
        operation_id=new_operation_id(),
    ))


# =============================================================================
# QUERIES
# =============================================================================


def _parse_date(value, field: str):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} 日期格式无效")


def list_inventory_records(
    *,
    page: int,
    limit: int,
    product_id: int | None = None,
    model_name: str | None = None,
    operation_type: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    days: int | None = None,
) -> tuple[list[dict], int]:
    """
    Filtered, paginated audit records, newest first.

    An explicit startDate/endDate range wins over days; with neither, the last
    `days` (default 30) are returned.
    """
    query = db.session.query(InventoryRecord)

    if product_id is not None:
        query = query.filter(InventoryRecord.product_id == product_id)
    if model_name:
        query = query.filter(InventoryRecord.model_name.icontains(model_name, autoescape=True))
    if operation_type and operation_type != "all":
        if operation_type not in StockOperationType.ALL:
            raise ValidationError("无效的操作类型")
        query = query.filter(InventoryRecord.operation_type == operation_type)

    start = _parse_date(start_date, "startDate")
    end = _parse_date(end_date, "endDate")
    if start or end:
        if start:
            query = query.filter(InventoryRecord.operation_time >= start)
        if end:
            query = query.filter(InventoryRecord.operation_time <= end_of_day(end))
    else:
        window = days if days and days > 0 else DEFAULT_RECORD_DAYS
        query = query.filter(InventoryRecord.operation_time >= utcnow() - timedelta(days=window))

    total = query.count()
    rows = (
        query.order_by(InventoryRecord.operation_time.desc(), InventoryRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows], total


def inventory_stats() -> dict:
    threshold = current_app.config.get("INVENTORY_LOW_STOCK_THRESHOLD", 50)
    since = utcnow() - timedelta(days=30)

    total_products = db.session.query(func.count(Product.id)).scalar() or 0
    low_stock = db.session.query(func.count(Product.id)).filter(Product.stock < threshold).scalar() or 0
    total_stock = db.session.query(func.coalesce(func.sum(Product.stock), 0)).scalar() or 0

    recent = dict(
        db.session.query(InventoryRecord.operation_type, func.coalesce(func.sum(InventoryRecord.quantity), 0))
        .filter(InventoryRecord.operation_time >= since)
        .group_by(InventoryRecord.operation_type)
        .all()
    )
    stock_in = int(recent.get(StockOperationType.IN, 0))
    stock_out = int(recent.get(StockOperationType.OUT, 0))

    return {
        "totalProducts": total_products,
        "lowStockProducts": low_stock,
        "totalStock": int(total_stock),
        "recentChanges": {
            "in": stock_in,
            "out": stock_out,
            "net": stock_in - stock_out,
        },
    }
