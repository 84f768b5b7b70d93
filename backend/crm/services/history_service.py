# Overview: Service-layer operations for customer assignment and progress history.

"""
Append-only audit trails for customers.

record_* helpers only add rows to the session; the caller commits them
together with the customer change they describe, so a relation change and
its history entry land (or fail) as one unit.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_

from ..constants import CustomerProgress, PROGRESS_NONE
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, CustomerAssignmentHistory, CustomerProgressHistory
from crm.time_utils import end_of_day, parse_iso_datetime


def record_assignment(
    *,
    customer: Customer,
    operator,
    operation_type: str,
    from_sales: tuple[int | None, str | None] = (None, None),
    to_sales: tuple[int | None, str | None] = (None, None),
    from_agent: tuple[int | None, str | None] = (None, None),
    to_agent: tuple[int | None, str | None] = (None, None),
) -> CustomerAssignmentHistory:
    entry = CustomerAssignmentHistory(
        customer_id=customer.id,
        customer_name=customer.name,
        from_related_sales_id=from_sales[0],
        from_related_sales_name=from_sales[1],
        to_related_sales_id=to_sales[0],
        to_related_sales_name=to_sales[1],
        from_related_agent_id=from_agent[0],
        from_related_agent_name=from_agent[1],
        to_related_agent_id=to_agent[0],
        to_related_agent_name=to_agent[1],
        operator_id=operator.id,
        operator_name=operator.username,
        operation_type=operation_type,
    )
    db.session.add(entry)
    return entry


def record_progress(
    *,
    customer: Customer,
    operator,
    from_progress: str,
    to_progress: str,
    remark: str | None = None,
) -> CustomerProgressHistory:
    entry = CustomerProgressHistory(
        customer_id=customer.id,
        customer_name=customer.name,
        from_progress=from_progress,
        to_progress=to_progress,
        operator_id=operator.id,
        operator_name=operator.username,
        remark=remark,
    )
    db.session.add(entry)
    return entry


def list_assignment_history(customer_id: int) -> list[dict]:
    rows = (
        db.session.query(CustomerAssignmentHistory)
        .filter_by(customer_id=customer_id)
        .order_by(CustomerAssignmentHistory.created_at.desc(), CustomerAssignmentHistory.id.desc())
        .all()
    )
    return [r.to_dict() for r in rows]


def list_progress_history(customer_id: int) -> list[dict]:
    rows = (
        db.session.query(CustomerProgressHistory)
        .filter_by(customer_id=customer_id)
        .order_by(CustomerProgressHistory.created_at.desc(), CustomerProgressHistory.id.desc())
        .all()
    )
    return [r.to_dict() for r in rows]


def create_progress_entry(operator, payload: dict) -> CustomerProgressHistory:
    """Manual progress history entry (the web client posts these for timeline notes)."""
    missing = [k for k in ("customerId", "fromProgress", "toProgress") if payload.get(k) in (None, "")]
    if missing:
        raise ValidationError("缺少必要字段")

    to_progress = payload["toProgress"]
    if to_progress not in CustomerProgress.ALL:
        raise ValidationError("无效的客户进展")
    from_progress = payload["fromProgress"]
    if from_progress not in CustomerProgress.ALL and from_progress != PROGRESS_NONE:
        raise ValidationError("无效的客户进展")

    customer = db.session.get(Customer, payload["customerId"])
    if customer is None:
        raise NotFoundError("客户不存在")

    entry = record_progress(
        customer=customer,
        operator=operator,
        from_progress=from_progress,
        to_progress=to_progress,
        remark=payload.get("remark"),
    )
    db.session.commit()
    return entry


def _parse_date(value: str | None, field: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} 日期格式无效")


def query_progress_history(
    *,
    start_date: str | None = None,
    end_date: str | None = None,
    progress: str | None = None,
) -> list[dict]:
    """Progress entries in a time range, optionally touching a given stage (as from or to)."""
    query = db.session.query(CustomerProgressHistory)

    start = _parse_date(start_date, "startDate")
    end = _parse_date(end_date, "endDate")
    if start:
        query = query.filter(CustomerProgressHistory.created_at >= start)
    if end:
        query = query.filter(CustomerProgressHistory.created_at <= end_of_day(end))
    if progress:
        query = query.filter(or_(
            CustomerProgressHistory.from_progress == progress,
            CustomerProgressHistory.to_progress == progress,
        ))

    rows = query.order_by(CustomerProgressHistory.created_at.desc(), CustomerProgressHistory.id.desc()).all()
    return [r.to_dict() for r in rows]
