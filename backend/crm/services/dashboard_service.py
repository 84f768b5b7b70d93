# Overview: Service-layer aggregations behind the dashboard endpoints.

"""
Dashboard read models.

Two customer scopes exist:
- overview scope (/api/dashboard): sales reps see customers they own plus the
  customers owned by their agents; agents see customers they own.
- relation scope (/api/dashboard-stats): sales reps see customers they are the
  related sales rep of; agents those they are the related agent of.
Admins and inventory managers are not scoped.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

from flask import current_app
from sqlalchemy import and_, func, or_

from ..constants import (
    AccountStatus,
    CustomerProgress,
    IMPORTANCE_SHORT_LABEL,
    StockOperationType,
    UserRole,
)
from ..errors import ForbiddenError, ValidationError
from ..extensions import db
from ..models import Agent, Customer, InventoryRecord, Product, User
from .product_service import needs_product
from crm.time_utils import add_months, end_of_day, parse_iso_datetime, start_of_day, utcnow

TIME_RANGES = ("week", "current_week", "month", "quarter", "year", "custom")

STOCK_LEVELS = (
    ("库存不足", 0, 100),
    ("库存适中", 101, 500),
    ("库存充足", 501, None),
)

PROGRESS_SERIES = (
    ("sampleEvaluation", CustomerProgress.SAMPLE_EVALUATION),
    ("testing", CustomerProgress.TESTING),
    ("smallBatch", CustomerProgress.SMALL_BATCH),
    ("massProduction", CustomerProgress.MASS_PRODUCTION),
)


def _overview_scope(actor):
    if actor.is_sales:
        agent_ids = [a_id for (a_id,) in db.session.query(Agent.id).filter_by(related_sales_id=actor.id).all()]
        clauses = [and_(Customer.owner_type == UserRole.FACTORY_SALES, Customer.owner_id == actor.id)]
        if agent_ids:
            clauses.append(and_(Customer.owner_type == UserRole.AGENT, Customer.owner_id.in_(agent_ids)))
        return or_(*clauses)
    if actor.is_agent:
        return and_(Customer.owner_type == UserRole.AGENT, Customer.owner_id == actor.id)
    return None


def _relation_scope(actor):
    if actor.is_sales:
        return Customer.related_sales_id == actor.id
    if actor.is_agent:
        return Customer.related_agent_id == actor.id
    return None


def _customers(scope):
    query = db.session.query(Customer)
    if scope is not None:
        query = query.filter(scope)
    return query


def _distribution(query, column, labels=None) -> list[dict]:
    rows = (
        query.with_entities(column, func.count(Customer.id))
        .group_by(column)
        .order_by(func.count(Customer.id).desc(), column.asc())
        .all()
    )
    labels = labels or {}
    return [{"name": labels.get(value, value), "value": count} for value, count in rows]


# =============================================================================
# /api/dashboard
# =============================================================================


def overview(actor) -> dict:
    customers = _customers(_overview_scope(actor))
    low_stock_threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 100)

    distribution = []
    if not actor.is_inventory_manager:
        distribution = [
            {"type": row["name"], "count": row["value"]}
            for row in _distribution(customers, Customer.nature)
        ]

    users = {}
    if actor.is_admin:
        users = dict(
            db.session.query(User.role, func.count(User.id))
            .filter(User.status == AccountStatus.APPROVED)
            .group_by(User.role)
            .all()
        )
        users[UserRole.AGENT] = db.session.query(func.count(Agent.id)).filter(Agent.status == AccountStatus.APPROVED).scalar()
    elif actor.is_sales:
        users[UserRole.AGENT] = (
            db.session.query(func.count(Agent.id))
            .filter(Agent.related_sales_id == actor.id, Agent.status == AccountStatus.APPROVED)
            .scalar()
        )

    return {
        "customers": {
            "total": customers.count(),
            "publicPool": db.session.query(func.count(Customer.id)).filter(Customer.is_in_public_pool.is_(True)).scalar(),
            "distribution": distribution,
        },
        "products": {
            "total": db.session.query(func.count(Product.id)).scalar(),
            "lowStock": db.session.query(func.count(Product.id)).filter(Product.stock < low_stock_threshold).scalar(),
        },
        "users": users,
    }


def customer_distribution(actor) -> dict:
    if actor.is_inventory_manager:
        raise ForbiddenError("无权访问客户数据")

    customers = _customers(_overview_scope(actor))
    return {
        "natureDistribution": _distribution(customers, Customer.nature),
        "importanceDistribution": _distribution(customers, Customer.importance, IMPORTANCE_SHORT_LABEL),
        "progressDistribution": _distribution(customers, Customer.progress),
        "fieldDistribution": _distribution(customers, Customer.application_field),
    }


def _month_windows(months: int = 12) -> list[tuple[str, datetime, datetime]]:
    """(label, start, end) for the last `months` calendar months, oldest first; end is exclusive."""
    first_of_month = utcnow().date().replace(day=1)
    windows = []
    for offset in range(months - 1, -1, -1):
        start = add_months(first_of_month, -offset)
        end = add_months(start, 1)
        windows.append((
            start.strftime("%Y-%m"),
            datetime.combine(start, time.min),
            datetime.combine(end, time.min),
        ))
    return windows


def _stock_net(start: datetime, end: datetime) -> int:
    totals = dict(
        db.session.query(InventoryRecord.operation_type, func.coalesce(func.sum(InventoryRecord.quantity), 0))
        .filter(InventoryRecord.operation_time >= start, InventoryRecord.operation_time < end)
        .group_by(InventoryRecord.operation_type)
        .all()
    )
    return int(totals.get(StockOperationType.IN, 0)) - int(totals.get(StockOperationType.OUT, 0))


def monthly_stats(actor) -> dict:
    customers = _customers(_overview_scope(actor))
    windows = _month_windows()

    new_customers = [
        customers.filter(Customer.created_at >= start, Customer.created_at < end).count()
        for _, start, end in windows
    ]

    if actor.is_admin or actor.is_inventory_manager:
        stock_changes = [_stock_net(start, end) for _, start, end in windows]
    else:
        stock_changes = [0] * len(windows)

    progress_changes = None
    if not actor.is_inventory_manager:
        progress_changes = {
            key: [
                customers.filter(
                    Customer.progress == progress,
                    Customer.last_update_time >= start,
                    Customer.last_update_time < end,
                ).count()
                for _, start, end in windows
            ]
            for key, progress in PROGRESS_SERIES
        }

    return {
        "monthLabels": [label for label, _, _ in windows],
        "newCustomerStats": new_customers,
        "stockChangeStats": stock_changes,
        "progressChangeStats": progress_changes,
    }


def product_demand(actor) -> list[dict]:
    customers = (
        _customers(_overview_scope(actor))
        .filter(Customer.is_in_public_pool.is_(False))
        .with_entities(Customer.product_needs, Customer.annual_demand)
        .all()
    )
    products = db.session.query(Product).order_by(Product.model_name.asc(), Product.package_type.asc()).all()

    data = []
    for product in products:
        matching = [demand or 0 for needs, demand in customers if needs_product(needs, product)]
        if matching:
            data.append({
                "productName": product.display_name,
                "customerCount": len(matching),
                "totalDemand": sum(matching),
            })
    data.sort(key=lambda item: item["totalDemand"], reverse=True)
    return data


# =============================================================================
# /api/dashboard-stats
# =============================================================================


def _time_bounds(time_range: str, start_date: str | None, end_date: str | None):
    """Returns (start, end) bounds on createdAt; either may be None."""
    if time_range not in TIME_RANGES:
        raise ValidationError("无效的时间范围")
    now = utcnow()
    if time_range == "custom":
        if not (start_date and end_date):
            return None, None
        try:
            start = parse_iso_datetime(start_date)
            end = parse_iso_datetime(end_date)
        except ValueError:
            raise ValidationError("日期格式无效")
        return start_of_day(start), end_of_day(end)
    if time_range == "week":
        return now - timedelta(days=7), None
    if time_range == "current_week":
        monday = now.date() - timedelta(days=now.weekday())
        return datetime.combine(monday, time.min), None
    if time_range == "month":
        return now - timedelta(days=30), None
    if time_range == "quarter":
        return datetime.combine(add_months(now.date(), -3), now.time()), None
    if time_range == "year":
        return datetime.combine(add_months(now.date(), -12), now.time()), None
    return None, None


def dashboard_stats(actor, *, time_range: str = "month", start_date=None, end_date=None) -> dict:
    start, end = _time_bounds(time_range or "month", start_date, end_date)

    customers = _customers(_relation_scope(actor))
    agents = db.session.query(Agent).filter(Agent.status == AccountStatus.APPROVED)
    if start is not None:
        customers = customers.filter(Customer.created_at >= start)
        agents = agents.filter(Agent.created_at >= start)
    if end is not None:
        customers = customers.filter(Customer.created_at <= end)
        agents = agents.filter(Agent.created_at <= end)

    if actor.is_admin:
        agent_count = agents.count()
    elif actor.is_sales:
        agent_count = agents.filter(Agent.related_sales_id == actor.id).count()
    else:
        agent_count = 0

    package_types = (
        db.session.query(Product.package_type, func.count(Product.id))
        .group_by(Product.package_type)
        .order_by(func.count(Product.id).desc(), Product.package_type.asc())
        .all()
    )

    stock_levels = []
    for label, low, high in STOCK_LEVELS:
        query = db.session.query(func.count(Product.id)).filter(Product.stock >= low)
        if high is not None:
            query = query.filter(Product.stock <= high)
        count = query.scalar()
        if count:
            stock_levels.append({"name": label, "value": count})

    products = db.session.query(Product).order_by(Product.id.asc()).all()
    scoped = customers.with_entities(Customer.product_needs, Customer.progress).all()

    relation = []
    for product in products:
        count = sum(1 for needs, _ in scoped if needs_product(needs, product))
        if count:
            relation.append({"name": product.display_name, "value": count})
    relation.sort(key=lambda item: item["value"], reverse=True)

    progress_distribution = []
    for product in products[:5]:
        stages = [progress for needs, progress in scoped if needs_product(needs, product)]
        progress_distribution.append({
            "productName": product.display_name,
            "sample": stages.count(CustomerProgress.SAMPLE_EVALUATION),
            "testing": stages.count(CustomerProgress.TESTING),
            "smallBatch": stages.count(CustomerProgress.SMALL_BATCH),
            "massProduction": stages.count(CustomerProgress.MASS_PRODUCTION),
        })

    return {
        "customerCount": customers.count(),
        "productCount": len(products),
        "agentCount": agent_count,
        "customerImportance": _distribution(customers, Customer.importance),
        "customerProgress": _distribution(customers, Customer.progress),
        "customerNature": _distribution(customers, Customer.nature),
        "productPackageType": [{"name": name, "value": count} for name, count in package_types],
        "productStockLevel": stock_levels,
        "productCustomerRelation": relation[:10],
        "productProgressDistribution": progress_distribution,
    }
