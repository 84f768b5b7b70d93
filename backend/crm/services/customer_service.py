# Overview: Service-layer operations for customers; encapsulates business logic and database work.

# backend/crm/services/customer_service.py
"""
Customer lifecycle: create, edit, reassign, move to the public pool, delete.

ACCESS:
- SUPER_ADMIN: every customer
- FACTORY_SALES: customers it created or is the related sales rep of
- AGENT: customers it created or is the related agent of
- INVENTORY_MANAGER: none

HISTORY:
Every relation change writes one CustomerAssignmentHistory row and every
progress change one CustomerProgressHistory row, in the same transaction as
the customer update (see history_service).

PUBLIC POOL:
Only move_to_public_pool puts a customer into the pool and only the claim /
assign operations take one out, so the pool invariant on Customer holds.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..constants import AssignmentType, CustomerProgress, PROGRESS_NONE, UserRole
from ..errors import DuplicateError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Agent, Customer, FollowUpRecord, User
from . import history_service
from crm.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


# =============================================================================
# ACCESS
# =============================================================================


def is_owner(actor, customer: Customer) -> bool:
    return customer.owner_type == actor.role and customer.owner_id == actor.id


def can_access(actor, customer: Customer) -> bool:
    if actor.is_admin:
        return True
    if actor.is_sales:
        return is_owner(actor, customer) or customer.related_sales_id == actor.id
    if actor.is_agent:
        return is_owner(actor, customer) or customer.related_agent_id == actor.id
    return False


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("客户不存在")
    return customer


def _scope_filter(actor):
    """SQL filter matching the customers an actor may see outside the pool."""
    if actor.is_sales:
        return or_(
            Customer.related_sales_id == actor.id,
            and_(Customer.owner_type == UserRole.FACTORY_SALES, Customer.owner_id == actor.id),
        )
    return or_(
        Customer.related_agent_id == actor.id,
        and_(Customer.owner_type == UserRole.AGENT, Customer.owner_id == actor.id),
    )


# =============================================================================
# QUERIES
# =============================================================================


def list_customers(
    *,
    actor,
    page: int,
    limit: int,
    keyword: str | None = None,
    nature: str | None = None,
    importance: str | None = None,
    progress: str | None = None,
    in_public_pool: bool | None = None,
) -> tuple[list[dict], int]:
    if not (actor.is_admin or actor.is_sales or actor.is_agent):
        raise ForbiddenError("无权访问客户数据")

    query = db.session.query(Customer)

    if in_public_pool is not None:
        query = query.filter(Customer.is_in_public_pool.is_(in_public_pool))
    if not actor.is_admin and in_public_pool is not True:
        query = query.filter(_scope_filter(actor))

    if keyword:
        query = query.filter(or_(
            Customer.name.icontains(keyword, autoescape=True),
            Customer.contact_person.icontains(keyword, autoescape=True),
            Customer.application_field.icontains(keyword, autoescape=True),
        ))
    if nature:
        query = query.filter(Customer.nature == nature)
    if importance:
        query = query.filter(Customer.importance == importance)
    if progress:
        query = query.filter(Customer.progress == progress)

    total = query.count()
    rows = (
        query.order_by(Customer.last_update_time.desc(), Customer.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    restricted = in_public_pool is True
    items = [
        c.to_public_dict() if restricted or (c.is_in_public_pool and not actor.is_admin) else c.to_dict()
        for c in rows
    ]
    return items, total


def check_duplicate(name: str) -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("客户名称不能为空")

    rows = (
        db.session.query(Customer)
        .filter(Customer.name.icontains(name, autoescape=True))
        .order_by(Customer.name.asc())
        .all()
    )
    if not rows:
        return {"exists": False}

    return {
        "exists": True,
        "customers": [
            {
                "id": c.id,
                "name": c.name,
                "contactPerson": c.contact_person,
                "address": c.address,
                "ownerType": c.owner_type,
                "ownerId": c.owner_id,
                "ownerName": c.owner_name or "未知",
            }
            for c in rows
        ],
    }


def view_customer(*, actor, customer_id: int) -> dict:
    customer = get_customer(customer_id)
    if customer.is_in_public_pool and not actor.is_admin:
        if actor.is_inventory_manager:
            raise ForbiddenError("无权查看该客户")
        return customer.to_public_dict()
    if not can_access(actor, customer):
        raise ForbiddenError("无权查看该客户")
    return customer.to_dict()


# =============================================================================
# WRITES
# =============================================================================


def _resolve_sales(sales_id: int) -> User:
    sales = db.session.get(User, sales_id)
    if sales is None:
        raise ValidationError("找不到关联销售")
    return sales


def _resolve_agent(agent_id: int | None) -> Agent | None:
    if agent_id is None:
        return None
    agent = db.session.get(Agent, agent_id)
    if agent is None:
        raise ValidationError("找不到关联代理商")
    return agent


def _name_taken(name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Customer.id).filter(Customer.name == name)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


def _creation_type(actor, sales_id: int, agent_id: int | None) -> str:
    if (actor.is_sales and actor.id == sales_id) or (actor.is_agent and actor.id == agent_id):
        return AssignmentType.CREATE_CLAIM
    return AssignmentType.CREATE_ASSIGN


def _build_customer(actor, patch: dict) -> Customer:
    if patch.get("progress") == CustomerProgress.PUBLIC_POOL:
        raise ValidationError("新建客户不能直接进入公海")

    sales = _resolve_sales(patch["related_sales_id"])
    agent = _resolve_agent(patch.get("related_agent_id"))

    now = utcnow()
    fields = {k: v for k, v in patch.items() if k not in ("related_sales_id", "related_agent_id")}
    return Customer(
        **fields,
        owner_id=actor.id,
        owner_type=actor.role,
        owner_name=actor.username,
        related_sales_id=sales.id,
        related_sales_name=sales.username,
        related_agent_id=agent.id if agent else None,
        related_agent_name=agent.company_name if agent else None,
        is_in_public_pool=False,
        last_update_time=now,
        created_at=now,
        updated_at=now,
    )


def _record_creation(actor, customer: Customer, remark: str) -> None:
    history_service.record_assignment(
        customer=customer,
        operator=actor,
        operation_type=_creation_type(actor, customer.related_sales_id, customer.related_agent_id),
        to_sales=(customer.related_sales_id, customer.related_sales_name),
        to_agent=(customer.related_agent_id, customer.related_agent_name),
    )
    history_service.record_progress(
        customer=customer,
        operator=actor,
        from_progress=PROGRESS_NONE,
        to_progress=customer.progress,
        remark=remark,
    )


def create_customer(*, actor, patch: dict) -> Customer:
    if _name_taken(patch["name"]):
        raise DuplicateError("客户名称已存在")

    customer = _build_customer(actor, patch)
    db.session.add(customer)
    try:
        db.session.flush()
        _record_creation(actor, customer, "客户创建")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError("客户名称已存在")

    logger.info("%s created customer %r", actor.username, customer)
    return customer


def bulk_import_customers(*, actor, patches: list[dict]) -> int:
    """All-or-nothing: an existing or repeated name rejects the whole batch."""
    seen = set()
    duplicates = []
    for patch in patches:
        name = patch["name"]
        if name in seen or _name_taken(name):
            duplicates.append(name)
        seen.add(name)
    if duplicates:
        raise DuplicateError("以下客户名称已存在", duplicateNames=duplicates)

    customers = [_build_customer(actor, patch) for patch in patches]
    try:
        db.session.add_all(customers)
        db.session.flush()
        for customer in customers:
            _record_creation(actor, customer, "批量导入客户")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError("以下客户名称已存在", duplicateNames=[c.name for c in customers])

    logger.info("%s bulk imported %s customers", actor.username, len(customers))
    return len(customers)


def update_customer(*, actor, customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    if not can_access(actor, customer):
        raise ForbiddenError("无权更新该客户")

    if patch.get("progress") == CustomerProgress.PUBLIC_POOL and not customer.is_in_public_pool:
        raise ValidationError("请使用移入公海操作将客户移入公海")
    if customer.is_in_public_pool and ("related_sales_id" in patch or "related_agent_id" in patch):
        raise ValidationError("公海客户请通过认领或分配操作指定负责人")
    if customer.is_in_public_pool and "progress" in patch and patch["progress"] != CustomerProgress.PUBLIC_POOL:
        raise ValidationError("公海客户请通过认领或分配操作指定负责人")

    # relatedSalesId is mandatory; a null in the payload leaves it unchanged
    if "related_sales_id" in patch and patch["related_sales_id"] is None:
        patch.pop("related_sales_id")

    if "name" in patch and patch["name"] != customer.name and _name_taken(patch["name"], exclude_id=customer.id):
        raise DuplicateError("客户名称已存在")

    from_sales = (customer.related_sales_id, customer.related_sales_name)
    from_agent = (customer.related_agent_id, customer.related_agent_name)
    old_progress = customer.progress

    sales_changed = "related_sales_id" in patch and patch["related_sales_id"] != customer.related_sales_id
    agent_changed = "related_agent_id" in patch and patch["related_agent_id"] != customer.related_agent_id

    if sales_changed:
        sales = _resolve_sales(patch["related_sales_id"])
        customer.related_sales_id = sales.id
        customer.related_sales_name = sales.username
    if agent_changed:
        agent = _resolve_agent(patch["related_agent_id"])
        customer.related_agent_id = agent.id if agent else None
        customer.related_agent_name = agent.company_name if agent else None

    for key, value in patch.items():
        if key in ("related_sales_id", "related_agent_id"):
            continue
        setattr(customer, key, value)
    customer.last_update_time = utcnow()

    if sales_changed or agent_changed:
        history_service.record_assignment(
            customer=customer,
            operator=actor,
            operation_type=AssignmentType.ASSIGN,
            from_sales=from_sales,
            to_sales=(customer.related_sales_id, customer.related_sales_name),
            from_agent=from_agent,
            to_agent=(customer.related_agent_id, customer.related_agent_name),
        )
    if customer.progress != old_progress:
        history_service.record_progress(
            customer=customer,
            operator=actor,
            from_progress=old_progress,
            to_progress=customer.progress,
            remark="更新客户进展",
        )

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError("客户名称已存在")
    return customer


def delete_customer(*, actor, customer_id: int) -> None:
    customer = get_customer(customer_id)
    if not actor.is_admin and (customer.is_in_public_pool or not can_access(actor, customer)):
        raise ForbiddenError("无权删除该客户")

    db.session.query(FollowUpRecord).filter_by(customer_id=customer.id).delete(synchronize_session=False)
    db.session.delete(customer)
    db.session.commit()
    logger.info("%s deleted customer %s", actor.username, customer_id)


def move_to_public_pool(*, actor, customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    if customer.is_in_public_pool:
        raise ValidationError("客户已在公海中")
    if not can_access(actor, customer):
        raise ForbiddenError("无权将该客户移入公海")

    from_sales = (customer.related_sales_id, customer.related_sales_name)
    from_agent = (customer.related_agent_id, customer.related_agent_name)
    old_progress = customer.progress

    customer.enter_public_pool()
    customer.last_update_time = utcnow()

    history_service.record_assignment(
        customer=customer,
        operator=actor,
        operation_type=AssignmentType.MOVE_TO_PUBLIC,
        from_sales=from_sales,
        from_agent=from_agent,
    )
    if old_progress != customer.progress:
        history_service.record_progress(
            customer=customer,
            operator=actor,
            from_progress=old_progress,
            to_progress=customer.progress,
            remark="移入公海",
        )
    db.session.commit()

    logger.info("%s moved customer %s to the public pool", actor.username, customer_id)
    return customer


def leave_public_pool(customer: Customer) -> None:
    customer.is_in_public_pool = False
    customer.progress = CustomerProgress.SAMPLE_EVALUATION


def assign_customer(*, actor, customer_id: int, sales_id, agent_id=None) -> dict:
    """
    Set a customer's sales rep (and optionally agent) in one step.

    agent_id semantics: absent (None) keeps the current agent, 0 or "" clears
    it, any other id replaces it.
    """
    if not (actor.is_admin or actor.is_sales or actor.is_agent):
        raise ForbiddenError("无权分配客户")
    if isinstance(sales_id, bool) or not isinstance(sales_id, int):
        raise ValidationError("销售ID不能为空")

    customer = get_customer(customer_id)
    if not customer.is_in_public_pool and not can_access(actor, customer):
        raise ForbiddenError("无权分配该客户")

    sales = db.session.get(User, sales_id)
    if sales is None:
        raise NotFoundError("指定的销售人员不存在")

    clear_agent = agent_id in (0, "")
    agent = None
    if agent_id not in (None, 0, ""):
        if isinstance(agent_id, bool) or not isinstance(agent_id, int):
            raise ValidationError("代理商ID无效")
        agent = db.session.get(Agent, agent_id)
        if agent is None:
            raise NotFoundError("指定的代理商不存在")

    from_sales = (customer.related_sales_id, customer.related_sales_name)
    from_agent = (customer.related_agent_id, customer.related_agent_name)
    from_pool = customer.is_in_public_pool
    old_progress = customer.progress

    customer.related_sales_id = sales.id
    customer.related_sales_name = sales.username
    if agent is not None:
        customer.related_agent_id = agent.id
        customer.related_agent_name = agent.company_name
    elif clear_agent:
        customer.related_agent_id = None
        customer.related_agent_name = None
    if from_pool:
        leave_public_pool(customer)
    customer.last_update_time = utcnow()

    sales_changed = from_sales[0] != customer.related_sales_id
    agent_changed = from_agent[0] != customer.related_agent_id
    if sales_changed or agent_changed:
        if from_pool or (actor.is_sales and actor.id == sales.id) or (actor.is_agent and agent and actor.id == agent.id):
            operation_type = AssignmentType.CLAIM
        else:
            operation_type = AssignmentType.ASSIGN
        history_service.record_assignment(
            customer=customer,
            operator=actor,
            operation_type=operation_type,
            from_sales=from_sales,
            to_sales=(customer.related_sales_id, customer.related_sales_name),
            from_agent=from_agent,
            to_agent=(customer.related_agent_id, customer.related_agent_name),
        )
    if customer.progress != old_progress:
        history_service.record_progress(
            customer=customer,
            operator=actor,
            from_progress=old_progress,
            to_progress=customer.progress,
            remark="从公海分配",
        )
    db.session.commit()

    return {
        "salesId": sales.id,
        "salesName": sales.username,
        "agentId": customer.related_agent_id,
        "agentName": customer.related_agent_name,
    }
