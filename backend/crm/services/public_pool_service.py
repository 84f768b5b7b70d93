# Overview: Service-layer operations for the public pool of unassigned customers.

from __future__ import annotations

import logging

from ..constants import AccountStatus, AssignmentType, UserRole
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Agent, Customer, User
from ..permissions import can_assign_public_pool
from . import history_service
from .customer_service import get_customer, leave_public_pool
from crm.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

CLAIM_TARGET_TYPES = (UserRole.FACTORY_SALES, UserRole.AGENT)


def _pool_entry(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "name": customer.name,
        "nature": customer.nature,
        "importance": customer.importance,
        "applicationField": customer.application_field,
        "progress": customer.progress,
        "address": customer.address,
        "productNeeds": list(customer.product_needs or []),
        "enterPoolTime": to_utc_z(customer.last_update_time or customer.updated_at),
        "previousRelatedSalesName": customer.previous_related_sales_name,
        "previousRelatedAgentName": customer.previous_related_agent_name,
        "creatorId": customer.owner_id,
        "creatorName": customer.owner_name,
        "creatorType": customer.owner_type,
        "createdAt": to_utc_z(customer.created_at),
    }


def list_pool(
    *,
    keyword: str | None = None,
    nature: str | None = None,
    importance: str | None = None,
    application_field: str | None = None,
) -> list[dict]:
    query = db.session.query(Customer).filter(Customer.is_in_public_pool.is_(True))
    if keyword and keyword.strip():
        query = query.filter(Customer.name.icontains(keyword.strip(), autoescape=True))
    if nature:
        query = query.filter(Customer.nature == nature)
    if importance:
        query = query.filter(Customer.importance == importance)
    if application_field:
        query = query.filter(Customer.application_field.icontains(application_field, autoescape=True))

    rows = query.order_by(Customer.last_update_time.desc(), Customer.id.desc()).all()
    return [_pool_entry(c) for c in rows]


def assignable_users(actor) -> dict:
    if not can_assign_public_pool(actor.role):
        raise ForbiddenError("无权获取可分配用户列表")

    sales = (
        db.session.query(User)
        .filter_by(role=UserRole.FACTORY_SALES, status=AccountStatus.APPROVED)
        .order_by(User.username.asc())
        .all()
    )
    agents = (
        db.session.query(Agent)
        .filter_by(status=AccountStatus.APPROVED)
        .order_by(Agent.company_name.asc())
        .all()
    )
    return {
        "salesUsers": [{"id": u.id, "username": u.username, "role": u.role} for u in sales],
        "agents": [
            {
                "id": a.id,
                "companyName": a.company_name,
                "contactPerson": a.contact_person,
                "relatedSalesId": a.related_sales_id,
                "relatedSalesName": a.related_sales.username if a.related_sales else None,
            }
            for a in agents
        ],
    }


def _resolve_target(actor, target_id, target_type):
    if target_type not in CLAIM_TARGET_TYPES:
        raise ValidationError("目标类型必须是销售或代理商")
    if isinstance(target_id, bool) or not isinstance(target_id, int):
        raise ValidationError("目标ID不能为空")

    if target_type == UserRole.FACTORY_SALES:
        target = db.session.get(User, target_id)
        if target is None or target.role != UserRole.FACTORY_SALES:
            raise NotFoundError("找不到销售人员")
        if actor.is_sales and target.id != actor.id:
            raise ForbiddenError("只能将公海客户认领给自己或自己的代理商")
        if actor.is_agent:
            raise ForbiddenError("代理商只能认领给自己")
    else:
        target = db.session.get(Agent, target_id)
        if target is None:
            raise NotFoundError("找不到代理商")
        if actor.is_sales and target.related_sales_id != actor.id:
            raise ForbiddenError("只能将公海客户认领给自己或自己的代理商")
        if actor.is_agent and target.id != actor.id:
            raise ForbiddenError("代理商只能认领给自己")

    if target.status != AccountStatus.APPROVED:
        raise ValidationError("目标账户未通过审核")
    return target


def claim(*, actor, customer_id: int, target_id, target_type: str) -> Customer:
    """
    Take a customer out of the pool for a sales rep or an agent.

    An agent target also brings along its related sales rep, when it has one.
    """
    if not can_assign_public_pool(actor.role):
        raise ForbiddenError("无权分配公海客户")

    customer = get_customer(customer_id)
    if not customer.is_in_public_pool:
        raise ValidationError("该客户不在公海中")

    target = _resolve_target(actor, target_id, target_type)
    old_progress = customer.progress

    if target_type == UserRole.FACTORY_SALES:
        customer.related_sales_id = target.id
        customer.related_sales_name = target.username
    else:
        customer.related_agent_id = target.id
        customer.related_agent_name = target.company_name
        if target.related_sales is not None:
            customer.related_sales_id = target.related_sales.id
            customer.related_sales_name = target.related_sales.username

    leave_public_pool(customer)
    customer.last_update_time = utcnow()

    history_service.record_assignment(
        customer=customer,
        operator=actor,
        operation_type=AssignmentType.CLAIM,
        to_sales=(customer.related_sales_id, customer.related_sales_name),
        to_agent=(customer.related_agent_id, customer.related_agent_name),
    )
    history_service.record_progress(
        customer=customer,
        operator=actor,
        from_progress=old_progress,
        to_progress=customer.progress,
        remark="从公海认领",
    )
    db.session.commit()

    logger.info("%s claimed customer %s for %s %s", actor.username, customer_id, target_type, target_id)
    return customer
