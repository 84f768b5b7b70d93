# Overview: Service-layer operations for agents; encapsulates business logic and database work.

"""
Agent (distributor company) management.

Sales reps see and edit the agents related to them. An agent created by a
sales rep is pending until an admin approves it; admin-created agents are
approved immediately.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..constants import AccountStatus, UserRole
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Agent, Customer, User
from .auth_service import hash_password

logger = logging.getLogger(__name__)


def _assignable_dict(agent: Agent) -> dict:
    return {
        "id": agent.id,
        "companyName": agent.company_name,
        "contactPerson": agent.contact_person,
        "phone": agent.phone,
        "relatedSalesId": agent.related_sales_id,
        "relatedSalesName": agent.related_sales.username if agent.related_sales else None,
    }


def get_agent(agent_id: int) -> Agent:
    agent = db.session.get(Agent, agent_id)
    if agent is None:
        raise NotFoundError("代理商不存在")
    return agent


def list_agents(actor) -> list[dict]:
    query = db.session.query(Agent)
    if actor.is_sales:
        query = query.filter(Agent.related_sales_id == actor.id)
    agents = query.order_by(Agent.created_at.desc(), Agent.id.desc()).all()
    return [a.to_dict() for a in agents]


def _company_taken(company_name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Agent.id).filter_by(company_name=company_name)
    if exclude_id is not None:
        query = query.filter(Agent.id != exclude_id)
    return query.first() is not None


def _resolve_sales(sales_id: int | None) -> int | None:
    if sales_id is None:
        return None
    sales = db.session.get(User, sales_id)
    if sales is None or sales.role != UserRole.FACTORY_SALES:
        raise ValidationError("找不到关联销售")
    return sales.id


def create_agent(*, actor, patch: dict) -> Agent:
    if _company_taken(patch["company_name"]):
        raise ValidationError("公司名称已存在")

    if actor.is_sales:
        related_sales_id = actor.id
        status = AccountStatus.PENDING
    else:
        related_sales_id = _resolve_sales(patch.get("related_sales_id"))
        status = AccountStatus.APPROVED

    agent = Agent(
        company_name=patch["company_name"],
        contact_person=patch["contact_person"],
        phone=patch.get("phone"),
        password_hash=hash_password(patch["password"]),
        related_sales_id=related_sales_id,
        status=status,
    )
    db.session.add(agent)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("公司名称已存在")

    logger.info("%s created agent %r (%s)", actor.username, agent, status)
    return agent


def update_agent(*, actor, agent_id: int, patch: dict) -> Agent:
    agent = get_agent(agent_id)

    if actor.is_sales:
        if agent.related_sales_id != actor.id and agent.status != AccountStatus.PENDING:
            raise ForbiddenError("无权修改此代理商")
        if "related_sales_id" in patch:
            patch["related_sales_id"] = actor.id
    elif "related_sales_id" in patch:
        patch["related_sales_id"] = _resolve_sales(patch["related_sales_id"])

    if "company_name" in patch and patch["company_name"] != agent.company_name:
        if _company_taken(patch["company_name"], exclude_id=agent.id):
            raise ValidationError("公司名称已存在")

    password = patch.pop("password", None)
    for key, value in patch.items():
        setattr(agent, key, value)
    if password:
        agent.password_hash = hash_password(password)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("公司名称已存在")
    return agent


def delete_agent(agent_id: int) -> None:
    agent = get_agent(agent_id)

    customer_count = (
        db.session.query(Customer.id)
        .filter(or_(
            and_(Customer.owner_type == UserRole.AGENT, Customer.owner_id == agent.id),
            Customer.related_agent_id == agent.id,
        ))
        .count()
    )
    if customer_count:
        raise ValidationError("该代理商有关联客户，无法删除", customerCount=customer_count)

    db.session.delete(agent)
    db.session.commit()
    logger.info("deleted agent %s", agent_id)


def agents_by_sales(*, actor, sales_id: int) -> list[dict]:
    if not (actor.is_admin or actor.is_sales):
        raise ForbiddenError("无权查看该数据")
    if actor.is_sales and actor.id != sales_id:
        raise ForbiddenError("只能查看自己关联的代理商")

    agents = (
        db.session.query(Agent)
        .filter_by(related_sales_id=sales_id, status=AccountStatus.APPROVED)
        .order_by(Agent.company_name.asc())
        .all()
    )
    return [a.to_dict() for a in agents]


def assignable_agents(actor) -> list[dict]:
    query = db.session.query(Agent).filter_by(status=AccountStatus.APPROVED)
    if actor.is_admin:
        pass
    elif actor.is_sales:
        query = query.filter(Agent.related_sales_id == actor.id)
    elif actor.is_agent:
        query = query.filter(Agent.id == actor.id)
    else:
        raise ForbiddenError("无权获取代理商列表")
    return [_assignable_dict(a) for a in query.order_by(Agent.company_name.asc()).all()]
