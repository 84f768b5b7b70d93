# Overview: Service-layer operations for staff accounts and account approval.

"""
User administration.

RULES:
- At most one SUPER_ADMIN exists; it can never be deleted.
- Nobody deletes their own account or changes their own role.
- Admin-created users are approved immediately; self-registered ones wait
  in the pending queue together with self-registered agents.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..constants import AccountStatus, UserRole
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Agent, User
from .auth_service import hash_password

logger = logging.getLogger(__name__)

ACCOUNT_TYPE_USER = "user"
ACCOUNT_TYPE_AGENT = "agent"


def list_users() -> list[dict]:
    users = db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    return [u.to_dict() for u in users]


def list_sales() -> list[dict]:
    users = (
        db.session.query(User)
        .filter_by(role=UserRole.FACTORY_SALES, status=AccountStatus.APPROVED)
        .order_by(User.username.asc())
        .all()
    )
    return [{"id": u.id, "username": u.username, "phone": u.phone} for u in users]


def list_pending_accounts() -> list[dict]:
    users = db.session.query(User).filter_by(status=AccountStatus.PENDING).all()
    agents = db.session.query(Agent).filter_by(status=AccountStatus.PENDING).all()

    accounts = [dict(u.to_dict(), type=ACCOUNT_TYPE_USER) for u in users]
    accounts += [dict(a.to_dict(), username=a.company_name, type=ACCOUNT_TYPE_AGENT) for a in agents]
    accounts.sort(key=lambda a: a["createdAt"] or "", reverse=True)
    return accounts


def approve_account(*, account_id: int, account_type: str, approved: bool, reason: str | None = None) -> str:
    """Approve or reject a pending account. Returns the result message."""
    if account_type == ACCOUNT_TYPE_USER:
        account = db.session.get(User, account_id)
    elif account_type == ACCOUNT_TYPE_AGENT:
        account = db.session.get(Agent, account_id)
    else:
        raise ValidationError("无效的账户类型")

    if account is None:
        raise NotFoundError("账户不存在")
    if account.status != AccountStatus.PENDING:
        raise ValidationError("该账户已经被审批过")

    if approved:
        account.status = AccountStatus.APPROVED
        account.rejection_reason = None
    else:
        account.status = AccountStatus.REJECTED
        account.rejection_reason = reason or None
    db.session.commit()

    logger.info("%s %r", "approved" if approved else "rejected", account)
    return "已批准账户" if approved else "已拒绝账户"


def _username_taken(username: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter_by(username=username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _super_admin_exists(exclude_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter_by(role=UserRole.SUPER_ADMIN)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def create_user(patch: dict) -> User:
    if _username_taken(patch["username"]):
        raise ValidationError("用户名已存在")
    if patch["role"] == UserRole.SUPER_ADMIN and _super_admin_exists():
        raise ValidationError("已存在超级管理员")

    user = User(
        username=patch["username"],
        password_hash=hash_password(patch["password"]),
        phone=patch.get("phone"),
        role=patch["role"],
        status=AccountStatus.APPROVED,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("用户名已存在")

    logger.info("admin created user %r", user)
    return user


def update_user(*, actor, user_id: int, patch: dict) -> bool:
    """Apply a partial update. Returns False when nothing changed."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("用户不存在")

    if "role" in patch and patch["role"] != user.role:
        if actor.kind == "user" and actor.id == user.id:
            raise ValidationError("不能修改自己的角色")
        if patch["role"] == UserRole.SUPER_ADMIN and _super_admin_exists(exclude_id=user.id):
            raise ValidationError("已存在超级管理员")

    if "username" in patch and patch["username"] != user.username:
        if _username_taken(patch["username"], exclude_id=user.id):
            raise ValidationError("用户名已存在")

    password = patch.pop("password", None)
    changed = False
    for key, value in patch.items():
        if getattr(user, key) != value:
            setattr(user, key, value)
            changed = True
    if password:
        user.password_hash = hash_password(password)
        changed = True

    if not changed:
        return False

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("用户名已存在")
    return True


def delete_user(*, actor, user_id: int) -> None:
    if actor.kind == "user" and actor.id == user_id:
        raise ValidationError("不能删除当前登录账户")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("用户不存在")
    if user.role == UserRole.SUPER_ADMIN:
        raise ValidationError("不能删除超级管理员账户")

    # Agents keep existing; they just lose their sales contact
    db.session.query(Agent).filter_by(related_sales_id=user.id).update(
        {Agent.related_sales_id: None}, synchronize_session=False
    )
    db.session.delete(user)
    db.session.commit()
    logger.info("deleted user %s", user_id)
