# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Staff users and agent companies both
log in; the resulting Principal is what every other service receives as the
acting identity.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Legacy hashes (plain sha256 hex, "sha256$salt$hex") still verify and are
  upgraded to bcrypt on the next successful login
- Accounts must be approved before they can log in
- Tokens are issued by token_service (signed JWT)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass

import bcrypt
from flask import current_app

from ..constants import AccountStatus, UserRole
from ..errors import ConflictError, ForbiddenError, UnauthorizedError
from ..extensions import db
from ..models import Agent, User
from . import token_service

logger = logging.getLogger(__name__)

LEGACY_SHA256_PREFIX = "sha256$"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller: a row from users or agents."""
    id: int
    role: str
    username: str
    kind: str  # "user" or "agent"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    @property
    def is_sales(self) -> bool:
        return self.role == UserRole.FACTORY_SALES

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT

    @property
    def is_inventory_manager(self) -> bool:
        return self.role == UserRole.INVENTORY_MANAGER


def principal_for(account) -> Principal:
    if isinstance(account, Agent):
        return Principal(id=account.id, role=UserRole.AGENT, username=account.company_name, kind="agent")
    return Principal(id=account.id, role=account.role, username=account.username, kind="user")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Length rules are enforced by validation.enforce_rules_password before this is called.
    """
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def _is_bcrypt_hash(password_hash: str) -> bool:
    return password_hash.startswith(("$2a$", "$2b$", "$2y$"))


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against a stored hash.

    Returns True if password matches hash, False otherwise.
    """
    if not password or not password_hash:
        return False

    if _is_bcrypt_hash(password_hash):
        try:
            return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
        except ValueError:
            return False

    if password_hash.startswith(LEGACY_SHA256_PREFIX):
        parts = password_hash.split("$")
        if len(parts) != 3:
            return False
        _, salt, expected = parts
        digest = hashlib.sha256((password + salt).encode('utf-8')).hexdigest()
        return hmac.compare_digest(digest, expected)

    digest = hashlib.sha256(password.encode('utf-8')).hexdigest()
    return hmac.compare_digest(digest, password_hash)


def _upgrade_legacy_hash(account, password: str) -> None:
    if not _is_bcrypt_hash(account.password_hash):
        account.password_hash = hash_password(password)
        db.session.commit()
        logger.info("upgraded legacy password hash for %r", account)


def _find_user(username: str) -> User | None:
    return db.session.query(User).filter_by(username=username).first()


def _find_agent(company_name: str) -> Agent | None:
    return db.session.query(Agent).filter_by(company_name=company_name).first()


def _check_status(account) -> None:
    if account.status == AccountStatus.PENDING:
        raise ForbiddenError("账户正在审核中，请等待审核通过")
    if account.status == AccountStatus.REJECTED:
        if isinstance(account, Agent):
            raise ForbiddenError("账户已被拒绝")
        raise ForbiddenError(f"账户已被拒绝，原因: {account.rejection_reason or '未提供'}")


def _issue(account, password: str) -> dict:
    _check_status(account)
    if not verify_password(password, account.password_hash):
        raise UnauthorizedError("用户名或密码错误")
    _upgrade_legacy_hash(account, password)

    principal = principal_for(account)
    token = token_service.create_access_token(
        account_id=principal.id, role=principal.role, username=principal.username
    )
    return {"token": token, "user": public_account_dict(account)}


def login(username: str, password: str, is_agent: bool = False) -> dict:
    """
    Look the name up as a staff username and as an agent company name.
    is_agent flips the lookup order for agents whose company name collides with a username.
    """
    lookups = (_find_agent, _find_user) if is_agent else (_find_user, _find_agent)
    account = None
    for lookup in lookups:
        account = lookup(username)
        if account is not None:
            break

    if account is None:
        raise UnauthorizedError("用户名不存在，请检查输入或注册新账户")
    return _issue(account, password)


def login_agent(company_name: str, password: str) -> dict:
    agent = _find_agent(company_name)
    if agent is None:
        raise UnauthorizedError("公司名或密码错误")
    return _issue(agent, password)


def load_principal(claims: dict) -> Principal:
    """Resolve token claims to a live, approved account."""
    model = Agent if claims.get("role") == UserRole.AGENT else User
    account = db.session.get(model, claims.get("id"))
    if account is None:
        raise UnauthorizedError("账户不存在或已被删除", error_code="INVALID_TOKEN")
    if account.status != AccountStatus.APPROVED:
        raise UnauthorizedError("账户未通过审核", error_code="INVALID_TOKEN")
    return principal_for(account)


def load_account(principal: Principal):
    model = Agent if principal.kind == "agent" else User
    account = db.session.get(model, principal.id)
    if account is None:
        raise UnauthorizedError("账户不存在或已被删除", error_code="INVALID_TOKEN")
    return account


def public_account_dict(account) -> dict:
    data = account.to_dict()
    if isinstance(account, Agent):
        data["username"] = account.company_name
    return data


def register_user(patch: dict) -> User:
    """Self-registration: pending until an admin approves."""
    if _find_user(patch["username"]):
        raise ConflictError("用户名已存在")

    user = User(
        username=patch["username"],
        password_hash=hash_password(patch["password"]),
        phone=patch.get("phone"),
        role=patch["role"],
        status=AccountStatus.PENDING,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("registered user %r pending approval", user)
    return user


def register_agent(patch: dict) -> Agent:
    if _find_agent(patch["company_name"]):
        raise ConflictError("该公司名已被注册")

    related_sales_id = patch.get("related_sales_id")
    if related_sales_id is not None:
        sales = db.session.get(User, related_sales_id)
        if sales is None or sales.role != UserRole.FACTORY_SALES:
            related_sales_id = None

    agent = Agent(
        company_name=patch["company_name"],
        contact_person=patch["contact_person"],
        phone=patch.get("phone"),
        password_hash=hash_password(patch["password"]),
        related_sales_id=related_sales_id,
        status=AccountStatus.PENDING,
    )
    db.session.add(agent)
    db.session.commit()
    logger.info("registered agent %r pending approval", agent)
    return agent


def ensure_default_admin() -> User | None:
    """
    Create the bootstrap super admin when none exists.

    Returns the created user, or None if a super admin is already present.
    """
    existing = db.session.query(User).filter_by(role=UserRole.SUPER_ADMIN).first()
    if existing:
        return None

    config = current_app.config
    admin = User(
        username=config["DEFAULT_ADMIN_USERNAME"],
        password_hash=hash_password(config["DEFAULT_ADMIN_PASSWORD"]),
        phone=config["DEFAULT_ADMIN_PHONE"],
        role=UserRole.SUPER_ADMIN,
        status=AccountStatus.APPROVED,
    )
    db.session.add(admin)
    db.session.commit()
    logger.info("created default super admin %r", admin)
    return admin
