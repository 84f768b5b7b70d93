# Overview: Service-layer operations for bearer tokens; signs and verifies JWTs.

"""
Stateless JWT bearer tokens.

Claims: id, role, username, exp, iat, jti. The role claim tells require_auth
which table (users or agents) the id belongs to.
"""

from __future__ import annotations

import secrets
from datetime import timedelta, timezone

from flask import current_app
from jose import jwt, JWTError

from ..errors import UnauthorizedError
from crm.time_utils import utcnow


def create_access_token(*, account_id: int, role: str, username: str) -> str:
    now = utcnow().replace(tzinfo=timezone.utc)
    expires = now + timedelta(days=current_app.config["JWT_EXPIRES_DAYS"])
    claims = {
        "id": account_id,
        "role": role,
        "username": username,
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; raise UnauthorizedError on anything wrong."""
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError as exc:
        raise UnauthorizedError(f"无效的token: {exc}", error_code="INVALID_TOKEN")

    if not claims.get("id") or not claims.get("role"):
        raise UnauthorizedError("无效的token: 缺少必要字段", error_code="INVALID_TOKEN")
    return claims
