# Overview: Request and permission decorators for API routes.

import logging
from functools import wraps
from flask import request, g

from .api_response import api_error_response, error_response
from .errors import ApiError
from .permissions import has_permission
from .services import auth_service, token_service

logger = logging.getLogger(__name__)


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to an auth_service.Principal.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid or expired token
    - Account deleted or no longer approved
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response("未授权访问", 401, "MISSING_TOKEN")

        token = auth_header.split(" ", 1)[1].strip()
        if not token:
            return error_response("未授权访问", 401, "MISSING_TOKEN")

        try:
            claims = token_service.decode_access_token(token)
            g.current_user = auth_service.load_principal(claims)
        except ApiError as e:
            logger.info("rejected token on %s %s: %s", request.method, request.path, e.message)
            return api_error_response(e)

        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource: str, action: str):
    """Require the caller's role to grant (resource, action)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return error_response("未授权访问", 401, "MISSING_TOKEN")

            user = g.current_user
            if not has_permission(user.role, resource, action):
                logger.info(
                    "permission denied: %s(%s) %s:%s on %s",
                    user.username, user.role, resource, action, request.path,
                )
                return error_response("权限不足", 403, "FORBIDDEN", required=f"{resource}:{action}")

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_roles(*roles: str):
    """Require the caller to hold one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error_response("未授权访问", 401, "MISSING_TOKEN")
            if g.current_user.role not in roles:
                return error_response("权限不足", 403, "FORBIDDEN")
            return f(*args, **kwargs)

        return decorated_function
    return decorator
