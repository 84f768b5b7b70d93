# Overview: JSON response envelope helpers used by every blueprint.

"""
Envelope: {success, message?, data?, error?, warning?}

HTTP 202 is reserved for "status uncertain": the write may or may not have
landed and the client must refresh before retrying.
"""

from __future__ import annotations

import logging
import math

from flask import jsonify, request

from .errors import ApiError
from .time_utils import utcnow, to_utc_z

logger = logging.getLogger(__name__)

INVENTORY_UNCERTAIN_WARNING = "库存操作状态不确定，请刷新页面查看最新库存"
GENERIC_UNCERTAIN_WARNING = "操作状态不确定，请刷新页面查看最新状态"


def success_response(data=None, message: str = "操作成功", status: int = 200):
    return jsonify({"success": True, "message": message, "data": data}), status


def error_response(message: str, status: int = 400, error_code: str | None = None, **extra):
    if status >= 500:
        logger.error("server error (%s) %s %s: %s", status, request.method, request.path, message)
    payload = {
        "success": False,
        "error": message,
        "timestamp": to_utc_z(utcnow()),
    }
    if error_code:
        payload["errorCode"] = error_code
    payload.update(extra)
    return jsonify(payload), status


def api_error_response(exc: ApiError):
    return error_response(exc.message, exc.status_code, exc.error_code, **exc.extra)


def uncertain_response(error: str, inventory: bool = True, data=None):
    logger.warning("uncertain operation outcome on %s %s: %s", request.method, request.path, error)
    payload = {
        "success": False,
        "warning": INVENTORY_UNCERTAIN_WARNING if inventory else GENERIC_UNCERTAIN_WARNING,
        "error": error,
    }
    if data is not None:
        payload["data"] = data
    return jsonify(payload), 202


def pagination_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def parse_pagination(default_limit: int, max_limit: int = 200) -> tuple[int, int]:
    """Read page/limit query params; invalid or non-positive values fall back to defaults."""
    page = request.args.get("page", type=int) or 1
    limit = request.args.get("limit", type=int) or default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit
