# backend/crm/routes/system.py
"""
System health endpoint.

Reports database connectivity so load balancers and the web client can tell
a dead backend from a slow one.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..api_response import error_response, success_response
from ..extensions import db
from crm.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200 {status: "ok"} when the database answers
    - 503 with database: "unhealthy" otherwise
    """
    database = check_database_health()
    healthy = database["status"] == "healthy"

    if not healthy:
        return error_response("数据库连接异常", 503, "SERVICE_UNAVAILABLE", database=database["status"])

    return success_response({
        "status": "ok",
        "timestamp": to_utc_z(utcnow()),
        "database": database["status"],
        "checks": {"database": database},
    }, "服务正常")
