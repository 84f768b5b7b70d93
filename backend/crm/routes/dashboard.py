# Overview: Flask API routes for dashboard statistics; parses input and returns JSON responses.

# backend/crm/routes/dashboard.py

from flask import Blueprint, request, g

from ..api_response import api_error_response, success_response
from ..decorators import require_auth
from ..errors import ApiError
from ..services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")
dashboard_stats_bp = Blueprint("dashboard_stats", __name__, url_prefix="/api/dashboard-stats")


@dashboard_bp.get("")
@require_auth
def overview_route():
    return success_response({"statistics": dashboard_service.overview(g.current_user)})


@dashboard_bp.get("/customer-distribution")
@require_auth
def customer_distribution_route():
    try:
        data = dashboard_service.customer_distribution(g.current_user)
    except ApiError as e:
        return api_error_response(e)
    return success_response(data)


@dashboard_bp.get("/monthly-stats")
@require_auth
def monthly_stats_route():
    return success_response(dashboard_service.monthly_stats(g.current_user))


@dashboard_bp.get("/product-demand")
@require_auth
def product_demand_route():
    return success_response({"productDemandData": dashboard_service.product_demand(g.current_user)})


@dashboard_stats_bp.get("")
@require_auth
def dashboard_stats_route():
    """Query params: timeRange (week | current_week | month | quarter | year | custom), startDate, endDate."""
    try:
        data = dashboard_service.dashboard_stats(
            g.current_user,
            time_range=request.args.get("timeRange") or "month",
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
        )
    except ApiError as e:
        return api_error_response(e)
    return success_response(data)
