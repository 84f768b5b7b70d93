# Overview: Flask API routes for customer follow-up records.

# backend/crm/routes/follow_ups.py

from flask import Blueprint, request, g

from ..api_response import api_error_response, success_response
from ..decorators import require_auth, require_permission
from ..errors import ApiError
from ..services import follow_up_service

follow_ups_bp = Blueprint("follow_up_records", __name__, url_prefix="/api/followUpRecords")


@follow_ups_bp.get("/<int:customer_id>")
@require_auth
@require_permission("customers", "read")
def list_records_route(customer_id: int):
    try:
        records = follow_up_service.list_records(customer_id)
    except ApiError as e:
        return api_error_response(e)
    return success_response({"records": records})


@follow_ups_bp.post("")
@require_auth
@require_permission("customers", "update")
def create_record_route():
    payload = request.get_json(silent=True) or {}

    try:
        record = follow_up_service.create_record(actor=g.current_user, payload=payload)
    except ApiError as e:
        return api_error_response(e)

    return success_response({"record": record.to_dict()}, "创建跟进记录成功", 201)


@follow_ups_bp.delete("/<int:record_id>")
@require_auth
def delete_record_route(record_id: int):
    try:
        follow_up_service.delete_record(actor=g.current_user, record_id=record_id)
    except ApiError as e:
        return api_error_response(e)
    return success_response(None, "删除跟进记录成功")
