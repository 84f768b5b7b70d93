# Overview: Service-layer operations for customer follow-up records.

from __future__ import annotations

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import FollowUpRecord
from .customer_service import get_customer
from crm.time_utils import utcnow


def list_records(customer_id: int) -> list[dict]:
    get_customer(customer_id)
    rows = (
        db.session.query(FollowUpRecord)
        .filter_by(customer_id=customer_id)
        .order_by(FollowUpRecord.created_at.desc(), FollowUpRecord.id.desc())
        .all()
    )
    return [r.to_dict() for r in rows]


def create_record(*, actor, payload: dict) -> FollowUpRecord:
    customer_id = payload.get("customerId")
    if isinstance(customer_id, bool) or not isinstance(customer_id, int):
        raise ValidationError("客户ID不能为空")

    title = payload.get("title")
    content = payload.get("content")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("标题不能为空")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("内容不能为空")
    if len(title.strip()) > 255:
        raise ValidationError("标题不能超过255个字符")

    customer = get_customer(customer_id)

    now = utcnow()
    record = FollowUpRecord(
        customer_id=customer.id,
        title=title.strip(),
        content=content.strip(),
        creator_id=actor.id,
        creator_name=actor.username,
        creator_type=actor.role,
        created_at=now,
        updated_at=now,
    )
    db.session.add(record)
    customer.last_update_time = now
    db.session.commit()
    return record


def delete_record(*, actor, record_id: int) -> None:
    record = db.session.get(FollowUpRecord, record_id)
    if record is None:
        raise NotFoundError("跟进记录不存在")
    # Users and agents have separate id spaces, so the creator match includes the role
    if not actor.is_admin and (record.creator_id != actor.id or record.creator_type != actor.role):
        raise ForbiddenError("无权删除该跟进记录")

    db.session.delete(record)
    db.session.commit()
