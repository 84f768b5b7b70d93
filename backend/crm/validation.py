from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from crm.time_utils import parse_iso_datetime
from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported for routes)
from .constants import (
    CustomerImportance,
    CustomerNature,
    CustomerProgress,
    PRICING_TIER_COUNT,
    UserRole,
)


PHONE_PATTERN = re.compile(r"^1[3-9]\d{9}$")

MIN_USERNAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6
MIN_COMPANY_NAME_LENGTH = 2
MIN_CONTACT_PERSON_LENGTH = 2
MIN_CUSTOMER_NAME_LENGTH = 2


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: wire (camelCase) keys clients are allowed to set (security boundary)
    - required_on_create: wire keys required for POST
    - aliases: wire key -> model column key, for keys that differ
    - virtual_fields: accepted wire keys with no column (e.g. password, hashed by the service)
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)
    virtual_fields: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any, wire_key: str):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{wire_key} 必须是整数")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{wire_key} 必须是整数，不支持科学计数法")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{wire_key} 必须是整数，不能包含小数")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{wire_key} 必须是整数")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{wire_key} 必须是整数，不能是小数")
        # Other types
        raise ValidationError(f"{wire_key} 必须是整数")

    if isinstance(coltype, Float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{wire_key} 必须是数字")
        return float(value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{wire_key} 必须是布尔值")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{wire_key} 必须是 ISO-8601 格式的时间")
            if dt is None:
                raise ValidationError(f"{wire_key} 必须是 ISO-8601 格式的时间")
            return dt
        raise ValidationError(f"{wire_key} 必须是时间")

    # JSON columns are shape-checked by the enforce_rules_* functions
    if isinstance(coltype, JSON):
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, str):
            raise ValidationError(f"{wire_key} 必须是字符串")
        return value.strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by model column keys (virtual fields keep their wire key).

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("请求体必须是 JSON 对象")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        if missing:
            raise ValidationError(f"缺少必填字段: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"不允许的字段: {k}")
        if k in policy.virtual_fields:
            continue
        if policy.aliases.get(k, k) not in cols:
            raise ValidationError(f"未知字段: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in policy.virtual_fields:
            if raw is not None and not isinstance(raw, str):
                raise ValidationError(f"{k} 必须是字符串")
            patch[k] = raw
            continue

        key = policy.aliases.get(k, k)
        col = cols[key]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} 不能为空")
            patch[key] = None
            continue

        val = _coerce_value(col, raw, k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} 长度不能超过{col.type.length}")

        patch[key] = val

    return patch


# =============================================================================
# BUSINESS RULES
# =============================================================================


def _require_min_length(patch: dict, key: str, minimum: int, message: str) -> None:
    if key in patch:
        value = patch[key]
        if value is None or len(value) < minimum:
            raise ValidationError(message)


def enforce_rules_phone(patch: dict, key: str = "phone") -> None:
    if key in patch and patch[key] is not None:
        if not PHONE_PATTERN.match(patch[key]):
            raise ValidationError("请输入有效的手机号")


def enforce_rules_password(patch: dict) -> None:
    if "password" in patch:
        password = patch["password"]
        if password is None or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"密码至少{MIN_PASSWORD_LENGTH}个字符")


def enforce_rules_user(patch: dict, allowed_roles=UserRole.USER_ROLES) -> None:
    _require_min_length(patch, "username", MIN_USERNAME_LENGTH, f"用户名至少{MIN_USERNAME_LENGTH}个字符")
    enforce_rules_password(patch)
    enforce_rules_phone(patch)
    if "role" in patch and patch["role"] not in allowed_roles:
        raise ValidationError("无效的用户角色")


def enforce_rules_agent(patch: dict) -> None:
    _require_min_length(patch, "company_name", MIN_COMPANY_NAME_LENGTH, f"公司名至少{MIN_COMPANY_NAME_LENGTH}个字符")
    _require_min_length(patch, "contact_person", MIN_CONTACT_PERSON_LENGTH, f"联系人名至少{MIN_CONTACT_PERSON_LENGTH}个字符")
    enforce_rules_password(patch)
    enforce_rules_phone(patch)


def enforce_rules_customer(patch: dict) -> None:
    _require_min_length(patch, "name", MIN_CUSTOMER_NAME_LENGTH, f"客户名称至少{MIN_CUSTOMER_NAME_LENGTH}个字符")
    if "nature" in patch and patch["nature"] not in CustomerNature.ALL:
        raise ValidationError("无效的客户性质")
    if "importance" in patch and patch["importance"] not in CustomerImportance.ALL:
        raise ValidationError("无效的客户重要程度")
    if "progress" in patch and patch["progress"] not in CustomerProgress.ALL:
        raise ValidationError("无效的客户进展")
    if "product_needs" in patch:
        needs = patch["product_needs"]
        if not isinstance(needs, list) or not all(isinstance(n, str) for n in needs):
            raise ValidationError("productNeeds 必须是字符串数组")
        patch["product_needs"] = [n.strip() for n in needs if n.strip()]


def validate_pricing(pricing: Any) -> list[dict]:
    """Exactly seven tiers of {quantity: int >= 1, price: number > 0}."""
    if not isinstance(pricing, list) or len(pricing) != PRICING_TIER_COUNT:
        raise ValidationError(f"必须提供{PRICING_TIER_COUNT}档阶梯定价")
    tiers = []
    for tier in pricing:
        if not isinstance(tier, dict):
            raise ValidationError("阶梯定价格式无效")
        quantity = tier.get("quantity")
        price = tier.get("price")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("数量必须大于或等于1")
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
            raise ValidationError("价格必须大于0")
        tiers.append({"quantity": quantity, "price": price})
    return tiers


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "model_name" in patch and not patch["model_name"]:
        raise ValidationError("型号名称不能为空")
    if "package_type" in patch and not patch["package_type"]:
        raise ValidationError("封装型号不能为空")
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("库存数量不能为负数")
    if "pricing" in patch:
        patch["pricing"] = validate_pricing(patch["pricing"])


def parse_positive_quantity(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("数量必须是正整数")
    return value
