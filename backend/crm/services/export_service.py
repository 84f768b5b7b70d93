# Overview: Service-layer CSV builders for the product and agent exports.

from __future__ import annotations

import csv
import io

from ..constants import PRICING_TIER_COUNT, STANDARD_PRICING_TIERS, STATUS_DISPLAY
from ..extensions import db
from ..models import Agent, Product
from crm.time_utils import to_utc_z

PRODUCT_PRICE_COLUMNS = (
    "0-1k价格", "1k-10k价格", "10k-50k价格", "50k-100k价格",
    "100k-500k价格", "500k-1M价格", "大于1M价格",
)
PRODUCT_QUANTITY_COLUMNS = (
    "0-1k数量", "1k-10k数量", "10k-50k数量", "50k-100k数量",
    "100k-500k数量", "500k-1M数量", "大于1M数量",
)
PRODUCT_HEADER = (
    ("产品型号", "封装型号", "库存数量")
    + PRODUCT_PRICE_COLUMNS
    + PRODUCT_QUANTITY_COLUMNS
    + ("创建时间", "最后更新时间")
)
AGENT_HEADER = ("代理商公司名称", "联系人", "联系电话", "关联销售", "创建时间", "状态")


def normalize_pricing(pricing) -> list[dict]:
    """
    Map a product's tiers onto the standard quantity breakpoints.

    A tier whose quantity equals a breakpoint lands on it; otherwise the tier
    at the same position is used. Missing slots export as price 0 at the
    breakpoint quantity.
    """
    pricing = pricing if isinstance(pricing, list) else []
    normalized = []
    for i, breakpoint in enumerate(STANDARD_PRICING_TIERS[:PRICING_TIER_COUNT]):
        tier = next((t for t in pricing if t.get("quantity") == breakpoint), None)
        if tier is None and i < len(pricing):
            tier = pricing[i]
        tier = tier or {}
        normalized.append({
            "quantity": tier.get("quantity") or breakpoint,
            "price": tier.get("price") or 0,
        })
    return normalized


def _render(header, rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def products_csv() -> str:
    products = db.session.query(Product).order_by(Product.model_name.asc(), Product.package_type.asc()).all()
    rows = []
    for product in products:
        tiers = normalize_pricing(product.pricing)
        rows.append(
            [product.model_name, product.package_type, product.stock]
            + [t["price"] for t in tiers]
            + [t["quantity"] for t in tiers]
            + [to_utc_z(product.created_at) or "", to_utc_z(product.updated_at) or ""]
        )
    return _render(PRODUCT_HEADER, rows)


def agents_csv() -> str:
    agents = db.session.query(Agent).order_by(Agent.created_at.asc(), Agent.id.asc()).all()
    rows = [
        [
            agent.company_name,
            agent.contact_person,
            agent.phone or "",
            agent.related_sales.username if agent.related_sales else "",
            to_utc_z(agent.created_at) or "",
            STATUS_DISPLAY.get(agent.status, agent.status),
        ]
        for agent in agents
    ]
    return _render(AGENT_HEADER, rows)
