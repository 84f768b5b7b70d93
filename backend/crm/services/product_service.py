# Overview: Service-layer operations for products; encapsulates business logic and database work.

# backend/crm/services/product_service.py

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product
from . import inventory_service

logger = logging.getLogger(__name__)


def needs_product(product_needs, product: Product) -> bool:
    """
    A customer needs a product when one of its need strings is the product id
    or mentions the product's model name.
    """
    product_key = str(product.id)
    for need in product_needs or ():
        if need == product_key or (product.model_name and product.model_name in need):
            return True
    return False


def count_customers_needing(product: Product) -> int:
    rows = db.session.query(Customer.product_needs).all()
    return sum(1 for (needs,) in rows if needs_product(needs, product))


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("产品不存在")
    return product


def list_products(*, page: int, limit: int, keyword: str | None = None) -> tuple[list[dict], int]:
    query = db.session.query(Product)
    if keyword:
        query = query.filter(or_(
            Product.model_name.icontains(keyword, autoescape=True),
            Product.package_type.icontains(keyword, autoescape=True),
        ))

    total = query.count()
    rows = (
        query.order_by(Product.model_name.asc(), Product.package_type.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [p.to_dict() for p in rows], total


def _pair_exists(model_name: str, package_type: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter_by(model_name=model_name, package_type=package_type)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def create_product(*, patch: dict, operator) -> Product:
    """
    Create a product. A positive opening stock is logged as an 'in' record
    in the same transaction.
    """
    if _pair_exists(patch["model_name"], patch["package_type"]):
        raise DuplicateError("该型号产品的封装类型已存在")

    product = Product(
        model_name=patch["model_name"],
        package_type=patch["package_type"],
        stock=patch.get("stock") or 0,
        pricing=patch["pricing"],
    )
    db.session.add(product)

    try:
        db.session.flush()
        if product.stock > 0:
            inventory_service.record_initial_stock(product, operator)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError("该型号产品的封装类型已存在")

    logger.info("created product %r", product)
    return product


def bulk_import_products(*, patches: list[dict], operator) -> int:
    """All-or-nothing insert; existing or repeated model/package pairs reject the batch."""
    seen = set()
    duplicates = []
    for patch in patches:
        pair = (patch["model_name"], patch["package_type"])
        if pair in seen or _pair_exists(*pair):
            duplicates.append(f"{pair[0]}/{pair[1]}")
        seen.add(pair)
    if duplicates:
        raise DuplicateError("以下产品型号已存在", duplicateProducts=duplicates)

    products = []
    try:
        for patch in patches:
            product = Product(
                model_name=patch["model_name"],
                package_type=patch["package_type"],
                stock=patch.get("stock") or 0,
                pricing=patch["pricing"],
            )
            db.session.add(product)
            products.append(product)
        db.session.flush()
        for product in products:
            if product.stock > 0:
                inventory_service.record_initial_stock(product, operator)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError("以下产品型号已存在", duplicateProducts=duplicates)

    logger.info("bulk imported %s products", len(products))
    return len(products)


def update_product(*, product_id: int, patch: dict) -> Product:
    if "stock" in patch:
        raise ForbiddenError("库存数量只能通过入库/出库操作进行修改")

    product = get_product(product_id)

    model_name = patch.get("model_name", product.model_name)
    package_type = patch.get("package_type", product.package_type)
    if (model_name, package_type) != (product.model_name, product.package_type):
        if _pair_exists(model_name, package_type, exclude_id=product.id):
            raise DuplicateError("该型号产品的封装类型已存在")

    for key, value in patch.items():
        setattr(product, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError("该型号产品的封装类型已存在")
    return product


def delete_product(product_id: int) -> None:
    product = get_product(product_id)

    customer_count = count_customers_needing(product)
    if customer_count:
        raise ValidationError("该产品有关联客户，无法删除", error_code="PRODUCT_IN_USE", customerCount=customer_count)

    db.session.delete(product)
    db.session.commit()
    logger.info("deleted product %s", product_id)
