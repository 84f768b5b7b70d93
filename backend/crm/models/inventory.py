from __future__ import annotations

from ..extensions import db
from crm.time_utils import utcnow, to_utc_z


class Product(db.Model):
    """
    Product master data with seven-tier quantity pricing.

    STOCK INVARIANT:
    Product.stock is never written by the generic update route. It changes only
    through inventory_service.apply_stock_operation, which performs an atomic
    conditional UPDATE and appends an InventoryRecord in the same transaction.
    The CHECK constraint backs up the non-negative rule at the storage layer.

    PRICING:
    JSON list of exactly seven {"quantity": int >= 1, "price": number > 0}.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("model_name", "package_type", name="uq_products_model_package"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_model_package", "model_name", "package_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    model_name = db.Column(db.String(128), nullable=False)
    package_type = db.Column(db.String(64), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    pricing = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} model={self.model_name!r} package={self.package_type!r} stock={self.stock}>"

    @property
    def display_name(self) -> str:
        return f"{self.model_name}/{self.package_type}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "modelName": self.model_name,
            "packageType": self.package_type,
            "stock": self.stock,
            "pricing": list(self.pricing or []),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class InventoryRecord(db.Model):
    """
    Append-only audit log of stock movements.

    operation_id is the idempotency key: unique at the storage layer, so a
    replayed operation fails to insert and its whole transaction (including the
    stock UPDATE) rolls back.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("operation_id", name="uq_inventory_records_operation_id"),
        db.Index("ix_inventory_records_product_time", "product_id", "operation_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Snapshot so the log stays readable after a product is renamed or deleted
    model_name = db.Column(db.String(128), nullable=False)
    package_type = db.Column(db.String(64), nullable=False)

    operation_type = db.Column(db.String(8), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    remark = db.Column(db.String(255), nullable=True)

    operator = db.Column(db.String(128), nullable=True)
    operator_id = db.Column(db.Integer, nullable=True)
    operation_time = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    operation_id = db.Column(db.String(64), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "modelName": self.model_name,
            "packageType": self.package_type,
            "operationType": self.operation_type,
            "quantity": self.quantity,
            "remark": self.remark,
            "operator": self.operator,
            "operatorId": self.operator_id,
            "operationTime": to_utc_z(self.operation_time),
            "operationId": self.operation_id,
        }
