from __future__ import annotations

from ..extensions import db
from ..constants import CustomerProgress, ROLE_DISPLAY
from crm.time_utils import utcnow, to_utc_z


class Customer(db.Model):
    """
    Customer master data plus its current assignment.

    OWNERSHIP:
    - owner_id/owner_type: the account that created the row (never changes)
    - related_sales_id/related_agent_id: who currently works the customer

    PUBLIC POOL INVARIANT:
    When is_in_public_pool is true, both related ids and names are NULL and
    progress is CustomerProgress.PUBLIC_POOL. The relation that was cleared is
    kept in the previous_* columns for audit. customer_service is the only
    writer of these columns.

    owner_id / related_* are polymorphic (users vs agents), so they are plain
    integers without foreign keys; the denormalized *_name columns keep list
    views and history readable after an account is removed.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_related_sales", "related_sales_id"),
        db.Index("ix_customers_related_agent", "related_agent_id"),
        db.Index("ix_customers_owner", "owner_type", "owner_id"),
        db.Index("ix_customers_pool", "is_in_public_pool", "progress"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True, index=True)
    nature = db.Column(db.String(32), nullable=False)
    importance = db.Column(db.String(64), nullable=False)
    application_field = db.Column(db.String(255), nullable=False, default="")
    product_needs = db.Column(db.JSON, nullable=False, default=list)
    contact_person = db.Column(db.String(64), nullable=False, default="")
    contact_phone = db.Column(db.String(32), nullable=False, default="")
    address = db.Column(db.String(255), nullable=False, default="")
    progress = db.Column(db.String(32), nullable=False, index=True)
    annual_demand = db.Column(db.Float, nullable=False, default=0)

    owner_id = db.Column(db.Integer, nullable=False)
    owner_type = db.Column(db.String(32), nullable=False)
    owner_name = db.Column(db.String(128), nullable=True)

    related_sales_id = db.Column(db.Integer, nullable=True)
    related_sales_name = db.Column(db.String(128), nullable=True)
    related_agent_id = db.Column(db.Integer, nullable=True)
    related_agent_name = db.Column(db.String(128), nullable=True)

    is_in_public_pool = db.Column(db.Boolean, nullable=False, default=False)
    previous_related_sales_id = db.Column(db.Integer, nullable=True)
    previous_related_sales_name = db.Column(db.String(128), nullable=True)
    previous_related_agent_id = db.Column(db.Integer, nullable=True)
    previous_related_agent_name = db.Column(db.String(128), nullable=True)

    last_update_time = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} pool={self.is_in_public_pool}>"

    def enter_public_pool(self) -> None:
        self.previous_related_sales_id = self.related_sales_id
        self.previous_related_sales_name = self.related_sales_name
        self.previous_related_agent_id = self.related_agent_id
        self.previous_related_agent_name = self.related_agent_name
        self.related_sales_id = None
        self.related_sales_name = None
        self.related_agent_id = None
        self.related_agent_name = None
        self.is_in_public_pool = True
        self.progress = CustomerProgress.PUBLIC_POOL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "nature": self.nature,
            "importance": self.importance,
            "applicationField": self.application_field,
            "productNeeds": list(self.product_needs or []),
            "contactPerson": self.contact_person,
            "contactPhone": self.contact_phone,
            "address": self.address,
            "progress": self.progress,
            "annualDemand": self.annual_demand,
            "ownerId": self.owner_id,
            "ownerType": self.owner_type,
            "ownerName": self.owner_name,
            "ownerTypeDisplay": ROLE_DISPLAY.get(self.owner_type),
            "relatedSalesId": self.related_sales_id,
            "relatedSalesName": self.related_sales_name,
            "relatedAgentId": self.related_agent_id,
            "relatedAgentName": self.related_agent_name,
            "isInPublicPool": self.is_in_public_pool,
            "previousRelatedSalesId": self.previous_related_sales_id,
            "previousRelatedSalesName": self.previous_related_sales_name,
            "previousRelatedAgentId": self.previous_related_agent_id,
            "previousRelatedAgentName": self.previous_related_agent_name,
            "lastUpdateTime": to_utc_z(self.last_update_time),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_public_dict(self) -> dict:
        """Restricted field set shown for customers sitting in the public pool."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "isInPublicPool": True,
            "createdAt": to_utc_z(self.created_at),
        }


class CustomerAssignmentHistory(db.Model):
    """Append-only log of relation changes (assign, claim, move to pool)."""
    __tablename__ = "customer_assignment_history"
    __table_args__ = (
        db.Index("ix_assignment_history_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)

    from_related_sales_id = db.Column(db.Integer, nullable=True)
    from_related_sales_name = db.Column(db.String(128), nullable=True)
    to_related_sales_id = db.Column(db.Integer, nullable=True)
    to_related_sales_name = db.Column(db.String(128), nullable=True)
    from_related_agent_id = db.Column(db.Integer, nullable=True)
    from_related_agent_name = db.Column(db.String(128), nullable=True)
    to_related_agent_id = db.Column(db.Integer, nullable=True)
    to_related_agent_name = db.Column(db.String(128), nullable=True)

    operator_id = db.Column(db.Integer, nullable=False)
    operator_name = db.Column(db.String(128), nullable=True)
    operation_type = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "fromRelatedSalesId": self.from_related_sales_id,
            "fromRelatedSalesName": self.from_related_sales_name,
            "toRelatedSalesId": self.to_related_sales_id,
            "toRelatedSalesName": self.to_related_sales_name,
            "fromRelatedAgentId": self.from_related_agent_id,
            "fromRelatedAgentName": self.from_related_agent_name,
            "toRelatedAgentId": self.to_related_agent_id,
            "toRelatedAgentName": self.to_related_agent_name,
            "operatorId": self.operator_id,
            "operatorName": self.operator_name,
            "operationType": self.operation_type,
            "createdAt": to_utc_z(self.created_at),
        }


class CustomerProgressHistory(db.Model):
    """Append-only log of progress transitions."""
    __tablename__ = "customer_progress_history"
    __table_args__ = (
        db.Index("ix_progress_history_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    from_progress = db.Column(db.String(32), nullable=False)
    to_progress = db.Column(db.String(32), nullable=False)
    operator_id = db.Column(db.Integer, nullable=False)
    operator_name = db.Column(db.String(128), nullable=True)
    remark = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "fromProgress": self.from_progress,
            "toProgress": self.to_progress,
            "operatorId": self.operator_id,
            "operatorName": self.operator_name,
            "remark": self.remark,
            "createdAt": to_utc_z(self.created_at),
        }


class FollowUpRecord(db.Model):
    __tablename__ = "follow_up_records"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    creator_id = db.Column(db.Integer, nullable=False)
    creator_name = db.Column(db.String(128), nullable=True)
    creator_type = db.Column(db.String(32), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "title": self.title,
            "content": self.content,
            "creatorId": self.creator_id,
            "creatorName": self.creator_name,
            "creatorType": self.creator_type,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
