from __future__ import annotations

from ..extensions import db
from ..constants import AccountStatus, UserRole
from crm.time_utils import to_utc_z


class User(db.Model):
    """
    Internal staff accounts: super admin, factory sales and inventory managers.

    Agents are external companies and live in their own table; both kinds of
    account can log in and both end up as a Principal on the request.

    Lifecycle: self-registration creates a pending row, admin creation an
    approved one. Only admins delete users, never the super admin or themselves.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_status", "role", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # Bcrypt hashed password (legacy sha256 hashes are upgraded on login)
    password_hash = db.Column(db.String(255), nullable=False)

    phone = db.Column(db.String(32), nullable=True)
    role = db.Column(db.String(32), nullable=False, default=UserRole.FACTORY_SALES)
    status = db.Column(db.String(16), nullable=False, default=AccountStatus.PENDING, index=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "phone": self.phone,
            "role": self.role,
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Agent(db.Model):
    """
    Distributor companies. Each agent may hang off one factory sales rep
    (related_sales_id) who sees and edits it.
    """
    __tablename__ = "agents"
    __table_args__ = (
        db.Index("ix_agents_sales_status", "related_sales_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(128), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(64), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    related_sales_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=AccountStatus.PENDING, index=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    related_sales = db.relationship("User", foreign_keys=[related_sales_id])

    # Agents authenticate with the fixed AGENT role
    role = UserRole.AGENT

    def __repr__(self) -> str:
        return f"<Agent id={self.id} company_name={self.company_name!r}>"

    @property
    def username(self) -> str:
        return self.company_name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyName": self.company_name,
            "contactPerson": self.contact_person,
            "phone": self.phone,
            "relatedSalesId": self.related_sales_id,
            "relatedSalesName": self.related_sales.username if self.related_sales else None,
            "role": UserRole.AGENT,
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
