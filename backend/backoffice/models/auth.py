from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class User(db.Model):
    """
    Local projection of an identity issued by the external identity service.

    WHY: Sales, register actions and transfers must be attributable to a
    person. Authentication itself happens upstream; this row carries only what
    the ledger needs (tenant/outlet scope and role).

    ROLES: OWNER, BRAND_ADMIN, MANAGER, STAFF
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_tenant_role", "tenant_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default="STAFF")
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "outlet_id": self.outlet_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class UserPin(db.Model):
    """
    Manager authorization PIN (bcrypt hash) with brute-force lockout.

    SECURITY: never store or log the raw PIN. failed_attempts resets on success.
    """
    __tablename__ = "user_pins"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    pin_hash = db.Column(db.String(255), nullable=False)
    failed_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime(timezone=True), nullable=True)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("pin", uselist=False, lazy=True))
