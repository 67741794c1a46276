from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Tenant(db.Model):
    """
    Multi-tenant root: every brand sharing the deployment is a Tenant.

    Tenants are provisioned by an external workflow; this service only needs
    the row to scope outlets, users and customers.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Outlet(db.Model):
    """
    A shop/restaurant location of a tenant.

    Stock, registers, wallets and rollups are all outlet-scoped.
    """
    __tablename__ = "outlets"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_outlets_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("outlets", lazy=True))

    def __repr__(self) -> str:
        return f"<Outlet id={self.id} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class OutletSetting(db.Model):
    """Per-outlet key/value configuration (e.g. register.variance_threshold_cents)."""
    __tablename__ = "outlet_settings"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "key", name="uq_outlet_settings_outlet_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    outlet = db.relationship("Outlet", backref=db.backref("settings", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "key": self.key,
            "value": self.value,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
