from __future__ import annotations

from ..extensions import db
from backoffice.quantities import qty_str
from backoffice.time_utils import to_utc_z


ORDER_STATUSES = {"PENDING", "COMPLETED"}
PAYMENT_METHODS = {"CASH", "UPI", "CARD", "ONLINE"}


class Customer(db.Model):
    """
    Tenant-wide customer identified by phone number.

    Created on first sale with a phone; later sales never overwrite the name.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "phone": self.phone,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyRule(db.Model):
    """Stamp-card program of an outlet: one stamp per qualifying visit."""
    __tablename__ = "loyalty_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, unique=True)
    min_spend_cents = db.Column(db.Integer, nullable=False, default=0)
    visits_required = db.Column(db.Integer, nullable=False, default=6)
    reward_description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "min_spend_cents": self.min_spend_cents,
            "visits_required": self.visits_required,
            "reward_description": self.reward_description,
            "is_active": self.is_active,
        }


class LoyaltyProgress(db.Model):
    __tablename__ = "loyalty_progress"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "outlet_id", name="uq_loyalty_progress_customer_outlet"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)

    stamps = db.Column(db.Integer, nullable=False, default=0)
    total_spend_cents = db.Column(db.Integer, nullable=False, default=0)
    total_visits = db.Column(db.Integer, nullable=False, default=0)
    rewards_redeemed = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "outlet_id": self.outlet_id,
            "stamps": self.stamps,
            "total_spend_cents": self.total_spend_cents,
            "total_visits": self.total_visits,
            "rewards_redeemed": self.rewards_redeemed,
            "last_visit_at": to_utc_z(self.last_visit_at),
        }


class Order(db.Model):
    """
    A POS sale, keyed by the terminal-supplied external_id.

    LIFECYCLE:
    - PENDING: stored, no effects
    - COMPLETED: effects (stock, loyalty, rollups) applied once; posted_at set

    posted_payment_method / posted_total_cents remember what was attributed
    to the rollups so a re-delivery with new totals can reverse it exactly.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_outlet_created", "outlet_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(128), nullable=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    redeems_reward = db.Column(db.Boolean, nullable=False, default=False)

    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_payment_method = db.Column(db.String(16), nullable=True)
    posted_total_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    # Business timestamp from the terminal; drives the business date
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )
    customer = db.relationship("Customer", lazy=True)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} external_id={self.external_id!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "external_id": self.external_id,
            "tenant_id": self.tenant_id,
            "outlet_id": self.outlet_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "staff_id": self.staff_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "redeems_reward": self.redeems_reward,
            "posted_at": to_utc_z(self.posted_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)
    modifiers = db.Column(db.JSON, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": qty_str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "modifiers": self.modifiers,
            "position": self.position,
        }
