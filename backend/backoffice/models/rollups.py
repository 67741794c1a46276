from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class DailyClosure(db.Model):
    """
    Per-outlet per-day sales aggregate.

    Sales increment the channel totals as they post; closing the register
    fills in the cash figures. bank = upi + card.
    """
    __tablename__ = "daily_closures"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "business_date", name="uq_daily_closures_outlet_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    upi_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    platform_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)

    total_expense_cents = db.Column(db.Integer, nullable=False, default=0)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=True)
    opening_cash_cents = db.Column(db.Integer, nullable=True)
    closing_cash_cents = db.Column(db.Integer, nullable=True)
    actual_cash_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def bank_sales_cents(self) -> int:
        return (self.upi_sales_cents or 0) + (self.card_sales_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "staff_id": self.staff_id,
            "cash_sales_cents": self.cash_sales_cents,
            "upi_sales_cents": self.upi_sales_cents,
            "card_sales_cents": self.card_sales_cents,
            "bank_sales_cents": self.bank_sales_cents,
            "platform_sales_cents": self.platform_sales_cents,
            "total_sales_cents": self.total_sales_cents,
            "order_count": self.order_count,
            "total_expense_cents": self.total_expense_cents,
            "register_id": self.register_id,
            "opening_cash_cents": self.opening_cash_cents,
            "closing_cash_cents": self.closing_cash_cents,
            "actual_cash_cents": self.actual_cash_cents,
            "variance_cents": self.variance_cents,
            "closed_at": to_utc_z(self.closed_at),
        }


class MonthlySummary(db.Model):
    """Per-outlet per-month rollup of DailyClosure rows ('YYYY-MM')."""
    __tablename__ = "monthly_summaries"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "month", name="uq_monthly_summaries_outlet_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    month = db.Column(db.String(7), nullable=False)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    bank_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    platform_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expense_cents = db.Column(db.Integer, nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)
    days_with_sales = db.Column(db.Integer, nullable=False, default=0)

    last_refreshed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def net_cents(self) -> int:
        return (self.total_sales_cents or 0) - (self.total_expense_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "month": self.month,
            "total_sales_cents": self.total_sales_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "bank_sales_cents": self.bank_sales_cents,
            "platform_sales_cents": self.platform_sales_cents,
            "total_expense_cents": self.total_expense_cents,
            "net_cents": self.net_cents,
            "order_count": self.order_count,
            "days_with_sales": self.days_with_sales,
            "last_refreshed_at": to_utc_z(self.last_refreshed_at),
        }
