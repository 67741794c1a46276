from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.errors import InvalidState
from backoffice.time_utils import to_utc_z


REGISTER_TRANSACTION_TYPES = {"SALE", "EXPENSE", "TRANSFER", "WITHDRAWAL", "PAYOUT", "MANUAL"}
CASH_OUTFLOW_TYPES = {"EXPENSE", "WITHDRAWAL", "PAYOUT"}
PAYMENT_MODES = {"CASH", "UPI", "CARD", "ONLINE"}


class Register(db.Model):
    """
    One cash session per outlet per business date.

    STATES: OPEN -> CLOSED (terminal). At most one OPEN register per outlet.

    Cash figures:
    - expected_opening_cents: previous register's counted (else expected) close
    - opening_cash_cents: counted at open
    - closing_cash_cents: system-expected drawer cash at close
    - actual_cash_cents: counted at close
    - variance_cents: actual - expected
    """
    __tablename__ = "registers"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "business_date", name="uq_registers_outlet_date"),
        db.Index("ix_registers_outlet_status", "outlet_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="OPEN")

    expected_opening_cents = db.Column(db.Integer, nullable=False, default=0)
    opening_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    opening_variance_cents = db.Column(db.Integer, nullable=False, default=0)
    opening_note = db.Column(db.String(255), nullable=True)
    opening_denominations = db.Column(db.JSON, nullable=True)

    cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    upi_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    platform_sales_cents = db.Column(db.Integer, nullable=False, default=0)

    closing_cash_cents = db.Column(db.Integer, nullable=True)
    actual_cash_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)
    variance_note = db.Column(db.String(255), nullable=True)
    variance_authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closing_denominations = db.Column(db.JSON, nullable=True)

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    transactions = db.relationship(
        "RegisterTransaction",
        backref="register",
        lazy=True,
        order_by="RegisterTransaction.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_sales_cents(self) -> int:
        return (
            (self.cash_sales_cents or 0)
            + (self.upi_sales_cents or 0)
            + (self.card_sales_cents or 0)
            + (self.platform_sales_cents or 0)
        )

    def __repr__(self) -> str:
        return f"<Register id={self.id} outlet_id={self.outlet_id} date={self.business_date} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "status": self.status,
            "expected_opening_cents": self.expected_opening_cents,
            "opening_cash_cents": self.opening_cash_cents,
            "opening_variance_cents": self.opening_variance_cents,
            "opening_note": self.opening_note,
            "cash_sales_cents": self.cash_sales_cents,
            "upi_sales_cents": self.upi_sales_cents,
            "card_sales_cents": self.card_sales_cents,
            "platform_sales_cents": self.platform_sales_cents,
            "total_sales_cents": self.total_sales_cents,
            "closing_cash_cents": self.closing_cash_cents,
            "actual_cash_cents": self.actual_cash_cents,
            "variance_cents": self.variance_cents,
            "variance_note": self.variance_note,
            "variance_authorized_by_user_id": self.variance_authorized_by_user_id,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at),
            "version_id": self.version_id,
        }


class RegisterTransaction(db.Model):
    """
    Immutable cash/payment event inside an OPEN register.

    is_inflow is stored for every row; for EXPENSE/WITHDRAWAL/PAYOUT it is
    always False, for SALE always True.
    """
    __tablename__ = "register_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_register_transactions_amount_positive"),
        db.Index("ix_register_transactions_register_type", "register_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    payment_mode = db.Column(db.String(16), nullable=False, default="CASH")
    amount_cents = db.Column(db.Integer, nullable=False)
    is_inflow = db.Column(db.Boolean, nullable=False, default=False)

    category = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_id": self.register_id,
            "type": self.type,
            "payment_mode": self.payment_mode,
            "amount_cents": self.amount_cents,
            "is_inflow": self.is_inflow,
            "category": self.category,
            "description": self.description,
            "reference": self.reference,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(RegisterTransaction, "before_update")
@event.listens_for(RegisterTransaction, "before_delete")
def _register_transactions_are_immutable(mapper, connection, target):
    raise InvalidState("register transactions are immutable")
