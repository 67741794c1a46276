from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.errors import InvalidState
from backoffice.time_utils import to_utc_z


WALLET_TYPES = {"REGISTER", "MANAGER_SAFE"}


class Wallet(db.Model):
    """
    Custody location of an outlet's cash.

    Balance is never stored: it is SUM(incoming transfers) - SUM(outgoing).
    The MANAGER_SAFE wallet carries the bcrypt hash of the manager PIN.
    """
    __tablename__ = "wallets"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "type", name="uq_wallets_outlet_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(64), nullable=False)

    # SECURITY: hash only, never serialized
    manager_pin_hash = db.Column(db.String(255), nullable=True)
    manager_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    pin_failed_attempts = db.Column(db.Integer, nullable=False, default=0)
    pin_locked_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "type": self.type,
            "name": self.name,
            "has_pin": self.manager_pin_hash is not None,
            "manager_user_id": self.manager_user_id,
            "pin_locked_until": to_utc_z(self.pin_locked_until),
            "created_at": to_utc_z(self.created_at),
        }


class WalletTransfer(db.Model):
    """Immutable movement of cash custody between two wallets of one outlet."""
    __tablename__ = "wallet_transfers"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_wallet_transfers_amount_positive"),
        db.CheckConstraint("source_wallet_id <> destination_wallet_id", name="ck_wallet_transfers_distinct"),
        db.Index("ix_wallet_transfers_outlet_created", "outlet_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)

    source_wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id"), nullable=False, index=True)
    destination_wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    initiated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    source_wallet = db.relationship("Wallet", foreign_keys=[source_wallet_id])
    destination_wallet = db.relationship("Wallet", foreign_keys=[destination_wallet_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "source_wallet_id": self.source_wallet_id,
            "source_wallet_type": self.source_wallet.type if self.source_wallet else None,
            "destination_wallet_id": self.destination_wallet_id,
            "destination_wallet_type": self.destination_wallet.type if self.destination_wallet else None,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "authorized_by_user_id": self.authorized_by_user_id,
            "initiated_by_user_id": self.initiated_by_user_id,
            "register_id": self.register_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(WalletTransfer, "before_update")
@event.listens_for(WalletTransfer, "before_delete")
def _wallet_transfers_are_immutable(mapper, connection, target):
    raise InvalidState("wallet transfers are immutable")
