# Overview: Service-layer operations for wallet transfers between the register drawer and the manager safe.

"""
Wallet transfer ledger.

- Each outlet has two wallets: REGISTER (the drawer) and MANAGER_SAFE.
- Balances are never stored: balance = SUM(incoming) - SUM(outgoing).
- Every transfer needs the safe's manager PIN (bcrypt hash on the wallet).
- Moving cash in or out of the drawer needs an OPEN register and leaves a
  TRANSFER RegisterTransaction behind so the drawer still reconciles.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db, cache
from ..models import Register, Wallet, WalletTransfer
from . import register_service
from .cache_service import register_key, wallets_key
from .concurrency import begin_locked_transaction, get_or_create_locked, lock_for_update, translate_lock_errors
from .pin_service import check_pin, ensure_not_locked, hash_pin, next_failure_state, validate_pin
from backoffice.context import RequestContext
from backoffice.errors import PinNotConfigured, RegisterClosed, Unauthorized
from backoffice.models.wallets import WALLET_TYPES
from backoffice.time_utils import utcnow


WALLET_NAMES = {
    "REGISTER": "Register drawer",
    "MANAGER_SAFE": "Manager safe",
}


def ensure_wallets_inner(outlet_id: int) -> dict[str, Wallet]:
    """Get-or-create both wallets of an outlet, without commit."""
    return {
        wallet_type: get_or_create_locked(Wallet, {"name": WALLET_NAMES[wallet_type]}, outlet_id=outlet_id, type=wallet_type)
        for wallet_type in sorted(WALLET_TYPES)
    }


def ensure_wallets(ctx: RequestContext) -> dict[str, Wallet]:
    try:
        begin_locked_transaction()
        wallets = ensure_wallets_inner(ctx.outlet_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return wallets


def set_manager_pin(ctx: RequestContext, pin: str) -> Wallet:
    """Set the outlet's manager safe PIN (4 digits). Manager-level roles only."""
    if not ctx.is_manager:
        raise Unauthorized("only managers can set the safe PIN", details={"role": ctx.role})
    validate_pin(pin, exact_length=4)

    try:
        begin_locked_transaction()
        safe = ensure_wallets_inner(ctx.outlet_id)["MANAGER_SAFE"]
        safe.manager_pin_hash = hash_pin(pin)
        safe.manager_user_id = ctx.actor_id
        safe.pin_failed_attempts = 0
        safe.pin_locked_until = None
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    cache.invalidate(wallets_key(ctx.outlet_id))
    return safe


def _verify_safe_pin(safe: Wallet, pin: str) -> None:
    """
    Check the safe PIN inside the caller's locked transaction.

    A miss is committed before Unauthorized is raised so the failure count
    survives the caller's rollback; the same lockout policy as approval PINs.
    """
    now = utcnow()
    ensure_not_locked(safe.pin_locked_until, now)
    if not check_pin(pin, safe.manager_pin_hash):
        safe.pin_failed_attempts, safe.pin_locked_until = next_failure_state(safe.pin_failed_attempts, now)
        if safe.pin_locked_until is not None:
            current_app.logger.warning("manager safe PIN locked for outlet %s", safe.outlet_id)
        db.session.commit()
        raise Unauthorized("invalid manager PIN")
    if safe.pin_failed_attempts or safe.pin_locked_until is not None:
        safe.pin_failed_attempts = 0
        safe.pin_locked_until = None


def get_wallet_balance(wallet_id: int) -> int:
    """Balance in cents, derived from the transfer ledger."""
    incoming = case((WalletTransfer.destination_wallet_id == wallet_id, WalletTransfer.amount_cents), else_=0)
    outgoing = case((WalletTransfer.source_wallet_id == wallet_id, WalletTransfer.amount_cents), else_=0)
    total = (
        db.session.query(func.coalesce(func.sum(incoming - outgoing), 0))
        .filter(
            (WalletTransfer.source_wallet_id == wallet_id)
            | (WalletTransfer.destination_wallet_id == wallet_id)
        )
        .scalar()
    )
    return int(total or 0)


def _build_balances(outlet_id: int) -> list[dict]:
    wallets = {w.type: w for w in db.session.query(Wallet).filter_by(outlet_id=outlet_id).all()}
    balances = []
    for wallet_type in sorted(WALLET_TYPES):
        wallet = wallets.get(wallet_type)
        if wallet is None:
            # Not created until the first transfer or PIN setup: nothing has moved yet.
            balances.append({
                "id": None,
                "outlet_id": outlet_id,
                "type": wallet_type,
                "name": WALLET_NAMES[wallet_type],
                "has_pin": False,
                "manager_user_id": None,
                "pin_locked_until": None,
                "created_at": None,
                "balance_cents": 0,
            })
            continue
        data = wallet.to_dict()
        data["balance_cents"] = get_wallet_balance(wallet.id)
        balances.append(data)
    return balances


def get_wallet_balances(ctx: RequestContext) -> list[dict]:
    """Both wallets with their derived balances (cached)."""
    return cache.get_or_set(wallets_key(ctx.outlet_id), lambda: _build_balances(ctx.outlet_id))


def list_transfers(ctx: RequestContext, *, limit: int = 100) -> list[WalletTransfer]:
    return (
        db.session.query(WalletTransfer)
        .filter_by(outlet_id=ctx.outlet_id)
        .order_by(WalletTransfer.created_at.desc(), WalletTransfer.id.desc())
        .limit(limit)
        .all()
    )


def transfer(
    ctx: RequestContext,
    *,
    source_type: str,
    destination_type: str,
    amount_cents: int,
    authorizer_pin: str,
    reason: str | None = None,
    initiator_id: int | None = None,
) -> WalletTransfer:
    """
    Move cash custody between the outlet's wallets.

    Raises:
        ValueError: bad types/amount, same source and destination
        PinNotConfigured: the safe has no PIN yet
        Unauthorized: PIN mismatch, or the safe PIN is locked out
        RegisterClosed: REGISTER wallet involved but no register is OPEN
    """
    for field, value in (("source_type", source_type), ("destination_type", destination_type)):
        if value not in WALLET_TYPES:
            raise ValueError(f"{field} must be one of {sorted(WALLET_TYPES)}")
    if source_type == destination_type:
        raise ValueError("source and destination wallets must differ")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValueError("amount_cents must be a positive integer")

    initiator = initiator_id if initiator_id is not None else ctx.actor_id
    if initiator is None:
        raise ValueError("initiator is required")

    register = None
    try:
        begin_locked_transaction()
        with translate_lock_errors(f"wallets {ctx.outlet_id}"):
            wallets = ensure_wallets_inner(ctx.outlet_id)
            safe = wallets["MANAGER_SAFE"]
            if not safe.manager_pin_hash:
                raise PinNotConfigured("manager safe PIN has not been set", details={"outlet_id": ctx.outlet_id})
            _verify_safe_pin(safe, authorizer_pin)

            if "REGISTER" in (source_type, destination_type):
                register = lock_for_update(
                    db.session.query(Register)
                    .filter_by(outlet_id=ctx.outlet_id, status="OPEN")
                    .order_by(Register.business_date.desc())
                ).first()
                if register is None:
                    raise RegisterClosed("an open register is required to move drawer cash")

            record = WalletTransfer(
                outlet_id=ctx.outlet_id,
                source_wallet_id=wallets[source_type].id,
                destination_wallet_id=wallets[destination_type].id,
                amount_cents=amount_cents,
                reason=reason,
                authorized_by_user_id=safe.manager_user_id,
                initiated_by_user_id=initiator,
                register_id=register.id if register is not None else None,
            )
            db.session.add(record)
            db.session.flush()

            if register is not None:
                register_service.record_transaction_inner(
                    ctx,
                    register,
                    type="TRANSFER",
                    amount_cents=amount_cents,
                    payment_mode="CASH",
                    is_inflow=destination_type == "REGISTER",
                    category="wallet_transfer",
                    description=reason,
                    reference=f"transfer:{record.id}",
                )
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    keys = [wallets_key(ctx.outlet_id)]
    if register is not None:
        keys.append(register_key(ctx.outlet_id, register.business_date.isoformat()))
    cache.invalidate(*keys)
    return record
