"""
Register state machine: one cash session per outlet per business date.

WHY: The drawer must be reconciled every day. Opening records what was
counted against what the previous day left behind; closing compares the
counted cash against what the system expects and refuses large differences
unless someone explains them and a manager signs off.

STATES: (none) -> OPEN -> CLOSED (terminal for that date)

DESIGN PRINCIPLES:
- At most one OPEN register per outlet (ENFORCE_SINGLE_OPEN_REGISTER)
- Transactions only land on OPEN registers; the register row is locked so a
  concurrent close cannot slip in between check and insert
- Closed registers are frozen
- Expected cash = opening + cash sales + other cash in - cash out
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db, cache
from ..models import Outlet, Register, RegisterTransaction
from . import pin_service, rollup_service, settings_service
from .cache_service import dashboard_key, monthly_key, outlet_stats_key, register_key
from .concurrency import begin_locked_transaction, lock_for_update, translate_lock_errors
from .pin_service import ManagerApproval, PinVerifier
from backoffice.context import RequestContext
from backoffice.errors import (
    AlreadyClosed,
    AlreadyOpen,
    NotFound,
    PreviousRegisterOpen,
    RegisterClosed,
    VarianceExplanationRequired,
)
from backoffice.models.registers import (
    CASH_OUTFLOW_TYPES,
    PAYMENT_MODES,
    REGISTER_TRANSACTION_TYPES,
)
from backoffice.time_utils import month_key, parse_business_date, utcnow


# payment mode -> Register channel column
CHANNEL_COLUMNS = {
    "CASH": "cash_sales_cents",
    "UPI": "upi_sales_cents",
    "CARD": "card_sales_cents",
    "ONLINE": "platform_sales_cents",
}

BREAKDOWN_KEYS = {
    "cash": "cash_sales_cents",
    "upi": "upi_sales_cents",
    "card": "card_sales_cents",
    "platform": "platform_sales_cents",
}


@dataclass(frozen=True)
class OpenRegisterResult:
    register: Register
    warning: Optional[str] = None


def _require_cents(value, field: str, *, positive: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} must be an integer amount in cents")
    if positive and value <= 0:
        raise ValueError(f"{field} must be greater than 0")
    if value < 0:
        raise ValueError(f"{field} cannot be negative")
    return value


def _require_outlet(ctx: RequestContext) -> Outlet:
    outlet = db.session.get(Outlet, ctx.outlet_id)
    if outlet is None or outlet.tenant_id != ctx.tenant_id:
        raise NotFound("outlet not found", details={"outlet_id": ctx.outlet_id})
    return outlet


def _invalidate_register_caches(ctx: RequestContext, register: Register) -> None:
    day = register.business_date
    cache.invalidate(
        register_key(ctx.outlet_id, day.isoformat()),
        outlet_stats_key(ctx.outlet_id),
        monthly_key(ctx.outlet_id, month_key(day)),
        dashboard_key(ctx.tenant_id),
    )


# =============================================================================
# QUERIES
# =============================================================================

def get_register(ctx: RequestContext, business_date) -> Register:
    day = parse_business_date(business_date)
    register = db.session.query(Register).filter_by(outlet_id=ctx.outlet_id, business_date=day).one_or_none()
    if register is None:
        raise NotFound("no register for this date", details={"business_date": day.isoformat()})
    return register


def get_register_summary(ctx: RequestContext, business_date) -> dict:
    """Register with its expected cash and transaction count (cached)."""
    day = parse_business_date(business_date)

    def _fetch():
        register = get_register(ctx, day)
        data = register.to_dict()
        data["expected_cash_cents"] = expected_cash(register)
        data["transaction_count"] = len(register.transactions)
        return data

    return cache.get_or_set(register_key(ctx.outlet_id, day.isoformat()), _fetch)


def get_open_register(ctx: RequestContext) -> Register | None:
    return (
        db.session.query(Register)
        .filter_by(outlet_id=ctx.outlet_id, status="OPEN")
        .order_by(Register.business_date.desc())
        .first()
    )


def _get_register_for_update(ctx: RequestContext, register_id: int) -> Register:
    register = lock_for_update(db.session.query(Register).filter_by(id=register_id)).one_or_none()
    if register is None or register.outlet_id != ctx.outlet_id:
        raise NotFound("register not found", details={"register_id": register_id})
    return register


def list_transactions(
    ctx: RequestContext,
    register_id: int,
    *,
    type: str | None = None,
    payment_mode: str | None = None,
) -> list[RegisterTransaction]:
    register = db.session.get(Register, register_id)
    if register is None or register.outlet_id != ctx.outlet_id:
        raise NotFound("register not found", details={"register_id": register_id})

    q = db.session.query(RegisterTransaction).filter_by(register_id=register.id)
    if type:
        q = q.filter(RegisterTransaction.type == type)
    if payment_mode:
        q = q.filter(RegisterTransaction.payment_mode == payment_mode)
    return q.order_by(RegisterTransaction.created_at.asc(), RegisterTransaction.id.asc()).all()


def get_register_history(ctx: RequestContext, start, end) -> list[Register]:
    start_day = parse_business_date(start)
    end_day = parse_business_date(end)
    if end_day < start_day:
        raise ValueError("end must not be before start")
    return (
        db.session.query(Register)
        .filter(
            Register.outlet_id == ctx.outlet_id,
            Register.business_date >= start_day,
            Register.business_date <= end_day,
        )
        .order_by(Register.business_date.asc())
        .all()
    )


def _cash_movements(register_id: int) -> tuple[int, int]:
    """(other cash in, cash out) from the register's non-SALE CASH transactions."""
    rows = (
        db.session.query(
            RegisterTransaction.is_inflow,
            func.coalesce(func.sum(RegisterTransaction.amount_cents), 0),
        )
        .filter(
            RegisterTransaction.register_id == register_id,
            RegisterTransaction.payment_mode == "CASH",
            RegisterTransaction.type != "SALE",
        )
        .group_by(RegisterTransaction.is_inflow)
        .all()
    )
    cash_in = cash_out = 0
    for is_inflow, total in rows:
        if is_inflow:
            cash_in += int(total)
        else:
            cash_out += int(total)
    return cash_in, cash_out


def expected_cash(register: Register, cash_sales_cents: int | None = None) -> int:
    """
    System-expected drawer cash.

    cash_sales_cents overrides the accumulated cash sales (operator-declared
    breakdown at close).
    """
    cash_sales = register.cash_sales_cents if cash_sales_cents is None else cash_sales_cents
    cash_in, cash_out = _cash_movements(register.id)
    return (register.opening_cash_cents or 0) + (cash_sales or 0) + cash_in - cash_out


def _expense_total(register_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(RegisterTransaction.amount_cents), 0))
        .filter(RegisterTransaction.register_id == register_id, RegisterTransaction.type == "EXPENSE")
        .scalar()
    )
    return int(total or 0)


# =============================================================================
# OPEN
# =============================================================================

def open_register(
    ctx: RequestContext,
    business_date,
    actual_opening_cents: int,
    note: str | None = None,
    *,
    denominations: dict | None = None,
) -> OpenRegisterResult:
    """
    Open the register for a business date.

    WHY: The counted opening cash is compared with what the previous register
    left behind (its counted close, else its expected close). A difference is
    recorded and returned as a warning; it never blocks the open.

    Raises:
        AlreadyOpen: a register already exists for this date
        PreviousRegisterOpen: another register of the outlet is still OPEN
    """
    day = parse_business_date(business_date)
    _require_cents(actual_opening_cents, "actual_opening_cents")
    _require_outlet(ctx)

    try:
        begin_locked_transaction()
        with translate_lock_errors(f"register {ctx.outlet_id}:{day}"):
            existing = lock_for_update(
                db.session.query(Register).filter_by(outlet_id=ctx.outlet_id, business_date=day)
            ).one_or_none()
            if existing is not None:
                raise AlreadyOpen(
                    f"register for {day.isoformat()} already exists",
                    details={"register_id": existing.id, "status": existing.status},
                )

            if current_app.config.get("ENFORCE_SINGLE_OPEN_REGISTER", True):
                still_open = (
                    db.session.query(Register)
                    .filter(Register.outlet_id == ctx.outlet_id, Register.status == "OPEN")
                    .order_by(Register.business_date.asc())
                    .first()
                )
                if still_open is not None:
                    raise PreviousRegisterOpen(
                        f"register for {still_open.business_date.isoformat()} is still open; close it first",
                        details={
                            "register_id": still_open.id,
                            "business_date": still_open.business_date.isoformat(),
                        },
                    )

            previous = (
                db.session.query(Register)
                .filter(Register.outlet_id == ctx.outlet_id, Register.business_date < day)
                .order_by(Register.business_date.desc())
                .first()
            )
            expected_opening = 0
            if previous is not None:
                if previous.actual_cash_cents is not None:
                    expected_opening = previous.actual_cash_cents
                elif previous.closing_cash_cents is not None:
                    expected_opening = previous.closing_cash_cents

            opening_variance = actual_opening_cents - expected_opening
            register = Register(
                outlet_id=ctx.outlet_id,
                business_date=day,
                status="OPEN",
                expected_opening_cents=expected_opening,
                opening_cash_cents=actual_opening_cents,
                opening_variance_cents=opening_variance,
                opening_note=note,
                opening_denominations=denominations,
                opened_by_user_id=ctx.actor_id,
                opened_at=utcnow(),
            )
            db.session.add(register)
            db.session.flush()
            db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise AlreadyOpen(f"register for {day.isoformat()} already exists")
    except Exception:
        db.session.rollback()
        raise

    _invalidate_register_caches(ctx, register)

    warning = None
    if opening_variance != 0:
        warning = (
            f"opening cash differs from expected by {opening_variance} cents "
            f"(expected {expected_opening}, counted {actual_opening_cents})"
        )
        current_app.logger.warning("register %s opened with variance: %s", register.id, warning)
    return OpenRegisterResult(register=register, warning=warning)


# =============================================================================
# TRANSACTIONS
# =============================================================================

def record_transaction_inner(
    ctx: RequestContext,
    register: Register,
    *,
    type: str,
    amount_cents: int,
    payment_mode: str = "CASH",
    is_inflow: bool | None = None,
    category: str | None = None,
    description: str | None = None,
    reference: str | None = None,
) -> RegisterTransaction:
    """Append a transaction to an already-locked register, without commit."""
    if type not in REGISTER_TRANSACTION_TYPES:
        raise ValueError(f"type must be one of {sorted(REGISTER_TRANSACTION_TYPES)}")
    if payment_mode not in PAYMENT_MODES:
        raise ValueError(f"payment_mode must be one of {sorted(PAYMENT_MODES)}")
    _require_cents(amount_cents, "amount_cents", positive=True)

    if register.status != "OPEN":
        raise RegisterClosed(
            "register is closed",
            details={"register_id": register.id, "business_date": register.business_date.isoformat()},
        )

    if type == "SALE":
        inflow = True
        column = CHANNEL_COLUMNS[payment_mode]
        setattr(register, column, (getattr(register, column) or 0) + amount_cents)
    elif type in CASH_OUTFLOW_TYPES:
        inflow = False
    else:
        # MANUAL / TRANSFER carry their own direction
        if is_inflow is None:
            raise ValueError(f"is_inflow is required for {type} transactions")
        inflow = bool(is_inflow)

    txn = RegisterTransaction(
        register_id=register.id,
        type=type,
        payment_mode=payment_mode,
        amount_cents=amount_cents,
        is_inflow=inflow,
        category=category,
        description=description,
        reference=reference,
        created_by_user_id=ctx.actor_id,
        created_at=utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def record_transaction(ctx: RequestContext, register_id: int, **kwargs) -> RegisterTransaction:
    """
    Record a sale, expense, withdrawal, payout, transfer or manual entry.

    Raises RegisterClosed if the register is not OPEN.
    """
    try:
        begin_locked_transaction()
        with translate_lock_errors(f"register {register_id}"):
            register = _get_register_for_update(ctx, register_id)
            txn = record_transaction_inner(ctx, register, **kwargs)
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    _invalidate_register_caches(ctx, register)
    return txn


def apply_sale_inner(
    outlet_id: int,
    business_date: date,
    payment_method: str,
    amount_cents: int,
) -> Register | None:
    """
    Add (or with a negative amount, remove) a posted sale to the day's
    register channel totals, without commit.

    No register for the date: nothing to do. CLOSED register: left frozen,
    the DailyClosure still carries the sale.
    """
    register = lock_for_update(
        db.session.query(Register).filter_by(outlet_id=outlet_id, business_date=business_date)
    ).one_or_none()
    if register is None:
        return None
    if register.status != "OPEN":
        current_app.logger.warning(
            "sale for %s reached closed register %s; register totals not updated",
            business_date.isoformat(), register.id,
        )
        return None

    column = CHANNEL_COLUMNS.get(payment_method)
    if column is None:
        raise ValueError(f"unknown payment method {payment_method!r}")
    setattr(register, column, (getattr(register, column) or 0) + amount_cents)
    db.session.flush()
    return register


# =============================================================================
# CLOSE
# =============================================================================

def _apply_breakdown(register: Register, sales_breakdown: dict | None) -> None:
    if not sales_breakdown:
        return
    unknown = set(sales_breakdown) - set(BREAKDOWN_KEYS)
    if unknown:
        raise ValueError(f"unknown sales_breakdown keys: {sorted(unknown)}")
    for key, column in BREAKDOWN_KEYS.items():
        if key in sales_breakdown:
            setattr(register, column, _require_cents(sales_breakdown[key], f"sales_breakdown.{key}"))


def _variance_exceeds_threshold(ctx: RequestContext, register_id: int, actual_cash_cents: int, sales_breakdown: dict | None) -> bool:
    """Unlocked preview of the close-time variance; the locked close re-checks it."""
    register = db.session.get(Register, register_id)
    if register is None or register.outlet_id != ctx.outlet_id or register.status == "CLOSED":
        return False
    declared_cash = None
    if sales_breakdown and "cash" in sales_breakdown:
        declared_cash = _require_cents(sales_breakdown["cash"], "sales_breakdown.cash")
    variance = actual_cash_cents - expected_cash(register, declared_cash)
    return abs(variance) > settings_service.variance_threshold_cents(ctx.outlet_id)


def close_register(
    ctx: RequestContext,
    register_id: int,
    *,
    actual_cash_cents: int,
    sales_breakdown: dict | None = None,
    variance_note: str | None = None,
    approval: ManagerApproval | None = None,
    pin_verifier: PinVerifier | None = None,
    denominations: dict | None = None,
) -> Register:
    """
    Reconcile and close a register.

    Args:
        actual_cash_cents: cash physically counted in the drawer
        sales_breakdown: operator-declared {"cash", "upi", "card", "platform"}
            totals; replaces the accumulated figures when given
        variance_note: explanation, required when |variance| > threshold
        approval: manager PIN approval, required when |variance| > threshold
        pin_verifier: checks the approval (default pin_service.verify_manager_pin)

    Raises:
        AlreadyClosed, NotFound, Unauthorized / PinNotConfigured (bad approval),
        VarianceExplanationRequired
    """
    _require_cents(actual_cash_cents, "actual_cash_cents")
    outlet = _require_outlet(ctx)

    # Verified before the register lock; failed attempts are committed by the verifier.
    # A close within the threshold never consults the PIN.
    approver = None
    if approval is not None and _variance_exceeds_threshold(ctx, register_id, actual_cash_cents, sales_breakdown):
        verifier = pin_verifier or pin_service.verify_manager_pin
        approver = verifier(ctx, approval)

    try:
        begin_locked_transaction()
        with translate_lock_errors(f"register {register_id}"):
            register = _get_register_for_update(ctx, register_id)
            if register.status == "CLOSED":
                raise AlreadyClosed(
                    "register is already closed",
                    details={"register_id": register.id, "closed_at": register.closed_at.isoformat() if register.closed_at else None},
                )

            _apply_breakdown(register, sales_breakdown)
            expected = expected_cash(register)
            variance = actual_cash_cents - expected
            threshold = settings_service.variance_threshold_cents(ctx.outlet_id)

            note = (variance_note or "").strip()
            if abs(variance) > threshold and (not note or approver is None):
                details = {
                    "expected_cash_cents": expected,
                    "actual_cash_cents": actual_cash_cents,
                    "variance_cents": variance,
                    "threshold_cents": threshold,
                    "note_provided": bool(note),
                    "approval_provided": approver is not None,
                }
                current_app.logger.warning("register %s close blocked by variance: %s", register.id, details)
                raise VarianceExplanationRequired(
                    "cash variance exceeds threshold; a note and manager approval are required",
                    details=details,
                )

            now = utcnow()
            register.closing_cash_cents = expected
            register.actual_cash_cents = actual_cash_cents
            register.variance_cents = variance
            register.variance_note = note or None
            register.variance_authorized_by_user_id = approver.id if approver is not None else None
            register.closing_denominations = denominations
            register.status = "CLOSED"
            register.closed_by_user_id = ctx.actor_id
            register.closed_at = now
            db.session.flush()

            daily = rollup_service.get_or_create_daily_inner(outlet.tenant_id, outlet.id, register.business_date)
            daily.register_id = register.id
            daily.opening_cash_cents = register.opening_cash_cents
            daily.closing_cash_cents = expected
            daily.actual_cash_cents = actual_cash_cents
            daily.variance_cents = variance
            daily.total_expense_cents = _expense_total(register.id)
            daily.closed_at = now
            if daily.staff_id is None:
                daily.staff_id = ctx.actor_id
            db.session.flush()

            rollup_service.refresh_monthly_summary_inner(outlet.tenant_id, outlet.id, month_key(register.business_date))
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    _invalidate_register_caches(ctx, register)
    return register
