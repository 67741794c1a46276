# Overview: Service-layer operations for daily and monthly sales rollups.

"""
Rollups are derived data:

- DailyClosure (outlet, date): incremented by every posted sale, completed
  with cash figures when the register closes.
- MonthlySummary (outlet, 'YYYY-MM'): incremented alongside DailyClosure;
  refresh_monthly_summary() recomputes it from the month's DailyClosure rows
  and is the repair path if the two ever drift.

Functions ending in _inner never commit.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db, cache
from ..models import DailyClosure, MonthlySummary, Outlet
from .cache_service import monthly_key, outlet_stats_key
from .concurrency import begin_locked_transaction, get_or_create_locked, translate_lock_errors
from backoffice.context import RequestContext
from backoffice.errors import NotFound
from backoffice.time_utils import month_key, parse_business_date, utcnow


# payment method -> DailyClosure column
CHANNEL_COLUMNS = {
    "CASH": "cash_sales_cents",
    "UPI": "upi_sales_cents",
    "CARD": "card_sales_cents",
    "ONLINE": "platform_sales_cents",
}


def _month_bounds(month: str) -> tuple[date, date]:
    try:
        year, mon = (int(part) for part in month.split("-"))
        start = date(year, mon, 1)
    except (TypeError, ValueError):
        raise ValueError("invalid month, expected YYYY-MM")
    end = date(year + 1, 1, 1) if mon == 12 else date(year, mon + 1, 1)
    return start, end


def get_or_create_daily_inner(tenant_id: int, outlet_id: int, business_date: date) -> DailyClosure:
    return get_or_create_locked(
        DailyClosure,
        {
            "tenant_id": tenant_id,
            "cash_sales_cents": 0,
            "upi_sales_cents": 0,
            "card_sales_cents": 0,
            "platform_sales_cents": 0,
            "total_sales_cents": 0,
            "order_count": 0,
            "total_expense_cents": 0,
        },
        outlet_id=outlet_id,
        business_date=business_date,
    )


def get_or_create_monthly_inner(tenant_id: int, outlet_id: int, month: str) -> MonthlySummary:
    return get_or_create_locked(
        MonthlySummary,
        {
            "tenant_id": tenant_id,
            "total_sales_cents": 0,
            "cash_sales_cents": 0,
            "bank_sales_cents": 0,
            "platform_sales_cents": 0,
            "total_expense_cents": 0,
            "order_count": 0,
            "days_with_sales": 0,
        },
        outlet_id=outlet_id,
        month=month,
    )


def _days_with_sales(outlet_id: int, month: str) -> int:
    start, end = _month_bounds(month)
    return (
        db.session.query(func.count(DailyClosure.id))
        .filter(
            DailyClosure.outlet_id == outlet_id,
            DailyClosure.business_date >= start,
            DailyClosure.business_date < end,
            DailyClosure.total_sales_cents > 0,
        )
        .scalar()
    ) or 0


def apply_sale_inner(
    *,
    tenant_id: int,
    outlet_id: int,
    business_date: date,
    payment_method: str,
    amount_cents: int,
    orders: int = 1,
    staff_id: int | None = None,
) -> DailyClosure:
    """
    Increment (or, with negative amounts, decrement) the day and month rollups.

    Re-attribution of a re-delivered order calls this twice: once with the
    old figures negated and orders=-1, once with the new ones.
    """
    column = CHANNEL_COLUMNS.get(payment_method)
    if column is None:
        raise ValueError(f"unknown payment method {payment_method!r}")

    daily = get_or_create_daily_inner(tenant_id, outlet_id, business_date)
    setattr(daily, column, (getattr(daily, column) or 0) + amount_cents)
    daily.total_sales_cents = (daily.total_sales_cents or 0) + amount_cents
    daily.order_count = (daily.order_count or 0) + orders
    if daily.staff_id is None and staff_id is not None:
        daily.staff_id = staff_id
    db.session.flush()

    month = month_key(business_date)
    monthly = get_or_create_monthly_inner(tenant_id, outlet_id, month)
    monthly.total_sales_cents = (monthly.total_sales_cents or 0) + amount_cents
    if payment_method == "CASH":
        monthly.cash_sales_cents = (monthly.cash_sales_cents or 0) + amount_cents
    elif payment_method == "ONLINE":
        monthly.platform_sales_cents = (monthly.platform_sales_cents or 0) + amount_cents
    else:
        monthly.bank_sales_cents = (monthly.bank_sales_cents or 0) + amount_cents
    monthly.order_count = (monthly.order_count or 0) + orders
    monthly.days_with_sales = _days_with_sales(outlet_id, month)
    db.session.flush()
    return daily


def refresh_monthly_summary_inner(tenant_id: int, outlet_id: int, month: str) -> MonthlySummary:
    """Recompute a month from its DailyClosure rows, without commit."""
    start, end = _month_bounds(month)
    totals = (
        db.session.query(
            func.coalesce(func.sum(DailyClosure.total_sales_cents), 0),
            func.coalesce(func.sum(DailyClosure.cash_sales_cents), 0),
            func.coalesce(func.sum(DailyClosure.upi_sales_cents + DailyClosure.card_sales_cents), 0),
            func.coalesce(func.sum(DailyClosure.platform_sales_cents), 0),
            func.coalesce(func.sum(DailyClosure.total_expense_cents), 0),
            func.coalesce(func.sum(DailyClosure.order_count), 0),
        )
        .filter(
            DailyClosure.outlet_id == outlet_id,
            DailyClosure.business_date >= start,
            DailyClosure.business_date < end,
        )
        .one()
    )

    monthly = get_or_create_monthly_inner(tenant_id, outlet_id, month)
    (
        monthly.total_sales_cents,
        monthly.cash_sales_cents,
        monthly.bank_sales_cents,
        monthly.platform_sales_cents,
        monthly.total_expense_cents,
        monthly.order_count,
    ) = (int(value) for value in totals)
    monthly.days_with_sales = _days_with_sales(outlet_id, month)
    monthly.last_refreshed_at = utcnow()
    db.session.flush()
    return monthly


def refresh_monthly_summary(outlet_id: int, month: str) -> MonthlySummary:
    outlet = db.session.get(Outlet, outlet_id)
    if outlet is None:
        raise NotFound("outlet not found", details={"outlet_id": outlet_id})
    _month_bounds(month)
    try:
        begin_locked_transaction()
        with translate_lock_errors(f"monthly summary {outlet.id}:{month}"):
            monthly = refresh_monthly_summary_inner(outlet.tenant_id, outlet.id, month)
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    cache.invalidate(monthly_key(outlet.id, month), outlet_stats_key(outlet.id))
    return monthly


def months_with_activity(outlet_id: int) -> list[str]:
    days = (
        db.session.query(DailyClosure.business_date)
        .filter(DailyClosure.outlet_id == outlet_id)
        .distinct()
        .all()
    )
    return sorted({month_key(row[0]) for row in days})


def get_daily_closure(ctx: RequestContext, business_date) -> DailyClosure | None:
    day = parse_business_date(business_date)
    return db.session.query(DailyClosure).filter_by(outlet_id=ctx.outlet_id, business_date=day).one_or_none()


def get_monthly_summary(ctx: RequestContext, month: str) -> dict | None:
    """Monthly rollup as a dict (cached). None if the month has no activity."""
    _month_bounds(month)

    def _fetch():
        row = db.session.query(MonthlySummary).filter_by(outlet_id=ctx.outlet_id, month=month).one_or_none()
        return row.to_dict() if row else None

    return cache.get_or_set(monthly_key(ctx.outlet_id, month), _fetch)


def get_outlet_stats(ctx: RequestContext, today=None) -> dict:
    """Today's and this month's headline figures for an outlet (cached)."""
    day = parse_business_date(today) if today is not None else utcnow().date()
    month = month_key(day)

    def _fetch():
        daily = db.session.query(DailyClosure).filter_by(outlet_id=ctx.outlet_id, business_date=day).one_or_none()
        monthly = db.session.query(MonthlySummary).filter_by(outlet_id=ctx.outlet_id, month=month).one_or_none()
        return {
            "outlet_id": ctx.outlet_id,
            "date": day.isoformat(),
            "today_sales_cents": daily.total_sales_cents if daily else 0,
            "today_order_count": daily.order_count if daily else 0,
            "month": month,
            "month_sales_cents": monthly.total_sales_cents if monthly else 0,
            "month_order_count": monthly.order_count if monthly else 0,
        }

    return cache.get_or_set(outlet_stats_key(ctx.outlet_id), _fetch)
