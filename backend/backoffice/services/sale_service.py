# Overview: Service-layer operations for sale ingestion; turns a POS order into stock, loyalty and rollup effects.

"""
Sale processing.

WHY: POS terminals retry on flaky networks, so the same order can arrive
several times. Each delivery is an upsert keyed by external_id and the
order's effects are applied exactly once, when it is first seen COMPLETED.

EFFECTS (one DB transaction, all or nothing):
- customer upsert (insert-or-no-op by tenant + phone) and loyalty stamps
- SALE stock moves, expanding recipe-backed products into ingredients
- DailyClosure / MonthlySummary increments
- channel totals of the day's register when it is OPEN

RE-DELIVERY:
- PENDING -> COMPLETED: effects are applied then
- changed total or payment method after posting: the old financial
  attribution is reversed and the new one applied; stock is not touched
- line items are never re-created
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db, cache
from ..models import Customer, LoyaltyProgress, LoyaltyRule, Order, OrderItem, Product, User
from . import register_service, rollup_service
from .concurrency import begin_locked_transaction, get_or_create_locked, lock_for_update, translate_lock_errors
from .stock_service import ItemRef, adjust_stock_inner
from backoffice.context import RequestContext
from backoffice.errors import Conflict, MissingAttributionTarget, NotFound
from backoffice.models.sales import ORDER_STATUSES, PAYMENT_METHODS
from backoffice.quantities import to_quantity
from backoffice.time_utils import month_key, normalize_datetime, parse_business_date, utcnow


PAYMENT_ALIASES = {"PLATFORM": "ONLINE", "DELIVERY": "ONLINE"}
ADMIN_ROLES = ("OWNER", "BRAND_ADMIN")


# =============================================================================
# PAYLOAD
# =============================================================================

def _cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} must be an integer amount in cents")
    if value < 0:
        raise ValueError(f"{field} cannot be negative")
    return value


@dataclass(frozen=True)
class SaleLineInput:
    name: str
    quantity: Decimal
    unit_price_cents: int
    line_total_cents: int
    product_id: Optional[int] = None
    modifiers: Optional[list] = None

    @classmethod
    def from_dict(cls, data: dict, position: int) -> "SaleLineInput":
        if not isinstance(data, dict):
            raise ValueError(f"items[{position}] must be an object")
        quantity = to_quantity(data.get("quantity"), field=f"items[{position}].quantity")
        if quantity <= 0:
            raise ValueError(f"items[{position}].quantity must be greater than 0")

        unit_price = _cents(data.get("unit_price_cents", 0), f"items[{position}].unit_price_cents")
        line_total = data.get("line_total_cents")
        if line_total is None:
            line_total = int((quantity * unit_price).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        line_total = _cents(line_total, f"items[{position}].line_total_cents")

        product_id = data.get("product_id")
        if product_id is not None:
            try:
                product_id = int(product_id)
            except (TypeError, ValueError):
                raise ValueError(f"items[{position}].product_id must be an integer")

        name = (data.get("name") or "").strip()
        if not name and product_id is None:
            raise ValueError(f"items[{position}].name is required for lines without product_id")

        return cls(
            name=name,
            quantity=quantity,
            unit_price_cents=unit_price,
            line_total_cents=line_total,
            product_id=product_id,
            modifiers=data.get("modifiers"),
        )


@dataclass(frozen=True)
class CustomerInput:
    phone: str
    name: Optional[str] = None


@dataclass(frozen=True)
class SalePayload:
    """Validated POS order delivery."""
    external_id: str
    items: tuple
    total_cents: int
    payment_method: str = "CASH"
    status: str = "COMPLETED"
    discount_cents: int = 0
    subtotal_cents: Optional[int] = None
    created_at: Optional[datetime] = None
    customer: Optional[CustomerInput] = None
    redeems_reward: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "SalePayload":
        if not isinstance(data, dict):
            raise ValueError("sale payload must be an object")

        external_id = str(data.get("external_id") or "").strip()
        if not external_id:
            raise ValueError("external_id is required")
        if len(external_id) > 64:
            raise ValueError("external_id must be at most 64 characters")

        raw_items = data.get("items") or []
        if not isinstance(raw_items, list) or not raw_items:
            raise ValueError("at least one item is required")
        items = tuple(SaleLineInput.from_dict(item, i) for i, item in enumerate(raw_items))

        payment_method = str(data.get("payment_method") or "CASH").strip().upper()
        payment_method = PAYMENT_ALIASES.get(payment_method, payment_method)
        if payment_method not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of {sorted(PAYMENT_METHODS)}")

        status = str(data.get("status") or "COMPLETED").strip().upper()
        if status not in ORDER_STATUSES:
            raise ValueError(f"status must be one of {sorted(ORDER_STATUSES)}")

        customer = None
        phone = data.get("customer_phone")
        name = data.get("customer_name")
        if isinstance(data.get("customer"), dict):
            phone = data["customer"].get("phone", phone)
            name = data["customer"].get("name", name)
        if phone is not None and str(phone).strip():
            customer = CustomerInput(phone=str(phone).strip(), name=(name or None))

        subtotal = data.get("subtotal_cents")
        return cls(
            external_id=external_id,
            items=items,
            total_cents=_cents(data.get("total_cents"), "total_cents"),
            payment_method=payment_method,
            status=status,
            discount_cents=_cents(data.get("discount_cents", 0), "discount_cents"),
            subtotal_cents=_cents(subtotal, "subtotal_cents") if subtotal is not None else None,
            created_at=normalize_datetime(data.get("created_at")),
            customer=customer,
            redeems_reward=bool(data.get("redeems_reward") or data.get("redeemed_reward")),
        )


# =============================================================================
# LINE RESOLUTION
# =============================================================================

@dataclass(frozen=True)
class DirectStockLine:
    """Product holding its own stock."""
    product_id: int
    quantity: Decimal


@dataclass(frozen=True)
class RecipeStockLine:
    """Recipe-backed product: components are (ingredient_id, quantity per unit)."""
    product_id: int
    quantity: Decimal
    components: tuple


@dataclass(frozen=True)
class UnlinkedLine:
    """Free-text line (no product reference): no stock effect."""
    name: str
    quantity: Decimal


ResolvedLine = Union[DirectStockLine, RecipeStockLine, UnlinkedLine]


def resolve_line(ctx: RequestContext, product_id: Optional[int], name: str, quantity: Decimal) -> ResolvedLine:
    if product_id is None:
        return UnlinkedLine(name=name, quantity=quantity)

    product = db.session.get(Product, product_id)
    if product is None or product.outlet_id != ctx.outlet_id or product.deleted_at is not None:
        raise NotFound("product not found", details={"product_id": product_id})

    if product.recipe_items:
        components = tuple((ri.ingredient_id, Decimal(ri.quantity)) for ri in product.recipe_items)
        return RecipeStockLine(product_id=product.id, quantity=quantity, components=components)
    return DirectStockLine(product_id=product.id, quantity=quantity)


def stock_deductions(lines: list) -> dict:
    """Total quantity to deduct per stock item."""
    totals: dict = {}
    for line in lines:
        if isinstance(line, DirectStockLine):
            ref = ItemRef.product(line.product_id)
            totals[ref] = totals.get(ref, Decimal("0")) + line.quantity
        elif isinstance(line, RecipeStockLine):
            for ingredient_id, per_unit in line.components:
                ref = ItemRef.ingredient(ingredient_id)
                totals[ref] = totals.get(ref, Decimal("0")) + per_unit * line.quantity
    return totals


# =============================================================================
# ATTRIBUTION / CUSTOMERS / LOYALTY
# =============================================================================

def resolve_staff_id(ctx: RequestContext) -> int:
    """
    Who the sale is attributed to: the acting user, else the outlet's
    first active staff member, else a tenant admin.
    """
    if ctx.actor_id is not None:
        user = db.session.get(User, ctx.actor_id)
        if user is not None and user.tenant_id == ctx.tenant_id and user.is_active:
            return user.id

    staff = (
        db.session.query(User)
        .filter(User.tenant_id == ctx.tenant_id, User.outlet_id == ctx.outlet_id, User.is_active.is_(True))
        .order_by(User.id.asc())
        .first()
    )
    if staff is not None:
        return staff.id

    admin = (
        db.session.query(User)
        .filter(User.tenant_id == ctx.tenant_id, User.role.in_(ADMIN_ROLES), User.is_active.is_(True))
        .order_by(User.id.asc())
        .first()
    )
    if admin is not None:
        return admin.id

    raise MissingAttributionTarget(
        "no staff or admin user to attribute the sale to",
        details={"tenant_id": ctx.tenant_id, "outlet_id": ctx.outlet_id},
    )


def _upsert_customer_inner(tenant_id: int, customer: CustomerInput) -> Customer:
    """Insert-or-no-op: an existing customer keeps their stored name."""
    existing = db.session.query(Customer).filter_by(tenant_id=tenant_id, phone=customer.phone).one_or_none()
    if existing is not None:
        return existing
    try:
        with db.session.begin_nested():
            row = Customer(tenant_id=tenant_id, phone=customer.phone, name=customer.name)
            db.session.add(row)
    except IntegrityError:
        row = db.session.query(Customer).filter_by(tenant_id=tenant_id, phone=customer.phone).one()
    return row


def _apply_loyalty_inner(ctx: RequestContext, order: Order) -> LoyaltyProgress | None:
    if order.customer_id is None:
        return None

    rule = db.session.query(LoyaltyRule).filter_by(outlet_id=ctx.outlet_id, is_active=True).one_or_none()
    progress = get_or_create_locked(
        LoyaltyProgress,
        {"stamps": 0, "total_spend_cents": 0, "total_visits": 0, "rewards_redeemed": 0},
        customer_id=order.customer_id,
        outlet_id=ctx.outlet_id,
    )

    progress.total_visits = (progress.total_visits or 0) + 1
    progress.total_spend_cents = (progress.total_spend_cents or 0) + order.total_cents
    progress.last_visit_at = order.created_at

    # No rule: every customer sale qualifies, rewards cost the default visit count.
    min_spend = rule.min_spend_cents if rule is not None else 0
    stamps = progress.stamps or 0

    if order.redeems_reward:
        required = rule.visits_required if rule is not None else current_app.config.get("DEFAULT_LOYALTY_VISITS_REQUIRED", 6)
        if stamps < required:
            # A short redeem still posts; stamps floor at 0.
            current_app.logger.warning(
                "Order %s redeemed a reward with %s of %s stamps (customer %s, outlet %s)",
                order.external_id, stamps, required, order.customer_id, ctx.outlet_id,
            )
        progress.stamps = max(stamps - required, 0)
        progress.rewards_redeemed = (progress.rewards_redeemed or 0) + 1
    elif order.total_cents >= min_spend:
        progress.stamps = stamps + 1

    db.session.flush()
    return progress


# =============================================================================
# FINANCIAL ATTRIBUTION
# =============================================================================

def _attribute_inner(ctx: RequestContext, order: Order, payment_method: str, amount_cents: int, orders: int) -> None:
    day = order.created_at.date()
    rollup_service.apply_sale_inner(
        tenant_id=order.tenant_id,
        outlet_id=order.outlet_id,
        business_date=day,
        payment_method=payment_method,
        amount_cents=amount_cents,
        orders=orders,
        staff_id=order.staff_id,
    )
    register_service.apply_sale_inner(order.outlet_id, day, payment_method, amount_cents)


def _post_order_inner(ctx: RequestContext, order: Order) -> None:
    """Apply every effect of a newly COMPLETED order, without commit."""
    _apply_loyalty_inner(ctx, order)

    lines = [resolve_line(ctx, item.product_id, item.name, Decimal(item.quantity)) for item in order.items]
    deductions = stock_deductions(lines)
    for ref in sorted(deductions, key=lambda r: r.sort_key):
        adjust_stock_inner(
            ctx,
            ref,
            -deductions[ref],
            "SALE",
            f"order {order.external_id}",
            order_id=order.id,
            occurred_at=order.created_at,
        )

    _attribute_inner(ctx, order, order.payment_method, order.total_cents, 1)

    order.posted_at = utcnow()
    order.posted_payment_method = order.payment_method
    order.posted_total_cents = order.total_cents
    db.session.flush()


def _reattribute_inner(ctx: RequestContext, order: Order) -> None:
    """Move an already-posted order's money to its new total / payment method."""
    current_app.logger.info(
        "re-attributing order %s: %s %s -> %s %s",
        order.external_id,
        order.posted_payment_method, order.posted_total_cents,
        order.payment_method, order.total_cents,
    )
    _attribute_inner(ctx, order, order.posted_payment_method, -order.posted_total_cents, -1)
    _attribute_inner(ctx, order, order.payment_method, order.total_cents, 1)
    order.posted_payment_method = order.payment_method
    order.posted_total_cents = order.total_cents
    db.session.flush()


# =============================================================================
# PROCESS SALE
# =============================================================================

def _insert_order_inner(ctx: RequestContext, payload: SalePayload) -> Order | None:
    """Insert a new order with its items. None if a concurrent delivery won the insert."""
    # Unknown products abort the sale before anything is written
    for line in payload.items:
        resolve_line(ctx, line.product_id, line.name, line.quantity)

    staff_id = resolve_staff_id(ctx)
    customer = _upsert_customer_inner(ctx.tenant_id, payload.customer) if payload.customer else None
    subtotal = payload.subtotal_cents
    if subtotal is None:
        subtotal = sum(line.line_total_cents for line in payload.items)

    try:
        with db.session.begin_nested():
            order = Order(
                external_id=payload.external_id,
                tenant_id=ctx.tenant_id,
                outlet_id=ctx.outlet_id,
                customer_id=customer.id if customer else None,
                customer_name=payload.customer.name if payload.customer else None,
                staff_id=staff_id,
                status=payload.status,
                payment_method=payload.payment_method,
                subtotal_cents=subtotal,
                discount_cents=payload.discount_cents,
                total_cents=payload.total_cents,
                redeems_reward=payload.redeems_reward,
                created_at=payload.created_at,
                received_at=utcnow(),
            )
            for position, line in enumerate(payload.items):
                order.items.append(OrderItem(
                    product_id=line.product_id,
                    name=line.name or f"product {line.product_id}",
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.line_total_cents,
                    modifiers=line.modifiers,
                    position=position,
                ))
            db.session.add(order)
    except IntegrityError:
        return None
    return order


def _apply_redelivery(order: Order, payload: SalePayload) -> None:
    if order.status == "PENDING" and payload.status == "COMPLETED":
        order.status = "COMPLETED"
    order.payment_method = payload.payment_method
    order.total_cents = payload.total_cents
    order.discount_cents = payload.discount_cents
    if payload.subtotal_cents is not None:
        order.subtotal_cents = payload.subtotal_cents


def _load_order_for_update(ctx: RequestContext, external_id: str) -> Order | None:
    order = lock_for_update(db.session.query(Order).filter_by(external_id=external_id)).one_or_none()
    if order is not None and order.outlet_id != ctx.outlet_id:
        raise Conflict(
            "external_id already used by another outlet",
            details={"external_id": external_id},
        )
    return order


def process_sale(ctx: RequestContext, payload) -> Order:
    """
    Ingest one POS order delivery (idempotent on external_id).

    Returns the committed Order.

    Raises:
        ValueError: malformed payload
        NotFound: unknown product reference
        Conflict: external_id belongs to another outlet
        MissingAttributionTarget: nobody to attribute the sale to
        InsufficientStock: only with SALE_BLOCKS_OVERSELL
        LockTimeout: stock rows contended; safe to retry
    """
    if not isinstance(payload, SalePayload):
        payload = SalePayload.from_dict(payload)

    stock_touched = False
    try:
        begin_locked_transaction()
        with translate_lock_errors(f"order {payload.external_id}"):
            order = _load_order_for_update(ctx, payload.external_id)
            if order is None:
                order = _insert_order_inner(ctx, payload)
                if order is None:
                    order = _load_order_for_update(ctx, payload.external_id)
                    _apply_redelivery(order, payload)
            else:
                _apply_redelivery(order, payload)
            db.session.flush()

            if order.status == "COMPLETED" and order.posted_at is None:
                _post_order_inner(ctx, order)
                stock_touched = True
            elif order.posted_at is not None and (
                order.total_cents != order.posted_total_cents
                or order.payment_method != order.posted_payment_method
            ):
                _reattribute_inner(ctx, order)

            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    day = order.created_at.date()
    cache.invalidate_outlet_sales(ctx.tenant_id, ctx.outlet_id, day.isoformat(), month_key(day))
    if stock_touched:
        cache.invalidate_outlet_stock(ctx.outlet_id)
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(ctx: RequestContext, external_id: str) -> Order:
    order = db.session.query(Order).filter_by(external_id=external_id).one_or_none()
    if order is None or order.outlet_id != ctx.outlet_id:
        raise NotFound("order not found", details={"external_id": external_id})
    return order


def list_orders(ctx: RequestContext, business_date=None, *, status: str | None = None, limit: int = 200) -> list[Order]:
    q = db.session.query(Order).filter(Order.outlet_id == ctx.outlet_id)
    if business_date is not None:
        day = parse_business_date(business_date)
        start = datetime(day.year, day.month, day.day)
        q = q.filter(Order.created_at >= start, Order.created_at < start + timedelta(days=1))
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
