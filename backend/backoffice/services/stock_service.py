# Overview: Service-layer operations for the stock ledger; the only path through which stock changes.

"""
Stock ledger invariants (authoritative)

- Every stock change is an append-only StockMove row with a signed delta.
- Product.current_stock / Ingredient.current_stock is a projection kept in
  the same DB transaction as the move: SUM(quantity_delta) == current_stock.
- Items start at zero; opening stock is an ADJUSTMENT move.
- WASTE / PURCHASE / ADJUSTMENT may never drive stock negative.
- SALE may (backorder signal) unless SALE_BLOCKS_OVERSELL is set.
- Recipe-backed products never hold stock movements of their own; selling
  one consumes its ingredients.

Locking:
- The item row is locked (SELECT ... FOR UPDATE) before it is read.
- SQLite: BEGIN IMMEDIATE instead of row locks.
- Multi-item paths lock in (kind, id) order so two writers never deadlock.
- Lock waits beyond STOCK_LOCK_TIMEOUT_MS surface as LockTimeout; nothing
  here retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db, cache
from ..models import Ingredient, Product, RecipeItem, StockMove
from .cache_service import inventory_key, menu_key
from .concurrency import begin_locked_transaction, lock_for_update, translate_lock_errors
from backoffice.context import RequestContext
from backoffice.errors import InsufficientStock, InvalidState, NotFound
from backoffice.models.inventory import STOCK_MOVE_TYPES
from backoffice.quantities import qty_str, to_quantity
from backoffice.time_utils import normalize_datetime, utcnow


STRICT_TYPES = {"WASTE", "PURCHASE", "ADJUSTMENT"}

_ZERO = Decimal("0")


@dataclass(frozen=True)
class ItemRef:
    """Reference to exactly one stock-holding item."""
    kind: str
    id: int

    def __post_init__(self):
        if self.kind not in ("product", "ingredient"):
            raise ValueError("item kind must be 'product' or 'ingredient'")

    @classmethod
    def product(cls, product_id: int) -> "ItemRef":
        return cls("product", int(product_id))

    @classmethod
    def ingredient(cls, ingredient_id: int) -> "ItemRef":
        return cls("ingredient", int(ingredient_id))

    @property
    def model(self):
        return Product if self.kind == "product" else Ingredient

    @property
    def sort_key(self) -> tuple:
        return (self.kind, self.id)


def parse_item_ref(value) -> ItemRef:
    """
    Accept an ItemRef or a mapping with exactly one of product_id / ingredient_id.
    """
    if isinstance(value, ItemRef):
        return value
    if not isinstance(value, dict):
        raise ValueError("item must reference a product or an ingredient")

    product_id = value.get("product_id")
    ingredient_id = value.get("ingredient_id")
    if (product_id is None) == (ingredient_id is None):
        raise ValueError("exactly one of product_id / ingredient_id is required")
    try:
        if product_id is not None:
            return ItemRef.product(product_id)
        return ItemRef.ingredient(ingredient_id)
    except (TypeError, ValueError):
        raise ValueError("item id must be an integer")


def _validate_move_type(move_type: str) -> str:
    if move_type not in STOCK_MOVE_TYPES:
        raise ValueError(f"move_type must be one of {sorted(STOCK_MOVE_TYPES)}")
    return move_type


def _get_item(ctx: RequestContext, ref: ItemRef, *, lock: bool = False):
    q = db.session.query(ref.model).filter(ref.model.id == ref.id)
    if lock:
        q = lock_for_update(q)
    item = q.one_or_none()
    if item is None or item.outlet_id != ctx.outlet_id or item.deleted_at is not None:
        raise NotFound(f"{ref.kind} not found", details={f"{ref.kind}_id": ref.id})
    return item


def _has_recipe(product_id: int) -> bool:
    return db.session.query(RecipeItem.id).filter_by(product_id=product_id).first() is not None


def _apply_delta_inner(
    ctx: RequestContext,
    ref: ItemRef,
    item,
    delta: Decimal,
    move_type: str,
    *,
    note: str | None = None,
    order_id: int | None = None,
    occurred_at=None,
) -> StockMove:
    """Core mutation on an already-locked item, without commit."""
    current = item.current_stock if item.current_stock is not None else _ZERO
    new_stock = current + delta

    if delta < 0 and new_stock < 0:
        if move_type in STRICT_TYPES or current_app.config.get("SALE_BLOCKS_OVERSELL", False):
            raise InsufficientStock(
                f"insufficient stock for {ref.kind} {item.name!r}",
                details={
                    f"{ref.kind}_id": item.id,
                    "available": qty_str(current),
                    "requested": qty_str(-delta),
                },
            )
        current_app.logger.warning(
            "sale drives %s %s (%s) negative: %s -> %s (order %s)",
            ref.kind, item.id, item.name, qty_str(current), qty_str(new_stock), order_id,
        )

    # version_id_col bumps the item's version on this UPDATE
    item.current_stock = new_stock

    move = StockMove(
        outlet_id=item.outlet_id,
        product_id=item.id if ref.kind == "product" else None,
        ingredient_id=item.id if ref.kind == "ingredient" else None,
        type=move_type,
        quantity_delta=delta,
        note=note,
        order_id=order_id,
        created_by_user_id=ctx.actor_id,
        occurred_at=normalize_datetime(occurred_at),
    )
    db.session.add(move)
    db.session.flush()
    return move


def adjust_stock_inner(
    ctx: RequestContext,
    item,
    delta,
    move_type: str,
    note: str | None = None,
    *,
    order_id: int | None = None,
    occurred_at=None,
) -> StockMove:
    """
    Lock the item and apply one signed delta, without commit.

    Callers own the transaction (sale processing runs several of these plus
    its own writes as one unit).
    """
    ref = parse_item_ref(item)
    _validate_move_type(move_type)
    qty = to_quantity(delta, field="delta")
    if qty == 0:
        raise ValueError("delta must be non-zero")

    begin_locked_transaction(serializable=move_type in STRICT_TYPES)
    with translate_lock_errors(f"{ref.kind} {ref.id}"):
        locked = _get_item(ctx, ref, lock=True)
        if ref.kind == "product" and _has_recipe(locked.id):
            raise InvalidState(
                "recipe-backed products cannot be adjusted directly; adjust their ingredients",
                details={"product_id": locked.id},
            )
        return _apply_delta_inner(
            ctx, ref, locked, qty, move_type,
            note=note, order_id=order_id, occurred_at=occurred_at,
        )


def _commit_stock_change(outlet_id: int) -> None:
    with translate_lock_errors("stock"):
        db.session.commit()
    cache.invalidate_outlet_stock(outlet_id)


def adjust_stock(
    ctx: RequestContext,
    item,
    delta,
    move_type: str,
    note: str | None = None,
    *,
    occurred_at=None,
) -> StockMove:
    """
    Apply one signed stock change and commit it.

    Raises NotFound, InvalidState (recipe-backed product), InsufficientStock,
    LockTimeout. On any failure nothing is written.
    """
    try:
        move = adjust_stock_inner(ctx, item, delta, move_type, note, occurred_at=occurred_at)
        _commit_stock_change(ctx.outlet_id)
    except Exception:
        db.session.rollback()
        raise
    return move


def record_wastage(ctx: RequestContext, item, qty, reason: str) -> StockMove:
    """Write off spoiled/broken stock. Never allowed to go below zero."""
    quantity = to_quantity(qty)
    if quantity <= 0:
        raise ValueError("quantity must be greater than 0")
    if not reason or not str(reason).strip():
        raise ValueError("reason is required")
    return adjust_stock(ctx, item, -quantity, "WASTE", str(reason).strip())


def receive_purchase(ctx: RequestContext, lines: list, reference: str | None = None) -> list[StockMove]:
    """
    Receive a delivery: one PURCHASE move per line, all or nothing.

    lines: [{"product_id"|"ingredient_id": int, "quantity": number}, ...]
    """
    if not lines:
        raise ValueError("at least one line is required")

    parsed = []
    for line in lines:
        ref = parse_item_ref(line)
        quantity = to_quantity(line.get("quantity"))
        if quantity <= 0:
            raise ValueError("quantity must be greater than 0")
        parsed.append((ref, quantity))

    note = f"purchase {reference}" if reference else "purchase"
    try:
        moves = []
        for ref, quantity in sorted(parsed, key=lambda pair: pair[0].sort_key):
            moves.append(adjust_stock_inner(ctx, ref, quantity, "PURCHASE", note))
        _commit_stock_change(ctx.outlet_id)
    except Exception:
        db.session.rollback()
        raise
    return moves


def _opening_stock(value) -> Decimal:
    if value is None:
        return _ZERO
    qty = to_quantity(value, field="opening_stock")
    if qty < 0:
        raise ValueError("opening_stock cannot be negative")
    return qty


def create_product(
    ctx: RequestContext,
    *,
    name: str,
    price_cents: int = 0,
    sku: str | None = None,
    category: str | None = None,
    unit: str = "pcs",
    min_stock=0,
    opening_stock=None,
) -> Product:
    if not name or not name.strip():
        raise ValueError("name is required")
    if not isinstance(price_cents, int) or price_cents < 0:
        raise ValueError("price_cents must be a non-negative integer")

    opening = _opening_stock(opening_stock)
    product = Product(
        outlet_id=ctx.outlet_id,
        name=name.strip(),
        sku=sku,
        category=category,
        unit=unit,
        price_cents=price_cents,
        current_stock=_ZERO,
        min_stock=to_quantity(min_stock, field="min_stock"),
    )
    db.session.add(product)
    try:
        db.session.flush()
        if opening > 0:
            _apply_delta_inner(ctx, ItemRef.product(product.id), product, opening, "ADJUSTMENT", note="opening stock")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    cache.invalidate_outlet_stock(ctx.outlet_id)
    return product


def create_ingredient(
    ctx: RequestContext,
    *,
    name: str,
    unit: str = "g",
    min_stock=0,
    opening_stock=None,
    cost_per_unit_cents: int | None = None,
) -> Ingredient:
    if not name or not name.strip():
        raise ValueError("name is required")

    opening = _opening_stock(opening_stock)
    ingredient = Ingredient(
        outlet_id=ctx.outlet_id,
        name=name.strip(),
        unit=unit,
        current_stock=_ZERO,
        min_stock=to_quantity(min_stock, field="min_stock"),
        cost_per_unit_cents=cost_per_unit_cents,
    )
    db.session.add(ingredient)
    try:
        db.session.flush()
        if opening > 0:
            _apply_delta_inner(ctx, ItemRef.ingredient(ingredient.id), ingredient, opening, "ADJUSTMENT", note="opening stock")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    cache.invalidate(inventory_key(ctx.outlet_id))
    return ingredient


def set_recipe(ctx: RequestContext, product_id: int, lines: list) -> Product:
    """
    Replace a product's recipe. An empty list turns it back into a
    direct-stock product.

    lines: [{"ingredient_id": int, "quantity": number}, ...] (per unit sold)
    """
    product = _get_item(ctx, ItemRef.product(product_id))

    seen = set()
    new_items = []
    for position, line in enumerate(lines or []):
        ingredient_id = line.get("ingredient_id")
        if ingredient_id is None:
            raise ValueError("ingredient_id is required")
        if ingredient_id in seen:
            raise ValueError(f"ingredient {ingredient_id} appears twice in recipe")
        seen.add(ingredient_id)

        quantity = to_quantity(line.get("quantity"))
        if quantity <= 0:
            raise ValueError("recipe quantity must be greater than 0")

        ingredient = _get_item(ctx, ItemRef.ingredient(ingredient_id))
        new_items.append(RecipeItem(ingredient_id=ingredient.id, quantity=quantity, position=position))

    product.recipe_items.clear()
    db.session.flush()
    product.recipe_items.extend(new_items)
    db.session.commit()
    cache.invalidate_outlet_stock(ctx.outlet_id)
    return product


def soft_delete_item(ctx: RequestContext, item):
    """Hide an item. History (StockMoves, OrderItems) keeps referencing it."""
    ref = parse_item_ref(item)
    record = _get_item(ctx, ref)
    record.deleted_at = utcnow()
    if ref.kind == "product":
        record.is_available = False
    db.session.commit()
    cache.invalidate_outlet_stock(ctx.outlet_id)
    return record


def get_item(ctx: RequestContext, item):
    return _get_item(ctx, parse_item_ref(item))


def _build_stock_listing(outlet_id: int) -> dict:
    products = (
        db.session.query(Product)
        .filter(Product.outlet_id == outlet_id, Product.deleted_at.is_(None))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    ingredients = (
        db.session.query(Ingredient)
        .filter(Ingredient.outlet_id == outlet_id, Ingredient.deleted_at.is_(None))
        .order_by(Ingredient.name.asc(), Ingredient.id.asc())
        .all()
    )
    direct = [p for p in products if not p.is_recipe_backed]
    return {
        "outlet_id": outlet_id,
        "products": [p.to_dict() for p in direct],
        "ingredients": [i.to_dict() for i in ingredients],
        "low_stock": (
            [{"product_id": p.id, "name": p.name} for p in direct if p.current_stock <= p.min_stock]
            + [{"ingredient_id": i.id, "name": i.name} for i in ingredients if i.current_stock <= i.min_stock]
        ),
    }


def list_stock(ctx: RequestContext) -> dict:
    """Stock levels of direct-stock products and ingredients (cached)."""
    return cache.get_or_set(inventory_key(ctx.outlet_id), lambda: _build_stock_listing(ctx.outlet_id))


def _build_menu(outlet_id: int) -> list[dict]:
    products = (
        db.session.query(Product)
        .filter(
            Product.outlet_id == outlet_id,
            Product.deleted_at.is_(None),
            Product.is_available.is_(True),
        )
        .order_by(Product.category.asc(), Product.name.asc())
        .all()
    )
    menu = []
    for product in products:
        data = product.to_dict()
        data["recipe"] = [ri.to_dict() for ri in product.recipe_items]
        menu.append(data)
    return menu


def list_menu(ctx: RequestContext) -> list[dict]:
    """Sellable products with their recipes (cached)."""
    return cache.get_or_set(menu_key(ctx.outlet_id), lambda: _build_menu(ctx.outlet_id))


def list_stock_moves(ctx: RequestContext, item=None, *, limit: int = 200) -> list[StockMove]:
    q = db.session.query(StockMove).filter(StockMove.outlet_id == ctx.outlet_id)
    if item is not None:
        ref = parse_item_ref(item)
        _get_item(ctx, ref)
        column = StockMove.product_id if ref.kind == "product" else StockMove.ingredient_id
        q = q.filter(column == ref.id)
    return q.order_by(StockMove.occurred_at.desc(), StockMove.id.desc()).limit(limit).all()


def reconcile_item(item) -> dict:
    """
    Compare an item's current_stock with the sum of its StockMoves.

    item: a Product or Ingredient instance.
    """
    kind = "product" if isinstance(item, Product) else "ingredient"
    column = StockMove.product_id if kind == "product" else StockMove.ingredient_id
    ledger_sum = db.session.query(func.coalesce(func.sum(StockMove.quantity_delta), 0)).filter(column == item.id).scalar()
    ledger_sum = to_quantity(ledger_sum or 0)
    current = to_quantity(item.current_stock or 0)
    return {
        "kind": kind,
        "id": item.id,
        "name": item.name,
        "current_stock": qty_str(current),
        "ledger_sum": qty_str(ledger_sum),
        "drift": qty_str(current - ledger_sum),
        "ok": current == ledger_sum,
    }


def reconcile_outlet(ctx: RequestContext) -> list[dict]:
    """Ledger/balance check for every item of the outlet, soft-deleted included."""
    reports = []
    for model in (Product, Ingredient):
        for item in db.session.query(model).filter(model.outlet_id == ctx.outlet_id).order_by(model.id.asc()):
            reports.append(reconcile_item(item))
    return reports
