from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.errors import InvalidState
from backoffice.quantities import qty_str
from backoffice.time_utils import to_utc_z


STOCK_MOVE_TYPES = {"SALE", "WASTE", "PURCHASE", "ADJUSTMENT"}


class Product(db.Model):
    """
    A sellable menu item.

    Products either hold stock directly (current_stock) or are recipe-backed,
    in which case a sale consumes the recipe's ingredients and current_stock
    is not touched.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "sku", name="uq_products_outlet_sku"),
        db.Index("ix_products_outlet_deleted", "outlet_id", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized projection of SUM(stock_moves.quantity_delta)
    current_stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    min_stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    is_available = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    recipe_items = db.relationship(
        "RecipeItem",
        backref="product",
        lazy=True,
        order_by="RecipeItem.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_recipe_backed(self) -> bool:
        return bool(self.recipe_items)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "current_stock": qty_str(self.current_stock),
            "min_stock": qty_str(self.min_stock),
            "is_available": self.is_available,
            "is_recipe_backed": self.is_recipe_backed,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Ingredient(db.Model):
    """Raw material consumed through recipes (flour, milk, cups...)."""
    __tablename__ = "ingredients"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "name", name="uq_ingredients_outlet_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="g")

    current_stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    min_stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    cost_per_unit_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Ingredient id={self.id} name={self.name!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "name": self.name,
            "unit": self.unit,
            "current_stock": qty_str(self.current_stock),
            "min_stock": qty_str(self.min_stock),
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "is_low": self.current_stock is not None and self.current_stock <= self.min_stock,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class RecipeItem(db.Model):
    """One ingredient line of a product's recipe (quantity consumed per unit sold)."""
    __tablename__ = "recipe_items"
    __table_args__ = (
        db.UniqueConstraint("product_id", "ingredient_id", name="uq_recipe_items_product_ingredient"),
        db.CheckConstraint("quantity > 0", name="ck_recipe_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=False, index=True)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    ingredient = db.relationship("Ingredient", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "ingredient_id": self.ingredient_id,
            "ingredient_name": self.ingredient.name if self.ingredient else None,
            "quantity": qty_str(self.quantity),
            "position": self.position,
        }


class StockMove(db.Model):
    """
    Append-only stock ledger entry.

    Exactly one of product_id / ingredient_id is set. For every item,
    SUM(quantity_delta) equals the item's current_stock.

    TYPES:
    - SALE: negative, written by sale processing (order_id set)
    - WASTE: negative, spoilage/breakage
    - PURCHASE: positive, goods received
    - ADJUSTMENT: either sign, counts and opening stock
    """
    __tablename__ = "stock_moves"
    __table_args__ = (
        db.CheckConstraint(
            "(product_id IS NULL) <> (ingredient_id IS NULL)",
            name="ck_stock_moves_one_item",
        ),
        db.CheckConstraint("quantity_delta <> 0", name="ck_stock_moves_nonzero"),
        db.Index("ix_stock_moves_outlet_occurred", "outlet_id", "occurred_at"),
        db.Index("ix_stock_moves_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_stock_moves_ingredient_occurred", "ingredient_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Numeric(14, 3), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "product_id": self.product_id,
            "ingredient_id": self.ingredient_id,
            "type": self.type,
            "quantity_delta": qty_str(self.quantity_delta),
            "note": self.note,
            "order_id": self.order_id,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMove, "before_update")
@event.listens_for(StockMove, "before_delete")
def _stock_moves_are_append_only(mapper, connection, target):
    raise InvalidState("stock moves are append-only")
