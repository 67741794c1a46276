# Overview: Pytest coverage for the stock ledger service.

"""
Stock Ledger Tests

Covers the ledger/balance invariant (current_stock == SUM(moves)), the
non-negative rule for WASTE / PURCHASE / ADJUSTMENT, recipe-backed product
guards, outlet scoping and cache invalidation of stock listings.
"""

from decimal import Decimal

import pytest

from backoffice.errors import InsufficientStock, InvalidState, NotFound
from backoffice.extensions import db
from backoffice.models import Product, StockMove
from backoffice.services import stock_service
from backoffice.services.stock_service import ItemRef

from conftest import reload


def _moves_for(ref: ItemRef):
    column = StockMove.product_id if ref.kind == "product" else StockMove.ingredient_id
    return db.session.query(StockMove).filter(column == ref.id).order_by(StockMove.id.asc()).all()


class TestItemRefs:

    def test_parse_requires_exactly_one_id(self):
        with pytest.raises(ValueError):
            stock_service.parse_item_ref({})
        with pytest.raises(ValueError):
            stock_service.parse_item_ref({"product_id": 1, "ingredient_id": 2})

    def test_parse_product_and_ingredient(self):
        assert stock_service.parse_item_ref({"product_id": "7"}) == ItemRef.product(7)
        assert stock_service.parse_item_ref({"ingredient_id": 3}) == ItemRef.ingredient(3)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            ItemRef("widget", 1)


class TestOpeningStock:

    def test_opening_stock_is_an_adjustment_move(self, db_session, ctx, flour):
        moves = _moves_for(ItemRef.ingredient(flour.id))
        assert len(moves) == 1
        assert moves[0].type == "ADJUSTMENT"
        assert moves[0].note == "opening stock"
        assert moves[0].quantity_delta == Decimal("100")
        assert reload(flour).current_stock == Decimal("100")

    def test_item_without_opening_stock_has_no_moves(self, db_session, ctx):
        product = stock_service.create_product(ctx, name="Muffin", price_cents=300)
        assert product.current_stock == 0
        assert _moves_for(ItemRef.product(product.id)) == []

    def test_negative_opening_stock_rejected(self, db_session, ctx):
        with pytest.raises(ValueError):
            stock_service.create_ingredient(ctx, name="Sugar", opening_stock=-1)


class TestAdjustStock:

    def test_adjust_writes_move_and_projection(self, db_session, ctx, cola):
        move = stock_service.adjust_stock(ctx, ItemRef.product(cola.id), 5, "PURCHASE", "crate")

        assert move.quantity_delta == Decimal("5")
        assert move.created_by_user_id == ctx.actor_id
        assert reload(cola).current_stock == Decimal("25")

    def test_adjust_bumps_version(self, db_session, ctx, cola):
        before = reload(cola).version_id
        stock_service.adjust_stock(ctx, {"product_id": cola.id}, -2, "ADJUSTMENT", "count")
        assert reload(cola).version_id == before + 1

    def test_zero_delta_rejected(self, db_session, ctx, cola):
        with pytest.raises(ValueError):
            stock_service.adjust_stock(ctx, ItemRef.product(cola.id), 0, "ADJUSTMENT")

    def test_unknown_move_type_rejected(self, db_session, ctx, cola):
        with pytest.raises(ValueError):
            stock_service.adjust_stock(ctx, ItemRef.product(cola.id), 1, "GIFT")

    def test_adjustment_cannot_go_negative(self, db_session, ctx, cola):
        with pytest.raises(InsufficientStock):
            stock_service.adjust_stock(ctx, ItemRef.product(cola.id), -21, "ADJUSTMENT")
        assert reload(cola).current_stock == Decimal("20")
        assert len(_moves_for(ItemRef.product(cola.id))) == 1

    def test_fractional_quantities_are_exact(self, db_session, ctx, flour):
        ref = ItemRef.ingredient(flour.id)
        for _ in range(3):
            stock_service.adjust_stock(ctx, ref, 0.1, "PURCHASE")
        assert reload(flour).current_stock == Decimal("100.3")
        assert stock_service.reconcile_item(reload(flour))["ok"] is True

    def test_recipe_backed_product_cannot_be_adjusted(self, db_session, ctx, bread):
        with pytest.raises(InvalidState):
            stock_service.adjust_stock(ctx, ItemRef.product(bread.id), 5, "PURCHASE")
        assert _moves_for(ItemRef.product(bread.id)) == []

    def test_item_of_another_outlet_not_found(self, db_session, ctx, cola, second_outlet):
        other = ctx.for_outlet(second_outlet.id)
        with pytest.raises(NotFound):
            stock_service.adjust_stock(other, ItemRef.product(cola.id), 1, "PURCHASE")

    def test_soft_deleted_item_not_found(self, db_session, ctx, cola):
        stock_service.soft_delete_item(ctx, ItemRef.product(cola.id))
        with pytest.raises(NotFound):
            stock_service.adjust_stock(ctx, ItemRef.product(cola.id), 1, "PURCHASE")


class TestWastage:

    def test_wastage_deducts(self, db_session, ctx, flour):
        move = stock_service.record_wastage(ctx, ItemRef.ingredient(flour.id), "2.5", "damp sack")
        assert move.type == "WASTE"
        assert move.quantity_delta == Decimal("-2.5")
        assert move.note == "damp sack"
        assert reload(flour).current_stock == Decimal("97.5")

    def test_wastage_beyond_stock_rejected_without_effect(self, db_session, ctx, flour):
        with pytest.raises(InsufficientStock) as excinfo:
            stock_service.record_wastage(ctx, ItemRef.ingredient(flour.id), 101, "spoiled")

        assert excinfo.value.details["available"] == "100"
        assert excinfo.value.details["requested"] == "101"
        assert reload(flour).current_stock == Decimal("100")
        assert len(_moves_for(ItemRef.ingredient(flour.id))) == 1

    def test_wastage_requires_reason(self, db_session, ctx, flour):
        with pytest.raises(ValueError):
            stock_service.record_wastage(ctx, ItemRef.ingredient(flour.id), 1, "  ")

    def test_wastage_quantity_must_be_positive(self, db_session, ctx, flour):
        with pytest.raises(ValueError):
            stock_service.record_wastage(ctx, ItemRef.ingredient(flour.id), -1, "oops")


class TestPurchases:

    def test_purchase_receives_every_line(self, db_session, ctx, flour, cola):
        moves = stock_service.receive_purchase(
            ctx,
            [
                {"product_id": cola.id, "quantity": 24},
                {"ingredient_id": flour.id, "quantity": "25.5"},
            ],
            reference="INV-1001",
        )

        assert len(moves) == 2
        assert {m.type for m in moves} == {"PURCHASE"}
        assert all(m.note == "purchase INV-1001" for m in moves)
        assert reload(cola).current_stock == Decimal("44")
        assert reload(flour).current_stock == Decimal("125.5")

    def test_purchase_is_all_or_nothing(self, db_session, ctx, flour):
        with pytest.raises(NotFound):
            stock_service.receive_purchase(
                ctx,
                [
                    {"ingredient_id": flour.id, "quantity": 10},
                    {"product_id": 999999, "quantity": 1},
                ],
            )
        assert reload(flour).current_stock == Decimal("100")
        assert len(_moves_for(ItemRef.ingredient(flour.id))) == 1

    def test_purchase_requires_lines(self, db_session, ctx):
        with pytest.raises(ValueError):
            stock_service.receive_purchase(ctx, [])


class TestRecipes:

    def test_set_recipe_marks_product_recipe_backed(self, db_session, ctx, bread, flour):
        product = reload(bread)
        assert product.is_recipe_backed
        assert [(ri.ingredient_id, ri.quantity) for ri in product.recipe_items] == [(flour.id, Decimal("0.5"))]

    def test_empty_recipe_turns_product_back_to_direct_stock(self, db_session, ctx, bread):
        stock_service.set_recipe(ctx, bread.id, [])
        assert not reload(bread).is_recipe_backed

    def test_duplicate_ingredient_rejected(self, db_session, ctx, bread, flour):
        with pytest.raises(ValueError):
            stock_service.set_recipe(
                ctx,
                bread.id,
                [{"ingredient_id": flour.id, "quantity": 1}, {"ingredient_id": flour.id, "quantity": 2}],
            )

    def test_menu_lists_recipe(self, db_session, ctx, bread, cola):
        menu = stock_service.list_menu(ctx)
        by_name = {item["name"]: item for item in menu}
        assert by_name["Bread"]["is_recipe_backed"] is True
        assert by_name["Bread"]["recipe"][0]["quantity"] == "0.5"
        assert by_name["Cola"]["recipe"] == []


class TestLedgerImmutability:

    def test_stock_move_cannot_be_updated(self, db_session, ctx, flour):
        move = _moves_for(ItemRef.ingredient(flour.id))[0]
        move.note = "rewritten"
        with pytest.raises(InvalidState):
            db.session.flush()
        db.session.rollback()

    def test_stock_move_cannot_be_deleted(self, db_session, ctx, flour):
        move = _moves_for(ItemRef.ingredient(flour.id))[0]
        db.session.delete(move)
        with pytest.raises(InvalidState):
            db.session.flush()
        db.session.rollback()


class TestReconciliation:

    def test_outlet_reconciles_after_mixed_activity(self, db_session, ctx, flour, cola):
        stock_service.adjust_stock(ctx, ItemRef.product(cola.id), -3, "SALE")
        stock_service.record_wastage(ctx, ItemRef.ingredient(flour.id), 4, "mice")
        stock_service.receive_purchase(ctx, [{"product_id": cola.id, "quantity": 6}])

        reports = stock_service.reconcile_outlet(ctx)
        assert len(reports) == 2
        assert all(report["ok"] for report in reports)

    def test_drift_is_reported(self, db_session, ctx, cola):
        # Simulate a bug writing the projection without a move
        db.session.execute(
            Product.__table__.update()
            .where(Product.id == cola.id)
            .values(current_stock=Decimal("19"))
        )
        db.session.commit()

        report = stock_service.reconcile_item(reload(cola))
        assert report["ok"] is False
        assert report["ledger_sum"] == "20"
        assert report["drift"] == "-1"


class TestStockListingCache:

    def test_listing_is_cached_and_invalidated(self, db_session, ctx, cola, fake_redis):
        first = stock_service.list_stock(ctx)
        assert first["products"][0]["current_stock"] == "20"
        assert fake_redis.get(f"inventory:{ctx.outlet_id}") is not None

        stock_service.adjust_stock(ctx, ItemRef.product(cola.id), -1, "ADJUSTMENT", "count")
        assert fake_redis.get(f"inventory:{ctx.outlet_id}") is None

        second = stock_service.list_stock(ctx)
        assert second["products"][0]["current_stock"] == "19"

    def test_low_stock_flagged(self, db_session, ctx):
        stock_service.create_ingredient(ctx, name="Yeast", opening_stock=1, min_stock=2)
        listing = stock_service.list_stock(ctx)
        assert listing["low_stock"] == [{"ingredient_id": listing["ingredients"][0]["id"], "name": "Yeast"}]

    def test_soft_deleted_items_hidden_from_listing(self, db_session, ctx, cola):
        stock_service.soft_delete_item(ctx, ItemRef.product(cola.id))
        assert stock_service.list_stock(ctx)["products"] == []
        assert reload(cola).is_available is False
