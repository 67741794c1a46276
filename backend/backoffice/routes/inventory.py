# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

# backend/backoffice/routes/inventory.py
"""
Stock Ledger API Routes

DESIGN:
- Every quantity change goes through stock_service (adjust, wastage, purchase)
- Quantities are serialized as decimal strings
- Listings are served from the read-through cache
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import stock_service
from ..decorators import require_context, require_manager, error_response
from backoffice.errors import LedgerError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _item_from_path(kind: str, item_id: int):
    if kind == "products":
        return stock_service.ItemRef.product(item_id)
    if kind == "ingredients":
        return stock_service.ItemRef.ingredient(item_id)
    raise ValueError("unknown item kind")


@inventory_bp.get("/stock")
@require_context
def list_stock_route():
    try:
        return jsonify(stock_service.list_stock(g.ctx)), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/menu")
@require_context
def list_menu_route():
    try:
        return jsonify({"items": stock_service.list_menu(g.ctx)}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list menu")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/products")
@require_context
@require_manager
def create_product_route():
    """
    Request body:
    {
        "name": "Bread",
        "price_cents": 4000,
        "sku": "BRD-1",          (optional)
        "opening_stock": "12",   (optional, written as an ADJUSTMENT move)
        "min_stock": "2"         (optional)
    }
    """
    try:
        data = request.get_json() or {}
        product = stock_service.create_product(
            g.ctx,
            name=data.get("name") or "",
            price_cents=data.get("price_cents", 0),
            sku=data.get("sku"),
            category=data.get("category"),
            unit=data.get("unit") or "pcs",
            min_stock=data.get("min_stock", 0),
            opening_stock=data.get("opening_stock"),
        )
        return jsonify({"product": product.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/ingredients")
@require_context
@require_manager
def create_ingredient_route():
    try:
        data = request.get_json() or {}
        ingredient = stock_service.create_ingredient(
            g.ctx,
            name=data.get("name") or "",
            unit=data.get("unit") or "g",
            min_stock=data.get("min_stock", 0),
            opening_stock=data.get("opening_stock"),
            cost_per_unit_cents=data.get("cost_per_unit_cents"),
        )
        return jsonify({"ingredient": ingredient.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create ingredient")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/products/<int:product_id>/recipe")
@require_context
@require_manager
def set_recipe_route(product_id: int):
    """Body: {"lines": [{"ingredient_id": 1, "quantity": "0.5"}, ...]} (empty clears)"""
    try:
        data = request.get_json() or {}
        product = stock_service.set_recipe(g.ctx, product_id, data.get("lines") or [])
        body = product.to_dict()
        body["recipe"] = [ri.to_dict() for ri in product.recipe_items]
        return jsonify({"product": body}), 200
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to set recipe")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<kind>/<int:item_id>/adjust")
@require_context
def adjust_stock_route(kind: str, item_id: int):
    """
    Body: {"delta": "-2.5", "type": "ADJUSTMENT", "note": "count correction"}

    Returns 409 insufficient_stock / invalid_state, 503 lock_timeout (retryable).
    """
    try:
        data = request.get_json() or {}
        move = stock_service.adjust_stock(
            g.ctx,
            _item_from_path(kind, item_id),
            data.get("delta"),
            (data.get("type") or "ADJUSTMENT").upper(),
            data.get("note"),
        )
        return jsonify({"move": move.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<kind>/<int:item_id>/wastage")
@require_context
def record_wastage_route(kind: str, item_id: int):
    """Body: {"quantity": "1.5", "reason": "expired"}"""
    try:
        data = request.get_json() or {}
        move = stock_service.record_wastage(
            g.ctx,
            _item_from_path(kind, item_id),
            data.get("quantity"),
            data.get("reason") or "",
        )
        return jsonify({"move": move.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record wastage")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/purchases")
@require_context
def receive_purchase_route():
    """
    Body:
    {
        "reference": "INV-2231",
        "lines": [{"ingredient_id": 3, "quantity": "25"}, {"product_id": 7, "quantity": "12"}]
    }
    """
    try:
        data = request.get_json() or {}
        moves = stock_service.receive_purchase(g.ctx, data.get("lines") or [], data.get("reference"))
        return jsonify({"moves": [m.to_dict() for m in moves]}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<kind>/<int:item_id>")
@require_context
@require_manager
def delete_item_route(kind: str, item_id: int):
    try:
        item = stock_service.soft_delete_item(g.ctx, _item_from_path(kind, item_id))
        return jsonify({"item": item.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<kind>/<int:item_id>/moves")
@require_context
def list_moves_route(kind: str, item_id: int):
    limit = request.args.get("limit", default=200, type=int)
    try:
        moves = stock_service.list_stock_moves(g.ctx, _item_from_path(kind, item_id), limit=min(limit, 1000))
        return jsonify({"moves": [m.to_dict() for m in moves]}), 200
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list stock moves")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/reconcile")
@require_context
@require_manager
def reconcile_route():
    try:
        reports = stock_service.reconcile_outlet(g.ctx)
        drifted = [r for r in reports if not r["ok"]]
        return jsonify({"checked": len(reports), "drifted": drifted}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500
