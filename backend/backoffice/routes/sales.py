# Overview: Flask API routes for sale ingestion; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
"""
Sale Ingestion API Routes

WHY: POS terminals push completed orders here, retrying until they get a
2xx. process_sale is idempotent on external_id, so the route retries lock
timeouts itself before giving up with 503.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sale_service
from ..services.concurrency import run_with_retry
from ..decorators import require_context, error_response
from backoffice.errors import LedgerError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@sales_bp.post("")
@require_context
def process_sale_route():
    """
    Ingest one order.

    Request body:
    {
        "external_id": "pos-7f3a-0012",
        "status": "COMPLETED",
        "payment_method": "CASH" | "UPI" | "CARD" | "ONLINE",
        "total_cents": 20000,
        "discount_cents": 0,
        "created_at": "2026-03-01T09:15:00Z",
        "customer": {"phone": "+15550100", "name": "Ada"},   (optional)
        "redeems_reward": false,
        "items": [
            {"product_id": 4, "name": "Bread", "quantity": 2, "unit_price_cents": 10000}
        ]
    }
    """
    try:
        data = request.get_json() or {}
        payload = sale_service.SalePayload.from_dict(data)
        order = run_with_retry(lambda: sale_service.process_sale(g.ctx, payload))
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@sales_bp.get("")
@require_context
def list_orders_route():
    business_date = request.args.get("date")
    status = request.args.get("status")
    limit = request.args.get("limit", default=200, type=int)
    try:
        orders = sale_service.list_orders(g.ctx, business_date, status=status, limit=min(limit, 1000))
        return jsonify({"orders": [o.to_dict(include_items=False) for o in orders]}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<external_id>")
@require_context
def get_order_route(external_id: str):
    try:
        order = sale_service.get_order(g.ctx, external_id)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500
