# Overview: Flask API routes for register open/close and drawer transactions.

# backend/backoffice/routes/registers.py
"""
Register API Routes

DESIGN:
- One register per outlet per business date: open -> close (frozen once closed)
- Close may require a variance note plus a manager PIN approval
- Opening variance is reported as a warning, never an error
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import register_service, rollup_service
from ..services.pin_service import ManagerApproval
from ..decorators import require_context, error_response
from backoffice.errors import LedgerError


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


def _approval_from(data: dict):
    raw = data.get("approval")
    if not raw:
        return None
    if not isinstance(raw, dict) or raw.get("user_id") is None or not raw.get("pin"):
        raise ValueError("approval requires user_id and pin")
    return ManagerApproval(user_id=int(raw["user_id"]), pin=str(raw["pin"]))


@registers_bp.post("/open")
@require_context
def open_register_route():
    """
    Request body:
    {
        "business_date": "2026-03-01",
        "actual_opening_cents": 50000,
        "note": "float from safe",      (optional)
        "denominations": {"500": 100}   (optional)
    }
    """
    try:
        data = request.get_json() or {}
        result = register_service.open_register(
            g.ctx,
            data.get("business_date"),
            data.get("actual_opening_cents"),
            data.get("note"),
            denominations=data.get("denominations"),
        )
        return jsonify({"register": result.register.to_dict(), "warning": result.warning}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to open register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/current")
@require_context
def current_register_route():
    register = register_service.get_open_register(g.ctx)
    if register is None:
        return jsonify({"register": None}), 200
    return jsonify({"register": register.to_dict()}), 200


@registers_bp.get("/by-date/<business_date>")
@require_context
def get_register_route(business_date: str):
    try:
        return jsonify({"register": register_service.get_register_summary(g.ctx, business_date)}), 200
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to get register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/history")
@require_context
def register_history_route():
    try:
        registers = register_service.get_register_history(g.ctx, request.args.get("start"), request.args.get("end"))
        return jsonify({"registers": [r.to_dict() for r in registers]}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list register history")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/transactions")
@require_context
def record_transaction_route(register_id: int):
    """
    Request body:
    {
        "type": "EXPENSE",          SALE | EXPENSE | TRANSFER | WITHDRAWAL | PAYOUT | MANUAL
        "amount_cents": 1500,
        "payment_mode": "CASH",
        "is_inflow": false,         (required for MANUAL / TRANSFER)
        "category": "supplies",
        "description": "milk",
        "reference": "receipt 88"
    }
    """
    try:
        data = request.get_json() or {}
        txn = register_service.record_transaction(
            g.ctx,
            register_id,
            type=(data.get("type") or "").upper(),
            amount_cents=data.get("amount_cents"),
            payment_mode=(data.get("payment_mode") or "CASH").upper(),
            is_inflow=data.get("is_inflow"),
            category=data.get("category"),
            description=data.get("description"),
            reference=data.get("reference"),
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record register transaction")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>/transactions")
@require_context
def list_transactions_route(register_id: int):
    try:
        txns = register_service.list_transactions(
            g.ctx,
            register_id,
            type=request.args.get("type"),
            payment_mode=request.args.get("payment_mode"),
        )
        return jsonify({"transactions": [t.to_dict() for t in txns]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list register transactions")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/close")
@require_context
def close_register_route(register_id: int):
    """
    Request body:
    {
        "actual_cash_cents": 65000,
        "sales_breakdown": {"cash": 20000, "upi": 0, "card": 0, "platform": 0},   (optional)
        "variance_note": "float miscounted",                                      (optional)
        "approval": {"user_id": 2, "pin": "1234"}                                 (optional)
    }

    422 variance_explanation_required: note and approval needed for this variance.
    """
    try:
        data = request.get_json() or {}
        register = register_service.close_register(
            g.ctx,
            register_id,
            actual_cash_cents=data.get("actual_cash_cents"),
            sales_breakdown=data.get("sales_breakdown"),
            variance_note=data.get("variance_note"),
            approval=_approval_from(data),
            denominations=data.get("denominations"),
        )
        return jsonify({"register": register.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to close register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/summary/<month>")
@require_context
def monthly_summary_route(month: str):
    try:
        summary = rollup_service.get_monthly_summary(g.ctx, month)
        return jsonify({"summary": summary}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to get monthly summary")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/daily/<business_date>")
@require_context
def daily_closure_route(business_date: str):
    try:
        closure = rollup_service.get_daily_closure(g.ctx, business_date)
        return jsonify({"closure": closure.to_dict() if closure else None}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to get daily closure")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/stats")
@require_context
def outlet_stats_route():
    try:
        return jsonify(rollup_service.get_outlet_stats(g.ctx)), 200
    except Exception:
        current_app.logger.exception("Failed to get outlet stats")
        return jsonify({"error": "Internal server error"}), 500
