# Overview: Flask API routes for wallet balances and PIN-authorized transfers.

# backend/backoffice/routes/wallets.py
"""
Wallet API Routes

SECURITY:
- Every transfer carries the manager safe PIN; it is checked against the
  bcrypt hash and never logged
- Setting the PIN requires a manager-level role
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import wallet_service
from ..decorators import require_context, require_manager, error_response
from backoffice.errors import LedgerError


wallets_bp = Blueprint("wallets", __name__, url_prefix="/api/wallets")


@wallets_bp.get("/")
@wallets_bp.get("")
@require_context
def list_wallets_route():
    try:
        return jsonify({"wallets": wallet_service.get_wallet_balances(g.ctx)}), 200
    except Exception:
        current_app.logger.exception("Failed to list wallets")
        return jsonify({"error": "Internal server error"}), 500


@wallets_bp.put("/pin")
@require_context
@require_manager
def set_pin_route():
    """Body: {"pin": "1234"}"""
    try:
        data = request.get_json() or {}
        wallet = wallet_service.set_manager_pin(g.ctx, data.get("pin"))
        return jsonify({"wallet": wallet.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to set manager PIN")
        return jsonify({"error": "Internal server error"}), 500


@wallets_bp.post("/transfers")
@require_context
def transfer_route():
    """
    Request body:
    {
        "source": "REGISTER",
        "destination": "MANAGER_SAFE",
        "amount_cents": 20000,
        "pin": "1234",
        "reason": "mid-day cash drop"
    }
    """
    try:
        data = request.get_json() or {}
        record = wallet_service.transfer(
            g.ctx,
            source_type=(data.get("source") or "").upper(),
            destination_type=(data.get("destination") or "").upper(),
            amount_cents=data.get("amount_cents"),
            authorizer_pin=str(data.get("pin") or ""),
            reason=data.get("reason"),
        )
        return jsonify({"transfer": record.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to transfer between wallets")
        return jsonify({"error": "Internal server error"}), 500


@wallets_bp.get("/transfers")
@require_context
def list_transfers_route():
    limit = request.args.get("limit", default=100, type=int)
    try:
        transfers = wallet_service.list_transfers(g.ctx, limit=min(limit, 1000))
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500
