# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Stock movement routes.

- restock / remove require the inventory module
- adjust is ADMIN only
- movement history requires the history module
Every successful call writes exactly one movement.
"""

from flask import Blueprint, request, g, current_app

from ..domain import MovementType, jsonable
from ..permissions import Module
from ..services import inventory_service
from ..services.snapshot_service import get_snapshot
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_module, require_admin


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _stock_error_response(e: Exception):
    if isinstance(e, ValidationError):
        return {"error": str(e)}, 400
    if isinstance(e, NotFoundError):
        return {"error": str(e)}, 404
    if isinstance(e, ConflictError):
        return {"error": str(e)}, 409
    current_app.logger.exception("Stock operation failed")
    return {"error": "Operation failed"}, 500


@inventory_bp.post("/restock")
@require_auth
@require_module(Module.INVENTORY)
def restock():
    """
    Add received units.

    Body: {"productId": int, "quantity": int > 0}
    """
    data = request.get_json(silent=True) or {}
    if "productId" not in data:
        return {"error": "productId required"}, 400
    try:
        result = inventory_service.add_stock(data["productId"], data.get("quantity"), g.current_user)
    except Exception as e:
        return _stock_error_response(e)
    return result, 201


@inventory_bp.post("/remove")
@require_auth
@require_module(Module.INVENTORY)
def remove():
    """
    Take units out of stock (expired, damaged).

    Body: {"productId": int, "quantity": int > 0, "reason": str}
    """
    data = request.get_json(silent=True) or {}
    if "productId" not in data:
        return {"error": "productId required"}, 400
    try:
        result = inventory_service.remove_stock(
            data["productId"], data.get("quantity"), data.get("reason"), g.current_user,
        )
    except Exception as e:
        return _stock_error_response(e)
    return result, 201


@inventory_bp.post("/adjust")
@require_auth
@require_admin("adjust stock")
def adjust():
    """
    Signed stock correction.

    Body: {"productId": int, "delta": int != 0, "reason": str}
    """
    data = request.get_json(silent=True) or {}
    if "productId" not in data:
        return {"error": "productId required"}, 400
    try:
        result = inventory_service.adjust_stock(
            data["productId"], data.get("delta"), data.get("reason"), g.current_user,
        )
    except Exception as e:
        return _stock_error_response(e)
    return result, 201


@inventory_bp.get("/movements")
@require_auth
@require_module(Module.HISTORY)
def movements():
    """
    Movement history, newest first.

    Query params:
    - q: str (optional) - product or user name substring
    - type: IN | OUT | SALE | ADJUSTMENT (optional)
    - limit: int (optional)
    """
    movement_type = request.args.get("type")
    if movement_type and movement_type not in MovementType.ALL:
        return {"error": f"type must be one of {', '.join(MovementType.ALL)}"}, 400

    limit = request.args.get("limit", type=int)
    result = inventory_service.list_movements(get_snapshot(), request.args.get("q"), movement_type)
    if limit:
        result = result[:limit]
    return {"movements": jsonable(result), "count": len(result)}
