# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations require the inventory or sales module (the POS searches products)
- Create / update / import require the inventory module
- Delete is ADMIN only
- A quantity change through update needs adjustmentReason and ADMIN (checked in the service)
"""
from flask import Blueprint, request, g, current_app

from ..domain import jsonable
from ..permissions import Module
from ..services import inventory_service
from ..services.permission_service import PermissionDeniedError
from ..services.snapshot_service import get_snapshot
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_module, require_any_module, require_admin

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_any_module(Module.INVENTORY, Module.SALES)
def list_products():
    """
    List products sorted by name.

    Query params:
    - q: str (optional) - matches name or line (case-insensitive) or barcode substring
    """
    products = inventory_service.search_products(request.args.get("q"), get_snapshot())
    return {"products": jsonable(products), "count": len(products)}


@products_bp.get("/barcode/<code>")
@require_auth
@require_any_module(Module.INVENTORY, Module.SALES)
def find_by_barcode(code: str):
    product = inventory_service.find_by_barcode(code, get_snapshot())
    if product is None:
        return {"error": "Product not found"}, 404
    return {"product": jsonable(product)}


@products_bp.post("")
@require_auth
@require_module(Module.INVENTORY)
def create_product_route():
    """Create a product; its initial quantity is recorded as an IN movement."""
    payload = request.get_json(silent=True) or {}
    try:
        created = inventory_service.create_product(payload, g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Operation failed"}, 500

    return {"product": jsonable(created)}, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_module(Module.INVENTORY)
def update_product_route(product_id: int):
    """
    Update descriptive fields.

    Sending a different `quantity` requires `adjustmentReason` and ADMIN; the
    difference is recorded as an ADJUSTMENT movement.
    """
    payload = request.get_json(silent=True) or {}
    try:
        updated = inventory_service.update_product(product_id, payload, g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except PermissionDeniedError as e:
        return {"error": "Permission denied", "message": str(e)}, 403
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Operation failed"}, 500

    return {"product": jsonable(updated)}


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin("delete products")
def delete_product_route(product_id: int):
    """
    Delete a product permanently.

    Sales and movements referencing it keep their denormalized copies.
    """
    try:
        inventory_service.delete_product(product_id, g.current_user)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Operation failed"}, 500

    return {"message": "Product deleted"}


@products_bp.post("/import")
@require_auth
@require_module(Module.INVENTORY)
def import_products_route():
    """
    Bulk import parsed rows: {"rows": [{...product fields...}, ...]}.

    Any invalid row rejects the batch; imported stock has no movements.
    """
    payload = request.get_json(silent=True) or {}
    try:
        created = inventory_service.import_products(payload.get("rows"), g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to import products")
        return {"error": "Operation failed"}, 500

    return {"products": jsonable(created), "count": len(created)}, 201
