# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes (sales module)."""

from flask import Blueprint, request, g, current_app

from ..domain import SaleState, jsonable
from ..permissions import Module
from ..services import sales_service
from ..services.cart import Cart, CartError
from ..services.sales_service import SaleError
from ..services.snapshot_service import get_snapshot, reconcile_products
from ..time_utils import parse_iso_date
from ..validation import NotFoundError, StockConflictError
from ..decorators import require_auth, require_module


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_module(Module.SALES)
def process_sale_route():
    """
    Process a sale.

    Body:
    - items: [{"productId": int, "saleQuantity": int}, ...]
    - client: {"name", "lastName", "documentId", "nit"} (optional, anonymous by default)

    400: cart invalid or over cached stock (nothing written)
    409: the store refused a decrement (another terminal sold the stock first)
    """
    data = request.get_json(silent=True) or {}
    snapshot = get_snapshot()

    try:
        cart = Cart.from_lines(
            data.get("items") or [], snapshot,
            refresh=lambda product_ids: reconcile_products(product_ids, snapshot),
        )
        sale = sales_service.process_sale(cart, data.get("client"), g.current_user, snapshot)
    except CartError as e:
        return {"error": str(e)}, 400
    except SaleError as e:
        status = 400
        if e.details.get("state") == SaleState.FAILED:
            status = 409 if isinstance(e.__cause__, (StockConflictError, NotFoundError)) else 500
        return {"error": str(e), "details": e.details}, status
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return {"error": "Operation failed"}, 500

    return {"sale": jsonable(sale)}, 201


@sales_bp.get("")
@require_auth
@require_module(Module.SALES)
def list_sales_route():
    """
    Sales newest first.

    Query params:
    - start, end: YYYY-MM-DD (optional, inclusive)
    """
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return {"error": "start and end must be dates (YYYY-MM-DD)"}, 400

    sales = sales_service.list_sales(get_snapshot(), start, end)
    return {"sales": jsonable(sales), "count": len(sales)}


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_module(Module.SALES)
def get_sale_route(sale_id: int):
    """Sale with its embedded items and client, for receipt reprint."""
    try:
        sale = sales_service.get_sale(sale_id, get_snapshot())
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"sale": jsonable(sale)}
