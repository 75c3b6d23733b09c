# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..domain import jsonable
from ..permissions import Module
from ..services import reporting_service
from ..services.snapshot_service import get_snapshot
from ..time_utils import parse_iso_date, today
from ..decorators import require_auth, require_module


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_range():
    return parse_iso_date(request.args.get("start")), parse_iso_date(request.args.get("end"))


@reports_bp.get("/summary")
@require_auth
@require_module(Module.REPORTS)
def summary():
    """
    Income, estimated profit, valuation and alerts.

    Query params:
    - start, end: YYYY-MM-DD (optional, inclusive)
    """
    try:
        start, end = _date_range()
    except ValueError:
        return {"error": "start and end must be dates (YYYY-MM-DD)"}, 400

    snapshot = get_snapshot()
    report = reporting_service.summary(
        snapshot.products,
        snapshot.sales,
        start=start,
        end=end,
        today=today(),
        expiry_days=current_app.config["EXPIRY_ALERT_DAYS"],
    )
    return jsonable(report)


@reports_bp.get("/alerts")
@require_auth
@require_module(Module.REPORTS)
def alerts():
    """Low-stock and expiring-soon products."""
    snapshot = get_snapshot()
    return jsonable({
        "lowStock": reporting_service.low_stock(snapshot.products),
        "expiringSoon": reporting_service.expiring_soon(
            snapshot.products, today(), current_app.config["EXPIRY_ALERT_DAYS"],
        ),
    })


@reports_bp.get("/sales-by-day")
@require_auth
@require_module(Module.REPORTS)
def sales_by_day():
    try:
        start, end = _date_range()
    except ValueError:
        return {"error": "start and end must be dates (YYYY-MM-DD)"}, 400

    sales = reporting_service.filter_sales(get_snapshot().sales, start, end)
    return {"days": jsonable(reporting_service.sales_by_day(sales))}
