# Overview: Flask API routes for system operations; health, module menu and snapshot reconcile.

"""
System endpoints.

- /api/system/health checks the record store and reports the snapshot state
- /api/system/modules returns the navigation menu for the caller
- /api/system/reconcile forces a full refetch of the snapshot (ADMIN)
"""

import time
from flask import Blueprint, current_app, g

from ..extensions import db
from ..models import User, Product
from ..services import permission_service
from ..services.snapshot_service import SNAPSHOT_EXTENSION_KEY, SnapshotUnavailableError, reconcile
from ..time_utils import utcnow, to_utc_z
from ..decorators import require_auth, require_admin

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check record store connectivity and basic queries.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "products": product_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_snapshot_health() -> dict:
    snapshot = current_app.extensions[SNAPSHOT_EXTENSION_KEY]
    if not snapshot.loaded:
        return {"status": "healthy", "details": {"loaded": False}}
    return {
        "status": "degraded" if snapshot.source == "fallback" else "healthy",
        "details": {
            "loaded": True,
            "source": snapshot.source,
            "loaded_at": to_utc_z(snapshot.loaded_at),
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (serving from the fallback snapshot)
    - 503: record store unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    snapshot_health = check_snapshot_health()

    all_checks = [database_health, snapshot_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "snapshot": snapshot_health,
        },
    }, http_status


@system_bp.get("/modules")
@require_auth
def modules():
    """Modules the caller may open, in menu order."""
    return {"modules": permission_service.accessible_modules(g.current_user)}


@system_bp.post("/reconcile")
@require_auth
@require_admin("reconcile the snapshot")
def reconcile_route():
    try:
        snapshot = reconcile()
    except SnapshotUnavailableError as e:
        return {"error": str(e)}, 503
    return {
        "source": snapshot.source,
        "loadedAt": to_utc_z(snapshot.loaded_at),
        "counts": {
            "users": len(snapshot.users),
            "products": len(snapshot.products),
            "sales": len(snapshot.sales),
            "movements": len(snapshot.movements),
        },
    }
