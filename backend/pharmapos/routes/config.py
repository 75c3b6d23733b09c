# Overview: Flask API routes for pharmacy configuration; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..services import config_service
from ..validation import ValidationError
from ..decorators import require_auth, require_admin


config_bp = Blueprint("config", __name__, url_prefix="/api/config")


@config_bp.get("")
@require_auth
def get_config():
    """Pharmacy identity; every operator needs it for receipts."""
    return {"config": config_service.get_config_record()}


@config_bp.put("")
@require_auth
@require_admin("update the pharmacy configuration")
def update_config():
    data = request.get_json(silent=True) or {}
    try:
        config = config_service.update_config(data)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update configuration")
        return {"error": "Operation failed"}, 500
    return {"config": config.to_dict()}
