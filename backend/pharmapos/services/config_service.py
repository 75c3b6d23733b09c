# Overview: Service-layer operations for the pharmacy identity singleton.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import PharmacyConfig
from ..validation import ModelValidationPolicy, validate_payload
from .snapshot_service import current_snapshot


DEFAULT_CONFIG = {
    "name": "PharmaPOS",
    "address": "",
    "phone": "",
    "email": "",
    "nit": "",
    "socials": "",
}

CONFIG_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone", "email", "nit", "socials"},
    required_on_create={"name"},
)


CONFIG_ID = 1


def get_config() -> PharmacyConfig | None:
    """The singleton row, or None before init-db or the first update."""
    return db.session.get(PharmacyConfig, CONFIG_ID)


def get_config_record() -> dict:
    """Read-only view of the pharmacy identity; defaults when no row exists yet."""
    config = get_config()
    if config is None:
        return {"id": CONFIG_ID, **DEFAULT_CONFIG}
    return config.to_record()


def ensure_config() -> PharmacyConfig:
    """
    Return the singleton row, inserting it with defaults if missing.

    The row always has id CONFIG_ID, so a second worker racing to create it
    hits the primary key and re-reads the winner's row.
    """
    config = get_config()
    if config is not None:
        return config

    db.session.add(PharmacyConfig(id=CONFIG_ID, **DEFAULT_CONFIG))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info("Pharmacy configuration created concurrently; using existing row")
    return get_config()


def update_config(data: dict, snapshot=None) -> PharmacyConfig:
    """
    Replace the pharmacy identity fields that are present in data.

    Callers must have checked the ADMIN guard.
    """
    patch = validate_payload(
        model=PharmacyConfig,
        collection="config",
        payload=data,
        policy=CONFIG_POLICY,
        partial=True,
    )
    config = ensure_config()
    for field, value in patch.items():
        setattr(config, field, value)
    db.session.commit()

    (snapshot or current_snapshot()).set_config(config.to_record())
    current_app.logger.info("Pharmacy configuration updated: %s", ", ".join(sorted(patch)) or "no changes")
    return config
