# Overview: In-memory domain snapshot; mutation results are applied to it, with an explicit reconcile pass.

"""
PharmaPOS Snapshot Invariants (authoritative)

- Each worker process holds one StateSnapshot of {users, products, sales,
  movements, config} as domain dicts (camelCase keys, native Python values).
- Reads (listings, search, cart building, reporting) come from the snapshot.
- Every successful mutation applies its own committed result here; nothing
  re-fetches the whole store after a write.
- reconcile() is the explicit full refetch: on first use, on demand, and
  before a read once the snapshot is older than SNAPSHOT_MAX_AGE_SECONDS.
- Single products are refreshed when the store refuses a stock change and
  before a cart line or sale is refused for stock the snapshot lacks.
- Quantities held here are a cache. Stock writes never use them as a base;
  the store's conditional UPDATE is authoritative.
- The fallback file holds the same five collections and never a credential or
  a session subject. A snapshot loaded from it starts with nobody logged in.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import timedelta
from pathlib import Path

from flask import current_app
from sqlalchemy.exc import OperationalError

from ..domain import jsonable
from ..fieldmap import revive
from ..time_utils import utcnow
from . import record_store
from .concurrency import run_with_retry


SNAPSHOT_EXTENSION_KEY = "pharmapos.snapshot"
LIST_COLLECTIONS = ("users", "products", "sales", "movements")
FALLBACK_FORMAT_VERSION = 1


class SnapshotUnavailableError(Exception):
    """Raised when neither the store nor a fallback file can provide state."""
    pass


class StateSnapshot:
    """Process-local copy of the domain state."""

    def __init__(self):
        self._lock = threading.RLock()
        self.users: list[dict] = []
        self.products: list[dict] = []
        self.sales: list[dict] = []
        self.movements: list[dict] = []
        self.config: dict | None = None
        self.loaded_at = None
        self.source: str | None = None  # "store" | "fallback"

    @property
    def loaded(self) -> bool:
        return self.loaded_at is not None

    def is_stale(self, max_age_seconds) -> bool:
        """True when never loaded, or loaded more than max_age_seconds ago (falsy max age: never)."""
        if not self.loaded:
            return True
        if not max_age_seconds:
            return False
        return utcnow() - self.loaded_at > timedelta(seconds=max_age_seconds)

    def _list(self, collection: str) -> list[dict]:
        if collection not in LIST_COLLECTIONS:
            raise ValueError(f"unknown collection: {collection}")
        return getattr(self, collection)

    def get(self, collection: str, record_id) -> dict | None:
        with self._lock:
            for record in self._list(collection):
                if record.get("id") == record_id:
                    return record
        return None

    def upsert(self, collection: str, record: dict) -> None:
        with self._lock:
            records = self._list(collection)
            for i, existing in enumerate(records):
                if existing.get("id") == record.get("id"):
                    records[i] = record
                    return
            records.append(record)

    def append(self, collection: str, record: dict) -> None:
        with self._lock:
            self._list(collection).append(record)

    def remove(self, collection: str, record_id) -> bool:
        with self._lock:
            records = self._list(collection)
            for i, existing in enumerate(records):
                if existing.get("id") == record_id:
                    del records[i]
                    return True
        return False

    def set_product_quantity(self, product_id: int, quantity: int) -> None:
        with self._lock:
            product = self.get("products", product_id)
            if product is not None:
                product["quantity"] = quantity

    def set_config(self, record: dict) -> None:
        with self._lock:
            self.config = record

    def replace(self, data: dict, *, source: str) -> None:
        with self._lock:
            for collection in LIST_COLLECTIONS:
                setattr(self, collection, list(data.get(collection) or []))
            self.config = data.get("config")
            self.loaded_at = utcnow()
            self.source = source

    def to_serializable(self) -> dict:
        with self._lock:
            payload = {c: jsonable(list(self._list(c))) for c in LIST_COLLECTIONS}
            payload["config"] = jsonable(self.config)
        # Snapshot records never carry credentials; drop defensively if a caller added one
        for user in payload["users"]:
            user.pop("password", None)
            user.pop("passwordHash", None)
        payload["version"] = FALLBACK_FORMAT_VERSION
        return payload

    @classmethod
    def from_serializable(cls, payload: dict) -> "StateSnapshot":
        snapshot = cls()
        data = {
            c: [revive(c, record) for record in payload.get(c) or []]
            for c in LIST_COLLECTIONS
        }
        data["config"] = payload.get("config")
        snapshot.replace(data, source="fallback")
        return snapshot


def current_snapshot() -> StateSnapshot:
    """The current app's snapshot as is (no reconcile); mutations apply their results here."""
    return current_app.extensions[SNAPSHOT_EXTENSION_KEY]


def get_snapshot() -> StateSnapshot:
    """
    The current app's snapshot for serving reads.

    Reconciled on first use and again once it is older than
    SNAPSHOT_MAX_AGE_SECONDS, so sales and stock changes made by other
    workers show up in listings, history and reports.
    """
    snapshot = current_app.extensions[SNAPSHOT_EXTENSION_KEY]
    if snapshot.is_stale(current_app.config.get("SNAPSHOT_MAX_AGE_SECONDS")):
        reconcile(snapshot)
    return snapshot


def _fetch_all() -> dict:
    from .config_service import get_config_record

    return {
        "users": [row.to_record() for row in record_store.select_all("users")],
        "products": [row.to_record() for row in record_store.select_all("products")],
        "sales": [row.to_record() for row in record_store.select_all("sales")],
        "movements": [row.to_record() for row in record_store.select_all("movements")],
        "config": get_config_record(),
    }


def reconcile(snapshot: StateSnapshot | None = None) -> StateSnapshot:
    """
    Full refetch of the store into the snapshot.

    If the store is unreachable and FALLBACK_SNAPSHOT_PATH points at a file,
    the snapshot is loaded from it instead (read-only use until the store is back).
    """
    if snapshot is None:
        snapshot = current_app.extensions[SNAPSHOT_EXTENSION_KEY]

    fallback_path = current_app.config.get("FALLBACK_SNAPSHOT_PATH")

    try:
        data = run_with_retry(_fetch_all)
    except OperationalError:
        current_app.logger.exception("Record store unreachable during reconcile")
        if fallback_path and os.path.exists(fallback_path):
            loaded = load_fallback(fallback_path)
            snapshot.replace(
                {c: getattr(loaded, c) for c in LIST_COLLECTIONS} | {"config": loaded.config},
                source="fallback",
            )
            current_app.logger.warning("Snapshot loaded from fallback file %s", fallback_path)
            return snapshot
        raise SnapshotUnavailableError("Record store unreachable and no fallback snapshot available")

    snapshot.replace(data, source="store")
    current_app.logger.info(
        "Snapshot reconciled: %d users, %d products, %d sales, %d movements",
        len(snapshot.users), len(snapshot.products), len(snapshot.sales), len(snapshot.movements),
    )

    if fallback_path:
        save_fallback(fallback_path, snapshot)

    return snapshot


def reconcile_products(product_ids, snapshot: StateSnapshot | None = None) -> None:
    """Refresh selected products from the store (after a refused stock change)."""
    if snapshot is None:
        snapshot = current_app.extensions[SNAPSHOT_EXTENSION_KEY]
    for product_id in product_ids:
        row = record_store.get_by_id("products", product_id)
        if row is None:
            snapshot.remove("products", product_id)
        else:
            snapshot.upsert("products", row.to_record())


def save_fallback(path: str, snapshot: StateSnapshot) -> None:
    """Write the snapshot atomically (temp file + rename)."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(target.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(snapshot.to_serializable(), fh, ensure_ascii=False, indent=2)
    os.replace(tmp, target)


def load_fallback(path: str) -> StateSnapshot:
    with open(path, "r", encoding="utf-8") as fh:
        payload = json.load(fh)
    return StateSnapshot.from_serializable(payload)
