# Overview: Service-layer transaction helpers; all-or-nothing mutations and retry for idempotent reads.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError

from ..extensions import db


def run_in_transaction(func):
    """
    Run a multi-step mutation as one DB transaction.

    func() performs its store calls (flush only); this commits on success and
    rolls back on any exception, so no partial state survives a failure.
    Mutations are never retried automatically: the caller surfaces the error.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute an idempotent DB read with retry on transient failures.

    Retries on OperationalError (locked database, dropped connection).
    Only for reads such as the snapshot reconcile pass.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
