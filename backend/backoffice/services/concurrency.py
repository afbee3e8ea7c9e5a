# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def get_or_create(model, *, defaults: dict | None = None, **lookup):
    """
    Find a row by its natural key, or insert it.

    Returns (instance, created). The insert runs in a savepoint; if another
    writer inserted the same natural key first, the unique constraint fires,
    the savepoint is rolled back and the winner's row is read back. The
    surrounding transaction is left intact.
    """
    instance = db.session.query(model).filter_by(**lookup).first()
    if instance is not None:
        return instance, False

    params = dict(lookup)
    params.update(defaults or {})

    nested = db.session.begin_nested()
    try:
        instance = model(**params)
        db.session.add(instance)
        db.session.flush()
        nested.commit()
        return instance, True
    except IntegrityError:
        nested.rollback()
        instance = db.session.query(model).filter_by(**lookup).first()
        if instance is None:
            raise ConcurrencyConflict(
                f"{model.__name__} {lookup} conflicted on insert but could not be read back"
            )
        return instance, False
