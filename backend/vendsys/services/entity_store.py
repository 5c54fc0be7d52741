# Overview: Generic record operations over the SQLAlchemy session; the only write path used by the engines.

"""
Entity Store

Thin layer over db.session that gives every service the same primitives:
create, find-by-key, find-by-filter, update-by-id, update-many, upsert.

- Unique constraint violations surface as ConflictError.
- Transient database failures are retried, then surface as
  StoreUnavailableError.
- update_by_id / update_many compile to a single UPDATE ... WHERE, so extra
  criteria act as an atomic compare-and-set at the database.
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from .concurrency import run_with_retry


def _conflict(model, exc: IntegrityError, key: dict | None = None) -> ConflictError:
    db.session.rollback()
    return ConflictError(
        f"{model.__name__} already exists",
        details={"key": key} if key else None,
    )


def create(model, *, conflict_key: dict | None = None, **fields):
    """Insert one row and commit. `conflict_key` is echoed in the ConflictError details."""
    def _op():
        row = model(**fields)
        db.session.add(row)
        db.session.commit()
        return row

    try:
        return run_with_retry(_op)
    except IntegrityError as exc:
        raise _conflict(model, exc, conflict_key) from exc


def find_by_key(model, **key):
    def _op():
        return db.session.query(model).filter_by(**key).first()
    return run_with_retry(_op)


def get_by_key(model, **key):
    """Like find_by_key but raises NotFoundError on a miss."""
    row = find_by_key(model, **key)
    if row is None:
        label = ", ".join(f"{k}={v}" for k, v in key.items())
        raise NotFoundError(f"{model.__name__} not found ({label})")
    return row


def find_all(model, *criteria, order_by=None, **filters) -> list:
    def _op():
        q = db.session.query(model)
        if criteria:
            q = q.filter(*criteria)
        if filters:
            q = q.filter_by(**filters)
        if order_by is not None:
            q = q.order_by(order_by)
        return q.all()
    return run_with_retry(_op)


def update_many(model, criteria: list, values: dict) -> int:
    """
    Apply `values` to every row matching `criteria` in one statement.

    Returns the number of rows the database reports as matched.
    """
    def _op():
        stmt = (
            update(model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.commit()
        return result.rowcount

    try:
        return run_with_retry(_op)
    except IntegrityError as exc:
        raise _conflict(model, exc) from exc


def update_by_id(model, row_id: int, values: dict, *criteria) -> bool:
    """
    Update a single row by primary key, only while `criteria` still hold.

    Returns False when the row no longer matches (or no longer exists).
    """
    return update_many(model, [model.id == row_id, *criteria], values) == 1


def upsert(model, key: dict, values: dict):
    """
    Update the row identified by `key`, or insert it when absent.

    A concurrent insert of the same key loses the unique-constraint race;
    the loser retries once as an update.
    """
    def _op():
        row = db.session.query(model).filter_by(**key).first()
        if row is None:
            row = model(**key, **values)
            db.session.add(row)
        else:
            for field, value in values.items():
                setattr(row, field, value)
        db.session.commit()
        return row

    try:
        return run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        try:
            return run_with_retry(_op)
        except IntegrityError as exc:
            raise _conflict(model, exc, key) from exc


def delete(row) -> None:
    def _op():
        db.session.delete(row)
        db.session.commit()
    run_with_retry(_op)
