# backoffice/services/unit_of_work.py
from __future__ import annotations

import logging
from contextlib import contextmanager

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from ..errors import IntegrityError
from ..extensions import db
from .numbering import numbered_columns

log = logging.getLogger(__name__)


@contextmanager
def atomic(action: str):
    """
    One database transaction around a multi-record operation.

    Commits when the block finishes, otherwise rolls back everything the
    block flushed (stock decrements included) and re-raises.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        log.warning("%s rolled back", action)
        raise


def is_number_collision(exc: DBIntegrityError) -> bool:
    """
    True when the database refused a duplicate document number, as
    opposed to a CHECK, NOT NULL or foreign key failure.
    """
    message = str(exc.orig).lower()
    if "unique" not in message and "duplicate key" not in message:
        return False
    return any(name in message for name in numbered_columns())


def run_numbered(action: str, fn):
    """
    Run fn() inside atomic(); if the commit trips the unique constraint
    on a document number (two writers picked the same one) retry once.
    Any other constraint failure propagates untouched.
    """
    for attempt in range(2):
        try:
            with atomic(action):
                return fn()
        except DBIntegrityError as exc:
            if not is_number_collision(exc):
                raise
            if attempt == 0:
                continue
            raise IntegrityError(f"{action} failed due to a numbering conflict. Try again.")
    raise IntegrityError(f"{action} failed.")


def guarded_update(model, ident: int, *conditions, **values):
    """
    UPDATE model SET values WHERE id = ident AND conditions, as one
    statement, so the check and the write cannot be split by another
    writer. Returns the refreshed instance, or None when no row matched.
    """
    stmt = (
        sa.update(model)
        .where(model.id == ident, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        return None
    return db.session.get(model, ident, populate_existing=True)
