# Overview: Service-layer operations for import checkpoints and run leases.

"""
Sync State Tracker

CHECKPOINTS are monotonic: the row is locked (SELECT ... FOR UPDATE where
the backend supports it) and a cursor at or behind the stored one is
ignored. Two runs can therefore never move the resume point backward.

LEASES serialize orchestrator runs per import kind. Acquisition is a single
conditional UPDATE (free, or held past the timeout), so two processes racing
for the lease cannot both win.
"""

from __future__ import annotations

from datetime import date, timedelta

import sqlalchemy as sa

from ..entities import ImportKind
from ..extensions import db
from ..models import SyncState
from ..time_utils import utcnow
from .concurrency import get_or_create, lock_for_update


def get_state(kind: ImportKind) -> SyncState | None:
    return db.session.query(SyncState).filter_by(entity_type=kind).first()


def get_or_create_state(kind: ImportKind) -> SyncState:
    state, created = get_or_create(SyncState, entity_type=kind)
    if created:
        db.session.commit()
    return state


def advance_checkpoint(kind: ImportKind, last_date: date | None, last_id: int | None) -> bool:
    """
    Move the checkpoint forward to (last_date, last_id).

    Returns True if the stored cursor moved. last_sync_at is refreshed
    either way.
    """
    get_or_create_state(kind)
    state = lock_for_update(db.session.query(SyncState).filter_by(entity_type=kind)).first()
    now = utcnow()

    moved = False
    if last_date is not None:
        proposed = (last_date, last_id or 0)
        current = state.cursor
        if current is None or proposed > current:
            state.last_imported_date = last_date
            state.last_external_id = last_id
            moved = True

    state.last_sync_at = now
    db.session.commit()
    return moved


def acquire_lease(kind: ImportKind, owner: str, timeout_seconds: int) -> bool:
    get_or_create_state(kind)
    now = utcnow()
    stale_before = now - timedelta(seconds=timeout_seconds)

    result = db.session.execute(
        sa.update(SyncState)
        .where(
            SyncState.entity_type == kind,
            sa.or_(
                SyncState.locked_by.is_(None),
                SyncState.locked_at < stale_before,
                SyncState.locked_by == owner,
            ),
        )
        .values(locked_by=owner, locked_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def release_lease(kind: ImportKind, owner: str) -> None:
    db.session.execute(
        sa.update(SyncState)
        .where(SyncState.entity_type == kind, SyncState.locked_by == owner)
        .values(locked_by=None, locked_at=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def list_states() -> list[SyncState]:
    return db.session.query(SyncState).order_by(SyncState.entity_type.asc()).all()
