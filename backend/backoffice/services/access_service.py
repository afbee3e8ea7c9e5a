# Overview: Service-layer operations for access grants; keeps the access cache in step with every grant change.

"""
Access Grant Management

WHY: Grants are the only input to access resolution besides the record
graph. Any grant insert/update/delete, whether it goes through this module
or any other ORM code path, must drop the affected cache entries.

CACHE WIRING:
- Mapper events on AccessGrant invalidate immediately at flush, so reads
  later in the same transaction see the change.
- The affected users are also remembered on the session and invalidated
  again after commit (or rollback). A reader on another connection that
  recomputed between our flush and our commit would otherwise have cached
  pre-commit data.
"""

from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, object_session

from ..entities import EntityKind
from ..extensions import access_cache, db
from ..models import AccessGrant, User
from ..time_utils import utcnow
from . import permission_service
from .access_registry import model_for


_PENDING_KEY = "access_cache_pending"


class GrantError(ValueError):
    """Raised when a grant request references a missing user or record."""


def _remember(session, user_id: int | None, kind: EntityKind | None) -> None:
    if session is None or user_id is None:
        return
    session.info.setdefault(_PENDING_KEY, set()).add((user_id, kind))


@event.listens_for(AccessGrant, "after_insert")
@event.listens_for(AccessGrant, "after_delete")
def _grant_written(mapper, connection, target):
    access_cache.invalidate(target.user_id, target.entity_type)
    _remember(object_session(target), target.user_id, target.entity_type)


@event.listens_for(AccessGrant, "after_update")
def _grant_updated(mapper, connection, target):
    session = object_session(target)
    state = inspect(target)
    # user_id or entity_type may have been reassigned; drop both sides fully
    previous_users = set(state.attrs.user_id.history.deleted or ())
    for user_id in previous_users | {target.user_id}:
        access_cache.invalidate(user_id)
        _remember(session, user_id, None)


@event.listens_for(Session, "after_commit")
@event.listens_for(Session, "after_rollback")
def _flush_pending_invalidations(session):
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for user_id, kind in pending:
        access_cache.invalidate(user_id, kind)


def get_live_grant(user_id: int, kind: EntityKind, entity_id: int) -> AccessGrant | None:
    return (
        db.session.query(AccessGrant)
        .filter(
            AccessGrant.user_id == user_id,
            AccessGrant.entity_type == kind,
            AccessGrant.entity_id == entity_id,
            AccessGrant.deleted_at.is_(None),
        )
        .first()
    )


def list_grants(*, user_id: int | None = None, include_deleted: bool = False) -> list[AccessGrant]:
    query = db.session.query(AccessGrant)
    if user_id is not None:
        query = query.filter(AccessGrant.user_id == user_id)
    if not include_deleted:
        query = query.filter(AccessGrant.deleted_at.is_(None))
    return query.order_by(AccessGrant.user_id.asc(), AccessGrant.entity_type.asc(), AccessGrant.entity_id.asc()).all()


def grant_access(
    *,
    user_id: int,
    entity_type: EntityKind | str,
    entity_id: int,
    level: str | None = None,
    is_guest: bool = False,
    granted_by_user_id: int | None = None,
) -> AccessGrant:
    """
    Grant a user direct access to one record.

    Idempotent: an existing live grant is returned (level/is_guest updated
    if they differ). A concurrent duplicate insert is absorbed by the
    partial unique index and read back.
    """
    kind = EntityKind.parse(entity_type)

    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise GrantError("User not found")

    model = model_for(kind)
    if db.session.query(model.id).filter(model.id == entity_id).first() is None:
        raise GrantError(f"{kind.model_name} {entity_id} not found")

    existing = get_live_grant(user_id, kind, entity_id)
    if existing:
        changed = False
        if level is not None and existing.level != level:
            existing.level = level
            changed = True
        if existing.is_guest != bool(is_guest):
            existing.is_guest = bool(is_guest)
            changed = True
        if changed:
            db.session.commit()
        return existing

    grant = AccessGrant(
        user_id=user_id,
        entity_type=kind,
        entity_id=entity_id,
        level=level,
        is_guest=bool(is_guest),
        granted_by_user_id=granted_by_user_id,
    )
    db.session.add(grant)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = get_live_grant(user_id, kind, entity_id)
        if existing is None:
            raise
        return existing

    permission_service.log_security_event(
        user_id=granted_by_user_id,
        event_type="ACCESS_GRANTED",
        success=True,
        resource=f"{kind.value}:{entity_id}",
        action="grant",
        reason=f"user {user_id}",
    )
    return grant


def revoke_access(*, grant_id: int, revoked_by_user_id: int | None = None) -> bool:
    """
    Soft-delete a grant.

    Returns False if the grant does not exist or was already revoked.
    """
    grant = db.session.query(AccessGrant).filter_by(id=grant_id).first()
    if grant is None or grant.deleted_at is not None:
        return False

    grant.deleted_at = utcnow()
    db.session.commit()

    permission_service.log_security_event(
        user_id=revoked_by_user_id,
        event_type="ACCESS_REVOKED",
        success=True,
        resource=f"{grant.entity_type.value}:{grant.entity_id}",
        action="revoke",
        reason=f"user {grant.user_id}",
    )
    return True


def revoke_access_for(*, user_id: int, entity_type: EntityKind | str, entity_id: int, revoked_by_user_id: int | None = None) -> bool:
    grant = get_live_grant(user_id, EntityKind.parse(entity_type), entity_id)
    if grant is None:
        return False
    return revoke_access(grant_id=grant.id, revoked_by_user_id=revoked_by_user_id)
