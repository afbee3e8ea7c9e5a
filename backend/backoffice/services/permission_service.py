# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Coarse Permission Checks and Security Event Logging

WHY: Row-level access answers "which records"; these codes answer "may this
user perform this kind of action at all". Every denial is logged.

MULTI-TENANT: Roles are team-scoped. A permission counts only when it comes
from a global role (team_id NULL) or from a role of the active team passed
in by the caller. There is no ambient "current team".

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
"""

from sqlalchemy import or_

from ..extensions import db
from ..models import Permission, Role, RolePermission, SecurityEvent, UserRole
from ..permissions import DEFAULT_ROLE_PERMISSIONS, PERMISSION_DEFINITIONS
from ..time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    team_id: int | None = None,
) -> SecurityEvent:
    """
    Append an event to the security audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - ACCESS_DENIED
    - ACCESS_GRANTED
    - ACCESS_REVOKED
    - LOGIN_FAILED
    """
    event = SecurityEvent(
        user_id=user_id,
        team_id=team_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int, team_id: int | None) -> set[str]:
    """
    Permission codes the user holds in the given team.

    team_id None means "no team selected": only global roles count.
    """
    query = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(Role, Role.id == RolePermission.role_id)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
    )
    if team_id is None:
        query = query.filter(Role.team_id.is_(None))
    else:
        query = query.filter(or_(Role.team_id.is_(None), Role.team_id == team_id))

    return {row[0] for row in query.distinct().all()}


def user_has_permission(user_id: int, permission_code: str, team_id: int | None) -> bool:
    return permission_code in get_user_permissions(user_id, team_id)


def initialize_permissions() -> int:
    """
    Insert any permission codes missing from the table.

    Returns the number of permissions created. Safe to re-run.
    """
    existing = {row[0] for row in db.session.query(Permission.code).all()}
    created = 0
    for code, category in PERMISSION_DEFINITIONS:
        if code in existing:
            continue
        db.session.add(Permission(code=code, category=category))
        created += 1
    db.session.commit()
    return created


def ensure_default_roles(team_id: int | None = None) -> dict[str, Role]:
    """Create the default roles for a team (or global roles) and attach their permissions."""
    permissions = {p.code: p for p in db.session.query(Permission).all()}
    roles: dict[str, Role] = {}

    for role_name, codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(team_id=team_id, name=role_name).first()
        if not role:
            role = Role(team_id=team_id, name=role_name)
            db.session.add(role)
            db.session.flush()

        assigned = {
            row[0]
            for row in db.session.query(RolePermission.permission_id).filter_by(role_id=role.id).all()
        }
        for code in codes:
            permission = permissions.get(code)
            if permission is not None and permission.id not in assigned:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
        roles[role_name] = role

    db.session.commit()
    return roles


def assign_role(user_id: int, role: Role) -> None:
    exists = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if not exists:
        db.session.add(UserRole(user_id=user_id, role_id=role.id))
        db.session.commit()
