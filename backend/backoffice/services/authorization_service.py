# Overview: Service-layer authorization decisions combining coarse permissions with row-level access.

"""
Authorization Gate

RULES:
- Global admin: always allowed.
- Collection actions (view_any, create, bulk *_any): coarse permission
  "{Action}:{Model}" in the active team.
- Instance actions (view, update, delete, restore, force_delete,
  replicate): coarse permission AND the record is accessible to the user.
- Reference data (Category, Gender, ExpenseType):
    listing    -> any authenticated user; rows are all-or-nothing depending
                  on whether the user has any brand/product access
    single row -> coarse permission only
    writes     -> global admin only

OUTCOMES: Callers must keep three cases apart.
    no principal            -> AuthenticationRequired (401)
    record does not exist   -> NotFound (404), checked before access
    exists, not allowed     -> AccessDenied (403)
A list the user may query but cannot see any rows of is an empty list, not
an error.

The tenant ("team") is passed explicitly in AccessContext. Nothing here
reads request globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import false

from ..entities import Action, EntityKind, ReferenceKind, permission_name
from ..errors import AccessDenied, AuthenticationRequired, NotFound
from ..extensions import db
from ..models import Category, ExpenseType, Gender, User
from . import permission_service
from .access_registry import model_for
from .access_resolver import AccessResolver, resolver as default_resolver


REFERENCE_MODELS = {
    ReferenceKind.CATEGORY: Category,
    ReferenceKind.GENDER: Gender,
    ReferenceKind.EXPENSE_TYPE: ExpenseType,
}

Resource = EntityKind | ReferenceKind


@dataclass(frozen=True)
class AccessContext:
    """Who is asking, and in which team."""
    user: Optional[User]
    team_id: Optional[int] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


def parse_resource(value: "Resource | str") -> Resource:
    if isinstance(value, (EntityKind, ReferenceKind)):
        return value
    normalized = str(value).strip().lower().replace("-", "_")
    for enum_cls in (EntityKind, ReferenceKind):
        try:
            return enum_cls(normalized)
        except ValueError:
            continue
    raise ValueError(f"Unknown resource: {value}")


def model_for_resource(resource: Resource):
    if isinstance(resource, ReferenceKind):
        return REFERENCE_MODELS[resource]
    return model_for(resource)


class AuthorizationGate:
    def __init__(self, resolver: AccessResolver = default_resolver):
        self.resolver = resolver

    def has_permission(self, context: AccessContext, action: Action, resource: Resource) -> bool:
        return permission_service.user_has_permission(
            context.user.id,
            permission_name(action, resource),
            context.team_id,
        )

    def authorize(
        self,
        context: AccessContext,
        action: Action | str,
        resource: "Resource | str",
        entity_id: int | None = None,
    ) -> bool:
        if not context.is_authenticated:
            return False
        if context.user.is_global_admin:
            return True

        action = Action(action)
        resource = parse_resource(resource)

        if isinstance(resource, ReferenceKind):
            return self._authorize_reference(context, action, resource)

        if not self.has_permission(context, action, resource):
            return False
        if not action.is_instance_action:
            return True
        if entity_id is None:
            return False
        return self.resolver.is_accessible(context.user, resource, entity_id)

    def _authorize_reference(self, context: AccessContext, action: Action, resource: ReferenceKind) -> bool:
        if action.is_write:
            return False
        if action == Action.VIEW_ANY:
            return True
        return self.has_permission(context, action, resource)

    def require(
        self,
        context: AccessContext,
        action: Action | str,
        resource: "Resource | str",
        entity_id: int | None = None,
    ):
        """
        Enforce a decision, raising the matching outcome.

        For instance actions the record is loaded (NotFound first) and
        returned so callers don't fetch it twice.
        """
        if not context.is_authenticated:
            raise AuthenticationRequired()

        action = Action(action)
        resource = parse_resource(resource)

        record = None
        if entity_id is not None:
            record = db.session.get(model_for_resource(resource), entity_id)
            if record is None:
                raise NotFound(f"{resource.model_name} not found")

        if not self.authorize(context, action, resource, entity_id):
            code = permission_name(action, resource)
            permission_service.log_security_event(
                user_id=context.user.id,
                event_type="ACCESS_DENIED",
                success=False,
                resource=f"{resource.value}:{entity_id}" if entity_id is not None else resource.value,
                action=action.value,
                reason=f"Denied {code}",
                team_id=context.team_id,
            )
            raise AccessDenied(required_permission=code)

        return record

    def scope_query(self, context: AccessContext, resource: "Resource | str", query):
        """Restrict a list query to the rows the caller may see."""
        resource = parse_resource(resource)
        if not context.is_authenticated:
            return query.filter(false())
        if isinstance(resource, ReferenceKind):
            if self.resolver.has_any_brand_or_product_access(context.user):
                return query
            return query.filter(false())
        return self.resolver.filter_query(query, context.user, resource)


gate = AuthorizationGate()
