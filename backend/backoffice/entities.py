# Overview: Closed vocabularies shared by the access layer and the import pipeline.

"""
Entity kinds, reference kinds, and authorization actions.

WHY: Grants, cache keys, permission names and import state all refer to
entity types. Keeping them as enums (instead of free strings or class names)
means a typo fails at import time, and the access registry can check at
startup that every kind has a parent-relation entry.
"""

from __future__ import annotations

from enum import Enum


class EntityKind(str, Enum):
    """Record types whose visibility is controlled by access grants."""

    BRAND = "brand"
    PRODUCT = "product"
    PRODUCT_ITEM = "product_item"
    ORDER = "order"
    ORDER_ITEM = "order_item"
    EXPENSE = "expense"
    CUSTOMER = "customer"
    ADDRESS = "address"

    @property
    def model_name(self) -> str:
        return "".join(part.capitalize() for part in self.value.split("_"))

    @classmethod
    def parse(cls, value: "str | EntityKind") -> "EntityKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown entity type: {value}") from None


class ReferenceKind(str, Enum):
    """Shared lookup data, visible as a whole rather than per row."""

    CATEGORY = "category"
    GENDER = "gender"
    EXPENSE_TYPE = "expense_type"

    @property
    def model_name(self) -> str:
        return "".join(part.capitalize() for part in self.value.split("_"))


class Action(str, Enum):
    VIEW_ANY = "view_any"
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RESTORE = "restore"
    FORCE_DELETE = "force_delete"
    REPLICATE = "replicate"
    DELETE_ANY = "delete_any"
    RESTORE_ANY = "restore_any"
    FORCE_DELETE_ANY = "force_delete_any"

    @property
    def permission_prefix(self) -> str:
        return "".join(part.capitalize() for part in self.value.split("_"))

    @property
    def is_instance_action(self) -> bool:
        return self in INSTANCE_ACTIONS

    @property
    def is_write(self) -> bool:
        return self not in (Action.VIEW_ANY, Action.VIEW)


# Actions that target one existing record (need a row-level access check).
INSTANCE_ACTIONS = frozenset({
    Action.VIEW,
    Action.UPDATE,
    Action.DELETE,
    Action.RESTORE,
    Action.FORCE_DELETE,
    Action.REPLICATE,
})


class ImportKind(str, Enum):
    """External streams the import pipeline knows how to sync."""

    ORDERS = "orders"
    EXPENSES = "expenses"


def permission_name(action: Action, resource: "EntityKind | ReferenceKind") -> str:
    """Coarse RBAC permission code, e.g. ``ViewAny:Product``."""
    return f"{action.permission_prefix}:{resource.model_name}"


class ReferenceHandlingPolicy(str, Enum):
    """What an import does when a row references a product/expense type we don't have."""

    SKIP_ON_MISSING = "skip_on_missing"
    AUTO_CREATE = "auto_create"
