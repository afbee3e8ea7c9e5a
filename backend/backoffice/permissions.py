"""
Permission Constants and Default Roles

WHY: Coarse permissions follow one naming rule, "{Action}:{Model}", for every
access-controlled kind and every reference kind. Generating them from the
enums keeps the seeded table exhaustive.

DESIGN PRINCIPLES:
- Row-level visibility comes from access grants, not from these codes
- A code only says "this kind of action is allowed at all"
- Default role mappings follow principle of least privilege
"""

from .entities import Action, EntityKind, ReferenceKind, permission_name


class PermissionCategory:
    """Permission categories for organization."""
    CATALOG = "CATALOG"
    SALES = "SALES"
    EXPENSES = "EXPENSES"
    REFERENCE = "REFERENCE"


_CATEGORY_BY_KIND = {
    EntityKind.BRAND: PermissionCategory.CATALOG,
    EntityKind.PRODUCT: PermissionCategory.CATALOG,
    EntityKind.PRODUCT_ITEM: PermissionCategory.CATALOG,
    EntityKind.ORDER: PermissionCategory.SALES,
    EntityKind.ORDER_ITEM: PermissionCategory.SALES,
    EntityKind.CUSTOMER: PermissionCategory.SALES,
    EntityKind.ADDRESS: PermissionCategory.SALES,
    EntityKind.EXPENSE: PermissionCategory.EXPENSES,
}


def _definitions():
    for kind in EntityKind:
        for action in Action:
            yield permission_name(action, kind), _CATEGORY_BY_KIND[kind]
    for ref in ReferenceKind:
        for action in Action:
            yield permission_name(action, ref), PermissionCategory.REFERENCE


# Each permission is defined as: (code, category)
PERMISSION_DEFINITIONS = list(_definitions())

READ_ACTIONS = (Action.VIEW_ANY, Action.VIEW)

DEFAULT_ROLE_PERMISSIONS = {
    "viewer": [
        permission_name(action, resource)
        for resource in (*EntityKind, *ReferenceKind)
        for action in READ_ACTIONS
    ],
    "manager": [code for code, _ in PERMISSION_DEFINITIONS],
}


def get_all_permission_codes():
    return [code for code, _ in PERMISSION_DEFINITIONS]
