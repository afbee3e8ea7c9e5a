# Overview: Static parent-relation table driving access inheritance.

"""
Parent Relation Registry

WHY: Every access-controlled record type declares at most one parent whose
accessibility it inherits. The resolver walks this table generically instead
of carrying per-type code, so adding a record type is one table entry.

RELATIONS:
- brand         -> (none)
- product       -> brand         via products.brand_id
- product_item  -> product       via product_items.product_id
- expense       -> product       via expenses.product_id
- order         -> product       via orders.product_id (external "BrandID")
- order_item    -> product_item  via order_items.item_id
- customer      <- order         via orders.customer_id (reverse: a customer
                                 is visible when one of its orders is)
- address       -> customer      via addresses.customer_id

The table is validated when a resolver or cache is built: every EntityKind
needs an entry, parents must be known kinds, and the graph must be acyclic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from ..entities import EntityKind
from ..errors import ConfigurationError


@dataclass(frozen=True)
class ParentRelation:
    """
    How a kind inherits access from its parent.

    Forward (reverse=False): child.<foreign_key> references parent.id.
    Reverse (reverse=True): parent.<foreign_key> references child.id.
    """
    parent: EntityKind
    foreign_key: str
    reverse: bool = False


RelationTable = Mapping[EntityKind, Optional[ParentRelation]]


PARENT_RELATIONS: dict[EntityKind, Optional[ParentRelation]] = {
    EntityKind.BRAND: None,
    EntityKind.PRODUCT: ParentRelation(EntityKind.BRAND, "brand_id"),
    EntityKind.PRODUCT_ITEM: ParentRelation(EntityKind.PRODUCT, "product_id"),
    EntityKind.EXPENSE: ParentRelation(EntityKind.PRODUCT, "product_id"),
    EntityKind.ORDER: ParentRelation(EntityKind.PRODUCT, "product_id"),
    EntityKind.ORDER_ITEM: ParentRelation(EntityKind.PRODUCT_ITEM, "item_id"),
    EntityKind.CUSTOMER: ParentRelation(EntityKind.ORDER, "customer_id", reverse=True),
    EntityKind.ADDRESS: ParentRelation(EntityKind.CUSTOMER, "customer_id"),
}

ENTITY_MODEL_NAMES: dict[EntityKind, str] = {
    EntityKind.BRAND: "Brand",
    EntityKind.PRODUCT: "Product",
    EntityKind.PRODUCT_ITEM: "ProductItem",
    EntityKind.ORDER: "Order",
    EntityKind.ORDER_ITEM: "OrderItem",
    EntityKind.EXPENSE: "Expense",
    EntityKind.CUSTOMER: "Customer",
    EntityKind.ADDRESS: "Address",
}


def validate_relations(relations: RelationTable) -> None:
    """
    Fail fast on an unusable relation table.

    Raises ConfigurationError for a missing kind, an unknown parent kind,
    or a cycle.
    """
    missing = [kind.value for kind in EntityKind if kind not in relations]
    if missing:
        raise ConfigurationError(f"Parent relation table has no entry for: {', '.join(missing)}")

    for kind, relation in relations.items():
        if not isinstance(kind, EntityKind):
            raise ConfigurationError(f"Unknown entity kind in relation table: {kind!r}")
        if relation is None:
            continue
        if not isinstance(relation.parent, EntityKind) or relation.parent not in relations:
            raise ConfigurationError(f"{kind.value} declares unknown parent {relation.parent!r}")

    for start in relations:
        seen = [start]
        current = relations[start]
        while current is not None:
            if current.parent in seen:
                chain = " -> ".join(k.value for k in seen + [current.parent])
                raise ConfigurationError(f"Cyclic parent relation: {chain}")
            seen.append(current.parent)
            current = relations[current.parent]


def parent_chain(kind: EntityKind, relations: RelationTable = PARENT_RELATIONS) -> list[EntityKind]:
    """Ancestors of kind, nearest first."""
    chain = []
    relation = relations.get(kind)
    while relation is not None:
        chain.append(relation.parent)
        relation = relations.get(relation.parent)
    return chain


def descendants_of(kind: EntityKind, relations: RelationTable = PARENT_RELATIONS) -> set[EntityKind]:
    """Kinds whose access (transitively) inherits from kind."""
    return {other for other in relations if kind in parent_chain(other, relations)}


def model_for(kind: EntityKind):
    from .. import models

    try:
        return getattr(models, ENTITY_MODEL_NAMES[kind])
    except (KeyError, AttributeError):
        raise ConfigurationError(f"No model registered for entity kind {kind.value}") from None
