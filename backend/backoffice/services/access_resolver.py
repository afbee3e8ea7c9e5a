# Overview: Service-layer resolution of which records a user may see, including inherited access.

"""
Access Resolver

WHY: A grant on a Brand must open up every product, item, order, order item,
expense, customer and address underneath it, without a grant per row.

DEFINITION (non-admin user u, kind T):
    resolve(u, T) = direct(u, T) ∪ inherited(u, T)
    direct        = entity ids of live (not soft-deleted) grants for (u, T)
    inherited     = ids of T whose parent foreign key is in resolve(u, parent(T))
Global admins resolve to every existing id.

SAFETY: An empty resolved set filters queries to zero rows (WHERE false),
never to all rows.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from sqlalchemy import false

from ..entities import EntityKind
from ..extensions import access_cache, db
from ..models import AccessGrant
from .access_cache import AccessCache
from .access_registry import PARENT_RELATIONS, RelationTable, model_for, validate_relations


# Keeps IN (...) lists well under the bound-parameter limit of every backend.
IN_CLAUSE_CHUNK = 500


def _chunks(ids: Iterable[int], size: int = IN_CLAUSE_CHUNK) -> Iterator[list[int]]:
    batch: list[int] = []
    for value in ids:
        batch.append(value)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


class AccessResolver:
    def __init__(self, relations: RelationTable = PARENT_RELATIONS, cache: AccessCache | None = None):
        validate_relations(relations)
        self.relations = relations
        self.cache = cache

    def resolve(self, user, kind: EntityKind | str) -> frozenset[int]:
        """Every id of kind the user can access."""
        kind = EntityKind.parse(kind)
        if user.is_global_admin:
            model = model_for(kind)
            return frozenset(row[0] for row in db.session.query(model.id).all())

        if self.cache is None:
            return frozenset(self._compute(user, kind))
        return self.cache.get_or_compute(user.id, kind, lambda: self._compute(user, kind))

    def _compute(self, user, kind: EntityKind) -> set[int]:
        ids = self.direct_ids(user.id, kind)

        relation = self.relations[kind]
        if relation is None:
            return ids

        parent_ids = self.resolve(user, relation.parent)
        if not parent_ids:
            return ids

        if relation.reverse:
            parent_model = model_for(relation.parent)
            fk = getattr(parent_model, relation.foreign_key)
            for batch in _chunks(sorted(parent_ids)):
                rows = (
                    db.session.query(fk)
                    .filter(parent_model.id.in_(batch), fk.isnot(None))
                    .distinct()
                    .all()
                )
                ids.update(row[0] for row in rows)
        else:
            model = model_for(kind)
            fk = getattr(model, relation.foreign_key)
            for batch in _chunks(sorted(parent_ids)):
                rows = db.session.query(model.id).filter(fk.in_(batch)).all()
                ids.update(row[0] for row in rows)

        return ids

    def direct_ids(self, user_id: int, kind: EntityKind) -> set[int]:
        rows = (
            db.session.query(AccessGrant.entity_id)
            .filter(
                AccessGrant.user_id == user_id,
                AccessGrant.entity_type == kind,
                AccessGrant.deleted_at.is_(None),
            )
            .all()
        )
        return {row[0] for row in rows}

    def has_direct_grant(self, user_id: int, kind: EntityKind, entity_id: int) -> bool:
        return (
            db.session.query(AccessGrant.id)
            .filter(
                AccessGrant.user_id == user_id,
                AccessGrant.entity_type == kind,
                AccessGrant.entity_id == entity_id,
                AccessGrant.deleted_at.is_(None),
            )
            .first()
            is not None
        )

    def is_accessible(self, user, kind: EntityKind | str, entity_id: int) -> bool:
        """
        Single-record check with the same answer as ``entity_id in resolve()``.

        Walks up the parent chain one row at a time instead of materializing
        the full set, unless a cached set is already available.
        """
        kind = EntityKind.parse(kind)
        model = model_for(kind)

        if user.is_global_admin:
            return db.session.query(model.id).filter(model.id == entity_id).first() is not None

        if self.cache is not None:
            cached = self.cache.get(user.id, kind)
            if cached is not None:
                return entity_id in cached

        if self.has_direct_grant(user.id, kind, entity_id):
            return True

        relation = self.relations[kind]
        if relation is None:
            return False

        if relation.reverse:
            parent_model = model_for(relation.parent)
            fk = getattr(parent_model, relation.foreign_key)
            parent_ids = db.session.query(parent_model.id).filter(fk == entity_id).order_by(parent_model.id).all()
            return any(self.is_accessible(user, relation.parent, row[0]) for row in parent_ids)

        fk = getattr(model, relation.foreign_key)
        row = db.session.query(fk).filter(model.id == entity_id).first()
        if row is None or row[0] is None:
            return False
        return self.is_accessible(user, relation.parent, row[0])

    def filter_query(self, query, user, kind: EntityKind | str):
        """Restrict a query over kind's model to accessible rows."""
        kind = EntityKind.parse(kind)
        if user.is_global_admin:
            return query

        ids = self.resolve(user, kind)
        if not ids:
            return query.filter(false())
        model = model_for(kind)
        return query.filter(model.id.in_(sorted(ids)))

    def has_any_brand_or_product_access(self, user) -> bool:
        if user.is_global_admin:
            return True
        return bool(self.resolve(user, EntityKind.BRAND)) or bool(self.resolve(user, EntityKind.PRODUCT))


resolver = AccessResolver(cache=access_cache)
