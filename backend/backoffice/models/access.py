from __future__ import annotations

from ..entities import EntityKind
from ..extensions import db
from ..time_utils import to_utc_z


class AccessGrant(db.Model):
    """
    Direct, non-inherited access to one record for one user.

    WHY: Brand managers see their brands and everything underneath them
    (products, items, orders, expenses) without a grant per row. A grant on a
    Brand is enough; children are resolved through the parent-relation table
    in services/access_registry.py.

    INVARIANTS:
    - At most one live (deleted_at IS NULL) grant per (user, type, id),
      enforced by a partial unique index.
    - Revocation soft-deletes; the row stays for the audit trail.
    - Every insert/update/delete invalidates the access cache for the user
      (listeners in services/access_service.py).
    """
    __tablename__ = "access_grants"
    __table_args__ = (
        db.Index(
            "uq_access_grants_live",
            "user_id",
            "entity_type",
            "entity_id",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
        db.Index("ix_access_grants_lookup", "user_id", "entity_type", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    entity_type = db.Column(
        db.Enum(
            EntityKind,
            name="entity_kind",
            native_enum=False,
            values_callable=lambda kinds: [k.value for k in kinds],
            validate_strings=True,
        ),
        nullable=False,
    )
    entity_id = db.Column(db.Integer, nullable=False)

    level = db.Column(db.String(32), nullable=True)
    is_guest = db.Column(db.Boolean, nullable=False, default=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("access_grants", lazy=True))
    granted_by = db.relationship("User", foreign_keys=[granted_by_user_id])

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def __repr__(self) -> str:
        return f"<AccessGrant user={self.user_id} {self.entity_type.value}:{self.entity_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "level": self.level,
            "is_guest": self.is_guest,
            "granted_by_user_id": self.granted_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
