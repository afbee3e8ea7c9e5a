from __future__ import annotations

from ..entities import ImportKind
from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z


class SyncState(db.Model):
    """
    Resume cursor and run lease for one external stream.

    CHECKPOINT: (last_imported_date, last_external_id) marks "everything up
    to here has been imported". It only ever moves forward.

    LEASE: locked_by/locked_at serialize orchestrator runs per stream. A
    lease older than IMPORT_LOCK_TIMEOUT_SECONDS is considered abandoned.
    """
    __tablename__ = "sync_states"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(
        db.Enum(
            ImportKind,
            name="import_kind",
            native_enum=False,
            values_callable=lambda kinds: [k.value for k in kinds],
            validate_strings=True,
        ),
        nullable=False,
        unique=True,
    )

    last_imported_date = db.Column(db.Date, nullable=True)
    last_external_id = db.Column(db.Integer, nullable=True)
    last_sync_at = db.Column(db.DateTime(timezone=True), nullable=True)

    locked_by = db.Column(db.String(64), nullable=True)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def cursor(self) -> tuple | None:
        if self.last_imported_date is None:
            return None
        return (self.last_imported_date, self.last_external_id or 0)

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type.value,
            "last_imported_date": to_iso_date(self.last_imported_date),
            "last_external_id": self.last_external_id,
            "last_sync_at": to_utc_z(self.last_sync_at),
            "locked_by": self.locked_by,
            "locked_at": to_utc_z(self.locked_at),
        }
