"""
Identity Mapper.
Binds provisional local ids to the ids assigned by the remote system of record.
Bindings are append-only: a local id is bound at most once, and a second bind
with a different database id is a corrupt double-sync.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Set

from sqlalchemy.exc import IntegrityError

from ..core.exceptions import ConflictError
from ..models.base import SessionLocal
from ..models.identity import IdentityMapping

logger = logging.getLogger(__name__)


class IdKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class RecordId:
    """An identifier that knows whether it was minted locally or by the remote."""
    kind: IdKind
    value: str

    @classmethod
    def local(cls, value: str) -> "RecordId":
        return cls(IdKind.LOCAL, str(value))

    @classmethod
    def remote(cls, value) -> "RecordId":
        return cls(IdKind.REMOTE, str(value))

    @property
    def is_local(self) -> bool:
        return self.kind == IdKind.LOCAL

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"


class IdentityMapper:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal
        self._bind_lock = threading.Lock()

    def resolve(self, local_id: str) -> Optional[str]:
        """Return the bound database id, or None if the record still needs a sync."""
        db = self._session_factory()
        try:
            mapping = db.query(IdentityMapping).filter(IdentityMapping.local_id == local_id).first()
            return mapping.database_id if mapping else None
        finally:
            db.close()

    def resolve_record(self, record_id: RecordId) -> Optional[RecordId]:
        if not record_id.is_local:
            return record_id
        database_id = self.resolve(record_id.value)
        return RecordId.remote(database_id) if database_id is not None else None

    def bound_ids(self, collection: str) -> Set[str]:
        db = self._session_factory()
        try:
            rows = (
                db.query(IdentityMapping.local_id)
                .filter(IdentityMapping.collection == collection)
                .all()
            )
            return {r[0] for r in rows}
        finally:
            db.close()

    def bind(self, local_id: str, database_id, collection: str) -> None:
        """
        Bind ``local_id`` to ``database_id``.

        Re-binding the same value is a no-op. Binding a different value raises
        ConflictError and leaves the original mapping untouched.
        """
        database_id = str(database_id)
        with self._bind_lock:
            db = self._session_factory()
            try:
                existing = (
                    db.query(IdentityMapping)
                    .filter(IdentityMapping.local_id == local_id)
                    .first()
                )
                if existing is None:
                    db.add(IdentityMapping(local_id=local_id, database_id=database_id, collection=collection))
                    try:
                        db.commit()
                    except IntegrityError:
                        # Another writer bound this id between our read and insert
                        db.rollback()
                        existing = (
                            db.query(IdentityMapping)
                            .filter(IdentityMapping.local_id == local_id)
                            .first()
                        )
                    else:
                        logger.info("Bound %s record %s -> %s", collection, local_id, database_id)
                        return

                if existing.database_id != database_id:
                    raise ConflictError(local_id, existing.database_id, database_id)
            finally:
                db.close()


identity_mapper = IdentityMapper()
