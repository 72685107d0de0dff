"""Typed access to the schema-less entity store.

Every call touches exactly one record and commits on its own; there is no
multi-entity transaction. Writes are guarded by the record version so a caller
never overwrites a change it has not seen.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Type, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from .config import STORE_BACKOFF_SECONDS, STORE_MAX_ATTEMPTS
from .entities import Entity
from .errors import DuplicateKey, EntityNotFound, StaleVersion, TransientFailure
from .models import StoredEntity

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)
T = TypeVar("T")


class EntityRepository:
    def __init__(
        self,
        db: Session,
        *,
        max_attempts: int = STORE_MAX_ATTEMPTS,
        backoff_seconds: float = STORE_BACKOFF_SECONDS,
    ) -> None:
        self.db = db
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds

    # -----------------------------
    # Reads (idempotent, retried)
    # -----------------------------

    def get(self, entity_type: Type[E], key: str) -> Optional[E]:
        def _get() -> Optional[E]:
            row = (
                self.db.query(StoredEntity)
                .filter(
                    StoredEntity.partition_key == entity_type.partition,
                    StoredEntity.row_key == key,
                )
                .first()
            )
            if row is None:
                return None
            return entity_type.from_properties(row.row_key, row.version, row.properties)

        return self._read(_get)

    def list_all(self, entity_type: Type[E]) -> List[E]:
        def _list() -> List[E]:
            rows = (
                self.db.query(StoredEntity)
                .filter(StoredEntity.partition_key == entity_type.partition)
                .order_by(StoredEntity.row_key)
                .all()
            )
            return [entity_type.from_properties(r.row_key, r.version, r.properties) for r in rows]

        return self._read(_list)

    # -----------------------------
    # Writes (single attempt)
    # -----------------------------

    def insert(self, entity: E) -> E:
        row = StoredEntity(
            partition_key=entity.partition,
            row_key=entity.id,
            version=1,
            properties=entity.to_properties(),
        )
        try:
            self.db.add(row)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateKey(entity.partition, entity.id)
        except DBAPIError as e:
            self.db.rollback()
            raise TransientFailure(f"insert {entity.partition}/{entity.id} failed: {e}") from e
        return entity.model_copy(update={"version": 1})

    def update(self, entity: E, expected_version: Optional[int] = None) -> E:
        """Write `entity` if the stored version still equals `expected_version`.

        `expected_version` defaults to the version carried by the entity.
        Returns a copy carrying the new version.
        """
        if expected_version is None:
            expected_version = entity.version
        if expected_version is None:
            raise ValueError("update requires the version the entity was read at")

        try:
            updated = (
                self.db.query(StoredEntity)
                .filter(
                    StoredEntity.partition_key == entity.partition,
                    StoredEntity.row_key == entity.id,
                    StoredEntity.version == expected_version,
                )
                .update(
                    {
                        StoredEntity.properties: entity.to_properties(),
                        StoredEntity.version: expected_version + 1,
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except DBAPIError as e:
            self.db.rollback()
            raise TransientFailure(f"update {entity.partition}/{entity.id} failed: {e}") from e

        if updated == 0:
            if self._exists(entity.partition, entity.id):
                raise StaleVersion(entity.partition, entity.id, expected_version)
            raise EntityNotFound(entity.partition, entity.id)
        return entity.model_copy(update={"version": expected_version + 1})

    def delete(self, entity_type: Type[E], key: str, expected_version: Optional[int] = None) -> None:
        query = self.db.query(StoredEntity).filter(
            StoredEntity.partition_key == entity_type.partition,
            StoredEntity.row_key == key,
        )
        if expected_version is not None:
            query = query.filter(StoredEntity.version == expected_version)
        try:
            deleted = query.delete(synchronize_session=False)
            self.db.commit()
        except DBAPIError as e:
            self.db.rollback()
            raise TransientFailure(f"delete {entity_type.partition}/{key} failed: {e}") from e

        if deleted == 0:
            if expected_version is not None and self._exists(entity_type.partition, key):
                raise StaleVersion(entity_type.partition, key, expected_version)
            raise EntityNotFound(entity_type.partition, key)

    # -----------------------------
    # Helpers
    # -----------------------------

    def _exists(self, partition: str, key: str) -> bool:
        def _lookup() -> bool:
            return (
                self.db.query(StoredEntity.row_key)
                .filter(StoredEntity.partition_key == partition, StoredEntity.row_key == key)
                .first()
                is not None
            )

        return self._read(_lookup)

    def _read(self, fn: Callable[[], T]) -> T:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except DBAPIError as e:
                self.db.rollback()
                last_error = e
                logger.warning("store read failed (attempt %s/%s): %s", attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    time.sleep(self.backoff_seconds * (2 ** (attempt - 1)))
        raise TransientFailure(f"store unavailable: {last_error}") from last_error
