"""Shared persistence logic for requests that carry a one-shot status row."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Generic, Mapping, TypeVar

from sqlalchemy import exists, select, update

from approval_broker.db import Store

EntityT = TypeVar("EntityT")


def to_json(value: Any) -> str | None:
    """Serialise a JSON-compatible value; ``None`` stays ``None``."""

    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"))


def from_json(raw: str | None) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


class StatusRepository(ABC, Generic[EntityT]):
    """Persist an entity together with its status sub-record.

    Subclasses provide the mapped classes and the conversion to and from the
    pydantic entity.
    """

    record_model: Any
    status_model: Any

    def __init__(self, store: Store) -> None:
        self._store = store

    @abstractmethod
    def _to_records(self, entity: EntityT) -> tuple[Any, Any]:
        """Build the parent and status rows for *entity*."""

    @abstractmethod
    def _to_entity(self, record: Any) -> EntityT:
        """Rebuild the entity from a parent row with its status loaded."""

    def create(self, entity: EntityT) -> EntityT:
        """Insert the parent row and its status row in one transaction."""

        with self._store.session_scope() as session:
            record, status = self._to_records(entity)
            record.status = status
            session.add(record)
            session.flush()
            session.refresh(record)
            return self._to_entity(record)

    def get(self, call_id: str) -> EntityT | None:
        with self._store.session_scope() as session:
            record = session.get(self.record_model, call_id)
            if record is None:
                return None
            return self._to_entity(record)

    def exists(self, call_id: str) -> bool:
        with self._store.session_scope() as session:
            stmt = select(exists().where(self.record_model.call_id == call_id))
            return bool(session.execute(stmt).scalar())

    def resolve(self, call_id: str, values: Mapping[str, Any]) -> bool:
        """Write *values* only if the status is still unresolved.

        Returns False when another writer already set ``responded_at``; the
        check and the write happen in a single UPDATE statement.
        """

        if values.get("responded_at") is None:
            raise ValueError("resolve() requires a responded_at timestamp")

        with self._store.session_scope() as session:
            stmt = (
                update(self.status_model)
                .where(
                    self.status_model.call_id == call_id,
                    self.status_model.responded_at.is_(None),
                )
                .values(**dict(values))
            )
            result = session.execute(stmt)
            return result.rowcount == 1
