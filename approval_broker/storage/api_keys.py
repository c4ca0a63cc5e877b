"""Persistence for hashed API keys."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select, update

from approval_broker.auth import display_prefix, hash_api_key
from approval_broker.db import Store
from approval_broker.models import ApiKey


class ApiKeyRepository:
    def __init__(self, store: Store) -> None:
        self._store = store

    def create(self, *, key_hash: str, key_prefix: str | None, name: str | None = None) -> int:
        with self._store.session_scope() as session:
            api_key = ApiKey(key_hash=key_hash, key_prefix=key_prefix, name=name, is_active=True)
            session.add(api_key)
            session.flush()
            return api_key.id

    def ensure(self, raw_key: str, *, name: str | None = None) -> bool:
        """Seed *raw_key* if it is not stored yet; returns True when inserted."""

        key_hash = hash_api_key(raw_key)
        with self._store.session_scope() as session:
            existing = session.execute(select(ApiKey.id).where(ApiKey.key_hash == key_hash)).scalar_one_or_none()
            if existing is not None:
                return False
            session.add(ApiKey(key_hash=key_hash, key_prefix=display_prefix(raw_key), name=name, is_active=True))
            return True

    def authenticate(self, raw_key: str) -> bool:
        """Return True for an active key and record its use."""

        key_hash = hash_api_key(raw_key)
        with self._store.session_scope() as session:
            api_key = session.execute(
                select(ApiKey).where(ApiKey.key_hash == key_hash, ApiKey.is_active.is_(True))
            ).scalar_one_or_none()
            if api_key is None:
                return False
            api_key.last_used_at = datetime.now(UTC)
            return True

    def deactivate(self, key_prefix: str) -> int:
        """Deactivate every key sharing *key_prefix*; returns the number affected."""

        with self._store.session_scope() as session:
            result = session.execute(
                update(ApiKey).where(ApiKey.key_prefix == key_prefix, ApiKey.is_active.is_(True)).values(is_active=False)
            )
            return result.rowcount

    def get_by_prefix(self, key_prefix: str) -> ApiKey | None:
        with self._store.session_scope() as session:
            api_key = session.execute(select(ApiKey).where(ApiKey.key_prefix == key_prefix)).scalars().first()
            if api_key is not None:
                session.expunge(api_key)
            return api_key
