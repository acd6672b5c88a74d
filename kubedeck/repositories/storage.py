from __future__ import annotations

import logging
from typing import Literal, Protocol

from kubedeck.models.envelope_contracts import utc_timestamp
from kubedeck.repositories.database import Database

LOGGER = logging.getLogger("kubedeck.storage")

ACCESS_TOKEN_KEY = "auth_token"
REFRESH_TOKEN_KEY = "refresh_token"

StorageTier = Literal["durable", "ephemeral"]


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)


class SqliteKeyValueStore:
    def __init__(self, db: Database, *, tier: str = "durable") -> None:
        self._db = db
        self._tier = tier

    def get(self, key: str) -> str | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT value_text
                FROM kv_store
                WHERE tier = ? AND key = ?
                """,
                (self._tier, key),
            ).fetchone()

        if row is None:
            return None
        return str(row["value_text"])

    def set(self, key: str, value: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO kv_store (tier, key, value_text, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (self._tier, key, value, utc_timestamp()),
            )

    def delete(self, key: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                "DELETE FROM kv_store WHERE tier = ? AND key = ?",
                (self._tier, key),
            )


class TokenStorage:
    """Access/refresh token pair spread over a durable and an ephemeral tier.

    `remember=True` logins land in the durable tier, everything else in the
    ephemeral one. Storing a pair empties the other tier, so at most one
    access token is ever held. Reads check the durable tier first.
    """

    def __init__(self, *, durable: KeyValueStore, ephemeral: KeyValueStore) -> None:
        self._durable = durable
        self._ephemeral = ephemeral

    def store_tokens(self, access_token: str, refresh_token: str, *, remember: bool) -> None:
        target, other = (
            (self._durable, self._ephemeral) if remember else (self._ephemeral, self._durable)
        )
        other.delete(ACCESS_TOKEN_KEY)
        other.delete(REFRESH_TOKEN_KEY)
        target.set(ACCESS_TOKEN_KEY, access_token)
        target.set(REFRESH_TOKEN_KEY, refresh_token)

    def replace_tokens(self, access_token: str, refresh_token: str) -> StorageTier:
        tier = self.refresh_token_tier() or "ephemeral"
        target = self._durable if tier == "durable" else self._ephemeral
        target.set(ACCESS_TOKEN_KEY, access_token)
        target.set(REFRESH_TOKEN_KEY, refresh_token)
        return tier

    def access_token(self) -> str | None:
        return self._durable.get(ACCESS_TOKEN_KEY) or self._ephemeral.get(ACCESS_TOKEN_KEY)

    def refresh_token(self) -> str | None:
        return self._durable.get(REFRESH_TOKEN_KEY) or self._ephemeral.get(REFRESH_TOKEN_KEY)

    def refresh_token_tier(self) -> StorageTier | None:
        if self._durable.get(REFRESH_TOKEN_KEY):
            return "durable"
        if self._ephemeral.get(REFRESH_TOKEN_KEY):
            return "ephemeral"
        return None

    def clear(self) -> None:
        for store in (self._durable, self._ephemeral):
            store.delete(ACCESS_TOKEN_KEY)
            store.delete(REFRESH_TOKEN_KEY)
        LOGGER.debug("token storage cleared")
