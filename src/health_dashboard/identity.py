"""Persistence of the signed-in user's identity."""

import asyncio
import sqlite3
from pathlib import Path
from typing import Protocol

import structlog

from .models import PersonName, UserIdentity

logger = structlog.get_logger(__name__)

USER_ID_KEY = "UserId"
FULL_NAME_KEY = "FullName"
EMAIL_KEY = "Email"


class KeyValueStore(Protocol):
    """Plain text key/value persistence."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str | None) -> None:
        """Store ``value``; None removes the key."""
        ...


class MemoryKeyValueStore:
    """Process-local key/value store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str | None) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class SQLiteKeyValueStore:
    """Key/value store in a single SQLite table.

    Blocking sqlite3 calls run in the default executor.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file. Created on first use.
        """
        self._db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    async def _ensure_initialized(self) -> None:
        """Ensure database is initialized."""
        if self._initialized:
            return

        loop = asyncio.get_running_loop()

        def init_db() -> None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
                conn.commit()

        await loop.run_in_executor(None, init_db)
        self._initialized = True
        logger.debug("kv_store_initialized", path=str(self._db_path))

    async def get(self, key: str) -> str | None:
        await self._ensure_initialized()
        loop = asyncio.get_running_loop()

        def do_get() -> str | None:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

        return await loop.run_in_executor(None, do_get)

    async def set(self, key: str, value: str | None) -> None:
        await self._ensure_initialized()
        loop = asyncio.get_running_loop()

        def do_set() -> None:
            with self._connect() as conn:
                if value is None:
                    conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                else:
                    conn.execute(
                        "INSERT INTO kv (key, value) VALUES (?, ?)"
                        " ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                        (key, value),
                    )
                conn.commit()

        await loop.run_in_executor(None, do_set)


class IdentityStore:
    """Saves and restores the signed-in UserIdentity.

    The identity provider discloses name and email only on the first grant,
    so an absent name or email never overwrites a stored one for the same
    user. Switching to a different user id drops the previous user's
    details.
    """

    def __init__(self, backend: KeyValueStore) -> None:
        self._backend = backend

    async def save(self, identity: UserIdentity) -> UserIdentity:
        """Persist ``identity`` and return the merged stored identity."""
        previous_id = await self._backend.get(USER_ID_KEY)
        same_user = previous_id is not None and previous_id == identity.id

        await self._backend.set(USER_ID_KEY, identity.id)

        full_name = identity.display_name
        if full_name:
            await self._backend.set(FULL_NAME_KEY, full_name)
        elif not same_user:
            await self._backend.set(FULL_NAME_KEY, None)

        if identity.email:
            await self._backend.set(EMAIL_KEY, identity.email)
        elif not same_user:
            await self._backend.set(EMAIL_KEY, None)

        stored = await self.load()
        logger.info(
            "identity_saved",
            user_changed=not same_user,
            has_name=stored.full_name is not None,
            has_email=stored.email is not None,
        )
        return stored

    async def load(self) -> UserIdentity:
        """Read back the stored identity; missing keys come back as None."""
        user_id = await self._backend.get(USER_ID_KEY)
        full_name = await self._backend.get(FULL_NAME_KEY)
        email = await self._backend.get(EMAIL_KEY)
        if user_id is None:
            logger.debug("identity_not_persisted")
        return UserIdentity(id=user_id, full_name=PersonName.parse(full_name), email=email)
