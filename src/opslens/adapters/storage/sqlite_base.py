"""Base class for SQLite storage adapters."""

import asyncio
import sqlite3
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

import aiosqlite

MEMORY = ":memory:"


class AsyncConnectionManager:
    """Manages async (aiosqlite) database connections.

    Handles schema initialization and connection lifecycle for async contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    @property
    def _should_close_connection(self) -> bool:
        return self._db_path != MEMORY

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._db_path == MEMORY:
                self._persistent_conn = await aiosqlite.connect(MEMORY)
                await self._persistent_conn.executescript(self._schema)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        await self._ensure_initialized()
        if self._db_path == MEMORY:
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            return self._persistent_conn
        return await aiosqlite.connect(self._db_path)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections.

        Closes connections for file-based databases; the :memory:
        connection stays open until close().
        """
        db = await self._get_connection()
        try:
            yield db
        finally:
            if self._should_close_connection:
                await db.close()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SyncConnectionManager:
    """Manages sync (sqlite3) database connections.

    For :memory: databases this manager keeps its own database instance,
    separate from the one behind AsyncConnectionManager.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._lock = threading.Lock()
        self._persistent_conn: sqlite3.Connection | None = None

    @property
    def _should_close_connection(self) -> bool:
        return self._db_path != MEMORY

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            if self._db_path == MEMORY:
                self._persistent_conn = sqlite3.connect(MEMORY, check_same_thread=False)
                self._persistent_conn.executescript(self._schema)
            else:
                with sqlite3.connect(self._db_path) as db:
                    db.execute("PRAGMA journal_mode=WAL")
                    db.executescript(self._schema)
            self._initialized = True

    def _get_connection(self) -> sqlite3.Connection:
        self._ensure_initialized()
        if self._db_path == MEMORY:
            if self._persistent_conn is None:
                raise RuntimeError("Sync memory database connection not initialized")
            return self._persistent_conn
        return sqlite3.connect(self._db_path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for sync database connections."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            if self._should_close_connection:
                conn.close()

    def close(self) -> None:
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SQLiteStorageBase:
    """Base class for SQLite storage adapters.

    Delegates connection lifecycle to AsyncConnectionManager and
    SyncConnectionManager. Subclasses provide the schema and implement
    domain-specific read/write methods.

    With a :memory: database the sync and async connections do NOT share
    data: each manager holds its own in-memory database.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._async_manager = AsyncConnectionManager(db_path, schema)
        self._sync_manager = SyncConnectionManager(db_path, schema)

    @property
    def db_path(self) -> str:
        return self._db_path

    async def close(self) -> None:
        """Close persistent connections (for :memory: databases)."""
        await self._async_manager.close()
        self._sync_manager.close()

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections."""
        async with self._async_manager.connection() as conn:
            yield conn

    @contextmanager
    def sync_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for sync database connections."""
        with self._sync_manager.connection() as conn:
            yield conn
