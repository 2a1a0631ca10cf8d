"""Хранилище: соединения и транзакции SQLite"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiosqlite

from config import DATABASE_PATH, DB_BUSY_TIMEOUT
from database.migrations.migration_manager import MigrationManager
from database.migrations.versions import ALL_MIGRATIONS


class DatabaseNotOpenError(RuntimeError):
    pass


class Database:
    """Дескриптор хранилища с явным жизненным циклом

    Открывается при старте (миграции, WAL), закрывается при остановке.
    Чтение идет через одно общее соединение, каждая транзакция записи
    получает собственное соединение.

    Пример:
        async with Database("bookings.db") as db:
            ...
    """

    def __init__(self, db_path: str = DATABASE_PATH, busy_timeout: float = DB_BUSY_TIMEOUT):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._reader: Optional[aiosqlite.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._reader is not None

    async def init_db(self) -> int:
        """Применить все миграции"""
        manager = MigrationManager(self.db_path, timeout=self.busy_timeout)
        manager.register_many(ALL_MIGRATIONS)
        applied = await manager.migrate()
        logging.info(f"Database schema ready at version {manager.latest_version}")
        return applied

    async def open(self) -> "Database":
        if self.is_open:
            return self
        await self.init_db()
        self._reader = await self._connect()
        # Курсор PRAGMA нужно закрыть, иначе читатель держит блокировку
        async with self._reader.execute("PRAGMA journal_mode=WAL"):
            pass
        logging.info(f"Database opened: {self.db_path}")
        return self

    async def close(self):
        if self._reader is None:
            return
        reader, self._reader = self._reader, None
        await reader.close()
        logging.info(f"Database closed: {self.db_path}")

    async def __aenter__(self) -> "Database":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self.db_path, timeout=self.busy_timeout)
        db.row_factory = aiosqlite.Row
        async with db.execute("PRAGMA foreign_keys=ON"):
            pass
        return db

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Общее соединение для чтения (без блокировок)"""
        if self._reader is None:
            raise DatabaseNotOpenError("Database is not open, call open() first")
        yield self._reader

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Транзакция записи: BEGIN IMMEDIATE -> commit / rollback

        Любое исключение внутри блока откатывает транзакцию и
        пробрасывается дальше.
        """
        if self._reader is None:
            raise DatabaseNotOpenError("Database is not open, call open() first")
        db = await self._connect()
        try:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            await db.commit()
        finally:
            await db.close()
