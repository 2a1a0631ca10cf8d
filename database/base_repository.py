"""Базовый репозиторий"""

from typing import Any, List, Optional, Sequence

import aiosqlite

from database.queries import Database


class BaseRepository:
    """Общие помощники запросов

    Каждый метод принимает необязательное соединение conn: внутри
    транзакции запросы идут через нее, иначе - через общее соединение
    для чтения.
    """

    def __init__(self, db: Database):
        self.db = db

    async def _fetch_one(
        self, query: str, params: Sequence[Any] = (), conn: Optional[aiosqlite.Connection] = None
    ) -> Optional[aiosqlite.Row]:
        if conn is not None:
            async with conn.execute(query, params) as cursor:
                return await cursor.fetchone()
        async with self.db.connect() as reader:
            async with reader.execute(query, params) as cursor:
                return await cursor.fetchone()

    async def _fetch_all(
        self, query: str, params: Sequence[Any] = (), conn: Optional[aiosqlite.Connection] = None
    ) -> List[aiosqlite.Row]:
        if conn is not None:
            async with conn.execute(query, params) as cursor:
                return list(await cursor.fetchall())
        async with self.db.connect() as reader:
            async with reader.execute(query, params) as cursor:
                return list(await cursor.fetchall())

    async def _execute(
        self, query: str, params: Sequence[Any] = (), conn: Optional[aiosqlite.Connection] = None
    ) -> aiosqlite.Cursor:
        """Запись. Без conn открывает собственную короткую транзакцию."""
        if conn is not None:
            return await conn.execute(query, params)
        async with self.db.transaction() as tx:
            return await tx.execute(query, params)

    async def _exists(
        self, table: str, where: str, params: Sequence[Any] = (), conn: Optional[aiosqlite.Connection] = None
    ) -> bool:
        row = await self._fetch_one(f"SELECT 1 FROM {table} WHERE {where} LIMIT 1", params, conn)
        return row is not None

    async def _count(
        self, table: str, where: str = "1=1", params: Sequence[Any] = (), conn: Optional[aiosqlite.Connection] = None
    ) -> int:
        row = await self._fetch_one(f"SELECT COUNT(*) FROM {table} WHERE {where}", params, conn)
        return row[0] if row else 0
