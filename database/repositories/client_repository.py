"""Репозиторий клиентов"""

from typing import Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import Client, ClientInfo
from utils.datetime_utils import now_utc, to_db


class ClientRepository(BaseRepository):

    async def find_by_contact(
        self,
        phone: Optional[str],
        email: Optional[str],
        conn: Optional[aiosqlite.Connection] = None,
    ) -> Optional[Client]:
        """Найти клиента по телефону или e-mail (первый созданный)"""
        clauses, params = [], []
        if phone:
            clauses.append("phone=?")
            params.append(phone)
        if email:
            clauses.append("lower(email)=lower(?)")
            params.append(email)
        if not clauses:
            return None
        row = await self._fetch_one(
            f"SELECT id, name, phone, email FROM clients WHERE {' OR '.join(clauses)} "
            "ORDER BY id LIMIT 1",
            params,
            conn,
        )
        if not row:
            return None
        return Client(id=row["id"], name=row["name"], phone=row["phone"], email=row["email"])

    async def create(self, info: ClientInfo, conn: Optional[aiosqlite.Connection] = None) -> int:
        cursor = await self._execute(
            "INSERT INTO clients (name, phone, email, created_at) VALUES (?, ?, ?, ?)",
            (info.name, info.phone, info.email, to_db(now_utc())),
            conn,
        )
        return cursor.lastrowid

    async def resolve(self, info: ClientInfo, conn: aiosqlite.Connection) -> int:
        """Существующий клиент по контактам или новый"""
        existing = await self.find_by_contact(info.phone, info.email, conn)
        if existing:
            return existing.id
        return await self.create(info, conn)
