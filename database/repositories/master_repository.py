"""Репозиторий мастеров и их расписания"""

from datetime import date
from typing import List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import Master, TimeOff, WorkingHours


class MasterRepository(BaseRepository):
    """Мастера, рабочие часы и исключения (time off)"""

    async def get_master(self, master_id: int) -> Optional[Master]:
        row = await self._fetch_one(
            "SELECT id, name, is_active FROM masters WHERE id=?", (master_id,)
        )
        if not row:
            return None
        return Master(id=row["id"], name=row["name"], is_active=bool(row["is_active"]))

    async def create_master(self, name: str, is_active: bool = True) -> int:
        cursor = await self._execute(
            "INSERT INTO masters (name, is_active) VALUES (?, ?)", (name, int(is_active))
        )
        return cursor.lastrowid

    async def lock_master(self, conn: aiosqlite.Connection, master_id: int) -> bool:
        """Эксклюзивная блокировка строки мастера до конца транзакции

        Аналог SELECT ... FOR UPDATE: запись в строку мастера делает
        транзакцию пишущей, параллельные коммиты ждут ее завершения.

        Returns:
            False, если мастера нет
        """
        cursor = await conn.execute(
            "UPDATE masters SET lock_version = lock_version + 1 WHERE id=?", (master_id,)
        )
        return cursor.rowcount > 0

    async def set_working_hours(
        self,
        master_id: int,
        weekday: int,
        start_minutes: int = 0,
        end_minutes: int = 0,
        is_closed: bool = False,
    ):
        """Задать рабочие часы на день недели (0 = воскресенье)"""
        await self._execute(
            """INSERT INTO working_hours (master_id, weekday, is_closed, start_minutes, end_minutes)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(master_id, weekday) DO UPDATE SET
                is_closed=excluded.is_closed,
                start_minutes=excluded.start_minutes,
                end_minutes=excluded.end_minutes""",
            (master_id, weekday, int(is_closed), start_minutes, end_minutes),
        )

    async def get_working_hours(self, master_id: int, weekday: int) -> Optional[WorkingHours]:
        row = await self._fetch_one(
            """SELECT master_id, weekday, is_closed, start_minutes, end_minutes
            FROM working_hours WHERE master_id=? AND weekday=?""",
            (master_id, weekday),
        )
        if not row:
            return None
        return WorkingHours(
            master_id=row["master_id"],
            weekday=row["weekday"],
            is_closed=bool(row["is_closed"]),
            start_minutes=row["start_minutes"],
            end_minutes=row["end_minutes"],
        )

    async def get_week(self, master_id: int) -> List[WorkingHours]:
        rows = await self._fetch_all(
            """SELECT master_id, weekday, is_closed, start_minutes, end_minutes
            FROM working_hours WHERE master_id=? ORDER BY weekday""",
            (master_id,),
        )
        return [
            WorkingHours(
                master_id=row["master_id"],
                weekday=row["weekday"],
                is_closed=bool(row["is_closed"]),
                start_minutes=row["start_minutes"],
                end_minutes=row["end_minutes"],
            )
            for row in rows
        ]

    async def add_time_off(
        self,
        master_id: int,
        day: date,
        start_minutes: int,
        end_minutes: int,
        reason: Optional[str] = None,
    ) -> int:
        cursor = await self._execute(
            """INSERT INTO time_off (master_id, date, start_minutes, end_minutes, reason)
            VALUES (?, ?, ?, ?, ?)""",
            (master_id, day.isoformat(), start_minutes, end_minutes, reason),
        )
        return cursor.lastrowid

    async def get_time_off(self, master_id: int, day: date) -> List[TimeOff]:
        """Исключения на локальную дату (в любом порядке, не слитые)"""
        rows = await self._fetch_all(
            """SELECT id, master_id, date, start_minutes, end_minutes, reason
            FROM time_off WHERE master_id=? AND date=? ORDER BY start_minutes""",
            (master_id, day.isoformat()),
        )
        return [
            TimeOff(
                id=row["id"],
                master_id=row["master_id"],
                date=date.fromisoformat(row["date"]),
                start_minutes=row["start_minutes"],
                end_minutes=row["end_minutes"],
                reason=row["reason"],
            )
            for row in rows
        ]

    async def clear_time_off(self, master_id: int, day: date) -> int:
        cursor = await self._execute(
            "DELETE FROM time_off WHERE master_id=? AND date=?",
            (master_id, day.isoformat()),
        )
        return cursor.rowcount
