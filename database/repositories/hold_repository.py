"""Репозиторий временных удержаний слотов"""

from datetime import datetime
from typing import List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import SlotHold
from utils.datetime_utils import from_db, to_db


def _row_to_hold(row) -> SlotHold:
    return SlotHold(
        id=row["id"],
        session_id=row["session_id"],
        master_id=row["master_id"],
        start_at=from_db(row["start_at"]),
        end_at=from_db(row["end_at"]),
        expires_at=from_db(row["expires_at"]),
    )


class HoldRepository(BaseRepository):
    """Удержания живут до expires_at; просроченные не блокируют"""

    async def purge_expired(self, conn: aiosqlite.Connection, now: datetime) -> int:
        cursor = await conn.execute(
            "DELETE FROM slot_holds WHERE expires_at <= ?", (to_db(now),)
        )
        return cursor.rowcount

    async def find_conflict_id(
        self,
        conn: aiosqlite.Connection,
        master_id: int,
        start_at: datetime,
        end_at: datetime,
        now: datetime,
        session_id: Optional[str] = None,
    ) -> Optional[int]:
        """Живое удержание другой сессии, пересекающее [start_at, end_at)"""
        row = await self._fetch_one(
            """SELECT id FROM slot_holds
            WHERE master_id=? AND expires_at > ?
              AND start_at < ? AND end_at > ?
              AND session_id IS NOT ?
            ORDER BY start_at LIMIT 1""",
            (master_id, to_db(now), to_db(end_at), to_db(start_at), session_id),
            conn,
        )
        return row["id"] if row else None

    async def find_live_in_range(
        self,
        master_id: int,
        range_start: datetime,
        range_end: datetime,
        now: datetime,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> List[SlotHold]:
        rows = await self._fetch_all(
            """SELECT * FROM slot_holds
            WHERE master_id=? AND expires_at > ?
              AND start_at < ? AND end_at > ?
            ORDER BY start_at""",
            (master_id, to_db(now), to_db(range_end), to_db(range_start)),
            conn,
        )
        return [_row_to_hold(row) for row in rows]

    async def upsert(self, conn: aiosqlite.Connection, hold: SlotHold) -> SlotHold:
        """Одно удержание на сессию: повторный вызов переносит его"""
        await conn.execute(
            """INSERT INTO slot_holds (session_id, master_id, start_at, end_at, expires_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                master_id=excluded.master_id,
                start_at=excluded.start_at,
                end_at=excluded.end_at,
                expires_at=excluded.expires_at""",
            (
                hold.session_id,
                hold.master_id,
                to_db(hold.start_at),
                to_db(hold.end_at),
                to_db(hold.expires_at),
            ),
        )
        row = await self._fetch_one(
            "SELECT * FROM slot_holds WHERE session_id=?", (hold.session_id,), conn
        )
        return _row_to_hold(row)

    async def get_by_session(self, session_id: str) -> Optional[SlotHold]:
        row = await self._fetch_one(
            "SELECT * FROM slot_holds WHERE session_id=?", (session_id,)
        )
        return _row_to_hold(row) if row else None

    async def release(self, session_id: str, conn: Optional[aiosqlite.Connection] = None) -> bool:
        cursor = await self._execute(
            "DELETE FROM slot_holds WHERE session_id=?", (session_id,), conn
        )
        return cursor.rowcount > 0
