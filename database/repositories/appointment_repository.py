"""Репозиторий записей"""

from datetime import datetime
from typing import List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import Appointment, AppointmentStatus
from utils.datetime_utils import from_db, now_utc, to_db

# Активные записи: занимают календарь мастера
_BLOCKING = "status IN ('PENDING', 'CONFIRMED') AND deleted_at IS NULL"


def _row_to_appointment(row) -> Appointment:
    return Appointment(
        id=row["id"],
        master_id=row["master_id"],
        service_id=row["service_id"],
        client_id=row["client_id"],
        start_at=from_db(row["start_at"]),
        end_at=from_db(row["end_at"]),
        status=AppointmentStatus(row["status"]),
        customer_name=row["customer_name"],
        phone=row["phone"],
        email=row["email"],
        notes=row["notes"],
        created_at=from_db(row["created_at"]),
        deleted_at=from_db(row["deleted_at"]) if row["deleted_at"] else None,
    )


class AppointmentRepository(BaseRepository):

    async def get(
        self, appointment_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> Optional[Appointment]:
        row = await self._fetch_one(
            "SELECT * FROM appointments WHERE id=?", (appointment_id,), conn
        )
        return _row_to_appointment(row) if row else None

    async def find_blocking_in_range(
        self,
        master_id: int,
        range_start: datetime,
        range_end: datetime,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> List[Appointment]:
        """Активные записи мастера, пересекающие [range_start, range_end)"""
        rows = await self._fetch_all(
            f"""SELECT * FROM appointments
            WHERE master_id=? AND {_BLOCKING}
              AND start_at < ? AND end_at > ?
            ORDER BY start_at""",
            (master_id, to_db(range_end), to_db(range_start)),
            conn,
        )
        return [_row_to_appointment(row) for row in rows]

    async def find_conflict_id(
        self,
        conn: aiosqlite.Connection,
        master_id: int,
        start_at: datetime,
        end_at: datetime,
    ) -> Optional[int]:
        """Первая активная запись, пересекающая [start_at, end_at)"""
        row = await self._fetch_one(
            f"""SELECT id FROM appointments
            WHERE master_id=? AND {_BLOCKING}
              AND start_at < ? AND end_at > ?
            ORDER BY start_at LIMIT 1""",
            (master_id, to_db(end_at), to_db(start_at)),
            conn,
        )
        return row["id"] if row else None

    async def insert(self, conn: aiosqlite.Connection, appointment: Appointment) -> int:
        cursor = await conn.execute(
            """INSERT INTO appointments
            (master_id, service_id, client_id, start_at, end_at, status,
             customer_name, phone, email, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                appointment.master_id,
                appointment.service_id,
                appointment.client_id,
                to_db(appointment.start_at),
                to_db(appointment.end_at),
                appointment.status.value,
                appointment.customer_name,
                appointment.phone,
                appointment.email,
                appointment.notes,
                to_db(appointment.created_at or now_utc()),
            ),
        )
        appointment_id = cursor.lastrowid
        await self.add_history(conn, appointment_id, None, appointment.status)
        return appointment_id

    async def set_status(
        self,
        conn: aiosqlite.Connection,
        appointment_id: int,
        old_status: AppointmentStatus,
        new_status: AppointmentStatus,
    ) -> bool:
        """Смена статуса с проверкой старого значения"""
        cursor = await conn.execute(
            "UPDATE appointments SET status=? WHERE id=? AND status=?",
            (new_status.value, appointment_id, old_status.value),
        )
        if cursor.rowcount == 0:
            return False
        await self.add_history(conn, appointment_id, old_status, new_status)
        return True

    async def set_deleted_at(
        self, conn: aiosqlite.Connection, appointment_id: int, deleted_at: Optional[datetime]
    ) -> bool:
        cursor = await conn.execute(
            "UPDATE appointments SET deleted_at=? WHERE id=?",
            (to_db(deleted_at) if deleted_at else None, appointment_id),
        )
        return cursor.rowcount > 0

    async def add_history(
        self,
        conn: aiosqlite.Connection,
        appointment_id: int,
        old_status: Optional[AppointmentStatus],
        new_status: AppointmentStatus,
    ):
        await conn.execute(
            """INSERT INTO appointment_status_history
            (appointment_id, old_status, new_status, changed_at) VALUES (?, ?, ?, ?)""",
            (
                appointment_id,
                old_status.value if old_status else None,
                new_status.value,
                to_db(now_utc()),
            ),
        )

    async def get_history(self, appointment_id: int) -> List[tuple]:
        rows = await self._fetch_all(
            """SELECT old_status, new_status, changed_at FROM appointment_status_history
            WHERE appointment_id=? ORDER BY id""",
            (appointment_id,),
        )
        return [(row["old_status"], row["new_status"], row["changed_at"]) for row in rows]
