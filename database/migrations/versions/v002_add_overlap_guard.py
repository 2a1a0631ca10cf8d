"""Триггеры: активные записи одного мастера не пересекаются

Дублирует проверку BookingService на уровне БД. Нарушение дает
sqlite3.IntegrityError с текстом SLOT_TAKEN.
"""

from database.migrations.migration_manager import Migration

_OVERLAP_EXISTS = """EXISTS (
    SELECT 1 FROM appointments a
    WHERE a.master_id = NEW.master_id
      AND a.id IS NOT NEW.id
      AND a.status IN ('PENDING', 'CONFIRMED')
      AND a.deleted_at IS NULL
      AND a.start_at < NEW.end_at
      AND a.end_at > NEW.start_at)"""


class AddOverlapGuard(Migration):
    version = 2
    description = "Reject overlapping blocking appointments of the same master"

    async def upgrade(self, db):
        await db.execute(
            f"""CREATE TRIGGER IF NOT EXISTS trg_appointments_no_overlap_insert
            BEFORE INSERT ON appointments
            WHEN NEW.status IN ('PENDING', 'CONFIRMED') AND NEW.deleted_at IS NULL
            BEGIN
                SELECT RAISE(ABORT, 'SLOT_TAKEN') WHERE {_OVERLAP_EXISTS};
            END"""
        )
        # Восстановление из архива тоже может создать пересечение
        await db.execute(
            f"""CREATE TRIGGER IF NOT EXISTS trg_appointments_no_overlap_update
            BEFORE UPDATE OF status, deleted_at, start_at, end_at ON appointments
            WHEN NEW.status IN ('PENDING', 'CONFIRMED') AND NEW.deleted_at IS NULL
            BEGIN
                SELECT RAISE(ABORT, 'SLOT_TAKEN') WHERE {_OVERLAP_EXISTS};
            END"""
        )

    async def downgrade(self, db):
        await db.execute("DROP TRIGGER IF EXISTS trg_appointments_no_overlap_insert")
        await db.execute("DROP TRIGGER IF EXISTS trg_appointments_no_overlap_update")
