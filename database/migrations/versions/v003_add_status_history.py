"""История смены статусов записей"""

from database.migrations.migration_manager import Migration


class AddStatusHistory(Migration):
    version = 3
    description = "Appointment status history"

    async def upgrade(self, db):
        await db.execute(
            """CREATE TABLE IF NOT EXISTS appointment_status_history
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
             appointment_id INTEGER NOT NULL REFERENCES appointments(id) ON DELETE CASCADE,
             old_status TEXT,
             new_status TEXT NOT NULL,
             changed_at TEXT NOT NULL)"""
        )
        await db.execute(
            """CREATE INDEX IF NOT EXISTS idx_status_history_appointment
            ON appointment_status_history(appointment_id, changed_at)"""
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS appointment_status_history")
