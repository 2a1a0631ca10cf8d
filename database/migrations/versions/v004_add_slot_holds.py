"""Временные удержания слотов на время заполнения формы"""

from database.migrations.migration_manager import Migration


class AddSlotHolds(Migration):
    version = 4
    description = "Short-lived slot holds per client session"

    async def upgrade(self, db):
        # Одно удержание на сессию; просроченные строки удаляются при следующем удержании
        await db.execute(
            """CREATE TABLE IF NOT EXISTS slot_holds
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
             session_id TEXT NOT NULL UNIQUE,
             master_id INTEGER NOT NULL REFERENCES masters(id) ON DELETE CASCADE,
             start_at TEXT NOT NULL,
             end_at TEXT NOT NULL,
             expires_at TEXT NOT NULL,
             CHECK (start_at < end_at))"""
        )
        await db.execute(
            """CREATE INDEX IF NOT EXISTS idx_slot_holds_master_window
            ON slot_holds(master_id, start_at, end_at)"""
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS slot_holds")
