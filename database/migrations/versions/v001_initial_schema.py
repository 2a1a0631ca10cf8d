"""Начальная схема: мастера, услуги, расписание, клиенты, записи"""

from database.migrations.migration_manager import Migration


class InitialSchema(Migration):
    version = 1
    description = "Masters, services, working hours, time off, clients and appointments"

    async def upgrade(self, db):
        await db.execute(
            """CREATE TABLE IF NOT EXISTS masters
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            lock_version INTEGER NOT NULL DEFAULT 0)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS services
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            duration_min INTEGER NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            is_archived INTEGER NOT NULL DEFAULT 0)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS master_services
            (master_id INTEGER NOT NULL REFERENCES masters(id) ON DELETE CASCADE,
            service_id INTEGER NOT NULL REFERENCES services(id) ON DELETE CASCADE,
            PRIMARY KEY (master_id, service_id))"""
        )

        # Одна строка на мастера и день недели (0 = воскресенье)
        await db.execute(
            """CREATE TABLE IF NOT EXISTS working_hours
            (master_id INTEGER NOT NULL REFERENCES masters(id) ON DELETE CASCADE,
            weekday INTEGER NOT NULL CHECK (weekday BETWEEN 0 AND 6),
            is_closed INTEGER NOT NULL DEFAULT 0,
            start_minutes INTEGER NOT NULL DEFAULT 0,
            end_minutes INTEGER NOT NULL DEFAULT 0,
            CHECK (0 <= start_minutes AND start_minutes <= end_minutes AND end_minutes <= 1440),
            PRIMARY KEY (master_id, weekday))"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS time_off
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            master_id INTEGER NOT NULL REFERENCES masters(id) ON DELETE CASCADE,
            date TEXT NOT NULL,
            start_minutes INTEGER NOT NULL,
            end_minutes INTEGER NOT NULL,
            reason TEXT,
            CHECK (0 <= start_minutes AND start_minutes <= end_minutes AND end_minutes <= 1440))"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS clients
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            phone TEXT,
            email TEXT,
            created_at TEXT NOT NULL)"""
        )

        # start_at/end_at - UTC ISO фиксированной ширины, интервал [start_at, end_at)
        await db.execute(
            """CREATE TABLE IF NOT EXISTS appointments
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            master_id INTEGER NOT NULL REFERENCES masters(id),
            service_id INTEGER REFERENCES services(id),
            client_id INTEGER REFERENCES clients(id),
            start_at TEXT NOT NULL,
            end_at TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING'
                CHECK (status IN ('PENDING', 'CONFIRMED', 'DONE', 'CANCELED')),
            customer_name TEXT,
            phone TEXT,
            email TEXT,
            notes TEXT,
            created_at TEXT NOT NULL,
            deleted_at TEXT,
            CHECK (start_at < end_at))"""
        )

        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_time_off_master_date ON time_off(master_id, date)"
        )
        await db.execute(
            """CREATE INDEX IF NOT EXISTS idx_appointments_master_window
            ON appointments(master_id, start_at, end_at)"""
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_clients_phone ON clients(phone)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_clients_email ON clients(email)"
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS appointments")
        await db.execute("DROP TABLE IF EXISTS clients")
        await db.execute("DROP TABLE IF EXISTS time_off")
        await db.execute("DROP TABLE IF EXISTS working_hours")
        await db.execute("DROP TABLE IF EXISTS master_services")
        await db.execute("DROP TABLE IF EXISTS services")
        await db.execute("DROP TABLE IF EXISTS masters")
