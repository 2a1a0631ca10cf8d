"""
CLI для управления миграциями

Использование:
    python migrate.py migrate        # Применить все миграции
    python migrate.py migrate 2      # Применить до версии 2
    python migrate.py rollback 1     # Откатить до версии 1
    python migrate.py current        # Показать текущую версию
    python migrate.py list           # Список миграций и их состояние
"""

import asyncio
import logging
import sys
from typing import List

from config import DATABASE_PATH, DB_BUSY_TIMEOUT, LOG_LEVEL
from database.migrations.migration_manager import MigrationManager
from database.migrations.versions import ALL_MIGRATIONS


def build_manager(db_path: str = DATABASE_PATH) -> MigrationManager:
    manager = MigrationManager(db_path, timeout=DB_BUSY_TIMEOUT)
    manager.register_many(ALL_MIGRATIONS)
    return manager


async def run(args: List[str], db_path: str = DATABASE_PATH) -> int:
    """Выполнить команду, вернуть код выхода"""
    if not args:
        print(__doc__)
        return 1

    manager = build_manager(db_path)
    command = args[0].lower()

    if command == "migrate":
        target = int(args[1]) if len(args) > 1 else None
        applied = await manager.migrate(target)
        current = await manager.get_current_version()
        print(f"Applied {applied} migration(s). Current version: {current}")

    elif command == "rollback":
        if len(args) < 2:
            print("Error: rollback requires target version")
            print("Usage: python migrate.py rollback <version>")
            return 1
        rolled_back = await manager.rollback(int(args[1]))
        current = await manager.get_current_version()
        print(f"Rolled back {rolled_back} migration(s). Current version: {current}")

    elif command == "current":
        version = await manager.get_current_version()
        latest = manager.latest_version
        print(f"Current database version: {version}")
        print(f"Latest available version: {latest}")
        if version < latest:
            print(f"Database needs migration ({version} -> {latest})")
            print("Run: python migrate.py migrate")
        else:
            print("Database is up to date")

    elif command == "list":
        version = await manager.get_current_version()
        for migration in manager.migrations:
            mark = "x" if migration.version <= version else " "
            print(f"[{mark}] {migration.version:03d} {migration.description}")

    else:
        print(f"Unknown command: {command}")
        print(__doc__)
        return 1

    return 0


def main() -> int:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )
    try:
        return asyncio.run(run(sys.argv[1:]))
    except Exception as e:
        logging.error(f"Migration failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
