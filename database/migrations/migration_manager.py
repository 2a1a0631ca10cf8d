"""Менеджер миграций базы данных"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Type

import aiosqlite


class Migration(ABC):
    """Базовый класс для миграций"""

    version: int
    description: str

    @abstractmethod
    async def upgrade(self, db: aiosqlite.Connection):
        """Применить миграцию"""

    @abstractmethod
    async def downgrade(self, db: aiosqlite.Connection):
        """Откатить миграцию"""


class MigrationManager:
    """Управление миграциями базы данных"""

    def __init__(self, db_path: str, timeout: float = 5.0):
        self.db_path = db_path
        self.timeout = timeout
        self.migrations: List[Type[Migration]] = []

    def register(self, migration_class: Type[Migration]):
        """Регистрация миграции"""
        if any(m.version == migration_class.version for m in self.migrations):
            raise ValueError(f"Duplicate migration version {migration_class.version}")
        self.migrations.append(migration_class)
        self.migrations.sort(key=lambda m: m.version)

    def register_many(self, migration_classes: Iterable[Type[Migration]]):
        for migration_class in migration_classes:
            self.register(migration_class)

    @property
    def latest_version(self) -> int:
        return max((m.version for m in self.migrations), default=0)

    async def init_migrations_table(self):
        """Создание таблицы миграций"""
        async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
            await db.execute(
                """CREATE TABLE IF NOT EXISTS schema_migrations
                (version INTEGER PRIMARY KEY,
                 description TEXT,
                 applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"""
            )
            await db.commit()

    async def get_current_version(self) -> int:
        """Получить текущую версию схемы"""
        await self.init_migrations_table()
        async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
            async with db.execute(
                "SELECT MAX(version) FROM schema_migrations"
            ) as cursor:
                result = await cursor.fetchone()
                return result[0] if result and result[0] else 0

    async def migrate(self, target_version: Optional[int] = None) -> int:
        """Применить миграции до target_version (по умолчанию - до последней)

        Returns:
            Количество примененных миграций
        """
        current = await self.get_current_version()
        target = self.latest_version if target_version is None else target_version

        if current >= target:
            logging.info(f"Database already at version {current}")
            return 0

        applied = 0
        async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
            for migration_class in self.migrations:
                if not current < migration_class.version <= target:
                    continue
                migration = migration_class()
                logging.info(
                    f"Applying migration {migration.version}: {migration.description}"
                )
                try:
                    # IMMEDIATE: два процесса не применят одну миграцию дважды
                    await db.execute("BEGIN IMMEDIATE")
                    async with db.execute(
                        "SELECT 1 FROM schema_migrations WHERE version=?",
                        (migration.version,),
                    ) as cursor:
                        already = await cursor.fetchone()
                    if already:
                        await db.rollback()
                        continue
                    await migration.upgrade(db)
                    await db.execute(
                        "INSERT INTO schema_migrations (version, description) VALUES (?, ?)",
                        (migration.version, migration.description),
                    )
                    await db.commit()
                    applied += 1
                    logging.info(f"Migration {migration.version} applied")
                except Exception as e:
                    await db.rollback()
                    logging.error(f"Migration {migration.version} failed: {e}")
                    raise
        return applied

    async def rollback(self, target_version: int) -> int:
        """Откатить миграции до target_version"""
        current = await self.get_current_version()

        if current <= target_version:
            logging.info("Nothing to rollback")
            return 0

        rolled_back = 0
        async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
            for migration_class in reversed(self.migrations):
                if not target_version < migration_class.version <= current:
                    continue
                migration = migration_class()
                logging.info(f"Rolling back migration {migration.version}")
                try:
                    await db.execute("BEGIN IMMEDIATE")
                    await migration.downgrade(db)
                    await db.execute(
                        "DELETE FROM schema_migrations WHERE version=?",
                        (migration.version,),
                    )
                    await db.commit()
                    rolled_back += 1
                    logging.info(f"Migration {migration.version} rolled back")
                except Exception as e:
                    await db.rollback()
                    logging.error(f"Rollback {migration.version} failed: {e}")
                    raise
        return rolled_back
