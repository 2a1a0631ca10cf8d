"""Репозиторий для работы с услугами"""

from typing import Iterable, List, Optional

from database.base_repository import BaseRepository
from database.models import Service


def _row_to_service(row) -> Service:
    return Service(
        id=row["id"],
        name=row["name"],
        duration_min=row["duration_min"],
        is_active=bool(row["is_active"]),
        is_archived=bool(row["is_archived"]),
    )


class ServiceRepository(BaseRepository):
    """Репозиторий для услуг"""

    async def get_service_by_id(self, service_id: int) -> Optional[Service]:
        """Получить услугу по ID"""
        row = await self._fetch_one("SELECT * FROM services WHERE id=?", (service_id,))
        return _row_to_service(row) if row else None

    async def get_services_by_ids(self, service_ids: Iterable[int]) -> List[Service]:
        """Услуги по списку ID (несуществующие просто отсутствуют в ответе)"""
        ids = list(dict.fromkeys(service_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        rows = await self._fetch_all(
            f"SELECT * FROM services WHERE id IN ({placeholders}) ORDER BY id", ids
        )
        return [_row_to_service(row) for row in rows]

    async def get_bookable_services(self, service_ids: Iterable[int]) -> List[Service]:
        """Только активные и не архивные услуги"""
        return [s for s in await self.get_services_by_ids(service_ids) if s.is_bookable]

    async def create_service(self, service: Service) -> int:
        """Создать новую услугу"""
        cursor = await self._execute(
            """INSERT INTO services (name, duration_min, is_active, is_archived)
            VALUES (?, ?, ?, ?)""",
            (service.name, service.duration_min, int(service.is_active), int(service.is_archived)),
        )
        return cursor.lastrowid

    async def archive_service(self, service_id: int) -> bool:
        """Архивировать услугу (мягкое удаление)"""
        cursor = await self._execute(
            "UPDATE services SET is_archived=1 WHERE id=?", (service_id,)
        )
        return cursor.rowcount > 0

    async def assign_to_master(self, master_id: int, service_ids: Iterable[int]):
        """Мастер выполняет эти услуги"""
        async with self.db.transaction() as tx:
            for service_id in service_ids:
                await tx.execute(
                    "INSERT OR IGNORE INTO master_services (master_id, service_id) VALUES (?, ?)",
                    (master_id, service_id),
                )

    async def master_covers_all(self, master_id: int, service_ids: Iterable[int]) -> bool:
        """Выполняет ли мастер все перечисленные услуги"""
        ids = list(dict.fromkeys(service_ids))
        if not ids:
            return True
        placeholders = ",".join("?" for _ in ids)
        count = await self._count(
            "master_services",
            f"master_id=? AND service_id IN ({placeholders})",
            (master_id, *ids),
        )
        return count == len(ids)
