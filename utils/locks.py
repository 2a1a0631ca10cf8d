"""Блокировки на уровне ресурса (мастера) внутри процесса"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable


class ResourceLocks:
    """Реестр asyncio.Lock по ключу ресурса

    Коммиты одного мастера выполняются по очереди, разные мастера
    друг друга не ждут. Между процессами порядок обеспечивает
    транзакция записи в SQLite.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Никто больше не ждет - убираем, чтобы реестр не рос
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
