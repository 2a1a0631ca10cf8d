"""Конфигурация pytest и общие фикстуры для всех тестов

Этот файл содержит:
- Настройку тестовой среды (переменные окружения до импорта config)
- Временную БД на каждый тест
- Фикстуры мастеров, услуг и расписания
- Фикстуры сервисов
"""

import os
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

# Добавляем корневую папку в PYTHONPATH
sys.path.insert(0, str(Path(__file__).parent.parent))

# ============================================================================
# НАСТРОЙКА ТЕСТОВОЙ СРЕДЫ
# ============================================================================

# Настройка переменных окружения ДО импорта config
os.environ["ORG_TZ"] = "Europe/Berlin"
os.environ["SLOT_STEP_MIN"] = "5"
os.environ["BREAK_AFTER_MIN"] = "0"
os.environ["MIN_LEAD_MIN"] = "0"
os.environ["DB_BUSY_TIMEOUT"] = "10"

# Теперь можно импортировать модули проекта
from database.models import Appointment, AppointmentStatus, ClientInfo, Service  # noqa: E402
from database.queries import Database  # noqa: E402
from database.repositories import (  # noqa: E402
    AppointmentRepository,
    MasterRepository,
    ServiceRepository,
)
from services.availability_service import AvailabilityService  # noqa: E402
from services.booking_service import BookingService  # noqa: E402
from utils.datetime_utils import wall_minutes_to_utc  # noqa: E402

WORK_START = 9 * 60
WORK_END = 18 * 60


# ============================================================================
# PYTEST КОНФИГУРАЦИЯ
# ============================================================================


def pytest_configure(config):
    """Регистрация пользовательских маркеров"""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: integration test")
    config.addinivalue_line("markers", "unit: unit test")


# ============================================================================
# БД
# ============================================================================


@pytest.fixture
async def db(tmp_path):
    """Свежая БД с примененными миграциями"""
    database = Database(str(tmp_path / "test_bookings.db"), busy_timeout=10)
    await database.open()
    yield database
    await database.close()


@pytest.fixture
def master_repo(db):
    return MasterRepository(db)


@pytest.fixture
def service_repo(db):
    return ServiceRepository(db)


@pytest.fixture
def appointment_repo(db):
    return AppointmentRepository(db)


# ============================================================================
# ДАННЫЕ
# ============================================================================


@pytest.fixture
async def master_id(master_repo):
    """Мастер, работающий каждый день 09:00-18:00"""
    new_id = await master_repo.create_master("Анна")
    for weekday in range(7):
        await master_repo.set_working_hours(new_id, weekday, WORK_START, WORK_END)
    return new_id


@pytest.fixture
def create_service(service_repo, master_repo):
    """Создание услуги, по умолчанию назначенной мастеру"""

    async def _create(
        duration_min: int,
        master: Optional[int] = None,
        name: str = "Маникюр",
        is_active: bool = True,
        is_archived: bool = False,
    ) -> int:
        service_id = await service_repo.create_service(
            Service(
                id=None,
                name=name,
                duration_min=duration_min,
                is_active=is_active,
                is_archived=is_archived,
            )
        )
        if master is not None:
            await service_repo.assign_to_master(master, [service_id])
        return service_id

    return _create


@pytest.fixture
def create_appointment(db, appointment_repo):
    """Запись напрямую в БД по стенным минутам дня (в обход сервиса)"""

    async def _create(
        master: int,
        day: date,
        start_minutes: int,
        end_minutes: int,
        status: AppointmentStatus = AppointmentStatus.PENDING,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
    ) -> int:
        appointment = Appointment(
            id=None,
            master_id=master,
            service_id=None,
            start_at=start_at or wall_minutes_to_utc(day, start_minutes),
            end_at=end_at or wall_minutes_to_utc(day, end_minutes),
            status=status,
            customer_name="Тест",
        )
        async with db.transaction() as tx:
            return await appointment_repo.insert(tx, appointment)

    return _create


@pytest.fixture
def client_info():
    return ClientInfo(name="Мария", phone="+49 151 1234567", email="maria@example.com")


# ============================================================================
# СЕРВИСЫ
# ============================================================================


@pytest.fixture
def availability(db):
    return AvailabilityService(db, step_min=5, break_after_min=0, min_lead_min=0)


@pytest.fixture
def booking_service(db):
    return BookingService(db)


@pytest.fixture
def at_wall():
    """UTC-момент по стенному времени дня"""

    def _at(day: date, minutes: int, seconds: int = 0) -> datetime:
        return wall_minutes_to_utc(day, minutes) + timedelta(seconds=seconds)

    return _at
