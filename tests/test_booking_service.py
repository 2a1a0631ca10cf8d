"""Тесты для services/booking_service.py

Покрывает:
- Создание записи
- Конфликты: пересечение на минуту, касание границ
- Конкурентные коммиты одного окна
- Поиск клиента по контактам
- Валидацию до открытия транзакции
- Смену статуса и историю
- Архив и восстановление
- Триггер пересечений на уровне БД
- Перерыв после записи при коммите
- Временные удержания слотов
- Сбои хранилища
"""

import asyncio
import logging
import sqlite3
from datetime import date, datetime, timedelta

import aiosqlite
import pytest

from database.models import AppointmentStatus, ClientInfo
from services.availability_service import AvailabilityService
from services.booking_service import BookingService
from utils.errors import (
    ConflictError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    SlotTakenError,
    ValidationError,
)
from utils.helpers import normalize_phone
from utils.locks import ResourceLocks

SUMMER_DAY = date(2025, 6, 10)


async def count_rows(db, table: str) -> int:
    async with aiosqlite.connect(db.db_path) as conn:
        async with conn.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
            return (await cursor.fetchone())[0]


class TestCreateBooking:
    """Создание записи"""

    @pytest.mark.asyncio
    async def test_success(self, booking_service, master_id, client_info, at_wall, appointment_repo):
        """Успешная запись в статусе PENDING"""
        start = at_wall(SUMMER_DAY, 600)

        result = await booking_service.create_booking(master_id, start, client_info, duration_min=30)

        assert result.appointment_id > 0
        assert result.status == AppointmentStatus.PENDING
        assert result.start_at == start
        assert result.end_at == start + timedelta(minutes=30)
        assert result.to_dict() == {
            "appointmentId": result.appointment_id,
            "startAt": "2025-06-10T08:00:00Z",
            "endAt": "2025-06-10T08:30:00Z",
            "status": "PENDING",
        }

        stored = await appointment_repo.get(result.appointment_id)
        assert stored.master_id == master_id
        assert stored.start_at == start
        assert stored.customer_name == "Мария"
        assert stored.phone == "+491511234567"
        assert stored.email == "maria@example.com"

    @pytest.mark.asyncio
    async def test_booked_window_disappears_from_slots(
        self, booking_service, availability, master_id, client_info, at_wall
    ):
        await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )

        slots = await availability.get_free_slots(SUMMER_DAY, master_id, duration_min=30)
        result = [s.start_minutes for s in slots]

        assert 570 in result
        assert 600 not in result
        assert 630 in result

    @pytest.mark.asyncio
    async def test_booking_with_services(
        self, booking_service, master_id, client_info, create_service, at_wall, appointment_repo
    ):
        """Длительность = сумма услуг, в запись идет первая услуга"""
        manicure = await create_service(30, master=master_id)
        design = await create_service(15, master=master_id, name="Дизайн")
        start = at_wall(SUMMER_DAY, 600)

        result = await booking_service.create_booking(
            master_id, start, client_info, service_ids=[manicure, design]
        )

        assert result.end_at - result.start_at == timedelta(minutes=45)
        stored = await appointment_repo.get(result.appointment_id)
        assert stored.service_id == manicure


class TestConflicts:
    """Пересечения с существующими записями"""

    @pytest.mark.asyncio
    async def test_one_minute_overlap_rejected(
        self, booking_service, master_id, client_info, create_appointment, at_wall
    ):
        """Пересечение даже на одну минуту - конфликт"""
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        with pytest.raises(SlotTakenError) as exc_info:
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 571), client_info, duration_min=30
            )

        assert exc_info.value.retryable
        assert exc_info.value.to_dict()["error"] == "SLOT_TAKEN"

    @pytest.mark.asyncio
    async def test_conflict_alias(
        self, booking_service, master_id, client_info, create_appointment, at_wall
    ):
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        with pytest.raises(ConflictError):
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 629), client_info, duration_min=30
            )

    @pytest.mark.asyncio
    async def test_starting_at_existing_end_succeeds(
        self, booking_service, master_id, client_info, create_appointment, at_wall
    ):
        """Касание границ - не пересечение"""
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        after = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 630), client_info, duration_min=30
        )
        before = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 570), client_info, duration_min=30
        )

        assert after.appointment_id != before.appointment_id

    @pytest.mark.asyncio
    async def test_canceled_appointment_does_not_conflict(
        self, booking_service, master_id, client_info, create_appointment, at_wall
    ):
        await create_appointment(
            master_id, SUMMER_DAY, 600, 630, status=AppointmentStatus.CANCELED
        )

        result = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )
        assert result.status == AppointmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_failed_booking_leaves_no_rows(
        self, db, booking_service, master_id, client_info, create_appointment, at_wall
    ):
        """Конфликт откатывает транзакцию целиком, клиент тоже не создается"""
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        with pytest.raises(SlotTakenError):
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 610), client_info, duration_min=30
            )

        assert await count_rows(db, "appointments") == 1
        assert await count_rows(db, "clients") == 0


class TestConcurrency:
    """Параллельные коммиты одного окна"""

    @pytest.mark.asyncio
    async def test_same_window_one_winner(self, db, booking_service, master_id, at_wall):
        start = at_wall(SUMMER_DAY, 600)
        clients = [
            ClientInfo(name=f"Клиент {i}", phone=f"+4915100000{i:02d}") for i in range(5)
        ]

        results = await asyncio.gather(
            *[
                booking_service.create_booking(master_id, start, c, duration_min=30)
                for c in clients
            ],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, SlotTakenError)]
        assert len(successes) == 1
        assert len(conflicts) == 4
        assert await count_rows(db, "appointments") == 1

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_separate_services_serialized_by_database(self, db, master_id, at_wall):
        """Разные экземпляры сервиса (без общих asyncio.Lock) - порядок дает БД"""
        services = [BookingService(db, locks=ResourceLocks()) for _ in range(3)]
        client = ClientInfo(name="Мария", phone="+491511234567")

        results = await asyncio.gather(
            *[
                service.create_booking(
                    master_id, at_wall(SUMMER_DAY, 600 + i * 10), client, duration_min=30
                )
                for i, service in enumerate(services)
            ],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, SlotTakenError)]
        assert len(successes) == 1
        assert len(conflicts) == 2
        assert await count_rows(db, "appointments") == 1

    @pytest.mark.asyncio
    async def test_different_masters_do_not_conflict(
        self, booking_service, master_id, master_repo, client_info, at_wall
    ):
        other = await master_repo.create_master("Ольга")
        start = at_wall(SUMMER_DAY, 600)

        results = await asyncio.gather(
            booking_service.create_booking(master_id, start, client_info, duration_min=30),
            booking_service.create_booking(other, start, client_info, duration_min=30),
        )

        assert len({r.appointment_id for r in results}) == 2
        assert len(booking_service.locks) == 0


class TestClients:
    """Клиент по телефону или e-mail"""

    @pytest.mark.asyncio
    async def test_same_phone_reuses_client(self, db, booking_service, master_id, at_wall):
        first = await booking_service.create_booking(
            master_id,
            at_wall(SUMMER_DAY, 600),
            ClientInfo(name="Мария", phone="+49 151 1234567"),
            duration_min=30,
        )
        second = await booking_service.create_booking(
            master_id,
            at_wall(SUMMER_DAY, 700),
            ClientInfo(name="Мария", phone="+49-151-123-45-67"),
            duration_min=30,
        )

        assert first.client_id == second.client_id
        assert await count_rows(db, "clients") == 1

    @pytest.mark.asyncio
    async def test_same_email_reuses_client(self, booking_service, master_id, at_wall):
        first = await booking_service.create_booking(
            master_id,
            at_wall(SUMMER_DAY, 600),
            ClientInfo(name="Мария", email="Maria@Example.com"),
            duration_min=30,
        )
        second = await booking_service.create_booking(
            master_id,
            at_wall(SUMMER_DAY, 700),
            ClientInfo(name="Мария", email="maria@example.com"),
            duration_min=30,
        )

        assert first.client_id == second.client_id

    @pytest.mark.asyncio
    async def test_new_contacts_create_client(self, booking_service, master_id, at_wall):
        first = await booking_service.create_booking(
            master_id,
            at_wall(SUMMER_DAY, 600),
            ClientInfo(name="Мария", phone="+4911111111"),
            duration_min=30,
        )
        second = await booking_service.create_booking(
            master_id,
            at_wall(SUMMER_DAY, 700),
            ClientInfo(name="Ольга", phone="+4922222222"),
            duration_min=30,
        )

        assert first.client_id != second.client_id


class TestValidation:
    """Ошибки до открытия транзакции"""

    @pytest.mark.asyncio
    async def test_naive_start_rejected(self, db, booking_service, master_id, client_info):
        with pytest.raises(ValidationError):
            await booking_service.create_booking(
                master_id, datetime(2025, 6, 10, 10, 0), client_info, duration_min=30
            )
        assert await count_rows(db, "appointments") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "client",
        [
            ClientInfo(name="", phone="+491511234567"),
            ClientInfo(name="Мария"),
            ClientInfo(name="Мария", phone="abc"),
            ClientInfo(name="Мария", email="not-an-email"),
        ],
    )
    async def test_invalid_client(self, db, booking_service, master_id, at_wall, client):
        with pytest.raises(ValidationError):
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 600), client, duration_min=30
            )
        assert await count_rows(db, "appointments") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", [None, 0, -15])
    async def test_invalid_duration(self, booking_service, master_id, client_info, at_wall, duration):
        with pytest.raises(ValidationError):
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=duration
            )

    @pytest.mark.asyncio
    async def test_unknown_master(self, booking_service, client_info, at_wall):
        with pytest.raises(NotFoundError):
            await booking_service.create_booking(
                999, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
            )

    @pytest.mark.asyncio
    async def test_service_not_performed_by_master(
        self, booking_service, master_id, client_info, create_service, at_wall
    ):
        foreign = await create_service(30)

        with pytest.raises(NotFoundError):
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 600), client_info, service_ids=[foreign]
            )

    @pytest.mark.asyncio
    async def test_archived_service(
        self, booking_service, master_id, client_info, create_service, at_wall
    ):
        old = await create_service(30, master=master_id, is_archived=True)

        with pytest.raises(NotFoundError):
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 600), client_info, service_ids=[old]
            )

    @pytest.mark.asyncio
    async def test_empty_service_list(self, booking_service, master_id, client_info, at_wall):
        with pytest.raises(ValidationError):
            await booking_service.create_booking(
                master_id, at_wall(SUMMER_DAY, 600), client_info, service_ids=[]
            )

    def test_normalize_phone(self):
        assert normalize_phone(" +49 (151) 123-45-67 ") == "+491511234567"
        assert normalize_phone("8 900 123 45 67") == "89001234567"
        assert normalize_phone("") is None


class TestStatus:
    """Смена статуса"""

    @pytest.mark.asyncio
    async def test_pending_confirmed_done(
        self, booking_service, master_id, client_info, at_wall, appointment_repo
    ):
        result = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )

        confirmed = await booking_service.change_status(
            result.appointment_id, AppointmentStatus.CONFIRMED
        )
        done = await booking_service.change_status(result.appointment_id, "DONE")

        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert done.status == AppointmentStatus.DONE

        history = await appointment_repo.get_history(result.appointment_id)
        assert [(old, new) for old, new, _ in history] == [
            (None, "PENDING"),
            ("PENDING", "CONFIRMED"),
            ("CONFIRMED", "DONE"),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path",
        [
            [AppointmentStatus.DONE],
            [AppointmentStatus.PENDING],
            [AppointmentStatus.CANCELED, AppointmentStatus.CONFIRMED],
            [AppointmentStatus.CONFIRMED, AppointmentStatus.DONE, AppointmentStatus.CANCELED],
        ],
    )
    async def test_invalid_transitions(
        self, booking_service, master_id, client_info, at_wall, path
    ):
        result = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )
        *allowed, forbidden = path
        for status in allowed:
            await booking_service.change_status(result.appointment_id, status)

        with pytest.raises(InvalidTransitionError):
            await booking_service.change_status(result.appointment_id, forbidden)

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, booking_service):
        with pytest.raises(NotFoundError):
            await booking_service.change_status(999, AppointmentStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_cancel_frees_window(
        self, booking_service, master_id, client_info, at_wall
    ):
        start = at_wall(SUMMER_DAY, 600)
        first = await booking_service.create_booking(master_id, start, client_info, duration_min=30)

        await booking_service.change_status(first.appointment_id, AppointmentStatus.CANCELED)
        second = await booking_service.create_booking(master_id, start, client_info, duration_min=30)

        assert second.appointment_id != first.appointment_id

    def test_transition_table(self):
        assert AppointmentStatus.PENDING.can_transition_to(AppointmentStatus.CONFIRMED)
        assert AppointmentStatus.PENDING.can_transition_to(AppointmentStatus.CANCELED)
        assert not AppointmentStatus.PENDING.can_transition_to(AppointmentStatus.DONE)
        assert AppointmentStatus.DONE.is_terminal
        assert AppointmentStatus.CANCELED.is_terminal
        assert AppointmentStatus.CONFIRMED.is_blocking
        assert not AppointmentStatus.CANCELED.is_blocking


class TestArchive:
    """Мягкое удаление и восстановление"""

    @pytest.mark.asyncio
    async def test_archive_frees_window(
        self, booking_service, master_id, client_info, at_wall, appointment_repo
    ):
        start = at_wall(SUMMER_DAY, 600)
        first = await booking_service.create_booking(master_id, start, client_info, duration_min=30)

        await booking_service.archive_appointment(first.appointment_id)
        second = await booking_service.create_booking(master_id, start, client_info, duration_min=30)

        archived = await appointment_repo.get(first.appointment_id)
        assert archived.deleted_at is not None
        assert archived.status == AppointmentStatus.PENDING
        assert second.appointment_id != first.appointment_id

    @pytest.mark.asyncio
    async def test_restore_conflict(self, booking_service, master_id, client_info, at_wall):
        """Восстановление поверх новой записи - конфликт"""
        start = at_wall(SUMMER_DAY, 600)
        first = await booking_service.create_booking(master_id, start, client_info, duration_min=30)
        await booking_service.archive_appointment(first.appointment_id)
        await booking_service.create_booking(master_id, start, client_info, duration_min=30)

        with pytest.raises(SlotTakenError):
            await booking_service.restore_appointment(first.appointment_id)

    @pytest.mark.asyncio
    async def test_restore_free_window(
        self, booking_service, master_id, client_info, at_wall, appointment_repo
    ):
        first = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )
        await booking_service.archive_appointment(first.appointment_id)

        assert await booking_service.restore_appointment(first.appointment_id)
        restored = await appointment_repo.get(first.appointment_id)
        assert restored.deleted_at is None

    @pytest.mark.asyncio
    async def test_archive_unknown(self, booking_service):
        with pytest.raises(NotFoundError):
            await booking_service.archive_appointment(999)


class TestOverlapGuard:
    """Триггер БД отклоняет пересечения в обход сервиса"""

    @pytest.mark.asyncio
    async def test_direct_insert_rejected(self, master_id, create_appointment):
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        with pytest.raises(sqlite3.IntegrityError, match="SLOT_TAKEN"):
            await create_appointment(master_id, SUMMER_DAY, 620, 650)

    @pytest.mark.asyncio
    async def test_direct_insert_touching_allowed(self, master_id, create_appointment):
        await create_appointment(master_id, SUMMER_DAY, 600, 630)
        assert await create_appointment(master_id, SUMMER_DAY, 630, 660)

    @pytest.mark.asyncio
    async def test_canceled_insert_allowed(self, master_id, create_appointment):
        await create_appointment(master_id, SUMMER_DAY, 600, 630)
        assert await create_appointment(
            master_id, SUMMER_DAY, 600, 630, status=AppointmentStatus.CANCELED
        )


class TestResourceLocks:
    @pytest.mark.asyncio
    async def test_registry_cleanup(self):
        locks = ResourceLocks()

        async with locks.hold(1):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_same_key_serialized(self):
        locks = ResourceLocks()
        order = []

        async def worker(name):
            async with locks.hold("master"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]


class TestBreakAfter:
    """Перерыв после записи действует и при коммите"""

    @pytest.mark.asyncio
    async def test_start_inside_break_rejected(
        self, db, master_id, client_info, create_appointment, at_wall
    ):
        service = BookingService(db, break_after_min=10)
        availability = AvailabilityService(db, step_min=5, break_after_min=10, min_lead_min=0)
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        offered = [s.start_minutes for s in await availability.get_free_slots(
            SUMMER_DAY, master_id, duration_min=30
        )]
        assert 630 not in offered
        assert 640 in offered

        with pytest.raises(SlotTakenError):
            await service.create_booking(
                master_id, at_wall(SUMMER_DAY, 630), client_info, duration_min=30
            )
        result = await service.create_booking(
            master_id, at_wall(SUMMER_DAY, 640), client_info, duration_min=30
        )
        assert result.status == AppointmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_ending_at_next_start_allowed(
        self, db, master_id, client_info, create_appointment, at_wall
    ):
        """Перерыв идет после записи, а не перед ней"""
        service = BookingService(db, break_after_min=10)
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        result = await service.create_booking(
            master_id, at_wall(SUMMER_DAY, 570), client_info, duration_min=30
        )
        assert result.end_at == at_wall(SUMMER_DAY, 600)

    def test_negative_break(self, db):
        with pytest.raises(ValueError):
            BookingService(db, break_after_min=-1)


class TestSlotHolds:
    """Удержание слота на время заполнения формы"""

    @pytest.mark.asyncio
    async def test_hold_blocks_other_session(self, booking_service, master_id, at_wall):
        start, end = at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630)
        hold = await booking_service.reserve_slot(master_id, start, end, "session-a")

        assert hold.session_id == "session-a"
        assert hold.to_dict()["reservationId"] == hold.id
        assert hold.to_dict()["startAt"] == "2025-06-10T08:00:00Z"
        ttl = hold.expires_at - datetime.now(start.tzinfo)
        assert timedelta(minutes=4) < ttl <= timedelta(minutes=5)
        with pytest.raises(SlotTakenError):
            await booking_service.reserve_slot(
                master_id, at_wall(SUMMER_DAY, 615), at_wall(SUMMER_DAY, 645), "session-b"
            )

    @pytest.mark.asyncio
    async def test_same_session_moves_hold(self, db, booking_service, master_id, at_wall):
        await booking_service.reserve_slot(
            master_id, at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630), "session-a"
        )
        moved = await booking_service.reserve_slot(
            master_id, at_wall(SUMMER_DAY, 700), at_wall(SUMMER_DAY, 730), "session-a"
        )

        assert moved.start_at == at_wall(SUMMER_DAY, 700)
        assert await count_rows(db, "slot_holds") == 1
        # Старое окно свободно для другой сессии
        assert await booking_service.reserve_slot(
            master_id, at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630), "session-b"
        )

    @pytest.mark.asyncio
    async def test_expired_hold_ignored_and_purged(self, db, booking_service, master_id, at_wall):
        start, end = at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630)
        now = datetime(2025, 6, 1, 12, 0, tzinfo=start.tzinfo)
        await booking_service.reserve_slot(master_id, start, end, "session-a", now=now)

        later = now + timedelta(minutes=6)
        hold = await booking_service.reserve_slot(master_id, start, end, "session-b", now=later)

        assert hold.session_id == "session-b"
        assert await count_rows(db, "slot_holds") == 1

    @pytest.mark.asyncio
    async def test_hold_rejected_over_appointment(
        self, booking_service, master_id, create_appointment, at_wall
    ):
        await create_appointment(master_id, SUMMER_DAY, 600, 630)

        with pytest.raises(SlotTakenError):
            await booking_service.reserve_slot(
                master_id, at_wall(SUMMER_DAY, 620), at_wall(SUMMER_DAY, 650), "session-a"
            )

    @pytest.mark.asyncio
    async def test_booking_respects_holds(
        self, db, booking_service, master_id, client_info, at_wall
    ):
        start, end = at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630)
        await booking_service.reserve_slot(master_id, start, end, "session-a")

        with pytest.raises(SlotTakenError):
            await booking_service.create_booking(
                master_id, start, client_info, duration_min=30, session_id="session-b"
            )
        with pytest.raises(SlotTakenError):
            await booking_service.create_booking(master_id, start, client_info, duration_min=30)

        result = await booking_service.create_booking(
            master_id, start, client_info, duration_min=30, session_id="session-a"
        )
        assert result.status == AppointmentStatus.PENDING
        assert await count_rows(db, "slot_holds") == 0

    @pytest.mark.asyncio
    async def test_availability_hides_held_window(
        self, booking_service, availability, master_id, at_wall
    ):
        await booking_service.reserve_slot(
            master_id, at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630), "session-a"
        )

        others = [s.start_minutes for s in await availability.get_free_slots(
            SUMMER_DAY, master_id, duration_min=30
        )]
        own = [s.start_minutes for s in await availability.get_free_slots(
            SUMMER_DAY, master_id, duration_min=30, session_id="session-a"
        )]

        assert 600 not in others
        assert 570 in others
        assert 630 in others
        assert 600 in own

    @pytest.mark.asyncio
    async def test_release(self, db, booking_service, master_id, at_wall):
        await booking_service.reserve_slot(
            master_id, at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630), "session-a"
        )

        assert await booking_service.release_hold("session-a")
        assert not await booking_service.release_hold("session-a")
        assert await count_rows(db, "slot_holds") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", ["", "   "])
    async def test_empty_session(self, booking_service, master_id, at_wall, session_id):
        with pytest.raises(ValidationError):
            await booking_service.reserve_slot(
                master_id, at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630), session_id
            )

    @pytest.mark.asyncio
    async def test_inverted_range(self, booking_service, master_id, at_wall):
        with pytest.raises(ValidationError):
            await booking_service.reserve_slot(
                master_id, at_wall(SUMMER_DAY, 630), at_wall(SUMMER_DAY, 600), "session-a"
            )

    @pytest.mark.asyncio
    async def test_unknown_master(self, booking_service, at_wall):
        with pytest.raises(NotFoundError):
            await booking_service.reserve_slot(
                999, at_wall(SUMMER_DAY, 600), at_wall(SUMMER_DAY, 630), "session-a"
            )


class TestStorageFailures:
    """Непредвиденные ошибки SQLite -> InternalError"""

    @pytest.mark.asyncio
    async def test_insert_failure_is_opaque(
        self, db, booking_service, master_id, client_info, at_wall, monkeypatch, caplog
    ):
        async def broken_insert(conn, appointment):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(booking_service.appointments, "insert", broken_insert)

        with caplog.at_level(logging.ERROR):
            with pytest.raises(InternalError) as exc_info:
                await booking_service.create_booking(
                    master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
                )

        assert exc_info.value.message == "Internal error"
        assert "disk I/O" not in str(exc_info.value)
        assert not exc_info.value.retryable
        # Клиент создан в той же транзакции и откатился вместе с ней
        assert await count_rows(db, "appointments") == 0
        assert await count_rows(db, "clients") == 0

        errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert any(
            f"master {master_id}" in m
            and "2025-06-10T08:00:00Z - 2025-06-10T08:30:00Z" in m
            and "disk I/O error" in m
            for m in errors
        )

    @pytest.mark.asyncio
    async def test_change_status_failure(
        self, booking_service, master_id, client_info, at_wall, monkeypatch
    ):
        result = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )

        async def broken_set_status(*args):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(booking_service.appointments, "set_status", broken_set_status)

        with pytest.raises(InternalError):
            await booking_service.change_status(
                result.appointment_id, AppointmentStatus.CONFIRMED
            )

    @pytest.mark.asyncio
    async def test_change_status_overlap_guard(
        self, booking_service, master_id, client_info, at_wall, monkeypatch
    ):
        result = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )

        async def guarded_set_status(*args):
            raise sqlite3.IntegrityError("SLOT_TAKEN")

        monkeypatch.setattr(booking_service.appointments, "set_status", guarded_set_status)

        with pytest.raises(SlotTakenError):
            await booking_service.change_status(
                result.appointment_id, AppointmentStatus.CONFIRMED
            )

    @pytest.mark.asyncio
    async def test_restore_failure(
        self, booking_service, master_id, client_info, at_wall, monkeypatch
    ):
        result = await booking_service.create_booking(
            master_id, at_wall(SUMMER_DAY, 600), client_info, duration_min=30
        )
        await booking_service.archive_appointment(result.appointment_id)

        async def broken_set_deleted_at(*args):
            raise sqlite3.IntegrityError("FOREIGN KEY constraint failed")

        monkeypatch.setattr(booking_service.appointments, "set_deleted_at", broken_set_deleted_at)

        with pytest.raises(InternalError):
            await booking_service.restore_appointment(result.appointment_id)
