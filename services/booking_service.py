"""Сервис управления бронированием"""

import logging
import re
import sqlite3
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from config import BREAK_AFTER_MIN, HOLD_TTL_MIN
from database.models import (
    Appointment,
    AppointmentStatus,
    BookingResult,
    ClientInfo,
    Service,
    SlotHold,
)
from database.queries import Database
from database.repositories import (
    AppointmentRepository,
    ClientRepository,
    HoldRepository,
    MasterRepository,
    ServiceRepository,
)
from utils.datetime_utils import ensure_aware, now_utc, to_utc_iso
from utils.errors import (
    BookingError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    SlotTakenError,
    ValidationError,
)
from utils.helpers import normalize_email, normalize_phone
from utils.locks import ResourceLocks

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class BookingService:
    """Коммит записи с транзакционной проверкой пересечений

    Протокол create_booking:
        блокировка мастера (asyncio.Lock + строка masters в BEGIN IMMEDIATE)
        -> повторная проверка пересечений внутри той же транзакции
           (записи с перерывом после них, живые удержания других сессий)
        -> клиент (поиск по телефону/e-mail или создание)
        -> INSERT записи в статусе PENDING -> COMMIT
    """

    def __init__(
        self,
        db: Database,
        locks: Optional[ResourceLocks] = None,
        break_after_min: int = BREAK_AFTER_MIN,
        hold_ttl_min: int = HOLD_TTL_MIN,
    ):
        if break_after_min < 0:
            raise ValueError("break_after_min must not be negative")
        if hold_ttl_min <= 0:
            raise ValueError("hold_ttl_min must be positive")
        self.db = db
        self.locks = locks or ResourceLocks()
        self.break_after_min = break_after_min
        self.hold_ttl_min = hold_ttl_min
        self.masters = MasterRepository(db)
        self.services = ServiceRepository(db)
        self.clients = ClientRepository(db)
        self.appointments = AppointmentRepository(db)
        self.holds = HoldRepository(db)

    async def create_booking(
        self,
        master_id: int,
        start_at: datetime,
        client: ClientInfo,
        duration_min: Optional[int] = None,
        service_ids: Optional[Iterable[int]] = None,
        session_id: Optional[str] = None,
    ) -> BookingResult:
        """Создание записи с атомарной проверкой

        Args:
            master_id: ID мастера
            start_at: Выбранное начало (aware datetime)
            client: Контакты клиента
            duration_min: Длительность в минутах
            service_ids: Либо услуги; длительность = сумма, в запись идет первая
            session_id: Сессия клиента; ее удержание не мешает и снимается после коммита

        Returns:
            BookingResult со статусом PENDING

        Raises:
            ValidationError, NotFoundError: до открытия транзакции
            SlotTakenError: окно занято, нужно выбрать другое
            InternalError: сбой хранилища
        """
        start_at = ensure_aware(start_at)
        client = self._validate_client(client)
        service_ids = list(service_ids) if service_ids is not None else None

        await self._require_master(master_id)

        service_id, duration = await self._resolve_services(master_id, duration_min, service_ids)
        end_at = start_at + timedelta(minutes=duration)

        async with self.locks.hold(master_id):
            try:
                async with self.db.transaction() as tx:
                    if not await self.masters.lock_master(tx, master_id):
                        raise NotFoundError(f"Master {master_id} not found")

                    await self._check_free(tx, master_id, start_at, end_at, now_utc(), session_id)

                    client_id = await self.clients.resolve(client, tx)
                    appointment = Appointment(
                        id=None,
                        master_id=master_id,
                        service_id=service_id,
                        client_id=client_id,
                        start_at=start_at,
                        end_at=end_at,
                        status=AppointmentStatus.PENDING,
                        customer_name=client.name,
                        phone=client.phone,
                        email=client.email,
                        notes=client.notes,
                    )
                    appointment_id = await self.appointments.insert(tx, appointment)
                    if session_id is not None:
                        await self.holds.release(session_id, tx)
            except SlotTakenError:
                logging.info(
                    f"Slot taken for master {master_id}: "
                    f"{to_utc_iso(start_at)} - {to_utc_iso(end_at)}"
                )
                raise
            except BookingError:
                raise
            except sqlite3.Error as e:
                raise self._storage_error("create_booking", master_id, e, start_at, end_at)

        logging.info(
            f"Booking created: {appointment_id} for master {master_id} "
            f"({to_utc_iso(start_at)} - {to_utc_iso(end_at)})"
        )
        return BookingResult(
            appointment_id=appointment_id,
            start_at=start_at,
            end_at=end_at,
            status=AppointmentStatus.PENDING,
            client_id=client_id,
        )

    async def reserve_slot(
        self,
        master_id: int,
        start_at: datetime,
        end_at: datetime,
        session_id: str,
        now: Optional[datetime] = None,
    ) -> SlotHold:
        """Удержание окна на hold_ttl_min минут, пока клиент заполняет форму

        Одна сессия держит не больше одного окна: повторный вызов переносит
        удержание. Просроченные удержания удаляются в той же транзакции.

        Raises:
            ValidationError: пустая сессия или некорректный интервал
            NotFoundError: мастер не найден или неактивен
            SlotTakenError: окно занято записью или удержанием другой сессии
            InternalError: сбой хранилища
        """
        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("Session id is required")
        start_at = ensure_aware(start_at)
        end_at = ensure_aware(end_at)
        if end_at <= start_at:
            raise ValidationError("Invalid time range")
        now = ensure_aware(now) if now else now_utc()

        await self._require_master(master_id)

        async with self.locks.hold(master_id):
            try:
                async with self.db.transaction() as tx:
                    await self.holds.purge_expired(tx, now)
                    if not await self.masters.lock_master(tx, master_id):
                        raise NotFoundError(f"Master {master_id} not found")

                    await self._check_free(tx, master_id, start_at, end_at, now, session_id)

                    hold = await self.holds.upsert(
                        tx,
                        SlotHold(
                            id=None,
                            session_id=session_id,
                            master_id=master_id,
                            start_at=start_at,
                            end_at=end_at,
                            expires_at=now + timedelta(minutes=self.hold_ttl_min),
                        ),
                    )
            except SlotTakenError:
                logging.info(
                    f"Hold rejected for master {master_id}: "
                    f"{to_utc_iso(start_at)} - {to_utc_iso(end_at)}"
                )
                raise
            except BookingError:
                raise
            except sqlite3.Error as e:
                raise self._storage_error("reserve_slot", master_id, e, start_at, end_at)

        logging.info(
            f"Slot held for master {master_id} until {to_utc_iso(hold.expires_at)} "
            f"({to_utc_iso(start_at)} - {to_utc_iso(end_at)})"
        )
        return hold

    async def release_hold(self, session_id: str) -> bool:
        """Снять удержание сессии (клиент ушел с формы)"""
        try:
            released = await self.holds.release(session_id)
        except sqlite3.Error as e:
            raise self._storage_error("release_hold", None, e)
        if released:
            logging.info(f"Slot hold released for session {session_id}")
        return released

    async def change_status(
        self, appointment_id: int, new_status: AppointmentStatus
    ) -> Appointment:
        """Смена статуса по правилам перехода, с записью в историю"""
        new_status = AppointmentStatus(new_status)
        appointment = None
        try:
            async with self.db.transaction() as tx:
                appointment = await self.appointments.get(appointment_id, tx)
                if appointment is None:
                    raise NotFoundError(f"Appointment {appointment_id} not found")
                if not appointment.status.can_transition_to(new_status):
                    raise InvalidTransitionError(
                        f"Cannot change status {appointment.status.value} -> {new_status.value}"
                    )
                await self.appointments.set_status(
                    tx, appointment_id, appointment.status, new_status
                )
        except BookingError:
            raise
        except sqlite3.Error as e:
            if appointment is None:
                raise self._storage_error("change_status", None, e)
            raise self._storage_error(
                "change_status", appointment.master_id, e, appointment.start_at, appointment.end_at
            )
        logging.info(
            f"Appointment {appointment_id} status {appointment.status.value} -> {new_status.value}"
        )
        appointment.status = new_status
        return appointment

    async def archive_appointment(self, appointment_id: int) -> bool:
        """Мягкое удаление (статус не меняется)"""
        async with self.db.transaction() as tx:
            updated = await self.appointments.set_deleted_at(tx, appointment_id, now_utc())
        if not updated:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        logging.info(f"Appointment {appointment_id} archived")
        return True

    async def restore_appointment(self, appointment_id: int) -> bool:
        """Восстановить из архива; активная запись не должна пересекаться с другими"""
        appointment = await self.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        async with self.locks.hold(appointment.master_id):
            try:
                async with self.db.transaction() as tx:
                    await self.masters.lock_master(tx, appointment.master_id)
                    await self.appointments.set_deleted_at(tx, appointment_id, None)
            except sqlite3.Error as e:
                raise self._storage_error(
                    "restore_appointment",
                    appointment.master_id,
                    e,
                    appointment.start_at,
                    appointment.end_at,
                )
        logging.info(f"Appointment {appointment_id} restored")
        return True

    async def _require_master(self, master_id: int):
        master = await self.masters.get_master(master_id)
        if master is None or not master.is_active:
            raise NotFoundError(f"Master {master_id} not found")

    async def _check_free(
        self,
        tx,
        master_id: int,
        start_at: datetime,
        end_at: datetime,
        now: datetime,
        session_id: Optional[str],
    ):
        """Окно не пересекает записи (с перерывом после них) и чужие удержания"""
        # Перерыв продлевает существующую запись: ее конец + перерыв <= start_at
        busy_from = start_at - timedelta(minutes=self.break_after_min)
        if await self.appointments.find_conflict_id(tx, master_id, busy_from, end_at) is not None:
            raise SlotTakenError()
        hold_id = await self.holds.find_conflict_id(
            tx, master_id, start_at, end_at, now, session_id
        )
        if hold_id is not None:
            raise SlotTakenError("Selected time is held by another client")

    async def _resolve_services(
        self,
        master_id: int,
        duration_min: Optional[int],
        service_ids: Optional[List[int]],
    ):
        if service_ids is None:
            if isinstance(duration_min, bool) or not isinstance(duration_min, int) or duration_min <= 0:
                raise ValidationError("Duration must be a positive number of minutes")
            return None, duration_min

        if not service_ids:
            raise ValidationError("At least one service is required")
        found = {s.id: s for s in await self.services.get_services_by_ids(service_ids)}
        missing = [sid for sid in service_ids if sid not in found or not found[sid].is_bookable]
        if missing:
            raise NotFoundError(f"Services not found or unavailable: {missing}")
        if not await self.services.master_covers_all(master_id, service_ids):
            raise NotFoundError(f"Master {master_id} does not perform all requested services")

        services: List[Service] = [found[sid] for sid in dict.fromkeys(service_ids)]
        duration = sum(s.duration_min for s in services)
        if duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes")
        return services[0].id, duration

    @staticmethod
    def _validate_client(client: ClientInfo) -> ClientInfo:
        name = (client.name or "").strip()
        if not name:
            raise ValidationError("Client name is required")
        phone = normalize_phone(client.phone)
        email = normalize_email(client.email)
        if not phone and not email:
            raise ValidationError("Phone or e-mail is required")
        if email and not _EMAIL_RE.match(email):
            raise ValidationError(f"Invalid e-mail: {client.email!r}")
        notes = (client.notes or "").strip() or None
        return ClientInfo(name=name, phone=phone, email=email, notes=notes)

    @staticmethod
    def _storage_error(
        operation: str,
        master_id: Optional[int],
        error: sqlite3.Error,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
    ) -> BookingError:
        """Ошибка SQLite -> SlotTakenError (триггер пересечений) или InternalError"""
        if isinstance(error, sqlite3.IntegrityError) and "SLOT_TAKEN" in str(error):
            logging.info(f"Overlap guard rejected {operation} for master {master_id}")
            return SlotTakenError()
        window = ""
        if start_at is not None and end_at is not None:
            window = f" ({to_utc_iso(start_at)} - {to_utc_iso(end_at)})"
        logging.error(f"Error in {operation} for master {master_id}{window}: {error}")
        return InternalError()
