"""Модели данных"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from utils.datetime_utils import format_minutes, to_utc_iso


class AppointmentStatus(str, Enum):
    """Статус записи и допустимые переходы"""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DONE = "DONE"
    CANCELED = "CANCELED"

    @property
    def is_blocking(self) -> bool:
        """Занимает ли запись календарь мастера"""
        return self in BLOCKING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, new_status: "AppointmentStatus") -> bool:
        return new_status in _TRANSITIONS[self]


_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.DONE, AppointmentStatus.CANCELED}
    ),
    AppointmentStatus.DONE: frozenset(),
    AppointmentStatus.CANCELED: frozenset(),
}

BLOCKING_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


@dataclass
class Master:
    """Мастер - ресурс, чье расписание бронируется"""
    id: Optional[int]
    name: str
    is_active: bool = True


@dataclass
class Service:
    """Модель услуги/процедуры"""
    id: Optional[int]
    name: str
    duration_min: int
    is_active: bool = True
    is_archived: bool = False

    @property
    def is_bookable(self) -> bool:
        return self.is_active and not self.is_archived


@dataclass
class WorkingHours:
    """Рабочие часы мастера на день недели (0 = воскресенье)"""
    master_id: int
    weekday: int
    is_closed: bool
    start_minutes: int
    end_minutes: int


@dataclass
class TimeOff:
    """Исключение из расписания на конкретную дату (перерыв, отпуск)"""
    id: Optional[int]
    master_id: int
    date: date
    start_minutes: int
    end_minutes: int
    reason: Optional[str] = None


@dataclass
class Client:
    id: Optional[int]
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ClientInfo:
    """Контактные данные из формы записи"""
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Appointment:
    """Запись клиента к мастеру, интервал [start_at, end_at) в UTC"""
    id: Optional[int]
    master_id: int
    service_id: Optional[int]
    start_at: datetime
    end_at: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING
    client_id: Optional[int] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_blocking(self) -> bool:
        return self.deleted_at is None and self.status.is_blocking


@dataclass(frozen=True)
class Slot:
    """Кандидат на запись. Никогда не сохраняется."""
    start_at_utc: datetime
    end_at_utc: datetime
    start_minutes: int
    end_minutes: int

    @property
    def label(self) -> str:
        return f"{format_minutes(self.start_minutes)}–{format_minutes(self.end_minutes)}"

    def to_dict(self) -> dict:
        return {
            "startAtUtc": to_utc_iso(self.start_at_utc),
            "endAtUtc": to_utc_iso(self.end_at_utc),
            "startMinutes": self.start_minutes,
            "endMinutes": self.end_minutes,
        }


@dataclass
class BookingResult:
    """Результат успешного коммита"""
    appointment_id: int
    start_at: datetime
    end_at: datetime
    status: AppointmentStatus
    client_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "appointmentId": self.appointment_id,
            "startAt": to_utc_iso(self.start_at),
            "endAt": to_utc_iso(self.end_at),
            "status": self.status.value,
        }


@dataclass
class SlotHold:
    """Удержание окна сессией клиента до expires_at"""
    id: Optional[int]
    session_id: str
    master_id: int
    start_at: datetime
    end_at: datetime
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "reservationId": self.id,
            "startAt": to_utc_iso(self.start_at),
            "endAt": to_utc_iso(self.end_at),
            "expiresAt": to_utc_iso(self.expires_at),
        }
