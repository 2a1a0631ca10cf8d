"""Расчет свободных слотов мастера на дату

Порядок расчета:
1. Длительность: явная или сумма активных услуг.
2. Рабочее окно по дню недели в зоне салона.
3. Занятость: time off + активные записи (+ перерыв после записи)
   + живые удержания слотов, обрезанные рабочим окном.
4. Слияние, дополнение до свободных промежутков.
5. Кандидаты с шагом step внутри каждого промежутка. Кандидаты, чье
   начало или конец попадает в пропущенный при переводе часов час,
   отбрасываются.

Чтение без блокировок и без кэша: результат всегда по текущему
состоянию БД.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from config import BREAK_AFTER_MIN, MIN_LEAD_MIN, MINUTES_PER_DAY, SLOT_STEP_MIN
from database.models import Slot
from database.queries import Database
from database.repositories import (
    AppointmentRepository,
    HoldRepository,
    MasterRepository,
    ServiceRepository,
)
from utils.datetime_utils import (
    DateLike,
    TimeZoneConverter,
    ensure_aware,
    get_converter,
    now_utc,
    parse_date,
)
from utils.errors import NotFoundError, ValidationError
from utils.intervals import Interval, ceil_to_step, clip, complement, merge_sorted


class AvailabilityService:
    """Сервис доступности (только чтение)"""

    def __init__(
        self,
        db: Database,
        converter: Optional[TimeZoneConverter] = None,
        step_min: int = SLOT_STEP_MIN,
        break_after_min: int = BREAK_AFTER_MIN,
        min_lead_min: int = MIN_LEAD_MIN,
    ):
        if step_min <= 0:
            raise ValueError("step_min must be positive")
        if break_after_min < 0 or min_lead_min < 0:
            raise ValueError("break_after_min and min_lead_min must not be negative")
        self.db = db
        self.converter = converter or get_converter()
        self.step_min = step_min
        self.break_after_min = break_after_min
        self.min_lead_min = min_lead_min
        self.masters = MasterRepository(db)
        self.services = ServiceRepository(db)
        self.appointments = AppointmentRepository(db)
        self.holds = HoldRepository(db)

    async def resolve_duration(
        self,
        duration_min: Optional[int] = None,
        service_ids: Optional[Iterable[int]] = None,
    ) -> Optional[int]:
        """Длительность в минутах или None, если планировать нечего"""
        if service_ids is not None:
            services = await self.services.get_bookable_services(service_ids)
            total = sum(s.duration_min for s in services)
        else:
            total = duration_min
        if isinstance(total, bool) or not isinstance(total, int) or total <= 0:
            return None
        return total

    async def get_free_slots(
        self,
        day: DateLike,
        master_id: int,
        duration_min: Optional[int] = None,
        service_ids: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
        session_id: Optional[str] = None,
    ) -> List[Slot]:
        """Свободные слоты на дату в порядке возрастания начала

        Args:
            day: Локальная дата салона (date или YYYY-MM-DD)
            master_id: ID мастера
            duration_min: Длительность в минутах
            service_ids: Либо список услуг, длительность = сумма
            now: Текущий момент; если он внутри этого дня, прошлое отсекается
            session_id: Сессия клиента; ее собственное удержание не занимает окно

        Returns:
            Пустой список, если записаться нельзя

        Raises:
            ValidationError: некорректная дата
            NotFoundError: мастер не найден или неактивен
        """
        parsed = parse_date(day)
        await self._require_master(master_id)

        if service_ids is not None:
            service_ids = list(service_ids)
        duration = await self.resolve_duration(duration_min, service_ids)
        if duration is None:
            return []
        if service_ids and not await self.services.master_covers_all(master_id, service_ids):
            logging.info(f"Master {master_id} does not perform all of {service_ids}")
            return []

        return await self._slots_for_day(parsed, master_id, duration, now, session_id)

    async def get_month_availability(
        self,
        month: str,
        master_id: int,
        duration_min: Optional[int] = None,
        service_ids: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """Количество свободных слотов по дням месяца YYYY-MM

        Дни до сегодняшнего (по зоне салона) получают 0.
        """
        year, month_num = _parse_month(month)
        await self._require_master(master_id)

        days_in_month = calendar.monthrange(year, month_num)[1]
        first_day = date(year, month_num, 1)
        result = {
            (first_day + timedelta(days=i)).isoformat(): 0 for i in range(days_in_month)
        }

        if service_ids is not None:
            service_ids = list(service_ids)
        duration = await self.resolve_duration(duration_min, service_ids)
        if duration is None:
            return result
        if service_ids and not await self.services.master_covers_all(master_id, service_ids):
            return result

        today = self.converter.today(now) if now else None
        for offset in range(days_in_month):
            current = first_day + timedelta(days=offset)
            if today and current < today:
                continue
            slots = await self._slots_for_day(current, master_id, duration, now)
            result[current.isoformat()] = len(slots)
        return result

    async def _require_master(self, master_id: int):
        master = await self.masters.get_master(master_id)
        if master is None or not master.is_active:
            raise NotFoundError(f"Master {master_id} not found")

    async def _slots_for_day(
        self,
        day: date,
        master_id: int,
        duration: int,
        now: Optional[datetime],
        session_id: Optional[str] = None,
    ) -> List[Slot]:
        weekday = self.converter.weekday_of(day)
        hours = await self.masters.get_working_hours(master_id, weekday)
        if hours is None or hours.is_closed:
            return []

        work_start = max(0, min(MINUTES_PER_DAY, hours.start_minutes))
        work_end = max(work_start, min(MINUTES_PER_DAY, hours.end_minutes))
        if work_end - work_start < duration:
            return []
        window = Interval(work_start, work_end)

        day_start, day_end = self.converter.day_range(day)
        busy = await self._busy_intervals(
            day, master_id, window, day_start, day_end, now, session_id
        )
        free = complement(window, merge_sorted(busy))

        earliest = self._earliest_start(day, now, day_start, day_end)

        # Стенного времени внутри пропуска при переводе часов нет
        exists = self.converter.wall_time_exists
        slots: List[Slot] = []
        for gap in free:
            start = ceil_to_step(max(gap.a, earliest), self.step_min)
            while start + duration <= gap.b:
                end = start + duration
                if exists(day, start) and exists(day, end):
                    slots.append(
                        Slot(
                            start_at_utc=self.converter.wall_minutes_to_utc(day, start),
                            end_at_utc=self.converter.wall_minutes_to_utc(day, end),
                            start_minutes=start,
                            end_minutes=end,
                        )
                    )
                start += self.step_min
        return slots

    async def _busy_intervals(
        self,
        day: date,
        master_id: int,
        window: Interval,
        day_start: datetime,
        day_end: datetime,
        now: Optional[datetime] = None,
        session_id: Optional[str] = None,
    ) -> List[Interval]:
        busy: List[Interval] = []

        for time_off in await self.masters.get_time_off(master_id, day):
            clipped = clip(Interval(time_off.start_minutes, time_off.end_minutes), window)
            if clipped:
                busy.append(clipped)

        appointments = await self.appointments.find_blocking_in_range(
            master_id, day_start, day_end
        )
        for appointment in appointments:
            # floor для начала, ceil для конца: неполная минута считается занятой
            a = self.converter.utc_to_wall_minutes(day, appointment.start_at)
            b = self.converter.utc_to_wall_minutes(day, appointment.end_at, ceil=True)
            clipped = clip(Interval(a, b + self.break_after_min), window)
            if clipped:
                busy.append(clipped)

        holds = await self.holds.find_live_in_range(
            master_id, day_start, day_end, ensure_aware(now) if now else now_utc()
        )
        for hold in holds:
            if session_id is not None and hold.session_id == session_id:
                continue
            a = self.converter.utc_to_wall_minutes(day, hold.start_at)
            b = self.converter.utc_to_wall_minutes(day, hold.end_at, ceil=True)
            clipped = clip(Interval(a, b), window)
            if clipped:
                busy.append(clipped)

        return busy

    def _earliest_start(
        self, day: date, now: Optional[datetime], day_start: datetime, day_end: datetime
    ) -> int:
        """Первая допустимая минута с учетом "сейчас" (только для текущего дня)"""
        if now is None:
            return 0
        now = ensure_aware(now) + timedelta(minutes=self.min_lead_min)
        if now < day_start:
            return 0
        if now >= day_end:
            return MINUTES_PER_DAY + 1
        return self.converter.utc_to_wall_minutes(day, now, ceil=True)


def _parse_month(month: str):
    try:
        year_str, month_str = month.split("-")
        year, month_num = int(year_str), int(month_str)
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid month: {month!r}, expected YYYY-MM")
    if len(year_str) != 4 or not 1 <= month_num <= 12:
        raise ValidationError(f"Invalid month: {month!r}, expected YYYY-MM")
    return year, month_num
