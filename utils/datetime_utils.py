"""Утилиты для работы с датами и временем

Все преобразования "стенное время салона <-> UTC" идут через базу IANA
(pytz). Смещение никогда не считается вручную: в дни перехода на
летнее/зимнее время сутки длятся 23 или 25 часов.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union

import pytz

from config import MINUTES_PER_DAY, ORG_TZ
from utils.errors import ValidationError

UTC = timezone.utc

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[date, str]


def parse_date(value: DateLike) -> date:
    """Разбор календарной даты YYYY-MM-DD

    Raises:
        ValidationError: если дата некорректна
    """
    if isinstance(value, datetime):
        raise ValidationError("Expected a calendar date without time")
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise ValidationError(f"Invalid date: {value!r}")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def parse_utc_iso(value: str) -> datetime:
    """ISO-8601 строка -> aware datetime в UTC

    Строка без смещения трактуется как UTC.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Empty timestamp")
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_utc_iso(dt: datetime) -> str:
    """Aware datetime -> 'YYYY-MM-DDTHH:MM:SSZ' (миллисекунды, если есть)"""
    dt = ensure_aware(dt).astimezone(UTC)
    if dt.microsecond:
        return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def to_db(dt: datetime) -> str:
    """Формат хранения: фиксированная ширина, сравнение строк = сравнение времени"""
    return ensure_aware(dt).astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def from_db(value: str) -> datetime:
    return parse_utc_iso(value)


def ensure_aware(dt: datetime) -> datetime:
    if not isinstance(dt, datetime):
        raise ValidationError(f"Expected datetime, got {type(dt).__name__}")
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        raise ValidationError("Naive datetime is not allowed, pass an aware instant")
    return dt


def now_utc() -> datetime:
    return datetime.now(UTC)


class TimeZoneConverter:
    """Конвертер стенных минут салона в UTC и обратно"""

    def __init__(self, tz_name: str = ORG_TZ):
        self.tz_name = tz_name
        self.tz = pytz.timezone(tz_name)

    @staticmethod
    def _naive(day: date, minutes: int) -> datetime:
        # 1440 = полночь следующего дня, а не "начало дня + 24 часа"
        extra_days, minute_of_day = divmod(minutes, MINUTES_PER_DAY)
        hh, mm = divmod(minute_of_day, 60)
        return datetime.combine(day + timedelta(days=extra_days), time(hh, mm))

    def _local_to_utc(self, day: date, minutes: int) -> datetime:
        naive = self._naive(day, minutes)
        try:
            local = self.tz.localize(naive, is_dst=None)
        except (pytz.exceptions.AmbiguousTimeError, pytz.exceptions.NonExistentTimeError):
            # Переход часов: берется стандартное время. Несуществующее
            # время сдвигается вперед на величину разрыва.
            local = self.tz.localize(naive, is_dst=False)
        return local.astimezone(UTC)

    def wall_minutes_to_utc(self, day: DateLike, minutes: int) -> datetime:
        """Стенные минуты дня (0..1440) -> UTC instant

        Args:
            day: Локальная дата салона
            minutes: Минуты от локальной полуночи, 1440 - конец дня

        Raises:
            ValidationError: минуты вне [0, 1440] или некорректная дата
        """
        parsed = parse_date(day)
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            raise ValidationError(f"Minutes must be an integer, got {minutes!r}")
        if minutes < 0 or minutes > MINUTES_PER_DAY:
            raise ValidationError(f"Minutes must be within [0, 1440], got {minutes}")
        return self._local_to_utc(parsed, minutes)

    def wall_time_exists(self, day: DateLike, minutes: int) -> bool:
        """False для стенного времени, пропущенного при переводе часов вперед"""
        try:
            self.tz.localize(self._naive(parse_date(day), minutes), is_dst=None)
        except pytz.exceptions.NonExistentTimeError:
            return False
        except pytz.exceptions.AmbiguousTimeError:
            return True
        return True

    def utc_to_wall_minutes(self, day: DateLike, instant: datetime, ceil: bool = False) -> int:
        """UTC instant -> стенные минуты относительно даты day

        Значение не обрезается: instant следующего локального дня дает >= 1440,
        предыдущего - отрицательное число.

        Args:
            ceil: округлять неполную минуту вверх (для концов интервалов)
        """
        parsed = parse_date(day)
        local = ensure_aware(instant).astimezone(self.tz)
        minutes = (local.date() - parsed).days * MINUTES_PER_DAY
        minutes += local.hour * 60 + local.minute
        if ceil and (local.second or local.microsecond):
            minutes += 1
        return minutes

    def day_range(self, day: DateLike) -> Tuple[datetime, datetime]:
        """Границы локальных суток в UTC: [полночь, следующая полночь)"""
        parsed = parse_date(day)
        return self._local_to_utc(parsed, 0), self._local_to_utc(parsed, MINUTES_PER_DAY)

    def local_date_of(self, instant: datetime) -> date:
        return ensure_aware(instant).astimezone(self.tz).date()

    def weekday_of(self, day: DateLike) -> int:
        """День недели в зоне салона: 0 = воскресенье ... 6 = суббота"""
        start, _ = self.day_range(day)
        return start.astimezone(self.tz).isoweekday() % 7

    def today(self, now: Optional[datetime] = None) -> date:
        return self.local_date_of(now or now_utc())


_default_converter = TimeZoneConverter()


def get_converter() -> TimeZoneConverter:
    return _default_converter


def wall_minutes_to_utc(day: DateLike, minutes: int) -> datetime:
    return _default_converter.wall_minutes_to_utc(day, minutes)


def utc_to_wall_minutes(day: DateLike, instant: datetime, ceil: bool = False) -> int:
    return _default_converter.utc_to_wall_minutes(day, instant, ceil=ceil)


def day_range(day: DateLike) -> Tuple[datetime, datetime]:
    return _default_converter.day_range(day)


def format_minutes(minutes: int) -> str:
    """570 -> '09:30'"""
    hh, mm = divmod(minutes, 60)
    return f"{hh:02d}:{mm:02d}"
