"""Операции над полуоткрытыми интервалами минут [a, b)"""

from typing import Iterable, List, NamedTuple, Optional


class Interval(NamedTuple):
    a: int
    b: int


def overlaps(x: Interval, y: Interval) -> bool:
    """Пересечение полуоткрытых интервалов. Касание не считается."""
    return x.a < y.b and y.a < x.b


def clip(interval: Interval, window: Interval) -> Optional[Interval]:
    """Обрезать интервал окном. None, если ничего не осталось."""
    a = max(interval.a, window.a)
    b = min(interval.b, window.b)
    if a >= b:
        return None
    return Interval(a, b)


def merge_sorted(intervals: Iterable[Interval]) -> List[Interval]:
    """Слияние пересекающихся и соприкасающихся интервалов

    Сортировка по началу, затем один проход: текущий интервал
    вливается в последний сохраненный, если cur.a <= last.b.
    """
    merged: List[Interval] = []
    for cur in sorted(intervals, key=lambda i: (i.a, i.b)):
        if merged and cur.a <= merged[-1].b:
            last = merged[-1]
            merged[-1] = Interval(last.a, max(last.b, cur.b))
        else:
            merged.append(Interval(cur.a, cur.b))
    return merged


def complement(window: Interval, merged_busy: Iterable[Interval]) -> List[Interval]:
    """Свободные промежутки окна между занятыми интервалами

    merged_busy должен быть отсортирован, без пересечений и обрезан окном.
    """
    free: List[Interval] = []
    cursor = window.a
    for busy in merged_busy:
        if busy.a > cursor:
            free.append(Interval(cursor, busy.a))
        cursor = max(cursor, busy.b)
    if cursor < window.b:
        free.append(Interval(cursor, window.b))
    return free


def ceil_to_step(value: int, step: int) -> int:
    if step <= 0:
        raise ValueError("step must be positive")
    return -(-value // step) * step
