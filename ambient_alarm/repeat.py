"""
Repeat-mode evaluation: which days a cadence fires on, and whether two cadences can coincide
"""

import json
from datetime import datetime
from typing import FrozenSet, Iterable, Optional, Tuple, Union

from .errors import InvalidSchedule
from .models import RepeatMode

# Weekday indices are Sunday-based: 0=Sunday .. 6=Saturday
ALL_DAYS: FrozenSet[int] = frozenset(range(7))
WEEKDAYS: FrozenSet[int] = frozenset(range(1, 6))
WEEKEND_DAYS: FrozenSet[int] = frozenset({0, 6})

ModeLike = Union[RepeatMode, str]
DaysLike = Optional[Iterable[int]]


def sunday_based_weekday(moment: datetime) -> int:
    """Convert datetime.weekday() (Monday=0) to the Sunday=0 convention"""
    return moment.isoweekday() % 7


def coerce_mode(mode: ModeLike) -> RepeatMode:
    try:
        return RepeatMode(mode)
    except ValueError:
        raise InvalidSchedule(f"Unknown repeat mode: {mode!r}") from None


def parse_custom_days(raw) -> Optional[FrozenSet[int]]:
    """
    Parse a custom day set.

    Accepts the stored JSON text form ("[1, 3, 5]") or any iterable of ints.

    Raises:
        InvalidSchedule: malformed input or an index outside 0..6
    """
    if raw is None:
        return None

    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise InvalidSchedule(f"custom_days is not valid JSON: {raw!r}") from None
        if not isinstance(raw, list):
            raise InvalidSchedule(f"custom_days must be a list, got {type(raw).__name__}")

    try:
        days = frozenset(raw)
    except TypeError:
        raise InvalidSchedule(f"custom_days must be a collection of ints, got {raw!r}") from None

    for day in days:
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            raise InvalidSchedule(f"custom_days entries must be ints 0..6, got {day!r}")
    return days


def dump_custom_days(days: Optional[FrozenSet[int]]) -> Optional[str]:
    if days is None:
        return None
    return json.dumps(sorted(days))


def validate_cadence(mode: ModeLike, custom_days: DaysLike) -> Tuple[RepeatMode, Optional[FrozenSet[int]]]:
    """
    Normalise a cadence for storage.

    Custom mode requires a non-empty day set; every other mode drops it.
    """
    mode = coerce_mode(mode)
    if mode is not RepeatMode.CUSTOM:
        return mode, None

    days = parse_custom_days(custom_days)
    if not days:
        raise InvalidSchedule("custom repeat mode requires at least one day")
    return mode, days


def should_fire_today(mode: ModeLike, custom_days: DaysLike, weekday: int) -> bool:
    """
    Does this cadence include the given Sunday-based weekday?

    `once` is always eligible here; the scheduler checks it has never run.
    """
    mode = coerce_mode(mode)
    if mode in (RepeatMode.DAILY, RepeatMode.ONCE):
        return True
    if mode is RepeatMode.WEEKDAY:
        return weekday in WEEKDAYS
    if mode is RepeatMode.WEEKEND:
        return weekday in WEEKEND_DAYS
    return weekday in frozenset(custom_days or ())


def _collides_one_way(mode1: RepeatMode, days1: FrozenSet[int],
                      mode2: RepeatMode, days2: FrozenSet[int]) -> bool:
    # once: time overlap alone decides; daily meets everything
    if RepeatMode.ONCE in (mode1, mode2) or RepeatMode.DAILY in (mode1, mode2):
        return True

    if mode1 is RepeatMode.WEEKDAY:
        return mode2 is RepeatMode.WEEKDAY or (mode2 is RepeatMode.CUSTOM and bool(days2 & WEEKDAYS))

    if mode1 is RepeatMode.WEEKEND:
        return mode2 is RepeatMode.WEEKEND or (mode2 is RepeatMode.CUSTOM and bool(days2 & WEEKEND_DAYS))

    if mode1 is RepeatMode.CUSTOM and mode2 is RepeatMode.CUSTOM:
        return bool(days1 & days2)

    return False


def cadences_may_collide(mode1: ModeLike, days1: DaysLike, mode2: ModeLike, days2: DaysLike) -> bool:
    """Can two cadences ever fire on the same day? Symmetric in its argument pairs."""
    mode1, mode2 = coerce_mode(mode1), coerce_mode(mode2)
    set1, set2 = frozenset(days1 or ()), frozenset(days2 or ())
    return _collides_one_way(mode1, set1, mode2, set2) or _collides_one_way(mode2, set2, mode1, set1)
