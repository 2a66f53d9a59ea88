# Enlace
# Copyright (C) 2024 Enlace developers, et al.
#
# This program is free software; you can redistribute it and/or
# modify it under the terms of the GNU General Public License
# as published by the Free Software Foundation; version 3
# of the License or (at your option) any later version of
# the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program; if not, write to the Free Software
# Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston,
# MA  02110-1301, USA.

"""Expansion of recurring events into additional occurrences.

The base occurrence is the event as entered by the user. Expanding a
recurrence rule produces the start times of the *additional* occurrences
only; callers persist the base occurrence separately as the parent.
"""

import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

DateOrDatetime = Union[date, datetime]

FREQ_DAILY = "daily"
FREQ_WEEKLY = "weekly"
FREQ_MONTHLY = "monthly"
FREQ_YEARLY = "yearly"
VALID_FREQUENCIES = (FREQ_DAILY, FREQ_WEEKLY, FREQ_MONTHLY, FREQ_YEARLY)

MONTHLY_ON_DAY = "onDay"
MONTHLY_ON_WEEKDAY = "onWeekday"
VALID_MONTHLY_MODES = (MONTHLY_ON_DAY, MONTHLY_ON_WEEKDAY)

END_NEVER = "never"
END_ON_DATE = "onDate"
END_AFTER_OCCURRENCES = "afterOccurrences"
VALID_END_TYPES = (END_NEVER, END_ON_DATE, END_AFTER_OCCURRENCES)

# Weekdays are numbered from Sunday, as in the stored records.
SUNDAY = 0
MONDAY = 1
TUESDAY = 2
WEDNESDAY = 3
THURSDAY = 4
FRIDAY = 5
SATURDAY = 6

WEEKDAY_ABBREVIATIONS = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")

# relativedelta weekday objects, indexed by Sunday-based weekday
_RELATIVEDELTA_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)

DEFAULT_MAX_OCCURRENCES = 1000

# Months to search for a month that has the n-th weekday (e.g. a 5th Friday)
_MAX_MONTHS_FOR_ORDINAL = 12


logger = logging.getLogger(__name__)


def weekday_of(dt: DateOrDatetime) -> int:
    """Return the Sunday-based weekday (Sunday=0 .. Saturday=6) of a date."""
    return (dt.weekday() + 1) % 7


def weekday_ordinal(dt: DateOrDatetime) -> int:
    """Return which occurrence of its weekday in the month a date is.

    E.g. the 15th of a month is always the 3rd of its weekday.
    """
    return (dt.day - 1) // 7 + 1


def parse_weekday(text: str) -> int:
    """Parse a weekday given as a two-letter abbreviation or number."""
    text = text.strip().upper()
    if text.isdigit():
        ret = int(text)
        if ret not in range(7):
            raise ValueError(f"weekday out of range: {text!r}")
        return ret
    try:
        return WEEKDAY_ABBREVIATIONS.index(text[:2])
    except ValueError:
        raise ValueError(f"unknown weekday {text!r}") from None


class RecurrenceRule:
    """How an event repeats and when the repetition stops.

    Instances are immutable.
    """

    def __init__(
        self,
        frequency: str,
        *,
        weekdays=(),
        monthly_mode: str = MONTHLY_ON_DAY,
        day_of_month: Optional[int] = None,
        end_type: str = END_NEVER,
        count: Optional[int] = None,
        until: Optional[DateOrDatetime] = None,
    ) -> None:
        if frequency not in VALID_FREQUENCIES:
            raise ValueError(f"invalid frequency {frequency!r}")
        if monthly_mode not in VALID_MONTHLY_MODES:
            raise ValueError(f"invalid monthly mode {monthly_mode!r}")
        if end_type not in VALID_END_TYPES:
            raise ValueError(f"invalid end type {end_type!r}")
        weekdays = frozenset(weekdays)
        for wd in weekdays:
            if not isinstance(wd, int) or wd not in range(7):
                raise ValueError(f"weekday out of range: {wd!r}")
        if day_of_month is not None and day_of_month not in range(1, 32):
            raise ValueError(f"day of month out of range: {day_of_month!r}")
        if end_type == END_AFTER_OCCURRENCES:
            if not isinstance(count, int) or count < 1:
                raise ValueError(f"occurrence count must be positive: {count!r}")
        if end_type == END_ON_DATE and until is None:
            raise ValueError("end date required for end type onDate")
        self._frequency = frequency
        self._weekdays = weekdays
        self._monthly_mode = monthly_mode
        self._day_of_month = day_of_month
        self._end_type = end_type
        self._count = count if end_type == END_AFTER_OCCURRENCES else None
        self._until = until if end_type == END_ON_DATE else None

    @classmethod
    def daily(cls, **kwargs):
        return cls(FREQ_DAILY, **kwargs)

    @classmethod
    def weekly(cls, weekdays, **kwargs):
        return cls(FREQ_WEEKLY, weekdays=weekdays, **kwargs)

    @classmethod
    def monthly(cls, day_of_month=None, **kwargs):
        return cls(FREQ_MONTHLY, day_of_month=day_of_month, **kwargs)

    @classmethod
    def monthly_on_weekday(cls, **kwargs):
        return cls(FREQ_MONTHLY, monthly_mode=MONTHLY_ON_WEEKDAY, **kwargs)

    @classmethod
    def yearly(cls, **kwargs):
        return cls(FREQ_YEARLY, **kwargs)

    @property
    def frequency(self) -> str:
        return self._frequency

    @property
    def weekdays(self) -> frozenset:
        return self._weekdays

    @property
    def monthly_mode(self) -> str:
        return self._monthly_mode

    @property
    def day_of_month(self) -> Optional[int]:
        return self._day_of_month

    @property
    def end_type(self) -> str:
        return self._end_type

    @property
    def count(self) -> Optional[int]:
        return self._count

    @property
    def until(self) -> Optional[DateOrDatetime]:
        return self._until

    def _key(self):
        return (
            self._frequency,
            self._weekdays,
            self._monthly_mode,
            self._day_of_month,
            self._end_type,
            self._count,
            self._until,
        )

    def __eq__(self, other):
        if not isinstance(other, RecurrenceRule):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self._frequency!r}, "
            f"weekdays={sorted(self._weekdays)!r}, "
            f"monthly_mode={self._monthly_mode!r}, "
            f"day_of_month={self._day_of_month!r}, "
            f"end_type={self._end_type!r}, count={self._count!r}, "
            f"until={self._until!r})"
        )


class Occurrence:
    """A single instance of a recurring event."""

    def __init__(self, start: DateOrDatetime, end: DateOrDatetime) -> None:
        self.start = start
        self.end = end

    def __eq__(self, other):
        if not isinstance(other, Occurrence):
            return NotImplemented
        return (self.start, self.end) == (other.start, other.end)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.start!r}, {self.end!r})"


class Expansion(list):
    """List of occurrence starts produced by an expansion.

    ``truncated`` is set when expansion stopped at the safety ceiling
    rather than at the rule's own terminator.
    """

    truncated = False


def elapsed(start: DateOrDatetime, end: DateOrDatetime) -> timedelta:
    """Return the elapsed time between two instants."""
    if isinstance(start, datetime) and start.tzinfo is not None:
        return end.astimezone(timezone.utc) - start.astimezone(timezone.utc)
    return end - start


def shift_end(start: DateOrDatetime, duration: timedelta) -> DateOrDatetime:
    """Return the instant ``duration`` of elapsed time after ``start``."""
    if isinstance(start, datetime) and start.tzinfo is not None:
        # Aware arithmetic within a zone is wall-clock; go through UTC.
        return (start.astimezone(timezone.utc) + duration).astimezone(start.tzinfo)
    return start + duration


def _is_after(candidate: DateOrDatetime, until: DateOrDatetime) -> bool:
    if not isinstance(until, datetime):
        if isinstance(candidate, datetime):
            candidate = candidate.date()
        return candidate > until
    if not isinstance(candidate, datetime):
        return candidate > until.date()
    if candidate.tzinfo is None and until.tzinfo is not None:
        until = until.replace(tzinfo=None)
    elif candidate.tzinfo is not None and until.tzinfo is None:
        until = until.replace(tzinfo=candidate.tzinfo)
    return candidate > until


def _next_weekly(current: DateOrDatetime, weekdays) -> Optional[DateOrDatetime]:
    for days in range(1, 8):
        candidate = current + timedelta(days=days)
        if weekday_of(candidate) in weekdays:
            return candidate
    return None


def _next_monthly_on_weekday(
    current: DateOrDatetime, base_start: DateOrDatetime
) -> Optional[DateOrDatetime]:
    ordinal = weekday_ordinal(base_start)
    weekday = _RELATIVEDELTA_WEEKDAYS[weekday_of(base_start)](+ordinal)
    for months in range(1, _MAX_MONTHS_FOR_ORDINAL + 1):
        month_start = current + relativedelta(months=months, day=1)
        candidate = month_start + relativedelta(weekday=weekday)
        if candidate.month == month_start.month:
            return candidate
    return None


def _advance(
    current: DateOrDatetime,
    base_start: DateOrDatetime,
    step: int,
    rule: RecurrenceRule,
) -> Optional[DateOrDatetime]:
    """Find the candidate that follows ``current``.

    ``step`` is the index of the candidate being computed, the base being 0.
    Returns None if the rule can not produce another candidate.
    """
    if rule.frequency == FREQ_DAILY:
        return current + timedelta(days=1)
    elif rule.frequency == FREQ_WEEKLY:
        return _next_weekly(current, rule.weekdays)
    elif rule.frequency == FREQ_MONTHLY:
        if rule.monthly_mode == MONTHLY_ON_WEEKDAY:
            return _next_monthly_on_weekday(current, base_start)
        day = rule.day_of_month or base_start.day
        # relativedelta clamps an absolute day to the end of the month
        return current + relativedelta(months=1, day=day)
    elif rule.frequency == FREQ_YEARLY:
        # Counted from the base, so a leap day comes back in leap years.
        return base_start + relativedelta(years=step)
    raise AssertionError(f"unknown frequency {rule.frequency!r}")


def iter_candidates(
    base_start: DateOrDatetime, rule: RecurrenceRule
) -> Iterator[DateOrDatetime]:
    """Iterate over candidate starts following the base, ignoring the end."""
    if rule.frequency == FREQ_WEEKLY and not rule.weekdays:
        logger.debug("weekly recurrence without weekdays, nothing to expand")
        return
    current = base_start
    step = 0
    while True:
        step += 1
        try:
            current = _advance(current, base_start, step, rule)
        except (OverflowError, ValueError) as e:
            logger.debug("Stopping expansion after %r: %s", current, e)
            return
        if current is None:
            return
        yield current


class RecurrenceExpander:
    """Expand recurrence rules into additional occurrences.

    Args:
      max_occurrences: safety ceiling on the number of occurrences
        produced by a single expansion
    """

    def __init__(self, max_occurrences: int = DEFAULT_MAX_OCCURRENCES) -> None:
        if max_occurrences < 1:
            raise ValueError(f"max_occurrences must be positive: {max_occurrences!r}")
        self.max_occurrences = max_occurrences

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(max_occurrences={self.max_occurrences!r})"

    def expand(
        self,
        base_start: DateOrDatetime,
        base_end: DateOrDatetime,
        rule: RecurrenceRule,
    ) -> Expansion:
        """Compute the starts of the occurrences following the base.

        Args:
          base_start: Start of the base occurrence
          base_end: End of the base occurrence; not validated here
          rule: Recurrence rule
        Returns: Expansion with the additional starts, in increasing order
        """
        ret = Expansion()
        candidates = iter_candidates(base_start, rule)
        while True:
            if rule.end_type == END_AFTER_OCCURRENCES and len(ret) >= rule.count:
                break
            try:
                candidate = next(candidates)
            except StopIteration:
                break
            if rule.end_type == END_ON_DATE and _is_after(candidate, rule.until):
                break
            if len(ret) >= self.max_occurrences:
                logger.warning(
                    "Recurrence %r starting %s exceeds %d occurrences; truncating",
                    rule,
                    base_start,
                    self.max_occurrences,
                )
                ret.truncated = True
                break
            ret.append(candidate)
        return ret

    def expand_occurrences(
        self,
        base_start: DateOrDatetime,
        base_end: DateOrDatetime,
        rule: RecurrenceRule,
    ) -> list[Occurrence]:
        """Like expand(), but pair each start with its end."""
        duration = elapsed(base_start, base_end)
        return [
            Occurrence(start, shift_end(start, duration))
            for start in self.expand(base_start, base_end, rule)
        ]


def expand(
    base_start: DateOrDatetime,
    base_end: DateOrDatetime,
    rule: RecurrenceRule,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> Expansion:
    return RecurrenceExpander(max_occurrences).expand(base_start, base_end, rule)


def expand_occurrences(
    base_start: DateOrDatetime,
    base_end: DateOrDatetime,
    rule: RecurrenceRule,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[Occurrence]:
    return RecurrenceExpander(max_occurrences).expand_occurrences(
        base_start, base_end, rule
    )
