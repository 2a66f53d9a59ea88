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

"""Calendar event records.

Records are flat mappings from field names to values, using the field
names of the cloud database schema.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from .recurrence import (
    FREQ_MONTHLY,
    FREQ_WEEKLY,
    MONTHLY_ON_DAY,
    WEEKDAY_ABBREVIATIONS,
    RecurrenceExpander,
    RecurrenceRule,
)

RECORD_TYPE_CALENDAR_EVENT = "CalendarEvent"

FIELD_TITLE = "title"
FIELD_START_DATE = "startDate"
FIELD_END_DATE = "endDate"
FIELD_LOCATION = "location"
FIELD_NOTES = "notes"
FIELD_LINK_URL = "linkURL"
FIELD_PDF_REFERENCE = "pdfReference"
FIELD_IS_ARCHIVED = "isArchived"
FIELD_ARCHIVE_DATE = "archiveDate"
FIELD_RECORD_NAME_MIRROR = "recordNameMirror"
FIELD_IS_RECURRING = "isRecurring"
FIELD_IS_RECURRENCE_SERIES = "isRecurrenceSeries"
FIELD_RECURRENCE_PARENT = "recurrenceParent"
FIELD_RECURRENCE_TYPE = "recurrenceType"
FIELD_RECURRENCE_WEEKDAYS = "recurrenceWeekdays"
FIELD_RECURRENCE_COUNT = "recurrenceCount"
FIELD_RECURRENCE_END_TYPE = "recurrenceEndType"
FIELD_RECURRENCE_END_DATE = "recurrenceEndDate"
FIELD_RECURRENCE_MONTHLY_TYPE = "monthlyRecurrenceType"
FIELD_RECURRENCE_DAY_OF_MONTH = "monthlyDayOfMonth"

RECURRENCE_FIELDS = (
    FIELD_IS_RECURRING,
    FIELD_RECURRENCE_TYPE,
    FIELD_RECURRENCE_WEEKDAYS,
    FIELD_RECURRENCE_COUNT,
    FIELD_RECURRENCE_END_TYPE,
    FIELD_RECURRENCE_END_DATE,
    FIELD_RECURRENCE_MONTHLY_TYPE,
    FIELD_RECURRENCE_DAY_OF_MONTH,
)

# Fields that differ between a base event and each of its occurrences
_PER_OCCURRENCE_FIELDS = (
    FIELD_START_DATE,
    FIELD_END_DATE,
    FIELD_RECORD_NAME_MIRROR,
)


logger = logging.getLogger(__name__)


class InvalidEvent(Exception):
    """An event record failed validation."""

    def __init__(self, errors) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class EventRecord:
    """A calendar event record."""

    record_type = RECORD_TYPE_CALENDAR_EVENT

    def __init__(self, fields=None, record_name: Optional[str] = None) -> None:
        if record_name is None:
            record_name = str(uuid.uuid4())
        self.record_name = record_name
        self._fields = dict(fields or {})

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._fields!r}, record_name={self.record_name!r})"

    def __eq__(self, other):
        if not isinstance(other, EventRecord):
            return NotImplemented
        return (self.record_name, self._fields) == (other.record_name, other._fields)

    def __getitem__(self, name):
        return self._fields[name]

    def __setitem__(self, name, value):
        if value is None:
            self._fields.pop(name, None)
        else:
            self._fields[name] = value

    def __delitem__(self, name):
        del self._fields[name]

    def __contains__(self, name):
        return name in self._fields

    def __iter__(self):
        return iter(self._fields)

    def get(self, name, default=None):
        return self._fields.get(name, default)

    def keys(self):
        return self._fields.keys()

    def copy(self):
        return EventRecord(self._fields, record_name=self.record_name)

    @property
    def title(self):
        return self._fields.get(FIELD_TITLE)

    @property
    def start(self):
        return self._fields.get(FIELD_START_DATE)

    @property
    def end(self):
        return self._fields.get(FIELD_END_DATE)

    @property
    def parent(self) -> Optional[str]:
        return self._fields.get(FIELD_RECURRENCE_PARENT)

    @property
    def archived(self) -> bool:
        return bool(self._fields.get(FIELD_IS_ARCHIVED))

    def validate(self):
        """Verify that the record is valid.

        :raise InvalidEvent: Raised if the record is not valid
        """
        errors = list(validate_event(self))
        if errors:
            raise InvalidEvent(errors)


def validate_event(record):
    """Validate an event record.

    Args:
      record: EventRecord
    Returns: iterator over error messages
    """
    title = record.get(FIELD_TITLE)
    if not title or not title.strip():
        yield "Title is required."
    start = record.get(FIELD_START_DATE)
    end = record.get(FIELD_END_DATE)
    if start is None:
        yield "Start date is required."
    if end is None:
        yield "End date is required."
    if start is not None and end is not None:
        if isinstance(start, datetime) != isinstance(end, datetime):
            yield "Start and end dates must both be dates or both have a time."
        elif isinstance(start, datetime) and (
            (start.tzinfo is None) != (end.tzinfo is None)
        ):
            yield "Start and end dates must both have a timezone or neither."
        elif end < start:
            yield "End date must be after start date."
    link = record.get(FIELD_LINK_URL)
    if link:
        parsed = urlparse(link)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            yield f"Invalid link URL {link!r}."


def set_recurrence(record, rule: Optional[RecurrenceRule]) -> None:
    """Store a recurrence rule in the recurrence fields of a record.

    Passing None clears the recurrence fields.
    """
    for field in RECURRENCE_FIELDS:
        record[field] = None
    if rule is None:
        return
    record[FIELD_IS_RECURRING] = True
    record[FIELD_RECURRENCE_TYPE] = rule.frequency
    record[FIELD_RECURRENCE_END_TYPE] = rule.end_type
    record[FIELD_RECURRENCE_COUNT] = rule.count
    record[FIELD_RECURRENCE_END_DATE] = rule.until
    if rule.frequency == FREQ_WEEKLY:
        record[FIELD_RECURRENCE_WEEKDAYS] = format_weekdays(rule.weekdays)
    elif rule.frequency == FREQ_MONTHLY:
        record[FIELD_RECURRENCE_MONTHLY_TYPE] = rule.monthly_mode
        record[FIELD_RECURRENCE_DAY_OF_MONTH] = rule.day_of_month


def format_weekdays(weekdays) -> str:
    """Format a weekday set as a Sunday-first mask, e.g. "0101000"."""
    return "".join(
        "1" if wd in weekdays else "0" for wd in range(len(WEEKDAY_ABBREVIATIONS))
    )


def parse_weekdays(text) -> frozenset:
    """Parse a Sunday-first weekday mask.

    :raise ValueError: Raised if text is not seven characters of 0 and 1
    """
    if not text:
        return frozenset()
    if len(text) != len(WEEKDAY_ABBREVIATIONS) or set(text) - {"0", "1"}:
        raise ValueError(f"invalid weekday mask {text!r}")
    return frozenset(wd for wd, flag in enumerate(text) if flag == "1")


def get_recurrence(record) -> Optional[RecurrenceRule]:
    """Read the recurrence rule stored in a record.

    Returns: a RecurrenceRule, or None if the record does not recur
    :raise InvalidEvent: Raised if the stored recurrence is malformed
    """
    if not record.get(FIELD_IS_RECURRING):
        return None
    try:
        return RecurrenceRule(
            record.get(FIELD_RECURRENCE_TYPE),
            weekdays=parse_weekdays(record.get(FIELD_RECURRENCE_WEEKDAYS)),
            monthly_mode=record.get(FIELD_RECURRENCE_MONTHLY_TYPE, MONTHLY_ON_DAY),
            day_of_month=record.get(FIELD_RECURRENCE_DAY_OF_MONTH),
            end_type=record.get(FIELD_RECURRENCE_END_TYPE),
            count=record.get(FIELD_RECURRENCE_COUNT),
            until=record.get(FIELD_RECURRENCE_END_DATE),
        )
    except ValueError as e:
        raise InvalidEvent([f"Invalid recurrence: {e}"]) from e


def create_recurring_events(base, rule: RecurrenceRule, expander=None):
    """Create the records for the additional occurrences of an event.

    Every field of the base is copied, except for the start and end dates
    which are set per occurrence. Each occurrence refers back to the base
    through its recurrence parent field.

    Args:
      base: Base EventRecord
      rule: Recurrence rule
      expander: RecurrenceExpander to use
    Returns: list of new EventRecord objects, not yet saved
    :raise InvalidEvent: Raised if the base record is not valid
    """
    base.validate()
    if expander is None:
        expander = RecurrenceExpander()
    ret = []
    for occurrence in expander.expand_occurrences(base.start, base.end, rule):
        child = EventRecord()
        for key in base.keys():
            if key not in _PER_OCCURRENCE_FIELDS:
                child[key] = base[key]
        child[FIELD_START_DATE] = occurrence.start
        child[FIELD_END_DATE] = occurrence.end
        child[FIELD_RECORD_NAME_MIRROR] = child.record_name
        child[FIELD_IS_RECURRENCE_SERIES] = True
        child[FIELD_RECURRENCE_PARENT] = base.record_name
        ret.append(child)
    logger.debug(
        "Created %d occurrences of %s (%s)", len(ret), base.record_name, base.title
    )
    return ret


def archive_event(record, when: Optional[datetime] = None) -> None:
    if when is None:
        when = datetime.now(timezone.utc)
    record[FIELD_IS_ARCHIVED] = True
    record[FIELD_ARCHIVE_DATE] = when


def unarchive_event(record) -> None:
    record[FIELD_IS_ARCHIVED] = False
    record[FIELD_ARCHIVE_DATE] = None


def describe_event(record) -> str:
    try:
        return f"event '{record[FIELD_TITLE]}'"
    except KeyError:
        return "calendar event"
