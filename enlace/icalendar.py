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

"""ICalendar export of events and recurrence rules."""

from datetime import datetime, time, timezone
from typing import Optional

import dateutil.rrule
from icalendar.cal import Calendar, Event
from icalendar.prop import vRecur

from .records import (
    FIELD_LINK_URL,
    FIELD_LOCATION,
    FIELD_NOTES,
    EventRecord,
)
from .recurrence import (
    END_AFTER_OCCURRENCES,
    END_ON_DATE,
    FREQ_MONTHLY,
    FREQ_WEEKLY,
    FREQ_YEARLY,
    MONTHLY_ON_WEEKDAY,
    WEEKDAY_ABBREVIATIONS,
    DateOrDatetime,
    RecurrenceRule,
    weekday_of,
    weekday_ordinal,
)

PRODID = "-//Enlace//Enlace Admin//EN"

# Smallest number of days in any month
_SHORTEST_MONTH = 28


def _until_for(until: DateOrDatetime, base_start: DateOrDatetime) -> DateOrDatetime:
    # RFC5545 requires UNTIL to have the same value type as DTSTART, and to be
    # in UTC if DTSTART is timezone-aware.
    if not isinstance(base_start, datetime):
        if isinstance(until, datetime):
            return until.date()
        return until
    if not isinstance(until, datetime):
        until = datetime.combine(until, time(23, 59, 59))
    if base_start.tzinfo is None:
        return until.replace(tzinfo=None)
    if until.tzinfo is None:
        until = until.replace(tzinfo=base_start.tzinfo)
    return until.astimezone(timezone.utc)


def _clamped_monthdays(day: int):
    """BYMONTHDAY values that select ``day``, or the last day of shorter months.

    Used with BYSETPOS=-1.
    """
    return list(range(_SHORTEST_MONTH, day + 1))


def rule_to_vrecur(rule: RecurrenceRule, base_start: DateOrDatetime) -> vRecur:
    """Convert a recurrence rule to an RFC5545 RRULE value.

    Args:
      rule: Recurrence rule
      base_start: Start of the base occurrence, used as DTSTART
    Returns: vRecur
    """
    recur = vRecur(FREQ=rule.frequency.upper())
    if rule.frequency == FREQ_WEEKLY:
        recur["BYDAY"] = [WEEKDAY_ABBREVIATIONS[wd] for wd in sorted(rule.weekdays)]
    elif rule.frequency == FREQ_MONTHLY:
        if rule.monthly_mode == MONTHLY_ON_WEEKDAY:
            recur["BYDAY"] = [
                "%d%s"
                % (
                    weekday_ordinal(base_start),
                    WEEKDAY_ABBREVIATIONS[weekday_of(base_start)],
                )
            ]
        else:
            day = rule.day_of_month or base_start.day
            if day > _SHORTEST_MONTH:
                recur["BYMONTHDAY"] = _clamped_monthdays(day)
                recur["BYSETPOS"] = [-1]
            else:
                recur["BYMONTHDAY"] = [day]
    elif rule.frequency == FREQ_YEARLY:
        if (base_start.month, base_start.day) == (2, 29):
            recur["BYMONTH"] = [2]
            recur["BYMONTHDAY"] = _clamped_monthdays(29)
            recur["BYSETPOS"] = [-1]
    if rule.end_type == END_AFTER_OCCURRENCES:
        # COUNT includes the base occurrence
        recur["COUNT"] = rule.count + 1
    elif rule.end_type == END_ON_DATE:
        recur["UNTIL"] = _until_for(rule.until, base_start)
    return recur


def rruleset_from_rule(
    rule: RecurrenceRule, base_start: DateOrDatetime
) -> dateutil.rrule.rruleset:
    rrulestr = rule_to_vrecur(rule, base_start).to_ical().decode("utf-8")
    rrule = dateutil.rrule.rrulestr(rrulestr, dtstart=base_start)
    rs = dateutil.rrule.rruleset()
    rs.rrule(rrule)  # type: ignore
    return rs


def event_to_vevent(
    record: EventRecord,
    rule: Optional[RecurrenceRule] = None,
    stamp: Optional[datetime] = None,
) -> Event:
    """Create a VEVENT for an event record.

    Args:
      record: Event record
      rule: Optional recurrence rule to add as RRULE
      stamp: DTSTAMP value; defaults to the current time
    """
    if stamp is None:
        stamp = datetime.now(timezone.utc)
    event = Event()
    event.add("uid", record.record_name)
    event.add("dtstamp", stamp)
    event.add("summary", record.title)
    event.add("dtstart", record.start)
    event.add("dtend", record.end)
    if record.get(FIELD_LOCATION):
        event.add("location", record[FIELD_LOCATION])
    if record.get(FIELD_NOTES):
        event.add("description", record[FIELD_NOTES])
    if record.get(FIELD_LINK_URL):
        event.add("url", record[FIELD_LINK_URL])
    if record.parent is not None:
        event.add("related-to", record.parent, parameters={"RELTYPE": "PARENT"})
    if rule is not None:
        event.add("rrule", rule_to_vrecur(rule, record.start))
    return event


def series_to_calendar(
    base: EventRecord, children, stamp: Optional[datetime] = None
) -> Calendar:
    """Create a calendar with a base event and its materialized occurrences."""
    if stamp is None:
        stamp = datetime.now(timezone.utc)
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add_component(event_to_vevent(base, stamp=stamp))
    for child in children:
        cal.add_component(event_to_vevent(child, stamp=stamp))
    return cal
