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


"""Tests for enlace.records."""

import unittest
from datetime import date, datetime, timezone

from enlace.records import (
    FIELD_ARCHIVE_DATE,
    FIELD_IS_ARCHIVED,
    FIELD_IS_RECURRENCE_SERIES,
    FIELD_IS_RECURRING,
    FIELD_RECORD_NAME_MIRROR,
    FIELD_RECURRENCE_COUNT,
    FIELD_RECURRENCE_DAY_OF_MONTH,
    FIELD_RECURRENCE_END_TYPE,
    FIELD_RECURRENCE_MONTHLY_TYPE,
    FIELD_RECURRENCE_PARENT,
    FIELD_RECURRENCE_TYPE,
    FIELD_RECURRENCE_WEEKDAYS,
    EventRecord,
    InvalidEvent,
    archive_event,
    create_recurring_events,
    describe_event,
    format_weekdays,
    get_recurrence,
    parse_weekdays,
    set_recurrence,
    unarchive_event,
    validate_event,
)
from enlace.recurrence import (
    END_AFTER_OCCURRENCES,
    END_ON_DATE,
    MONDAY,
    SATURDAY,
    SUNDAY,
    WEDNESDAY,
    RecurrenceExpander,
    RecurrenceRule,
)


def make_event(**fields):
    ret = EventRecord(
        {
            "title": "Community dinner",
            "startDate": datetime(2024, 1, 1, 18, 0),
            "endDate": datetime(2024, 1, 1, 20, 30),
            "location": "Parish hall",
            "notes": "Bring a dish to share",
            "pdfReference": "pdf-menu",
        },
        record_name="dinner",
    )
    for name, value in fields.items():
        ret[name] = value
    return ret


class EventRecordTests(unittest.TestCase):
    def test_generated_name(self):
        a = EventRecord()
        b = EventRecord()
        self.assertNotEqual(a.record_name, b.record_name)

    def test_set_none_removes(self):
        record = make_event()
        record["location"] = None
        self.assertNotIn("location", record)
        self.assertIsNone(record.get("location"))

    def test_copy_is_independent(self):
        record = make_event()
        copy = record.copy()
        self.assertEqual(record, copy)
        copy["title"] = "Other"
        self.assertEqual("Community dinner", record.title)

    def test_accessors(self):
        record = make_event()
        self.assertEqual("Community dinner", record.title)
        self.assertEqual(datetime(2024, 1, 1, 18, 0), record.start)
        self.assertEqual(datetime(2024, 1, 1, 20, 30), record.end)
        self.assertIsNone(record.parent)
        self.assertFalse(record.archived)

    def test_describe(self):
        self.assertEqual("event 'Community dinner'", describe_event(make_event()))
        self.assertEqual("calendar event", describe_event(EventRecord()))


class ValidateEventTests(unittest.TestCase):
    def test_valid(self):
        self.assertEqual([], list(validate_event(make_event())))
        make_event().validate()

    def test_title_required(self):
        self.assertEqual(
            ["Title is required."], list(validate_event(make_event(title="  ")))
        )
        record = make_event()
        del record["title"]
        self.assertEqual(["Title is required."], list(validate_event(record)))

    def test_dates_required(self):
        record = make_event()
        del record["startDate"]
        del record["endDate"]
        self.assertEqual(
            ["Start date is required.", "End date is required."],
            list(validate_event(record)),
        )

    def test_end_before_start(self):
        record = make_event(endDate=datetime(2024, 1, 1, 17, 0))
        self.assertEqual(
            ["End date must be after start date."], list(validate_event(record))
        )
        with self.assertRaises(InvalidEvent) as cm:
            record.validate()
        self.assertEqual(["End date must be after start date."], cm.exception.errors)

    def test_mixed_date_types(self):
        record = make_event(endDate=date(2024, 1, 2))
        self.assertEqual(
            ["Start and end dates must both be dates or both have a time."],
            list(validate_event(record)),
        )
        self.assertRaises(InvalidEvent, record.validate)

    def test_mixed_timezones(self):
        record = make_event(endDate=datetime(2024, 1, 1, 20, 30, tzinfo=timezone.utc))
        self.assertEqual(
            ["Start and end dates must both have a timezone or neither."],
            list(validate_event(record)),
        )

    def test_all_day(self):
        record = make_event(startDate=date(2024, 1, 1), endDate=date(2024, 1, 2))
        self.assertEqual([], list(validate_event(record)))

    def test_zero_length_allowed(self):
        record = make_event(endDate=datetime(2024, 1, 1, 18, 0))
        self.assertEqual([], list(validate_event(record)))

    def test_link_url(self):
        self.assertEqual(
            [], list(validate_event(make_event(linkURL="https://example.com/x")))
        )
        self.assertEqual(
            ["Invalid link URL 'example.com'."],
            list(validate_event(make_event(linkURL="example.com"))),
        )


class RecurrenceFieldsTests(unittest.TestCase):
    def test_not_recurring(self):
        self.assertIsNone(get_recurrence(make_event()))

    def test_weekly(self):
        record = make_event()
        rule = RecurrenceRule.weekly(
            [WEDNESDAY, MONDAY], end_type=END_AFTER_OCCURRENCES, count=4
        )
        set_recurrence(record, rule)
        self.assertTrue(record[FIELD_IS_RECURRING])
        self.assertEqual("weekly", record[FIELD_RECURRENCE_TYPE])
        self.assertEqual("0101000", record[FIELD_RECURRENCE_WEEKDAYS])
        self.assertEqual(4, record[FIELD_RECURRENCE_COUNT])
        self.assertEqual("afterOccurrences", record[FIELD_RECURRENCE_END_TYPE])
        self.assertEqual(rule, get_recurrence(record))

    def test_monthly_until(self):
        record = make_event()
        rule = RecurrenceRule.monthly_on_weekday(
            end_type=END_ON_DATE, until=date(2024, 12, 31)
        )
        set_recurrence(record, rule)
        self.assertNotIn(FIELD_RECURRENCE_WEEKDAYS, record)
        self.assertNotIn(FIELD_RECURRENCE_COUNT, record)
        self.assertEqual(rule, get_recurrence(record))

    def test_clear(self):
        record = make_event()
        set_recurrence(record, RecurrenceRule.yearly())
        set_recurrence(record, None)
        self.assertIsNone(get_recurrence(record))
        self.assertNotIn(FIELD_RECURRENCE_TYPE, record)

    def test_monthly_fields(self):
        record = make_event()
        set_recurrence(record, RecurrenceRule.monthly(15))
        self.assertEqual("onDay", record[FIELD_RECURRENCE_MONTHLY_TYPE])
        self.assertEqual(15, record[FIELD_RECURRENCE_DAY_OF_MONTH])
        self.assertEqual(RecurrenceRule.monthly(15), get_recurrence(record))

    def test_stored_weekly(self):
        record = make_event(
            isRecurring=True,
            recurrenceType="weekly",
            recurrenceWeekdays="0101000",
            recurrenceEndType="afterOccurrences",
            recurrenceCount=4,
        )
        self.assertEqual(
            RecurrenceRule.weekly(
                [MONDAY, WEDNESDAY], end_type=END_AFTER_OCCURRENCES, count=4
            ),
            get_recurrence(record),
        )

    def test_stored_monthly_on_weekday(self):
        record = make_event(
            isRecurring=True,
            recurrenceType="monthly",
            monthlyRecurrenceType="onWeekday",
            recurrenceEndType="never",
        )
        rule = get_recurrence(record)
        self.assertEqual("onWeekday", rule.monthly_mode)
        self.assertEqual(RecurrenceRule.monthly_on_weekday(), rule)

    def test_stored_monthly_on_day(self):
        record = make_event(
            isRecurring=True,
            recurrenceType="monthly",
            monthlyRecurrenceType="onDay",
            monthlyDayOfMonth=15,
            recurrenceEndType="onDate",
            recurrenceEndDate=datetime(2024, 6, 30),
        )
        self.assertEqual(
            RecurrenceRule.monthly(
                15, end_type=END_ON_DATE, until=datetime(2024, 6, 30)
            ),
            get_recurrence(record),
        )

    def test_stored_roundtrip(self):
        record = make_event(
            isRecurring=True,
            recurrenceType="weekly",
            recurrenceWeekdays="1000001",
            recurrenceEndType="never",
        )
        copy = make_event()
        set_recurrence(copy, get_recurrence(record))
        self.assertEqual(record, copy)

    def test_malformed_weekdays(self):
        for mask in ("1,3", "010100", "01010001", "0102000", "o101000"):
            record = make_event(
                isRecurring=True,
                recurrenceType="weekly",
                recurrenceWeekdays=mask,
                recurrenceEndType="never",
            )
            self.assertRaises(InvalidEvent, get_recurrence, record)

    def test_malformed(self):
        record = make_event(isRecurring=True, recurrenceType="fortnightly")
        self.assertRaises(InvalidEvent, get_recurrence, record)
        record = make_event(
            isRecurring=True,
            recurrenceType="daily",
            recurrenceEndType="afterOccurrences",
        )
        self.assertRaises(InvalidEvent, get_recurrence, record)


class CreateRecurringEventsTests(unittest.TestCase):
    def test_children(self):
        base = make_event()
        rule = RecurrenceRule.weekly(
            [MONDAY, WEDNESDAY], end_type=END_AFTER_OCCURRENCES, count=3
        )
        set_recurrence(base, rule)
        children = create_recurring_events(base, rule)
        self.assertEqual(
            [
                (datetime(2024, 1, 3, 18, 0), datetime(2024, 1, 3, 20, 30)),
                (datetime(2024, 1, 8, 18, 0), datetime(2024, 1, 8, 20, 30)),
                (datetime(2024, 1, 10, 18, 0), datetime(2024, 1, 10, 20, 30)),
            ],
            [(child.start, child.end) for child in children],
        )
        for child in children:
            self.assertNotEqual(base.record_name, child.record_name)
            self.assertEqual(child.record_name, child[FIELD_RECORD_NAME_MIRROR])
            self.assertEqual("dinner", child[FIELD_RECURRENCE_PARENT])
            self.assertEqual("dinner", child.parent)
            self.assertTrue(child[FIELD_IS_RECURRENCE_SERIES])
            for field in ("title", "location", "notes", "pdfReference"):
                self.assertEqual(base[field], child[field])
            self.assertEqual(rule, get_recurrence(child))
        self.assertEqual(3, len({child.record_name for child in children}))

    def test_base_unchanged(self):
        base = make_event()
        before = base.copy()
        create_recurring_events(
            base, RecurrenceRule.daily(end_type=END_AFTER_OCCURRENCES, count=2)
        )
        self.assertEqual(before, base)
        self.assertNotIn(FIELD_IS_RECURRENCE_SERIES, base)

    def test_invalid_base(self):
        base = make_event(title="")
        self.assertRaises(
            InvalidEvent,
            create_recurring_events,
            base,
            RecurrenceRule.daily(end_type=END_AFTER_OCCURRENCES, count=2),
        )

    def test_expander(self):
        base = make_event()
        with self.assertLogs("enlace.recurrence", level="WARNING"):
            children = create_recurring_events(
                base, RecurrenceRule.daily(), expander=RecurrenceExpander(7)
            )
        self.assertEqual(7, len(children))


class ArchiveEventTests(unittest.TestCase):
    def test_archive(self):
        record = make_event()
        when = datetime(2024, 2, 1, tzinfo=timezone.utc)
        archive_event(record, when)
        self.assertTrue(record.archived)
        self.assertTrue(record[FIELD_IS_ARCHIVED])
        self.assertEqual(when, record[FIELD_ARCHIVE_DATE])

    def test_archive_now(self):
        record = make_event()
        archive_event(record)
        self.assertIsNotNone(record[FIELD_ARCHIVE_DATE].tzinfo)

    def test_unarchive(self):
        record = make_event()
        archive_event(record, datetime(2024, 2, 1, tzinfo=timezone.utc))
        unarchive_event(record)
        self.assertFalse(record.archived)
        self.assertFalse(record[FIELD_IS_ARCHIVED])
        self.assertNotIn(FIELD_ARCHIVE_DATE, record)

    def test_unarchive_not_archived(self):
        record = make_event()
        unarchive_event(record)
        self.assertFalse(record.archived)
        self.assertNotIn(FIELD_ARCHIVE_DATE, record)


class WeekdayMaskTests(unittest.TestCase):
    def test_format(self):
        self.assertEqual("0101000", format_weekdays({MONDAY, WEDNESDAY}))
        self.assertEqual("1000001", format_weekdays({SUNDAY, SATURDAY}))
        self.assertEqual("0000000", format_weekdays(set()))

    def test_parse(self):
        self.assertEqual(frozenset([MONDAY, WEDNESDAY]), parse_weekdays("0101000"))
        self.assertEqual(frozenset([SUNDAY, SATURDAY]), parse_weekdays("1000001"))
        self.assertEqual(frozenset(), parse_weekdays("0000000"))
        self.assertEqual(frozenset(), parse_weekdays(None))

    def test_parse_invalid(self):
        self.assertRaises(ValueError, parse_weekdays, "1,3")
        self.assertRaises(ValueError, parse_weekdays, "01010")
        self.assertRaises(ValueError, parse_weekdays, "0121000")
