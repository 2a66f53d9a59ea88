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

"""Enlace command-line handling."""

import argparse
import logging
import sys
from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import dateutil.parser

from . import __version__
from .config import EnlaceConfig, InvalidConfig
from .records import (
    FIELD_END_DATE,
    FIELD_START_DATE,
    FIELD_TITLE,
    EventRecord,
    InvalidEvent,
    create_recurring_events,
    set_recurrence,
)
from .recurrence import (
    END_AFTER_OCCURRENCES,
    END_NEVER,
    END_ON_DATE,
    FREQ_WEEKLY,
    MONTHLY_ON_DAY,
    VALID_FREQUENCIES,
    VALID_MONTHLY_MODES,
    RecurrenceExpander,
    RecurrenceRule,
    parse_weekday,
    weekday_of,
)

DEFAULT_TITLE = "Untitled Event"


# If no subparser is given, default to 'expand'
def set_default_subparser(self, argv, name):
    subparser_found = False
    for arg in argv:
        if arg in ["-h", "--help", "--version"]:
            break
    else:
        for x in self._subparsers._actions:
            if not isinstance(x, argparse._SubParsersAction):
                continue
            for sp_name in x._name_parser_map.keys():
                if sp_name in argv:
                    subparser_found = True
        if not subparser_found:
            sys.stderr.write('No subcommand given, defaulting to "%s"\n' % name)
            argv.insert(0, name)


def _datetime_arg(text):
    try:
        return dateutil.parser.parse(text)
    except (ValueError, OverflowError) as e:
        raise argparse.ArgumentTypeError(f"invalid date {text!r}: {e}")


def _until_arg(text):
    try:
        return date.fromisoformat(text)
    except ValueError:
        return _datetime_arg(text)


def _weekday_arg(text):
    try:
        return parse_weekday(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _localize(dt, tz):
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt


def add_parser(parser):
    parser.add_argument(
        "--start", required=True, type=_datetime_arg,
        help="Start of the first occurrence.")
    parser.add_argument(
        "--end", required=True, type=_datetime_arg,
        help="End of the first occurrence.")
    parser.add_argument(
        "--title", default=DEFAULT_TITLE, help="Event title. [%(default)s]")
    parser.add_argument(
        "-f", "--frequency", choices=VALID_FREQUENCIES, required=True,
        help="How often the event repeats.")
    parser.add_argument(
        "--weekday", action="append", dest="weekdays", type=_weekday_arg,
        default=[],
        help=("Weekday for weekly recurrence (SU, MO, ...). May be given "
              "more than once. Defaults to the weekday of --start."))
    parser.add_argument(
        "--monthly-mode", choices=VALID_MONTHLY_MODES, default=MONTHLY_ON_DAY,
        help="Monthly recurrence by day of month or by weekday. [%(default)s]")
    parser.add_argument(
        "--day", type=int, dest="day_of_month", default=None,
        help="Day of month for monthly recurrence.")
    end_group = parser.add_mutually_exclusive_group()
    end_group.add_argument(
        "--count", type=int, default=None,
        help="Number of additional occurrences.")
    end_group.add_argument(
        "--until", type=_until_arg, default=None,
        help="Last date on which an occurrence may start.")
    parser.add_argument(
        "--max-occurrences", type=int, default=None,
        help="Maximum number of occurrences to generate.")
    parser.add_argument(
        "--timezone", default=None,
        help="Timezone for dates given without one.")
    parser.add_argument(
        "-c", "--config", default=None, help="Path to configuration file.")
    parser.add_argument(
        "--ical", action="store_true",
        help="Print an iCalendar file rather than a list of dates.")
    parser.add_argument(
        "--debug", action="store_true", help="Print debug messages.")


def expand_main(args, parser):
    try:
        if args.config:
            config = EnlaceConfig.from_path(args.config)
        else:
            config = EnlaceConfig()
        if args.timezone:
            tz = ZoneInfo(args.timezone)
        else:
            tz = config.get_timezone()
        if args.max_occurrences is not None:
            expander = RecurrenceExpander(args.max_occurrences)
        else:
            expander = config.get_expander()
    except (OSError, InvalidConfig, ZoneInfoNotFoundError, ValueError) as e:
        sys.stderr.write(f"{parser.prog}: {e}\n")
        return 1

    start = _localize(args.start, tz)
    end = _localize(args.end, tz)

    if args.count is not None:
        end_type = END_AFTER_OCCURRENCES
    elif args.until is not None:
        end_type = END_ON_DATE
    else:
        end_type = END_NEVER
    weekdays = args.weekdays
    if args.frequency == FREQ_WEEKLY and not weekdays:
        weekdays = [weekday_of(start)]
    try:
        rule = RecurrenceRule(
            args.frequency,
            weekdays=weekdays,
            monthly_mode=args.monthly_mode,
            day_of_month=args.day_of_month,
            end_type=end_type,
            count=args.count,
            until=args.until,
        )
    except ValueError as e:
        sys.stderr.write(f"{parser.prog}: {e}\n")
        return 1

    base = EventRecord({
        FIELD_TITLE: args.title,
        FIELD_START_DATE: start,
        FIELD_END_DATE: end,
    })
    set_recurrence(base, rule)
    try:
        children = create_recurring_events(base, rule, expander=expander)
    except InvalidEvent as e:
        for error in e.errors:
            sys.stderr.write(f"{parser.prog}: {error}\n")
        return 1

    if args.ical:
        from .icalendar import series_to_calendar

        cal = series_to_calendar(base, children)
        sys.stdout.write(cal.to_ical().decode("utf-8"))
    else:
        for child in children:
            sys.stdout.write(
                f"{child.start.isoformat()} - {child.end.isoformat()}\n")
    return 0


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = argparse.ArgumentParser(prog="enlace")

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s " + ".".join(map(str, __version__)),
    )

    subparsers = parser.add_subparsers(help="Subcommands", dest="subcommand")
    expand_parser = subparsers.add_parser(
        "expand",
        usage="%(prog)s --start START --end END -f FREQUENCY [OPTIONS]",
        help="List the occurrences of a recurring event",
    )
    add_parser(expand_parser)

    set_default_subparser(parser, argv, "expand")
    args = parser.parse_args(argv)

    if args.subcommand == "expand":
        logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
        return expand_main(args, expand_parser)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
