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

"""Configuration file.
"""

import configparser
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .recurrence import DEFAULT_MAX_OCCURRENCES, RecurrenceExpander

FILENAME = 'enlace.conf'

DEFAULT_TIMEZONE = 'UTC'

RECURRENCE_SECTION = 'recurrence'


class InvalidConfig(Exception):
    """Invalid configuration value."""

    def __init__(self, key, value, reason) -> None:
        super().__init__(f"Invalid value {value!r} for {key}: {reason}")
        self.key = key
        self.value = value


class EnlaceConfig(object):
    """Settings for the admin tools."""

    def __init__(self, cp=None, save=None):
        if cp is None:
            cp = configparser.ConfigParser()
        self._configparser = cp
        self._save_cb = save

    def _save(self, message):
        if self._save_cb is None:
            return
        self._save_cb(self._configparser, message)

    @classmethod
    def from_file(cls, f):
        cp = configparser.ConfigParser()
        cp.read_file(f)
        return cls(cp)

    @classmethod
    def from_path(cls, path):
        with open(path, encoding='utf-8') as f:
            return cls.from_file(f)

    def _ensure_recurrence_section(self):
        try:
            self._configparser.add_section(RECURRENCE_SECTION)
        except configparser.DuplicateSectionError:
            pass

    def get_max_occurrences(self):
        try:
            value = self._configparser[RECURRENCE_SECTION]['max_occurrences']
        except KeyError:
            return DEFAULT_MAX_OCCURRENCES
        try:
            ret = int(value)
        except ValueError:
            raise InvalidConfig('max_occurrences', value, 'not an integer')
        if ret < 1:
            raise InvalidConfig('max_occurrences', value, 'must be positive')
        return ret

    def set_max_occurrences(self, max_occurrences):
        self._ensure_recurrence_section()
        if max_occurrences is None:
            self._configparser.remove_option(RECURRENCE_SECTION, 'max_occurrences')
        else:
            self._configparser[RECURRENCE_SECTION]['max_occurrences'] = str(
                max_occurrences)
        self._save("Set maximum number of occurrences.")

    def get_timezone(self):
        try:
            name = self._configparser[RECURRENCE_SECTION]['timezone']
        except KeyError:
            name = DEFAULT_TIMEZONE
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            raise InvalidConfig('timezone', name, 'unknown timezone')

    def set_timezone(self, name):
        self._ensure_recurrence_section()
        if name is None:
            self._configparser.remove_option(RECURRENCE_SECTION, 'timezone')
        else:
            self._configparser[RECURRENCE_SECTION]['timezone'] = name
        self._save("Set timezone.")

    def get_expander(self):
        return RecurrenceExpander(self.get_max_occurrences())
