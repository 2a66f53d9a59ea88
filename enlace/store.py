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

"""Record storage.

The production records live in a managed cloud database; RecordStore
describes the small part of it that event series management relies on.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Callable, Optional

from .records import (
    FIELD_RECURRENCE_PARENT,
    EventRecord,
    archive_event,
    create_recurring_events,
    describe_event,
    unarchive_event,
)
from .recurrence import RecurrenceRule

logger = logging.getLogger(__name__)


class NoSuchRecord(Exception):
    """No such record."""

    def __init__(self, name) -> None:
        super().__init__(f"No such record: {name!r}")
        self.name = name


class RecordStore:
    """A collection of records."""

    def save(self, record: EventRecord) -> None:
        """Save a record, replacing any record with the same name."""
        raise NotImplementedError(self.save)

    def get(self, name: str) -> EventRecord:
        """Retrieve a record.

        :raise NoSuchRecord: If there is no record with this name
        """
        raise NotImplementedError(self.get)

    def delete(self, name: str) -> None:
        """Delete a record.

        :raise NoSuchRecord: If there is no record with this name
        """
        raise NotImplementedError(self.delete)

    def iter_records(self) -> Iterable[EventRecord]:
        raise NotImplementedError(self.iter_records)

    def query(
        self, predicate: Callable[[EventRecord], bool], reverse: bool = False
    ) -> list[EventRecord]:
        """Return the records matching a predicate, ordered by start date.

        Args:
          predicate: Function called with each record
          reverse: Whether to put the latest start first
        """
        ret = [record for record in self.iter_records() if predicate(record)]
        ret.sort(key=lambda record: record.start, reverse=reverse)
        return ret


class MemoryRecordStore(RecordStore):
    """Pure in-memory record store."""

    def __init__(self) -> None:
        self._records: dict[str, EventRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def save(self, record: EventRecord) -> None:
        self._records[record.record_name] = record.copy()

    def get(self, name: str) -> EventRecord:
        try:
            return self._records[name].copy()
        except KeyError:
            raise NoSuchRecord(name) from None

    def delete(self, name: str) -> None:
        try:
            del self._records[name]
        except KeyError:
            raise NoSuchRecord(name) from None

    def iter_records(self) -> Iterable[EventRecord]:
        for record in list(self._records.values()):
            yield record.copy()


def save_series(
    store: RecordStore, base: EventRecord, rule: RecurrenceRule, expander=None
) -> list[EventRecord]:
    """Save a base event and all of its additional occurrences.

    Records are saved one at a time, base first. Errors raised by the store
    propagate; occurrences saved before the failure are kept.

    Returns: list of saved occurrence records
    """
    children = create_recurring_events(base, rule, expander=expander)
    store.save(base)
    for child in children:
        store.save(child)
    logger.info(
        "Saved %s with %d recurring occurrences", describe_event(base), len(children)
    )
    return children


def iter_series(store: RecordStore, parent_name: str) -> list[EventRecord]:
    """Return the occurrences that belong to a base event."""
    return store.query(lambda record: record.get(FIELD_RECURRENCE_PARENT) == parent_name)


def delete_series(store: RecordStore, parent_name: str) -> int:
    """Delete the occurrences of a base event, keeping the base itself.

    Returns: number of deleted records
    """
    children = iter_series(store, parent_name)
    for child in children:
        store.delete(child.record_name)
    logger.info("Deleted %d occurrences of %s", len(children), parent_name)
    return len(children)


def archive_series(
    store: RecordStore, parent_name: str, when: Optional[datetime] = None
) -> int:
    """Archive a base event along with its occurrences.

    :raise NoSuchRecord: If the base event does not exist
    Returns: number of archived records
    """
    if when is None:
        when = datetime.now(timezone.utc)
    records = [store.get(parent_name)] + iter_series(store, parent_name)
    for record in records:
        archive_event(record, when)
        store.save(record)
    return len(records)


def unarchive_series(store: RecordStore, parent_name: str) -> int:
    """Restore an archived base event along with its occurrences.

    :raise NoSuchRecord: If the base event does not exist
    Returns: number of restored records
    """
    records = [store.get(parent_name)] + iter_series(store, parent_name)
    for record in records:
        unarchive_event(record)
        store.save(record)
    return len(records)


def iter_active(store: RecordStore) -> list[EventRecord]:
    """Return the events that are not archived, latest start first."""
    return store.query(lambda record: not record.archived, reverse=True)


def iter_archived(store: RecordStore) -> list[EventRecord]:
    """Return the archived events, latest start first."""
    return store.query(lambda record: record.archived, reverse=True)
