"""TypedDicts for db_events.py return types."""

from __future__ import annotations

from typing import TypedDict

from trellis.types.core import ISOTimestamp


class EventRecord(TypedDict):
    """Row from the events table (SELECT * FROM events).

    Returned by ``get_task_events()``.  ``get_recent_events()`` joins on
    ``tasks`` and adds ``task_title``, so it returns ``EventRecordWithTitle``.
    """

    id: int
    task_id: str
    event_type: str
    actor: str
    old_value: str | None
    new_value: str | None
    created_at: ISOTimestamp


class EventRecordWithTitle(EventRecord):
    task_title: str
