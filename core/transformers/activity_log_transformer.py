#!/usr/bin/env python3
"""
activity_logs -> activity_events

The legacy log is an ordered list. Events are keyed on
(user, type, timestamp, channel) so a rerun, or the same event logged twice,
lands on one row. Events for principals that were not migrated are
rejected.
"""

from core.transformers.base import EntityTransformer, require_principal
from core.validators import validate_activity_event

INSERT_EVENT = """
    INSERT INTO activity_events (
        event_key, user_id, event_type, event_timestamp,
        channel_id, channel_name, duration_ms, extra
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (event_key) DO NOTHING
"""


class ActivityLogTransformer(EntityTransformer):
    group = "activity_logs"
    source_key = "activity_logs"
    container = list

    def entries(self, collection):
        for position, record in enumerate(collection):
            label = f"activity_logs[{position}]"
            if isinstance(record, dict) and record.get('id') is not None:
                label = f"{label} ({record['id']})"
            yield label, record

    def validate(self, label, payload):
        return validate_activity_event(payload)

    def identity(self, record):
        return record['event_key']

    def write(self, handle, record):
        require_principal(handle, record['user_id'])
        handle.execute(INSERT_EVENT, (
            record['event_key'],
            record['user_id'],
            record['event_type'],
            record['event_timestamp'],
            record['channel_id'],
            record['channel_name'],
            record['duration_ms'],
            record['extra'],
        ))
