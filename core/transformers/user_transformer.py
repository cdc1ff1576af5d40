#!/usr/bin/env python3
"""
user_activity -> users + user_activities

Each principal gets exactly one users row and one user_activities row,
written in the same transaction so an activity row never exists without
its principal.
"""

from core.transformers.base import EntityTransformer
from core.validators import validate_user_entry

UPSERT_USER = """
    INSERT INTO users (id, display_name, first_seen, last_seen, is_active, created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (id) DO UPDATE SET
        display_name = excluded.display_name,
        last_seen = excluded.last_seen,
        is_active = excluded.is_active,
        updated_at = excluded.updated_at
"""

UPSERT_ACTIVITY = """
    INSERT INTO user_activities (
        user_id, total_time_ms, current_session_start, is_currently_active,
        session_count, last_activity_at, created_at, updated_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (user_id) DO UPDATE SET
        total_time_ms = excluded.total_time_ms,
        current_session_start = excluded.current_session_start,
        is_currently_active = excluded.is_currently_active,
        session_count = excluded.session_count,
        last_activity_at = excluded.last_activity_at,
        updated_at = excluded.updated_at
"""


class UserTransformer(EntityTransformer):
    group = "users"
    source_key = "user_activity"

    def validate(self, label, payload):
        key, record = payload
        return validate_user_entry(key, record)

    def identity(self, record):
        return record['id']

    def write(self, handle, record):
        now = self.clock()
        handle.execute(UPSERT_USER, (
            record['id'], record['display_name'], now, now, True, now, now,
        ))
        active = record['is_currently_active']
        handle.execute(UPSERT_ACTIVITY, (
            record['id'],
            record['total_time_ms'],
            record['current_session_start'],
            active,
            1 if active else 0,
            now,
            now,
            now,
        ))
