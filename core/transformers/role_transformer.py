#!/usr/bin/env python3
"""
role_config -> roles (+ role_reset_history)

The role priority is derived from min_hours (see core.validators.role_priority).
A role carrying resetTime also produces one reset-history row, keyed on
(role_id, reset_timestamp) so reruns do not duplicate it.
"""

from core.transformers.base import EntityTransformer, resolve_role_id
from core.validators import validate_role_entry

UPSERT_ROLE = """
    INSERT INTO roles (name, min_hours, report_cycle_weeks, priority, is_active, description, created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (name) DO UPDATE SET
        min_hours = excluded.min_hours,
        report_cycle_weeks = excluded.report_cycle_weeks,
        priority = excluded.priority,
        updated_at = excluded.updated_at
"""

INSERT_RESET = """
    INSERT INTO role_reset_history (role_id, reset_timestamp, reset_reason, admin_username, notes)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (role_id, reset_timestamp) DO NOTHING
"""


class RoleTransformer(EntityTransformer):
    group = "roles"
    source_key = "role_config"

    def validate(self, label, payload):
        key, record = payload
        return validate_role_entry(key, record)

    def identity(self, record):
        return record['name']

    def write(self, handle, record):
        now = self.clock()
        handle.execute(UPSERT_ROLE, (
            record['name'],
            record['min_hours'],
            record['report_cycle_weeks'],
            record['priority'],
            True,
            f"Role migrated from legacy store: {record['name']}",
            now,
            now,
        ))

        if record['reset_time'] is not None:
            role_id = resolve_role_id(handle, record['name'])
            handle.execute(INSERT_RESET, (
                role_id,
                record['reset_time'],
                'Legacy data migration reset',
                'system',
                'Imported from role_config.resetTime',
            ))
