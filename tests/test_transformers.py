#!/usr/bin/env python3
"""
Entity transformer tests against a schema-initialized SQLite target
"""

import pytest

from core.errors import MigrationError
from core.transformers import (
    GROUP_NAMES,
    ActivityLogTransformer,
    AfkStatusTransformer,
    ForumMessageTransformer,
    ResetHistoryTransformer,
    RoleTransformer,
    UserTransformer,
    VoiceChannelMappingTransformer,
    build_transformers,
)

from conftest import CHANNEL, FORUM_POST, THREAD, UNKNOWN_USER, USER_A, USER_B, USER_C, VOICE_CHANNEL, T0


def migrate_users(tx, document):
    return UserTransformer(tx).transform(document["user_activity"])


def migrate_roles(tx, document):
    return RoleTransformer(tx).transform(document["role_config"])


class TestUserTransformer:

    def test_rejects_malformed_identifier(self, schema_tx):
        result = UserTransformer(schema_tx).transform({"abc123": {"totalTime": 100}})
        assert result.processed == 0
        assert result.errors == [{"key": "abc123", "reason": "invalid identifier format"}]
        assert schema_tx.query_value("SELECT COUNT(*) AS count FROM users") == 0

    def test_writes_principal_and_activity(self, schema_tx, legacy_document):
        result = migrate_users(schema_tx, legacy_document)
        assert (result.processed, result.skipped, len(result.errors)) == (3, 0, 1)

        user = schema_tx.query("SELECT * FROM users WHERE id = %s", (USER_A,))[0]
        assert user["display_name"] == "Alice"
        activity = schema_tx.query("SELECT * FROM user_activities WHERE user_id = %s", (USER_B,))[0]
        assert activity["total_time_ms"] == 7200000
        assert activity["is_currently_active"] == 1
        assert activity["session_count"] == 1
        assert schema_tx.query_value("SELECT display_name FROM users WHERE id = %s", (USER_C,)) == "Unknown User"

    def test_rerun_is_idempotent(self, schema_tx, legacy_document):
        migrate_users(schema_tx, legacy_document)
        migrate_users(schema_tx, legacy_document)
        assert schema_tx.query_value("SELECT COUNT(*) AS count FROM users") == 3
        assert schema_tx.query_value("SELECT COUNT(*) AS count FROM user_activities") == 3
        assert schema_tx.query_value("SELECT SUM(total_time_ms) AS total FROM user_activities") == 10800000

    def test_duplicate_identity_in_one_pass_is_skipped(self, schema_tx):
        # An int key and its string form name the same principal
        transformer = UserTransformer(schema_tx)
        result = transformer.transform({USER_A: {"totalTime": 1}, int(USER_A): {"totalTime": 2}})
        assert (result.processed, result.skipped) == (1, 1)

    def test_wrong_container_shape_cannot_start(self, schema_tx):
        with pytest.raises(MigrationError) as excinfo:
            UserTransformer(schema_tx).transform([{"totalTime": 1}])
        assert excinfo.value.details["group"] == "users"

    def test_missing_collection_is_empty(self, schema_tx):
        result = UserTransformer(schema_tx).transform(None)
        assert (result.processed, result.errors) == (0, [])


class TestRoleTransformer:

    def test_priority_derived_from_min_hours(self, schema_tx):
        result = RoleTransformer(schema_tx).transform({"Veteran": {"minHours": 60}})
        assert result.processed == 1
        assert schema_tx.query_value("SELECT priority FROM roles WHERE name = %s", ("Veteran",)) == 2

    def test_reset_time_creates_history_row(self, schema_tx, legacy_document):
        result = migrate_roles(schema_tx, legacy_document)
        assert result.processed == 2
        assert result.errors == [{"key": "Broken", "reason": "missing minHours"}]
        rows = schema_tx.query("SELECT reset_reason, admin_username FROM role_reset_history")
        assert rows == [{"reset_reason": "Legacy data migration reset", "admin_username": "system"}]

        migrate_roles(schema_tx, legacy_document)
        assert schema_tx.query_value("SELECT COUNT(*) AS count FROM role_reset_history") == 1


class TestDependentGroups:

    @pytest.fixture
    def seeded(self, schema_tx, legacy_document):
        migrate_users(schema_tx, legacy_document)
        migrate_roles(schema_tx, legacy_document)
        return schema_tx

    def test_activity_logs(self, seeded, legacy_document):
        result = ActivityLogTransformer(seeded).transform(legacy_document["activity_logs"])
        assert (result.processed, result.skipped) == (2, 1)
        assert result.errors == [
            {"key": "activity_logs[3] (evt-3)", "reason": f"principal not found: {UNKNOWN_USER}"},
            {"key": "activity_logs[4] (evt-4)", "reason": "invalid timestamp: not a number"},
        ]
        event = seeded.query("SELECT * FROM activity_events WHERE event_type = %s", ("JOIN",))[0]
        assert event["channel_id"] == CHANNEL
        assert event["channel_name"] == "General"

    def test_activity_logs_rerun_adds_nothing(self, seeded, legacy_document):
        ActivityLogTransformer(seeded).transform(legacy_document["activity_logs"])
        ActivityLogTransformer(seeded).transform(legacy_document["activity_logs"])
        assert seeded.query_value("SELECT COUNT(*) AS count FROM activity_events") == 2

    def test_activity_logs_must_be_a_list(self, seeded):
        with pytest.raises(MigrationError):
            ActivityLogTransformer(seeded).transform({"0": {}})

    def test_reset_history(self, seeded, legacy_document):
        result = ResetHistoryTransformer(seeded).transform(legacy_document["reset_history"])
        assert result.processed == 2
        assert result.errors == [{"key": "Ghost", "reason": "role not found: Ghost"}]
        # The first entry repeats the role_config reset and lands on the same row
        assert seeded.query_value("SELECT COUNT(*) AS count FROM role_reset_history") == 2

    def test_afk_status(self, seeded, legacy_document):
        result = AfkStatusTransformer(seeded).transform(legacy_document["afk_status"])
        assert result.processed == 1
        assert result.errors == [{"key": UNKNOWN_USER, "reason": f"principal not found: {UNKNOWN_USER}"}]
        row = seeded.query("SELECT * FROM afk_status WHERE user_id = %s", (USER_A,))[0]
        assert row["reason"] == "lunch"
        assert row["is_active"] == 0

    def test_afk_failure_leaves_no_partial_row(self, seeded):
        AfkStatusTransformer(seeded).transform({UNKNOWN_USER: {"afkUntil": T0}})
        assert seeded.query_value("SELECT COUNT(*) AS count FROM afk_status") == 0

    def test_forum_messages(self, seeded, legacy_document):
        result = ForumMessageTransformer(seeded).transform(legacy_document["forum_messages"])
        assert result.processed == 2
        assert result.errors[0]["reason"] == "invalid identifier format (thread)"
        types = {row["message_type"] for row in seeded.query(
            "SELECT message_type FROM forum_messages WHERE thread_id = %s", (THREAD,))}
        assert types == {"SUMMARY"}

    def test_voice_channel_mappings(self, seeded, legacy_document):
        result = VoiceChannelMappingTransformer(seeded).transform(legacy_document["voice_channel_mappings"])
        assert result.processed == 1
        assert result.errors == [{"key": "123", "reason": "invalid identifier format"}]
        row = seeded.query("SELECT * FROM voice_channel_mappings")[0]
        assert row["voice_channel_id"] == VOICE_CHANNEL
        assert row["forum_post_id"] == FORUM_POST
        assert row["last_participant_count"] == 3


def test_simulate_writes_nothing(schema_tx, legacy_document):
    result = ActivityLogTransformer(schema_tx).simulate(legacy_document["activity_logs"])
    # Foreign keys are not resolved without a store
    assert (result.processed, result.skipped, len(result.errors)) == (3, 1, 1)
    assert schema_tx.query_value("SELECT COUNT(*) AS count FROM activity_events") == 0


def test_build_transformers_in_dependency_order(schema_tx):
    transformers = build_transformers(schema_tx)
    assert [transformer.group for transformer in transformers] == list(GROUP_NAMES)
    assert GROUP_NAMES[:2] == ("users", "roles")
    assert GROUP_NAMES.index("afk_status") > GROUP_NAMES.index("users")
    assert GROUP_NAMES.index("reset_history") > GROUP_NAMES.index("roles")
