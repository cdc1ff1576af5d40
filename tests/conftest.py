#!/usr/bin/env python3
"""
DocShift Test Configuration - PyTest Configuration and Fixtures

Shared fixtures: a throwaway SQLite target store, a transaction manager
with the bundled schema applied, and a sample legacy document that has a
few bad entries in every collection.
"""

import json
import os
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.migration_config import MigrationConfig
from core.schema import default_schema_path
from core.statement_scheduler import schedule_script
from core.transaction_manager import TransactionManager
from extensions.plugins.sqlite_adapter import SQLiteAdapter

USER_A = "123456789012345678"
USER_B = "234567890123456789"
USER_C = "345678901234567890"
UNKNOWN_USER = "999999999999999999"
THREAD = "456789012345678901"
MESSAGE_1 = "567890123456789012"
MESSAGE_2 = "678901234567890123"
VOICE_CHANNEL = "789012345678901234"
FORUM_POST = "890123456789012345"
CHANNEL = "901234567890123456"

T0 = 1700000000000


def build_legacy_document():
    """Legacy document with valid, duplicate and broken entries per collection"""
    return {
        "user_activity": {
            USER_A: {"totalTime": 3600000, "displayName": "  Alice  "},
            USER_B: {"totalTime": 7200000, "startTime": T0, "displayName": "Bob"},
            USER_C: {"totalTime": 0},
            "abc123": {"totalTime": 100},
        },
        "role_config": {
            "Veteran": {"minHours": 60, "reportCycle": 2, "resetTime": T0},
            "Newcomer": {"minHours": 5},
            "Broken": {"reportCycle": 1},
        },
        "activity_logs": [
            {"id": "evt-1", "userId": USER_A, "eventType": "join", "timestamp": T0,
             "channelId": CHANNEL, "channelName": "General"},
            {"id": "evt-2", "userId": USER_A, "eventType": "LEAVE", "timestamp": T0 + 360000,
             "channelId": CHANNEL, "channelName": "General", "durationMs": 360000},
            {"id": "evt-1-again", "userId": USER_A, "eventType": "JOIN", "timestamp": T0,
             "channelId": CHANNEL, "channelName": "General"},
            {"id": "evt-3", "userId": UNKNOWN_USER, "eventType": "JOIN", "timestamp": T0},
            {"id": "evt-4", "userId": USER_B, "eventType": "JOIN", "timestamp": "yesterday"},
        ],
        "reset_history": {
            "Veteran": [
                {"resetTime": T0, "reason": "Season end", "adminUser": "mod"},
                {"resetTime": T0 + 86400000},
            ],
            "Ghost": {"resetTime": T0},
        },
        "afk_status": {
            USER_A: {"afkUntil": T0 + 3600000, "createdAt": T0, "reason": "lunch"},
            UNKNOWN_USER: {"afkUntil": T0 + 3600000},
        },
        "forum_messages": {
            THREAD: {"summary": [MESSAGE_1, MESSAGE_2]},
            "bad": {"summary": [MESSAGE_1]},
        },
        "voice_channel_mappings": {
            VOICE_CHANNEL: {"forumPostId": FORUM_POST, "lastParticipantCount": 3,
                            "createdAt": T0, "lastUpdated": T0 + 100000},
            "123": {"forumPostId": FORUM_POST},
        },
    }


# Row counts the target holds after migrating build_legacy_document()
EXPECTED_ROW_COUNTS = {
    "users": 3,
    "user_activities": 3,
    "roles": 2,
    "role_reset_history": 2,
    "activity_events": 2,
    "afk_status": 1,
    "forum_messages": 2,
    "voice_channel_mappings": 1,
}

EXPECTED_TOTAL_TIME_MS = 10800000


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep exported DOCSHIFT_* settings out of the tests"""
    for name in list(os.environ):
        if name.startswith("DOCSHIFT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def legacy_document():
    return build_legacy_document()


@pytest.fixture
def write_source(tmp_path):
    """Write a document to a JSON file and return its path"""
    def _write(document, name="legacy.json"):
        path = tmp_path / name
        path.write_text(json.dumps(document), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def source_file(write_source, legacy_document):
    return write_source(legacy_document)


@pytest.fixture
def sqlite_adapter(tmp_path):
    adapter = SQLiteAdapter(database=str(tmp_path / "target.db"))
    yield adapter
    adapter.close()


@pytest.fixture
def tx_manager(sqlite_adapter):
    return TransactionManager(sqlite_adapter)


@pytest.fixture
def schema_tx(tx_manager):
    """Transaction manager over a target with the bundled schema applied"""
    script = Path(default_schema_path("sqlite")).read_text(encoding="utf-8")
    tx_manager.execute_script(schedule_script(script))
    return tx_manager


@pytest.fixture
def migration_config(tmp_path):
    return MigrationConfig(
        backup_dir=tmp_path / "backups",
        checkpoint_file=tmp_path / "checkpoint.json",
    )


def row_counts(adapter):
    return {table: adapter.count_rows(table) for table in EXPECTED_ROW_COUNTS}
