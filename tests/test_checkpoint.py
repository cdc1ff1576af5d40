#!/usr/bin/env python3
"""
Checkpoint store tests
"""

import json

from core.checkpoint import CheckpointStore

TARGET = "sqlite:///target.db"


def test_fresh_start_writes_file(tmp_path):
    store = CheckpointStore(tmp_path / "state" / "checkpoint.json")
    assert store.begin("run_1", "abc", TARGET) == []

    saved = json.loads(store.path.read_text(encoding="utf-8"))
    assert saved["run_id"] == "run_1"
    assert saved["source_checksum"] == "abc"
    assert saved["target"] == TARGET
    assert saved["completed_groups"] == []
    assert saved["updated_at"]


def test_resume_same_source_and_target(tmp_path):
    path = tmp_path / "checkpoint.json"
    first = CheckpointStore(path)
    first.begin("run_1", "abc", TARGET)
    first.mark_group_complete("users")
    first.mark_group_complete("users")
    first.mark_group_complete("roles")

    second = CheckpointStore(path)
    assert second.begin("run_2", "abc", TARGET) == ["users", "roles"]
    assert second.run_id == "run_1"
    assert second.completed_groups == ["users", "roles"]


def test_different_target_starts_over(tmp_path):
    path = tmp_path / "checkpoint.json"
    first = CheckpointStore(path)
    first.begin("run_1", "abc", TARGET)
    first.mark_group_complete("users")

    second = CheckpointStore(path)
    assert second.begin("run_2", "abc", "sqlite:///other.db") == []
    assert second.run_id == "run_2"


def test_different_source_starts_over(tmp_path):
    path = tmp_path / "checkpoint.json"
    first = CheckpointStore(path)
    first.begin("run_1", "abc", TARGET)
    first.mark_group_complete("users")

    assert CheckpointStore(path).begin("run_2", "def", TARGET) == []


def test_nothing_completed_is_not_a_resume(tmp_path):
    path = tmp_path / "checkpoint.json"
    CheckpointStore(path).begin("run_1", "abc", TARGET)
    second = CheckpointStore(path)
    assert second.begin("run_2", "abc", TARGET) == []
    assert second.run_id == "run_2"


def test_malformed_file_is_ignored(tmp_path):
    path = tmp_path / "checkpoint.json"
    path.write_text("[not, json", encoding="utf-8")
    assert CheckpointStore(path).begin("run_1", "abc", TARGET) == []

    path.write_text("[]", encoding="utf-8")
    assert CheckpointStore(path).begin("run_2", "abc", TARGET) == []


def test_clear_removes_file(tmp_path):
    store = CheckpointStore(tmp_path / "checkpoint.json")
    store.begin("run_1", "abc", TARGET)
    store.mark_phase("initializing-schema")
    assert json.loads(store.path.read_text(encoding="utf-8"))["phase"] == "initializing-schema"

    store.clear()
    assert not store.path.exists()
    assert store.run_id is None
    store.clear()


def test_disabled_store_never_touches_disk(tmp_path):
    store = CheckpointStore(tmp_path / "checkpoint.json", enabled=False)
    store.begin("run_1", "abc", TARGET)
    store.mark_group_complete("users")
    assert not store.path.exists()
    assert store.completed_groups == ["users"]
