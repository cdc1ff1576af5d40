#!/usr/bin/env python3
"""
Transaction Manager tests against a SQLite target
"""

import itertools
import logging
import sqlite3
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from core.errors import ForeignKeyResolutionError, TransactionError
from core.transaction_manager import TransactionManager

USER_ID = "123456789012345678"

INSERT_USER = "INSERT INTO users (id, display_name) VALUES (%s, %s)"


def user_count(tx):
    return tx.query_value("SELECT COUNT(*) AS count FROM users")


class TestUnitOfWork:

    def test_commit_on_normal_exit(self, schema_tx):
        with schema_tx.transaction() as handle:
            handle.execute(INSERT_USER, (USER_ID, "Alice"))
            assert handle.fetch_value("SELECT display_name FROM users WHERE id = %s", (USER_ID,)) == "Alice"

        assert user_count(schema_tx) == 1
        assert schema_tx.stats['transactions_committed'] >= 1

    def test_domain_error_rolls_back_and_passes_through(self, schema_tx):
        def work(handle):
            handle.execute(INSERT_USER, (USER_ID, "Alice"))
            raise ForeignKeyResolutionError("role not found: Ghost", table="roles", reference="Ghost")

        with pytest.raises(ForeignKeyResolutionError):
            schema_tx.with_transaction(work)

        assert user_count(schema_tx) == 0
        assert schema_tx.stats['transactions_rolled_back'] == 1

    def test_driver_error_becomes_transaction_error(self, schema_tx):
        with pytest.raises(TransactionError) as excinfo:
            with schema_tx.transaction() as handle:
                handle.execute(INSERT_USER, (USER_ID, "Alice"))
                handle.execute(INSERT_USER, (USER_ID, "Alice again"))

        assert isinstance(excinfo.value.__cause__, sqlite3.IntegrityError)
        assert "INSERT INTO users" in excinfo.value.details['statement']
        assert user_count(schema_tx) == 0

    def test_foreign_key_constraint_is_enforced(self, schema_tx):
        with pytest.raises(TransactionError):
            schema_tx.with_transaction(lambda handle: handle.execute(
                "INSERT INTO user_activities (user_id, total_time_ms) VALUES (%s, %s)", (USER_ID, 10)
            ))

    def test_with_transaction_returns_result(self, schema_tx):
        result = schema_tx.with_transaction(lambda handle: handle.fetch_value("SELECT 41 + 1 AS answer"))
        assert result == 42

    def test_execute_script_is_all_or_nothing(self, tx_manager, sqlite_adapter):
        with pytest.raises(TransactionError):
            tx_manager.execute_script([
                "CREATE TABLE scratch (a INTEGER);",
                "INSERT INTO missing_table VALUES (1);",
            ])
        assert not sqlite_adapter.table_exists("scratch")

    def test_connection_released_after_failure(self, schema_tx):
        with pytest.raises(TransactionError):
            schema_tx.query("SELECT * FROM no_such_table")
        # The shared connection must still be usable and outside a transaction
        schema_tx.with_transaction(lambda handle: handle.execute(INSERT_USER, (USER_ID, "Alice")))
        assert user_count(schema_tx) == 1


class TestInstrumentation:

    def test_slow_query_warning(self, sqlite_adapter, monkeypatch, caplog):
        ticks = itertools.count(0.0, 2.0)
        monkeypatch.setattr(time, "perf_counter", lambda: next(ticks))
        tx = TransactionManager(sqlite_adapter, slow_query_threshold_ms=1000, preview_length=100)

        with caplog.at_level(logging.WARNING, logger="core.transaction_manager"):
            tx.query("SELECT   1  AS one")

        assert "Slow query (2000.0 ms > 1000 ms): SELECT 1 AS one" in caplog.text
        assert tx.stats['slow_queries'] == 1

    def test_fast_query_is_quiet(self, sqlite_adapter, caplog):
        tx = TransactionManager(sqlite_adapter, slow_query_threshold_ms=60000)
        with caplog.at_level(logging.WARNING, logger="core.transaction_manager"):
            tx.query("SELECT 1 AS one")
        assert "Slow query" not in caplog.text

    def test_preview_is_collapsed_and_truncated(self, sqlite_adapter):
        tx = TransactionManager(sqlite_adapter, preview_length=10)
        assert tx.preview("SELECT\n    1   AS one") == "SELECT 1 A"

    def test_statistics(self, schema_tx):
        schema_tx.query("SELECT 1 AS one")
        stats = schema_tx.get_statistics()
        assert stats['queries_executed'] > 0
        assert stats['avg_query_ms'] >= 0


def test_health_check(tx_manager, sqlite_adapter):
    assert tx_manager.health_check()
    sqlite_adapter.close()
    assert not tx_manager.health_check()


class PooledStub:
    """Adapter stand-in that hands every caller its own mock cursor"""
    dialect = "postgresql"
    database_errors = (sqlite3.Error,)

    @contextmanager
    def get_connection(self, autocommit=True):
        yield MagicMock(), 0.0

    def cursor(self, connection):
        cursor = MagicMock()
        cursor.description = None
        return cursor

    def prepare(self, sql, params=None):
        return sql, params


def test_statistics_survive_concurrent_workers():
    tx = TransactionManager(PooledStub(), slow_query_threshold_ms=None)

    def work(_):
        for _ in range(200):
            tx.query("SELECT 1")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(work, range(8)))

    assert tx.get_statistics()['queries_executed'] == 1600
