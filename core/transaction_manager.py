#!/usr/bin/env python3
"""
DocShift Transaction Manager
============================

Wraps a unit of work against the target store in BEGIN/COMMIT/ROLLBACK and
times every statement that passes through it.

- transaction() / with_transaction(fn): acquire a connection from the
  adapter, BEGIN, hand a TransactionHandle to the caller, COMMIT on normal
  exit, ROLLBACK and re-raise on any error, always release the connection.
- query(sql, params): one autocommit statement, same instrumentation.
- Statements slower than the configured threshold are logged at WARNING
  with a truncated preview. They are never altered or retried here; retry
  policy belongs to the caller.

Driver errors raised inside a unit of work surface as TransactionError
(chained to the driver exception). Domain errors raised by the caller's
function pass through unchanged after the rollback.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Sequence

from core.errors import TransactionError

logger = logging.getLogger(__name__)

DEFAULT_SLOW_QUERY_MS = 1000.0
DEFAULT_PREVIEW_LENGTH = 100


class TransactionHandle:
    """Statement executor bound to one open transaction"""

    def __init__(self, manager: 'TransactionManager', cursor):
        self._manager = manager
        self._cursor = cursor
        self.last_statement: Optional[str] = None
        self.rowcount = 0

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        self.last_statement = sql
        rows = self._manager._run(self._cursor, sql, params)
        self.rowcount = self._cursor.rowcount
        return rows

    def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        rows = self.execute(sql, params)
        return rows[0] if rows else None

    def fetch_value(self, sql: str, params: Optional[Sequence[Any]] = None, default: Any = None) -> Any:
        row = self.fetch_one(sql, params)
        if not row:
            return default
        return next(iter(row.values()))


class TransactionManager:
    """Unit-of-work wrapper with statement timing"""

    def __init__(self, adapter, slow_query_threshold_ms: Optional[float] = DEFAULT_SLOW_QUERY_MS,
                 preview_length: int = DEFAULT_PREVIEW_LENGTH):
        self.adapter = adapter
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.preview_length = preview_length
        self.stats = {
            'transactions_committed': 0,
            'transactions_rolled_back': 0,
            'queries_executed': 0,
            'slow_queries': 0,
            'total_query_ms': 0.0,
        }
        # Verifier workers share one manager
        self._stats_lock = threading.Lock()

    @property
    def dialect(self) -> str:
        return self.adapter.dialect

    def preview(self, sql: str) -> str:
        return " ".join(str(sql).split())[:self.preview_length]

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1

    def _run(self, cursor, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        statement, values = self.adapter.prepare(sql, tuple(params) if params is not None else None)
        start = time.perf_counter()
        try:
            cursor.execute(statement, values)
            rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._stats_lock:
                self.stats['queries_executed'] += 1
                self.stats['total_query_ms'] += elapsed_ms

        if self.slow_query_threshold_ms is not None and elapsed_ms > self.slow_query_threshold_ms:
            self._count('slow_queries')
            logger.warning(f"Slow query ({elapsed_ms:.1f} ms > {self.slow_query_threshold_ms} ms): "
                           f"{self.preview(sql)}")
        return rows

    def _rollback(self, cursor) -> None:
        try:
            cursor.execute("ROLLBACK")
        except self.adapter.database_errors as e:
            logger.error(f"Rollback failed: {e}")
        self._count('transactions_rolled_back')

    @contextmanager
    def transaction(self):
        """Yield a TransactionHandle inside BEGIN ... COMMIT/ROLLBACK"""
        with self.adapter.get_connection(autocommit=True) as (connection, _):
            cursor = self.adapter.cursor(connection)
            try:
                try:
                    cursor.execute("BEGIN")
                except self.adapter.database_errors as e:
                    raise TransactionError(f"Could not begin transaction: {e}") from e

                handle = TransactionHandle(self, cursor)
                try:
                    yield handle
                except self.adapter.database_errors as e:
                    self._rollback(cursor)
                    raise TransactionError(f"{type(e).__name__}: {e}".strip(),
                                           statement=self.preview(handle.last_statement or "")) from e
                except Exception:
                    self._rollback(cursor)
                    raise

                try:
                    cursor.execute("COMMIT")
                except self.adapter.database_errors as e:
                    self._rollback(cursor)
                    raise TransactionError(f"Commit failed: {e}") from e
                self._count('transactions_committed')
            finally:
                cursor.close()

    def with_transaction(self, fn: Callable[[TransactionHandle], Any]) -> Any:
        """Run fn(handle) in its own transaction and return its result"""
        with self.transaction() as handle:
            return fn(handle)

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Run one autocommit statement and return its rows"""
        with self.adapter.get_connection(autocommit=True) as (connection, _):
            cursor = self.adapter.cursor(connection)
            try:
                return self._run(cursor, sql, params)
            except self.adapter.database_errors as e:
                raise TransactionError(f"{type(e).__name__}: {e}".strip(), statement=self.preview(sql)) from e
            finally:
                cursor.close()

    def query_value(self, sql: str, params: Optional[Sequence[Any]] = None, default: Any = None) -> Any:
        rows = self.query(sql, params)
        if not rows:
            return default
        return next(iter(rows[0].values()))

    def execute_script(self, statements: Sequence[str]) -> int:
        """Apply an ordered statement list as one unit of work"""
        def apply(handle: TransactionHandle) -> int:
            for statement in statements:
                handle.execute(statement)
            return len(statements)

        return self.with_transaction(apply)

    def health_check(self) -> bool:
        return self.adapter.health_check()

    def get_statistics(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.stats)
        stats['avg_query_ms'] = stats['total_query_ms'] / max(stats['queries_executed'], 1)
        return stats
