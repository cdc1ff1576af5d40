#!/usr/bin/env python3
"""
DocShift SQLite Adapter - Local Target Store

Provides a SQLite target for DocShift with the same surface as the
PostgreSQL adapter:
- get_connection() yielding (connection, connection_time)
- dict-row cursors and %s placeholder translation
- table introspection and row counts for backups and verification

The connection runs in autocommit mode; the transaction manager issues
explicit BEGIN/COMMIT/ROLLBACK around each unit of work.

Author: DocShift maintainers
Version: 1.0.0
"""

import sqlite3
import logging
import time
import json
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Any, Optional, Tuple

from core.errors import ConfigurationError, ConnectionError

logger = logging.getLogger(__name__)


def _adapt_param(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return value


class SQLiteAdapter:
    """SQLite target store adapter."""

    dialect = 'sqlite'
    database_errors = (sqlite3.Error,)

    def __init__(
        self,
        database: str = ':memory:',
        timeout: float = 30.0,
        **kwargs
    ):
        """
        Initialize SQLite adapter.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            timeout: Lock wait timeout in seconds
            **kwargs: Ignored; accepted for factory compatibility
        """
        self.database = database
        self.timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self.stats = {
            'connections_opened': 0,
            'queries_executed': 0,
            'failed_queries': 0,
            'start_time': time.time()
        }
        self._connect()
        logger.info(f"SQLite adapter initialized for {database}")

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._connection = sqlite3.connect(
                self.database,
                timeout=self.timeout,
                check_same_thread=False,
                isolation_level=None
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
            self.stats['connections_opened'] += 1
            logger.debug(f"Connected to SQLite database: {self.database}")
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to SQLite: {e}")
            raise ConnectionError(f"Cannot open SQLite database {self.database}: {e}",
                                  {'database': self.database}) from e

    def describe(self) -> str:
        return f"sqlite:///{self.database}"

    def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.info("SQLite adapter closed")

    @contextmanager
    def get_connection(self, autocommit: bool = True):
        """Yield the shared connection; SQLite has a single writer anyway."""
        start_time = time.time()
        if self._connection is None:
            raise ConnectionError(f"SQLite adapter for {self.database} is closed")
        yield self._connection, time.time() - start_time

    def cursor(self, connection: sqlite3.Connection):
        return connection.cursor()

    def prepare(self, sql: str, params: Optional[Tuple] = None) -> Tuple[str, Tuple]:
        """Translate %s placeholders and adapt parameter types for sqlite3."""
        if params is None:
            return sql, ()
        return sql.replace('%s', '?'), tuple(_adapt_param(value) for value in params)

    def execute_query(
        self,
        sql: str,
        params: Optional[tuple] = None,
        fetch: bool = True
    ) -> Dict[str, Any]:
        """
        Execute a single statement outside any explicit transaction.

        Returns:
            Dictionary with execution results
        """
        result = {
            'success': False,
            'data': [],
            'rows_affected': 0,
            'error': None
        }

        try:
            with self.get_connection() as (connection, _):
                statement, values = self.prepare(sql, params)
                cursor = connection.execute(statement, values)
                if fetch and cursor.description:
                    result['data'] = [dict(row) for row in cursor.fetchall()]
                result['rows_affected'] = max(cursor.rowcount, 0)
            result['success'] = True
            self.stats['queries_executed'] += 1
        except sqlite3.Error as e:
            result['error'] = f"SQLite error: {str(e)}"
            self.stats['failed_queries'] += 1

        return result

    def health_check(self) -> bool:
        if self._connection is None:
            logger.error("Health check failed: adapter is closed")
            return False
        result = self.execute_query("SELECT 1 AS ok")
        if not result['success']:
            logger.error(f"Health check failed: {result['error']}")
        return result['success']

    def get_tables(self) -> List[str]:
        """
        Get list of user tables in database.

        Returns:
            List of table names (lowercase)
        """
        query = """
            SELECT name
            FROM sqlite_master
            WHERE type = 'table'
            AND name NOT LIKE 'sqlite_%'
            ORDER BY name
        """

        result = self.execute_query(query)

        if not result['success']:
            logger.error(f"Failed to get tables: {result.get('error')}")
            return []

        return [row['name'].lower() for row in result['data']]

    def table_exists(self, table_name: str) -> bool:
        return table_name.lower() in self.get_tables()

    def count_rows(self, table_name: str) -> int:
        quoted = '"' + table_name.replace('"', '""') + '"'
        result = self.execute_query(f"SELECT COUNT(*) AS count FROM {quoted}")
        if not result['success']:
            logger.error(f"Failed to count rows for {table_name}: {result.get('error')}")
            return 0
        return result['data'][0]['count']

    def get_statistics(self) -> Dict[str, Any]:
        total = self.stats['queries_executed'] + self.stats['failed_queries']
        return {
            'dialect': self.dialect,
            'database': self.database,
            'uptime_seconds': time.time() - self.stats['start_time'],
            'queries_executed': self.stats['queries_executed'],
            'failed_queries': self.stats['failed_queries'],
            'success_rate': self.stats['queries_executed'] / max(total, 1),
        }


def create_adapter_from_url(database_url: str, **kwargs) -> SQLiteAdapter:
    """
    Create adapter from a sqlite URL.

    sqlite:///relative.db, sqlite:////absolute/path.db and sqlite:///:memory:
    are accepted.
    """
    prefix = 'sqlite:///'
    if not database_url.startswith(prefix):
        raise ConfigurationError(f"Not a sqlite URL: {database_url}",
                                 {'expected': 'sqlite:///path/to/file.db'})
    database = database_url[len(prefix):] or ':memory:'
    return SQLiteAdapter(database=database, **kwargs)
