#!/usr/bin/env python3
"""
DocShift PostgreSQL Adapter - Production Target Store

This module provides the PostgreSQL target adapter for DocShift with:
- Connection pooling (psycopg2 ThreadedConnectionPool)
- SSL/TLS support
- Dict-row cursors for the transaction manager
- Connection health checks
- Table introspection and row counts for backups and verification

Author: DocShift maintainers
Version: 1.0.0

Usage:
    adapter = PostgreSQLAdapter(
        host='localhost',
        database='activity',
        user='docshift',
        password='secure_password'
    )
    with adapter.get_connection() as (connection, _):
        ...
"""

import psycopg2
import psycopg2.pool
import psycopg2.extras
import psycopg2.sql
from psycopg2 import OperationalError
import logging
import time
import threading
from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass
from contextlib import contextmanager
from enum import Enum
from urllib.parse import urlparse, parse_qs, unquote

from core.errors import ConfigurationError, ConnectionError

# Configure logging
logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection states"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"


class SSLMode(Enum):
    """SSL connection modes"""
    DISABLE = "disable"
    ALLOW = "allow"
    PREFER = "prefer"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"


@dataclass
class ConnectionConfig:
    """PostgreSQL connection configuration"""
    host: str = "localhost"
    port: int = 5432
    database: str = "docshift"
    user: str = "docshift"
    password: str = ""

    # Connection pool settings
    min_connections: int = 1
    max_connections: int = 10

    # SSL settings
    ssl_mode: SSLMode = SSLMode.PREFER
    ssl_ca: Optional[str] = None

    connect_timeout: int = 10
    application_name: str = "docshift"

    def to_connection_params(self) -> Dict[str, Any]:
        """Convert to psycopg2 connection parameters"""
        params = {
            'host': self.host,
            'port': self.port,
            'dbname': self.database,
            'user': self.user,
            'password': self.password,
            'connect_timeout': self.connect_timeout,
            'application_name': self.application_name,
        }

        if self.ssl_mode != SSLMode.DISABLE:
            params['sslmode'] = self.ssl_mode.value
            if self.ssl_ca:
                params['sslrootcert'] = self.ssl_ca

        return params

    def to_environment(self) -> Dict[str, str]:
        """libpq environment for pg_dump/psql child processes"""
        env = {
            'PGHOST': self.host,
            'PGPORT': str(self.port),
            'PGDATABASE': self.database,
            'PGUSER': self.user,
        }
        if self.password:
            env['PGPASSWORD'] = self.password
        if self.ssl_mode != SSLMode.DISABLE:
            env['PGSSLMODE'] = self.ssl_mode.value
        return env


class PostgreSQLAdapter:
    """
    PostgreSQL target store adapter

    Connections are handed out from a thread-safe pool. The migration
    pipeline itself is sequential; the pool lets read-only verification
    queries share the store without reconnecting.
    """

    dialect = 'postgresql'
    database_errors = (psycopg2.Error,)

    def __init__(self, config: Optional[ConnectionConfig] = None, **kwargs):
        """Initialize PostgreSQL adapter"""
        if config:
            self.config = config
        else:
            self.config = ConnectionConfig(**kwargs)

        self.state = ConnectionState.DISCONNECTED
        self.pool = None
        self._pool_lock = threading.RLock()

        # Statistics
        self.stats = {
            'connections_acquired': 0,
            'queries_executed': 0,
            'failed_queries': 0,
            'total_execution_time': 0.0,
            'start_time': time.time()
        }

        self._initialize_pool()

        logger.info(f"PostgreSQL adapter initialized for {self.describe()}")

    def describe(self) -> str:
        return f"postgresql://{self.config.user}@{self.config.host}:{self.config.port}/{self.config.database}"

    def _initialize_pool(self):
        """Initialize connection pool"""
        try:
            with self._pool_lock:
                if self.pool:
                    self.pool.closeall()

                self.pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self.config.min_connections,
                    maxconn=self.config.max_connections,
                    **self.config.to_connection_params()
                )
                self.state = ConnectionState.CONNECTED
                logger.info(f"Connection pool initialized with "
                            f"{self.config.min_connections}-{self.config.max_connections} connections")

        except OperationalError as e:
            self.state = ConnectionState.ERROR
            logger.error(f"Failed to initialize connection pool: {e}")
            raise ConnectionError(f"Cannot reach PostgreSQL at {self.describe()}: {e}",
                                  {'host': self.config.host, 'port': self.config.port}) from e

    @contextmanager
    def get_connection(self, autocommit: bool = True):
        """Get connection from pool with automatic cleanup"""
        connection = None
        start_time = time.time()

        try:
            with self._pool_lock:
                if not self.pool:
                    raise ConnectionError("Connection pool not initialized")
                connection = self.pool.getconn()
            connection.autocommit = autocommit
            self.stats['connections_acquired'] += 1
        except (OperationalError, psycopg2.pool.PoolError) as e:
            self.state = ConnectionState.ERROR
            logger.error(f"Could not acquire connection: {e}")
            if connection is not None:
                self._release(connection, broken=True)
            raise ConnectionError(f"Could not acquire connection: {e}") from e

        broken = False
        try:
            yield connection, time.time() - start_time
        except OperationalError:
            broken = True
            self.state = ConnectionState.ERROR
            raise
        finally:
            self._release(connection, broken=broken or bool(connection.closed))

    def _release(self, connection, broken: bool = False):
        try:
            with self._pool_lock:
                if self.pool:
                    self.pool.putconn(connection, close=broken)
        except psycopg2.pool.PoolError as e:
            logger.error(f"Error returning connection to pool: {e}")

    def cursor(self, connection):
        return connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    def prepare(self, sql: str, params: Optional[Tuple] = None) -> Tuple[str, Optional[Tuple]]:
        # psycopg2 already speaks %s and adapts datetimes
        return sql, params

    def execute_query(self, sql, params: Optional[Tuple] = None, fetch: bool = True) -> Dict[str, Any]:
        """
        Execute one autocommit statement

        Args:
            sql: SQL query string or psycopg2.sql.Composed
            params: Query parameters (optional)
            fetch: Whether to fetch results

        Returns:
            Dictionary with execution results
        """
        start_time = time.time()
        result = {
            'success': False,
            'data': [],
            'rows_affected': 0,
            'error': None
        }

        try:
            with self.get_connection(autocommit=True) as (connection, _):
                with self.cursor(connection) as cursor:
                    cursor.execute(sql, params)
                    if fetch and cursor.description:
                        result['data'] = [dict(row) for row in cursor.fetchall()]
                    result['rows_affected'] = cursor.rowcount if cursor.rowcount > 0 else 0
            result['success'] = True
            self.stats['queries_executed'] += 1
        except psycopg2.Error as e:
            result['error'] = f"PostgreSQL error: {str(e)}"
            self.stats['failed_queries'] += 1

        self.stats['total_execution_time'] += time.time() - start_time
        return result

    def health_check(self) -> bool:
        """Perform health check on database connection"""
        result = self.execute_query("SELECT 1 AS ok")
        if not result['success']:
            logger.error(f"Health check failed: {result['error']}")
        return result['success']

    def get_tables(self) -> List[str]:
        """
        Get list of user tables in the public schema.

        Returns:
            List of table names (lowercase)
        """
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """

        result = self.execute_query(query)

        if not result['success']:
            logger.error(f"Failed to get tables: {result.get('error')}")
            return []

        return [row['table_name'].lower() for row in result['data']]

    def table_exists(self, table_name: str) -> bool:
        return table_name.lower() in self.get_tables()

    def count_rows(self, table_name: str) -> int:
        query = psycopg2.sql.SQL("SELECT COUNT(*) AS count FROM {}").format(psycopg2.sql.Identifier(table_name))
        result = self.execute_query(query)
        if not result['success']:
            logger.error(f"Failed to count rows for {table_name}: {result.get('error')}")
            return 0
        return result['data'][0]['count']

    def get_statistics(self) -> Dict[str, Any]:
        """Get adapter statistics"""
        total_queries = self.stats['queries_executed']

        return {
            'dialect': self.dialect,
            'uptime_seconds': time.time() - self.stats['start_time'],
            'state': self.state.value,
            'pool_size': f"{self.config.min_connections}-{self.config.max_connections}",
            'connections_acquired': self.stats['connections_acquired'],
            'queries_executed': total_queries,
            'failed_queries': self.stats['failed_queries'],
            'success_rate': total_queries / max(total_queries + self.stats['failed_queries'], 1),
            'avg_execution_time': self.stats['total_execution_time'] / max(total_queries, 1),
        }

    def close(self):
        """Close all connections"""
        logger.info("Closing PostgreSQL adapter")
        with self._pool_lock:
            if self.pool:
                self.pool.closeall()
                self.pool = None
        self.state = ConnectionState.DISCONNECTED


# Utility functions
def create_adapter_from_url(database_url: str, **kwargs) -> PostgreSQLAdapter:
    """Create adapter from database URL; ?sslmode=require is honoured"""
    parsed = urlparse(database_url)
    query = parse_qs(parsed.query)

    if 'sslmode' in query and 'ssl_mode' not in kwargs:
        try:
            kwargs['ssl_mode'] = SSLMode(query['sslmode'][0])
        except ValueError as e:
            raise ConfigurationError(f"Unsupported sslmode: {query['sslmode'][0]}",
                                     {'supported': [mode.value for mode in SSLMode]}) from e

    try:
        port = parsed.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid port in database URL: {e}") from e

    config = ConnectionConfig(
        host=parsed.hostname or 'localhost',
        port=port or 5432,
        database=parsed.path.lstrip('/') if parsed.path else 'postgres',
        user=unquote(parsed.username) if parsed.username else 'postgres',
        password=unquote(parsed.password) if parsed.password else '',
        **kwargs
    )

    return PostgreSQLAdapter(config)
