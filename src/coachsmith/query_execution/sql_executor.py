"""SQL Query Executor."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import contextmanager
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

import psycopg2
import psycopg2.extras

from coachsmith.errors import QueryExecutionError
from coachsmith.logger import get_logger

logger = get_logger(__name__)


class QueryExecutor(Protocol):
    async def execute(self, sql_text: str) -> List[Dict[str, Any]]:
        """Run one statement and return its rows; raise QueryExecutionError on failure."""
        ...

    async def test_connection(self) -> bool:
        """True when the database answers a trivial query."""
        ...


def to_json_safe(value: Any) -> Any:
    """Convert a database value to a JSON-serializable scalar."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    return str(value)


class PostgresQueryExecutor:
    """Executes SQL queries against PostgreSQL in a read-only session."""

    def __init__(
        self,
        database_url: Optional[str],
        sslmode: str = "require",
        connect_timeout: int = 10,
    ):
        """
        Args:
            database_url: libpq connection URI; when missing every execute fails
            sslmode: libpq sslmode (hosted Postgres usually needs ``require``)
            connect_timeout: Seconds to wait for a connection
        """
        self.database_url = database_url
        self.sslmode = sslmode
        self.connect_timeout = connect_timeout
        if not database_url:
            logger.warning("[sql-exec] DATABASE_URL not configured; data queries will return no rows")

    @property
    def configured(self) -> bool:
        return bool(self.database_url)

    @contextmanager
    def get_connection(self):
        """Get database connection context manager."""
        conn = None
        try:
            conn = psycopg2.connect(
                self.database_url,
                sslmode=self.sslmode,
                connect_timeout=self.connect_timeout,
            )
            conn.set_session(readonly=True, autocommit=True)
            yield conn
        finally:
            if conn:
                conn.close()

    def _execute_sync(self, sql_text: str) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(sql_text)
                if cur.description is None:
                    return []
                rows = cur.fetchall()
        return [{k: to_json_safe(v) for k, v in row.items()} for row in rows]

    async def execute(self, sql_text: str) -> List[Dict[str, Any]]:
        if not self.database_url:
            raise QueryExecutionError("Database connection is not configured")

        try:
            rows = await asyncio.to_thread(self._execute_sync, sql_text)
        except psycopg2.Error as e:
            logger.error(f"[sql-exec] database error: {e}")
            raise QueryExecutionError(str(e).strip()) from e

        logger.info(f"[sql-exec] query executed successfully: {len(rows)} rows returned")
        return rows

    async def test_connection(self) -> bool:
        """Return True when ``SELECT 1`` succeeds."""
        if not self.database_url:
            return False
        try:
            rows = await asyncio.to_thread(self._execute_sync, "SELECT 1 AS ok")
        except psycopg2.Error as e:
            logger.error(f"[sql-exec] connection test failed: {e}")
            return False
        return bool(rows) and rows[0].get("ok") == 1
