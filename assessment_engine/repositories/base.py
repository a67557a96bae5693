"""
Base Repository - Assessment Engine
assessment_engine/repositories/base.py

Snowflake connection handling shared by every repository, plus the VARIANT
and timestamp conversions the session/episode rows need.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generator, Optional

import snowflake.connector
from snowflake.connector import DictCursor
from snowflake.connector.errors import DatabaseError, InterfaceError, OperationalError, ProgrammingError

from assessment_engine.core.exceptions import (
    DatabaseConnectionException,
    DuplicateEntityException,
    RepositoryException,
)
from assessment_engine.services.snowflake import get_snowflake_connection

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base repository with Snowflake connection management."""

    @contextmanager
    def get_connection(self) -> Generator[snowflake.connector.SnowflakeConnection, None, None]:
        conn = None
        try:
            conn = get_snowflake_connection()
            yield conn
        except InterfaceError as e:
            raise DatabaseConnectionException(f"Failed to connect to Snowflake: {e}")
        finally:
            if conn:
                conn.close()

    @contextmanager
    def get_cursor(self) -> Generator[Any, None, None]:
        with self.get_connection() as conn:
            cursor = conn.cursor(DictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def execute_query(
        self,
        sql: str,
        params: Optional[tuple] = None,
        fetch_one: bool = False,
        fetch_all: bool = False,
        commit: bool = False,
    ) -> Optional[Any]:
        """
        Run one statement.

        Returns:
            The first row, all rows, or (for DML) the affected row count

        Raises:
            DuplicateEntityException: unique constraint violated
            DatabaseConnectionException: connection lost mid-statement
            RepositoryException: any other database error
        """
        with self.get_cursor() as cursor:
            try:
                cursor.execute(sql, params or ())

                if commit:
                    cursor.connection.commit()

                if fetch_one:
                    return cursor.fetchone()
                if fetch_all:
                    return cursor.fetchall()
                return cursor.rowcount

            except ProgrammingError as e:
                error_msg = str(e).upper()
                if "UNIQUE" in error_msg or "DUPLICATE" in error_msg:
                    raise DuplicateEntityException(str(e))
                logger.error(f"Query error in {type(self).__name__}: {e}")
                raise RepositoryException(f"Query error: {e}")
            except OperationalError as e:
                raise DatabaseConnectionException(f"Snowflake connection lost: {e}")
            except DatabaseError as e:
                logger.error(f"Database error in {type(self).__name__}: {e}")
                raise RepositoryException(f"Database error: {e}")

    def execute_conditional(self, sql: str, params: tuple) -> bool:
        """
        Run a guarded UPDATE/DELETE/INSERT ... WHERE NOT EXISTS.

        Returns:
            True when at least one row changed, False when the guard rejected it
        """
        return bool(self.execute_query(sql, params, commit=True))

    def normalize_timestamp(self, dt: Optional[datetime]) -> Optional[datetime]:
        """TIMESTAMP_NTZ columns come back naive; they hold UTC."""
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    def to_variant(self, value: Any) -> str:
        """Serialize a value for PARSE_JSON(%s)."""
        return json.dumps(value, default=str, ensure_ascii=False)

    def from_variant(self, raw: Any, default: Any = None) -> Any:
        """VARIANT columns come back as JSON text from the connector."""
        if raw is None:
            return default
        if isinstance(raw, (dict, list)):
            return raw
        return json.loads(raw)
