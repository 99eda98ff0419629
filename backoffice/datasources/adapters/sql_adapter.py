# ==============================================================================
# SQL ADAPTER - SQLAlchemy Async (PostgreSQL, MySQL, SQLite)
# ==============================================================================
# Raw SQL passed through text() with named bind parameters
# ==============================================================================

from __future__ import annotations

import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backoffice.config.models import DatabaseSourceConfig, SqlDialect
from backoffice.core.exceptions import AdapterError, DataSourceConnectionError
from backoffice.core.settings import settings
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter, Pagination
from backoffice.datasources.coercion import Record, to_record_value, to_records

logger = logging.getLogger(__name__)

# ":name" but not "::cast"
_BIND_PARAM = re.compile(r"(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")

# Statement already ends in "LIMIT n", "LIMIT n OFFSET m" or "LIMIT m, n"
_TRAILING_LIMIT = re.compile(
    r"\blimit\s+(?:\d+|:\w+)(?:\s*(?:,|\boffset\b)\s*(?:\d+|:\w+))?\s*$",
    re.IGNORECASE,
)

_ASYNC_DRIVERS = {
    SqlDialect.SQLITE: "sqlite+aiosqlite",
    SqlDialect.POSTGRES: "postgresql+asyncpg",
    SqlDialect.MYSQL: "mysql+aiomysql",
}


def to_async_url(connection_string: str, dialect: SqlDialect) -> str:
    """
    Ensure the URL names an async driver.

    ``postgres://u@h/db`` becomes ``postgresql+asyncpg://u@h/db``; URLs that
    already carry a driver (``scheme+driver://``) are left alone.
    """
    scheme, sep, rest = connection_string.partition("://")
    if not sep:
        raise ValueError(f"Invalid connection string: {connection_string!r}")
    if "+" in scheme:
        return connection_string
    return f"{_ASYNC_DRIVERS[dialect]}://{rest}"


def bind_names(query: str) -> List[str]:
    """Named parameters referenced by a statement."""
    return _BIND_PARAM.findall(query)


class SQLAdapter(BaseDataSourceAdapter):
    """
    Relational database adapter using SQLAlchemy async.

    Queries are executed as written. Parameters are bound by name
    (``:name``); keys of ``params`` the statement does not reference are
    ignored, so a params map can double as a loose filter bag.

    Features:
        - Async engine with connection pooling (asyncpg / aiomysql / aiosqlite)
        - LIMIT/OFFSET pagination
        - Column values coerced to JSON-compatible record values

    Example:
        >>> adapter = SQLAdapter("main", DatabaseSourceConfig(
        ...     connection_string="sqlite:///./app.db", db_type="sqlite"))
        >>> await adapter.connect()
        >>> await adapter.execute_query("SELECT * FROM users WHERE id = :id", {"id": 1})
    """

    kind = "database"
    supports_pagination = True

    def __init__(self, name: str, config: DatabaseSourceConfig) -> None:
        super().__init__(name)
        self._dialect = config.db_type
        self._database_url = to_async_url(config.connection_string, config.db_type)
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    async def connect(self) -> None:
        try:
            if self._dialect == SqlDialect.SQLITE:
                self._engine = create_async_engine(
                    self._database_url,
                    echo=settings.DEBUG,
                    connect_args={"check_same_thread": False},
                )
            else:
                self._engine = create_async_engine(
                    self._database_url,
                    echo=settings.DEBUG,
                    pool_size=settings.DB_POOL_SIZE,
                    max_overflow=settings.DB_MAX_OVERFLOW,
                    pool_timeout=settings.DB_POOL_TIMEOUT,
                    pool_recycle=settings.DB_POOL_RECYCLE,
                    pool_pre_ping=True,
                )

            self._session_factory = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

            logger.info(f"Connected {self._dialect.value} data source '{self.name}'")

        except Exception as e:
            logger.error(f"SQL connection failed for '{self.name}': {e}")
            if self._engine:
                await self._engine.dispose()
                self._engine = None
            raise DataSourceConnectionError(
                f"SQL connection failed for '{self.name}': {e}",
                data_source=self.name,
                kind=self.kind,
            ) from e

    async def disconnect(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info(f"Closed SQL data source '{self.name}'")

    async def health_check(self) -> bool:
        if not self._engine:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"SQL health check failed for '{self.name}': {e}")
            return False

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provide a transactional session scope.

        Commits on success, rolls back on exception.
        """
        if not self._session_factory:
            raise self._error(f"SQL data source '{self.name}' is not connected")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ==========================================================================
    # QUERY OPERATIONS
    # ==========================================================================

    def _bind(self, query: str, values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not values:
            return {}
        bound: Dict[str, Any] = {}
        for key in bind_names(query):
            if key in values:
                value = values[key]
                bound[key] = json.dumps(value) if isinstance(value, (dict, list)) else value
        return bound

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        if not query or not query.strip():
            return []
        return await self._fetch(query, self._bind(query, params))

    async def execute_query_paginated(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Pagination,
    ) -> List[Record]:
        if not query or not query.strip():
            return []
        base = query.strip().rstrip(";").rstrip()
        if _TRAILING_LIMIT.search(base):
            # Page within the configured window
            base = f"SELECT * FROM ({base}) AS _page"
        statement = f"{base} LIMIT :_limit OFFSET :_offset"
        bound = self._bind(query, params)
        bound.update({"_limit": pagination.limit, "_offset": pagination.start})
        return await self._fetch(statement, bound)

    async def _fetch(self, statement: str, bound: Dict[str, Any]) -> List[Record]:
        logger.debug(f"{self.name}: {statement} {bound}")
        try:
            async with self.session() as session:
                result = await session.execute(text(statement), bound)
                rows = result.mappings().all()
        except AdapterError:
            raise
        except Exception as e:
            logger.error(f"SQL query failed on '{self.name}': {e}")
            raise self._error(f"SQL query failed: {e}", query=statement) from e
        return to_records(rows)

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        if not query or not query.strip():
            raise self._error("SQL mutation requires a statement")

        bound = self._bind(query, data)
        logger.debug(f"{self.name}: {query} {bound}")
        try:
            async with self.session() as session:
                result = await session.execute(text(query), bound)
                ack: Dict[str, Any] = {
                    "rows_affected": result.rowcount,
                    "success": True,
                }
                inserted_id = getattr(result, "lastrowid", None)
                if inserted_id and query.lstrip().upper().startswith("INSERT"):
                    ack["inserted_id"] = to_record_value(inserted_id)
        except AdapterError:
            raise
        except Exception as e:
            logger.error(f"SQL mutation failed on '{self.name}': {e}")
            raise self._error(f"SQL mutation failed: {e}", query=query) from e

        logger.info(f"SQL mutation on '{self.name}' affected {ack['rows_affected']} rows")
        return ack

    # ==========================================================================
    # QUERY RENDERING
    # ==========================================================================

    def _match(self, column: str, value: Any) -> Tuple[str, Any]:
        """
        Equality predicate for a generated lookup.

        Record ids reach the engine as strings (path and query parameters).
        asyncpg types parameters from the column, so PostgreSQL compares the
        column as text; MySQL and SQLite convert the literal themselves.
        """
        if self._dialect == SqlDialect.POSTGRES and value is not None:
            if isinstance(value, bool):
                value = "true" if value else "false"
            return f"CAST({column} AS TEXT) = :value", str(value)
        return f"{column} = :value", value

    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        table = self._check_identifier(collection)
        predicate, bound = self._match(self._check_identifier(field), value)
        return f"SELECT * FROM {table} WHERE {predicate}", {"value": bound}

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        table = self._check_identifier(collection)
        predicate, bound = self._match(self._check_identifier(field), value)
        return f"DELETE FROM {table} WHERE {predicate}", {"value": bound}
