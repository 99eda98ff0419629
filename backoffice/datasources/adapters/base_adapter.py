# ==============================================================================
# BASE DATA SOURCE ADAPTER - Abstract Interface
# ==============================================================================
# Defines the contract shared by every backend: SQL, document stores,
# key-value stores, search indices, HTTP APIs, object storage, messaging
# ==============================================================================

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from backoffice.core.exceptions import AdapterError
from backoffice.datasources.coercion import Record

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


@dataclass(frozen=True)
class Pagination:
    """
    Backend-neutral pagination request.

    Attributes:
        page: 1-indexed page number
        page_size: Records per page
        offset: Explicit row offset; overrides the page-derived one
    """

    page: int = 1
    page_size: int = 20
    offset: Optional[int] = None

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.offset is not None and self.offset < 0:
            raise ValueError("offset must be >= 0")

    @property
    def start(self) -> int:
        """Effective zero-based offset of the first record."""
        if self.offset is not None:
            return self.offset
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size


class BaseDataSourceAdapter(ABC):
    """
    Abstract Base Class for Data Source Adapters.

    Provides a uniform, record-oriented interface over heterogeneous
    backends. Callers only ever pass raw query strings plus parameter maps,
    and only ever receive records (``Dict[str, Any]``) or a JSON-compatible
    acknowledgement.

    Design Pattern:
        Implements the Adapter Pattern. Concrete adapters are created by
        ``DataSourceFactory`` and pooled by ``DataSourceRegistry``.

    Error Contract:
        Connection failures raise ``DataSourceConnectionError``; every other
        backend failure raises ``AdapterError``. Driver exceptions never
        escape.

    Attributes:
        kind: Data source type tag (``database``, ``mongodb`` ...)
        name: Data source id inside its backoffice
        supports_pagination: Whether ``execute_query_paginated`` pages
            natively instead of returning the full result

    Example:
        >>> adapter = SQLAdapter("main", config)
        >>> await adapter.connect()
        >>> rows = await adapter.execute_query("SELECT * FROM users", None)
        >>> await adapter.disconnect()
    """

    kind: str = "abstract"
    supports_pagination: bool = False

    def __init__(self, name: str) -> None:
        self.name = name

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the connection and verify liveness.

        Raises:
            DataSourceConnectionError: If the backend is unreachable or
                misconfigured
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release pooled connections and clients."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is reachable.

        Returns:
            True if healthy, False otherwise
        """
        pass

    # ==========================================================================
    # QUERY OPERATIONS
    # ==========================================================================

    @abstractmethod
    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        """
        Run a read against the backend.

        Must not mutate backend state. A blank query yields an empty or
        match-all result, never an error.

        Args:
            query: Backend-native query text
            params: Named parameters / filters

        Returns:
            List of records

        Raises:
            AdapterError: On backend failure
        """
        pass

    async def execute_query_paginated(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Pagination,
    ) -> List[Record]:
        """
        Run a read limited to one page.

        Backends without a pagination idiom return the full result.
        """
        logger.debug(f"{self.kind} adapter '{self.name}' ignores pagination")
        return await self.execute_query(query, params)

    @abstractmethod
    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        """
        Run a write against the backend.

        Args:
            query: Backend-native statement, key, path or verb
            data: Payload; ``{"delete": True}`` selects deletion where the
                backend has no delete syntax of its own

        Returns:
            JSON-compatible acknowledgement

        Raises:
            AdapterError: On backend failure or unsupported operation
        """
        pass

    # ==========================================================================
    # QUERY RENDERING
    # ==========================================================================

    @abstractmethod
    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Build the native query for "records of ``collection`` where
        ``field`` equals ``value``".

        Returns:
            ``(query, params)`` ready for ``execute_query``
        """
        pass

    @abstractmethod
    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        """
        Build the native statement deleting records of ``collection`` where
        ``field`` equals ``value``.

        Returns:
            ``(query, data)`` ready for ``execute_mutation``
        """
        pass

    # ==========================================================================
    # HELPERS
    # ==========================================================================

    def _error(self, message: str, **details: Any) -> AdapterError:
        return AdapterError(
            message=message,
            data_source=self.name,
            kind=self.kind,
            details=details or None,
        )

    def _check_identifier(self, identifier: str) -> str:
        """Reject names that cannot be spliced into a query safely."""
        if not _IDENTIFIER.match(identifier):
            raise self._error(f"Invalid identifier '{identifier}'")
        return identifier

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
