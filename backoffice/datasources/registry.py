# ==============================================================================
# DATA SOURCE REGISTRY - Pooled Adapters per Backoffice
# ==============================================================================
# Adapters are created once at startup, keyed by (backoffice id, data source
# id), and borrowed per request
# ==============================================================================

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from backoffice.config.models import BackofficeConfig
from backoffice.core.exceptions import ConfigurationError, DataSourceConnectionError
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter
from backoffice.datasources.factory import DataSourceFactory

logger = logging.getLogger(__name__)

RegistryKey = Tuple[str, str]


class DataSourceRegistry:
    """
    Process-wide pool of connected adapters.

    ``initialize`` connects every declared data source. A source that fails
    is remembered and retried the next time it is acquired, so one
    unreachable backend degrades only the actions that use it.

    Example:
        >>> registry = DataSourceRegistry()
        >>> await registry.initialize(backoffices)
        >>> async with registry.borrow(backoffice, required=["main"]) as adapters:
        ...     rows = await adapters["main"].execute_query("SELECT 1")
        >>> await registry.shutdown()
    """

    def __init__(self, **http_options: Any) -> None:
        self._http_options = http_options
        self._backoffices: Dict[str, BackofficeConfig] = {}
        self._adapters: Dict[RegistryKey, BaseDataSourceAdapter] = {}
        self._failures: Dict[RegistryKey, str] = {}
        self._locks: Dict[RegistryKey, asyncio.Lock] = {}

    # ==========================================================================
    # LIFECYCLE
    # ==========================================================================

    async def initialize(self, backoffices: Iterable[BackofficeConfig]) -> None:
        """Connect every data source of every backoffice."""
        for backoffice in backoffices:
            self._backoffices[backoffice.id] = backoffice
            for name in backoffice.data_sources:
                try:
                    await self.acquire(backoffice.id, name)
                except DataSourceConnectionError as e:
                    logger.error(f"Data source '{backoffice.id}/{name}' unavailable: {e.message}")

        logger.info(
            f"Registry ready: {len(self._adapters)} connected, {len(self._failures)} unavailable"
        )

    async def shutdown(self) -> None:
        """Disconnect every pooled adapter."""
        for key, adapter in list(self._adapters.items()):
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.error(f"Error closing data source '{key[0]}/{key[1]}': {e}")
        self._adapters.clear()
        self._failures.clear()
        logger.info("All data sources closed")

    def register(self, backoffice_id: str, name: str, adapter: BaseDataSourceAdapter) -> None:
        """Pool an adapter that was connected elsewhere."""
        self._adapters[(backoffice_id, name)] = adapter
        self._failures.pop((backoffice_id, name), None)

    def add_backoffice(self, backoffice: BackofficeConfig) -> None:
        self._backoffices[backoffice.id] = backoffice

    # ==========================================================================
    # ACCESS
    # ==========================================================================

    async def acquire(self, backoffice_id: str, name: str) -> BaseDataSourceAdapter:
        """
        Get the pooled adapter, connecting it if it is not connected yet.

        Raises:
            ConfigurationError: If the data source is not declared
            DataSourceConnectionError: If the backend cannot be reached
        """
        key = (backoffice_id, name)
        adapter = self._adapters.get(key)
        if adapter is not None:
            return adapter

        backoffice = self._backoffices.get(backoffice_id)
        if backoffice is None or name not in backoffice.data_sources:
            raise ConfigurationError(
                f"Data source '{name}' is not declared in backoffice '{backoffice_id}'",
                details={"backoffice": backoffice_id, "data_source": name},
            )

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            adapter = self._adapters.get(key)
            if adapter is not None:
                return adapter
            try:
                adapter = await DataSourceFactory.initialize(
                    name, backoffice.data_sources[name], **self._http_options
                )
            except DataSourceConnectionError as e:
                self._failures[key] = e.message
                raise
            self._adapters[key] = adapter
            self._failures.pop(key, None)
            return adapter

    @asynccontextmanager
    async def borrow(
        self,
        backoffice: BackofficeConfig,
        required: Optional[Iterable[str]] = None,
    ) -> AsyncIterator[Dict[str, BaseDataSourceAdapter]]:
        """
        Lend the adapters of one backoffice for the length of a request.

        Data sources in ``required`` must be available; others that cannot
        be reached are left out of the mapping.

        Yields:
            Mapping of data source id to adapter
        """
        if backoffice.id not in self._backoffices:
            self.add_backoffice(backoffice)

        required_names = set(required or ())
        adapters: Dict[str, BaseDataSourceAdapter] = {}
        for name in backoffice.data_sources:
            try:
                adapters[name] = await self.acquire(backoffice.id, name)
            except DataSourceConnectionError:
                if name in required_names:
                    raise
                logger.warning(f"Data source '{backoffice.id}/{name}' unavailable for this request")

        yield adapters

    # ==========================================================================
    # HEALTH
    # ==========================================================================

    async def health(self) -> Dict[str, bool]:
        """Health of every declared data source, keyed ``backoffice/name``."""
        report: Dict[str, bool] = {}
        for backoffice in self._backoffices.values():
            for name in backoffice.data_sources:
                adapter = self._adapters.get((backoffice.id, name))
                report[f"{backoffice.id}/{name}"] = (
                    await adapter.health_check() if adapter is not None else False
                )
        return report

    @property
    def unavailable(self) -> List[str]:
        return [f"{b}/{n}: {reason}" for (b, n), reason in self._failures.items()]
