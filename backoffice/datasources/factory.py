# ==============================================================================
# DATA SOURCE FACTORY - Adapter Instantiation
# ==============================================================================
# Maps each data source configuration variant to its adapter class
# ==============================================================================

from __future__ import annotations

import logging
from typing import Any

from backoffice.config.models import (
    ApiSourceConfig,
    DatabaseSourceConfig,
    DataSourceConfig,
    ElasticsearchSourceConfig,
    GraphQLSourceConfig,
    KafkaSourceConfig,
    MongoSourceConfig,
    RedisSourceConfig,
    S3SourceConfig,
    SupabaseSourceConfig,
    WebSocketSourceConfig,
)
from backoffice.core.exceptions import ConfigurationError, DataSourceConnectionError
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter
from backoffice.datasources.adapters.elasticsearch_adapter import ElasticsearchAdapter
from backoffice.datasources.adapters.graphql_adapter import GraphQLAdapter
from backoffice.datasources.adapters.kafka_adapter import KafkaAdapter
from backoffice.datasources.adapters.mongodb_adapter import MongoDBAdapter
from backoffice.datasources.adapters.redis_adapter import RedisAdapter
from backoffice.datasources.adapters.rest_adapter import RestAdapter
from backoffice.datasources.adapters.s3_adapter import S3Adapter
from backoffice.datasources.adapters.sql_adapter import SQLAdapter
from backoffice.datasources.adapters.supabase_adapter import SupabaseAdapter
from backoffice.datasources.adapters.websocket_adapter import WebSocketAdapter

logger = logging.getLogger(__name__)


class DataSourceFactory:
    """
    Factory for data source adapters.

    Dispatch is closed over the configuration variants: every variant maps
    to exactly one adapter class, and an unknown variant is a configuration
    error. Instances are not cached here; pooling is the registry's job.

    Example:
        >>> adapter = await DataSourceFactory.initialize("main", config)
        >>> rows = await adapter.execute_query("SELECT 1 AS one")
    """

    @classmethod
    def create_adapter(
        cls,
        name: str,
        config: DataSourceConfig,
        **http_options: Any,
    ) -> BaseDataSourceAdapter:
        """
        Create the adapter for a configuration variant without connecting.

        Args:
            name: Data source id inside its backoffice
            config: One data source configuration variant
            **http_options: Extra options for HTTP adapters
                (timeout, max_retries, retry_base_delay, transport ...)

        Raises:
            ConfigurationError: If the variant is not supported
        """
        if isinstance(config, DatabaseSourceConfig):
            adapter: BaseDataSourceAdapter = SQLAdapter(name, config)
        elif isinstance(config, MongoSourceConfig):
            adapter = MongoDBAdapter(name, config)
        elif isinstance(config, RedisSourceConfig):
            adapter = RedisAdapter(name, config)
        elif isinstance(config, ElasticsearchSourceConfig):
            adapter = ElasticsearchAdapter(name, config, **http_options)
        elif isinstance(config, ApiSourceConfig):
            adapter = RestAdapter(name, config, **http_options)
        elif isinstance(config, GraphQLSourceConfig):
            adapter = GraphQLAdapter(name, config, **http_options)
        elif isinstance(config, SupabaseSourceConfig):
            adapter = SupabaseAdapter(name, config, **http_options)
        elif isinstance(config, S3SourceConfig):
            adapter = S3Adapter(name, config)
        elif isinstance(config, KafkaSourceConfig):
            adapter = KafkaAdapter(name, config)
        elif isinstance(config, WebSocketSourceConfig):
            adapter = WebSocketAdapter(name, config)
        else:
            raise ConfigurationError(
                f"Unsupported data source type for '{name}': {type(config).__name__}",
                details={"data_source": name},
            )

        logger.info(f"Created {adapter.kind} adapter '{name}'")
        return adapter

    @classmethod
    async def initialize(
        cls,
        name: str,
        config: DataSourceConfig,
        **http_options: Any,
    ) -> BaseDataSourceAdapter:
        """
        Create an adapter and verify the backend is reachable.

        Raises:
            DataSourceConnectionError: If the liveness check fails
        """
        adapter = cls.create_adapter(name, config, **http_options)
        try:
            await adapter.connect()
        except DataSourceConnectionError:
            raise
        except Exception as e:
            raise DataSourceConnectionError(
                f"Failed to initialize data source '{name}': {e}",
                data_source=name,
                kind=adapter.kind,
            ) from e
        return adapter
