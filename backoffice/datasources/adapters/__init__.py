# ==============================================================================
# DATA SOURCE ADAPTERS PACKAGE
# ==============================================================================

"""
Data Source Adapters
====================

Provides unified interface implementations for different backends:
- BaseDataSourceAdapter: Abstract interface definition
- SQLAdapter: PostgreSQL / MySQL / SQLite using SQLAlchemy async
- MongoDBAdapter: MongoDB using Motor async driver
- RedisAdapter: Redis using redis.asyncio
- ElasticsearchAdapter, RestAdapter, GraphQLAdapter, SupabaseAdapter:
  HTTP backends using httpx with tenacity retries
- S3Adapter: Object storage using aioboto3
- KafkaAdapter: Topics using aiokafka
- WebSocketAdapter: Socket backends using aiohttp
"""

from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter, Pagination
from backoffice.datasources.adapters.http_adapter import HttpDataSourceAdapter
from backoffice.datasources.adapters.sql_adapter import SQLAdapter
from backoffice.datasources.adapters.mongodb_adapter import MongoDBAdapter
from backoffice.datasources.adapters.redis_adapter import RedisAdapter
from backoffice.datasources.adapters.elasticsearch_adapter import ElasticsearchAdapter
from backoffice.datasources.adapters.rest_adapter import RestAdapter
from backoffice.datasources.adapters.graphql_adapter import GraphQLAdapter
from backoffice.datasources.adapters.supabase_adapter import SupabaseAdapter
from backoffice.datasources.adapters.s3_adapter import S3Adapter
from backoffice.datasources.adapters.kafka_adapter import KafkaAdapter
from backoffice.datasources.adapters.websocket_adapter import WebSocketAdapter

__all__ = [
    "BaseDataSourceAdapter",
    "Pagination",
    "HttpDataSourceAdapter",
    "SQLAdapter",
    "MongoDBAdapter",
    "RedisAdapter",
    "ElasticsearchAdapter",
    "RestAdapter",
    "GraphQLAdapter",
    "SupabaseAdapter",
    "S3Adapter",
    "KafkaAdapter",
    "WebSocketAdapter",
]
