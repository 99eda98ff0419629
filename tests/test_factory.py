# ==============================================================================
# FACTORY AND REGISTRY TESTS
# ==============================================================================
# Tests for adapter dispatch and the pooled adapter registry
# ==============================================================================

import pytest

from backoffice.config.loader import parse_backoffice
from backoffice.config.models import (
    ApiSourceConfig,
    DatabaseSourceConfig,
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
from backoffice.datasources.adapters import (
    ElasticsearchAdapter,
    GraphQLAdapter,
    KafkaAdapter,
    MongoDBAdapter,
    RedisAdapter,
    RestAdapter,
    S3Adapter,
    SQLAdapter,
    SupabaseAdapter,
    WebSocketAdapter,
)
from backoffice.datasources.factory import DataSourceFactory
from backoffice.datasources.registry import DataSourceRegistry


class TestDataSourceFactory:
    """Tests for adapter creation."""

    @pytest.mark.parametrize(
        "config,adapter_cls",
        [
            (DatabaseSourceConfig(connection_string="sqlite:///./x.db", db_type="sqlite"), SQLAdapter),
            (MongoSourceConfig(connection_string="mongodb://h", database="d", collection="c"), MongoDBAdapter),
            (RedisSourceConfig(connection_string="redis://h:6379/0"), RedisAdapter),
            (ElasticsearchSourceConfig(nodes=["http://es:9200"], index="i"), ElasticsearchAdapter),
            (ApiSourceConfig(base_url="http://api"), RestAdapter),
            (GraphQLSourceConfig(endpoint="http://gql"), GraphQLAdapter),
            (SupabaseSourceConfig(url="http://sb", api_key="k", table="t"), SupabaseAdapter),
            (S3SourceConfig(bucket="b"), S3Adapter),
            (KafkaSourceConfig(brokers=["k:9092"], topic="t"), KafkaAdapter),
            (WebSocketSourceConfig(url="ws://w"), WebSocketAdapter),
        ],
    )
    def test_one_adapter_per_variant(self, config, adapter_cls):
        """Test each configuration variant maps to its adapter."""
        adapter = DataSourceFactory.create_adapter("src", config)

        assert type(adapter) is adapter_cls
        assert adapter.name == "src"
        assert adapter.kind == config.type

    def test_unknown_variant(self):
        """Test an unsupported config object is a configuration error."""
        with pytest.raises(ConfigurationError):
            DataSourceFactory.create_adapter("src", object())

    @pytest.mark.asyncio
    async def test_initialize_connects(self, tmp_path):
        """Test initialize returns a connected adapter."""
        config = DatabaseSourceConfig(
            connection_string=f"sqlite:///{(tmp_path / 'f.db').as_posix()}",
            db_type="sqlite",
        )

        adapter = await DataSourceFactory.initialize("main", config)

        assert await adapter.health_check() is True
        assert await adapter.execute_query("SELECT 1 AS one") == [{"one": 1}]
        await adapter.disconnect()
        assert await adapter.health_check() is False

    @pytest.mark.asyncio
    async def test_initialize_unreachable(self):
        """Test an unreachable backend raises DataSourceConnectionError."""
        config = ApiSourceConfig(base_url="not-a-url")
        with pytest.raises(DataSourceConnectionError):
            await DataSourceFactory.initialize("remote", config, check_on_connect=False)


def two_source_backoffice(db_path):
    return parse_backoffice({
        "id": "ops",
        "name": "Ops",
        "data_sources": {
            "main": {
                "type": "database",
                "db_type": "sqlite",
                "connection_string": f"sqlite:///{db_path.as_posix()}",
            },
            "broken": {"type": "api", "base_url": "not-a-url"},
        },
        "sections": [
            {
                "id": "jobs",
                "name": "Jobs",
                "actions": [{"id": "list", "name": "List", "type": "list", "data_source": "main"}],
            },
            {
                "id": "remote",
                "name": "Remote",
                "actions": [{"id": "list", "name": "List", "type": "list", "data_source": "broken"}],
            },
        ],
    })


class TestDataSourceRegistry:
    """Tests for the pooled registry."""

    @pytest.mark.asyncio
    async def test_unreachable_source_degrades_only_itself(self, tmp_path):
        """Test one broken data source does not block the others."""
        backoffice = two_source_backoffice(tmp_path / "ops.db")
        registry = DataSourceRegistry(check_on_connect=False)

        await registry.initialize([backoffice])

        assert await registry.health() == {"ops/main": True, "ops/broken": False}
        assert len(registry.unavailable) == 1

        async with registry.borrow(backoffice, required=["main"]) as adapters:
            assert set(adapters) == {"main"}

        with pytest.raises(DataSourceConnectionError):
            async with registry.borrow(backoffice, required=["broken"]):
                pass

        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_adapters_are_pooled(self, tmp_path):
        """Test the same adapter instance is lent on every borrow."""
        backoffice = two_source_backoffice(tmp_path / "ops.db")
        registry = DataSourceRegistry(check_on_connect=False)
        await registry.initialize([backoffice])

        first = await registry.acquire("ops", "main")
        second = await registry.acquire("ops", "main")

        assert first is second
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_undeclared_source(self, tmp_path):
        """Test acquiring an undeclared data source is a configuration error."""
        registry = DataSourceRegistry()
        await registry.initialize([two_source_backoffice(tmp_path / "ops.db")])

        with pytest.raises(ConfigurationError):
            await registry.acquire("ops", "nope")
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_registered_adapter(self, memory_adapter, tmp_path):
        """Test an externally connected adapter can be pooled."""
        backoffice = two_source_backoffice(tmp_path / "ops.db")
        registry = DataSourceRegistry()
        registry.add_backoffice(backoffice)
        registry.register("ops", "main", memory_adapter)

        assert await registry.acquire("ops", "main") is memory_adapter
