# ==============================================================================
# DOCUMENT AND KEY-VALUE ADAPTER TESTS
# ==============================================================================
# MongoDB against an in-memory collection double, Redis against fakeredis
# ==============================================================================

import fakeredis.aioredis
import pytest
import pytest_asyncio
from bson import ObjectId

from backoffice.config.models import MongoSourceConfig, RedisSourceConfig
from backoffice.core.exceptions import AdapterError
from backoffice.datasources.adapters.base_adapter import Pagination
from backoffice.datasources.adapters.mongodb_adapter import MongoDBAdapter
from backoffice.datasources.adapters.redis_adapter import RedisAdapter

OID = "65f0c0ffee0000000000abcd"


# ==============================================================================
# MONGODB
# ==============================================================================

class FakeResult:
    def __init__(self, **fields):
        self.__dict__.update(fields)


class FakeCursor:
    def __init__(self, documents):
        self.documents = documents
        self.skipped = 0
        self.limited = None

    def skip(self, count):
        self.skipped = count
        return self

    def limit(self, count):
        self.limited = count
        return self

    async def to_list(self, length=None):
        end = None if self.limited is None else self.skipped + self.limited
        return [dict(d) for d in self.documents[self.skipped:end]]


class FakeCollection:
    """Equality-only stand-in for a motor collection."""

    def __init__(self, documents=None):
        self.documents = list(documents or [])
        self.calls = []

    def _matches(self, document, query):
        return all(document.get(k) == v for k, v in query.items())

    def find(self, query):
        self.calls.append(("find", query))
        return FakeCursor([d for d in self.documents if self._matches(d, query)])

    async def insert_one(self, document):
        self.calls.append(("insert_one", document))
        document = dict(document)
        document.setdefault("_id", ObjectId())
        self.documents.append(document)
        return FakeResult(inserted_id=document["_id"])

    async def update_many(self, query, update):
        self.calls.append(("update_many", query, update))
        matched = [d for d in self.documents if self._matches(d, query)]
        for document in matched:
            document.update(update["$set"])
        return FakeResult(matched_count=len(matched), modified_count=len(matched))

    async def delete_many(self, query):
        self.calls.append(("delete_many", query))
        kept = [d for d in self.documents if not self._matches(d, query)]
        deleted = len(self.documents) - len(kept)
        self.documents = kept
        return FakeResult(deleted_count=deleted)


@pytest.fixture
def mongo():
    """Adapter whose collection is an in-memory double."""
    collection = FakeCollection([
        {"_id": ObjectId(OID), "title": "Hello", "status": "draft"},
        {"_id": 2, "title": "Second", "status": "live"},
        {"_id": 3, "title": "Third", "status": "live"},
    ])
    adapter = MongoDBAdapter(
        "docs",
        MongoSourceConfig(connection_string="mongodb://localhost", database="cms", collection="posts"),
    )
    adapter._client = {"cms": {"posts": collection}}
    return adapter, collection


class TestMongoQueries:
    """Tests for filter parsing and reads."""

    def test_build_query_maps_ids(self, mongo):
        """Test id filters become _id and hex strings become ObjectIds."""
        adapter, _ = mongo

        assert adapter._build_query({"id": OID, "status": "live"}) == {
            "_id": ObjectId(OID),
            "status": "live",
        }
        assert adapter._build_query({"_id": "slug-1"}) == {"_id": "slug-1"}
        assert adapter._build_query({"id": 7}) == {"_id": 7}

    @pytest.mark.parametrize("text", ["status: live", "[1, 2]"])
    def test_parse_filter_rejects_non_objects(self, mongo, text):
        """Test filters must be JSON objects."""
        adapter, _ = mongo
        with pytest.raises(AdapterError):
            adapter._parse_filter(text)

    @pytest.mark.asyncio
    async def test_blank_query_matches_all(self, mongo):
        """Test a blank filter returns every document with a string id."""
        adapter, _ = mongo

        rows = await adapter.execute_query("")

        assert [r["id"] for r in rows] == [OID, "2", "3"]
        assert "_id" not in rows[0]

    @pytest.mark.asyncio
    async def test_filter_and_params_merge(self, mongo):
        """Test params are merged into the JSON filter."""
        adapter, collection = mongo

        rows = await adapter.execute_query('{"status": "live"}', {"id": 3})

        assert rows == [{"title": "Third", "status": "live", "id": "3"}]
        assert collection.calls[-1] == ("find", {"status": "live", "_id": 3})

    @pytest.mark.asyncio
    async def test_pagination_uses_skip_and_limit(self, mongo):
        """Test pages map to skip/limit on the cursor."""
        adapter, _ = mongo

        rows = await adapter.execute_query_paginated("", None, Pagination(page=2, page_size=2))

        assert [r["id"] for r in rows] == ["3"]

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Test reads before connect fail cleanly."""
        adapter = MongoDBAdapter(
            "docs",
            MongoSourceConfig(connection_string="mongodb://localhost", database="cms", collection="posts"),
        )
        with pytest.raises(AdapterError):
            await adapter.execute_query("")


class TestMongoMutations:
    """Tests for verb selection in mutations."""

    @pytest.mark.asyncio
    async def test_blank_query_inserts(self, mongo):
        """Test a blank query inserts the payload."""
        adapter, collection = mongo

        ack = await adapter.execute_mutation("", {"title": "New"})

        assert ack["success"] is True
        assert ObjectId.is_valid(ack["inserted_id"])
        assert collection.calls[-1][0] == "insert_one"

    @pytest.mark.asyncio
    async def test_update_with_filter(self, mongo):
        """Test update sets payload fields on matching documents."""
        adapter, collection = mongo

        ack = await adapter.execute_mutation('update {"status": "live"}', {"id": 9, "status": "archived"})

        assert ack["matched_count"] == 2
        assert collection.calls[-1] == ("update_many", {"status": "live"}, {"$set": {"status": "archived"}})

    @pytest.mark.asyncio
    async def test_bare_filter_means_update(self, mongo):
        """Test query text without a verb is an update filter."""
        adapter, collection = mongo

        await adapter.execute_mutation(f'{{"id": "{OID}"}}', {"title": "Renamed"})

        assert collection.calls[-1] == ("update_many", {"_id": ObjectId(OID)}, {"$set": {"title": "Renamed"}})

    @pytest.mark.asyncio
    async def test_update_requires_fields(self, mongo):
        """Test an update with only an id is refused."""
        adapter, _ = mongo
        with pytest.raises(AdapterError):
            await adapter.execute_mutation("update {}", {"id": 2})

    @pytest.mark.asyncio
    async def test_delete_sentinel_uses_payload_id(self, mongo):
        """Test the delete flag deletes by the payload id."""
        adapter, collection = mongo

        ack = await adapter.execute_mutation("", {"id": OID, "delete": True})

        assert ack == {"deleted_count": 1, "success": True}
        assert collection.calls[-1] == ("delete_many", {"_id": ObjectId(OID)})

    @pytest.mark.asyncio
    async def test_delete_requires_filter(self, mongo):
        """Test a delete without any filter is refused."""
        adapter, collection = mongo

        with pytest.raises(AdapterError):
            await adapter.execute_mutation("delete", {})
        assert len(collection.documents) == 3

    @pytest.mark.asyncio
    async def test_rendered_lookup_and_delete(self, mongo):
        """Test rendered statements find and remove a document."""
        adapter, collection = mongo

        query, params = adapter.render_lookup("posts", "status", "live")
        assert len(await adapter.execute_query(query, params)) == 2

        statement, data = adapter.render_delete("posts", "id", 2)
        assert statement == 'delete {"id": 2}'
        await adapter.execute_mutation(statement, data)
        assert [d["_id"] for d in collection.documents] == [ObjectId(OID), 3]


# ==============================================================================
# REDIS
# ==============================================================================

@pytest_asyncio.fixture
async def redis_adapter():
    """Adapter over fakeredis with an ``app`` key prefix."""
    adapter = RedisAdapter("cache", RedisSourceConfig(connection_string="redis://localhost", key_prefix="app"))
    adapter._client = fakeredis.aioredis.FakeRedis(decode_responses=True)

    yield adapter

    await adapter.disconnect()


class TestRedisAdapter:
    """Tests for key patterns, params filtering and writes."""

    @pytest.mark.asyncio
    async def test_blank_query(self, redis_adapter):
        """Test a blank key returns no records."""
        assert await redis_adapter.execute_query("  ") == []

    @pytest.mark.asyncio
    async def test_set_and_get_with_prefix(self, redis_adapter):
        """Test values are stored under the prefix and read back decoded."""
        await redis_adapter.execute_mutation("users:1", {"value": {"name": "Alice", "role": "admin"}})

        rows = await redis_adapter.execute_query("users:1")

        assert rows == [{"key": "users:1", "value": {"name": "Alice", "role": "admin"}}]
        assert await redis_adapter._client.get("app:users:1") == '{"name": "Alice", "role": "admin"}'

    @pytest.mark.asyncio
    async def test_pattern_with_params(self, redis_adapter):
        """Test patterns scan keys and params filter on JSON fields."""
        await redis_adapter.execute_mutation("users:1", {"value": {"role": "admin"}})
        await redis_adapter.execute_mutation("users:2", {"value": {"role": "guest"}})
        await redis_adapter.execute_mutation("users:3", {"value": {"role": "admin"}})
        await redis_adapter.execute_mutation("posts:1", {"value": "plain text"})

        admins = await redis_adapter.execute_query("users:*", {"role": "admin"})
        posts = await redis_adapter.execute_query("posts:*")

        assert sorted(r["key"] for r in admins) == ["users:1", "users:3"]
        assert posts == [{"key": "posts:1", "value": "plain text"}]

    @pytest.mark.asyncio
    async def test_missing_key(self, redis_adapter):
        """Test a missing key yields no records."""
        assert await redis_adapter.execute_query("users:404") == []

    @pytest.mark.asyncio
    async def test_ttl_and_delete(self, redis_adapter):
        """Test ttl is applied and the delete flag removes the key."""
        await redis_adapter.execute_mutation("session:9", {"value": "x", "ttl": 60})
        assert 0 < await redis_adapter._client.ttl("app:session:9") <= 60

        ack = await redis_adapter.execute_mutation("session:9", {"delete": True})

        assert ack == {"key": "session:9", "deleted": 1, "success": True}
        assert await redis_adapter.execute_query("session:9") == []

    @pytest.mark.asyncio
    async def test_mutation_needs_key_and_value(self, redis_adapter):
        """Test writes without a key or a value are refused."""
        with pytest.raises(AdapterError):
            await redis_adapter.execute_mutation("", {"value": 1})
        with pytest.raises(AdapterError):
            await redis_adapter.execute_mutation("users:1", {"name": "no value"})

    @pytest.mark.asyncio
    async def test_health_check(self, redis_adapter):
        """Test a reachable server is healthy."""
        assert await redis_adapter.health_check() is True

    @pytest.mark.asyncio
    async def test_rendering(self, redis_adapter):
        """Test lookups by id read the key and other fields scan the collection."""
        await redis_adapter.execute_mutation("users:5", {"value": {"email": "e@x.io"}})

        query, params = redis_adapter.render_lookup("users", "id", 5)
        assert (query, params) == ("users:5", None)
        assert len(await redis_adapter.execute_query(query, params)) == 1

        query, params = redis_adapter.render_lookup("users", "email", "e@x.io")
        assert (query, params) == ("users:*", {"email": "e@x.io"})
        assert len(await redis_adapter.execute_query(query, params)) == 1

        assert redis_adapter.render_delete("users", "id", 5) == ("users:5", {"delete": True})
        with pytest.raises(AdapterError):
            redis_adapter.render_delete("users", "email", "e@x.io")

