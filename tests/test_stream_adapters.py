# ==============================================================================
# OBJECT STORE, MESSAGING AND SOCKET ADAPTER TESTS
# ==============================================================================
# S3 and Kafka against in-process client doubles, WebSocket against a real
# aiohttp test server
# ==============================================================================

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from aiohttp import test_utils, web
from aiokafka import TopicPartition
from aiokafka.errors import KafkaError
from botocore.exceptions import ClientError

from backoffice.config.models import KafkaSourceConfig, S3SourceConfig, WebSocketSourceConfig
from backoffice.core.exceptions import AdapterError
from backoffice.datasources.adapters import kafka_adapter
from backoffice.datasources.adapters.kafka_adapter import KafkaAdapter
from backoffice.datasources.adapters.s3_adapter import S3Adapter
from backoffice.datasources.adapters.websocket_adapter import WebSocketAdapter


# ==============================================================================
# S3
# ==============================================================================

class FakeBody:
    def __init__(self, data: bytes):
        self._data = data

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self):
        return self._data


class FakeS3Client:
    """Bucket held in a dict of ``key -> (body, content_type)``."""

    def __init__(self, objects):
        self.objects = dict(objects)
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def head_bucket(self, Bucket):
        return {}

    async def list_objects_v2(self, Bucket, Prefix, MaxKeys):
        self.calls.append(("list", Prefix, MaxKeys))
        keys = sorted(k for k in self.objects if k.startswith(Prefix))[:MaxKeys]
        return {
            "Contents": [
                {"Key": k, "Size": len(self.objects[k][0]), "ETag": '"e-1"'}
                for k in keys
            ]
        }

    async def get_object(self, Bucket, Key):
        self.calls.append(("get", Key))
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        body, content_type = self.objects[Key]
        return {"Body": FakeBody(body), "ContentType": content_type}

    async def put_object(self, Bucket, Key, Body, ContentType, **extra):
        self.calls.append(("put", Key, extra))
        self.objects[Key] = (Body, ContentType)
        return {"ETag": '"e-2"'}

    async def delete_object(self, Bucket, Key):
        self.calls.append(("delete", Key))
        self.objects.pop(Key, None)


class FakeSession:
    def __init__(self, client):
        self.client_instance = client

    def client(self, service, **config):
        return self.client_instance


@pytest.fixture
def s3():
    """Adapter scoped to the ``uploads`` prefix of a fake bucket."""
    client = FakeS3Client({
        "uploads/reports/q1.json": (b'{"quarter": 1, "status": "final"}', "application/json"),
        "uploads/reports/q2.json": (b'{"quarter": 2, "status": "draft"}', "application/json"),
        "uploads/logo.png": (b"\x89PNG\xff\xfe", "image/png"),
        "private/secret.txt": (b"hidden", "text/plain"),
    })
    adapter = S3Adapter("files", S3SourceConfig(bucket="assets", prefix="uploads/"))
    adapter._session = FakeSession(client)
    return adapter, client


class TestS3Reads:
    """Tests for listings and object reads."""

    @pytest.mark.asyncio
    async def test_blank_query_lists_prefix(self, s3):
        """Test a blank query lists everything under the configured prefix."""
        adapter, client = s3

        rows = await adapter.execute_query("")

        assert [r["key"] for r in rows] == ["logo.png", "reports/q1.json", "reports/q2.json"]
        assert rows[0]["etag"] == "e-1"
        assert client.calls == [("list", "uploads/", 1000)]

    @pytest.mark.asyncio
    async def test_sub_prefix_and_max_keys(self, s3):
        """Test ``dir/*`` narrows the listing and max_keys is coerced."""
        adapter, client = s3

        rows = await adapter.execute_query("reports/*", {"max_keys": "1"})

        assert [r["key"] for r in rows] == ["reports/q1.json"]
        assert client.calls == [("list", "uploads/reports/", 1)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_keys", ["abc", None, 0, -5])
    async def test_invalid_max_keys(self, s3, max_keys):
        """Test a bad max_keys is an adapter error and nothing is listed."""
        adapter, client = s3

        with pytest.raises(AdapterError) as exc_info:
            await adapter.execute_query("*", {"max_keys": max_keys})

        assert exc_info.value.details["data_source"] == "files"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_json_object(self, s3):
        """Test JSON objects are parsed and can be filtered on content."""
        adapter, _ = s3

        rows = await adapter.execute_query("reports/q1.json", {"status": "final"})

        assert len(rows) == 1
        assert rows[0]["content"] == {"quarter": 1, "status": "final"}
        assert rows[0]["encoding"] == "json"
        assert rows[0]["mime_type"] == "application/json"
        assert await adapter.execute_query("reports/q1.json", {"status": "draft"}) == []

    @pytest.mark.asyncio
    async def test_binary_object_is_base64(self, s3):
        """Test non UTF-8 bodies come back base64 encoded."""
        adapter, _ = s3

        rows = await adapter.execute_query("logo.png")

        assert rows[0]["encoding"] == "base64"
        assert rows[0]["size"] == 6

    @pytest.mark.asyncio
    async def test_missing_object(self, s3):
        """Test a missing key yields no records."""
        adapter, _ = s3
        assert await adapter.execute_query("reports/q9.json") == []

    @pytest.mark.asyncio
    async def test_client_error_wrapped(self, s3):
        """Test other S3 errors surface as AdapterError."""
        adapter, client = s3
        client.list_objects_v2 = AsyncMock(
            side_effect=ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "ListObjectsV2")
        )
        with pytest.raises(AdapterError):
            await adapter.execute_query("*")

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Test reads before connect fail cleanly."""
        adapter = S3Adapter("files", S3SourceConfig(bucket="assets"))
        with pytest.raises(AdapterError):
            await adapter.execute_query("a.txt")


class TestS3Writes:
    """Tests for puts, deletes and body encoding."""

    @pytest.mark.asyncio
    async def test_put_json_with_metadata(self, s3):
        """Test structured content is stored as JSON with string metadata."""
        adapter, client = s3

        ack = await adapter.execute_mutation("reports/q3.json", {"content": {"quarter": 3}, "metadata": {"owner": 7}})

        assert ack == {"key": "reports/q3.json", "etag": "e-2", "success": True}
        assert client.objects["uploads/reports/q3.json"] == (b'{"quarter": 3}', "application/json")
        assert client.calls[-1] == ("put", "uploads/reports/q3.json", {"Metadata": {"owner": "7"}})

    @pytest.mark.asyncio
    async def test_rendered_delete(self, s3):
        """Test a rendered delete removes the object under the prefix."""
        adapter, client = s3

        statement, data = adapter.render_delete("reports", "key", "q2.json")
        ack = await adapter.execute_mutation(statement, data)

        assert ack["deleted"] is True
        assert "uploads/reports/q2.json" not in client.objects

    @pytest.mark.asyncio
    async def test_put_requires_key_and_content(self, s3):
        """Test writes without a key or content are refused."""
        adapter, client = s3
        with pytest.raises(AdapterError):
            await adapter.execute_mutation("", {"content": "x"})
        with pytest.raises(AdapterError):
            await adapter.execute_mutation("notes.txt", {"metadata": {}})
        assert not any(call[0] == "put" for call in client.calls)

    def test_encode_body(self, s3):
        """Test text, base64 and structured content encodings."""
        adapter, _ = s3

        assert adapter._encode_body({"content": "hi"}) == (b"hi", "text/plain")
        assert adapter._encode_body({"content": "aGk=", "encoding": "base64"}) == (
            b"hi",
            "application/octet-stream",
        )
        assert adapter._encode_body({"content": [1, 2], "content_type": "application/x-list"}) == (
            b"[1, 2]",
            "application/x-list",
        )
        with pytest.raises(AdapterError):
            adapter._encode_body({"content": "abc", "encoding": "base64"})

    def test_rendering(self, s3):
        """Test key lookups fetch the object and other fields list the collection."""
        adapter, _ = s3

        assert adapter.render_lookup("reports", "id", "q1.json") == ("reports/q1.json", None)
        assert adapter.render_lookup("reports", "status", "final") == ("reports/*", {"status": "final"})
        with pytest.raises(AdapterError):
            adapter.render_delete("reports", "status", "final")


# ==============================================================================
# KAFKA
# ==============================================================================

class FakeConsumer:
    """Replays a fixed list of messages for whatever partitions get assigned."""

    def __init__(self, messages):
        self.messages = messages
        self.assigned = []
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    def partitions_for_topic(self, topic):
        return {m.partition for m in self.messages if m.topic == topic}

    def assign(self, partitions):
        self.assigned = list(partitions)

    async def seek_to_beginning(self, *partitions):
        pass

    async def getmany(self, *partitions, timeout_ms, max_records):
        return {
            tp: [m for m in self.messages if (m.topic, m.partition) == (tp.topic, tp.partition)][:max_records]
            for tp in partitions
        }


def _message(offset, key, value):
    return SimpleNamespace(
        topic="orders",
        partition=0,
        offset=offset,
        key=key,
        value=value,
        timestamp=1700000000000 + offset,
    )


@pytest.fixture
def kafka():
    """Adapter with a mocked producer for the ``orders`` topic."""
    adapter = KafkaAdapter("events", KafkaSourceConfig(brokers=["localhost:9092"], topic="orders"))
    producer = AsyncMock()
    producer.send_and_wait.return_value = SimpleNamespace(topic="orders", partition=0, offset=41)
    producer.partitions_for.return_value = {0}
    adapter._producer = producer
    return adapter, producer


class TestKafkaAdapter:
    """Tests for publishing, tombstones and replay reads."""

    @pytest.mark.asyncio
    async def test_publish_keyed_by_id(self, kafka):
        """Test a blank query publishes to the configured topic keyed by id."""
        adapter, producer = kafka

        ack = await adapter.execute_mutation("", {"id": 7, "total": 10})

        producer.send_and_wait.assert_awaited_once_with("orders", value={"id": 7, "total": 10}, key="7")
        assert ack == {"topic": "orders", "partition": 0, "offset": 41, "success": True}

    @pytest.mark.asyncio
    async def test_query_names_topic(self, kafka):
        """Test the query text overrides the topic and unkeyed data has no key."""
        adapter, producer = kafka

        await adapter.execute_mutation("audit", {"action": "login"})

        producer.send_and_wait.assert_awaited_once_with("audit", value={"action": "login"}, key=None)

    @pytest.mark.asyncio
    async def test_rendered_delete_is_tombstone(self, kafka):
        """Test a rendered delete publishes a null value for the key."""
        adapter, producer = kafka

        statement, data = adapter.render_delete("orders", "id", 7)
        await adapter.execute_mutation(statement, data)

        producer.send_and_wait.assert_awaited_once_with("orders", value=None, key="7")

    @pytest.mark.asyncio
    async def test_tombstone_requires_id(self, kafka):
        """Test a delete without an id is refused before publishing."""
        adapter, producer = kafka

        with pytest.raises(AdapterError):
            await adapter.execute_mutation("", {"delete": True})
        producer.send_and_wait.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure(self, kafka):
        """Test broker errors surface as AdapterError."""
        adapter, producer = kafka
        producer.send_and_wait.side_effect = KafkaError("broker down")

        with pytest.raises(AdapterError) as exc_info:
            await adapter.execute_mutation("", {"id": 1})
        assert exc_info.value.details["topic"] == "orders"

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Test publishing before connect fails cleanly."""
        adapter = KafkaAdapter("events", KafkaSourceConfig(brokers=["localhost:9092"], topic="orders"))
        with pytest.raises(AdapterError):
            await adapter.execute_mutation("", {"id": 1})

    @pytest.mark.asyncio
    async def test_blank_query_replays_topic(self, kafka, monkeypatch):
        """Test a blank query replays the configured topic and filters on values."""
        adapter, _ = kafka
        consumer = FakeConsumer([
            _message(0, b"1", b'{"id": 1, "status": "paid"}'),
            _message(1, b"2", b'{"id": 2, "status": "open"}'),
            _message(2, b"1", None),
        ])
        monkeypatch.setattr(kafka_adapter, "AIOKafkaConsumer", lambda **kwargs: consumer)

        everything = await adapter.execute_query("")
        paid = await adapter.execute_query("  ", {"status": "paid"})

        assert [r["offset"] for r in everything] == [0, 1, 2]
        assert everything[2]["value"] is None
        assert [(r["key"], r["value"]) for r in paid] == [("1", {"id": 1, "status": "paid"})]
        assert consumer.assigned == [TopicPartition("orders", 0)]
        assert consumer.stopped is True

    @pytest.mark.asyncio
    async def test_unknown_topic_reads_nothing(self, kafka, monkeypatch):
        """Test a topic without partitions yields no records."""
        adapter, producer = kafka
        producer.partitions_for.return_value = set()
        consumer = FakeConsumer([])
        monkeypatch.setattr(kafka_adapter, "AIOKafkaConsumer", lambda **kwargs: consumer)

        assert await adapter.execute_query("missing") == []
        assert consumer.stopped is True

    def test_lookups_unsupported(self, kafka):
        """Test existence lookups are refused."""
        adapter, _ = kafka
        with pytest.raises(AdapterError):
            adapter.render_lookup("orders", "id", 1)


# ==============================================================================
# WEBSOCKET
# ==============================================================================

async def _ws_handler(request):
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    async for msg in ws:
        frame = json.loads(msg.data)
        if frame["action"] == "mutation":
            await ws.send_json({"success": True, "echo": frame["data"]})
        elif frame["query"] == "status":
            await ws.send_json({"state": "ok"})
        elif frame["query"] == "ping":
            await ws.send_str("pong")
        elif frame["query"] == "hangup":
            await ws.close()
        else:
            await ws.send_json([
                {"id": 1, "query": frame["query"], **frame["params"]},
                {"id": 2, "query": frame["query"], **frame["params"]},
                "not a record",
            ])
    return ws


@pytest_asyncio.fixture
async def ws_url():
    """URL of an in-process JSON socket server."""
    app = web.Application()
    app.router.add_get("/ws", _ws_handler)
    server = test_utils.TestServer(app)
    await server.start_server()

    yield str(server.make_url("/ws"))

    await server.close()


@pytest_asyncio.fixture
async def ws_adapter(ws_url):
    """Connected adapter with reconnect enabled."""
    adapter = WebSocketAdapter("live", WebSocketSourceConfig(url=ws_url))
    await adapter.connect()

    yield adapter

    await adapter.disconnect()


class TestWebSocketAdapter:
    """Tests for the one-frame request/reply exchange."""

    @pytest.mark.asyncio
    async def test_list_reply(self, ws_adapter):
        """Test a list reply becomes one record per object."""
        rows = await ws_adapter.execute_query("orders", {"status": "open"})

        assert rows == [
            {"id": 1, "query": "orders", "status": "open"},
            {"id": 2, "query": "orders", "status": "open"},
        ]

    @pytest.mark.asyncio
    async def test_object_and_scalar_replies(self, ws_adapter):
        """Test object replies are one record and scalars are wrapped."""
        assert await ws_adapter.execute_query("status") == [{"state": "ok"}]
        assert await ws_adapter.execute_query("ping") == [{"value": "pong"}]

    @pytest.mark.asyncio
    async def test_blank_query(self):
        """Test a blank query returns no records without touching the socket."""
        adapter = WebSocketAdapter("live", WebSocketSourceConfig(url="ws://127.0.0.1:1/ws"))
        assert await adapter.execute_query("   ") == []

    @pytest.mark.asyncio
    async def test_mutation_and_rendered_delete(self, ws_adapter):
        """Test mutations return the server acknowledgement."""
        ack = await ws_adapter.execute_mutation("orders", {"id": 5, "status": "paid"})
        assert ack == {"success": True, "echo": {"id": 5, "status": "paid"}}

        statement, data = ws_adapter.render_delete("orders", "id", 5)
        assert statement == "delete orders"
        ack = await ws_adapter.execute_mutation(statement, data)
        assert ack["echo"] == {"id": 5, "delete": True}

    @pytest.mark.asyncio
    async def test_reconnects_after_close(self, ws_adapter):
        """Test a closed socket is reopened before the next call."""
        await ws_adapter._ws.close()
        assert await ws_adapter.health_check() is False

        assert await ws_adapter.execute_query("status") == [{"state": "ok"}]
        assert await ws_adapter.health_check() is True

    @pytest.mark.asyncio
    async def test_closed_without_reconnect(self, ws_url):
        """Test a closed socket is an error when reconnect is off."""
        adapter = WebSocketAdapter("live", WebSocketSourceConfig(url=ws_url, reconnect=False))
        await adapter.connect()
        try:
            await adapter._ws.close()
            with pytest.raises(AdapterError):
                await adapter.execute_query("status")
        finally:
            await adapter.disconnect()

    @pytest.mark.asyncio
    async def test_server_hangup(self, ws_adapter):
        """Test a close frame instead of a reply is an error."""
        with pytest.raises(AdapterError):
            await ws_adapter.execute_query("hangup")

    def test_lookups_unsupported(self):
        """Test existence lookups are refused."""
        adapter = WebSocketAdapter("live", WebSocketSourceConfig(url="ws://127.0.0.1:1/ws"))
        with pytest.raises(AdapterError):
            adapter.render_lookup("orders", "id", 1)
