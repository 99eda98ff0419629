# ==============================================================================
# KAFKA ADAPTER - aiokafka Producer and Replay Reads
# ==============================================================================
# Mutations publish JSON messages; reads replay recent messages without
# committing offsets
# ==============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, TopicPartition
from aiokafka.errors import KafkaError

from backoffice.config.models import KafkaSourceConfig
from backoffice.core.exceptions import DataSourceConnectionError
from backoffice.core.settings import settings
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter
from backoffice.datasources.coercion import Record, matches_params, to_record

logger = logging.getLogger(__name__)


def _deserialize(raw: Optional[bytes]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return raw.decode("utf-8", errors="replace")


class KafkaAdapter(BaseDataSourceAdapter):
    """
    Kafka topic adapter.

    Reads replay the topic from the beginning with a throwaway consumer
    (no group, no commits) and return at most ``KAFKA_MAX_RECORDS`` messages
    as ``{topic, partition, offset, key, value, timestamp}``. The query text
    names another topic; blank means the configured one.

    Mutations publish ``data`` as a JSON message to the topic named by the
    query text (blank means the configured one), keyed by ``data["id"]``
    when present. ``{"delete": true, "id": ...}`` publishes a tombstone
    (null value) for that key.

    Messaging has no lookup: existence checks against this adapter fail.
    """

    kind = "kafka"

    def __init__(self, name: str, config: KafkaSourceConfig) -> None:
        super().__init__(name)
        self._bootstrap_servers = ",".join(config.brokers)
        self._topic = config.topic
        self._producer: Optional[AIOKafkaProducer] = None

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    async def connect(self) -> None:
        try:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers,
                value_serializer=lambda v: None if v is None else json.dumps(v).encode("utf-8"),
                key_serializer=lambda k: k.encode("utf-8") if k else None,
                acks="all",
            )
            await self._producer.start()
            logger.info(f"Connected Kafka data source '{self.name}' -> {self._bootstrap_servers}")
        except Exception as e:
            logger.error(f"Kafka connection failed for '{self.name}': {e}")
            if self._producer:
                await self._producer.stop()
                self._producer = None
            raise DataSourceConnectionError(
                f"Kafka connection failed for '{self.name}': {e}",
                data_source=self.name,
                kind=self.kind,
            ) from e

    async def disconnect(self) -> None:
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info(f"Closed Kafka data source '{self.name}'")

    async def health_check(self) -> bool:
        if not self._producer:
            return False
        try:
            await self._producer.partitions_for(self._topic)
            return True
        except KafkaError as e:
            logger.error(f"Kafka health check failed for '{self.name}': {e}")
            return False

    # ==========================================================================
    # QUERY OPERATIONS
    # ==========================================================================

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        topic = (query or "").strip() or self._topic
        consumer = AIOKafkaConsumer(
            bootstrap_servers=self._bootstrap_servers,
            group_id=None,
            enable_auto_commit=False,
            auto_offset_reset="earliest",
        )
        records: List[Record] = []
        try:
            await consumer.start()
            if self._producer:
                partitions = await self._producer.partitions_for(topic)
            else:
                partitions = consumer.partitions_for_topic(topic) or set()
            if not partitions:
                return []
            tps = [TopicPartition(topic, p) for p in partitions]
            consumer.assign(tps)
            await consumer.seek_to_beginning(*tps)

            batches = await consumer.getmany(
                *tps,
                timeout_ms=settings.KAFKA_POLL_TIMEOUT_MS,
                max_records=settings.KAFKA_MAX_RECORDS,
            )
            for messages in batches.values():
                for msg in messages:
                    records.append(to_record({
                        "topic": msg.topic,
                        "partition": msg.partition,
                        "offset": msg.offset,
                        "key": msg.key.decode("utf-8", errors="replace") if msg.key else None,
                        "value": _deserialize(msg.value),
                        "timestamp": msg.timestamp,
                    }))
        except KafkaError as e:
            logger.error(f"Kafka read failed on '{self.name}': {e}")
            raise self._error(f"Kafka read failed: {e}", topic=topic) from e
        finally:
            await consumer.stop()

        return [r for r in records if matches_params(r, params)]

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        if not self._producer:
            raise self._error(f"Kafka data source '{self.name}' is not connected")

        topic = (query or "").strip() or self._topic
        key = str(data["id"]) if data.get("id") is not None else None
        if data.get("delete") is True:
            if key is None:
                raise self._error("Kafka tombstone requires an 'id'")
            value = None
        else:
            value = data

        try:
            metadata = await self._producer.send_and_wait(topic, value=value, key=key)
        except KafkaError as e:
            logger.error(f"Kafka publish failed on '{self.name}': {e}")
            raise self._error(f"Kafka publish failed: {e}", topic=topic) from e

        logger.info(f"Published to {topic} on '{self.name}' at offset {metadata.offset}")
        return {
            "topic": metadata.topic,
            "partition": metadata.partition,
            "offset": metadata.offset,
            "success": True,
        }

    # ==========================================================================
    # QUERY RENDERING
    # ==========================================================================

    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        raise self._error("Kafka topics do not support record lookups")

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        return "", {"delete": True, "id": value}
