"""
Kafka Producer for event publishing.

Publishes ``category.metrics_invalidated`` triggers for the metrics worker.
"""
import json
from typing import Optional
from uuid import UUID

from aiokafka import AIOKafkaProducer

from internal.domain.errors import EventPublishError
from internal.domain.events import METRICS_INVALIDATED, MetricsInvalidatedEvent
from internal.infrastructure.metrics import KAFKA_MESSAGES_PRODUCED
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class KafkaProducer:
    """
    Kafka producer for publishing domain events.

    Handles serialization and acknowledged delivery of events.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str = "category-service",
    ) -> None:
        """
        Initialize the Kafka producer.

        Args:
            bootstrap_servers: Comma-separated list of Kafka brokers.
            client_id: Client identifier for the producer.
        """
        self._bootstrap_servers = bootstrap_servers
        self._client_id = client_id
        self._producer: Optional[AIOKafkaProducer] = None

    async def start(self) -> None:
        """Start the Kafka producer."""
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            client_id=self._client_id,
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k else None,
            acks="all",
        )
        await self._producer.start()
        logger.info("Kafka producer started", bootstrap_servers=self._bootstrap_servers)

    async def stop(self) -> None:
        """Stop the Kafka producer."""
        if self._producer:
            await self._producer.stop()
            logger.info("Kafka producer stopped")

    async def publish_message(self, topic: str, key: str, value: dict) -> None:
        """
        Publish a message and wait for the broker acknowledgement.

        Args:
            topic: The Kafka topic to publish to.
            key: Message key.
            value: Message value as dictionary.
        """
        if not self._producer:
            raise RuntimeError("Producer not started")

        await self._producer.send_and_wait(topic=topic, key=key, value=value)
        logger.debug("Message published to Kafka", topic=topic, key=key)


class CategoryEventPublisher:
    """
    Metrics invalidation sink backed by Kafka.

    Messages are keyed by category ID so triggers for one category stay in
    order on one partition.
    """

    def __init__(self, producer: KafkaProducer, topic: str = "category-events") -> None:
        """
        Initialize the publisher.

        Args:
            producer: Started Kafka producer.
            topic: Topic consumed by the metrics worker.
        """
        self._producer = producer
        self._topic = topic

    async def invalidate(self, category_id: UUID, reason: str = "") -> None:
        """
        Publish a ``category.metrics_invalidated`` event.

        Raises:
            EventPublishError: If the broker did not accept the message.
        """
        event = MetricsInvalidatedEvent(category_id=category_id, reason=reason)
        key = str(category_id)
        try:
            await self._producer.publish_message(self._topic, key, event.to_dict())
        except Exception as e:
            KAFKA_MESSAGES_PRODUCED.labels(topic=self._topic, status="error").inc()
            raise EventPublishError(METRICS_INVALIDATED, str(e), key=key) from e

        KAFKA_MESSAGES_PRODUCED.labels(topic=self._topic, status="success").inc()
        logger.debug("Metrics invalidation published", category_id=key, reason=reason)
