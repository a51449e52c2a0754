"""
Kafka Consumer for processing events.

Consumes product change notifications and metrics invalidation triggers.
"""
import json
from typing import Any, Awaitable, Callable, Optional

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError

from internal.domain.errors import DomainValidationError
from internal.domain.events import MetricsInvalidatedEvent, ProductChange
from internal.infrastructure.metrics import KAFKA_MESSAGES_CONSUMED
from internal.usecase.ports import MetricsInvalidationSink
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


MessageHandler = Callable[[dict], Awaitable[None]]


class KafkaConsumer:
    """
    Kafka consumer dispatching events to handlers by ``event_type``.

    Offsets are committed only after a message was handled; a failing
    message is redelivered.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        topics: list[str],
        client_id: str = "category-service-consumer",
    ) -> None:
        """
        Initialize the Kafka consumer.

        Args:
            bootstrap_servers: Comma-separated list of Kafka brokers.
            group_id: Consumer group identifier.
            topics: List of topics to subscribe to.
            client_id: Client identifier for the consumer.
        """
        self._bootstrap_servers = bootstrap_servers
        self._group_id = group_id
        self._topics = topics
        self._client_id = client_id
        self._consumer: Optional[AIOKafkaConsumer] = None
        self._handlers: dict[str, MessageHandler] = {}
        self._running = False

    def register_handler(self, event_type: str, handler: MessageHandler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: The event type to handle.
            handler: Async function to handle the event.
        """
        self._handlers[event_type] = handler
        logger.info("Registered handler for event type", event_type=event_type)

    async def start(self) -> None:
        """Start the Kafka consumer."""
        self._consumer = AIOKafkaConsumer(
            *self._topics,
            bootstrap_servers=self._bootstrap_servers,
            group_id=self._group_id,
            client_id=self._client_id,
            value_deserializer=lambda v: json.loads(v.decode("utf-8")),
            auto_offset_reset="earliest",
            enable_auto_commit=False,
        )
        await self._consumer.start()
        self._running = True
        logger.info("Kafka consumer started", topics=self._topics, group_id=self._group_id)

    async def stop(self) -> None:
        """Stop the Kafka consumer."""
        self._running = False
        if self._consumer:
            await self._consumer.stop()
            logger.info("Kafka consumer stopped")

    async def consume(self) -> None:
        """
        Consume messages until ``stop()`` is called.

        Raises:
            RuntimeError: If the consumer was not started.
        """
        if not self._consumer:
            raise RuntimeError("Consumer not started")

        try:
            async for msg in self._consumer:
                if not self._running:
                    break
                try:
                    await self.process(msg.topic, msg.value)
                    await self._consumer.commit()
                except Exception as e:
                    KAFKA_MESSAGES_CONSUMED.labels(topic=msg.topic, status="error").inc()
                    logger.error(
                        "Error processing message",
                        topic=msg.topic,
                        partition=msg.partition,
                        offset=msg.offset,
                        error=str(e),
                    )
        except KafkaError as e:
            logger.error("Kafka consumer error", error=str(e))
            raise

    async def process(self, topic: str, value: Any) -> bool:
        """
        Dispatch one decoded message.

        Args:
            topic: Source topic.
            value: Decoded message body.

        Returns:
            True if a handler processed it.
        """
        event_type = value.get("event_type", "unknown") if isinstance(value, dict) else "unknown"
        handler = self._handlers.get(event_type)
        if handler is None:
            KAFKA_MESSAGES_CONSUMED.labels(topic=topic, status="ignored").inc()
            logger.debug("No handler registered for event type", event_type=event_type)
            return False

        await handler(value)
        KAFKA_MESSAGES_CONSUMED.labels(topic=topic, status="success").inc()
        return True


class ProductChangeEventHandler:
    """
    Handler for ``product.*`` events.

    Forwards changes that can affect metrics to the category service.
    """

    def __init__(self, category_service) -> None:
        """
        Initialize the handler.

        Args:
            category_service: CategoryService instance.
        """
        self._service = category_service

    async def handle(self, event: dict) -> None:
        """
        Handle a product event.

        Malformed events are logged and dropped so they do not block the
        partition.
        """
        try:
            change = ProductChange.from_payload(
                event.get("event_type", ""), event.get("payload") or {}
            )
        except DomainValidationError as e:
            logger.warning("Dropping malformed product event", error=e.message, event=event)
            return

        if not change.affects_metrics():
            logger.debug(
                "Ignoring product update without metric fields",
                product_id=str(change.product_id),
                changed_fields=change.changed_fields,
            )
            return

        await self._service.handle_product_change(change.category_id, change.previous_category_id)


class MetricsInvalidatedEventHandler:
    """Handler for ``category.metrics_invalidated`` events."""

    def __init__(self, sink: MetricsInvalidationSink) -> None:
        """
        Initialize the handler.

        Args:
            sink: Where recompute requests go, normally the scheduler.
        """
        self._sink = sink

    async def handle(self, event: dict) -> None:
        """Queue a recompute for the category named in the event."""
        try:
            invalidated = MetricsInvalidatedEvent.from_dict(event)
        except DomainValidationError as e:
            logger.warning("Dropping malformed invalidation event", error=e.message, event=event)
            return
        await self._sink.invalidate(invalidated.category_id, invalidated.reason)
