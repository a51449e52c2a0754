"""
Unit tests for Kafka event handling.
"""
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from internal.domain.errors import EventPublishError
from internal.infrastructure.kafka.consumer import (
    KafkaConsumer,
    MetricsInvalidatedEventHandler,
    ProductChangeEventHandler,
)
from internal.infrastructure.kafka.producer import CategoryEventPublisher


@pytest.fixture
def consumer():
    return KafkaConsumer(
        bootstrap_servers="localhost:9092",
        group_id="test",
        topics=["product-events"],
    )


class TestKafkaConsumerDispatch:
    """Tests for event dispatch by type."""

    @pytest.mark.asyncio
    async def test_dispatches_registered_type(self, consumer):
        handler = AsyncMock()
        consumer.register_handler("product.created", handler)
        event = {"event_type": "product.created", "payload": {}}

        assert await consumer.process("product-events", event) is True
        handler.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_ignores_unknown_type(self, consumer):
        handler = AsyncMock()
        consumer.register_handler("product.created", handler)

        assert await consumer.process("product-events", {"event_type": "order.placed"}) is False
        assert await consumer.process("product-events", ["not", "a", "dict"]) is False
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handler_errors_propagate(self, consumer):
        consumer.register_handler("product.created", AsyncMock(side_effect=RuntimeError("db down")))

        with pytest.raises(RuntimeError):
            await consumer.process("product-events", {"event_type": "product.created"})

    @pytest.mark.asyncio
    async def test_consume_requires_start(self, consumer):
        with pytest.raises(RuntimeError):
            await consumer.consume()


class TestProductChangeEventHandler:
    """Tests for ProductChangeEventHandler."""

    @pytest.mark.asyncio
    async def test_recategorised_product(self):
        service = AsyncMock()
        new_id, old_id = uuid4(), uuid4()

        await ProductChangeEventHandler(service).handle(
            {
                "event_type": "product.updated",
                "payload": {
                    "product_id": str(uuid4()),
                    "category_id": str(new_id),
                    "previous_category_id": str(old_id),
                    "changed_fields": ["category"],
                },
            }
        )

        service.handle_product_change.assert_awaited_once_with(new_id, old_id)

    @pytest.mark.asyncio
    async def test_irrelevant_update_ignored(self):
        service = AsyncMock()

        await ProductChangeEventHandler(service).handle(
            {
                "event_type": "product.updated",
                "payload": {"category_id": str(uuid4()), "changed_fields": ["description"]},
            }
        )

        service.handle_product_change.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_event_dropped(self):
        service = AsyncMock()

        await ProductChangeEventHandler(service).handle(
            {"event_type": "product.created", "payload": {"category_id": "garbage"}}
        )

        service.handle_product_change.assert_not_awaited()


class TestMetricsInvalidation:
    """Tests for the invalidation round trip through Kafka."""

    @pytest.mark.asyncio
    async def test_published_event_reaches_sink(self):
        producer = AsyncMock()
        sink = AsyncMock()
        category_id = uuid4()

        await CategoryEventPublisher(producer, topic="category-events").invalidate(category_id, "category moved")

        topic, key, value = producer.publish_message.await_args.args
        assert topic == "category-events"
        assert key == str(category_id)

        await MetricsInvalidatedEventHandler(sink).handle(value)
        sink.invalidate.assert_awaited_once_with(category_id, "category moved")

    @pytest.mark.asyncio
    async def test_publish_failure_raises(self):
        producer = AsyncMock()
        producer.publish_message.side_effect = ConnectionError("broker down")

        with pytest.raises(EventPublishError) as exc_info:
            await CategoryEventPublisher(producer).invalidate(uuid4())

        assert exc_info.value.event_type == "category.metrics_invalidated"

    @pytest.mark.asyncio
    async def test_malformed_invalidation_dropped(self):
        sink = AsyncMock()

        await MetricsInvalidatedEventHandler(sink).handle({"payload": {"category_id": "x"}})

        sink.invalidate.assert_not_awaited()
