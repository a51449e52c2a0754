"""
Kafka infrastructure package.
"""

from .consumer import KafkaConsumer, MetricsInvalidatedEventHandler, ProductChangeEventHandler
from .producer import CategoryEventPublisher, KafkaProducer

__all__ = [
    "KafkaProducer",
    "CategoryEventPublisher",
    "KafkaConsumer",
    "ProductChangeEventHandler",
    "MetricsInvalidatedEventHandler",
]
