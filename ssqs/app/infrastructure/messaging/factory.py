"""Queue client factory: selects implementation from config. Only place that imports concrete clients."""
from __future__ import annotations

from ssqs.app.config.settings import Settings
from ssqs.app.constants import QUEUE_BACKEND
from ssqs.app.domain.errors import ConfigurationError
from ssqs.app.infrastructure.messaging.inmemory.in_memory_queue_client import InMemoryQueueClient
from ssqs.app.infrastructure.messaging.rabbitmq.rabbitmq_queue_client import RabbitMQQueueClient
from ssqs.app.infrastructure.messaging.sqs.sqs_queue_client import SqsQueueClient
from ssqs.app.ports.queue_client import QueueClient


def create_queue_client(settings: Settings) -> QueueClient:
    backend = settings.queue_backend.strip().lower()

    if backend == QUEUE_BACKEND.SQS:
        return SqsQueueClient(settings)

    if backend == QUEUE_BACKEND.RABBITMQ:
        return RabbitMQQueueClient(settings)

    if backend == QUEUE_BACKEND.INMEMORY:
        return InMemoryQueueClient(max_messages=settings.queue_max_messages)

    raise ConfigurationError(f"Unsupported queue backend: {backend}")
