"""Composition root: build and lifecycle-manage the queue client and consumer.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from ssqs.app.application.consumer import Consumer
from ssqs.app.config.settings import Settings
from ssqs.app.core import SERVICE_NAME
from ssqs.app.infrastructure.messaging.factory import create_queue_client
from ssqs.app.ports.queue_client import QueueClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ConsumerDependencies:
    """Holds the wired queue client and consumer and their lifecycle."""

    def __init__(self, *, settings: Settings, client: QueueClient | None = None) -> None:
        self._settings = settings
        self._client = client
        self._consumer: Consumer | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def client(self) -> QueueClient:
        if self._client is None:
            raise RuntimeError("queue client is not initialized")
        return self._client

    @property
    def consumer(self) -> Consumer:
        if self._consumer is None:
            raise RuntimeError("consumer is not initialized")
        return self._consumer

    async def connect(self) -> None:
        """Connect the client and build the consumer; raises ConfigurationError on bad setup."""
        if self._client is None:
            self._client = create_queue_client(self._settings)
        await self._client.connect()
        try:
            resolved_url = getattr(self._client, "queue_url", None)
            queue = self._settings.to_queue(resolved_url)
        except Exception:
            await self._client.close()
            raise
        self._consumer = Consumer(self._client, queue)
        _log("consumer_wired", queue_url=queue.url, backend=self._settings.queue_backend)

    async def close(self) -> None:
        if self._consumer is not None:
            self._consumer.close()
            try:
                await self._consumer.wait_closed(self._settings.shutdown_timeout_seconds)
            except Exception as exc:
                logger.warning("consumer shutdown failed: {}", exc)
            self._consumer = None

        if self._client is not None:
            try:
                await self._client.close()
            except Exception as exc:
                logger.warning("queue client close failed: {}", exc)
            self._client = None


def create_consumer_dependencies(
    settings: Settings | None = None,
    *,
    client: QueueClient | None = None,
) -> ConsumerDependencies:
    return ConsumerDependencies(settings=settings or Settings(), client=client)
