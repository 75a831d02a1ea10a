"""
RabbitMQ implementation of QueueClient: pull-based polling with basic.get.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> READY.
  On close(): READY -> CLOSING -> close channel/connection -> CLOSED.

Receipts:
  The receipt is the delivery tag of an unacknowledged get. Until it is acked
  (delete_message) the broker keeps the message away from other receivers. A
  lost channel requeues every unacked delivery, so all receipts are dropped
  when the connection closes. RabbitMQ has no per-message visibility timeout;
  the visibility_timeout argument is accepted and ignored.

  A delivery whose body is not UTF-8 is rejected without requeue (dead-lettered
  when the queue has a DLX) and reported as QueueClientError(MalformedMessage),
  after any messages already decoded in the same poll have been returned.

The backoff applies to establishing the connection only. receive_messages and
delete_message never retry.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aio_pika
from aio_pika.exceptions import AMQPError
from loguru import logger

from ssqs.app.config.settings import Settings
from ssqs.app.core import SERVICE_NAME
from ssqs.app.core.backoff import exponential_backoff
from ssqs.app.domain.errors import ConfigurationError
from ssqs.app.infrastructure.messaging.rabbitmq.constants import ConnectionState
from ssqs.app.ports.queue_client import MALFORMED_MESSAGE_CODE, RECEIPT_INVALID_CODE, QueueClientError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQQueueClient:
    """QueueClient over a RabbitMQ queue. `queue_url` is the queue name."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ConnectionState.DISCONNECTED
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._queues: dict[str, aio_pika.abc.AbstractQueue] = {}
        self._pending: dict[str, aio_pika.abc.AbstractIncomingMessage] = {}
        self._deferred_error: QueueClientError | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def queue_url(self) -> str:
        return self._settings.queue_url.strip() or self._settings.queue_name

    def _build_amqp_url(self) -> str:
        return (
            f"amqp://{self._settings.broker_user}:{self._settings.broker_password}"
            f"@{self._settings.broker_host}:{self._settings.broker_port}/"
        )

    def _register_connection_callbacks(self, connection: Any) -> None:
        connection.close_callbacks.add(self._on_connection_lost)
        reconnect_callbacks = getattr(connection, "reconnect_callbacks", None)
        if reconnect_callbacks is not None:
            reconnect_callbacks.add(self._on_connection_lost)

    def _on_connection_lost(self, *args: Any, **kwargs: Any) -> None:
        if self._pending:
            _log("rmq_receipts_invalidated", count=len(self._pending))
        self._pending.clear()
        self._queues.clear()

    async def connect(self) -> None:
        if not self.queue_url:
            raise ConfigurationError("rabbitmq backend requires QUEUE_URL or QUEUE_NAME")
        self._state = ConnectionState.CONNECTING
        _log("rmq_connecting")
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(self._build_amqp_url())
                self._register_connection_callbacks(self._connection)
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._state = ConnectionState.DISCONNECTED
                    raise ConfigurationError(f"rabbitmq connect failed: {e}") from e
        self._state = ConnectionState.CONNECTED
        _log("rmq_connected")

        self._channel = await self._connection.channel()
        try:
            await self._get_queue(self.queue_url)
        except AMQPError as exc:
            await self.close()
            raise ConfigurationError(f"rabbitmq queue {self.queue_url!r} is not available: {exc}") from exc
        self._state = ConnectionState.READY

    async def _get_queue(self, name: str) -> aio_pika.abc.AbstractQueue:
        queue = self._queues.get(name)
        if queue is None:
            if self._channel is None:
                raise RuntimeError("rabbitmq client not connected")
            queue = await self._channel.declare_queue(name, passive=True)
            self._queues[name] = queue
        return queue

    async def _drain(self, queue: aio_pika.abc.AbstractQueue, batch: list[dict[str, Any]]) -> None:
        while len(batch) < self._settings.queue_max_messages:
            incoming = await queue.get(no_ack=False, fail=False)
            if incoming is None:
                return
            receipt = str(incoming.delivery_tag)
            try:
                body = incoming.body.decode()
            except UnicodeDecodeError as exc:
                await incoming.reject(requeue=False)
                error = QueueClientError(
                    f"delivery {receipt} has a non-UTF-8 body and was rejected",
                    code=MALFORMED_MESSAGE_CODE,
                )
                error.__cause__ = exc
                logger.bind(service_name=SERVICE_NAME, event="rmq_delivery_rejected", receipt=receipt).warning(
                    "rejected undecodable delivery {}", receipt
                )
                if batch:
                    # hand over what was decoded; the next receive reports the rejection
                    self._deferred_error = error
                    return
                raise error
            self._pending[receipt] = incoming
            batch.append(
                {
                    "Body": body,
                    "MessageId": incoming.message_id or receipt,
                    "ReceiptHandle": receipt,
                }
            )

    async def receive_messages(
        self,
        queue_url: str,
        visibility_timeout: int,
        wait_seconds: int,
    ) -> list[dict[str, Any]]:
        if self._deferred_error is not None:
            error, self._deferred_error = self._deferred_error, None
            raise error
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        batch: list[dict[str, Any]] = []
        try:
            queue = await self._get_queue(queue_url)
            while True:
                await self._drain(queue, batch)
                remaining = deadline - loop.time()
                if batch or remaining <= 0:
                    return batch
                await asyncio.sleep(min(self._settings.rabbitmq_poll_interval_seconds, remaining))
        except (AMQPError, ConnectionError) as exc:
            raise QueueClientError(f"rabbitmq receive failed: {exc}") from exc

    async def delete_message(self, queue_url: str, receipt: str) -> None:
        incoming = self._pending.pop(receipt, None)
        if incoming is None:
            raise QueueClientError(
                f"receipt {receipt!r} is not valid for queue {queue_url!r}",
                code=RECEIPT_INVALID_CODE,
            )
        try:
            await incoming.ack()
        except (AMQPError, ConnectionError) as exc:
            raise QueueClientError(f"rabbitmq ack failed: {exc}") from exc

    async def close(self) -> None:
        self._state = ConnectionState.CLOSING
        self._pending.clear()
        self._queues.clear()
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None
        self._state = ConnectionState.CLOSED
