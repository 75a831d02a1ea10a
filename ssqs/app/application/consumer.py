"""
Queue consumer: one background polling loop feeding two channels.

Lifecycle:
  NOT_STARTED -> start() -> POLLING -> (close() observed | cancelled) -> TERMINATED.
  The loop is single-shot; a terminated consumer cannot be restarted.

Concurrency:
  - start() launches the loop as an asyncio task and returns immediately.
  - Each iteration checks the termination event before receiving. close() only
    sets the event, so it never blocks, but an in-flight receive or channel put
    completes before the loop sees it.
  - messages/errors are bounded at CHANNEL_CAPACITY; a put suspends the loop
    until the caller drains the channel.
  - wait_closed(timeout) cancels the task if it does not finish in time, so a
    caller that stopped draining cannot leak the loop.
"""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from ssqs.app.constants import CHANNEL_CAPACITY, ConsumerState
from ssqs.app.core import SERVICE_NAME
from ssqs.app.domain.errors import ConsumerError, ConsumerStateError, DeleteError, ReceiveError
from ssqs.app.domain.models import Message, Queue
from ssqs.app.ports.queue_client import QueueClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _warn(event: str, text: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning(text)


class Consumer:
    """Polls `queue` through `client` and hands messages to the caller."""

    def __init__(self, client: QueueClient, queue: Queue) -> None:
        self._client = client
        self._queue = queue
        self._state = ConsumerState.NOT_STARTED
        self._finish = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.messages: asyncio.Queue[Message] = asyncio.Queue(maxsize=CHANNEL_CAPACITY)
        self.errors: asyncio.Queue[ConsumerError] = asyncio.Queue(maxsize=CHANNEL_CAPACITY)

    @property
    def queue(self) -> Queue:
        return self._queue

    @property
    def state(self) -> ConsumerState:
        return self._state

    def start(self) -> None:
        if self._state is not ConsumerState.NOT_STARTED:
            raise ConsumerStateError(f"consumer cannot start from state {self._state.value}")
        self._task = asyncio.create_task(self._consume())
        self._state = ConsumerState.POLLING
        _log("consumer_started", queue_url=self._queue.url)

    def close(self) -> None:
        if self._finish.is_set():
            return
        self._finish.set()
        if self._state is ConsumerState.NOT_STARTED:
            self._state = ConsumerState.TERMINATED
        _log("consumer_close_requested", queue_url=self._queue.url)

    async def wait_closed(self, timeout: float | None = None) -> None:
        """Wait for the loop to exit; cancel it if `timeout` elapses first."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except asyncio.TimeoutError:
            _warn(
                "consumer_cancelled",
                "consumer loop did not stop in time; cancelling",
                queue_url=self._queue.url,
                timeout=timeout,
            )
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def delete(self, message: Message) -> None:
        try:
            await self._client.delete_message(self._queue.url, message.receipt)
        except Exception as exc:
            _warn("delete_failed", "delete failed", message_id=message.id, error=str(exc))
            raise DeleteError(message, exc) from exc

    async def _consume(self) -> None:
        try:
            while not self._finish.is_set():
                await self._receive()
                # let other tasks run even if the transport never suspended
                await asyncio.sleep(0)
        finally:
            self._state = ConsumerState.TERMINATED
            _log("consumer_stopped", queue_url=self._queue.url)

    async def _receive(self) -> None:
        try:
            raw_messages = await self._client.receive_messages(
                self._queue.url,
                self._queue.visibility_timeout,
                self._queue.poll_duration,
            )
        except Exception as exc:
            _warn("receive_failed", "receive failed", queue_url=self._queue.url, error=str(exc))
            await self.errors.put(ReceiveError(exc))
            return

        for raw in raw_messages:
            try:
                message = Message.from_raw(raw)
            except (KeyError, TypeError) as exc:
                _warn("receive_failed", "malformed message skipped", queue_url=self._queue.url, error=repr(exc))
                await self.errors.put(ReceiveError(exc))
                continue
            await self.messages.put(message)
