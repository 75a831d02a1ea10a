"""Unit tests for Consumer error reporting and delete forwarding."""
from __future__ import annotations

import asyncio

import pytest
from loguru import logger

from ssqs.app.application.consumer import Consumer
from ssqs.app.domain.errors import ConsumerError, DeleteError, ReceiveError
from ssqs.app.domain.models import Message
from ssqs.app.ports.queue_client import RECEIPT_INVALID_CODE, QueueClientError
from tests.fakes import QUEUE_URL, FakeQueueClient, raw_message


@pytest.mark.asyncio
async def test_receive_error_is_reported_and_polling_continues(queue):
    failure = QueueClientError("throttled", code="ThrottlingException")
    client = FakeQueueClient([failure, [raw_message("1", "a")]])
    consumer = Consumer(client, queue)
    consumer.start()

    error = await asyncio.wait_for(consumer.errors.get(), 1)
    message = await asyncio.wait_for(consumer.messages.get(), 1)
    consumer.close()
    await consumer.wait_closed(1)

    assert isinstance(error, ReceiveError)
    assert isinstance(error, ConsumerError)
    assert error.cause is failure
    assert message.id == "1"
    assert len(client.receive_calls) >= 2


@pytest.mark.asyncio
async def test_consecutive_receive_errors_are_each_reported(queue):
    client = FakeQueueClient([RuntimeError("one"), RuntimeError("two"), [raw_message("1", "a")]])
    consumer = Consumer(client, queue)
    consumer.start()

    errors = [await asyncio.wait_for(consumer.errors.get(), 1) for _ in range(2)]
    message = await asyncio.wait_for(consumer.messages.get(), 1)
    consumer.close()
    await consumer.wait_closed(1)

    assert [str(e.cause) for e in errors] == ["one", "two"]
    assert message.id == "1"


@pytest.mark.asyncio
async def test_delete_forwards_receipt_unchanged(queue):
    client = FakeQueueClient()
    consumer = Consumer(client, queue)
    message = Message(body="a", id="1", receipt="AQEB+opaque/receipt==")

    await consumer.delete(message)

    assert client.delete_calls == [(QUEUE_URL, "AQEB+opaque/receipt==")]


@pytest.mark.asyncio
async def test_delete_failure_identifies_message_and_is_not_redelivered(queue):
    failure = QueueClientError("receipt expired", code=RECEIPT_INVALID_CODE)
    client = FakeQueueClient([[raw_message("1", "a", "r1")]], delete_errors={"r1": failure})
    consumer = Consumer(client, queue)
    consumer.start()
    message = await asyncio.wait_for(consumer.messages.get(), 1)

    with pytest.raises(DeleteError) as exc_info:
        await consumer.delete(message)

    assert exc_info.value.message.id == "1"
    assert exc_info.value.message is message
    assert exc_info.value.cause is failure
    assert exc_info.value.__cause__ is failure
    assert str(exc_info.value) == "error deleting message: 1"
    assert client.delete_calls == [(QUEUE_URL, "r1")]

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(consumer.messages.get(), 0.05)
    assert consumer.errors.empty()

    consumer.close()
    await consumer.wait_closed(1)


@pytest.mark.asyncio
async def test_receive_and_delete_failures_log_named_warning_events(queue):
    records = []
    handler_id = logger.add(lambda m: records.append(m.record), level="WARNING")
    try:
        client = FakeQueueClient(
            [RuntimeError("throttled"), [raw_message("1", "a", "r1")]],
            delete_errors={"r1": RuntimeError("gone")},
        )
        consumer = Consumer(client, queue)
        consumer.start()
        await asyncio.wait_for(consumer.errors.get(), 1)
        message = await asyncio.wait_for(consumer.messages.get(), 1)
        with pytest.raises(DeleteError):
            await consumer.delete(message)
        consumer.close()
        await consumer.wait_closed(1)
    finally:
        logger.remove(handler_id)

    events = {r["extra"]["event"]: r for r in records}
    assert events["receive_failed"]["level"].name == "WARNING"
    assert events["receive_failed"]["extra"]["error"] == "throttled"
    assert events["receive_failed"]["extra"]["service_name"] == "ssqs"
    assert events["delete_failed"]["level"].name == "WARNING"
    assert events["delete_failed"]["extra"]["message_id"] == "1"
    assert events["delete_failed"]["extra"]["error"] == "gone"
