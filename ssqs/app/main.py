"""Demo runner: consume from the configured queue, log and delete each message."""
import asyncio
import signal
from typing import Any

from loguru import logger

from ssqs.app.application.consumer import Consumer
from ssqs.app.composition import create_consumer_dependencies
from ssqs.app.core import SERVICE_NAME
from ssqs.app.domain.errors import DeleteError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def _handle_messages(consumer: Consumer) -> None:
    while True:
        message = await consumer.messages.get()
        _log("message_received", message_id=message.id, body_length=len(message.body))
        try:
            await consumer.delete(message)
            _log("message_deleted", message_id=message.id)
        except DeleteError as e:
            logger.warning("{}: {}", e, e.cause)


async def _handle_errors(consumer: Consumer) -> None:
    while True:
        error = await consumer.errors.get()
        logger.warning("consumer error: {}", error)


async def run_consumer() -> None:
    deps = create_consumer_dependencies()
    await deps.connect()
    consumer = deps.consumer

    shutdown = asyncio.Event()

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    handlers = [
        asyncio.create_task(_handle_messages(consumer)),
        asyncio.create_task(_handle_errors(consumer)),
    ]
    consumer.start()
    _log("runner_started")
    await shutdown.wait()

    # handlers keep draining until the loop has observed close()
    await deps.close()
    for task in handlers:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    _log("runner_stopped")


def main() -> None:
    try:
        asyncio.run(run_consumer())
    except KeyboardInterrupt:
        _log("runner_interrupted")
    except Exception as e:
        logger.exception("runner failed: {}", e)
        raise


if __name__ == "__main__":
    main()
