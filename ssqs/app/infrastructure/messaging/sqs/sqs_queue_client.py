"""AWS SQS implementation of QueueClient on aioboto3.

One `sqs` client is opened in connect() and held until close(). connect() is
the only place that resolves credentials and the queue, so a bad setup fails
before any consumer loop starts. Receive and delete make exactly one call each.
"""
from __future__ import annotations

import contextlib
from typing import Any

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from ssqs.app.config.settings import Settings
from ssqs.app.core import SERVICE_NAME
from ssqs.app.domain.errors import ConfigurationError
from ssqs.app.ports.queue_client import QueueClientError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _to_queue_client_error(exc: Exception) -> QueueClientError:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return QueueClientError(str(exc), code=error.get("Code"))
    return QueueClientError(str(exc))


class SqsQueueClient:
    """QueueClient implementation for AWS SQS (or an SQS-compatible endpoint)."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._exit_stack: contextlib.AsyncExitStack | None = None
        self._client: Any | None = None
        self._queue_url = settings.queue_url.strip()

    @property
    def queue_url(self) -> str:
        """Configured queue URL, or the one resolved from QUEUE_NAME by connect()."""
        return self._queue_url

    def _client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"region_name": self._settings.queue_region}
        if self._settings.sqs_endpoint_url:
            kwargs["endpoint_url"] = self._settings.sqs_endpoint_url
        return kwargs

    async def connect(self) -> None:
        region = self._settings.queue_region.strip()
        if not region:
            raise ConfigurationError("sqs backend requires QUEUE_REGION")
        if not self._queue_url and not self._settings.queue_name:
            raise ConfigurationError("sqs backend requires QUEUE_URL or QUEUE_NAME")

        _log("sqs_connecting", region=region, endpoint_url=self._settings.sqs_endpoint_url or None)
        exit_stack = contextlib.AsyncExitStack()
        try:
            session = aioboto3.Session()
            self._client = await exit_stack.enter_async_context(
                session.client("sqs", **self._client_kwargs())
            )
            if not self._queue_url:
                response = await self._client.get_queue_url(QueueName=self._settings.queue_name)
                self._queue_url = response["QueueUrl"]
                _log("sqs_queue_resolved", queue_name=self._settings.queue_name, queue_url=self._queue_url)
            else:
                await self._client.get_queue_attributes(
                    QueueUrl=self._queue_url,
                    AttributeNames=["QueueArn"],
                )
        except (BotoCoreError, ClientError) as exc:
            await exit_stack.aclose()
            self._client = None
            raise ConfigurationError(f"sqs connect failed: {exc}") from exc
        self._exit_stack = exit_stack
        _log("sqs_connected", queue_url=self._queue_url)

    def _require_client(self) -> Any:
        if self._client is None:
            raise RuntimeError("sqs client not connected")
        return self._client

    async def receive_messages(
        self,
        queue_url: str,
        visibility_timeout: int,
        wait_seconds: int,
    ) -> list[dict[str, Any]]:
        client = self._require_client()
        try:
            response = await client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=self._settings.queue_max_messages,
                VisibilityTimeout=visibility_timeout,
                WaitTimeSeconds=wait_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise _to_queue_client_error(exc) from exc
        return list(response.get("Messages", []))

    async def delete_message(self, queue_url: str, receipt: str) -> None:
        client = self._require_client()
        try:
            await client.delete_message(QueueUrl=queue_url, ReceiptHandle=receipt)
        except (BotoCoreError, ClientError) as exc:
            raise _to_queue_client_error(exc) from exc

    async def close(self) -> None:
        if self._exit_stack is not None:
            try:
                await self._exit_stack.aclose()
            except Exception as e:
                logger.warning("sqs client close failed: {}", e)
            self._exit_stack = None
        self._client = None
