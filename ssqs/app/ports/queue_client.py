"""Queue client port: receive and delete against a remote queue.

The consumer depends on this port only; SQS, RabbitMQ and in-memory adapters
implement it under infrastructure. Adapters do not retry, batch or back off.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

# Error code for a receipt that is unknown, already deleted or expired.
RECEIPT_INVALID_CODE = "ReceiptHandleIsInvalid"
# Error code for a delivery the adapter could not turn into a message.
MALFORMED_MESSAGE_CODE = "MalformedMessage"


class QueueClientError(Exception):
    """Raised by adapters when the queue service rejects a call."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


@runtime_checkable
class QueueClient(Protocol):
    """Port: receive/delete operations. Implementations live in infrastructure."""

    async def connect(self) -> None: ...

    async def receive_messages(
        self,
        queue_url: str,
        visibility_timeout: int,
        wait_seconds: int,
    ) -> list[dict[str, Any]]:
        """Long-poll up to wait_seconds. Empty list on timeout.

        Each item carries `Body`, `MessageId` and `ReceiptHandle`, in the order
        the service returned them.
        """
        ...

    async def delete_message(self, queue_url: str, receipt: str) -> None:
        """Delete one delivery; raise QueueClientError if the service refuses."""
        ...

    async def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
