"""In-memory queue client for local mode and tests.

Models the visibility semantics of a pull queue in one process: a received
message is hidden for `visibility_timeout` seconds and then becomes visible
again under a fresh receipt; only the latest receipt can delete it.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from ssqs.app.ports.queue_client import RECEIPT_INVALID_CODE, QueueClientError


@dataclass
class _Entry:
    message_id: str
    body: str
    visible_at: float = 0.0
    receipt: str | None = None


class InMemoryQueueClient:
    def __init__(
        self,
        *,
        max_messages: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, list[_Entry]] = {}
        self._max_messages = max_messages
        self._clock = clock
        self._available = asyncio.Event()

    async def connect(self) -> None:
        return

    def send_message(self, queue_url: str, body: str) -> str:
        """Enqueue `body`; returns the new message id."""
        entry = _Entry(message_id=str(uuid.uuid4()), body=body)
        self._entries.setdefault(queue_url, []).append(entry)
        self._available.set()
        return entry.message_id

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def _take_visible(self, queue_url: str, visibility_timeout: int) -> list[dict[str, Any]]:
        now = self._clock()
        batch: list[dict[str, Any]] = []
        for entry in self._entries.get(queue_url, []):
            if len(batch) >= self._max_messages:
                break
            if entry.visible_at > now:
                continue
            entry.receipt = uuid.uuid4().hex
            entry.visible_at = now + visibility_timeout
            batch.append({"Body": entry.body, "MessageId": entry.message_id, "ReceiptHandle": entry.receipt})
        return batch

    def _seconds_until_visible(self, queue_url: str) -> float | None:
        hidden = [e.visible_at for e in self._entries.get(queue_url, [])]
        if not hidden:
            return None
        return max(min(hidden) - self._clock(), 0.0)

    async def receive_messages(
        self,
        queue_url: str,
        visibility_timeout: int,
        wait_seconds: int,
    ) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        while True:
            self._available.clear()
            batch = self._take_visible(queue_url, visibility_timeout)
            remaining = deadline - loop.time()
            if batch or remaining <= 0:
                await asyncio.sleep(0)
                return batch
            # a hidden message reappearing also ends the wait
            until_visible = self._seconds_until_visible(queue_url)
            if until_visible is not None:
                remaining = min(remaining, until_visible)
            try:
                await asyncio.wait_for(self._available.wait(), remaining)
            except asyncio.TimeoutError:
                pass

    async def delete_message(self, queue_url: str, receipt: str) -> None:
        entries = self._entries.get(queue_url, [])
        for i, entry in enumerate(entries):
            if entry.receipt == receipt:
                del entries[i]
                return
        raise QueueClientError(
            f"receipt {receipt!r} is not valid for queue {queue_url!r}",
            code=RECEIPT_INVALID_CODE,
        )

    async def close(self) -> None:
        return
