"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Queue:
    """Target queue and its polling parameters. Immutable once built."""

    url: str
    poll_duration: int
    visibility_timeout: int
    name: str = ""
    region: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url:
            raise TypeError("queue.url must be a non-empty str")
        for field_name in ("poll_duration", "visibility_timeout"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"queue.{field_name} must be an int")
            if value < 0:
                raise ValueError(f"queue.{field_name} must be >= 0")
        if not isinstance(self.name, str):
            raise TypeError("queue.name must be a str")
        if not isinstance(self.region, str):
            raise TypeError("queue.region must be a str")


@dataclass(frozen=True)
class Message:
    """A received message. `receipt` is needed to delete this delivery."""

    body: str
    id: str
    receipt: str

    @staticmethod
    def from_raw(raw: Mapping[str, Any]) -> "Message":
        return Message(
            body=str(raw["Body"]),
            id=str(raw["MessageId"]),
            receipt=str(raw["ReceiptHandle"]),
        )
