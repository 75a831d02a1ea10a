"""Package-level constants shared across modules."""
from __future__ import annotations

from enum import Enum

# Capacity of the messages and errors channels. Part of the public contract:
# the loop can run at most one item ahead of the caller on each channel.
CHANNEL_CAPACITY = 1


class ConsumerState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    POLLING = "POLLING"
    TERMINATED = "TERMINATED"


class QUEUE_BACKEND:
    SQS = "sqs"
    RABBITMQ = "rabbitmq"
    INMEMORY = "inmemory"
