"""Consumer error taxonomy. Callers dispatch on the concrete type."""
from __future__ import annotations

from ssqs.app.domain.models import Message


class ConsumerError(Exception):
    """Base for every error the consumer raises or reports."""


class ConfigurationError(ConsumerError):
    """Raised when a consumer or its queue client cannot be built or connected."""


class ConsumerStateError(ConsumerError, RuntimeError):
    """Raised on an unsupported lifecycle transition (e.g. a second start())."""


class ReceiveError(ConsumerError):
    """A receive call failed; reported on the errors channel."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"error receiving messages: {cause}")
        self.cause = cause
        self.__cause__ = cause


class DeleteError(ConsumerError):
    """Deleting `message` failed. Not retried; the message is not re-delivered."""

    def __init__(self, message: Message, cause: BaseException | None = None) -> None:
        super().__init__(f"error deleting message: {message.id}")
        self.message = message
        self.cause = cause
