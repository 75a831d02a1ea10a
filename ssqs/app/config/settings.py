from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ssqs.app.constants import QUEUE_BACKEND
from ssqs.app.domain.errors import ConfigurationError
from ssqs.app.domain.models import Queue


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    queue_backend: str = Field(QUEUE_BACKEND.SQS, validation_alias="QUEUE_BACKEND")
    queue_url: str = Field("", validation_alias="QUEUE_URL")
    queue_name: str = Field("", validation_alias="QUEUE_NAME")
    queue_region: str = Field("", validation_alias="QUEUE_REGION")

    # No defaults: long-poll cap and visibility window must be chosen per queue.
    queue_poll_duration_seconds: int = Field(..., ge=0, validation_alias="QUEUE_POLL_DURATION_SECONDS")
    queue_visibility_timeout_seconds: int = Field(
        ...,
        ge=0,
        validation_alias="QUEUE_VISIBILITY_TIMEOUT_SECONDS",
    )
    queue_max_messages: int = Field(10, ge=1, le=10, validation_alias="QUEUE_MAX_MESSAGES")

    sqs_endpoint_url: str = Field("", validation_alias="SQS_ENDPOINT_URL")

    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")
    rabbitmq_poll_interval_seconds: float = Field(0.2, gt=0, validation_alias="RABBITMQ_POLL_INTERVAL_SECONDS")

    initial_backoff_seconds: float = Field(0.5, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(10.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(5, ge=1, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")

    shutdown_timeout_seconds: float = Field(30.0, validation_alias="SHUTDOWN_TIMEOUT_SECONDS")

    def to_queue(self, url: str | None = None) -> Queue:
        """Build the Queue value. `url` overrides QUEUE_URL (e.g. one resolved from QUEUE_NAME)."""
        resolved = (url or self.queue_url).strip()
        if not resolved:
            raise ConfigurationError("queue url is not configured (set QUEUE_URL)")
        return Queue(
            url=resolved,
            poll_duration=self.queue_poll_duration_seconds,
            visibility_timeout=self.queue_visibility_timeout_seconds,
            name=self.queue_name,
            region=self.queue_region,
        )
