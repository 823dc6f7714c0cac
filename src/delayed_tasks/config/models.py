"""Configuration models using Pydantic."""

import logging
import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from delayed_tasks.errors import DelayedTasksError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 1000


def is_positive_number(value: Any) -> bool:
    """True for a finite int or float above zero (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    try:
        finite = math.isfinite(value)
    except OverflowError:
        # Integers too large to convert to a float
        return False
    return finite and value > 0


class ConfigError(DelayedTasksError):
    """Configuration file error."""

    pass


class RedisSettings(BaseModel):
    """Connection parameters for an engine-owned Redis client.

    When ``url`` is set it wins over host/port/db. Unknown fields are
    rejected so a typo fails at construction instead of silently connecting
    to localhost.
    """

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    username: str | None = None
    password: SecretStr | None = None
    socket_timeout: float | None = 5.0
    socket_connect_timeout: float | None = 5.0

    def client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments shared by ``Redis()`` and ``Redis.from_url()``."""
        kwargs: dict[str, Any] = {
            "decode_responses": True,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
        }
        if self.username is not None:
            kwargs["username"] = self.username
        if self.password is not None:
            kwargs["password"] = self.password.get_secret_value()
        return kwargs

    def describe(self) -> str:
        """Human-readable target without credentials."""
        if self.url:
            from delayed_tasks.logging import redact_url

            return redact_url(self.url)
        return f"redis://{self.host}:{self.port}/{self.db}"


class DelayedTasksOptions(BaseModel):
    """Engine tuning options.

    An invalid ``poll_interval_ms`` (non-numeric, boolean, non-positive or
    non-finite) falls back to the default instead of raising.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    poll_interval_ms: int | float = Field(
        default=DEFAULT_POLL_INTERVAL_MS, alias="pollIntervalMs"
    )

    @field_validator("poll_interval_ms", mode="before")
    @classmethod
    def _fallback_to_default(cls, value: Any) -> Any:
        if not is_positive_number(value):
            logger.debug(
                "poll_interval_fallback",
                extra={"options.poll_interval_ms": repr(value)},
            )
            return DEFAULT_POLL_INTERVAL_MS
        return value


class AppConfig(BaseModel):
    """Root configuration for the command-line worker."""

    queue: str | None = None
    redis: RedisSettings = Field(default_factory=RedisSettings)
    options: DelayedTasksOptions = Field(default_factory=DelayedTasksOptions)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
