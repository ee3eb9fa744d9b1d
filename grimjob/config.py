"""Process-wide runtime configuration.

``Config`` holds the settings the worker pool reads (concurrency, queue list,
default job options), owns the lifecycle registry and the error handler
chain, and hands out Redis connections through ``ResilientConnection``.
Every accessor is safe to call from any thread.
"""

import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from pydantic import (
    AliasChoices,
    Field,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from redis.exceptions import ResponseError

from grimjob.backends.redis import ResilientConnection, build_pool
from grimjob.core.errors import ContractError
from grimjob.core.handlers import ErrorHandler, ErrorHandlerChain, default_error_handler
from grimjob.core.lifecycle import LifecycleCallback, LifecycleEvent, LifecycleRegistry
from grimjob.core.logging import get_logger

T = TypeVar("T")

# Extra pool slots beyond concurrency for the scheduler, heartbeat and API calls
POOL_HEADROOM = 5

# Returned when a managed Redis has renamed or disabled INFO
_INFO_UNSUPPORTED = {
    "redis_version": "9.9.9",
    "grimjob": "INFO command not supported by your Redis server; it may have been renamed",
}


class Settings(BaseSettings):
    """Static settings loaded from GRIMJOB_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GRIMJOB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        populate_by_name=True,
    )

    concurrency: PositiveInt = 5
    queues: list[str] = Field(default_factory=lambda: ["default"])
    default_job_options: dict[str, Any] = Field(
        default_factory=lambda: {"retry": True, "queue": "default"}
    )

    # Consumed by the worker pool, retry scheduler and dead set
    timeout: PositiveInt = 25
    max_retries: NonNegativeInt = 25
    dead_max_jobs: PositiveInt = 10_000
    dead_timeout_in_seconds: PositiveInt = 180 * 24 * 60 * 60
    average_scheduled_poll_interval: PositiveFloat = 5.0

    redis_url: str = Field(
        "redis://localhost:6379/0",
        validation_alias=AliasChoices("redis_url", "GRIMJOB_REDIS_URL", "REDIS_URL"),
    )
    redis_pool_size: PositiveInt | None = None
    redis_pool_timeout: PositiveFloat = 1.0
    redis_socket_timeout: PositiveFloat | None = None

    log_level: str = "INFO"

    @field_validator("concurrency", mode="before")
    @classmethod
    def reject_bool(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("concurrency must be an integer, not a bool")
        return v

    @field_validator("queues", mode="before")
    @classmethod
    def coerce_queues(cls, v: Any) -> list[str]:
        if isinstance(v, (str, bytes)) or not isinstance(v, Iterable):
            raise ValueError("queues must be a sequence of queue names")
        return [str(q) for q in v]

    @field_validator("default_job_options", mode="before")
    @classmethod
    def stringify_keys(cls, v: Any) -> dict[str, Any]:
        if not isinstance(v, Mapping):
            raise ValueError("default_job_options must be a mapping")
        return {str(key): value for key, value in v.items()}

    @property
    def pool_size(self) -> int:
        return self.redis_pool_size or self.concurrency + POOL_HEADROOM


class Config:
    """Runtime configuration shared by every thread in the process.

    Args:
        settings: Initial settings. Loaded from the environment if omitted.
        connection: Pre-built connection layer. Built lazily from the
            settings on first use if omitted.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        connection: ResilientConnection | None = None,
    ) -> None:
        self._settings = settings if settings is not None else Settings()
        self._lock = threading.RLock()
        self._connection = connection
        self._lifecycle = LifecycleRegistry()
        self._error_handlers = ErrorHandlerChain([default_error_handler])
        self.logger = get_logger("grimjob.config", self._settings.log_level)

    def _assign(self, name: str, value: Any) -> Any:
        # Validation and normalization run inside pydantic, under the lock
        with self._lock:
            try:
                setattr(self._settings, name, value)
            except ValidationError as e:
                raise ContractError(f"Invalid value for {name}: {e}") from e
            return getattr(self._settings, name)

    # ---------- settings ----------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def concurrency(self) -> int:
        """Number of worker threads.

        When ``redis_pool_size`` is unset the pool is sized from this value
        once, when it is built. Changing it later does not resize a live
        pool; call ``configure_redis()`` to rebuild it.
        """
        return self._settings.concurrency

    @concurrency.setter
    def concurrency(self, value: int) -> None:
        self._assign("concurrency", value)

    @property
    def queues(self) -> list[str]:
        with self._lock:
            return list(self._settings.queues)

    @queues.setter
    def queues(self, value: Iterable[str]) -> None:
        self._assign("queues", value)

    @property
    def default_job_options(self) -> dict[str, Any]:
        """Default options merged into every job. Keys are always strings.

        Returns a copy; mutate it and assign it back to change the defaults.
        """
        with self._lock:
            return dict(self._settings.default_job_options)

    @default_job_options.setter
    def default_job_options(self, value: Mapping[Any, Any]) -> None:
        self._assign("default_job_options", value)

    def snapshot(self) -> dict[str, Any]:
        """Return a plain-dict copy of the current settings."""
        with self._lock:
            return self._settings.model_dump()

    # ---------- lifecycle events ----------

    @property
    def lifecycle_events(self) -> dict[LifecycleEvent, list[LifecycleCallback]]:
        return self._lifecycle.as_dict()

    @property
    def lifecycle(self) -> LifecycleRegistry:
        return self._lifecycle

    def on(self, event: LifecycleEvent, callback: LifecycleCallback | None = None):
        """Register a lifecycle callback; see LifecycleRegistry.on."""
        return self._lifecycle.on(event, callback)

    # ---------- error handling ----------

    @property
    def error_handlers(self) -> ErrorHandlerChain:
        """The live handler list. Append and pop handlers on it directly."""
        return self._error_handlers

    def handle_exception(
        self, error: BaseException, context: Mapping[str, Any] | None = None
    ) -> None:
        self._error_handlers.handle_exception(error, context)

    def error_handler(self, handler: ErrorHandler) -> ErrorHandler:
        """Decorator form of ``error_handlers.append``."""
        self._error_handlers.append(handler)
        return handler

    # ---------- redis ----------

    @property
    def connection(self) -> ResilientConnection:
        with self._lock:
            if self._connection is None:
                s = self._settings
                pool = build_pool(
                    s.redis_url,
                    max_connections=s.pool_size,
                    timeout=s.redis_pool_timeout,
                    socket_timeout=s.redis_socket_timeout,
                )
                self._connection = ResilientConnection(pool)
            return self._connection

    def configure_redis(self, **overrides: Any) -> None:
        """Replace Redis settings (redis_url, redis_pool_size, ...).

        All overrides are validated before any is applied; on error nothing
        changes. Otherwise the current pool, if any, is disconnected and a
        new one is built on next use.

        Raises:
            ContractError: If a name is not a Redis setting or a value is
                invalid.
        """
        for name in overrides:
            if not name.startswith("redis_") or name not in Settings.model_fields:
                raise ContractError(f"Not a Redis setting: {name}")

        with self._lock:
            candidate = self._settings.model_copy()
            for name, value in overrides.items():
                try:
                    setattr(candidate, name, value)
                except ValidationError as e:
                    raise ContractError(f"Invalid value for {name}: {e}") from e
            for name in overrides:
                setattr(self._settings, name, getattr(candidate, name))
            old, self._connection = self._connection, None
        if old is not None:
            old.close()

    def redis(self, callback: Callable[[Any], T] | None = None) -> T:
        """Run ``callback`` with a leased Redis client.

        Raises:
            ContractError: If no callback is given. No connection is opened.
        """
        if callback is None:
            raise ContractError("redis() requires a callback")
        return self.connection.with_connection(callback)

    with_connection = redis

    def redis_info(self) -> dict[str, Any]:
        """Return the server's INFO output as a dict (includes redis_version)."""

        def _info(conn: Any) -> dict[str, Any]:
            try:
                return dict(conn.info())
            except ResponseError as e:
                if "unknown command" not in str(e).lower():
                    raise
                self.logger.warning(f"INFO unavailable, reporting placeholder version: {e}")
                return dict(_INFO_UNSUPPORTED)

        return self.redis(_info)

    def close(self) -> None:
        """Disconnect the Redis pool."""
        with self._lock:
            conn, self._connection = self._connection, None
        if conn is not None:
            conn.close()


_default: Config | None = None
_default_lock = threading.Lock()


def get_config() -> Config:
    """Return the process-wide Config, creating it on first call."""
    global _default
    with _default_lock:
        if _default is None:
            _default = Config()
        return _default


def reset_config() -> None:
    """Close and forget the process-wide Config (tests and re-exec)."""
    global _default
    with _default_lock:
        old, _default = _default, None
    if old is not None:
        old.close()
