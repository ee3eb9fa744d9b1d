"""Pooled Redis access that recovers from a server-side failover.

When a primary is demoted, connections that were open against it start
failing with READONLY (a write hit a replica) or UNBLOCKED (a blocking
command was force-unblocked because the instance changed role). Those
connections are useless until they reconnect and get routed to the new
primary, so ``ResilientConnection`` discards the leased connection and
runs the callback once more on a fresh one. Every other error reaches the
caller unchanged.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import redis
from redis.exceptions import ReadOnlyError, ResponseError

from grimjob.core.errors import ContractError
from grimjob.core.logging import get_logger, sanitize_url

T = TypeVar("T")

# One attempt plus at most one retry after a failover signal
MAX_ATTEMPTS = 2

_READONLY_MARKER = "READONLY"
_UNBLOCKED_MARKER = "UNBLOCKED force unblock from blocking operation, instance state changed"

logger = get_logger("grimjob.redis")


class FailoverSignal(Enum):
    """Classification of an error observed while talking to Redis."""

    READ_ONLY_REDIRECT = "read_only_redirect"
    INSTANCE_STATE_CHANGED = "instance_state_changed"
    UNCLASSIFIED = "unclassified"


def classify_failover(error: BaseException) -> FailoverSignal:
    """Decide whether ``error`` means the server we talked to lost its primary role.

    redis-py turns a ``READONLY`` reply into ``ReadOnlyError`` (and strips the
    code from the message), so the type is checked first. ``UNBLOCKED`` has no
    dedicated class and arrives as a plain ``ResponseError``.
    """
    if isinstance(error, ReadOnlyError):
        return FailoverSignal.READ_ONLY_REDIRECT
    if not isinstance(error, ResponseError):
        return FailoverSignal.UNCLASSIFIED

    message = str(error)
    if _READONLY_MARKER in message:
        return FailoverSignal.READ_ONLY_REDIRECT
    if _UNBLOCKED_MARKER in message:
        return FailoverSignal.INSTANCE_STATE_CHANGED
    return FailoverSignal.UNCLASSIFIED


@dataclass
class ConnectionStats:
    """Counters for a ResilientConnection."""

    checkouts: int = 0
    failover_retries: int = 0
    errors_propagated: int = 0


def build_pool(
    url: str,
    max_connections: int,
    timeout: float,
    socket_timeout: float | None = None,
) -> redis.BlockingConnectionPool:
    """Create a blocking pool; checkouts wait up to ``timeout`` seconds.

    No connection is opened until the first checkout.
    """
    pool = redis.BlockingConnectionPool.from_url(
        url,
        max_connections=max_connections,
        timeout=timeout,
        socket_timeout=socket_timeout,
        decode_responses=True,
    )
    logger.info(
        f"Created Redis pool for {sanitize_url(url)} "
        f"(size={max_connections}, timeout={timeout}s)"
    )
    return pool


class ResilientConnection:
    """Scoped, pooled Redis clients with single-retry failover recovery.

    Each ``with_connection`` call leases one connection exclusively to the
    calling thread, wrapped in a single-connection client, and returns it to
    the pool on every exit path. The retry policy is local to the call; no
    state carries over between calls.

    Args:
        pool: The shared connection pool.
        client_class: Client type constructed around each leased connection.
    """

    def __init__(
        self,
        pool: Any,
        client_class: Callable[..., Any] = redis.Redis,
    ) -> None:
        self._pool = pool
        self._client_class = client_class
        self._stats = ConnectionStats()
        self._stats_lock = threading.Lock()

    @property
    def pool(self) -> Any:
        return self._pool

    def _checkout(self) -> Any:
        # Blocks until the pool hands out a connection or its timeout fires
        client = self._client_class(connection_pool=self._pool, single_connection_client=True)
        with self._stats_lock:
            self._stats.checkouts += 1
        return client

    def _checkin(self, client: Any, discard: bool = False) -> None:
        if discard and client.connection is not None:
            # Next checkout of this connection reconnects from scratch
            client.connection.disconnect()
        client.close()

    def with_connection(self, callback: Callable[[Any], T] | None = None) -> T:
        """Run ``callback`` with a leased client and return its result.

        On a failover signal from the first attempt the leased connection is
        discarded and ``callback`` runs once more on a fresh connection. An
        unclassified error, or any error from the second attempt, propagates
        unchanged.

        Raises:
            ContractError: If no callback is given. No connection is opened.
            redis.exceptions.ConnectionError: If no connection becomes
                available within the pool timeout.
        """
        if callback is None:
            raise ContractError("with_connection requires a callback")

        attempt = 1
        while True:
            client = self._checkout()
            discard = False
            try:
                return callback(client)
            except Exception as e:
                signal = classify_failover(e)
                discard = signal is not FailoverSignal.UNCLASSIFIED
                if not discard or attempt >= MAX_ATTEMPTS:
                    with self._stats_lock:
                        self._stats.errors_propagated += 1
                    raise
                logger.warning(
                    f"Redis failover detected ({signal.value}), reconnecting: {e}",
                    extra={"failover_signal": signal.value, "attempt": attempt},
                )
                with self._stats_lock:
                    self._stats.failover_retries += 1
            finally:
                self._checkin(client, discard=discard)
            attempt += 1

    def get_stats(self) -> ConnectionStats:
        """Return a copy of the current counters."""
        with self._stats_lock:
            return ConnectionStats(
                checkouts=self._stats.checkouts,
                failover_retries=self._stats.failover_retries,
                errors_propagated=self._stats.errors_propagated,
            )

    def close(self) -> None:
        """Disconnect every pooled connection."""
        self._pool.disconnect()
        logger.info("Closed Redis pool")
