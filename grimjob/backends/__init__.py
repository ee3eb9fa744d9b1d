"""Backing-store connection layer."""

from grimjob.backends.redis import (
    ConnectionStats,
    FailoverSignal,
    ResilientConnection,
    build_pool,
    classify_failover,
)

__all__ = [
    "ConnectionStats",
    "FailoverSignal",
    "ResilientConnection",
    "build_pool",
    "classify_failover",
]
