"""grimjob - Redis-backed background job framework for Python."""

from grimjob.backends import FailoverSignal, ResilientConnection, classify_failover
from grimjob.config import Config, Settings, get_config, reset_config
from grimjob.core import (
    ContractError,
    ErrorHandlerChain,
    LifecycleEvent,
    LifecycleRegistry,
    dump_json,
    load_json,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Config",
    "Settings",
    "get_config",
    "reset_config",
    # Lifecycle and error handling
    "LifecycleEvent",
    "LifecycleRegistry",
    "ErrorHandlerChain",
    "ContractError",
    # Redis
    "ResilientConnection",
    "FailoverSignal",
    "classify_failover",
    # Codec
    "dump_json",
    "load_json",
    # Meta
    "__version__",
]
