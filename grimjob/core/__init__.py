"""Core components for grimjob's runtime configuration layer.

Types:
    LifecycleEvent: Closed set of worker-pool lifecycle events.
    LifecycleRegistry: Ordered callbacks per lifecycle event.
    ErrorHandlerChain: Fault-isolated list of error observers.

Errors:
    ContractError: Raised when a caller breaks an API contract.

Codec:
    dump_json / load_json: Compact JSON encoding of job payloads.
"""

from grimjob.core.codec import dump_json, load_json
from grimjob.core.errors import ContractError
from grimjob.core.handlers import ErrorHandlerChain, default_error_handler
from grimjob.core.lifecycle import LifecycleEvent, LifecycleRegistry

__all__ = [
    "ContractError",
    "ErrorHandlerChain",
    "default_error_handler",
    "LifecycleEvent",
    "LifecycleRegistry",
    "dump_json",
    "load_json",
]
