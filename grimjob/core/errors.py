"""Exceptions raised by grimjob's configuration layer."""


class ContractError(ValueError):
    """Raised synchronously when a caller breaks an API contract.

    Covers missing callbacks, unknown or string lifecycle event names and
    invalid setting values. Never retried and never suppressed.
    """
