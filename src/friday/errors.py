"""Exception types shared across the memory tiers.

"Not found" is never an exception here: lookups return ``None``.
"""

from __future__ import annotations


class FridayError(Exception):
    """Base class for all friday errors."""


class StorageError(FridayError):
    """The durable record store failed to read or write."""


class RemoteUnavailableError(FridayError):
    """The remote cache tier could not be reached or rejected a command."""


class ConfigurationError(FridayError):
    """The configuration handed to a component is invalid."""
