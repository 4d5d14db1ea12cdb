from __future__ import annotations


class StorageFailure(Exception):
    """Raised when the paste store cannot confirm or determine an outcome."""


class IndeterminateIncrement(StorageFailure):
    """
    Raised when a view increment may or may not have been applied.

    The increment is not idempotent, so callers must never retry it.
    """


class PasteRecordNotFound(LookupError):
    """Raised by the store when a paste row is missing at increment time."""
