"""Error taxonomy for redis-record.

Expected failures are raised synchronously before anything touches Redis
(ConfigError, ValidationError). Failures reported by Redis itself come back
as BatchError (per-command errors inside a pipeline or transaction),
TransactionAborted (a watched key changed) or StoreUnavailable (transport).
Nothing in this package retries; every error reaches the caller once.
"""

from __future__ import annotations


class RedisRecordError(Exception):
    """Base class for every error raised by redis-record."""


class ConfigError(RedisRecordError):
    """Invalid collection configuration (missing/blank name, bad key fields)."""


class ValidationError(RedisRecordError):
    """create_one() input is missing a required field or has a non-string value."""

    def __init__(self, fields: list[str], message: str | None = None) -> None:
        self.fields = fields
        super().__init__(message or f"Invalid or missing fields: {', '.join(fields)}")


class BatchError(RedisRecordError):
    """One or more commands in a pipeline/transaction failed.

    The batch is not rolled back, so commands that succeeded stay applied.
    """

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = errors
        detail = "; ".join(str(e) for e in errors)
        super().__init__(f"{len(errors)} command(s) failed in batch: {detail}")


class StoreUnavailable(RedisRecordError):
    """Transport-level failure talking to Redis."""


class TransactionAborted(RedisRecordError):
    """A watched key was modified between WATCH and EXEC."""
