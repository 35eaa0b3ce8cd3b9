"""Pydantic models for redis-record.

RecordConfig is validated once at collection construction. ValidationResult
is what validate_record() returns; callers check ``valid`` instead of
catching exceptions. CreatedRecord is what create_one() hands back.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from redis_record.keys import DELIMITER, parse_lookup_member


class WriteMode(StrEnum):
    """How create_one() treats its write pipeline."""

    AWAIT = "await"  # wait for the pipeline, raise BatchError before returning
    BACKGROUND = "background"  # schedule the pipeline, return the id immediately


class RecordConfig(BaseModel):
    """Configuration of one collection."""

    name: str
    primary_keys: list[str] = []
    lookup_keys: list[str] = []
    write_mode: WriteMode = WriteMode.AWAIT

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value

    @field_validator("primary_keys", "lookup_keys")
    @classmethod
    def _key_fields_delimiter_free(cls, value: list[str]) -> list[str]:
        for field in value:
            if not field.strip():
                raise ValueError("key field names must not be empty")
            if DELIMITER in field:
                raise ValueError(f"key field '{field}' must not contain '{DELIMITER}'")
        return value


class ValidationResult(BaseModel):
    """Outcome of validating create_one() input."""

    valid: bool
    errors: list[str] = []  # offending field names, in declared order
    data: dict[str, str] = {}  # validated fields, required values trimmed


class PendingWrite:
    """Awaitable handle on a background write pipeline.

    Awaiting it marks the write as observed, so a failure is reported to the
    awaiting caller instead of the error log.
    """

    def __init__(self, task: asyncio.Task) -> None:
        self.task = task
        self.observed = False

    def __await__(self):
        self.observed = True
        return self.task.__await__()

    def done(self) -> bool:
        return self.task.done()


class CreatedRecord(BaseModel):
    """Returned by create_one().

    ``write`` is set only in background mode: awaiting it raises BatchError
    if any command of the write pipeline failed.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    write: PendingWrite | None = Field(default=None, exclude=True, repr=False)


class LookupEntry(BaseModel):
    """A decoded lookup-index member."""

    field: str
    value: str  # sanitized
    timestamp: str
    id: str

    @classmethod
    def from_member(cls, member: str) -> LookupEntry:
        field, value, timestamp, record_id = parse_lookup_member(member)
        return cls(field=field, value=value, timestamp=timestamp, id=record_id)
