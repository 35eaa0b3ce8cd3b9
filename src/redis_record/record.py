"""RedisRecord: a named collection of flat string records stored in Redis.

Each record is a hash under ``<name>:<id>``. Two sorted sets index it:

  - ``<name>:pk:idx``: record keys scored by creation timestamp (find_all,
    delete_all)
  - ``<name>:lk:idx``: ``<field>:<value>:<timestamp>:<id>`` members, all
    scored 0, so a prefix scan by lexicographic range returns every record
    whose lookup field had that value, oldest to newest

Records are immutable once written: there is no update and no per-record
delete, only create and a whole-collection delete_all.

Writes from create_one() go out as one pipeline: ordered, but with no
rollback. A failure part way through (say the hash write succeeds and an
index add does not) is raised as BatchError rather than repaired.

Usage:
    users = RedisRecord("users", client, lookup_keys=["email"])
    created = await users.create_one({"email": "a@x.com", "name": "Ada"})
    latest = await users.find_one_by_lookup_key("email", "a@x.com")
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Mapping
from typing import Any

import pydantic

from redis_record.client import RedisAdapter, RedisBatch, decode_hash
from redis_record.errors import BatchError, ConfigError, ValidationError
from redis_record.keys import (
    DELIMITER,
    format_timestamp,
    lookup_index_key,
    lookup_member,
    lookup_range,
    primary_index_key,
    record_key,
)
from redis_record.models import (
    CreatedRecord,
    LookupEntry,
    PendingWrite,
    RecordConfig,
    WriteMode,
)
from redis_record.validation import validate_record

logger = logging.getLogger(__name__)

SYSTEM_FIELDS = ("id", "timestamp")


async def execute_batch(batch: RedisBatch) -> list[Any]:
    """Execute a batch and raise BatchError if any command in it failed."""
    results = await batch.execute()
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        raise BatchError(errors)
    return results


class RedisRecord:
    """A collection of records with a creation-time index and lookup-key indexes."""

    delimiter = DELIMITER

    def __init__(
        self,
        name: str | None,
        client: RedisAdapter | None,
        primary_keys: list[str] | None = None,
        lookup_keys: list[str] | None = None,
        write_mode: WriteMode = WriteMode.AWAIT,
    ) -> None:
        if client is None:
            raise ConfigError("A Redis client is required")
        try:
            self.config = RecordConfig(
                name=name,
                primary_keys=primary_keys or [],
                lookup_keys=lookup_keys or [],
                write_mode=write_mode,
            )
        except pydantic.ValidationError as e:
            raise ConfigError(f"Invalid record config: {e}") from e

        self._client = client
        self.primary_index_key = primary_index_key(self.config.name)
        self.lookup_index_key = lookup_index_key(self.config.name)
        self.auto_generate_id = not self.config.primary_keys
        self._required_fields = [*self.config.primary_keys, *self.config.lookup_keys]
        self._last_timestamp = 0
        self._pending: dict[asyncio.Task, PendingWrite] = {}
        self._failed: list[PendingWrite] = []

    @classmethod
    def from_config(cls, config: RecordConfig, client: RedisAdapter) -> RedisRecord:
        return cls(
            config.name,
            client,
            primary_keys=config.primary_keys,
            lookup_keys=config.lookup_keys,
            write_mode=config.write_mode,
        )

    @property
    def name(self) -> str:
        return self.config.name

    def __repr__(self) -> str:
        return (
            f"RedisRecord(name={self.name!r}, primary_keys={self.config.primary_keys!r}, "
            f"lookup_keys={self.config.lookup_keys!r})"
        )

    # ========================================================================
    # Create
    # ========================================================================

    async def create_one(self, data: Mapping[str, str]) -> CreatedRecord:
        """Validate and store one record, returning its id.

        In background mode the write pipeline runs as a task exposed on the
        returned CreatedRecord; otherwise it has completed when this returns.
        """
        result = validate_record(data, self._required_fields)
        if not result.valid:
            raise ValidationError(result.errors)
        fields = result.data

        if self.auto_generate_id:
            record_id = str(uuid.uuid4())
        else:
            record_id = DELIMITER.join(fields[key] for key in self.config.primary_keys)

        overridden = [f for f in SYSTEM_FIELDS if f in fields]
        if overridden:
            logger.warning(f"{self.name}: input fields {overridden} replaced by system values")

        timestamp = self._next_timestamp()
        key = record_key(self.name, record_id)

        batch = self._client.pipeline()
        batch.hset(key, {**fields, "id": record_id, "timestamp": timestamp})
        batch.zadd(self.primary_index_key, {key: float(timestamp)})
        for lookup_key in self.config.lookup_keys:
            # Index the value as given, before trimming
            raw_value = data.get(lookup_key)
            if raw_value:
                member = lookup_member(lookup_key, raw_value, timestamp, record_id)
                batch.zadd(self.lookup_index_key, {member: 0})

        logger.debug(f"{self.name}: creating '{record_id}' ({batch.size} commands)")

        if self.config.write_mode is WriteMode.AWAIT:
            await execute_batch(batch)
            return CreatedRecord(id=record_id)

        task = asyncio.create_task(execute_batch(batch))
        write = PendingWrite(task)
        self._pending[task] = write
        task.add_done_callback(self._write_finished)
        return CreatedRecord(id=record_id, write=write)

    async def flush(self) -> None:
        """Wait for every background write.

        Raises the first BatchError among writes no caller has awaited,
        including writes that had already failed before this call.
        """
        pending = list(self._pending.values())
        unobserved = [w for w in pending if not w.observed]
        for write in unobserved:
            write.observed = True
        await asyncio.gather(*(w.task for w in pending), return_exceptions=True)

        failed, self._failed = self._failed, []
        errors = [
            w.task.exception()
            for w in [*failed, *unobserved]
            if not w.task.cancelled() and w.task.exception() is not None
        ]
        if errors:
            raise errors[0]

    def _write_finished(self, task: asyncio.Task) -> None:
        write = self._pending.pop(task)
        if task.cancelled() or task.exception() is None or write.observed:
            return
        self._failed.append(write)
        logger.error(f"{self.name}: background write failed: {task.exception()}")

    def _next_timestamp(self) -> str:
        """Wall-clock microseconds, strictly increasing within this collection."""
        micros = time.time_ns() // 1000
        if micros <= self._last_timestamp:
            micros = self._last_timestamp + 1
        self._last_timestamp = micros
        return format_timestamp(micros)

    # ========================================================================
    # Queries
    # ========================================================================

    async def find_by_id(self, record_id: str) -> dict[str, str] | None:
        """Return the record, or None if no hash exists for this id."""
        record = await self._client.hgetall(record_key(self.name, record_id))
        return record or None

    async def find_one_by_lookup_key(self, field: str, value: str) -> dict[str, str] | None:
        """Return the most recently created record whose ``field`` was ``value``."""
        min_lex, max_lex = lookup_range(field, value)
        members = await self._client.zrevrangebylex(
            self.lookup_index_key, max_lex, min_lex, start=0, num=1
        )
        if not members:
            return None
        entry = LookupEntry.from_member(members[0])
        return await self.find_by_id(entry.id)

    async def find_by_lookup_key(
        self, field: str, value: str, reverse: bool = False, limit: int | None = None
    ) -> list[dict[str, str]]:
        """Return every record whose ``field`` was ``value``, oldest first.

        ``reverse`` returns newest first; ``limit`` caps the number of index
        entries read.
        """
        min_lex, max_lex = lookup_range(field, value)
        start = 0 if limit is not None else None
        if reverse:
            members = await self._client.zrevrangebylex(
                self.lookup_index_key, max_lex, min_lex, start=start, num=limit
            )
        else:
            members = await self._client.zrangebylex(
                self.lookup_index_key, min_lex, max_lex, start=start, num=limit
            )
        keys = [record_key(self.name, LookupEntry.from_member(m).id) for m in members]
        return await self._fetch_many(keys)

    async def find_all(self) -> list[dict[str, str]]:
        """Return every record, oldest first."""
        keys = await self._client.zrange(self.primary_index_key, 0, -1)
        return await self._fetch_many(keys)

    async def _fetch_many(self, keys: list[str]) -> list[dict[str, str]]:
        """HGETALL each key in one pipeline; keys with no hash are skipped."""
        if not keys:
            return []

        batch = self._client.pipeline()
        for key in keys:
            batch.hgetall(key)
        results = await execute_batch(batch)

        records = []
        for key, raw in zip(keys, results, strict=True):
            record = decode_hash(raw)
            if not record:
                logger.debug(f"{self.name}: indexed key '{key}' has no record")
                continue
            records.append(record)
        return records

    # ========================================================================
    # Delete
    # ========================================================================

    async def delete_all(self) -> int:
        """Delete every record and both indexes; returns the number of record keys removed.

        Runs under WATCH on both index keys: a create that lands between
        reading the primary index and EXEC aborts the delete with
        TransactionAborted instead of leaving orphaned hashes or index entries.
        """
        async with self._client.watch(self.primary_index_key, self.lookup_index_key) as tx:
            keys = await tx.zrange(self.primary_index_key, 0, -1)
            batch = tx.multi()
            if keys:
                batch.delete(*keys)
            batch.delete(self.primary_index_key, self.lookup_index_key)
            await execute_batch(batch)

        logger.info(f"{self.name}: deleted {len(keys)} records")
        return len(keys)
