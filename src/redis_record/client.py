"""Redis client adapter for redis-record.

Normalizes the interface between the Upstash SDK (cloud), redis-py's asyncio
client (self-hosted Redis) and fakeredis (local dev, tests). They agree on
single commands but differ on batches:
  - Upstash: pipeline()/multi() → exec() (one REST request, no WATCH)
  - redis-py/fakeredis: pipeline(transaction=...) → execute(raise_on_error=False)

RedisRecord only ever talks to RedisAdapter, never to a raw client. Batches
return one result per command; a failed command yields its exception in place
so the caller can aggregate them.

Environment detection (create_client):
  - UPSTASH_REDIS_REST_URL set → Upstash SDK
  - REDIS_URL set → redis-py asyncio client
  - Otherwise → fakeredis (in-memory, no external dependency)

Usage:
    from redis_record.client import create_client

    client = create_client()
    await client.hset("users:123", {"email": "a@x.com"})
    record = await client.hgetall("users:123")
"""

from __future__ import annotations

import contextlib
import functools
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from redis_record.errors import StoreUnavailable, TransactionAborted

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, httpx.TransportError)


def _store_call(func):
    """Re-raise transport failures of an adapter coroutine as StoreUnavailable."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except _TRANSPORT_ERRORS as e:
            raise StoreUnavailable(f"{func.__name__} failed: {e}") from e

    return wrapper


def _decode(value: Any) -> str:
    return value if isinstance(value, str) else value.decode()


def _decode_members(result: Any) -> list[str]:
    return [_decode(r) for r in (result or [])]


def decode_hash(result: Any) -> dict[str, str]:
    """Normalize an HGETALL reply (dict, possibly bytes) to dict[str, str]."""
    if not result or not isinstance(result, dict):
        return {}
    return {_decode(k): _decode(v) for k, v in result.items()}


class RedisBatch:
    """Wraps an Upstash pipeline/multi or a redis-py pipeline for a uniform batch API."""

    def __init__(self, raw_tx: Any, is_upstash: bool) -> None:
        self._tx = raw_tx
        self._is_upstash = is_upstash
        self.size = 0

    def hset(self, key: str, mapping: dict[str, str]) -> RedisBatch:
        if self._is_upstash:
            self._tx.hset(key, values=mapping)
        else:
            self._tx.hset(key, mapping=mapping)
        self.size += 1
        return self

    def hgetall(self, key: str) -> RedisBatch:
        self._tx.hgetall(key)
        self.size += 1
        return self

    def zadd(self, key: str, mapping: dict[str, float]) -> RedisBatch:
        self._tx.zadd(key, mapping)
        self.size += 1
        return self

    def delete(self, *keys: str) -> RedisBatch:
        self._tx.delete(*keys)
        self.size += 1
        return self

    @_store_call
    async def execute(self) -> list[Any]:
        """Run the batch. Failed commands appear as exception instances in the result."""
        if self._is_upstash:
            from upstash_redis.errors import UpstashError

            try:
                return await self._tx.exec()
            except UpstashError as e:
                # Upstash reports a failed batch as a whole, not per command
                return [e]
        return await self._tx.execute(raise_on_error=False)


class WatchedTransaction:
    """Optimistic transaction: reads run immediately, multi() starts queueing.

    Obtained from RedisAdapter.watch(). Executing the batch returned by
    multi() raises TransactionAborted if a watched key changed since WATCH.
    """

    def __init__(self, adapter: RedisAdapter, raw_pipe: Any | None) -> None:
        self._adapter = adapter
        self._pipe = raw_pipe

    @_store_call
    async def zrange(self, key: str, start: int, stop: int) -> list[str]:
        if self._pipe is None:
            return await self._adapter.zrange(key, start, stop)
        return _decode_members(await self._pipe.zrange(key, start, stop))

    def multi(self) -> RedisBatch:
        if self._pipe is None:
            return self._adapter.multi()
        self._pipe.multi()
        return RedisBatch(self._pipe, is_upstash=False)


class RedisAdapter:
    """Unified async Redis interface over Upstash SDK, redis-py or fakeredis."""

    def __init__(self, raw_client: Any, is_upstash: bool = False) -> None:
        self._client = raw_client
        self._is_upstash = is_upstash

    @_store_call
    async def delete(self, *keys: str) -> None:
        await self._client.delete(*keys)

    @_store_call
    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        if self._is_upstash:
            await self._client.hset(key, values=mapping)
        else:
            await self._client.hset(key, mapping=mapping)

    @_store_call
    async def hgetall(self, key: str) -> dict[str, str]:
        return decode_hash(await self._client.hgetall(key))

    @_store_call
    async def zadd(self, key: str, mapping: dict[str, float]) -> None:
        await self._client.zadd(key, mapping)

    @_store_call
    async def zrange(self, key: str, start: int, stop: int) -> list[str]:
        return _decode_members(await self._client.zrange(key, start, stop))

    @_store_call
    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, start: int = 0, num: int = -1
    ) -> list[str]:
        if self._is_upstash:
            result = await self._client.zrangebyscore(
                key, min_score, max_score, offset=start, count=num
            )
        else:
            result = await self._client.zrangebyscore(
                key, min_score, max_score, start=start, num=num
            )
        return _decode_members(result)

    @_store_call
    async def zrangebylex(
        self, key: str, min_lex: str, max_lex: str, start: int | None = None, num: int | None = None
    ) -> list[str]:
        if self._is_upstash:
            result = await self._client.zrangebylex(key, min_lex, max_lex, offset=start, count=num)
        else:
            result = await self._client.zrangebylex(key, min_lex, max_lex, start=start, num=num)
        return _decode_members(result)

    @_store_call
    async def zrevrangebylex(
        self, key: str, max_lex: str, min_lex: str, start: int | None = None, num: int | None = None
    ) -> list[str]:
        if self._is_upstash:
            result = await self._client.zrevrangebylex(
                key, max_lex, min_lex, offset=start, count=num
            )
        else:
            result = await self._client.zrevrangebylex(key, max_lex, min_lex, start=start, num=num)
        return _decode_members(result)

    def pipeline(self) -> RedisBatch:
        """Ordered batch, independent per-command results, no rollback."""
        if self._is_upstash:
            return RedisBatch(self._client.pipeline(), is_upstash=True)
        return RedisBatch(self._client.pipeline(transaction=False), is_upstash=False)

    def multi(self) -> RedisBatch:
        """MULTI/EXEC batch, executed as one unit on the server."""
        if self._is_upstash:
            return RedisBatch(self._client.multi(), is_upstash=True)
        return RedisBatch(self._client.pipeline(transaction=True), is_upstash=False)

    @contextlib.asynccontextmanager
    async def watch(self, *keys: str) -> AsyncIterator[WatchedTransaction]:
        """WATCH keys for the duration of the block.

        Upstash's REST API has no WATCH; there the block degrades to a plain
        MULTI/EXEC and a concurrent write is not detected.
        """
        if self._is_upstash:
            logger.warning(f"WATCH unsupported on Upstash, {keys} not guarded")
            yield WatchedTransaction(self, None)
            return

        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(*keys)
                yield WatchedTransaction(self, pipe)
            except WatchError as e:
                raise TransactionAborted(f"Watched keys modified: {', '.join(keys)}") from e
            except _TRANSPORT_ERRORS as e:
                raise StoreUnavailable(f"watch failed: {e}") from e

    async def close(self) -> None:
        """Close the underlying connection pool (no-op for Upstash)."""
        if not self._is_upstash:
            await self._client.aclose()


def create_client() -> RedisAdapter:
    """Build a RedisAdapter from the environment.

      - UPSTASH_REDIS_REST_URL set → Upstash SDK (reads URL + token from env)
      - REDIS_URL set → redis-py asyncio client
      - Otherwise → fakeredis (in-memory, no external dependency)

    Each call returns a new adapter; collections receive it explicitly.
    """
    if os.environ.get("UPSTASH_REDIS_REST_URL"):
        from upstash_redis.asyncio import Redis

        logger.info("Using Upstash Redis")
        return RedisAdapter(Redis.from_env(), is_upstash=True)

    redis_url = os.environ.get("REDIS_URL")
    if redis_url:
        from redis.asyncio import Redis

        logger.info("Using Redis at REDIS_URL")
        return RedisAdapter(Redis.from_url(redis_url, decode_responses=True))

    from fakeredis.aioredis import FakeRedis

    logger.info("Using in-memory fakeredis")
    return RedisAdapter(FakeRedis(decode_responses=True))
