"""Test fixtures for redis-record.

Most tests run against fakeredis through the real RedisAdapter, so pipelines,
WATCH and lexicographic ranges behave like Redis. Each test gets its own
FakeServer; a second client on the same server plays the role of a
concurrent writer.

MockRedis mirrors the RedisAdapter interface for the paths fakeredis cannot
produce on demand, a pipeline where one command fails.
"""

from __future__ import annotations

import uuid
from typing import Any

import fakeredis
import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from redis.exceptions import ResponseError
from redis_record.client import RedisAdapter

# ============================================================================
# fakeredis-backed fixtures
# ============================================================================


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def raw_redis(fake_server):
    """Raw client for asserting on what actually landed in Redis."""
    client = FakeRedis(server=fake_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def adapter(fake_server):
    client = RedisAdapter(FakeRedis(server=fake_server, decode_responses=True))
    yield client
    await client.close()


@pytest_asyncio.fixture
async def other_adapter(fake_server):
    """A second connection to the same server, used as a concurrent writer."""
    client = RedisAdapter(FakeRedis(server=fake_server, decode_responses=True))
    yield client
    await client.close()


@pytest.fixture
def collection_name() -> str:
    return f"col-{uuid.uuid4().hex[:10]}"


# ============================================================================
# MockRedis mirrors RedisAdapter, with scripted batch failures
# ============================================================================


class MockBatch:
    """Records batch operations; execute() fails the commands listed in fail_at."""

    def __init__(self, fail_at: set[int]) -> None:
        self.ops: list[tuple[str, tuple]] = []
        self._fail_at = fail_at

    @property
    def size(self) -> int:
        return len(self.ops)

    def hset(self, key: str, mapping: dict[str, str]) -> MockBatch:
        self.ops.append(("hset", (key, mapping)))
        return self

    def hgetall(self, key: str) -> MockBatch:
        self.ops.append(("hgetall", (key,)))
        return self

    def zadd(self, key: str, mapping: dict[str, float]) -> MockBatch:
        self.ops.append(("zadd", (key, mapping)))
        return self

    def delete(self, *keys: str) -> MockBatch:
        self.ops.append(("delete", keys))
        return self

    async def execute(self) -> list[Any]:
        return [
            ResponseError(f"command {i} ({name}) failed") if i in self._fail_at else 1
            for i, (name, _) in enumerate(self.ops)
        ]


class MockRedis:
    """Adapter stand-in whose pipelines fail at the given command positions."""

    def __init__(self, fail_at: set[int] | None = None) -> None:
        self.fail_at = fail_at or set()
        self.batches: list[MockBatch] = []

    def pipeline(self) -> MockBatch:
        batch = MockBatch(self.fail_at)
        self.batches.append(batch)
        return batch


@pytest.fixture
def failing_redis() -> MockRedis:
    """Pipelines fail on their second command (the primary-index add in create_one)."""
    return MockRedis(fail_at={1})
