"""Object-record layer over Redis hashes and sorted sets.

Stores flat string records, indexes them by creation time and by exact-match
lookup fields, and supports create, point lookup, lookup by field value,
list-all and delete-all.
"""

from redis_record.client import RedisAdapter, create_client
from redis_record.errors import (
    BatchError,
    ConfigError,
    RedisRecordError,
    StoreUnavailable,
    TransactionAborted,
    ValidationError,
)
from redis_record.models import CreatedRecord, RecordConfig, WriteMode
from redis_record.record import RedisRecord

__all__ = [
    "BatchError",
    "ConfigError",
    "CreatedRecord",
    "RecordConfig",
    "RedisAdapter",
    "RedisRecord",
    "RedisRecordError",
    "StoreUnavailable",
    "TransactionAborted",
    "ValidationError",
    "WriteMode",
    "create_client",
]
