"""Redis key patterns and lookup-index member encoding.

Key functions are pure. They compute key names and index members, never
touch Redis.

  <name>:<id>                             hash: one record
  <name>:pk:idx                           sorted set: record keys, score = timestamp
  <name>:lk:idx                           sorted set: lookup members, score = 0
  <field>:<value>:<timestamp>:<id>        lookup member (lexicographic order)

All lookup members share score 0, so Redis orders them by the member string.
Members with the same field and value therefore sort by timestamp, which is
why timestamps are formatted with a fixed number of decimals.
"""

from __future__ import annotations

DELIMITER = ":"

# Upper bound for ZRANGEBYLEX prefix scans
LEX_MAX = "\xff"


def record_key(name: str, record_id: str) -> str:
    """Hash holding one record."""
    return f"{name}{DELIMITER}{record_id}"


def primary_index_key(name: str) -> str:
    """Sorted set of all record keys (score = creation timestamp)."""
    return f"{name}{DELIMITER}pk{DELIMITER}idx"


def lookup_index_key(name: str) -> str:
    """Sorted set of lookup members (score = 0, ordered lexicographically)."""
    return f"{name}{DELIMITER}lk{DELIMITER}idx"


def format_timestamp(micros: int) -> str:
    """Milliseconds since epoch with exactly three decimals, from integer microseconds."""
    ms, frac = divmod(micros, 1000)
    return f"{ms}.{frac:03d}"


def sanitize_lookup_value(value: str) -> str:
    """Strip the delimiter from a lookup value.

    Lossy: "a:b" and "ab" map to the same index entry.
    """
    return value.replace(DELIMITER, "")


def lookup_prefix(field: str, value: str) -> str:
    """Prefix shared by every member for (field, value)."""
    return f"{field}{DELIMITER}{sanitize_lookup_value(value)}{DELIMITER}"


def lookup_member(field: str, value: str, timestamp: str, record_id: str) -> str:
    """Composite lookup member for one (field, value) of one record."""
    return f"{lookup_prefix(field, value)}{timestamp}{DELIMITER}{record_id}"


def lookup_range(field: str, value: str) -> tuple[str, str]:
    """Inclusive (min, max) ZRANGEBYLEX bounds matching every member for (field, value)."""
    prefix = lookup_prefix(field, value)
    return f"[{prefix}", f"[{prefix}{LEX_MAX}"


def parse_lookup_member(member: str) -> tuple[str, str, str, str]:
    """Split a lookup member into (field, value, timestamp, id).

    Field, value and timestamp never contain the delimiter, so only the first
    three delimiters are structural. An id joined from several primary keys
    keeps its own delimiters.
    """
    parts = member.split(DELIMITER, 3)
    if len(parts) != 4:
        raise ValueError(f"Malformed lookup member: {member!r}")
    field, value, timestamp, record_id = parts
    return field, value, timestamp, record_id
