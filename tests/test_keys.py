"""Tests for key patterns and lookup-member encoding.

Verifies:
  - Record and index key formats
  - Lookup members round-trip through parse_lookup_member, including ids
    that contain the delimiter
  - Timestamp formatting keeps lexicographic order equal to numeric order
  - Sanitization is lossy by construction
"""

import pytest
from redis_record.keys import (
    DELIMITER,
    format_timestamp,
    lookup_index_key,
    lookup_member,
    lookup_prefix,
    lookup_range,
    parse_lookup_member,
    primary_index_key,
    record_key,
    sanitize_lookup_value,
)


class TestKeys:
    def test_record_key(self):
        assert record_key("users", "abc") == "users:abc"

    def test_index_keys(self):
        assert primary_index_key("users") == "users:pk:idx"
        assert lookup_index_key("users") == "users:lk:idx"

    def test_delimiter(self):
        assert DELIMITER == ":"


class TestLookupMember:
    def test_member_format(self):
        member = lookup_member("email", "a@x.com", "1700000000000.123", "id-1")
        assert member == "email:a@x.com:1700000000000.123:id-1"

    def test_value_is_sanitized(self):
        member = lookup_member("code", "a:b:c", "1.000", "id-1")
        assert member == "code:abc:1.000:id-1"

    def test_prefix_matches_member(self):
        member = lookup_member("email", "a@x.com", "5.000", "id-1")
        assert member.startswith(lookup_prefix("email", "a@x.com"))

    def test_range_bounds(self):
        low, high = lookup_range("email", "a@x.com")
        assert low == "[email:a@x.com:"
        assert high == "[email:a@x.com:\xff"

    def test_parse(self):
        assert parse_lookup_member("email:a@x.com:5.000:id-1") == (
            "email",
            "a@x.com",
            "5.000",
            "id-1",
        )

    def test_parse_keeps_delimiters_in_id(self):
        """Ids joined from several primary keys keep their delimiters."""
        _, _, _, record_id = parse_lookup_member("email:a@x.com:5.000:tenant-1:user-7")
        assert record_id == "tenant-1:user-7"

    @pytest.mark.parametrize("member", ["", "email", "email:value", "email:value:5.000"])
    def test_parse_malformed(self, member):
        with pytest.raises(ValueError):
            parse_lookup_member(member)


class TestSanitize:
    def test_strips_every_delimiter(self):
        assert sanitize_lookup_value("::a:b::") == "ab"

    def test_lossy_collision(self):
        """Values differing only in delimiters collide, a known limitation."""
        assert sanitize_lookup_value("a:b") == sanitize_lookup_value("ab")


class TestTimestamp:
    def test_three_decimals(self):
        assert format_timestamp(1_700_000_000_000_005) == "1700000000000.005"
        assert format_timestamp(1_700_000_000_000_000) == "1700000000000.000"

    def test_lexicographic_order_matches_numeric(self):
        micros = [1_700_000_000_000_100, 1_700_000_000_000_120, 1_700_000_000_000_200]
        members = [lookup_member("f", "v", format_timestamp(m), "id") for m in micros]
        assert sorted(members) == members
