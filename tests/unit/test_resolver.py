"""
Unit tests for read-status conflict resolution.
"""

from datetime import datetime, timezone

import pytest

from account_merge.reconciliation.resolver import ConflictResolver, parse_timestamp


def _status(store, user_id, post_id):
    return store.find_one("ReadStatuses", {"userId": user_id, "postId": post_id})


class TestParseTimestamp:
    """Test timestamp normalization."""

    def test_none_is_epoch(self):
        assert parse_timestamp(None) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_iso_string_with_z(self):
        assert parse_timestamp("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self):
        assert parse_timestamp(datetime(2024, 3, 1)) == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_unsupported_value(self):
        with pytest.raises(ValueError):
            parse_timestamp(12345)


class TestConflictResolver:
    """Test merging per-user, per-resource state."""

    def test_newer_source_wins(self, forum_store):
        resolver = ConflictResolver(forum_store)

        assert resolver.merge_per_user_resource_state("alice-id", "bob-id", {"postId": "post-b1"}) is True

        merged = _status(forum_store, "bob-id", "post-b1")
        assert merged["_id"] == "rs-2"
        assert merged["isRead"] is True
        assert merged["lastUpdated"] == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_older_source_loses(self, store):
        store.load("ReadStatuses", [
            {"_id": "s", "userId": "u1", "postId": "p", "isRead": False, "lastUpdated": "2024-01-01T00:00:00Z"},
            {"_id": "t", "userId": "u2", "postId": "p", "isRead": True, "lastUpdated": "2024-02-01T00:00:00Z"},
        ])

        assert ConflictResolver(store).merge_per_user_resource_state("u1", "u2", {"postId": "p"}) is False
        assert store.get("ReadStatuses", "t")["isRead"] is True
        assert store.write_count == 0

    def test_tie_goes_to_target(self, store):
        store.load("ReadStatuses", [
            {"_id": "s", "userId": "u1", "postId": "p", "isRead": True, "lastUpdated": "2024-01-01T00:00:00Z"},
            {"_id": "t", "userId": "u2", "postId": "p", "isRead": False, "lastUpdated": "2024-01-01T00:00:00+00:00"},
        ])

        assert ConflictResolver(store).merge_per_user_resource_state("u1", "u2", {"postId": "p"}) is False
        assert store.get("ReadStatuses", "t")["isRead"] is False

    def test_source_only_is_copied(self, forum_store):
        resolver = ConflictResolver(forum_store)

        assert resolver.merge_per_user_resource_state("alice-id", "bob-id", {"tagId": "tag-1"}) is True

        copied = forum_store.find_one("ReadStatuses", {"userId": "bob-id", "tagId": "tag-1"})
        assert copied is not None
        assert copied["_id"] != "rs-3"
        assert copied["isRead"] is True
        # The source record stays where it is
        assert forum_store.get("ReadStatuses", "rs-3")["userId"] == "alice-id"

    def test_target_only_is_left_alone(self, forum_store):
        resolver = ConflictResolver(forum_store)

        assert resolver.merge_per_user_resource_state("alice-id", "bob-id", {"postId": "post-b2"}) is False
        assert forum_store.write_count == 0

    def test_neither_exists(self, forum_store):
        resolver = ConflictResolver(forum_store)

        assert resolver.merge_per_user_resource_state("alice-id", "bob-id", {"postId": "nope"}) is False
        assert forum_store.count("ReadStatuses", {"postId": "nope"}) == 0

    def test_idempotent(self, forum_store):
        resolver = ConflictResolver(forum_store)
        resolver.merge_per_user_resource_state("alice-id", "bob-id", {"postId": "post-b1"})
        resolver.merge_per_user_resource_state("alice-id", "bob-id", {"tagId": "tag-1"})
        after_first = forum_store.snapshot()

        assert resolver.merge_per_user_resource_state("alice-id", "bob-id", {"postId": "post-b1"}) is False
        assert resolver.merge_per_user_resource_state("alice-id", "bob-id", {"tagId": "tag-1"}) is False
        assert forum_store.snapshot() == after_first
        assert forum_store.count("ReadStatuses", {"userId": "bob-id", "tagId": "tag-1"}) == 1
