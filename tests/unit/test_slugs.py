"""
Unit tests for slug allocation and user lookup.
"""

import pytest

from account_merge.errors import NotFound, ValidationError
from account_merge.reconciliation.identities import find_identities_by_email, find_identity, load_identity
from account_merge.reconciliation.slugs import get_unused_slug, merged_old_slugs, slug_in_use


class TestSlugAllocation:
    """Test finding unused slugs."""

    def test_free_slug_is_returned_unchanged(self, forum_store):
        assert get_unused_slug(forum_store, "dave") == "dave"

    def test_taken_slug_gets_numeric_suffix(self, forum_store):
        assert get_unused_slug(forum_store, "alice-old") == "alice-old-2"

    def test_suffix_skips_taken_candidates(self, store):
        store.load("Users", [
            {"_id": "u1", "slug": "name"},
            {"_id": "u2", "slug": "name-2"},
        ])

        assert get_unused_slug(store, "name") == "name-3"

    def test_old_slugs_count_as_taken(self, forum_store):
        assert slug_in_use(forum_store, "bobby") is True
        assert get_unused_slug(forum_store, "bobby") == "bobby-2"

    def test_old_slugs_can_be_ignored(self, forum_store):
        assert slug_in_use(forum_store, "bobby", use_old_slugs=False) is False
        assert get_unused_slug(forum_store, "bobby", use_old_slugs=False) == "bobby"


class TestMergedOldSlugs:
    """Test slug history concatenation."""

    def test_target_then_source_history_then_source_slug(self):
        source = {"slug": "alice", "oldSlugs": ["alice-2019"]}
        target = {"slug": "bob", "oldSlugs": ["bobby"]}

        assert merged_old_slugs(source, target) == ["bobby", "alice-2019", "alice"]

    def test_missing_histories(self):
        assert merged_old_slugs({"slug": "alice"}, {"slug": "bob", "oldSlugs": None}) == ["alice"]

    def test_duplicates_are_kept(self):
        source = {"slug": "alice", "oldSlugs": ["shared"]}
        target = {"oldSlugs": ["shared"]}

        assert merged_old_slugs(source, target) == ["shared", "shared", "alice"]

    def test_inputs_are_not_mutated(self):
        target = {"oldSlugs": ["bobby"]}
        merged_old_slugs({"slug": "alice"}, target)

        assert target["oldSlugs"] == ["bobby"]


class TestFindIdentity:
    """Test resolving user references."""

    def test_by_id(self, forum_store):
        assert find_identity(forum_store, "bob-id")["slug"] == "bob"

    def test_by_slug(self, forum_store):
        assert find_identity(forum_store, "alice")["_id"] == "alice-id"

    def test_by_old_slug(self, forum_store):
        assert find_identity(forum_store, "alice-2019")["_id"] == "alice-id"

    def test_by_email_case_insensitive(self, forum_store):
        assert find_identity(forum_store, "alice@example.COM")["_id"] == "alice-id"

    def test_by_legacy_emails_array(self, store):
        store.load("Users", [
            {"_id": "u1", "slug": "dana", "oldSlugs": [], "emails": [{"address": "Old@Example.com", "verified": True}]},
        ])

        assert find_identity(store, "old@example.com")["_id"] == "u1"

    def test_email_in_both_fields_is_one_user(self, store):
        store.load("Users", [
            {"_id": "u1", "slug": "dana", "email": "dana@example.com", "emails": [{"address": "DANA@example.com"}]},
        ])

        assert [u["_id"] for u in find_identities_by_email(store, "Dana@Example.com")] == ["u1"]

    def test_shared_email_is_ambiguous(self, store):
        store.load("Users", [
            {"_id": "u1", "slug": "dana", "email": "dana@example.com"},
            {"_id": "u2", "slug": "dana-alt", "emails": [{"address": "Dana@example.com"}]},
        ])

        with pytest.raises(ValidationError, match="matches 2 users"):
            find_identity(store, "dana@example.com")

        assert [u["_id"] for u in find_identities_by_email(store, "dana@example.com")] == ["u1", "u2"]

    def test_current_slug_wins_over_old_slug(self, store):
        store.load("Users", [
            {"_id": "u1", "slug": "renamed", "oldSlugs": ["shared"]},
            {"_id": "u2", "slug": "shared", "oldSlugs": []},
        ])

        assert find_identity(store, "shared")["_id"] == "u2"

    def test_unknown_reference(self, forum_store):
        with pytest.raises(NotFound) as exc_info:
            find_identity(forum_store, "nobody")

        assert exc_info.value.identity == "nobody"

    def test_empty_reference(self, forum_store):
        with pytest.raises(ValidationError):
            find_identity(forum_store, "")

    def test_load_identity_by_id_only(self, forum_store):
        assert load_identity(forum_store, "carol-id")["slug"] == "alice-old"

        with pytest.raises(NotFound):
            load_identity(forum_store, "alice")
