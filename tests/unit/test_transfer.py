"""
Unit tests for ownership transfer.
"""

import pytest

from account_merge.errors import StorageUnavailable
from account_merge.reconciliation.plan import DEFAULT_EDITABLE_FIELDS
from account_merge.reconciliation.transfer import OwnershipTransfer, TransferReport


@pytest.fixture
def transfer(forum_store):
    return OwnershipTransfer(forum_store, editable_fields=DEFAULT_EDITABLE_FIELDS)


class TestTransferReport:
    """Test report arithmetic."""

    def test_verified_when_counts_add_up(self):
        report = TransferReport("Posts", "userId", 3, 2, dry_run=False, target_count_after=5)

        assert report.expected_target_count == 5
        assert report.verified is True

    def test_not_verified_on_mismatch(self):
        report = TransferReport("Posts", "userId", 3, 2, dry_run=False, target_count_after=4)

        assert report.verified is False

    def test_dry_run_report_is_not_verified(self):
        report = TransferReport("Posts", "userId", 3, 2, dry_run=True)

        assert report.verified is False
        assert report.to_dict()["target_count_after"] is None


class TestOwnershipTransfer:
    """Test moving documents between owners."""

    def test_transfers_all_source_documents(self, forum_store, transfer):
        report = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert report.source_count_before == 3
        assert report.target_count_before == 2
        assert report.target_count_after == 5
        assert report.transferred == 3
        assert report.verified is True
        assert forum_store.count("Posts", {"userId": "alice-id"}) == 0

    def test_dry_run_only_counts(self, forum_store, transfer):
        before = forum_store.snapshot()

        report = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=True)

        assert report.source_count_before == 3
        assert report.target_count_before == 2
        assert report.transferred == 0
        assert forum_store.write_count == 0
        assert forum_store.snapshot() == before

    def test_rewrites_editable_field_and_revisions(self, forum_store, transfer):
        report = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert report.revisions_transferred == 2
        assert forum_store.get("Posts", "post-a1")["contents"]["userId"] == "bob-id"
        assert forum_store.get("Revisions", "rev-1")["userId"] == "bob-id"
        assert forum_store.get("Revisions", "rev-2")["userId"] == "bob-id"
        # Revisions by other authors are untouched
        assert forum_store.get("Revisions", "rev-3")["userId"] == "carol-id"

    def test_missing_editable_field_is_not_created(self, forum_store, transfer):
        transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert "contents" not in forum_store.get("Posts", "post-a2")

    def test_collection_without_editable_fields(self, forum_store, transfer):
        report = transfer.transfer_ownership("EmailTokens", "alice-id", "bob-id", dry_run=False)

        assert report.transferred == 1
        assert report.revisions_transferred == 0
        assert forum_store.get("EmailTokens", "token-1")["userId"] == "bob-id"

    def test_custom_owner_field(self, store):
        store.load("Bans", [{"_id": "ban-1", "bannedBy": "u1"}])
        transfer = OwnershipTransfer(store)

        report = transfer.transfer_ownership("Bans", "u1", "u2", dry_run=False, owner_field="bannedBy")

        assert report.owner_field == "bannedBy"
        assert store.get("Bans", "ban-1")["bannedBy"] == "u2"

    def test_rerun_is_a_no_op(self, forum_store, transfer):
        transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        report = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert report.source_count_before == 0
        assert report.transferred == 0
        assert report.target_count_after == 5

    def test_document_failure_continues_with_others(self, forum_store, transfer, monkeypatch):
        original_update = forum_store.update_one

        def flaky_update(collection, doc_id, set_fields, expected_version=None):
            if doc_id == "post-a2":
                raise StorageUnavailable("row locked")
            return original_update(collection, doc_id, set_fields, expected_version)

        monkeypatch.setattr(forum_store, "update_one", flaky_update)

        report = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert report.failed_ids == ["post-a2"]
        assert report.transferred == 2
        assert report.target_count_after == 4
        assert report.verified is False
        assert forum_store.get("Posts", "post-a3")["userId"] == "bob-id"

    def test_document_failure_is_logged(self, forum_store, transfer, monkeypatch, caplog):
        def failing_update(collection, doc_id, set_fields, expected_version=None):
            raise StorageUnavailable("row locked")

        monkeypatch.setattr(forum_store, "update_one", failing_update)

        transfer.transfer_ownership("EmailTokens", "alice-id", "bob-id", dry_run=False)

        errors = [r for r in caplog.records if r.levelname == "ERROR"]
        assert errors
        assert errors[0].document_id == "token-1"
        assert errors[0].collection == "EmailTokens"

    def test_count_failure_propagates(self, forum_store, transfer, monkeypatch):
        def failing_count(collection, filter=None):
            raise StorageUnavailable("database down")

        monkeypatch.setattr(forum_store, "count", failing_count)

        with pytest.raises(StorageUnavailable):
            transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

    def test_revision_failure_is_retried_on_rerun(self, forum_store, transfer, monkeypatch):
        original_update_many = forum_store.update_many

        def failing_revisions(collection, filter, set_fields):
            if collection == "Revisions":
                raise StorageUnavailable("revisions table locked")
            return original_update_many(collection, filter, set_fields)

        monkeypatch.setattr(forum_store, "update_many", failing_revisions)
        first = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert sorted(first.failed_ids) == ["post-a1", "post-a2", "post-a3"]
        # Failed documents keep their owner so the next run picks them up
        assert forum_store.get("Posts", "post-a1")["userId"] == "alice-id"

        monkeypatch.setattr(forum_store, "update_many", original_update_many)
        second = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert second.failed_ids == []
        assert second.transferred == 3
        assert second.verified is True
        assert forum_store.get("Revisions", "rev-1")["userId"] == "bob-id"
        assert forum_store.get("Revisions", "rev-2")["userId"] == "bob-id"

    def test_vanished_document_is_not_counted(self, forum_store, transfer, monkeypatch):
        original_update = forum_store.update_one

        def vanishing_update(collection, doc_id, set_fields, expected_version=None):
            if doc_id == "post-a2":
                return False
            return original_update(collection, doc_id, set_fields, expected_version)

        monkeypatch.setattr(forum_store, "update_one", vanishing_update)

        report = transfer.transfer_ownership("Posts", "alice-id", "bob-id", dry_run=False)

        assert report.transferred == 2
        assert report.failed_ids == []
        assert report.verified is False
