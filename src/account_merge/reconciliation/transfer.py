"""
Ownership Transfer for Account Merges

Moves every document a source user owns in a collection to a target user.
Rich-content fields keep their own authorship on the denormalized copy and in
the Revisions history; both are rewritten alongside the owner field.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from account_merge.store.base import DocumentStore

logger = logging.getLogger(__name__)

REVISIONS_COLLECTION = "Revisions"


@dataclass
class TransferReport:
    """
    Counts gathered while transferring one collection.

    Attributes:
        collection: Collection name
        owner_field: Field holding the owner id
        source_count_before: Documents owned by the source before the transfer
        target_count_before: Documents owned by the target before the transfer
        dry_run: Whether writes were skipped
        target_count_after: Documents owned by the target afterwards (None on dry runs)
        transferred: Documents whose owner was rewritten
        revisions_transferred: Revision records whose author was rewritten
        failed_ids: Documents that raised while being rewritten
    """

    collection: str
    owner_field: str
    source_count_before: int
    target_count_before: int
    dry_run: bool
    target_count_after: Optional[int] = None
    transferred: int = 0
    revisions_transferred: int = 0
    failed_ids: List[str] = field(default_factory=list)

    @property
    def expected_target_count(self) -> int:
        return self.source_count_before + self.target_count_before

    @property
    def verified(self) -> bool:
        """True when the target ends up owning exactly both starting sets."""
        if self.target_count_after is None:
            return False
        return self.target_count_after == self.expected_target_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "owner_field": self.owner_field,
            "source_count_before": self.source_count_before,
            "target_count_before": self.target_count_before,
            "target_count_after": self.target_count_after,
            "transferred": self.transferred,
            "revisions_transferred": self.revisions_transferred,
            "failed_ids": list(self.failed_ids),
            "dry_run": self.dry_run,
            "verified": self.verified,
        }


class OwnershipTransfer:
    """
    Rewrites owner references from a source user to a target user.

    Failures on individual documents are logged and collected in the report;
    the remaining documents are still processed. Errors while counting or
    enumerating the collection propagate to the caller.
    """

    def __init__(
        self,
        store: DocumentStore,
        editable_fields: Optional[Dict[str, List[str]]] = None,
        revisions_collection: str = REVISIONS_COLLECTION
    ):
        """
        Initialize the transfer.

        Args:
            store: Document store
            editable_fields: Rich-content field names per collection
            revisions_collection: Collection holding rich-content revisions
        """
        self.store = store
        self.editable_fields = editable_fields or {}
        self.revisions_collection = revisions_collection

    def transfer_ownership(
        self,
        collection: str,
        source_id: str,
        target_id: str,
        dry_run: bool,
        owner_field: str = "userId"
    ) -> TransferReport:
        """
        Transfer every document in a collection owned by source_id.

        Args:
            collection: Collection name
            source_id: Current owner
            target_id: New owner
            dry_run: If True, only count
            owner_field: Field holding the owner id

        Returns:
            TransferReport with before/after counts
        """
        report = TransferReport(
            collection=collection,
            owner_field=owner_field,
            source_count_before=self.store.count(collection, {owner_field: source_id}),
            target_count_before=self.store.count(collection, {owner_field: target_id}),
            dry_run=dry_run,
        )

        logger.info(f"Source user {source_id} {collection} count: {report.source_count_before}")
        logger.info(f"Target user {target_id} {collection} count: {report.target_count_before}")

        if dry_run:
            return report

        documents = list(self.store.find(collection, {owner_field: source_id}))
        logger.info(f"Transferring {len(documents)} documents in collection {collection}")

        for document in documents:
            doc_id = document["_id"]
            try:
                # Owner last: a document that fails midway still matches the
                # source filter on the next run
                for field_name in self.editable_fields.get(collection, []):
                    report.revisions_transferred += self.transfer_editable_field(
                        collection, document, field_name, source_id, target_id
                    )

                if self.store.update_one(collection, doc_id, {owner_field: target_id}):
                    report.transferred += 1
                else:
                    logger.warning(f"Document {doc_id} in {collection} disappeared during transfer")

            except Exception as e:
                logger.error(
                    f"Error transferring document {doc_id} in {collection}: {e}",
                    extra={"collection": collection, "document_id": doc_id, "error": str(e)}
                )
                report.failed_ids.append(doc_id)

        report.target_count_after = self.store.count(collection, {owner_field: target_id})
        logger.info(
            f"Final target user {target_id} {collection} count: {report.target_count_after} "
            f"(compare {report.expected_target_count})"
        )

        if not report.verified:
            logger.warning(
                f"Transfer of {collection} did not converge: "
                f"{report.target_count_after} != {report.expected_target_count}"
            )

        return report

    def transfer_editable_field(
        self,
        collection: str,
        document: Dict[str, Any],
        field_name: str,
        source_id: str,
        target_id: str
    ) -> int:
        """
        Move authorship of one rich-content field.

        Args:
            collection: Collection of the document
            document: Document as read before the owner rewrite
            field_name: Rich-content field name
            source_id: Previous author
            target_id: New author

        Returns:
            Number of revision records rewritten
        """
        doc_id = document["_id"]

        if isinstance(document.get(field_name), dict):
            self.store.update_one(collection, doc_id, {f"{field_name}.userId": target_id})

        revisions = self.store.update_many(
            self.revisions_collection,
            {"documentId": doc_id, "fieldName": field_name, "userId": source_id},
            {"userId": target_id}
        )

        logger.debug(f"Moved {revisions} {field_name} revisions of {collection}/{doc_id} to {target_id}")
        return revisions
