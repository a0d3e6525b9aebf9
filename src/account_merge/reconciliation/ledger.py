"""
Vote Ledger Reader

Reads the votes that count toward a user's karma.
"""

import logging
from typing import Dict, Any, Iterator

from account_merge.store.base import DocumentStore

logger = logging.getLogger(__name__)

VOTES_COLLECTION = "Votes"


class LedgerReader:
    """Reads karma-bearing votes from the Votes collection."""

    def __init__(self, store: DocumentStore, collection: str = VOTES_COLLECTION):
        self.store = store
        self.collection = collection

    def read_votes(self, identity_id: str) -> Iterator[Dict[str, Any]]:
        """
        Yield the votes cast on content authored by identity_id.

        Cancelled votes, legacy votes and self-votes are excluded. Every call
        re-reads the store.

        Args:
            identity_id: User whose received votes to read

        Yields:
            Vote documents
        """
        logger.debug(f"Reading vote ledger for {identity_id}")
        yield from self.store.find(self.collection, {
            "authorIds": identity_id,
            "userId": {"$ne": identity_id},
            "legacy": {"$ne": True},
            "cancelled": {"$ne": True},
        })
