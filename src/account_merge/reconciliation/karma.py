"""
Karma Aggregator

Recomputes a user's karma from the vote ledger.
"""

import logging

from account_merge.errors import NotFound
from account_merge.reconciliation.ledger import LedgerReader
from account_merge.store.base import DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "Users"


class KarmaAggregator:
    """Sums vote power into a karma score."""

    def __init__(self, store: DocumentStore, ledger: LedgerReader = None):
        self.store = store
        self.ledger = ledger or LedgerReader(store)

    def compute_reputation(self, identity_id: str) -> int:
        """
        Compute the karma of a user.

        The result is the exact sum of `power` over the user's karma-bearing
        votes plus the `legacyKarma` carried over on the user document.

        Args:
            identity_id: User id

        Returns:
            Karma as an integer

        Raises:
            NotFound: If the user does not exist
        """
        user = self.store.find_one(USERS_COLLECTION, {"_id": identity_id})
        if user is None:
            raise NotFound(f"Can't find user with id: {identity_id}", identity=identity_id)

        vote_count = 0
        vote_karma = 0
        for vote in self.ledger.read_votes(identity_id):
            vote_karma += int(vote.get("power") or 0)
            vote_count += 1

        legacy_karma = int(user.get("legacyKarma") or 0)
        total = vote_karma + legacy_karma

        logger.info(
            f"Recomputed karma for {identity_id}: {total} "
            f"({vote_count} votes = {vote_karma}, legacy = {legacy_karma})"
        )
        return total
