"""
Merge Plan

The ordered list of steps an account merge runs. Each step moves one kind of
user-owned data from the source account to the target account and reports
what it found. In dry-run mode a step only counts.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Tuple

from account_merge.errors import MergeAborted, MergeError, NotFound, StorageUnavailable
from account_merge.reconciliation.karma import KarmaAggregator
from account_merge.reconciliation.resolver import ConflictResolver
from account_merge.reconciliation.slugs import OLD_SLUG_SUFFIX, get_unused_slug, merged_old_slugs
from account_merge.reconciliation.transfer import OwnershipTransfer
from account_merge.store.base import DocumentStore

logger = logging.getLogger(__name__)

USERS = "Users"
VOTES = "Votes"
CONVERSATIONS = "Conversations"
READ_STATUSES = "ReadStatuses"

# LWEvents are not merged: there are far too many and they are not needed
# after the fact. GardenCodes are unused. Revisions move together with
# their parent documents.
DEFAULT_EDITABLE_FIELDS: Dict[str, List[str]] = {
    "Posts": ["contents", "moderationGuidelines", "customHighlight"],
    "Comments": ["contents"],
    "Tags": ["description"],
    "Sequences": ["contents"],
    "Collections": ["contents"],
    "Localgroups": ["contents"],
}


def update_user(store: DocumentStore, user_id: str, set_fields: Dict[str, Any]) -> None:
    """
    Write fields on a user document.

    Raises:
        NotFound: If the user no longer exists
    """
    if not store.update_one(USERS, user_id, set_fields):
        raise NotFound(f"User {user_id} disappeared during the merge", identity=user_id)


class PartialStepFailure(MergeError):
    """A step finished but some of its documents could not be moved."""

    def __init__(self, message: str, details: Dict[str, Any]):
        super().__init__(message)
        self.details = details


@dataclass
class MergeContext:
    """
    Everything a step needs.

    `source` and `target` are the user documents as loaded at the start of
    the run; steps that combine values from both accounts read these
    snapshots.
    """

    store: DocumentStore
    source: Dict[str, Any]
    target: Dict[str, Any]
    dry_run: bool
    transfer: OwnershipTransfer
    resolver: ConflictResolver
    karma: KarmaAggregator

    @property
    def source_id(self) -> str:
        return self.source["_id"]

    @property
    def target_id(self) -> str:
        return self.target["_id"]


class MergeStep(ABC):
    """One stage of an account merge."""

    name: str = "step"

    @abstractmethod
    def run(self, context: MergeContext) -> Dict[str, Any]:
        """Execute the step and return a JSON-serializable report."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class CollectionTransferStep(MergeStep):
    """Transfers ownership of every document in one collection."""

    def __init__(self, collection: str, owner_field: str = "userId", name: Optional[str] = None):
        self.collection = collection
        self.owner_field = owner_field
        self.name = name or collection

    def run(self, context: MergeContext) -> Dict[str, Any]:
        report = context.transfer.transfer_ownership(
            self.collection,
            context.source_id,
            context.target_id,
            dry_run=context.dry_run,
            owner_field=self.owner_field,
        )
        details = report.to_dict()

        if report.failed_ids:
            raise PartialStepFailure(
                f"{len(report.failed_ids)} {self.collection} documents failed to transfer",
                details
            )
        return details


class ConversationsStep(MergeStep):
    """Swaps the source for the target in conversation participant lists."""

    name = "Conversations"

    def run(self, context: MergeContext) -> Dict[str, Any]:
        store = context.store
        details = {
            "source_count": store.count(CONVERSATIONS, {"participantIds": context.source_id}),
            "target_count": store.count(CONVERSATIONS, {"participantIds": context.target_id}),
        }
        logger.info(f"Conversations from source user: {details['source_count']}")
        logger.info(f"Conversations from target user: {details['target_count']}")

        if not context.dry_run:
            details["rewritten"] = store.replace_in_array(
                CONVERSATIONS, {}, "participantIds", context.source_id, context.target_id
            )
        return details


class ReadStatusesStep(MergeStep):
    """Merges the source's post and tag read statuses into the target's."""

    name = "ReadStatuses"

    def run(self, context: MergeContext) -> Dict[str, Any]:
        statuses = list(context.store.find(READ_STATUSES, {"userId": context.source_id}))
        post_ids = [s["postId"] for s in statuses if s.get("postId")]
        tag_ids = [s["tagId"] for s in statuses if s.get("tagId")]

        logger.info(f"Source readPostIds count: {len(post_ids)}")
        logger.info(f"Source readTagIds count: {len(tag_ids)}")

        details = {"post_statuses": len(post_ids), "tag_statuses": len(tag_ids)}
        if context.dry_run:
            return details

        selectors: List[Tuple[str, str]] = [("postId", p) for p in post_ids] + [("tagId", t) for t in tag_ids]
        written = 0
        for key, resource_id in selectors:
            if context.resolver.merge_per_user_resource_state(
                context.source_id, context.target_id, {key: resource_id}
            ):
                written += 1

        details["written"] = written
        return details


class VotesStep(MergeStep):
    """
    Moves votes to the target and recomputes the target's karma.

    Votes on the source's content get the source replaced by the target in
    `authorIds`; votes cast by the source get their `userId` moved. Karma is
    then recomputed from the ledger, and `afKarma` is the plain sum of both
    accounts' values as loaded at the start of the run. If the votes cannot be
    read or written the whole merge stops here.
    """

    name = "Votes"

    def run(self, context: MergeContext) -> Dict[str, Any]:
        details: Dict[str, Any] = {}
        try:
            self._move_votes(context, details)
        except StorageUnavailable as e:
            raise MergeAborted(f"Vote ledger unavailable: {e}", details) from e
        return details

    def _move_votes(self, context: MergeContext, details: Dict[str, Any]) -> None:
        store = context.store
        details["author_votes_count"] = store.count(VOTES, {"authorIds": context.source_id})
        details["user_votes_count"] = store.count(VOTES, {"userId": context.source_id})
        logger.info(f"authorVotesCount: {details['author_votes_count']}")
        logger.info(f"userVoteCounts: {details['user_votes_count']}")

        if context.dry_run:
            return

        logger.info("Transferring votes that target source user")
        details["author_votes_moved"] = store.replace_in_array(
            VOTES, {}, "authorIds", context.source_id, context.target_id
        )

        logger.info("Transferring votes cast by source user")
        details["user_votes_moved"] = store.update_many(
            VOTES, {"userId": context.source_id}, {"userId": context.target_id}
        )

        logger.info("Transferring karma")
        karma = context.karma.compute_reputation(context.target_id)

        # afKarma is not recomputed from votes, only carried over
        af_karma = int(context.source.get("afKarma") or 0) + int(context.target.get("afKarma") or 0)
        update_user(store, context.target_id, {"karma": karma, "afKarma": af_karma})

        details["karma"] = karma
        details["afKarma"] = af_karma


class SlugSwapStep(MergeStep):
    """Renames the source's slug and folds its slugs into the target's history."""

    name = "Slugs"

    def __init__(self, suffix: str = OLD_SLUG_SUFFIX):
        self.suffix = suffix

    def run(self, context: MergeContext) -> Dict[str, Any]:
        source_slug = context.source.get("slug")
        details: Dict[str, Any] = {
            "source_slug": source_slug,
            "target_old_slugs": merged_old_slugs(context.source, context.target),
        }

        if source_slug:
            details["new_source_slug"] = get_unused_slug(context.store, f"{source_slug}{self.suffix}", True)

        if context.dry_run:
            return details

        logger.info("Change slugs of source account")
        if source_slug:
            update_user(context.store, context.source_id, {"slug": details["new_source_slug"]})

        logger.info(f"Changing slugs of target account {source_slug} {details['target_old_slugs']}")
        update_user(context.store, context.target_id, {"oldSlugs": details["target_old_slugs"]})
        return details


class SoftDeleteStep(MergeStep):
    """Marks the source account as deleted. Users are never removed."""

    name = "SoftDelete"

    def run(self, context: MergeContext) -> Dict[str, Any]:
        if context.dry_run:
            return {"deleted": False}

        logger.info("Marking old account as deleted")
        update_user(context.store, context.source_id, {"deleted": True})
        return {"deleted": True}


def build_default_plan() -> List[MergeStep]:
    """Return the merge steps in the order they must run."""
    return [
        CollectionTransferStep("Bans"),
        CollectionTransferStep("Subscriptions"),
        CollectionTransferStep("Posts"),
        CollectionTransferStep("Comments"),
        CollectionTransferStep("Tags"),
        CollectionTransferStep("TagRels"),
        CollectionTransferStep("RSSFeeds"),
        CollectionTransferStep("PetrovDayLaunchs"),
        CollectionTransferStep("Reports"),
        ConversationsStep(),
        CollectionTransferStep("Messages"),
        CollectionTransferStep("Notifications"),
        ReadStatusesStep(),
        CollectionTransferStep("Sequences"),
        CollectionTransferStep("Collections"),
        CollectionTransferStep("Localgroups"),
        CollectionTransferStep("ReviewVotes"),
        VotesStep(),
        SlugSwapStep(),
        CollectionTransferStep("EmailTokens"),
        SoftDeleteStep(),
    ]
