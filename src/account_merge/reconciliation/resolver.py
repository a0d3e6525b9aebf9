"""
Read-Status Conflict Resolver

Read statuses are unique per (user, post) and (user, tag). When two accounts
merge, the source's and target's statuses for the same resource collapse into
one record owned by the target: the most recently updated one wins.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from account_merge.store.base import DocumentStore

logger = logging.getLogger(__name__)

READ_STATUSES_COLLECTION = "ReadStatuses"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Normalize a lastUpdated value to an aware datetime.

    Args:
        value: datetime, ISO-8601 string, or None

    Returns:
        Timezone-aware datetime (the epoch for missing values)
    """
    if value is None:
        return _EPOCH

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    raise ValueError(f"Unsupported timestamp: {value!r}")


class ConflictResolver:
    """Merges per-user, per-resource state records."""

    def __init__(self, store: DocumentStore, collection: str = READ_STATUSES_COLLECTION):
        self.store = store
        self.collection = collection

    def merge_per_user_resource_state(
        self,
        source_id: str,
        target_id: str,
        resource_selector: Dict[str, Any]
    ) -> bool:
        """
        Collapse the source's and target's state for one resource.

        If both records exist the one with the later `lastUpdated` wins (ties
        go to the target) and its `isRead` and `lastUpdated` are written onto
        the target's record. A source-only record is copied to the target. A
        target-only record, or no record at all, is left alone. Running this
        twice has the same effect as running it once.

        Args:
            source_id: Merged-away user
            target_id: Surviving user
            resource_selector: e.g. {"postId": "..."} or {"tagId": "..."}

        Returns:
            True if a write was issued
        """
        source_status = self._find_status(source_id, resource_selector)
        target_status = self._find_status(target_id, resource_selector)

        if source_status is None:
            return False

        if target_status is None:
            copied = {k: v for k, v in source_status.items() if k not in ("_id", "_version")}
            copied["userId"] = target_id
            self.store.insert_one(self.collection, copied)
            logger.debug(f"Copied read status {resource_selector} from {source_id} to {target_id}")
            return True

        source_is_newer = (
            parse_timestamp(source_status.get("lastUpdated"))
            > parse_timestamp(target_status.get("lastUpdated"))
        )
        if not source_is_newer:
            return False

        winner = {
            "isRead": source_status.get("isRead"),
            "lastUpdated": source_status.get("lastUpdated"),
        }
        if all(target_status.get(k) == v for k, v in winner.items()):
            return False

        self.store.update_one(self.collection, target_status["_id"], winner)
        logger.debug(f"Merged read status {resource_selector} into {target_id}: {winner}")
        return True

    def _find_status(self, user_id: str, resource_selector: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        query = dict(resource_selector)
        query["userId"] = user_id
        return self.store.find_one(self.collection, query)
