"""
Slug allocation for merged accounts.

The merged-away account keeps existing but gives up its slug: it is renamed
to an unused "<slug>-old" variant and its slugs are appended to the target's
slug history so old profile links keep resolving.
"""

import logging
from typing import Dict, Any, List

from account_merge.store.base import DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "Users"
OLD_SLUG_SUFFIX = "-old"


def slug_in_use(store: DocumentStore, slug: str, use_old_slugs: bool = True,
                collection: str = USERS_COLLECTION) -> bool:
    """Check whether a slug is taken, optionally counting historical slugs."""
    if store.count(collection, {"slug": slug}) > 0:
        return True
    return use_old_slugs and store.count(collection, {"oldSlugs": slug}) > 0


def get_unused_slug(store: DocumentStore, slug: str, use_old_slugs: bool = True,
                    collection: str = USERS_COLLECTION) -> str:
    """
    Find a slug no user holds.

    Tries `slug` itself, then `slug-2`, `slug-3`, ...

    Args:
        store: Document store
        slug: Preferred slug
        use_old_slugs: Also treat historical slugs as taken
        collection: Collection holding users

    Returns:
        An unused slug
    """
    candidate = slug
    index = 1
    while slug_in_use(store, candidate, use_old_slugs, collection):
        index += 1
        candidate = f"{slug}-{index}"

    if candidate != slug:
        logger.debug(f"Slug {slug} taken, using {candidate}")
    return candidate


def merged_old_slugs(source: Dict[str, Any], target: Dict[str, Any]) -> List[str]:
    """
    Build the target's slug history after a merge.

    The result is the target's history, then the source's history, then the
    source's current slug. Entries are appended without de-duplication.
    """
    old_slugs = list(target.get("oldSlugs") or [])
    old_slugs.extend(source.get("oldSlugs") or [])
    if source.get("slug"):
        old_slugs.append(source["slug"])
    return old_slugs
