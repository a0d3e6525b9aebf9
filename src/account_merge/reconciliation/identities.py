"""
User lookup helpers.
"""

import logging
from typing import Dict, Any, List

from account_merge.errors import NotFound, ValidationError
from account_merge.store.base import DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "Users"

EMAIL_FIELDS = ("email", "emails.address")


def load_identity(store: DocumentStore, identity_id: str) -> Dict[str, Any]:
    """
    Fetch a user by id.

    Raises:
        NotFound: If no user has this id
    """
    user = store.find_one(USERS_COLLECTION, {"_id": identity_id})
    if user is None:
        raise NotFound(f"Can't find user with id: {identity_id}", identity=identity_id)
    return user


def find_identities_by_email(store: DocumentStore, email: str) -> List[Dict[str, Any]]:
    """
    Find every user holding an email address.

    Both the primary `email` field and the addresses in the legacy `emails`
    list are searched, case-insensitively.

    Args:
        store: Document store
        email: Email address

    Returns:
        Matching users, each listed once
    """
    users: Dict[str, Dict[str, Any]] = {}
    for field in EMAIL_FIELDS:
        for user in store.find(USERS_COLLECTION, {field: {"$iexact": email}}):
            users.setdefault(user["_id"], user)
    return list(users.values())


def find_identity(store: DocumentStore, reference: str) -> Dict[str, Any]:
    """
    Resolve a user from an id, a slug, or an email address.

    Slugs match current and historical slugs. Email addresses match
    case-insensitively against `email` and `emails.address`.

    Args:
        store: Document store
        reference: Id, slug or email

    Returns:
        The user document

    Raises:
        ValidationError: If reference is empty, or an email matches several users
        NotFound: If nothing matches
    """
    if not reference or not isinstance(reference, str):
        raise ValidationError("User reference must be a non-empty string")

    for query in ({"_id": reference}, {"slug": reference}):
        user = store.find_one(USERS_COLLECTION, query)
        if user is not None:
            logger.debug(f"Resolved {reference} to user {user['_id']} via {list(query)[0]}")
            return user

    if "@" in reference:
        users = find_identities_by_email(store, reference)
        if len(users) > 1:
            ids = [u["_id"] for u in users]
            raise ValidationError(
                f"Email {reference} matches {len(users)} users {ids}; name the account by id or slug"
            )
        if users:
            logger.debug(f"Resolved {reference} to user {users[0]['_id']} via email")
            return users[0]

    user = store.find_one(USERS_COLLECTION, {"oldSlugs": reference})
    if user is not None:
        logger.debug(f"Resolved {reference} to user {user['_id']} via oldSlugs")
        return user

    raise NotFound(f"Can't find user matching: {reference}", identity=reference)
