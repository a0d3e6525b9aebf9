"""
Document Store Contract

Abstract CRUD interface the merge tool consumes from the forum's document
store, plus the filter and field helpers shared by the backends.

Filters are flat dictionaries:
    {"userId": "abc"}                 equality, or membership if the field is a list
    {"legacy": {"$ne": True}}         inequality (a missing field is unequal)
    {"email": {"$iexact": "A@b.c"}}   case-insensitive string equality

Dotted field names ("contents.userId") address nested documents. Reading a
dotted path through a list of documents ("emails.address") yields the list of
the members' values.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Iterator, List, Optional

from account_merge.errors import WriteConflict

logger = logging.getLogger(__name__)

_MISSING = object()

SUPPORTED_OPERATORS = ("$ne", "$iexact")


def get_field(document: Dict[str, Any], field: str, default: Any = None) -> Any:
    """
    Read a possibly dotted field from a document.

    Args:
        document: Document to read
        field: Field name, dotted for nested documents
        default: Value returned when any path segment is missing

    Returns:
        Field value or default
    """
    value: Any = document
    for part in field.split("."):
        if isinstance(value, list):
            value = [item[part] for item in value if isinstance(item, dict) and part in item]
            if not value:
                return default
        elif isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return default
    return value


def set_field(document: Dict[str, Any], field: str, value: Any) -> None:
    """
    Write a possibly dotted field, creating intermediate documents as needed.

    Args:
        document: Document to modify in place
        field: Field name, dotted for nested documents
        value: Value to write
    """
    parts = field.split(".")
    target = document
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = copy.deepcopy(value)


def _equals(stored: Any, expected: Any) -> bool:
    if stored is _MISSING:
        return False
    if isinstance(stored, list) and not isinstance(expected, list):
        return expected in stored
    return stored == expected


def matches(document: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    """
    Check whether a document satisfies a filter.

    Args:
        document: Candidate document
        filter: Filter dictionary (None or empty matches everything)

    Returns:
        True if every condition holds
    """
    for field, expected in (filter or {}).items():
        stored = get_field(document, field, _MISSING)

        if isinstance(expected, dict) and len(expected) == 1 and next(iter(expected)) in SUPPORTED_OPERATORS:
            operator, operand = next(iter(expected.items()))
            if operator == "$ne":
                if _equals(stored, operand):
                    return False
            elif operator == "$iexact":
                candidates = stored if isinstance(stored, list) else [stored]
                wanted = str(operand).lower()
                if not any(isinstance(c, str) and c.lower() == wanted for c in candidates):
                    return False
            continue

        if not _equals(stored, expected):
            return False

    return True


def replace_member(values: List[Any], old: Any, new: Any) -> List[Any]:
    """
    Replace the first occurrence of old with new, without duplicating new.

    Args:
        values: Original list (not modified)
        old: Member to replace
        new: Replacement member

    Returns:
        New list; equal to values when old is absent
    """
    if old not in values:
        return list(values)

    position = values.index(old)
    if new in values:
        return values[:position] + values[position + 1:]
    return values[:position] + [new] + values[position + 1:]


class DocumentStore(ABC):
    """
    Abstract document store.

    Documents are dictionaries carrying a string "_id" and an integer
    "_version" that backends bump on every write.
    """

    @abstractmethod
    def find(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Yield documents matching filter. Each call performs a fresh read."""

    @abstractmethod
    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching filter."""

    @abstractmethod
    def update_one(
        self,
        collection: str,
        doc_id: str,
        set_fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> bool:
        """
        Set fields on one document.

        Returns:
            False if the document does not exist

        Raises:
            WriteConflict: If expected_version is given and does not match
        """

    @abstractmethod
    def update_many(self, collection: str, filter: Dict[str, Any], set_fields: Dict[str, Any]) -> int:
        """Set fields on every matching document and return how many changed."""

    @abstractmethod
    def insert_one(self, collection: str, record: Dict[str, Any]) -> str:
        """Insert a document, assigning an "_id" if absent, and return its id."""

    def find_one(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Return the first matching document or None."""
        return next(iter(self.find(collection, filter)), None)

    def replace_in_array(
        self,
        collection: str,
        filter: Dict[str, Any],
        field: str,
        old: Any,
        new: Any
    ) -> int:
        """
        Replace one member of an array field on every matching document.

        Reads the full array, replaces the first occurrence of old and writes
        the array back, guarded by the document version. If new is already a
        member, old is removed instead so the array never holds duplicates.

        Args:
            collection: Collection name
            filter: Additional filter; documents must also contain old in field
            field: Array field name
            old: Member to replace
            new: Replacement member

        Returns:
            Number of documents rewritten

        Raises:
            WriteConflict: If a document changed between read and write
        """
        query = dict(filter or {})
        query[field] = old

        replaced = 0
        for document in list(self.find(collection, query)):
            values = get_field(document, field) or []
            updated = replace_member(values, old, new)
            if updated == values:
                continue

            version = document.get("_version")
            if not self.update_one(collection, document["_id"], {field: updated}, expected_version=version):
                raise WriteConflict(collection, document["_id"], version)
            replaced += 1

        logger.debug(f"Replaced {old} with {new} in {collection}.{field} on {replaced} documents")
        return replaced
