"""
In-memory document store.

Used for dry-run rehearsals and tests. Reads and writes deep-copy documents so
callers never alias stored state, and every write is counted.
"""

import copy
import logging
import uuid
from typing import Dict, Any, Iterator, List, Optional

from account_merge.errors import ValidationError, WriteConflict
from account_merge.store.base import DocumentStore, matches, set_field

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed DocumentStore."""

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        """
        Initialize the store.

        Args:
            collections: Optional initial documents keyed by collection name.
                Loading them does not count as writes.
        """
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.write_count = 0

        for name, documents in (collections or {}).items():
            self.load(name, documents)

        logger.debug("Initialized InMemoryDocumentStore")

    def load(self, collection: str, documents: List[Dict[str, Any]]) -> None:
        """Seed a collection without counting writes."""
        docs = self._collections.setdefault(collection, {})
        for document in documents:
            stored = copy.deepcopy(document)
            stored.setdefault("_id", uuid.uuid4().hex)
            stored.setdefault("_version", 1)
            docs[stored["_id"]] = stored

    def snapshot(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Return a deep copy of all stored data."""
        return copy.deepcopy(self._collections)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by id."""
        document = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    def find(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        for document in list(self._collections.get(collection, {}).values()):
            if matches(document, filter):
                yield copy.deepcopy(document)

    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        return sum(
            1 for document in self._collections.get(collection, {}).values()
            if matches(document, filter)
        )

    def update_one(
        self,
        collection: str,
        doc_id: str,
        set_fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> bool:
        document = self._collections.get(collection, {}).get(doc_id)
        if document is None:
            return False

        if expected_version is not None and document.get("_version") != expected_version:
            raise WriteConflict(collection, doc_id, expected_version)

        self._apply(document, set_fields)
        return True

    def update_many(self, collection: str, filter: Dict[str, Any], set_fields: Dict[str, Any]) -> int:
        targets = [
            document for document in self._collections.get(collection, {}).values()
            if matches(document, filter)
        ]
        for document in targets:
            self._apply(document, set_fields)
        return len(targets)

    def insert_one(self, collection: str, record: Dict[str, Any]) -> str:
        docs = self._collections.setdefault(collection, {})
        stored = copy.deepcopy(record)
        stored.setdefault("_id", uuid.uuid4().hex)

        if stored["_id"] in docs:
            raise ValidationError(f"Duplicate _id {stored['_id']} in {collection}")

        stored["_version"] = 1
        docs[stored["_id"]] = stored
        self.write_count += 1
        return stored["_id"]

    def _apply(self, document: Dict[str, Any], set_fields: Dict[str, Any]) -> None:
        for field, value in set_fields.items():
            set_field(document, field, value)
        document["_version"] = document.get("_version", 0) + 1
        self.write_count += 1
