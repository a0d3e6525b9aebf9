"""
Document Store Module

The merge tool reads and writes forum data only through the DocumentStore
contract.

Main components:
- base: DocumentStore contract and filter helpers
- memory: In-memory backend for rehearsals and tests
- postgres: JSONB-table backend on PostgreSQL
"""

from account_merge.store.base import DocumentStore, get_field, matches, replace_member, set_field
from account_merge.store.memory import InMemoryDocumentStore
from account_merge.store.postgres import PostgresDocumentStore

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "PostgresDocumentStore",
    "get_field",
    "matches",
    "replace_member",
    "set_field",
]
