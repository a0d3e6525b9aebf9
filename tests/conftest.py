"""
Pytest configuration and shared fixtures.

`forum_store` seeds an in-memory document store with two accounts to merge:
alice (source) and bob (target), plus carol, who votes on alice's content and
already holds the slug "alice-old".
"""

from datetime import datetime, timezone

import pytest

from account_merge.store.memory import InMemoryDocumentStore

ALICE = "alice-id"
BOB = "bob-id"
CAROL = "carol-id"


def ts(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryDocumentStore()


@pytest.fixture
def forum_store():
    """In-memory store seeded with a small forum."""
    return InMemoryDocumentStore({
        "Users": [
            {"_id": ALICE, "slug": "alice", "oldSlugs": ["alice-2019"], "email": "Alice@Example.com",
             "karma": 2, "afKarma": 5},
            {"_id": BOB, "slug": "bob", "oldSlugs": ["bobby"], "email": "bob@example.com",
             "karma": 10, "afKarma": 7, "legacyKarma": 10},
            {"_id": CAROL, "slug": "alice-old", "oldSlugs": [], "email": "carol@example.com",
             "karma": 0, "afKarma": 0},
        ],
        "Posts": [
            {"_id": "post-a1", "userId": ALICE, "title": "A1",
             "contents": {"userId": ALICE, "html": "<p>a1</p>"}},
            {"_id": "post-a2", "userId": ALICE, "title": "A2"},
            {"_id": "post-a3", "userId": ALICE, "title": "A3"},
            {"_id": "post-b1", "userId": BOB, "title": "B1"},
            {"_id": "post-b2", "userId": BOB, "title": "B2"},
        ],
        "Revisions": [
            {"_id": "rev-1", "documentId": "post-a1", "fieldName": "contents", "userId": ALICE, "version": "1.0.0"},
            {"_id": "rev-2", "documentId": "post-a1", "fieldName": "contents", "userId": ALICE, "version": "1.1.0"},
            {"_id": "rev-3", "documentId": "post-a1", "fieldName": "contents", "userId": CAROL, "version": "1.2.0"},
        ],
        "Comments": [
            {"_id": "comment-a1", "userId": ALICE, "postId": "post-b1", "contents": {"userId": ALICE}},
        ],
        "Votes": [
            {"_id": "vote-1", "userId": CAROL, "authorIds": [ALICE], "power": 1, "cancelled": False},
            {"_id": "vote-2", "userId": CAROL, "authorIds": [ALICE], "power": 2, "cancelled": False},
            {"_id": "vote-3", "userId": CAROL, "authorIds": [ALICE], "power": -1, "cancelled": False},
            {"_id": "vote-4", "userId": CAROL, "authorIds": [ALICE], "power": 100, "cancelled": True},
            {"_id": "vote-5", "userId": CAROL, "authorIds": [ALICE], "power": 50, "cancelled": False, "legacy": True},
            {"_id": "vote-6", "userId": ALICE, "authorIds": [ALICE], "power": 3, "cancelled": False},
            {"_id": "vote-7", "userId": ALICE, "authorIds": [BOB], "power": 4, "cancelled": False},
        ],
        "Conversations": [
            {"_id": "conv-1", "participantIds": [ALICE, CAROL]},
            {"_id": "conv-2", "participantIds": [ALICE, BOB]},
        ],
        "ReadStatuses": [
            {"_id": "rs-1", "userId": ALICE, "postId": "post-b1", "isRead": True, "lastUpdated": ts(2024, 3, 1)},
            {"_id": "rs-2", "userId": BOB, "postId": "post-b1", "isRead": False, "lastUpdated": ts(2024, 1, 1)},
            {"_id": "rs-3", "userId": ALICE, "tagId": "tag-1", "isRead": True, "lastUpdated": ts(2024, 2, 1)},
            {"_id": "rs-4", "userId": BOB, "postId": "post-b2", "isRead": True, "lastUpdated": ts(2024, 2, 1)},
        ],
        "EmailTokens": [
            {"_id": "token-1", "userId": ALICE, "tokenType": "unsubscribeAll"},
        ],
    })
