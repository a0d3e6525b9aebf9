"""
Account Merge Tool

Merges every piece of content and reputation owned by a source forum account
into a target account, then recomputes the target's karma from its votes.

Usage:
    from account_merge.store import InMemoryDocumentStore
    from account_merge.reconciliation import MergeOrchestrator

    orchestrator = MergeOrchestrator(store)
    result = orchestrator.merge_accounts("sourceId", "targetId", dry_run=True)
"""

__version__ = "1.0.0"
