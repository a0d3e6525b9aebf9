"""
Reconciliation Module for Account Merges

This module moves a source account's content and reputation onto a target
account.

Main components:
- ledger: Reads the votes that count toward karma
- karma: Recomputes karma from the vote ledger
- transfer: Rewrites owner references collection by collection
- resolver: Collapses per-user read statuses by recency
- plan: The ordered merge steps
- orchestrator: Runs the plan and collects per-step results

Usage:
    from account_merge.reconciliation import MergeOrchestrator

    orchestrator = MergeOrchestrator(store)
    result = orchestrator.merge_accounts(source_id, target_id, dry_run=True)
    print(result.state, result.failed_step)
"""

from account_merge.reconciliation.identities import find_identities_by_email, find_identity, load_identity
from account_merge.reconciliation.karma import KarmaAggregator
from account_merge.reconciliation.ledger import LedgerReader
from account_merge.reconciliation.orchestrator import MergeOrchestrator, MergeResult, MergeState, StepResult
from account_merge.reconciliation.plan import DEFAULT_EDITABLE_FIELDS, build_default_plan
from account_merge.reconciliation.resolver import ConflictResolver
from account_merge.reconciliation.slugs import get_unused_slug
from account_merge.reconciliation.transfer import OwnershipTransfer, TransferReport

__all__ = [
    "ConflictResolver",
    "DEFAULT_EDITABLE_FIELDS",
    "KarmaAggregator",
    "LedgerReader",
    "MergeOrchestrator",
    "MergeResult",
    "MergeState",
    "OwnershipTransfer",
    "StepResult",
    "TransferReport",
    "build_default_plan",
    "find_identities_by_email",
    "find_identity",
    "get_unused_slug",
    "load_identity",
]
