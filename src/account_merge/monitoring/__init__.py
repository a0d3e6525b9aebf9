"""
Monitoring Module for Account Merges

Usage:
    from account_merge.monitoring import MergeMetrics

    metrics = MergeMetrics()
    metrics.record_merge_run(status="complete", dry_run=False)
    metrics.push("localhost:9091")
"""

from account_merge.monitoring.metrics import MergeMetrics

__all__ = [
    "MergeMetrics",
]
