"""
Prometheus Metrics for Account Merges

Counters and histograms describing merge runs and their steps. Metrics live on
an injectable CollectorRegistry and are pushed to a Pushgateway after a run,
since the merge tool is a short-lived batch job rather than a scrape target.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway

logger = logging.getLogger(__name__)


class MergeMetrics:
    """Prometheus metrics for account merge runs."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "account_merge"):
        """
        Initialize merge metrics.

        Args:
            registry: Prometheus registry (a fresh one if not provided)
            namespace: Metric name prefix
        """
        self.registry = registry or CollectorRegistry()
        self.namespace = namespace

        # Merge run counter
        self.merge_runs_total = Counter(
            f'{namespace}_runs_total',
            'Total number of account merge runs',
            ['status', 'mode'],
            registry=self.registry
        )

        # Step outcomes
        self.steps_total = Counter(
            f'{namespace}_steps_total',
            'Total merge steps executed by outcome',
            ['step', 'status', 'mode'],
            registry=self.registry
        )

        # Documents moved
        self.documents_transferred_total = Counter(
            f'{namespace}_documents_transferred_total',
            'Total documents whose owner was rewritten',
            ['collection'],
            registry=self.registry
        )

        # Step duration
        self.step_duration_seconds = Histogram(
            f'{namespace}_step_duration_seconds',
            'Duration of merge steps in seconds',
            ['step'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 300],
            registry=self.registry
        )

        logger.debug("MergeMetrics initialized")

    @staticmethod
    def _mode(dry_run: bool) -> str:
        return "dry_run" if dry_run else "commit"

    def record_step(
        self,
        step: str,
        status: str,
        duration_seconds: float,
        dry_run: bool,
        details: Optional[Dict] = None
    ) -> None:
        """
        Record the outcome of one step.

        Args:
            step: Step name
            status: succeeded / failed
            duration_seconds: Step duration
            dry_run: Whether the run was a dry run
            details: Step report; `collection` and `transferred` are counted
        """
        self.steps_total.labels(step=step, status=status, mode=self._mode(dry_run)).inc()
        self.step_duration_seconds.labels(step=step).observe(duration_seconds)

        if details and details.get("transferred"):
            self.documents_transferred_total.labels(
                collection=details.get("collection", step)
            ).inc(details["transferred"])

    def record_merge_run(self, status: str, dry_run: bool) -> None:
        """
        Record a finished merge run.

        Args:
            status: Final merge state (complete/failed)
            dry_run: Whether the run was a dry run
        """
        self.merge_runs_total.labels(status=status, mode=self._mode(dry_run)).inc()
        logger.debug(f"Recorded merge run: status={status}, dry_run={dry_run}")

    def push(self, gateway_url: str, job_name: str = "account_merge",
             grouping_key: Optional[Dict[str, str]] = None) -> None:
        """
        Push metrics to a Prometheus Pushgateway.

        Args:
            gateway_url: Pushgateway address
            job_name: Job label
            grouping_key: Optional grouping labels

        Raises:
            Exception: If the push fails
        """
        try:
            push_to_gateway(
                gateway_url,
                job=job_name,
                registry=self.registry,
                grouping_key=grouping_key or {}
            )
            logger.info(f"Pushed metrics to gateway: {gateway_url}")
        except Exception as e:
            logger.error(f"Failed to push metrics to gateway: {e}")
            raise
