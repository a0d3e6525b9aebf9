"""
Merge Orchestrator

Runs the merge plan for one (source, target) pair of accounts.

Steps run strictly in order. A failing step is logged and recorded, and the
run moves on to the next step, unless the step raised MergeAborted, which
stops the run. Nothing is rolled back. Every step is safe to
re-run, so the remedy for a failed merge is to run it again with the same
arguments.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional

from account_merge.errors import MergeAborted, ValidationError
from account_merge.reconciliation.identities import load_identity
from account_merge.reconciliation.karma import KarmaAggregator
from account_merge.reconciliation.plan import (
    DEFAULT_EDITABLE_FIELDS,
    MergeContext,
    MergeStep,
    build_default_plan,
)
from account_merge.reconciliation.resolver import ConflictResolver
from account_merge.reconciliation.transfer import OwnershipTransfer
from account_merge.store.base import DocumentStore
from account_merge.utils.correlation import get_correlation_id

logger = logging.getLogger(__name__)


class MergeState(Enum):
    """Lifecycle of a merge run."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


STEP_SUCCEEDED = "succeeded"
STEP_FAILED = "failed"


@dataclass
class StepResult:
    """Outcome of one merge step."""

    name: str
    status: str
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    duration_seconds: float = 0.0
    aborted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == STEP_SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "details": self.details,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 4),
            "aborted": self.aborted,
        }


@dataclass
class MergeResult:
    """Accumulated outcome of a merge run."""

    source_id: str
    target_id: str
    dry_run: bool
    state: MergeState = MergeState.PENDING
    current_step: Optional[int] = None
    steps: List[StepResult] = field(default_factory=list)
    correlation_id: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @property
    def failed_steps(self) -> List[StepResult]:
        return [step for step in self.steps if not step.succeeded]

    @property
    def failed_step(self) -> Optional[str]:
        """Name of the first step that failed, if any."""
        failed = self.failed_steps
        return failed[0].name if failed else None

    @property
    def aborted(self) -> bool:
        return any(step.aborted for step in self.steps)

    def step(self, name: str) -> Optional[StepResult]:
        """Look up a step result by name."""
        return next((s for s in self.steps if s.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "dry_run": self.dry_run,
            "state": self.state.value,
            "failed_step": self.failed_step,
            "aborted": self.aborted,
            "correlation_id": self.correlation_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "steps": [s.to_dict() for s in self.steps],
        }


class MergeOrchestrator:
    """
    Merges a source account into a target account.

    The step list and the rich-content field registry are passed in
    explicitly; nothing is read from process-wide state.
    """

    def __init__(
        self,
        store: DocumentStore,
        steps: Optional[List[MergeStep]] = None,
        editable_fields: Optional[Dict[str, List[str]]] = None,
        metrics=None
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Document store
            steps: Ordered merge steps (the default plan if not provided)
            editable_fields: Rich-content fields per collection
            metrics: Optional MergeMetrics
        """
        self.store = store
        self.steps = steps if steps is not None else build_default_plan()
        self.editable_fields = editable_fields if editable_fields is not None else DEFAULT_EDITABLE_FIELDS
        self.metrics = metrics

        self.transfer = OwnershipTransfer(store, editable_fields=self.editable_fields)
        self.resolver = ConflictResolver(store)
        self.karma = KarmaAggregator(store)

        logger.debug(f"MergeOrchestrator initialized with {len(self.steps)} steps")

    def merge_accounts(self, source_id: str, target_id: str, dry_run: bool) -> MergeResult:
        """
        Merge source_id into target_id.

        Args:
            source_id: Account to merge away (soft-deleted at the end)
            target_id: Surviving account
            dry_run: If True, every step only counts and nothing is written

        Returns:
            MergeResult with one StepResult per step

        Raises:
            ValidationError: On malformed arguments, before any step runs
            NotFound: If either account does not exist, before any step runs
        """
        self._validate(source_id, target_id, dry_run)

        source = load_identity(self.store, source_id)
        target = load_identity(self.store, target_id)

        result = MergeResult(
            source_id=source_id,
            target_id=target_id,
            dry_run=dry_run,
            correlation_id=get_correlation_id(),
        )
        context = MergeContext(
            store=self.store,
            source=source,
            target=target,
            dry_run=dry_run,
            transfer=self.transfer,
            resolver=self.resolver,
            karma=self.karma,
        )

        logger.info(f"Starting account merge {source_id} -> {target_id} (dry run: {dry_run})")
        result.started_at = datetime.now(timezone.utc).isoformat()
        result.state = MergeState.IN_PROGRESS

        for index, step in enumerate(self.steps):
            result.current_step = index
            outcome = self._run_step(step, context)
            result.steps.append(outcome)

            if outcome.aborted:
                skipped = [s.name for s in self.steps[index + 1:]]
                logger.error(f"Account merge aborted at step {step.name}; not run: {skipped}")
                break

        result.finished_at = datetime.now(timezone.utc).isoformat()
        result.state = MergeState.FAILED if result.failed_steps else MergeState.COMPLETE

        if self.metrics is not None:
            self.metrics.record_merge_run(result.state.value, dry_run)

        if result.failed_steps:
            logger.warning(
                f"Account merge {source_id} -> {target_id} finished with "
                f"{len(result.failed_steps)} failed steps: {[s.name for s in result.failed_steps]}"
            )
        else:
            logger.info(f"Account merge {source_id} -> {target_id} complete")

        if dry_run:
            logger.info("DRY RUN mode - no changes applied")

        return result

    def _validate(self, source_id: Any, target_id: Any, dry_run: Any) -> None:
        if not isinstance(dry_run, bool):
            raise ValidationError("dry_run must be a boolean")

        for label, value in (("source", source_id), ("target", target_id)):
            if not value or not isinstance(value, str):
                raise ValidationError(f"{label} user id must be a non-empty string")

        if source_id == target_id:
            raise ValidationError("Source and target user must differ")

    def _run_step(self, step: MergeStep, context: MergeContext) -> StepResult:
        logger.info(f"Running merge step: {step.name}")
        start = time.monotonic()

        try:
            details = step.run(context)
            outcome = StepResult(name=step.name, status=STEP_SUCCEEDED, details=details)

        except Exception as e:
            logger.error(
                f"Error in merge step {step.name}: {e}",
                extra={"step": step.name, "error": str(e)},
                exc_info=True
            )
            outcome = StepResult(
                name=step.name,
                status=STEP_FAILED,
                details=getattr(e, "details", {}),
                error=f"{type(e).__name__}: {e}",
                aborted=isinstance(e, MergeAborted),
            )

        outcome.duration_seconds = time.monotonic() - start

        if self.metrics is not None:
            self.metrics.record_step(
                step.name, outcome.status, outcome.duration_seconds, context.dry_run, outcome.details
            )

        return outcome
