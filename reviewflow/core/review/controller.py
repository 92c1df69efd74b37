"""Workflow controller: the authoritative review state machine.

Handles step transitions with validation, access checks, signature gating
and history logging. Check-then-act runs as one unit against the database:

1. The workflow row is read ``FOR UPDATE`` (fresh values, row lock where the
   backend supports it).
2. The step row is read ``FOR UPDATE`` and checked against the derived
   current step.
3. The step is resolved with ``UPDATE ... WHERE status = 'pending'``; zero
   rows means another writer got there first.
4. The workflow status is written with ``UPDATE ... WHERE status = <read>``.

Any ``ReviewError`` leaves the transaction dirty; callers roll back.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from reviewflow.core.identity import AccessPolicy, Actor
from reviewflow.core.review.errors import (
    ActorNotAllowedError,
    SignatureRequiredError,
    StepNotActiveError,
    StepNotFoundError,
    WorkflowAlreadyTerminalError,
)
from reviewflow.core.review.ledger import HistoryLedger
from reviewflow.core.review.sequencer import StepSequencer
from reviewflow.core.review.signatures import SignatureStore
from reviewflow.core.review.states import (
    HistoryAction,
    ReviewAction,
    SignatureMethod,
    StepStatus,
    TERMINAL_STATES,
    TransitionRule,
    WorkflowStatus,
    get_transition_rule,
    is_terminal,
)
from reviewflow.db.base import utcnow
from reviewflow.db.models import ReviewHistory, ReviewStep, ReviewWorkflow

logger = logging.getLogger(__name__)


class WorkflowController:
    """
    State machine for one review workflow.

    Accepts approve / reject / request-revision / add-signature actions,
    validates them against the step sequencer and records each applied
    action as exactly one history entry.
    """

    def __init__(
        self,
        db: Session,
        *,
        sequencer: Optional[StepSequencer] = None,
        ledger: Optional[HistoryLedger] = None,
        signatures: Optional[SignatureStore] = None,
        access_policy: Optional[AccessPolicy] = None,
    ):
        self.db = db
        self.sequencer = sequencer or StepSequencer()
        self.ledger = ledger or HistoryLedger(db)
        self.signatures = signatures or SignatureStore(db, self.sequencer)
        self.access_policy = access_policy or AccessPolicy()

    def perform(
        self,
        workflow: ReviewWorkflow,
        action: ReviewAction,
        step_id: UUID,
        actor: Actor,
        *,
        comments: Optional[str] = None,
        signature_data: Optional[str] = None,
        signature_method: Optional[SignatureMethod] = None,
    ) -> ReviewHistory:
        """
        Dispatch an action by name.

        Returns:
            The history entry recording the applied action
        """
        action = ReviewAction(action)
        if action == ReviewAction.ADD_SIGNATURE:
            return self.add_signature(workflow, step_id, actor, signature_data, signature_method)
        if action == ReviewAction.APPROVE_STEP:
            return self.approve_step(workflow, step_id, actor, comments)
        if action == ReviewAction.REJECT_STEP:
            return self.reject_step(workflow, step_id, actor, comments)
        return self.request_revision(workflow, step_id, actor, comments)

    def approve_step(
        self,
        workflow: ReviewWorkflow,
        step_id: UUID,
        actor: Actor,
        comments: Optional[str] = None,
    ) -> ReviewHistory:
        """
        Approve the current step.

        The workflow becomes ``approved`` when this was the last step and
        ``in_progress`` otherwise.

        Raises:
            WorkflowAlreadyTerminalError, StepNotFoundError, StepNotActiveError,
            ActorNotAllowedError, SignatureRequiredError
        """
        return self._resolve(workflow, step_id, actor, get_transition_rule(ReviewAction.APPROVE_STEP), comments)

    def reject_step(
        self,
        workflow: ReviewWorkflow,
        step_id: UUID,
        actor: Actor,
        comments: Optional[str] = None,
    ) -> ReviewHistory:
        """Reject the current step; the workflow terminates as ``rejected``."""
        return self._resolve(workflow, step_id, actor, get_transition_rule(ReviewAction.REJECT_STEP), comments)

    def request_revision(
        self,
        workflow: ReviewWorkflow,
        step_id: UUID,
        actor: Actor,
        comments: Optional[str] = None,
    ) -> ReviewHistory:
        """Flag the current step for revision; ends this workflow instance."""
        return self._resolve(workflow, step_id, actor, get_transition_rule(ReviewAction.REQUEST_REVISION), comments)

    def add_signature(
        self,
        workflow: ReviewWorkflow,
        step_id: UUID,
        actor: Actor,
        payload: str,
        method: SignatureMethod,
    ) -> ReviewHistory:
        """
        Attach the actor's signature to the current step.

        Does not change step or workflow status.
        """
        step = self._load_actionable_step(workflow, step_id, actor, ReviewAction.ADD_SIGNATURE)
        try:
            signature = self.signatures.add_signature(workflow, step, actor, payload, method)
        except StepNotActiveError:
            self._log_rejected(workflow, step_id, actor, ReviewAction.ADD_SIGNATURE, "step not active")
            raise

        return self.ledger.append(
            workflow.id,
            HistoryAction.SIGNATURE_ADDED,
            actor=actor,
            step_id=step.id,
            extra_data={"signature_id": str(signature.id), "method": signature.method},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(
        self,
        workflow: ReviewWorkflow,
        step_id: UUID,
        actor: Actor,
        rule: TransitionRule,
        comments: Optional[str],
    ) -> ReviewHistory:
        step = self._load_actionable_step(workflow, step_id, actor, rule.action)

        if (
            rule.step_status == StepStatus.APPROVED
            and step.requires_signature
            and not self.signatures.has_signature(step.id)
        ):
            self._log_rejected(workflow, step_id, actor, rule.action, "signature required")
            raise SignatureRequiredError(
                f"Step {step.sequence} ({step.name}) requires a signature before approval",
                step_id=step.id,
                workflow_id=workflow.id,
            )

        now = utcnow()
        result = self.db.execute(
            update(ReviewStep)
            .where(
                ReviewStep.id == step.id,
                ReviewStep.status == StepStatus.PENDING.value,
            )
            .values(
                status=rule.step_status.value,
                comments=comments,
                resolved_by=actor.id,
                resolved_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._log_rejected(workflow, step_id, actor, rule.action, "lost race on step")
            raise StepNotActiveError(
                f"Step {step.sequence} ({step.name}) was resolved concurrently",
                step_id=step.id,
                workflow_id=workflow.id,
            )
        self.db.refresh(step)

        previous_status = WorkflowStatus(workflow.status)
        new_status = rule.workflow_status or self._status_after_approval(workflow)
        self._set_workflow_status(workflow, previous_status, new_status, now)

        entry = self.ledger.append(
            workflow.id,
            rule.history_action,
            actor=actor,
            step_id=step.id,
            comments=comments,
            extra_data={"from_status": previous_status.value, "to_status": new_status.value},
        )

        self.sequencer.advance(workflow, step)
        logger.info(
            "Workflow %s step %s %s by %s; workflow %s -> %s",
            workflow.id, step.sequence, rule.step_status.value, actor.id,
            previous_status.value, new_status.value,
        )
        return entry

    def _status_after_approval(self, workflow: ReviewWorkflow) -> WorkflowStatus:
        if self.sequencer.remaining(workflow):
            return WorkflowStatus.IN_PROGRESS
        return WorkflowStatus.APPROVED

    def _set_workflow_status(self, workflow, previous: WorkflowStatus, new: WorkflowStatus, now) -> None:
        values = {"status": new.value, "updated_at": now}
        if new in TERMINAL_STATES:
            values["completed_at"] = now

        result = self.db.execute(
            update(ReviewWorkflow)
            .where(
                ReviewWorkflow.id == workflow.id,
                ReviewWorkflow.status == previous.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StepNotActiveError(
                f"Workflow {workflow.id} changed concurrently",
                workflow_id=workflow.id,
            )
        self.db.refresh(workflow)

    def _load_actionable_step(
        self,
        workflow: ReviewWorkflow,
        step_id: UUID,
        actor: Actor,
        action: ReviewAction,
    ) -> ReviewStep:
        self._lock_workflow(workflow)

        if is_terminal(workflow.status):
            self._log_rejected(workflow, step_id, actor, action, f"workflow {workflow.status}")
            raise WorkflowAlreadyTerminalError(
                f"Workflow is already {workflow.status}; no further actions are accepted",
                step_id=step_id,
                workflow_id=workflow.id,
            )

        step = self.db.execute(
            select(ReviewStep)
            .where(ReviewStep.id == step_id, ReviewStep.workflow_id == workflow.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if step is None:
            raise StepNotFoundError(f"Step {step_id} not found in workflow {workflow.id}", workflow_id=workflow.id)

        try:
            self.sequencer.require_current(workflow, step)
        except StepNotActiveError:
            self._log_rejected(workflow, step_id, actor, action, "step not active")
            raise

        if not self.access_policy.can_act(actor, step):
            self._log_rejected(workflow, step_id, actor, action, "actor not allowed")
            raise ActorNotAllowedError(
                f"Step {step.sequence} ({step.name}) must be handled by {self.access_policy.describe(step)}",
                step_id=step.id,
                workflow_id=workflow.id,
            )
        return step

    def _lock_workflow(self, workflow: ReviewWorkflow) -> None:
        self.db.execute(
            select(ReviewWorkflow)
            .where(ReviewWorkflow.id == workflow.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        # Step statuses drive the derived current step; reload them too
        self.db.execute(
            select(ReviewStep)
            .where(ReviewStep.workflow_id == workflow.id)
            .execution_options(populate_existing=True)
        ).scalars().all()

    def _log_rejected(self, workflow, step_id, actor: Actor, action: ReviewAction, reason: str) -> None:
        logger.warning(
            "Rejected %s on workflow %s step %s by %s: %s",
            ReviewAction(action).value, workflow.id, step_id, actor.id, reason,
        )
