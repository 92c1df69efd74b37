"""Review service for managing deliverable review workflows.

Provides the high-level API the HTTP layer talks to: catalog lookups,
workflow creation, actions, resubmission and snapshots. Writes are flushed
but never committed here; the caller owns the transaction and must roll
back on ``ReviewError``.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from reviewflow.core.config import Settings, get_settings
from reviewflow.core.identity import AccessPolicy, Actor
from reviewflow.core.review.controller import WorkflowController
from reviewflow.core.review.errors import (
    DeliverableNotFoundError,
    MissingArtifactError,
    WorkflowNotFoundError,
)
from reviewflow.core.review.ledger import HistoryLedger
from reviewflow.core.review.projector import project_status
from reviewflow.core.review.sequencer import StepSequencer, StepTemplate
from reviewflow.core.review.signatures import SignatureStore
from reviewflow.core.review.states import ReviewAction, SignatureMethod
from reviewflow.core.review.versions import VersionCoordinator
from reviewflow.db.models import (
    Deliverable,
    DeliverableVersion,
    ReviewHistory,
    ReviewSignature,
    ReviewStep,
    ReviewWorkflow,
)
from reviewflow.services.notifications import NotificationDispatcher, ReviewEvent

logger = logging.getLogger(__name__)


class ReviewService:
    """
    High-level service for deliverable reviews.

    Handles:
    - Publishing deliverables and submitting them for review
    - Applying step actions through the workflow controller
    - Resubmitting after a revision request
    - Building workflow snapshots with projected deliverable status
    - Queueing notification events until the caller has committed
    """

    def __init__(
        self,
        db: Session,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        access_policy: Optional[AccessPolicy] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher or NotificationDispatcher(self.settings)
        self.sequencer = StepSequencer()
        self.ledger = HistoryLedger(db)
        self.signatures = SignatureStore(db, self.sequencer)
        self.controller = WorkflowController(
            db,
            sequencer=self.sequencer,
            ledger=self.ledger,
            signatures=self.signatures,
            access_policy=access_policy,
        )
        self.versions = VersionCoordinator(db, sequencer=self.sequencer, ledger=self.ledger)
        self.pending_events: List[ReviewEvent] = []

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def publish_deliverable(
        self,
        project_id: UUID,
        title: str,
        artifact_ref: str,
        actor: Actor,
        *,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Register a new deliverable with its first artifact version.

        Returns:
            Deliverable dict, status ``draft``
        """
        if not artifact_ref or not artifact_ref.strip():
            raise MissingArtifactError("A deliverable needs an artifact reference")

        deliverable = Deliverable(
            project_id=project_id,
            title=title,
            description=description,
            artifact_ref=artifact_ref.strip(),
            current_version=1,
            created_by=actor.id,
        )
        self.db.add(deliverable)
        self.db.flush()

        self.db.add(DeliverableVersion(
            deliverable_id=deliverable.id,
            version_number=1,
            artifact_ref=deliverable.artifact_ref,
            change_log="Initial version",
            created_by=actor.id,
        ))
        self.db.flush()

        logger.info("Published deliverable %s (%s) in project %s", deliverable.id, title, project_id)
        return self.deliverable_to_dict(deliverable)

    def get_deliverable(self, deliverable_id: UUID) -> Deliverable:
        deliverable = self.db.query(Deliverable).filter(Deliverable.id == deliverable_id).first()
        if not deliverable:
            raise DeliverableNotFoundError(f"Deliverable {deliverable_id} not found")
        return deliverable

    def get_workflow(self, workflow_id: UUID) -> ReviewWorkflow:
        workflow = self.db.query(ReviewWorkflow).filter(ReviewWorkflow.id == workflow_id).first()
        if not workflow:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)
        return workflow

    def list_versions(self, deliverable_id: UUID) -> List[Dict[str, Any]]:
        self.get_deliverable(deliverable_id)
        versions = (
            self.db.query(DeliverableVersion)
            .filter(DeliverableVersion.deliverable_id == deliverable_id)
            .order_by(DeliverableVersion.version_number.asc())
            .all()
        )
        return [self._version_to_dict(v) for v in versions]

    def lineage(self, deliverable_id: UUID) -> List[Dict[str, Any]]:
        """Snapshots of every workflow the deliverable went through, oldest first."""
        self.get_deliverable(deliverable_id)
        return [self.snapshot(w) for w in self.versions.lineage(deliverable_id)]

    def deliverable_history(self, deliverable_id: UUID) -> List[Dict[str, Any]]:
        """History entries across all of a deliverable's workflows."""
        self.get_deliverable(deliverable_id)
        return [self._history_to_dict(h) for h in self.ledger.entries_for_deliverable(deliverable_id)]

    # ------------------------------------------------------------------
    # Workflow lifecycle
    # ------------------------------------------------------------------

    def submit_for_review(
        self,
        deliverable_id: UUID,
        steps: Iterable[StepTemplate],
        actor: Actor,
    ) -> Dict[str, Any]:
        """
        Create the first review workflow of a draft deliverable.

        Raises:
            DeliverableNotFoundError, WorkflowAlreadyActiveError,
            EmptyWorkflowError, InvalidStepTemplateError
        """
        workflow = self.versions.start_first_workflow(deliverable_id, steps, actor)
        first = self.sequencer.current_step(workflow)
        self._queue_event("workflow_created", workflow, actor, step=first)
        return self.snapshot(workflow)

    def perform(
        self,
        workflow_id: UUID,
        action: ReviewAction,
        step_id: UUID,
        actor: Actor,
        *,
        comments: Optional[str] = None,
        signature_data: Optional[str] = None,
        signature_method: Optional[SignatureMethod] = None,
    ) -> Dict[str, Any]:
        """
        Apply one action to a step of a workflow.

        Returns:
            Fresh workflow snapshot

        Raises:
            ReviewError: Any validation failure; nothing was applied
        """
        workflow = self.get_workflow(workflow_id)
        entry = self.controller.perform(
            workflow,
            action,
            step_id,
            actor,
            comments=comments,
            signature_data=signature_data,
            signature_method=signature_method,
        )
        step = next((s for s in workflow.steps if s.id == entry.step_id), None)
        self._queue_event(entry.action, workflow, actor, step=step, comments=comments)
        return self.snapshot(workflow)

    def resubmit(
        self,
        deliverable_id: UUID,
        new_artifact_ref: str,
        actor: Actor,
        *,
        change_log: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Start the next review cycle after a revision request.

        Raises:
            DeliverableNotFoundError, NoRevisionPendingError, MissingArtifactError
        """
        workflow = self.versions.resubmit(deliverable_id, new_artifact_ref, actor, change_log=change_log)
        self._queue_event("version_resubmitted", workflow, actor, comments=change_log)
        return self.snapshot(workflow)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def dispatch_pending(self) -> int:
        """
        Hand queued events to the dispatcher. Call only after commit.

        Returns:
            Number of events delivered
        """
        events, self.pending_events = self.pending_events, []
        delivered = 0
        for event in events:
            try:
                if await self.dispatcher.dispatch(event):
                    delivered += 1
            except Exception:
                logger.exception("Failed to dispatch %s event for workflow %s", event.event_type, event.workflow_id)
        return delivered

    def discard_pending(self) -> None:
        """Drop queued events after a rollback."""
        self.pending_events = []

    def _queue_event(
        self,
        event_type: str,
        workflow: ReviewWorkflow,
        actor: Actor,
        *,
        step: Optional[ReviewStep] = None,
        comments: Optional[str] = None,
    ) -> None:
        deliverable = workflow.deliverable
        self.pending_events.append(ReviewEvent(
            event_type=event_type,
            deliverable_id=str(workflow.deliverable_id),
            workflow_id=str(workflow.id),
            status=workflow.status,
            actor_id=actor.id,
            actor_name=actor.display_name,
            step_id=str(step.id) if step else None,
            context={
                "deliverable_title": deliverable.title,
                "version_number": workflow.version_number,
                "step_name": step.name if step else None,
                "comments": comments,
            },
        ))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def snapshot(self, workflow: ReviewWorkflow) -> Dict[str, Any]:
        """Full, self-contained view of one workflow."""
        current = self.sequencer.current_step(workflow)
        steps = sorted(workflow.steps, key=lambda s: s.sequence)
        signatures = self.signatures.signatures_for_workflow(workflow.id)
        history = self.ledger.entries_for(workflow.id, limit=self.settings.history_limit)

        signature_counts: Dict[UUID, int] = {}
        for sig in signatures:
            signature_counts[sig.step_id] = signature_counts.get(sig.step_id, 0) + 1

        return {
            "workflow_id": workflow.id,
            "deliverable_id": workflow.deliverable_id,
            "version_number": workflow.version_number,
            "status": workflow.status,
            "deliverable_status": project_status(workflow.deliverable).value,
            "is_active": workflow.deliverable.active_workflow_id == workflow.id,
            "previous_workflow_id": workflow.previous_workflow_id,
            "current_step_index": self.sequencer.current_step_index(workflow),
            "current_step_id": current.id if current else None,
            "steps": [
                self._step_to_dict(s, signature_counts.get(s.id, 0), current)
                for s in steps
            ],
            "signatures": [self._signature_to_dict(s) for s in signatures],
            "history": [self._history_to_dict(h) for h in history],
            "created_by": workflow.created_by,
            "created_at": workflow.created_at,
            "updated_at": workflow.updated_at,
            "completed_at": workflow.completed_at,
        }

    def deliverable_to_dict(self, deliverable: Deliverable) -> Dict[str, Any]:
        return {
            "id": deliverable.id,
            "project_id": deliverable.project_id,
            "title": deliverable.title,
            "description": deliverable.description,
            "artifact_ref": deliverable.artifact_ref,
            "current_version": deliverable.current_version,
            "status": project_status(deliverable).value,
            "active_workflow_id": deliverable.active_workflow_id,
            "can_resubmit": self.versions.can_resubmit(deliverable),
            "created_by": deliverable.created_by,
            "created_at": deliverable.created_at,
            "updated_at": deliverable.updated_at,
        }

    def _version_to_dict(self, version: DeliverableVersion) -> Dict[str, Any]:
        return {
            "id": version.id,
            "version_number": version.version_number,
            "artifact_ref": version.artifact_ref,
            "change_log": version.change_log,
            "created_by": version.created_by,
            "created_at": version.created_at,
        }

    def _step_to_dict(self, step: ReviewStep, signature_count: int, current: Optional[ReviewStep]) -> Dict[str, Any]:
        return {
            "id": step.id,
            "sequence": step.sequence,
            "name": step.name,
            "description": step.description,
            "requires_signature": step.requires_signature,
            "approver_type": step.approver_type,
            "approver_id": step.approver_id,
            "approver_name": step.approver_name,
            "status": step.status,
            "is_current": current is not None and current.id == step.id,
            "signature_count": signature_count,
            "comments": step.comments,
            "resolved_by": step.resolved_by,
            "resolved_at": step.resolved_at,
        }

    def _signature_to_dict(self, signature: ReviewSignature) -> Dict[str, Any]:
        return {
            "id": signature.id,
            "step_id": signature.step_id,
            "sequence": signature.sequence,
            "signer_id": signature.signer_id,
            "signer_name": signature.signer_name,
            "method": signature.method,
            "payload": signature.payload,
            "ip_address": signature.ip_address,
            "signed_at": signature.signed_at,
        }

    def _history_to_dict(self, entry: ReviewHistory) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "workflow_id": entry.workflow_id,
            "step_id": entry.step_id,
            "sequence": entry.sequence,
            "action": entry.action,
            "actor_id": entry.actor_id,
            "actor_type": entry.actor_type,
            "comments": entry.comments,
            "extra_data": entry.extra_data or {},
            "created_at": entry.created_at,
        }
