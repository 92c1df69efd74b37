"""Version coordinator: starts review cycles and bridges revisions to new versions."""

import logging
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reviewflow.core.identity import Actor
from reviewflow.core.review.errors import (
    DeliverableNotFoundError,
    MissingArtifactError,
    NoRevisionPendingError,
    WorkflowAlreadyActiveError,
)
from reviewflow.core.review.ledger import HistoryLedger
from reviewflow.core.review.sequencer import StepSequencer, StepTemplate
from reviewflow.core.review.states import HistoryAction, WorkflowStatus
from reviewflow.db.models import Deliverable, DeliverableVersion, ReviewWorkflow

logger = logging.getLogger(__name__)


class VersionCoordinator:
    """
    Owns the one-active-workflow-per-deliverable rule.

    A new workflow is only created for a deliverable that has never been
    submitted, or whose active workflow ended in ``revision_requested``.
    Older workflows are never touched again and stay queryable.
    """

    def __init__(
        self,
        db: Session,
        *,
        sequencer: Optional[StepSequencer] = None,
        ledger: Optional[HistoryLedger] = None,
    ):
        self.db = db
        self.sequencer = sequencer or StepSequencer()
        self.ledger = ledger or HistoryLedger(db)

    def lock_deliverable(self, deliverable_id: UUID) -> Deliverable:
        deliverable = self.db.execute(
            select(Deliverable)
            .where(Deliverable.id == deliverable_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if deliverable is None:
            raise DeliverableNotFoundError(f"Deliverable {deliverable_id} not found")
        return deliverable

    def start_first_workflow(
        self,
        deliverable_id: UUID,
        templates: Iterable[StepTemplate],
        actor: Actor,
    ) -> ReviewWorkflow:
        """
        Submit a draft deliverable for its first review.

        Raises:
            DeliverableNotFoundError: Unknown deliverable
            WorkflowAlreadyActiveError: The deliverable was already submitted
            EmptyWorkflowError / InvalidStepTemplateError: Bad step list
        """
        deliverable = self.lock_deliverable(deliverable_id)
        if deliverable.active_workflow_id is not None:
            active = deliverable.active_workflow
            raise WorkflowAlreadyActiveError(
                f"Deliverable {deliverable.id} already has a review workflow ({active.status}); "
                "use resubmit after a revision request",
                workflow_id=deliverable.active_workflow_id,
            )
        return self.start_workflow(deliverable, templates, actor)

    def start_workflow(
        self,
        deliverable: Deliverable,
        templates: Iterable[StepTemplate],
        actor: Actor,
        previous: Optional[ReviewWorkflow] = None,
    ) -> ReviewWorkflow:
        """Create a pending workflow for the deliverable's current version."""
        templates = self.sequencer.validate_templates(templates)

        workflow = ReviewWorkflow(
            deliverable_id=deliverable.id,
            version_number=deliverable.current_version,
            status=WorkflowStatus.PENDING.value,
            previous_workflow_id=previous.id if previous else None,
            created_by=actor.id,
        )
        self.db.add(workflow)
        self.db.add_all(self.sequencer.build_steps(workflow, templates))
        self.db.flush()

        deliverable.active_workflow = workflow
        deliverable.active_workflow_id = workflow.id
        self.db.flush()

        self.ledger.append(
            workflow.id,
            HistoryAction.WORKFLOW_CREATED,
            actor=actor,
            extra_data={
                "version_number": workflow.version_number,
                "steps": [t.name for t in templates],
            },
        )
        logger.info(
            "Created review workflow %s for deliverable %s v%s with %d steps",
            workflow.id, deliverable.id, workflow.version_number, len(templates),
        )
        return workflow

    def resubmit(
        self,
        deliverable_id: UUID,
        new_artifact_ref: str,
        actor: Actor,
        change_log: Optional[str] = None,
    ) -> ReviewWorkflow:
        """
        Start the next review cycle after a revision request.

        The new workflow reuses the previous step template with every step
        reset to pending.

        Raises:
            DeliverableNotFoundError: Unknown deliverable
            NoRevisionPendingError: Active workflow is not ``revision_requested``
            MissingArtifactError: No new artifact reference given
        """
        deliverable = self.lock_deliverable(deliverable_id)
        previous = deliverable.active_workflow
        if previous is None or previous.status != WorkflowStatus.REVISION_REQUESTED.value:
            status = previous.status if previous is not None else "never submitted"
            raise NoRevisionPendingError(
                f"Deliverable {deliverable.id} has no revision pending (active workflow: {status})",
                workflow_id=previous.id if previous is not None else None,
            )

        if not new_artifact_ref or not new_artifact_ref.strip():
            raise MissingArtifactError(
                "A revised artifact reference is required to resubmit",
                workflow_id=previous.id,
            )

        from_version = deliverable.current_version
        deliverable.current_version = from_version + 1
        deliverable.artifact_ref = new_artifact_ref.strip()
        self.db.add(DeliverableVersion(
            deliverable_id=deliverable.id,
            version_number=deliverable.current_version,
            artifact_ref=deliverable.artifact_ref,
            change_log=change_log,
            created_by=actor.id,
        ))
        self.db.flush()

        workflow = self.start_workflow(
            deliverable,
            self.sequencer.clone_templates(previous),
            actor,
            previous=previous,
        )
        self.ledger.append(
            workflow.id,
            HistoryAction.VERSION_RESUBMITTED,
            actor=actor,
            comments=change_log,
            extra_data={
                "from_version": from_version,
                "to_version": deliverable.current_version,
                "previous_workflow_id": str(previous.id),
            },
        )
        logger.info(
            "Deliverable %s resubmitted as v%s (workflow %s replaces %s)",
            deliverable.id, deliverable.current_version, workflow.id, previous.id,
        )
        return workflow

    def lineage(self, deliverable_id: UUID) -> List[ReviewWorkflow]:
        """Every workflow of a deliverable, oldest version first."""
        query = (
            select(ReviewWorkflow)
            .where(ReviewWorkflow.deliverable_id == deliverable_id)
            .order_by(ReviewWorkflow.version_number.asc())
        )
        return list(self.db.execute(query).scalars())

    def can_resubmit(self, deliverable: Deliverable) -> bool:
        workflow = deliverable.active_workflow
        return workflow is not None and workflow.status == WorkflowStatus.REVISION_REQUESTED.value
