"""Review workflow endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reviewflow.api.deps import get_current_actor, get_db, get_review_service
from reviewflow.api.schemas.review import ActionRequest, WorkflowSnapshot
from reviewflow.core.identity import Actor
from reviewflow.core.review.service import ReviewService

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.get("/{workflow_id}", response_model=WorkflowSnapshot)
async def get_workflow(
    workflow_id: UUID,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """Get the full snapshot of a workflow."""
    workflow = service.get_workflow(workflow_id)
    return WorkflowSnapshot.model_validate(service.snapshot(workflow))


@router.post("/{workflow_id}/actions", response_model=WorkflowSnapshot)
async def perform_action(
    workflow_id: UUID,
    body: ActionRequest,
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """
    Apply an action to a step.

    Returns the fresh snapshot on success. On any error nothing is applied
    and the caller should re-read the workflow.
    """
    try:
        snapshot = service.perform(
            workflow_id,
            body.action,
            body.step_id,
            actor,
            comments=body.comments,
            signature_data=body.signature_data,
            signature_method=body.signature_method,
        )
        db.commit()
    except Exception:
        db.rollback()
        service.discard_pending()
        raise

    await service.dispatch_pending()
    return WorkflowSnapshot.model_validate(snapshot)
