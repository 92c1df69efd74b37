"""Deliverable catalog and submission endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from reviewflow.api.deps import get_current_actor, get_db, get_review_service
from reviewflow.api.schemas.review import (
    DeliverableCreate,
    DeliverableResponse,
    HistoryResponse,
    ResubmitRequest,
    SubmitForReview,
    VersionResponse,
    WorkflowSnapshot,
)
from reviewflow.core.identity import Actor
from reviewflow.core.review.service import ReviewService

router = APIRouter(prefix="/deliverables", tags=["deliverables"])


@router.post("", response_model=DeliverableResponse, status_code=status.HTTP_201_CREATED)
async def create_deliverable(
    body: DeliverableCreate,
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """Register a deliverable and its first artifact version."""
    try:
        deliverable = service.publish_deliverable(
            body.project_id,
            body.title,
            body.artifact_ref,
            actor,
            description=body.description,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    return DeliverableResponse.model_validate(deliverable)


@router.get("/{deliverable_id}", response_model=DeliverableResponse)
async def get_deliverable(
    deliverable_id: UUID,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """Get a deliverable with its projected review status."""
    deliverable = service.get_deliverable(deliverable_id)
    return DeliverableResponse.model_validate(service.deliverable_to_dict(deliverable))


@router.get("/{deliverable_id}/versions", response_model=List[VersionResponse])
async def list_versions(
    deliverable_id: UUID,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    return [VersionResponse.model_validate(v) for v in service.list_versions(deliverable_id)]


@router.get("/{deliverable_id}/workflows", response_model=List[WorkflowSnapshot])
async def list_workflows(
    deliverable_id: UUID,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """Every review workflow of the deliverable, oldest version first."""
    return [WorkflowSnapshot.model_validate(s) for s in service.lineage(deliverable_id)]


@router.get("/{deliverable_id}/history", response_model=List[HistoryResponse])
async def get_history(
    deliverable_id: UUID,
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """Audit trail across all review cycles of the deliverable."""
    return [HistoryResponse.model_validate(h) for h in service.deliverable_history(deliverable_id)]


@router.post("/{deliverable_id}/submit", response_model=WorkflowSnapshot, status_code=status.HTTP_201_CREATED)
async def submit_for_review(
    deliverable_id: UUID,
    body: SubmitForReview,
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """Start the first review workflow of a draft deliverable."""
    try:
        snapshot = service.submit_for_review(
            deliverable_id,
            [step.to_template() for step in body.steps],
            actor,
        )
        db.commit()
    except Exception:
        db.rollback()
        service.discard_pending()
        raise

    await service.dispatch_pending()
    return WorkflowSnapshot.model_validate(snapshot)


@router.post("/{deliverable_id}/resubmit", response_model=WorkflowSnapshot, status_code=status.HTTP_201_CREATED)
async def resubmit(
    deliverable_id: UUID,
    body: ResubmitRequest,
    db: Session = Depends(get_db),
    service: ReviewService = Depends(get_review_service),
    actor: Actor = Depends(get_current_actor),
):
    """Start the next review cycle with a revised artifact."""
    try:
        snapshot = service.resubmit(
            deliverable_id,
            body.new_artifact_ref,
            actor,
            change_log=body.change_log,
        )
        db.commit()
    except Exception:
        db.rollback()
        service.discard_pending()
        raise

    await service.dispatch_pending()
    return WorkflowSnapshot.model_validate(snapshot)
