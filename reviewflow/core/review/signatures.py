"""Signature store: records and queries signatures scoped to a step."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reviewflow.core.identity import Actor
from reviewflow.core.review.errors import DuplicateSignatureError
from reviewflow.core.review.sequencer import StepSequencer
from reviewflow.core.review.states import SignatureMethod
from reviewflow.db.models import ReviewSignature, ReviewStep, ReviewWorkflow

logger = logging.getLogger(__name__)


class SignatureStore:
    """
    Signatures are write-once: a signer signs a step at most once, and only
    while that step is the workflow's current step.
    """

    def __init__(self, db: Session, sequencer: Optional[StepSequencer] = None):
        self.db = db
        self.sequencer = sequencer or StepSequencer()

    def add_signature(
        self,
        workflow: ReviewWorkflow,
        step: ReviewStep,
        signer: Actor,
        payload: str,
        method: SignatureMethod,
    ) -> ReviewSignature:
        """
        Record a signature for the current step.

        Raises:
            StepNotActiveError: If ``step`` is not the current step
            DuplicateSignatureError: If ``signer`` already signed ``step``
        """
        method = SignatureMethod(method)
        self.sequencer.require_current(workflow, step)

        if self._find(step.id, signer.id) is not None:
            raise DuplicateSignatureError(
                f"{signer.display_name} has already signed step {step.sequence} ({step.name})",
                step_id=step.id,
                workflow_id=workflow.id,
            )

        signature = ReviewSignature(
            workflow_id=workflow.id,
            step_id=step.id,
            sequence=self.next_sequence(workflow.id),
            signer_id=signer.id,
            signer_name=signer.name,
            payload=payload,
            method=method.value,
            ip_address=signer.ip_address,
            user_agent=signer.user_agent,
        )
        self.db.add(signature)
        try:
            self.db.flush()
        except IntegrityError as e:
            # Lost a race against the same signer; the transaction must be rolled back
            raise DuplicateSignatureError(
                f"{signer.display_name} has already signed step {step.sequence} ({step.name})",
                step_id=step.id,
                workflow_id=workflow.id,
            ) from e

        logger.info("Signature %s added to step %s by %s (%s)", signature.id, step.id, signer.id, method.value)
        return signature

    def next_sequence(self, workflow_id: UUID) -> int:
        current = self.db.execute(
            select(func.max(ReviewSignature.sequence)).where(ReviewSignature.workflow_id == workflow_id)
        ).scalar()
        return (current or 0) + 1

    def signatures_for(self, step_id: UUID) -> List[ReviewSignature]:
        """Signatures of one step in insertion order."""
        query = (
            select(ReviewSignature)
            .where(ReviewSignature.step_id == step_id)
            .order_by(ReviewSignature.sequence.asc())
        )
        return list(self.db.execute(query).scalars())

    def signatures_for_workflow(self, workflow_id: UUID) -> List[ReviewSignature]:
        query = (
            select(ReviewSignature)
            .where(ReviewSignature.workflow_id == workflow_id)
            .order_by(ReviewSignature.sequence.asc())
        )
        return list(self.db.execute(query).scalars())

    def signature_count(self, step_id: UUID) -> int:
        return self.db.execute(
            select(func.count(ReviewSignature.id)).where(ReviewSignature.step_id == step_id)
        ).scalar_one()

    def has_signature(self, step_id: UUID) -> bool:
        return self.signature_count(step_id) > 0

    def _find(self, step_id: UUID, signer_id: str) -> Optional[ReviewSignature]:
        return self.db.execute(
            select(ReviewSignature).where(
                ReviewSignature.step_id == step_id,
                ReviewSignature.signer_id == signer_id,
            )
        ).scalar_one_or_none()
