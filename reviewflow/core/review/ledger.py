"""History ledger: append-only record of every applied action."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reviewflow.core.identity import Actor
from reviewflow.core.review.states import HistoryAction
from reviewflow.db.models import ReviewHistory, ReviewWorkflow


class HistoryLedger:
    """Appends and reads ``ReviewHistory`` entries. Never updates or deletes."""

    def __init__(self, db: Session):
        self.db = db

    def next_sequence(self, workflow_id: UUID) -> int:
        current = self.db.execute(
            select(func.max(ReviewHistory.sequence)).where(ReviewHistory.workflow_id == workflow_id)
        ).scalar()
        return (current or 0) + 1

    def append(
        self,
        workflow_id: UUID,
        action: HistoryAction,
        *,
        actor: Optional[Actor] = None,
        step_id: Optional[UUID] = None,
        comments: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> ReviewHistory:
        """
        Append one entry to a workflow's ledger.

        The (workflow_id, sequence) unique constraint rejects a concurrent
        writer that computed the same sequence number.
        """
        entry = ReviewHistory.create_entry(
            workflow_id,
            self.next_sequence(workflow_id),
            HistoryAction(action).value,
            step_id=step_id,
            actor_id=actor.id if actor else None,
            actor_type=actor.actor_type if actor else None,
            comments=comments,
            extra_data=extra_data,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def entries_for(self, workflow_id: UUID, *, limit: Optional[int] = None) -> List[ReviewHistory]:
        """
        Entries of one workflow in authoritative order.

        With ``limit``, only the newest ``limit`` entries are returned, still
        oldest first.
        """
        query = select(ReviewHistory).where(ReviewHistory.workflow_id == workflow_id)
        if not limit:
            return list(self.db.execute(query.order_by(ReviewHistory.sequence.asc())).scalars())

        newest = self.db.execute(query.order_by(ReviewHistory.sequence.desc()).limit(limit)).scalars()
        return list(reversed(list(newest)))

    def entries_for_deliverable(self, deliverable_id: UUID) -> List[ReviewHistory]:
        """Full review lineage of a deliverable across all its workflows."""
        query = (
            select(ReviewHistory)
            .join(ReviewWorkflow, ReviewHistory.workflow_id == ReviewWorkflow.id)
            .where(ReviewWorkflow.deliverable_id == deliverable_id)
            .order_by(
                ReviewWorkflow.version_number.asc(),
                ReviewHistory.sequence.asc(),
            )
        )
        return list(self.db.execute(query).scalars())

    def count(self, workflow_id: UUID) -> int:
        return self.db.execute(
            select(func.count(ReviewHistory.id)).where(ReviewHistory.workflow_id == workflow_id)
        ).scalar_one()
