"""Review history model.

This table is IMMUTABLE - ORM listeners and database triggers prevent UPDATE
and DELETE operations. Entries are permanent for audit purposes.
"""

import uuid
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, Integer, JSON, ForeignKey, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from reviewflow.db.base import Base, utcnow


class ReviewHistory(Base):
    """
    Append-only ledger entry.

    Ordered by ``(created_at, sequence)``; ``sequence`` is a per-workflow
    counter that breaks timestamp ties.
    """
    __tablename__ = "review_history"
    __table_args__ = (
        UniqueConstraint("workflow_id", "sequence", name="uq_review_history_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_id = Column(Uuid, ForeignKey("review_workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    step_id = Column(Uuid, ForeignKey("review_steps.id", ondelete="SET NULL"), nullable=True, index=True)
    sequence = Column(Integer, nullable=False)

    # Action details
    action = Column(String(50), nullable=False, index=True)
    actor_id = Column(String(255), nullable=True)
    actor_type = Column(String(50), nullable=True)
    comments = Column(Text, nullable=True)
    extra_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow, index=True)

    workflow = relationship("ReviewWorkflow", back_populates="history")
    step = relationship("ReviewStep")

    def __repr__(self) -> str:
        return f"<ReviewHistory #{self.sequence} {self.action} by {self.actor_id}>"

    @classmethod
    def create_entry(
        cls,
        workflow_id: uuid.UUID,
        sequence: int,
        action: str,
        *,
        step_id: Optional[uuid.UUID] = None,
        actor_id: Optional[str] = None,
        actor_type: Optional[str] = None,
        comments: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> "ReviewHistory":
        """
        Factory method to create a new history entry.

        Args:
            workflow_id: Owning workflow
            sequence: Position in the workflow's ledger
            action: HistoryAction value
            step_id: Step the action targeted (None for workflow-level events)
            actor_id: Identity of the acting party (None for system actions)
            actor_type: team_member or client_contact
            comments: Free-text comments supplied with the action
            extra_data: Additional context (signature id, version link)
        """
        return cls(
            workflow_id=workflow_id,
            sequence=sequence,
            action=getattr(action, "value", action),
            step_id=step_id,
            actor_id=actor_id,
            actor_type=actor_type,
            comments=comments,
            extra_data=extra_data or {},
        )
