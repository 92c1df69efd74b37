"""Review workflow and step models."""

import uuid
from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from reviewflow.db.base import Base, utcnow


class ReviewWorkflow(Base):
    """
    One multi-step review of one deliverable version.

    The current step is never stored; it is the lowest-sequence step still
    pending (see ``reviewflow.core.review.sequencer``).
    """
    __tablename__ = "review_workflows"
    __table_args__ = (
        UniqueConstraint("deliverable_id", "version_number", name="uq_review_workflows_version"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    deliverable_id = Column(Uuid, ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)

    status = Column(String(50), nullable=False, default="pending", index=True)

    # Lineage: the revision_requested instance this one replaced
    previous_workflow_id = Column(Uuid, ForeignKey("review_workflows.id", ondelete="SET NULL"), nullable=True)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime, nullable=True)

    deliverable = relationship("Deliverable", foreign_keys=[deliverable_id], back_populates="workflows")
    previous_workflow = relationship("ReviewWorkflow", remote_side=[id])
    steps = relationship(
        "ReviewStep",
        back_populates="workflow",
        order_by="ReviewStep.sequence",
        cascade="all, delete-orphan",
    )
    signatures = relationship("ReviewSignature", back_populates="workflow", order_by="ReviewSignature.sequence")
    history = relationship(
        "ReviewHistory",
        back_populates="workflow",
        order_by="ReviewHistory.sequence",
    )

    def __repr__(self) -> str:
        return f"<ReviewWorkflow {self.deliverable_id} v{self.version_number} [{self.status}]>"


class ReviewStep(Base):
    """
    An ordered sign-off gate within a workflow.

    Resolved exactly once: status moves away from ``pending`` a single time.
    """
    __tablename__ = "review_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "sequence", name="uq_review_steps_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_id = Column(Uuid, ForeignKey("review_workflows.id", ondelete="CASCADE"), nullable=False, index=True)

    sequence = Column(Integer, nullable=False)  # 1-based
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    requires_signature = Column(Boolean, nullable=False, default=False)
    approver_type = Column(String(50), nullable=False, default="any")
    approver_id = Column(String(255), nullable=True)  # specific_user steps only
    approver_name = Column(String(255), nullable=True)

    status = Column(String(50), nullable=False, default="pending", index=True)
    comments = Column(Text, nullable=True)
    resolved_by = Column(String(255), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    workflow = relationship("ReviewWorkflow", back_populates="steps")
    signatures = relationship("ReviewSignature", back_populates="step", order_by="ReviewSignature.sequence")

    def __repr__(self) -> str:
        return f"<ReviewStep {self.sequence}:{self.name} [{self.status}]>"
