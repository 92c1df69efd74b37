"""Signature model.

Part of the audit trail: rows are never updated or deleted (see
``reviewflow.db.immutability`` and migration 0001 triggers).
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from reviewflow.db.base import Base, utcnow


class ReviewSignature(Base):
    """A captured sign-off artifact tied to one step and one signer."""
    __tablename__ = "review_signatures"
    __table_args__ = (
        UniqueConstraint("step_id", "signer_id", name="uq_review_signatures_step_signer"),
        UniqueConstraint("workflow_id", "sequence", name="uq_review_signatures_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_id = Column(Uuid, ForeignKey("review_workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    step_id = Column(Uuid, ForeignKey("review_steps.id", ondelete="CASCADE"), nullable=False, index=True)
    # Capture order within the workflow; signed_at alone can tie
    sequence = Column(Integer, nullable=False)

    # Signer
    signer_id = Column(String(255), nullable=False)
    signer_name = Column(String(255), nullable=True)

    # Opaque encoded image / typed text / uploaded blob
    payload = Column(Text, nullable=False)
    method = Column(String(20), nullable=False)  # draw, typed, upload

    # Capture context
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)

    signed_at = Column(DateTime, default=utcnow, index=True)

    workflow = relationship("ReviewWorkflow", back_populates="signatures")
    step = relationship("ReviewStep", back_populates="signatures")

    def __repr__(self) -> str:
        return f"<ReviewSignature step={self.step_id} signer={self.signer_id} ({self.method})>"
