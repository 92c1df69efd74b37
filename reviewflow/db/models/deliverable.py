"""Deliverable catalog models.

A deliverable carries no status column: its visible status is projected
from the active review workflow on every read.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from reviewflow.db.base import Base, utcnow


class Deliverable(Base):
    """
    A versioned work product submitted for review.

    ``active_workflow_id`` stays NULL until the deliverable is first
    submitted; afterwards it always points at the newest workflow instance.
    """
    __tablename__ = "deliverables"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    artifact_ref = Column(Text, nullable=False)  # Opaque URL / blob pointer
    current_version = Column(Integer, nullable=False, default=1)

    active_workflow_id = Column(
        Uuid,
        ForeignKey("review_workflows.id", ondelete="SET NULL", use_alter=True, name="fk_deliverables_active_workflow_id"),
        nullable=True,
    )

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    active_workflow = relationship("ReviewWorkflow", foreign_keys=[active_workflow_id], post_update=True)
    workflows = relationship(
        "ReviewWorkflow",
        foreign_keys="ReviewWorkflow.deliverable_id",
        back_populates="deliverable",
        order_by="ReviewWorkflow.version_number",
    )
    versions = relationship(
        "DeliverableVersion",
        back_populates="deliverable",
        order_by="DeliverableVersion.version_number",
    )

    def __repr__(self) -> str:
        return f"<Deliverable {self.title} v{self.current_version}>"


class DeliverableVersion(Base):
    """One artifact version of a deliverable."""
    __tablename__ = "deliverable_versions"
    __table_args__ = (
        UniqueConstraint("deliverable_id", "version_number", name="uq_deliverable_versions_number"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    deliverable_id = Column(Uuid, ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    artifact_ref = Column(Text, nullable=False)
    change_log = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    deliverable = relationship("Deliverable", back_populates="versions")

    def __repr__(self) -> str:
        return f"<DeliverableVersion {self.deliverable_id} v{self.version_number}>"
