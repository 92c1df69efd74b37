"""Database models for the deliverable review engine."""

from reviewflow.db.models.deliverable import Deliverable, DeliverableVersion
from reviewflow.db.models.workflow import ReviewWorkflow, ReviewStep
from reviewflow.db.models.signature import ReviewSignature
from reviewflow.db.models.history import ReviewHistory

__all__ = [
    "Deliverable",
    "DeliverableVersion",
    "ReviewWorkflow",
    "ReviewStep",
    "ReviewSignature",
    "ReviewHistory",
]

from reviewflow.db.immutability import register_immutability_listeners

register_immutability_listeners()
