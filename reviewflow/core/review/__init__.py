"""Deliverable review module.

Implements the multi-step review state machine, signatures, the history
ledger and version resubmission.
"""

from .states import WorkflowStatus, StepStatus, DeliverableStatus, ReviewAction, TRANSITIONS
from .errors import ErrorKind, ReviewError
from .sequencer import StepSequencer, StepTemplate
from .controller import WorkflowController
from .versions import VersionCoordinator
from .projector import project_status
from .service import ReviewService

__all__ = [
    "WorkflowStatus",
    "StepStatus",
    "DeliverableStatus",
    "ReviewAction",
    "TRANSITIONS",
    "ErrorKind",
    "ReviewError",
    "StepSequencer",
    "StepTemplate",
    "WorkflowController",
    "VersionCoordinator",
    "project_status",
    "ReviewService",
]
