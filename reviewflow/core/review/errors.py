"""Error taxonomy for the review engine.

Every failure raised by the engine is a ``ReviewError`` carrying an
``ErrorKind``; the API layer maps kinds onto HTTP responses.
"""

from enum import Enum
from typing import Optional
from uuid import UUID


class ErrorKind(str, Enum):
    """Machine-readable failure kinds."""

    EMPTY_WORKFLOW = "EmptyWorkflow"
    INVALID_STEP_TEMPLATE = "InvalidStepTemplate"
    STEP_NOT_ACTIVE = "StepNotActive"
    SIGNATURE_REQUIRED = "SignatureRequired"
    DUPLICATE_SIGNATURE = "DuplicateSignature"
    NO_REVISION_PENDING = "NoRevisionPending"
    WORKFLOW_ALREADY_TERMINAL = "WorkflowAlreadyTerminal"
    WORKFLOW_ALREADY_ACTIVE = "WorkflowAlreadyActive"
    ACTOR_NOT_ALLOWED = "ActorNotAllowed"
    MISSING_ARTIFACT = "MissingArtifact"
    DELIVERABLE_NOT_FOUND = "DeliverableNotFound"
    WORKFLOW_NOT_FOUND = "WorkflowNotFound"
    STEP_NOT_FOUND = "StepNotFound"


class ReviewError(Exception):
    """Raised when an action cannot be applied."""

    kind: ErrorKind

    def __init__(self, message: str, *, step_id: Optional[UUID] = None, workflow_id: Optional[UUID] = None):
        super().__init__(message)
        self.message = message
        self.step_id = step_id
        self.workflow_id = workflow_id

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "detail": self.message}


class EmptyWorkflowError(ReviewError):
    kind = ErrorKind.EMPTY_WORKFLOW


class InvalidStepTemplateError(ReviewError):
    kind = ErrorKind.INVALID_STEP_TEMPLATE


class StepNotActiveError(ReviewError):
    kind = ErrorKind.STEP_NOT_ACTIVE


class SignatureRequiredError(ReviewError):
    kind = ErrorKind.SIGNATURE_REQUIRED


class DuplicateSignatureError(ReviewError):
    kind = ErrorKind.DUPLICATE_SIGNATURE


class NoRevisionPendingError(ReviewError):
    kind = ErrorKind.NO_REVISION_PENDING


class WorkflowAlreadyTerminalError(ReviewError):
    kind = ErrorKind.WORKFLOW_ALREADY_TERMINAL


class WorkflowAlreadyActiveError(ReviewError):
    kind = ErrorKind.WORKFLOW_ALREADY_ACTIVE


class ActorNotAllowedError(ReviewError):
    kind = ErrorKind.ACTOR_NOT_ALLOWED


class MissingArtifactError(ReviewError):
    kind = ErrorKind.MISSING_ARTIFACT


class DeliverableNotFoundError(ReviewError):
    kind = ErrorKind.DELIVERABLE_NOT_FOUND


class WorkflowNotFoundError(ReviewError):
    kind = ErrorKind.WORKFLOW_NOT_FOUND


class StepNotFoundError(ReviewError):
    kind = ErrorKind.STEP_NOT_FOUND
