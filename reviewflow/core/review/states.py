"""Review workflow states and transitions.

State Machine Diagram (one workflow instance per deliverable version):

    ┌──────────┐
    │ PENDING  │ ← Created on submission, no step acted on
    └────┬─────┘
         │ approve (not last step)
    ┌────▼────────┐
    │ IN_PROGRESS │ ← At least one step approved, not all
    └────┬────────┘
         │
         ├──────────────────┬────────────────────┐
         │ approve (last)   │ reject (any step)  │ request_revision (any step)
    ┌────▼─────┐      ┌─────▼────┐     ┌─────────▼──────────┐
    │ APPROVED │      │ REJECTED │     │ REVISION_REQUESTED │
    └──────────┘      └──────────┘     └─────────┬──────────┘
                                                 │ resubmit
                                                 ▼
                                      new PENDING workflow (next version)

Reject and request_revision are also legal straight from PENDING. Signatures
never change step or workflow state.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class WorkflowStatus(str, Enum):
    """Overall status of one review workflow instance."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"

    # Terminal states
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


class StepStatus(str, Enum):
    """Status of a single sign-off step."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


class DeliverableStatus(str, Enum):
    """Externally visible status of a deliverable."""

    DRAFT = "draft"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


class ReviewAction(str, Enum):
    """Actions an actor can submit against a step."""

    APPROVE_STEP = "approve_step"
    REJECT_STEP = "reject_step"
    REQUEST_REVISION = "request_revision"
    ADD_SIGNATURE = "add_signature"


class SignatureMethod(str, Enum):
    """How a signature was captured."""

    DRAW = "draw"
    TYPED = "typed"
    UPLOAD = "upload"


class ApproverType(str, Enum):
    """Which kind of actor may resolve a step."""

    ANY = "any"
    TEAM_MEMBER = "team_member"
    CLIENT_CONTACT = "client_contact"
    SPECIFIC_USER = "specific_user"


class HistoryAction(str, Enum):
    """Kinds of entries written to the history ledger."""

    WORKFLOW_CREATED = "workflow_created"
    STEP_APPROVED = "step_approved"
    STEP_REJECTED = "step_rejected"
    REVISION_REQUESTED = "revision_requested"
    SIGNATURE_ADDED = "signature_added"
    VERSION_RESUBMITTED = "version_resubmitted"


class TransitionRule(NamedTuple):
    """Effect of a step-resolving action."""
    action: ReviewAction
    step_status: StepStatus
    history_action: HistoryAction
    # Workflow status once applied; None means "derived from remaining steps"
    workflow_status: Optional[WorkflowStatus] = None


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ReviewAction.APPROVE_STEP, StepStatus.APPROVED, HistoryAction.STEP_APPROVED),
    TransitionRule(ReviewAction.REJECT_STEP, StepStatus.REJECTED, HistoryAction.STEP_REJECTED,
                   WorkflowStatus.REJECTED),
    TransitionRule(ReviewAction.REQUEST_REVISION, StepStatus.REVISION_REQUESTED, HistoryAction.REVISION_REQUESTED,
                   WorkflowStatus.REVISION_REQUESTED),
]

TRANSITIONS: Dict[ReviewAction, TransitionRule] = {rule.action: rule for rule in TRANSITION_RULES}


# Terminal states: the instance accepts no further actions
TERMINAL_STATES: Set[WorkflowStatus] = {
    WorkflowStatus.APPROVED,
    WorkflowStatus.REJECTED,
    WorkflowStatus.REVISION_REQUESTED,
}

# States in which steps can still be acted upon
ACTIVE_STATES: Set[WorkflowStatus] = {
    WorkflowStatus.PENDING,
    WorkflowStatus.IN_PROGRESS,
}

# Workflow status -> deliverable status
STATUS_PROJECTION: Dict[WorkflowStatus, DeliverableStatus] = {
    WorkflowStatus.PENDING: DeliverableStatus.IN_REVIEW,
    WorkflowStatus.IN_PROGRESS: DeliverableStatus.IN_REVIEW,
    WorkflowStatus.APPROVED: DeliverableStatus.APPROVED,
    WorkflowStatus.REJECTED: DeliverableStatus.REJECTED,
    WorkflowStatus.REVISION_REQUESTED: DeliverableStatus.REVISION_REQUESTED,
}


def is_terminal(status: WorkflowStatus) -> bool:
    """Check if a workflow status accepts no further actions."""
    return WorkflowStatus(status) in TERMINAL_STATES


def get_transition_rule(action: ReviewAction) -> Optional[TransitionRule]:
    """Get the transition rule for a step-resolving action."""
    return TRANSITIONS.get(ReviewAction(action))
