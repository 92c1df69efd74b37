"""Deliverable status projection.

A deliverable's visible status is computed from its active workflow on
every read and never stored.
"""

from reviewflow.core.review.states import STATUS_PROJECTION, DeliverableStatus, WorkflowStatus


def project_status(deliverable) -> DeliverableStatus:
    """Map the active workflow's status onto the deliverable's status.

    Pure: reads ``deliverable.active_workflow`` and nothing else.
    """
    workflow = deliverable.active_workflow
    if workflow is None:
        return DeliverableStatus.DRAFT
    return STATUS_PROJECTION[WorkflowStatus(workflow.status)]
