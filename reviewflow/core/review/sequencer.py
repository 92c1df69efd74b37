"""Step ordering for review workflows.

The current step is derived, never stored: it is the lowest-sequence step
still ``pending`` in a workflow that has not reached a terminal state.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from reviewflow.core.review.errors import (
    EmptyWorkflowError,
    InvalidStepTemplateError,
    StepNotActiveError,
)
from reviewflow.core.review.states import ApproverType, StepStatus, is_terminal
from reviewflow.db.models import ReviewStep, ReviewWorkflow


@dataclass(frozen=True)
class StepTemplate:
    """Definition of one step, validated before a workflow is created."""
    name: str
    sequence: Optional[int] = None
    description: Optional[str] = None
    requires_signature: bool = False
    approver_type: ApproverType = ApproverType.ANY
    # Only with approver_type specific_user
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None


class StepSequencer:
    """Answers "which step is current" and enforces step ordering."""

    def current_step(self, workflow: ReviewWorkflow) -> Optional[ReviewStep]:
        """Lowest-sequence pending step, or None when nothing is actionable."""
        if is_terminal(workflow.status):
            return None
        pending = [s for s in workflow.steps if s.status == StepStatus.PENDING.value]
        if not pending:
            return None
        return min(pending, key=lambda s: s.sequence)

    def current_step_index(self, workflow: ReviewWorkflow) -> Optional[int]:
        """0-based position of the current step in sequence order."""
        current = self.current_step(workflow)
        if current is None:
            return None
        ordered = sorted(workflow.steps, key=lambda s: s.sequence)
        return ordered.index(current)

    def advance(self, workflow: ReviewWorkflow, resolved_step: ReviewStep) -> Optional[ReviewStep]:
        """Recompute the current step after ``resolved_step`` left ``pending``."""
        return self.current_step(workflow)

    def remaining(self, workflow: ReviewWorkflow) -> List[ReviewStep]:
        """Pending steps in sequence order."""
        return sorted(
            (s for s in workflow.steps if s.status == StepStatus.PENDING.value),
            key=lambda s: s.sequence,
        )

    def require_current(self, workflow: ReviewWorkflow, step: ReviewStep) -> None:
        """
        Raise StepNotActiveError unless ``step`` is the workflow's current step.

        Covers resolved steps, steps not yet reached, and races already lost.
        """
        current = self.current_step(workflow)
        if current is None or current.id != step.id:
            if step.status != StepStatus.PENDING.value:
                reason = f"already {step.status}"
            else:
                reason = f"waiting on step {current.sequence}" if current else "not reachable"
            raise StepNotActiveError(
                f"Step {step.sequence} ({step.name}) is not the current step: {reason}",
                step_id=step.id,
                workflow_id=workflow.id,
            )

    def validate_templates(self, templates: Iterable[StepTemplate]) -> List[StepTemplate]:
        """
        Validate a step list and return it in sequence order.

        Templates without a sequence number are numbered by position;
        explicit numbers must be unique and positive.

        Raises:
            EmptyWorkflowError: If no templates are given
            InvalidStepTemplateError: On blank names or bad sequence numbers
        """
        templates = list(templates)
        if not templates:
            raise EmptyWorkflowError("A review workflow needs at least one step")

        numbered = [t.sequence is not None for t in templates]
        if any(numbered) and not all(numbered):
            raise InvalidStepTemplateError("Either every step has a sequence number or none does")

        normalized = []
        for position, template in enumerate(templates, start=1):
            if not template.name or not template.name.strip():
                raise InvalidStepTemplateError(f"Step {position} has no name")
            sequence = template.sequence if template.sequence is not None else position
            if sequence < 1:
                raise InvalidStepTemplateError(f"Step '{template.name}' has sequence {sequence}; sequences start at 1")
            try:
                approver_type = ApproverType(template.approver_type)
            except ValueError:
                raise InvalidStepTemplateError(
                    f"Step '{template.name}' has unknown approver type {template.approver_type!r}"
                ) from None
            if approver_type == ApproverType.SPECIFIC_USER and not (template.approver_id or "").strip():
                raise InvalidStepTemplateError(
                    f"Step '{template.name}' names no approver_id for a specific_user step"
                )
            if approver_type != ApproverType.SPECIFIC_USER and template.approver_id:
                raise InvalidStepTemplateError(
                    f"Step '{template.name}' has approver_id but approver type {approver_type.value}"
                )
            normalized.append(StepTemplate(
                name=template.name.strip(),
                sequence=sequence,
                description=template.description,
                requires_signature=bool(template.requires_signature),
                approver_type=approver_type,
                approver_id=template.approver_id.strip() if template.approver_id else None,
                approver_name=template.approver_name,
            ))

        sequences = [t.sequence for t in normalized]
        if len(set(sequences)) != len(sequences):
            raise InvalidStepTemplateError(f"Duplicate step sequence numbers: {sorted(sequences)}")

        return sorted(normalized, key=lambda t: t.sequence)

    def build_steps(self, workflow: ReviewWorkflow, templates: Iterable[StepTemplate]) -> List[ReviewStep]:
        """Create fresh pending steps for ``workflow`` from validated templates."""
        steps = [
            ReviewStep(
                workflow=workflow,
                sequence=t.sequence,
                name=t.name,
                description=t.description,
                requires_signature=t.requires_signature,
                approver_type=ApproverType(t.approver_type).value,
                approver_id=t.approver_id,
                approver_name=t.approver_name,
                status=StepStatus.PENDING.value,
            )
            for t in templates
        ]
        return steps

    def clone_templates(self, workflow: ReviewWorkflow) -> List[StepTemplate]:
        """Recover the step template a workflow was created from."""
        return [
            StepTemplate(
                name=s.name,
                sequence=s.sequence,
                description=s.description,
                requires_signature=bool(s.requires_signature),
                approver_type=ApproverType(s.approver_type),
                approver_id=s.approver_id,
                approver_name=s.approver_name,
            )
            for s in sorted(workflow.steps, key=lambda s: s.sequence)
        ]
