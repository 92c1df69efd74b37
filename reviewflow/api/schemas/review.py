from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from reviewflow.core.review.sequencer import StepTemplate
from reviewflow.core.review.states import ApproverType, ReviewAction, SignatureMethod


class DeliverableCreate(BaseModel):
    project_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    artifact_ref: str = Field(..., min_length=1)


class DeliverableResponse(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: Optional[str]
    artifact_ref: str
    current_version: int
    status: str
    active_workflow_id: Optional[UUID]
    can_resubmit: bool
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime


class VersionResponse(BaseModel):
    id: UUID
    version_number: int
    artifact_ref: str
    change_log: Optional[str]
    created_by: Optional[str]
    created_at: datetime


class StepTemplateIn(BaseModel):
    sequence: Optional[int] = None
    name: str
    description: Optional[str] = None
    requires_signature: bool = False
    approver_type: ApproverType = ApproverType.ANY
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None

    def to_template(self) -> StepTemplate:
        return StepTemplate(
            name=self.name,
            sequence=self.sequence,
            description=self.description,
            requires_signature=self.requires_signature,
            approver_type=self.approver_type,
            approver_id=self.approver_id,
            approver_name=self.approver_name,
        )


class SubmitForReview(BaseModel):
    # Emptiness is checked by the engine so it surfaces as EmptyWorkflow
    steps: List[StepTemplateIn]


class ResubmitRequest(BaseModel):
    new_artifact_ref: str
    change_log: Optional[str] = None


class ActionRequest(BaseModel):
    action: ReviewAction
    step_id: UUID
    comments: Optional[str] = None
    signature_data: Optional[str] = None
    signature_method: Optional[SignatureMethod] = None

    @model_validator(mode="after")
    def check_signature_fields(self):
        if self.action == ReviewAction.ADD_SIGNATURE:
            if not self.signature_data:
                raise ValueError("signature_data is required for add_signature")
            if self.signature_method is None:
                raise ValueError("signature_method is required for add_signature")
        return self


class StepResponse(BaseModel):
    id: UUID
    sequence: int
    name: str
    description: Optional[str]
    requires_signature: bool
    approver_type: str
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None
    status: str
    is_current: bool
    signature_count: int
    comments: Optional[str]
    resolved_by: Optional[str]
    resolved_at: Optional[datetime]


class SignatureResponse(BaseModel):
    id: UUID
    step_id: UUID
    sequence: int
    signer_id: str
    signer_name: Optional[str]
    method: str
    payload: str
    ip_address: Optional[str]
    signed_at: datetime


class HistoryResponse(BaseModel):
    id: UUID
    workflow_id: UUID
    step_id: Optional[UUID]
    sequence: int
    action: str
    actor_id: Optional[str]
    actor_type: Optional[str]
    comments: Optional[str]
    extra_data: Dict[str, Any] = {}
    created_at: datetime


class WorkflowSnapshot(BaseModel):
    workflow_id: UUID
    deliverable_id: UUID
    version_number: int
    status: str
    deliverable_status: str
    is_active: bool
    previous_workflow_id: Optional[UUID]
    current_step_index: Optional[int]
    current_step_id: Optional[UUID]
    steps: List[StepResponse]
    signatures: List[SignatureResponse]
    history: List[HistoryResponse]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]
