"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..router import RoutingContext


# Definition schemas
class SideEffectModel(BaseModel):
    type: str = Field(..., description="Effect type (notify, audit, document)")
    roles: Optional[List[str]] = None
    committees: Optional[List[str]] = None
    users: Optional[List[str]] = None
    message: Optional[str] = None
    severity: Optional[str] = None
    target_state: Optional[str] = None
    folder: Optional[str] = None


class SLAModel(BaseModel):
    max_duration_hours: float
    warning_at_hours: Optional[float] = None
    escalate_to: Optional[str] = None


class StateModel(BaseModel):
    id: str
    label: Optional[str] = None
    description: Optional[str] = None
    is_initial: bool = False
    is_final: bool = False
    allowed_actions: List[str] = []
    sla: Optional[SLAModel] = None
    on_enter: List[SideEffectModel] = []


class ConditionModel(BaseModel):
    type: str = Field("field", description="Condition type (field, time)")
    field_name: Optional[str] = None
    operator: str = "equals"
    value: Optional[Any] = None
    min_hours_in_state: Optional[float] = None
    max_hours_in_state: Optional[float] = None


class TransitionModel(BaseModel):
    id: str
    from_state: str
    to_state: str
    label: Optional[str] = None
    required_roles: List[str] = []
    required_committees: List[str] = []
    conditions: List[ConditionModel] = []
    requires_comment: bool = False
    requires_vote: bool = False
    vote_type: Optional[str] = Field(None, description="simple-majority, super-majority or unanimous")
    requires_attachments: bool = False
    min_attachments: int = 1
    confirmation_message: Optional[str] = None
    actions: List[SideEffectModel] = []


class FieldValidationModel(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    options: List[str] = []


class FieldModel(BaseModel):
    name: str
    label: Optional[str] = None
    type: str = Field("text", description="Field type (text, number, date, boolean, select, ...)")
    required: bool = False
    description: Optional[str] = None
    validation: Optional[FieldValidationModel] = None
    visible_in_states: Optional[List[str]] = None
    editable_in_states: Optional[List[str]] = None
    required_in_states: List[str] = []
    default: Optional[Any] = None


class AssignmentRuleModel(BaseModel):
    id: str
    priority: int = 0
    document_types: List[str] = []
    categories: List[str] = []
    committees: List[str] = []
    tags: List[str] = []


class AutomationModel(BaseModel):
    id: str
    state_id: str
    after_hours: float
    name: Optional[str] = None
    actions: List[SideEffectModel] = []


class WorkflowSettingsModel(BaseModel):
    allowed_access_levels: List[str] = []
    allowed_roles: List[str] = []
    allowed_committees: List[str] = []
    retention_days: Optional[int] = None
    site_collection: Optional[str] = None
    document_library: Optional[str] = None


class CreateDefinitionRequest(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    version: str = "1.0"
    is_active: bool = True
    states: List[StateModel]
    transitions: List[TransitionModel] = []
    fields: List[FieldModel] = []
    assignment_rules: List[AssignmentRuleModel] = []
    automations: List[AutomationModel] = []
    settings: Optional[WorkflowSettingsModel] = None

    def to_definition_data(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CreateFromTemplateRequest(BaseModel):
    template_id: str
    definition_id: Optional[str] = None
    overrides: Optional[Dict[str, Any]] = None


# Instance schemas
class StartWorkflowRequest(BaseModel):
    definition_id: str
    field_values: Dict[str, Any] = {}
    document_ref: Optional[str] = None
    assigned_committee: Optional[str] = None
    correlation_id: Optional[str] = Field(None, description="Idempotency token")


class ExecuteTransitionRequest(BaseModel):
    comment: Optional[str] = None
    attachments: List[str] = []
    field_updates: Dict[str, Any] = {}
    correlation_id: Optional[str] = Field(None, description="Idempotency token")
    eligible_voters: Optional[List[str]] = Field(
        None, description="Voter population for vote-gated transitions"
    )


class UpdateFieldsRequest(BaseModel):
    updates: Dict[str, Any]
    correlation_id: Optional[str] = None


class CastVoteRequest(BaseModel):
    vote: str = Field(..., description="Vote choice (for, against, abstain)")
    comment: Optional[str] = None
    correlation_id: Optional[str] = None


# Routing schemas
class RoutingRequest(BaseModel):
    document_type: Optional[str] = None
    category: Optional[str] = None
    committee: Optional[str] = None
    tags: List[str] = []
    document_ref: Optional[str] = None
    field_values: Dict[str, Any] = {}
    correlation_id: Optional[str] = None

    def to_context(self) -> RoutingContext:
        return RoutingContext(
            document_type=self.document_type,
            category=self.category,
            committee=self.committee,
            tags=list(self.tags),
            document_ref=self.document_ref,
            field_values=dict(self.field_values),
        )
