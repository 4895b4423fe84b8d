"""Request and response models for the tool operations."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

CommitBehaviour = Literal["step", "phase", "end", "none"]
ReviewStateValue = Literal["not-required", "pending", "performed"]


class Message(BaseModel):
    """One recent conversation message reported by the caller."""

    role: Literal["user", "assistant"]
    content: str


class StartDevelopmentRequest(BaseModel):
    """Arguments of start_development."""

    workflow: str = Field(default="waterfall", description="Workflow name, or 'custom'")
    commit_behaviour: CommitBehaviour = Field(default="none", description="When to create git commits")
    require_reviews: bool = Field(default=False, description="Enforce review gates on transitions")
    project_path: Optional[str] = Field(default=None, description="Overrides the orchestrator's project")
    role: Optional[str] = Field(default=None, description="Collaboration role of the caller")

    @field_validator("workflow")
    @classmethod
    def validate_workflow(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("workflow must be a non-empty string")
        return v.strip()


class WhatsNextRequest(BaseModel):
    """Arguments of whats_next."""

    context: str = ""
    user_input: str = ""
    conversation_summary: str = ""
    recent_messages: list[Message] = Field(default_factory=list)
    role: Optional[str] = None


class ProceedToPhaseRequest(BaseModel):
    """Arguments of proceed_to_phase."""

    target_phase: str
    reason: str = ""
    review_state: ReviewStateValue = "not-required"
    role: Optional[str] = None


class ConductReviewRequest(BaseModel):
    """Arguments of conduct_review."""

    target_phase: str
    role: Optional[str] = None


class ResetDevelopmentRequest(BaseModel):
    """Arguments of reset_development."""

    confirm: bool = False
    reason: str = ""


class StartDevelopmentResult(BaseModel):
    phase: str
    instructions: str
    plan_file_path: str
    conversation_id: str
    workflow: str


class WhatsNextResult(BaseModel):
    phase: str
    instructions: str
    plan_file_path: str
    is_modeled_transition: bool
    conversation_id: str
    transition_reason: str = ""
    review_pending: bool = False


class ProceedToPhaseResult(BaseModel):
    phase: str
    instructions: str
    plan_file_path: str
    transition_reason: str
    is_modeled_transition: bool
    conversation_id: str
    review_pending: bool = False


class ConductReviewResult(BaseModel):
    instructions: str
    perspectives: list[dict[str, str]] = Field(default_factory=list)
    current_phase: str
    target_phase: str


class ResumeWorkflowResult(BaseModel):
    conversation_id: str
    workflow: str
    current_phase: str
    phase_description: str
    plan_file_path: str
    plan_file_exists: bool
    available_transitions: list[dict[str, Any]] = Field(default_factory=list)
    recent_interactions: list[dict[str, Any]] = Field(default_factory=list)
    instructions: str
    task_backend: dict[str, Any] = Field(default_factory=dict)
    system_prompt: Optional[str] = None


class ResetDevelopmentResult(BaseModel):
    conversation_id: str
    state_deleted: bool
    plan_deleted: bool
    message: str
