"""Core request pipeline and shared types."""

from devflow.core.errors import (
    ConversationNotFoundError,
    DevflowError,
    PhaseValidationError,
    RoleValidationError,
    ValidationError,
    WorkflowConfigError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

__all__ = [
    "ConversationNotFoundError",
    "DevflowError",
    "PhaseValidationError",
    "RoleValidationError",
    "ValidationError",
    "WorkflowConfigError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
]
