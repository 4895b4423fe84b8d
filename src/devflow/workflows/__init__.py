"""Workflow definitions: models, loading and the layered store."""

from devflow.workflows.loader import load_workflow_file, parse_workflow
from devflow.workflows.models import (
    Phase,
    ReviewPerspective,
    Transition,
    WorkflowDefinition,
    WorkflowMetadata,
    filter_transitions_by_role,
)
from devflow.workflows.store import WorkflowDefinitionStore, WorkflowInfo

__all__ = [
    "Phase",
    "ReviewPerspective",
    "Transition",
    "WorkflowDefinition",
    "WorkflowDefinitionStore",
    "WorkflowInfo",
    "WorkflowMetadata",
    "filter_transitions_by_role",
    "load_workflow_file",
    "parse_workflow",
]
