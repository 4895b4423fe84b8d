"""devflow - a workflow orchestration engine for AI coding assistants."""

__version__ = "0.1.0"

from devflow.core.orchestrator import PhaseOrchestrator
from devflow.hooks.base import HookName, HookValidationError, Plugin, PluginHookContext, PluginHooks
from devflow.workflows.models import Phase, Transition, WorkflowDefinition

__all__ = [
    "PhaseOrchestrator",
    "HookName",
    "HookValidationError",
    "Plugin",
    "PluginHookContext",
    "PluginHooks",
    "Phase",
    "Transition",
    "WorkflowDefinition",
]
