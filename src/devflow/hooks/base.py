"""Base types for the plugin hook system."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from devflow.core.errors import DevflowError
from devflow.workflows.models import WorkflowDefinition


class HookName(str, Enum):
    """Lifecycle extension points invoked by the core."""

    BEFORE_START_DEVELOPMENT = "before_start_development"
    AFTER_START_DEVELOPMENT = "after_start_development"
    AFTER_PLAN_FILE_CREATED = "after_plan_file_created"
    BEFORE_PHASE_TRANSITION = "before_phase_transition"
    AFTER_INSTRUCTIONS_GENERATED = "after_instructions_generated"


# Hooks whose return value replaces the value passed to the next hook
CONTENT_HOOKS = frozenset({
    HookName.AFTER_PLAN_FILE_CREATED,
    HookName.AFTER_INSTRUCTIONS_GENERATED,
})


class HookValidationError(DevflowError):
    """
    Raised by a hook to block the triggering operation.

    The message is surfaced to the caller verbatim. Any other exception a
    hook raises is treated as an infrastructure failure and swallowed.
    """

    code = "HOOK_VALIDATION"


@dataclass(frozen=True)
class PluginHookContext:
    """Read-only view of the conversation passed to every hook."""

    conversation_id: str
    plan_file_path: str
    current_phase: str
    workflow: str
    project_path: str
    git_branch: str
    target_phase: Optional[str] = None
    # Only populated for after_start_development
    workflow_definition: Optional[WorkflowDefinition] = None
    commit_behaviour: str = "none"
    start_commit_hash: Optional[str] = None


HookCallable = Callable[..., Union[Any, Awaitable[Any]]]


@dataclass
class PluginHooks:
    """Set of callbacks a plugin provides. Unset hooks are skipped."""

    before_start_development: Optional[HookCallable] = None
    after_start_development: Optional[HookCallable] = None
    after_plan_file_created: Optional[HookCallable] = None
    before_phase_transition: Optional[HookCallable] = None
    after_instructions_generated: Optional[HookCallable] = None

    def get(self, name: HookName) -> Optional[HookCallable]:
        return getattr(self, HookName(name).value)

    def names(self) -> list[HookName]:
        """Hook names this set implements."""
        return [name for name in HookName if self.get(name) is not None]


@dataclass
class StartDevelopmentArgs:
    """Arguments passed to the start-development hooks."""

    workflow: str
    commit_behaviour: str = "none"
    require_reviews: bool = False
    project_path: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


class Plugin(ABC):
    """Base interface for extensions registered with the hook registry."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique plugin name."""

    @property
    def sequence(self) -> int:
        """Execution order; lower runs first."""
        return 100

    def is_enabled(self) -> bool:
        """
        Whether the plugin should be registered.

        Returns:
            bool: True to register, False to skip
        """
        return True

    @abstractmethod
    def get_hooks(self) -> PluginHooks:
        """Return the callbacks this plugin provides."""
