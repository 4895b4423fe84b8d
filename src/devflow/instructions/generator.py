"""Instruction composition for phase responses."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from devflow.backends.detector import TaskBackendInfo, TaskBackendKind
from devflow.hooks.base import HookName, PluginHookContext
from devflow.hooks.registry import PluginHookRegistry
from devflow.instructions.variables import VariableResolver
from devflow.plans import sections
from devflow.plans.manager import PlanManager
from devflow.state.conversation import ConversationState

logger = logging.getLogger(__name__)

MARKDOWN_REMINDER = (
    "Use ONLY the development plan for task management - do not use your own task management tools"
)
BEADS_REMINDER = "Use ONLY bd CLI tool for task management - do not use your own task management tools"
WHATS_NEXT_REMINDER = "Call whats_next() after the next user message to maintain the development workflow"


@dataclass
class InstructionContext:
    """Inputs for generating one response."""

    phase: str
    conversation: ConversationState
    transition_reason: str = ""
    is_modeled: bool = False
    plan_file_exists: bool = False
    source: str = "whats_next"  # whats_next, proceed_to_phase, start_development
    role: Optional[str] = None
    plan_content: Optional[str] = None


@dataclass
class GeneratedInstructions:
    """Instruction text plus plan guidance produced for one request."""

    instructions: str
    plan_file_guidance: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


class InstructionGenerator:
    """
    Composes the instruction text returned to the caller.

    Order: base text, task backend guidance, project and plan context,
    important reminders, then variable substitution. Markdown and tracker
    guidance are mutually exclusive; only the active backend's block is
    emitted.
    """

    def __init__(
        self,
        plan_manager: PlanManager,
        hook_registry: Optional[PluginHookRegistry] = None,
    ):
        """
        Initialize instruction generator.

        Args:
            plan_manager: Source of per-phase plan guidance
            hook_registry: Registry used for after_instructions_generated
        """
        self.plan_manager = plan_manager
        self.hook_registry = hook_registry
        self.task_backend = TaskBackendInfo(kind=TaskBackendKind.MARKDOWN, available=True)

    def set_task_backend(self, info: TaskBackendInfo) -> None:
        self.task_backend = info

    @property
    def uses_external_tracker(self) -> bool:
        return self.task_backend.uses_external_tracker

    async def generate(
        self,
        base_instructions: str,
        context: InstructionContext,
        hook_context: Optional[PluginHookContext] = None,
    ) -> GeneratedInstructions:
        """
        Generate the instructions for a phase.

        Args:
            base_instructions: Phase default or transition override text
            context: Phase, conversation and transition details
            hook_context: Context for after_instructions_generated; hooks are skipped when None

        Returns:
            GeneratedInstructions

        Raises:
            HookValidationError: If a plugin rejects the result
        """
        blocks = [base_instructions.strip()]
        blocks.append(self._backend_guidance(context))
        blocks.extend(self._project_context(context))
        blocks.append(self._reminders())

        resolver = VariableResolver(context.conversation.project_path, role=context.role)
        instructions = resolver.substitute("\n\n".join(b for b in blocks if b))

        result = GeneratedInstructions(
            instructions=instructions,
            plan_file_guidance=resolver.substitute(self.plan_manager.guidance_for(context.phase)),
            metadata={
                "phase": context.phase,
                "plan_file_path": context.conversation.plan_file_path,
                "transition_reason": context.transition_reason,
                "is_modeled": context.is_modeled,
                "task_backend": self.task_backend.kind.value,
                "source": context.source,
            },
        )

        if self.hook_registry is not None and hook_context is not None:
            result = await self.hook_registry.invoke(
                HookName.AFTER_INSTRUCTIONS_GENERATED, hook_context, result
            )

        logger.debug(
            f"Generated instructions for phase '{context.phase}' "
            f"({len(result.instructions)} chars, backend={self.task_backend.kind.value})"
        )
        return result

    def _backend_guidance(self, context: InstructionContext) -> str:
        title = sections.phase_title(context.phase)
        if self.uses_external_tracker:
            return self._beads_guidance(context, title)

        return "\n".join([
            "**Plan File Guidance:**",
            f'- Work on the tasks listed in the "{title}" section',
            "- Mark completed tasks with [x] as you finish them",
            "- Add new tasks as they are identified during your work with the user",
            '- Update the "Key Decisions" section with important choices made',
            "- Add relevant notes to help maintain context",
        ])

    def _beads_guidance(self, context: InstructionContext, title: str) -> str:
        plan_guidance = "\n".join([
            "**Plan File Guidance:**",
            "- Use the plan file as memory for the current objective",
            '- Update the "Key Decisions" section with important choices made',
            "- Add relevant notes to help maintain context",
            "- Do NOT enter tasks in the plan file, use beads CLI exclusively for task management",
        ])

        task_id = None
        if context.plan_content:
            task_id = sections.phase_task_id(context.plan_content, context.phase)

        if task_id:
            header = f"You are in the {title} phase. Its tracker task is `{task_id}`."
            parent = task_id
        else:
            header = (
                f"You are in the {title} phase. Find its tracker task id in the "
                f'`<!-- beads-phase-id: ... -->` comment under "## {title}" in the plan file.'
            )
            parent = "<phase-task-id>"

        task_guidance = "\n".join([
            "**bd Task Management:**",
            header,
            f"- `bd list --parent {parent} --status open` - list open work for this phase",
            f"- `bd create 'Task title' --parent {parent} -p 2` - add a task to this phase",
            "- `bd update <task-id> --status in_progress` - start working on a task",
            "- `bd close <task-id>` - complete a task",
            "- `bd dep add <task-id> <depends-on-id>` - record a dependency",
        ])
        return f"{plan_guidance}\n\n{task_guidance}"

    def _project_context(self, context: InstructionContext) -> list[str]:
        conversation = context.conversation
        blocks = [
            "\n".join([
                "**Project Context:**",
                f"- Plan file: `{conversation.plan_file_path}`",
                f"- Project: `{conversation.project_path}`",
                f"- Branch: {conversation.git_branch}",
                f"- Workflow: {conversation.workflow_name}",
                f'- Phase: {context.phase} (section "{sections.phase_title(context.phase)}")',
            ])
        ]

        if context.is_modeled and context.transition_reason:
            blocks.append(f"**Phase Context:**\n- {context.transition_reason}")

        if not context.plan_file_exists:
            blocks.append("**Note**: Plan file will be created when you first update it.")

        commit_config = conversation.git_commit_config
        if commit_config is not None and commit_config.commit_on_step and context.source == "whats_next":
            blocks.append(
                "**Git Commit Required:**\n"
                "- Commit the work of this step before continuing, with a message describing "
                f"the progress made in the {context.phase} phase"
            )
        return blocks

    def _reminders(self) -> str:
        reminder = BEADS_REMINDER if self.uses_external_tracker else MARKDOWN_REMINDER
        return f"**Important Reminders:**\n- {reminder}\n- {WHATS_NEXT_REMINDER}"
