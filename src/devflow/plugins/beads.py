"""Plugin that mirrors workflow phases as tasks in the ``bd`` tracker."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from devflow.backends.beads_client import BeadsClient
from devflow.backends.detector import TaskBackendInfo
from devflow.core.errors import TaskBackendError
from devflow.fileio import atomic_write_text
from devflow.hooks.base import (
    HookValidationError,
    Plugin,
    PluginHookContext,
    PluginHooks,
    StartDevelopmentArgs,
)
from devflow.instructions.generator import GeneratedInstructions
from devflow.plans import sections
from devflow.workflows.config import PROJECT_DIR

logger = logging.getLogger(__name__)

PHASE_ID_PLACEHOLDER = "<phase-task-id>"


class BeadsPlugin(Plugin):
    """
    Creates an epic per conversation and one task per phase, and blocks
    leaving a phase while its tracker task still has open children.

    Phase task ids are kept in ``.devflow/beads-<conversation_id>.json`` and
    written into the plan's ``beads-phase-id`` comments as sections appear.
    Tracker failures never block a request, only open tasks do.
    """

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        backend_info: Optional[TaskBackendInfo] = None,
        client: Optional[BeadsClient] = None,
    ):
        self.config = config or {}
        self.backend_info = backend_info
        self._client = client

    @property
    def name(self) -> str:
        return "BeadsPlugin"

    @property
    def sequence(self) -> int:
        return 100

    def is_enabled(self) -> bool:
        return self.backend_info is not None and self.backend_info.uses_external_tracker

    def get_hooks(self) -> PluginHooks:
        return PluginHooks(
            after_start_development=self.after_start_development,
            before_phase_transition=self.before_phase_transition,
            after_instructions_generated=self.after_instructions_generated,
        )

    def client_for(self, project_path: str) -> BeadsClient:
        if self._client is None:
            self._client = BeadsClient(
                project_path,
                command=self.config.get("command", "bd"),
                timeout=float(self.config.get("command_timeout", 10.0)),
            )
        return self._client

    def state_path(self, context: PluginHookContext) -> Path:
        return Path(context.project_path) / PROJECT_DIR / f"beads-{context.conversation_id}.json"

    def load_state(self, context: PluginHookContext) -> dict:
        path = self.state_path(context)
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable beads state {path}: {e}")
            return {}

    def save_state(self, context: PluginHookContext, state: dict) -> None:
        atomic_write_text(self.state_path(context), json.dumps(state, indent=2))

    def phase_task_id(self, context: PluginHookContext, phase: str) -> Optional[str]:
        """Tracker id for a phase, from the saved state or the plan comment."""
        task_id = self.load_state(context).get("phase_tasks", {}).get(phase)
        if task_id:
            return task_id
        plan = Path(context.plan_file_path)
        if plan.exists():
            return sections.phase_task_id(plan.read_text(encoding="utf-8"), phase)
        return None

    async def after_start_development(
        self, context: PluginHookContext, args: StartDevelopmentArgs, result: dict
    ) -> None:
        """Create the epic and phase tasks. Failures are logged and ignored."""
        workflow = context.workflow_definition
        if workflow is None:
            logger.warning("BeadsPlugin: no workflow definition in context, skipping setup")
            return

        client = self.client_for(context.project_path)
        project = Path(context.project_path).name
        try:
            epic_id = await client.create(
                f"{project}: {workflow.name}",
                description=f"Development of {project} on branch {context.git_branch} ({workflow.name} workflow)",
                priority=2,
            )
            phase_tasks = {}
            for phase in workflow.phase_names:
                phase_tasks[phase] = await client.create(
                    sections.phase_title(phase),
                    parent=epic_id,
                    description=workflow.get_phase(phase).description,
                    priority=2,
                )
        except TaskBackendError as e:
            logger.warning(f"BeadsPlugin: could not set up tracker tasks, continuing without them: {e}")
            return

        self.save_state(context, {"epic_id": epic_id, "phase_tasks": phase_tasks})
        self._fill_plan_ids(context, phase_tasks)
        logger.info(f"BeadsPlugin: created epic {epic_id} with {len(phase_tasks)} phase tasks")

    async def before_phase_transition(self, context: PluginHookContext) -> None:
        """
        Block the transition while the current phase has open tasks.

        Raises:
            HookValidationError: If open tasks remain
        """
        task_id = self.phase_task_id(context, context.current_phase)
        if not task_id:
            logger.debug(f"BeadsPlugin: no tracker task for phase '{context.current_phase}'")
            return

        try:
            open_tasks = await self.client_for(context.project_path).list_open(task_id)
        except TaskBackendError as e:
            logger.warning(f"BeadsPlugin: could not check open tasks, allowing transition: {e}")
            return

        if not open_tasks:
            return

        task_lines = "\n".join(f"  - {t.id}: {t.title}" for t in open_tasks)
        raise HookValidationError(
            f"Cannot proceed to {context.target_phase} - {len(open_tasks)} incomplete task(s) "
            f'in current phase "{context.current_phase}":\n{task_lines}\n\n'
            f"Complete them with `bd close <task-id>`, or list them with "
            f"`bd list --parent {task_id} --status open`."
        )

    def after_instructions_generated(
        self, context: PluginHookContext, generated: GeneratedInstructions
    ) -> GeneratedInstructions:
        """Fill in the current phase's tracker id in the plan and the instructions."""
        phase_tasks = self.load_state(context).get("phase_tasks", {})
        if not phase_tasks:
            return generated

        self._fill_plan_ids(context, phase_tasks)
        task_id = phase_tasks.get(context.current_phase)
        if task_id and PHASE_ID_PLACEHOLDER in generated.instructions:
            generated.instructions = generated.instructions.replace(PHASE_ID_PLACEHOLDER, task_id)
        return generated

    def _fill_plan_ids(self, context: PluginHookContext, phase_tasks: dict[str, str]) -> None:
        plan = Path(context.plan_file_path)
        if not plan.exists():
            return
        content = plan.read_text(encoding="utf-8")
        updated = content
        for phase, task_id in phase_tasks.items():
            if sections.has_heading(updated, sections.phase_title(phase)) and not sections.phase_task_id(updated, phase):
                updated = sections.set_phase_task_id(updated, phase, task_id)
        if updated != content:
            atomic_write_text(plan, updated)
            logger.debug(f"BeadsPlugin: wrote phase task ids into {plan}")
