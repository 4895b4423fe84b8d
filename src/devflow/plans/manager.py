"""Plan artifact management."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from devflow.backends.detector import TaskBackendInfo
from devflow.fileio import atomic_write_text
from devflow.hooks.base import HookName, PluginHookContext
from devflow.hooks.registry import PluginHookRegistry
from devflow.plans import sections
from devflow.workflows.models import WorkflowDefinition

logger = logging.getLogger(__name__)

GENERATOR_NAME = "devflow"


@dataclass
class PlanFileInfo:
    """Location and content of a plan file."""

    path: str
    exists: bool
    content: Optional[str] = None

    def to_dict(self) -> dict:
        return {"path": self.path, "exists": self.exists, "content": self.content}


class PlanManager:
    """
    Creates and maintains the development plan document.

    The plan has one ``##`` section per phase the conversation has entered,
    placed before the shared ``## Key Decisions`` and ``## Notes`` sections.
    Sections are added lazily and never removed.
    """

    def __init__(self, hook_registry: Optional[PluginHookRegistry] = None):
        """
        Initialize plan manager.

        Args:
            hook_registry: Registry used for the after_plan_file_created hook
        """
        self.hook_registry = hook_registry
        self.workflow: Optional[WorkflowDefinition] = None
        self.task_backend: Optional[TaskBackendInfo] = None

    def set_workflow(self, workflow: WorkflowDefinition) -> None:
        self.workflow = workflow

    def set_task_backend(self, info: TaskBackendInfo) -> None:
        self.task_backend = info

    @property
    def uses_external_tracker(self) -> bool:
        return self.task_backend is not None and self.task_backend.uses_external_tracker

    def get_plan_file_info(self, path: str | Path) -> PlanFileInfo:
        """Describe a plan file, reading it if it exists and is decodable."""
        content = self._read(Path(path))
        return PlanFileInfo(path=str(path), exists=content is not None, content=content)

    def _read(self, path: Path) -> Optional[str]:
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError) as e:
            corrupt = path.with_name(path.name + ".corrupt")
            logger.warning(f"Plan file {path} is unreadable ({e}), moving it to {corrupt}")
            try:
                path.replace(corrupt)
            except OSError as move_error:
                logger.error(f"Could not move unreadable plan file {path}: {move_error}")
            return None

    def update(self, path: str | Path, content: str) -> bool:
        """
        Replace the plan content atomically.

        Returns:
            True if the content was written, False if the write failed
        """
        try:
            atomic_write_text(Path(path), content)
        except OSError as e:
            logger.error(f"Could not write plan file {path}: {e}")
            return False
        logger.debug(f"Updated plan file {path}")
        return True

    async def ensure_artifact(
        self,
        path: str | Path,
        project_path: str | Path,
        branch: str,
        phase: Optional[str] = None,
        hook_context: Optional[PluginHookContext] = None,
    ) -> PlanFileInfo:
        """
        Create the plan if missing, and make sure it has a section for ``phase``.

        Calling this again on an unmodified plan writes nothing.

        Args:
            path: Plan file path
            project_path: Project root, used for the plan title
            branch: Git branch, used for the plan title
            phase: Phase whose section must exist (defaults to the workflow's first working phase)
            hook_context: Context for after_plan_file_created; hooks are skipped when None

        Returns:
            PlanFileInfo for the ensured plan
        """
        workflow = self._require_workflow()
        path = Path(path)
        phase = phase or workflow.first_working_phase()

        content = self._read(path)
        if content is None:
            content = self._render_new_plan(Path(project_path), branch, phase)
            if self.hook_registry is not None and hook_context is not None:
                content = await self.hook_registry.invoke(
                    HookName.AFTER_PLAN_FILE_CREATED, hook_context, content
                )
            if not self.update(path, content):
                return PlanFileInfo(path=str(path), exists=False)
            logger.info(f"Created plan file {path}")
            return PlanFileInfo(path=str(path), exists=True, content=content)

        title = sections.phase_title(phase)
        if sections.has_heading(content, title):
            return PlanFileInfo(path=str(path), exists=True, content=content)

        content = sections.insert_section_before(content, self._render_phase_section(phase))
        if not self.update(path, content):
            return PlanFileInfo(path=str(path), exists=True, content=content)
        logger.info(f"Added '{title}' section to plan file {path}")
        return PlanFileInfo(path=str(path), exists=True, content=content)

    def guidance_for(self, phase: str) -> str:
        """
        Describe where in the plan the caller should work for a phase.

        Raises:
            RuntimeError: If no workflow has been attached
            ValueError: If the phase is not part of the workflow
        """
        workflow = self._require_workflow()
        if not workflow.has_phase(phase):
            raise ValueError(f"Phase '{phase}' is not part of workflow '{workflow.name}'")

        title = sections.phase_title(phase)
        if self.uses_external_tracker:
            return (
                f'Use the "## {title}" section of the plan file for key decisions and notes '
                f"about this phase. If the plan file does not exist yet, it is created with "
                f"that section the first time it is written. Tasks for this phase live in the "
                f"external tracker, not in the plan file."
            )
        return (
            f'Work on the tasks listed in the "## {title}" section of the plan file. '
            f"If the plan file does not exist yet, it is created with that section the first "
            f"time it is written; add tasks there as they are identified and mark completed "
            f"tasks with [x]."
        )

    def _require_workflow(self) -> WorkflowDefinition:
        if self.workflow is None:
            raise RuntimeError("PlanManager has no workflow attached; call set_workflow() first")
        return self.workflow

    def _render_new_plan(self, project_path: Path, branch: str, phase: str) -> str:
        workflow = self._require_workflow()
        branch_suffix = f" ({branch} branch)" if branch and branch != "default" else ""
        date = datetime.now().strftime("%Y-%m-%d")

        parts = [
            f"# Development Plan: {project_path.name}{branch_suffix}\n",
            f"*Generated on {date} by {GENERATOR_NAME}*",
            f"*Workflow: {workflow.name}*\n",
            "## Goal",
            "*Define what you're building or fixing - this will be updated as requirements are gathered*\n",
            self._render_phase_section(phase),
            f"## {sections.KEY_DECISIONS_HEADING}",
            "*Important decisions will be documented here as they are made*\n",
            f"## {sections.NOTES_HEADING}",
            "*Additional context and observations*\n",
            "---",
            f"*This plan is maintained by {GENERATOR_NAME}. Update it as you work.*\n",
        ]
        return "\n".join(parts)

    def _render_phase_section(self, phase: str) -> str:
        workflow = self._require_workflow()
        lines = [f"## {sections.phase_title(phase)}"]

        if self.uses_external_tracker:
            lines.append(f"<!-- beads-phase-id: {sections.BEADS_PLACEHOLDER} -->")

        if phase != workflow.initial_state:
            lines += [
                "### Phase Entrance Criteria:",
                "- [ ] *Define what must be true before this phase starts*",
                "",
            ]

        lines.append("### Tasks")
        if self.uses_external_tracker:
            lines.append("*Tasks managed via `bd` CLI*")
        else:
            lines += [
                "- [ ] *To be added when this phase becomes active*",
                "",
                "### Completed",
                "*None yet*",
            ]
        lines.append("")
        return "\n".join(lines)
