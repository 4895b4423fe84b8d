"""Layered workflow definition store with per-project caching."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from devflow.core.errors import WorkflowNotFoundError, WorkflowValidationError
from devflow.workflows.config import (
    PROJECT_DIR,
    load_project_config,
    validate_enabled_workflows,
)
from devflow.workflows.loader import load_workflow_file
from devflow.workflows.models import WorkflowDefinition

logger = logging.getLogger(__name__)

BUILTIN_CATALOG_DIR = Path(__file__).parent / "resources"
CUSTOM_WORKFLOW_NAME = "custom"
CUSTOM_WORKFLOW_FILES = ("workflow.yaml", "workflow.yml")
PROJECT_WORKFLOWS_DIR = "workflows"


@dataclass
class WorkflowInfo:
    """Summary of a visible workflow."""

    name: str
    description: str
    initial_state: str
    phases: list[str]
    source: str  # "builtin" or "project"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "initial_state": self.initial_state,
            "phases": self.phases,
            "source": self.source,
        }


class WorkflowDefinitionStore:
    """
    Resolves workflow names to validated definitions.

    Resolution order:
    1. Project-local definitions under ``<project>/.devflow/``
    2. The built-in catalog shipped with the package

    Resolved graphs are cached per (project path, workflow name) for the
    lifetime of the store.
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize workflow store.

        Args:
            config: Workflow configuration (``catalog_dir`` overrides the built-in path)
        """
        self.config = config or {}
        catalog_dir = self.config.get("catalog_dir")
        self.catalog_dir = Path(catalog_dir) if catalog_dir else BUILTIN_CATALOG_DIR
        self._builtin: Optional[dict[str, WorkflowDefinition]] = None
        self._cache: dict[tuple[str, str], WorkflowDefinition] = {}

    def _load_builtin(self) -> dict[str, WorkflowDefinition]:
        """Load the built-in catalog once."""
        if self._builtin is None:
            self._builtin = {}
            for path in sorted(self.catalog_dir.glob("*.y*ml")):
                workflow = load_workflow_file(path)
                self._builtin[workflow.name] = workflow
            logger.info(f"Loaded {len(self._builtin)} built-in workflows from {self.catalog_dir}")
        return self._builtin

    def _load_project_local(self, project_path: Path) -> dict[str, WorkflowDefinition]:
        """
        Load project-local workflow definitions.

        The single-file override ``.devflow/workflow.yaml`` is available both
        under its declared name and under the name ``custom``.
        """
        local: dict[str, WorkflowDefinition] = {}
        base = project_path / PROJECT_DIR

        workflows_dir = base / PROJECT_WORKFLOWS_DIR
        if workflows_dir.is_dir():
            for path in sorted(workflows_dir.glob("*.y*ml")):
                workflow = load_workflow_file(path)
                local[workflow.name] = workflow

        for filename in CUSTOM_WORKFLOW_FILES:
            path = base / filename
            if path.is_file():
                workflow = load_workflow_file(path)
                local[workflow.name] = workflow
                local[CUSTOM_WORKFLOW_NAME] = workflow
                break

        if local:
            logger.debug(f"Found project workflows in {base}: {sorted(local)}")
        return local

    def _visible(self, project_path: Path) -> dict[str, tuple[WorkflowDefinition, str]]:
        """Compute every workflow visible to a project, tagged with its source."""
        builtin = self._load_builtin()
        local = self._load_project_local(project_path)

        project_config = load_project_config(project_path)
        enabled: Optional[set[str]] = None
        if project_config is not None and project_config.enabled_workflows is not None:
            # custom is always a known name; it is only visible when its file exists
            validate_enabled_workflows(project_config, set(builtin) | set(local) | {CUSTOM_WORKFLOW_NAME})
            enabled = set(project_config.enabled_workflows)

        visible: dict[str, tuple[WorkflowDefinition, str]] = {}
        for name, workflow in builtin.items():
            if enabled is None or name in enabled:
                visible[name] = (workflow, "builtin")
        # Project-local definitions win name conflicts
        for name, workflow in local.items():
            visible[name] = (workflow, "project")
        return visible

    def resolve(self, project_path: str | Path, workflow_name: str) -> WorkflowDefinition:
        """
        Resolve a workflow by name for a project.

        Args:
            project_path: Project root directory
            workflow_name: Workflow name

        Returns:
            Validated WorkflowDefinition

        Raises:
            WorkflowNotFoundError: If no visible workflow has this name
            WorkflowConfigError: If the project config is malformed
            WorkflowValidationError: If a definition file is invalid
        """
        root = Path(project_path).resolve()
        key = (str(root), workflow_name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        visible = self._visible(root)
        entry = visible.get(workflow_name)
        if entry is None:
            if workflow_name in self._load_builtin():
                raise WorkflowNotFoundError(
                    f"Workflow '{workflow_name}' is not enabled for this project. "
                    f"Enabled workflows: {', '.join(sorted(visible))}"
                )
            raise WorkflowNotFoundError(
                f"Unknown workflow '{workflow_name}'. "
                f"Available workflows: {', '.join(sorted(visible))}"
            )

        workflow, source = entry
        logger.info(f"Resolved workflow '{workflow_name}' ({source}) for {root}")
        self._cache[key] = workflow
        return workflow

    def list_workflows(self, project_path: str | Path) -> list[WorkflowInfo]:
        """
        List workflows visible to a project.

        Args:
            project_path: Project root directory

        Returns:
            Workflow summaries sorted by name
        """
        visible = self._visible(Path(project_path).resolve())
        return [
            WorkflowInfo(
                name=name,
                description=workflow.description,
                initial_state=workflow.initial_state,
                phases=workflow.phase_names,
                source=source,
            )
            for name, (workflow, source) in sorted(visible.items())
        ]

    def validate_file(self, path: str | Path) -> WorkflowDefinition:
        """Load a single definition file without caching it."""
        path = Path(path)
        if not path.is_file():
            raise WorkflowValidationError(f"Workflow file not found: {path}")
        return load_workflow_file(path)

    def clear_cache(self) -> None:
        """Forget all resolved workflows."""
        self._cache.clear()
        self._builtin = None
