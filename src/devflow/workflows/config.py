"""Project-level configuration (``.devflow/config.yaml``)."""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from devflow.core.errors import WorkflowConfigError

logger = logging.getLogger(__name__)

PROJECT_DIR = ".devflow"
CONFIG_FILENAMES = ("config.yaml", "config.yml")


class ProjectConfig(BaseModel):
    """
    Per-project settings.

    Example:
        enabled_workflows:
          - waterfall
          - bugfix
    """

    model_config = ConfigDict(extra="allow")

    enabled_workflows: Optional[list[str]] = None

    @field_validator("enabled_workflows", mode="before")
    @classmethod
    def validate_enabled_workflows(cls, v):
        """Reject malformed allow-lists instead of ignoring them."""
        if v is None:
            return v
        if not isinstance(v, list):
            raise ValueError("enabled_workflows must be an array")
        if len(v) == 0:
            raise ValueError("enabled_workflows cannot be empty")
        if not all(isinstance(name, str) and name.strip() for name in v):
            raise ValueError("all workflow names must be non-empty strings")
        return [name.strip() for name in v]


def config_path_for(project_path: Path) -> Optional[Path]:
    """Return the project config file path, or None if there is none."""
    for filename in CONFIG_FILENAMES:
        candidate = Path(project_path) / PROJECT_DIR / filename
        if candidate.is_file():
            return candidate
    return None


def load_project_config(project_path: Path) -> Optional[ProjectConfig]:
    """
    Load and validate the project's config file.

    Args:
        project_path: Project root directory

    Returns:
        ProjectConfig, or None if the project has no config file

    Raises:
        WorkflowConfigError: If the file is not valid YAML or has bad values
    """
    path = config_path_for(project_path)
    if path is None:
        return None

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise WorkflowConfigError(f"Invalid YAML in config file {path}: {e}") from e

    if data is None:
        return ProjectConfig()
    if not isinstance(data, dict):
        raise WorkflowConfigError(f"Config file {path} must contain a mapping")

    try:
        config = ProjectConfig.model_validate(data)
    except PydanticValidationError as e:
        raise WorkflowConfigError(
            f"Invalid configuration in {path}: {_first_error_message(e)}"
        ) from e

    logger.debug(f"Loaded project config from {path}")
    return config


def validate_enabled_workflows(config: ProjectConfig, available: set[str]) -> None:
    """
    Check that every enabled workflow name exists.

    Raises:
        WorkflowConfigError: If an entry names an unknown workflow
    """
    if config.enabled_workflows is None:
        return
    for name in config.enabled_workflows:
        if name not in available:
            raise WorkflowConfigError(
                f"Invalid workflow '{name}' in enabled_workflows. "
                f"Available workflows: {', '.join(sorted(available))}"
            )


def _first_error_message(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    cause = first.get("ctx", {}).get("error")
    return str(cause) if cause is not None else first["msg"]
