"""Parse and structurally validate workflow definition documents."""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from devflow.core.errors import WorkflowValidationError
from devflow.workflows.models import WorkflowDefinition

logger = logging.getLogger(__name__)

REQUIRED_TOP_LEVEL = ("name", "description", "initial_state", "states")
REQUIRED_PHASE_FIELDS = ("description", "default_instructions")
REQUIRED_TRANSITION_FIELDS = ("trigger", "to", "transition_reason")


def load_workflow_file(path: Path) -> WorkflowDefinition:
    """
    Load a workflow definition from a YAML file.

    Args:
        path: Path to the workflow YAML file

    Returns:
        Validated WorkflowDefinition

    Raises:
        WorkflowValidationError: If the file is unreadable or invalid
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise WorkflowValidationError(f"Cannot read workflow file: {e}", source=str(path)) from e
    return parse_workflow(text, source=str(path))


def parse_workflow(text: str, source: Optional[str] = None) -> WorkflowDefinition:
    """
    Parse a workflow definition from YAML text.

    Args:
        text: YAML document
        source: Where the text came from, used in error messages

    Returns:
        Validated WorkflowDefinition

    Raises:
        WorkflowValidationError: If the YAML is malformed or the graph is invalid
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise WorkflowValidationError(f"Invalid YAML in workflow definition: {e}", source=source) from e

    return build_workflow(data, source=source)


def build_workflow(data: Any, source: Optional[str] = None) -> WorkflowDefinition:
    """
    Validate a raw mapping and build a WorkflowDefinition from it.

    Structural checks run before model construction so that every error
    names the phase and transition at fault.
    """
    validate_structure(data, source=source)
    try:
        workflow = WorkflowDefinition.model_validate(data)
    except PydanticValidationError as e:
        raise WorkflowValidationError(f"Invalid workflow definition: {e}", source=source) from e

    logger.debug(
        f"Loaded workflow '{workflow.name}' with {len(workflow.states)} phases"
        + (f" from {source}" if source else "")
    )
    return workflow


def validate_structure(data: Any, source: Optional[str] = None) -> None:
    """
    Check the shape of a raw workflow mapping.

    Raises:
        WorkflowValidationError: On the first structural violation found
    """
    if not isinstance(data, dict):
        raise WorkflowValidationError("Workflow definition must be a mapping", source=source)

    missing = [key for key in REQUIRED_TOP_LEVEL if not data.get(key)]
    if missing:
        raise WorkflowValidationError(
            f"Workflow is missing required properties: {', '.join(missing)}",
            source=source,
        )

    states = data["states"]
    if not isinstance(states, dict):
        raise WorkflowValidationError("Workflow 'states' must be a mapping", source=source)

    initial = data["initial_state"]
    if initial not in states:
        raise WorkflowValidationError(
            f'Initial state "{initial}" is not defined in states',
            phase=initial,
            source=source,
        )

    for phase_name, phase in states.items():
        if not isinstance(phase, dict):
            raise WorkflowValidationError(
                f'State "{phase_name}" must be a mapping',
                phase=phase_name,
                source=source,
            )

        missing = [key for key in REQUIRED_PHASE_FIELDS if not phase.get(key)]
        if missing:
            raise WorkflowValidationError(
                f'State "{phase_name}" is missing required properties: {", ".join(missing)}',
                phase=phase_name,
                source=source,
            )

        transitions = phase.get("transitions")
        if transitions is None:
            continue
        if not isinstance(transitions, list):
            raise WorkflowValidationError(
                f'State "{phase_name}" has invalid transitions property',
                phase=phase_name,
                source=source,
            )

        for index, transition in enumerate(transitions):
            _validate_transition(phase_name, index, transition, states, source)


def _validate_transition(
    phase_name: str,
    index: int,
    transition: Any,
    states: dict,
    source: Optional[str],
) -> None:
    if not isinstance(transition, dict):
        raise WorkflowValidationError(
            f'State "{phase_name}" has invalid transition at position {index}',
            phase=phase_name,
            source=source,
        )

    label = transition.get("trigger") or f"#{index}"
    missing = [key for key in REQUIRED_TRANSITION_FIELDS if not transition.get(key)]
    if missing:
        raise WorkflowValidationError(
            f'Transition "{label}" in state "{phase_name}" is missing required properties: '
            f'{", ".join(missing)}',
            phase=phase_name,
            transition=label,
            source=source,
        )

    target = transition["to"]
    if target not in states:
        raise WorkflowValidationError(
            f'State "{phase_name}" has transition "{label}" to unknown state "{target}"',
            phase=phase_name,
            transition=label,
            source=source,
        )

    perspectives = transition.get("review_perspectives")
    if perspectives is not None:
        if not isinstance(perspectives, list):
            raise WorkflowValidationError(
                f'Transition "{label}" in state "{phase_name}" has invalid review_perspectives',
                phase=phase_name,
                transition=label,
                source=source,
            )
        for perspective in perspectives:
            if not isinstance(perspective, dict) or not perspective.get("perspective") or not perspective.get("prompt"):
                raise WorkflowValidationError(
                    f'Transition "{label}" in state "{phase_name}" has a review perspective '
                    f"without 'perspective' and 'prompt'",
                    phase=phase_name,
                    transition=label,
                    source=source,
                )
