"""System prompt for assistants driven by devflow."""

import logging

from devflow.plans.sections import phase_title
from devflow.workflows.models import WorkflowDefinition

logger = logging.getLogger(__name__)


def generate_system_prompt(workflow: WorkflowDefinition) -> str:
    """
    Build a system prompt describing how to work with a workflow.

    Args:
        workflow: Workflow the conversation follows

    Returns:
        System prompt string
    """
    prompt = f"""You are an AI assistant that helps users develop software features with devflow.

The project follows the "{workflow.name}" workflow: {workflow.description}

IMPORTANT: Call whats_next() after each user message to get phase-specific instructions and keep the development workflow on track.

Each tool call returns a JSON response with an "instructions" field. Follow these instructions immediately after you receive them.

Do not use your own task management tools. Use the development plan, which whats_next() points you to, for all task tracking."""

    # Phase overview
    lines = []
    for name in workflow.phase_names:
        phase = workflow.get_phase(name)
        targets = sorted({t.to for t in phase.transitions if t.to != name})
        line = f"- **{phase_title(name)}** (`{name}`): {phase.description}"
        if targets:
            line += f" Next: {', '.join(targets)}."
        lines.append(line)
    prompt += "\n\n# Phases\n" + "\n".join(lines)

    prompt += """

IMPORTANT - Phase Transitions:
1. Stay in the current phase until its tasks in the plan are done
2. Call proceed_to_phase() with the target phase and a reason to move on
3. When a transition needs a review, call conduct_review() and then proceed_to_phase() with review_state 'performed'"""

    logger.debug(f"Generated system prompt for workflow '{workflow.name}' ({len(prompt)} chars)")
    return prompt
