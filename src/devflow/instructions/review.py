"""Review instructions for gated transitions."""

from devflow.plans.sections import phase_title
from devflow.workflows.models import ReviewPerspective, Transition


def review_instructions(
    current_phase: str,
    target_phase: str,
    transition: Transition | None,
) -> str:
    """Build the review request for moving from one phase to another."""
    if transition is None or not transition.requires_review:
        return (
            f"No review is required to move from {current_phase} to {target_phase}. "
            f"Call proceed_to_phase with review_state 'not-required'."
        )

    lines = [
        f"**Review required before leaving {phase_title(current_phase)} for {phase_title(target_phase)}.**",
        "",
        "Review the work of the current phase from each of these perspectives:",
        "",
    ]
    lines += [_perspective_line(index, p) for index, p in enumerate(transition.review_perspectives, 1)]
    lines += [
        "",
        "Summarize each reviewer's findings for the user and resolve blocking issues. "
        f"When the user accepts the review, call proceed_to_phase with target_phase "
        f"'{target_phase}' and review_state 'performed'.",
    ]
    return "\n".join(lines)


def _perspective_line(index: int, perspective: ReviewPerspective) -> str:
    title = perspective.perspective.replace("_", " ").title()
    return f"{index}. **{title}**: {perspective.prompt}"
