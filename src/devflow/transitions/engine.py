"""Phase transition decisions."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from devflow.core.errors import PhaseValidationError, RoleValidationError
from devflow.instructions.review import review_instructions
from devflow.transitions.strategy import TransitionSignals, TransitionStrategy, create_strategy
from devflow.workflows.models import (
    ReviewPerspective,
    Transition,
    WorkflowDefinition,
    filter_transitions_by_role,
)

logger = logging.getLogger(__name__)

FIRST_CALL_REASON = "Starting development - defining criteria"


class ReviewState(str, Enum):
    """Caller-reported state of a review gate."""

    NOT_REQUIRED = "not-required"
    PENDING = "pending"
    PERFORMED = "performed"


@dataclass
class TransitionResult:
    """Outcome of a transition decision."""

    new_phase: str
    instructions: str
    transition_reason: str
    is_modeled: bool
    persist: bool = True
    review_required: bool = False
    review_perspectives: tuple[ReviewPerspective, ...] = ()
    trigger: Optional[str] = None
    is_first_call: bool = False


class TransitionEngine:
    """
    Decides the next phase for a conversation.

    Transitions fire explicitly, when the caller names a target phase, or
    implicitly, when the configured strategy finds a dominant match in the
    caller's text. In collaborative workflows transitions tagged with other
    roles are invisible. Edges with review perspectives are not persisted
    until the caller reports the review as performed.
    """

    def __init__(self, config: Optional[dict] = None, strategy: Optional[TransitionStrategy] = None):
        """
        Initialize transition engine.

        Args:
            config: Transition configuration (strategy, min_score)
            strategy: Inference strategy; overrides the configured one
        """
        self.config = config or {}
        self.strategy = strategy or create_strategy(self.config)

    def available_transitions(
        self, workflow: WorkflowDefinition, phase: str, role: Optional[str] = None
    ) -> list[Transition]:
        """Transitions out of ``phase`` visible to ``role``."""
        return filter_transitions_by_role(
            workflow.get_phase(phase).transitions, role, workflow.is_collaborative
        )

    def compose_instructions(self, workflow: WorkflowDefinition, transition: Optional[Transition], target: str) -> str:
        """
        Instruction text for entering ``target``.

        A transition's own instructions replace the target's defaults, and
        its additional instructions are appended.
        """
        text = workflow.get_phase(target).default_instructions.strip()
        if transition is None:
            return text
        if transition.instructions:
            text = transition.instructions.strip()
        if transition.additional_instructions:
            text += f"\n\n**Additional Context:**\n{transition.additional_instructions.strip()}"
        return text

    def continue_in_phase(
        self, workflow: WorkflowDefinition, phase: str, role: Optional[str] = None
    ) -> TransitionResult:
        """Result for staying in the current phase."""
        self_transition = next(
            (t for t in self.available_transitions(workflow, phase, role) if t.to == phase),
            None,
        )
        if self_transition is not None:
            return TransitionResult(
                new_phase=phase,
                instructions=self.compose_instructions(workflow, self_transition, phase),
                transition_reason=self_transition.transition_reason,
                is_modeled=True,
                trigger=self_transition.trigger,
            )
        return TransitionResult(
            new_phase=phase,
            instructions=workflow.get_phase(phase).default_instructions.strip(),
            transition_reason=f"Continuing work in {phase} phase",
            is_modeled=False,
        )

    def first_call(self, workflow: WorkflowDefinition) -> TransitionResult:
        """
        Result for the first request of a conversation.

        Moves into the workflow's first working phase and asks the caller to
        define entrance criteria for the phases ahead.
        """
        target = workflow.first_working_phase()
        bootstrap = workflow.find_transition(workflow.initial_state, target) if target != workflow.initial_state else None
        later_phases = [p for p in workflow.phase_names if p not in (workflow.initial_state, target)]

        instructions = self.compose_instructions(workflow, bootstrap, target)
        if later_phases:
            instructions += (
                "\n\n**Define Phase Entrance Criteria:**\n"
                "Before starting, agree with the user on what must be true before each later "
                f"phase begins ({', '.join(later_phases)}). Record the criteria in the plan file "
                "under the Notes section; each phase's section receives a "
                '"Phase Entrance Criteria" checklist when that phase is entered.'
            )

        logger.info(f"First call for workflow '{workflow.name}': entering '{target}'")
        return TransitionResult(
            new_phase=target,
            instructions=instructions,
            transition_reason=FIRST_CALL_REASON,
            is_modeled=bootstrap is not None,
            trigger=bootstrap.trigger if bootstrap else None,
            is_first_call=True,
        )

    def analyze_phase_transition(
        self,
        workflow: WorkflowDefinition,
        current_phase: str,
        signals: TransitionSignals,
        is_first_call: bool = False,
        role: Optional[str] = None,
        require_reviews: bool = False,
    ) -> TransitionResult:
        """
        Infer the next phase from the caller's text.

        Args:
            workflow: Active workflow
            current_phase: Persisted current phase
            signals: Caller-reported context, input, summary and messages
            is_first_call: Whether the conversation has no logged interaction yet
            role: Caller's collaboration role
            require_reviews: Whether review gates are enforced

        Returns:
            TransitionResult; stays in the current phase unless one candidate dominates
        """
        if not workflow.has_phase(current_phase):
            raise PhaseValidationError(
                f"Current phase '{current_phase}' is not part of workflow '{workflow.name}'. "
                f"Valid phases: {', '.join(workflow.phase_names)}"
            )

        if is_first_call:
            return self.first_call(workflow)

        candidates = [t for t in self.available_transitions(workflow, current_phase, role) if t.to != current_phase]
        chosen = self.strategy.choose(workflow, current_phase, candidates, signals)
        if chosen is None:
            return self.continue_in_phase(workflow, current_phase, role)

        logger.info(f"Inferred transition '{chosen.trigger}': {current_phase} -> {chosen.to}")
        return self._gate(
            workflow,
            current_phase,
            chosen,
            TransitionResult(
                new_phase=chosen.to,
                instructions=self.compose_instructions(workflow, chosen, chosen.to),
                transition_reason=chosen.transition_reason,
                is_modeled=True,
                trigger=chosen.trigger,
            ),
            require_reviews=require_reviews,
            review_state=ReviewState.NOT_REQUIRED,
        )

    def handle_explicit_transition(
        self,
        workflow: WorkflowDefinition,
        current_phase: str,
        target_phase: str,
        reason: str = "",
        role: Optional[str] = None,
        review_state: ReviewState | str = ReviewState.NOT_REQUIRED,
        require_reviews: bool = False,
    ) -> TransitionResult:
        """
        Move to a phase the caller named.

        Raises:
            PhaseValidationError: If the target phase does not exist
            RoleValidationError: If the caller's role has no transition to the target
        """
        if not workflow.has_phase(target_phase):
            raise PhaseValidationError(
                f"Invalid target phase: '{target_phase}'. "
                f"Valid phases for workflow '{workflow.name}': {', '.join(workflow.phase_names)}"
            )

        review_state = ReviewState(review_state)
        transition = workflow.find_transition(current_phase, target_phase, role)

        if transition is None and role and workflow.is_collaborative:
            raise RoleValidationError(
                f"Agent with role '{role}' cannot proceed from {current_phase} to {target_phase}. "
                f"No transition available for this role."
            )

        if transition is None:
            logger.info(f"Unmodeled transition {current_phase} -> {target_phase}")
            return TransitionResult(
                new_phase=target_phase,
                instructions=self.compose_instructions(workflow, None, target_phase),
                transition_reason=f"Direct transition to {target_phase} phase",
                is_modeled=False,
            )

        logger.info(
            f"Explicit transition '{transition.trigger}': {current_phase} -> {target_phase}"
            + (f" ({reason})" if reason else "")
        )
        return self._gate(
            workflow,
            current_phase,
            transition,
            TransitionResult(
                new_phase=target_phase,
                instructions=self.compose_instructions(workflow, transition, target_phase),
                transition_reason=transition.transition_reason,
                is_modeled=True,
                trigger=transition.trigger,
            ),
            require_reviews=require_reviews,
            review_state=review_state,
        )

    def review_for(
        self, workflow: WorkflowDefinition, current_phase: str, target_phase: str, role: Optional[str] = None
    ) -> tuple[str, tuple[ReviewPerspective, ...]]:
        """
        Review instructions and perspectives for an edge.

        Raises:
            PhaseValidationError: If the target phase does not exist
        """
        if not workflow.has_phase(target_phase):
            raise PhaseValidationError(
                f"Invalid target phase: '{target_phase}'. "
                f"Valid phases for workflow '{workflow.name}': {', '.join(workflow.phase_names)}"
            )
        transition = workflow.find_transition(current_phase, target_phase, role)
        perspectives = transition.review_perspectives if transition else ()
        return review_instructions(current_phase, target_phase, transition), perspectives

    def _gate(
        self,
        workflow: WorkflowDefinition,
        current_phase: str,
        transition: Transition,
        result: TransitionResult,
        require_reviews: bool,
        review_state: ReviewState,
    ) -> TransitionResult:
        """Hold back persistence when the edge needs a review that has not happened."""
        if not (require_reviews and transition.requires_review):
            return result
        if review_state == ReviewState.PERFORMED:
            logger.info(f"Review for {current_phase} -> {transition.to} reported as performed")
            return result

        logger.info(f"Review required before {current_phase} -> {transition.to}; state not persisted")
        result.persist = False
        result.review_required = True
        result.review_perspectives = transition.review_perspectives
        result.instructions = review_instructions(current_phase, transition.to, transition)
        return result
