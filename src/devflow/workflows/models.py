"""Workflow graph models.

A workflow is stored as an arena of phases: ``states`` maps each phase name
to its :class:`Phase`, and transitions refer to their target by name only.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

BOOTSTRAP_PHASE = "idle"


class ReviewPerspective(BaseModel):
    """One reviewer viewpoint attached to a transition."""

    model_config = ConfigDict(frozen=True)

    perspective: str = Field(..., description="Reviewer role, e.g. 'architect'")
    prompt: str = Field(..., description="What the reviewer should check")


class Transition(BaseModel):
    """Directed edge between two phases."""

    model_config = ConfigDict(frozen=True)

    trigger: str
    to: str
    transition_reason: str
    instructions: Optional[str] = None
    additional_instructions: Optional[str] = None
    review_perspectives: tuple[ReviewPerspective, ...] = ()
    role: Optional[str] = None

    @property
    def requires_review(self) -> bool:
        """True when the edge carries at least one review perspective."""
        return len(self.review_perspectives) > 0


class Phase(BaseModel):
    """A named step in a workflow."""

    model_config = ConfigDict(frozen=True)

    description: str
    default_instructions: str
    transitions: tuple[Transition, ...] = ()

    @field_validator("transitions", mode="before")
    @classmethod
    def empty_transitions(cls, v):
        # Terminal phases may omit transitions or leave the key empty
        return () if v is None else v

    @property
    def is_terminal(self) -> bool:
        return not self.transitions


class WorkflowMetadata(BaseModel):
    """Optional descriptive data attached to a workflow."""

    model_config = ConfigDict(frozen=True, extra="allow")

    domain: Optional[str] = None
    complexity: Optional[str] = None
    best_for: tuple[str, ...] = ()
    collaboration: bool = False
    required_roles: tuple[str, ...] = ()


class WorkflowDefinition(BaseModel):
    """Immutable, validated workflow graph."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    initial_state: str
    states: dict[str, Phase]
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)

    @model_validator(mode="after")
    def check_graph(self) -> "WorkflowDefinition":
        """Every phase reference must name a declared phase."""
        if self.initial_state not in self.states:
            raise ValueError(f"Initial state '{self.initial_state}' is not defined in states")
        for name, phase in self.states.items():
            for transition in phase.transitions:
                if transition.to not in self.states:
                    raise ValueError(
                        f"State '{name}' has transition '{transition.trigger}' "
                        f"to unknown state '{transition.to}'"
                    )
        return self

    @property
    def phase_names(self) -> list[str]:
        return list(self.states)

    @property
    def is_collaborative(self) -> bool:
        return self.metadata.collaboration

    def has_phase(self, name: str) -> bool:
        return name in self.states

    def get_phase(self, name: str) -> Phase:
        """Look up a phase by name.

        Raises:
            KeyError: If the phase is not declared
        """
        return self.states[name]

    def find_transition(
        self, from_phase: str, to_phase: str, role: Optional[str] = None
    ) -> Optional[Transition]:
        """Return the first transition from ``from_phase`` to ``to_phase``
        visible to ``role``, or None if the edge is not modeled."""
        phase = self.states.get(from_phase)
        if phase is None:
            return None
        for transition in filter_transitions_by_role(
            phase.transitions, role, self.is_collaborative
        ):
            if transition.to == to_phase:
                return transition
        return None

    def first_working_phase(self) -> str:
        """Phase a new conversation should start working in.

        This is the initial state unless it is the ``idle`` bootstrap
        phase, in which case it is the target of its first transition.
        """
        if self.initial_state == BOOTSTRAP_PHASE:
            initial = self.states[self.initial_state]
            for transition in initial.transitions:
                if transition.to != BOOTSTRAP_PHASE:
                    return transition.to
        return self.initial_state

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict suitable for YAML/JSON output."""
        return self.model_dump(mode="json", exclude_none=True)


def filter_transitions_by_role(
    transitions: tuple[Transition, ...] | list[Transition],
    role: Optional[str],
    collaborative: bool = True,
) -> list[Transition]:
    """Filter transitions to those visible to a role.

    Transitions without a role tag are visible to everyone. Transitions
    tagged with another role are removed entirely. When no role is given,
    or the workflow is not collaborative, the set is returned unchanged.

    Args:
        transitions: Candidate transitions of one phase
        role: Caller's collaboration role
        collaborative: Whether the owning workflow is collaborative

    Returns:
        Visible transitions, in declaration order
    """
    if not role or not collaborative:
        return list(transitions)
    return [t for t in transitions if t.role is None or t.role == role]
