"""Unit tests for workflow parsing and validation."""

import copy
import random

import pytest
import yaml
from pydantic import ValidationError

from devflow.core.errors import WorkflowValidationError
from devflow.workflows.loader import build_workflow, load_workflow_file, parse_workflow
from devflow.workflows.models import WorkflowDefinition, filter_transitions_by_role
from devflow.workflows.store import BUILTIN_CATALOG_DIR


MINIMAL = """
name: tiny
description: Two phases
initial_state: start
states:
  start:
    description: Starting
    default_instructions: Begin.
    transitions:
      - trigger: go
        to: end
        transition_reason: Going
  end:
    description: Ending
    default_instructions: Stop.
"""


class TestParseWorkflow:
    """Test parse_workflow."""

    def test_parse_minimal(self):
        """Test parsing a valid two-phase workflow."""
        workflow = parse_workflow(MINIMAL)

        assert workflow.name == "tiny"
        assert workflow.phase_names == ["start", "end"]
        assert workflow.get_phase("end").is_terminal
        assert workflow.get_phase("start").transitions[0].to == "end"

    def test_unknown_transition_target(self):
        """Test that a transition to an undeclared state names both states."""
        text = MINIMAL.replace("to: end", "to: nowhere")

        with pytest.raises(WorkflowValidationError) as exc_info:
            parse_workflow(text)

        message = str(exc_info.value)
        assert "start" in message
        assert "nowhere" in message
        assert exc_info.value.phase == "start"
        assert exc_info.value.transition == "go"

    def test_missing_initial_state(self):
        """Test that an initial state outside the states map is rejected."""
        text = MINIMAL.replace("initial_state: start", "initial_state: missing")

        with pytest.raises(WorkflowValidationError, match='Initial state "missing"'):
            parse_workflow(text)

    def test_missing_phase_fields(self):
        """Test that a phase without default instructions is rejected."""
        text = MINIMAL.replace("    default_instructions: Stop.\n", "")

        with pytest.raises(WorkflowValidationError, match='State "end" is missing required properties'):
            parse_workflow(text)

    def test_missing_transition_fields(self):
        """Test that a transition without a reason is rejected."""
        text = MINIMAL.replace("        transition_reason: Going\n", "")

        with pytest.raises(WorkflowValidationError, match='Transition "go" in state "start"'):
            parse_workflow(text)

    def test_invalid_transitions_property(self):
        """Test that a non-list transitions value is rejected."""
        text = MINIMAL.replace(
            "    transitions:\n      - trigger: go\n        to: end\n        transition_reason: Going\n",
            "    transitions: sideways\n",
        )

        with pytest.raises(WorkflowValidationError, match="invalid transitions property"):
            parse_workflow(text)

    def test_empty_transitions_key_is_terminal(self):
        """Test that 'transitions:' with no value means a terminal phase."""
        workflow = parse_workflow(MINIMAL + "    transitions:\n")

        assert workflow.get_phase("end").is_terminal

    def test_invalid_yaml(self):
        """Test malformed YAML."""
        with pytest.raises(WorkflowValidationError, match="Invalid YAML"):
            parse_workflow("name: [unclosed", source="broken.yaml")

    def test_source_in_message(self):
        """Test that the source file is appended to the message."""
        with pytest.raises(WorkflowValidationError, match=r"\(in custom\.yaml\)"):
            parse_workflow("name: x", source="custom.yaml")

    def test_review_perspective_requires_prompt(self):
        """Test that review perspectives need both fields."""
        text = MINIMAL.replace(
            "        transition_reason: Going\n",
            "        transition_reason: Going\n        review_perspectives:\n          - perspective: architect\n",
        )

        with pytest.raises(WorkflowValidationError, match="review perspective"):
            parse_workflow(text)

    def test_workflow_is_immutable(self):
        """Test that loaded workflows cannot be modified."""
        workflow = parse_workflow(MINIMAL)

        with pytest.raises(Exception):
            workflow.name = "other"

    def test_input_mapping_is_not_modified(self):
        """Test that validating a raw mapping leaves it as it was."""
        data = yaml.safe_load(MINIMAL)
        data["states"]["end"]["transitions"] = None
        original = copy.deepcopy(data)

        build_workflow(data)

        assert data == original


class TestWorkflowModel:
    """Test graph checks on WorkflowDefinition itself."""

    def test_model_rejects_unknown_initial_state(self):
        data = yaml.safe_load(MINIMAL)
        data["initial_state"] = "missing"

        with pytest.raises(ValidationError, match="Initial state 'missing'"):
            WorkflowDefinition.model_validate(data)

    def test_model_rejects_unknown_target(self):
        """Test that the model refuses a transition to an undeclared state."""
        data = yaml.safe_load(MINIMAL)
        data["states"]["start"]["transitions"][0]["to"] = "nowhere"

        with pytest.raises(ValidationError, match="unknown state 'nowhere'"):
            WorkflowDefinition.model_validate(data)

    def test_model_accepts_valid_graph(self):
        workflow = WorkflowDefinition.model_validate(yaml.safe_load(MINIMAL))

        assert workflow.get_phase("start").transitions[0].to == "end"


def random_workflow(rng: random.Random) -> dict:
    """Build a raw workflow mapping with random phases and edges."""
    names = [f"phase_{i}" for i in range(rng.randint(1, 8))]
    states = {}
    for name in names:
        targets = rng.sample(names, rng.randint(0, len(names)))
        states[name] = {
            "description": f"{name} work",
            "default_instructions": f"Work on {name}.",
            "transitions": [
                {"trigger": f"to_{target}", "to": target, "transition_reason": f"Moving to {target}"}
                for target in targets
            ],
        }
    return {
        "name": "generated",
        "description": "Generated workflow",
        "initial_state": rng.choice(names),
        "states": states,
    }


class TestGeneratedGraphs:
    """Test loading randomly generated workflow graphs."""

    @pytest.mark.parametrize("seed", range(25))
    def test_every_target_resolves(self, seed):
        """Test that valid graphs load and every edge lands on a declared phase."""
        workflow = build_workflow(random_workflow(random.Random(seed)))

        assert workflow.has_phase(workflow.initial_state)
        for name in workflow.phase_names:
            for transition in workflow.get_phase(name).transitions:
                assert workflow.has_phase(transition.to)
        assert workflow.has_phase(workflow.first_working_phase())

    @pytest.mark.parametrize("seed", range(25))
    def test_dangling_target_rejected(self, seed):
        """Test that redirecting any edge to an undeclared phase is caught."""
        rng = random.Random(seed)
        data = random_workflow(rng)
        source = rng.choice(list(data["states"]))
        data["states"][source]["transitions"].append(
            {"trigger": "escape", "to": "undeclared", "transition_reason": "Leaving"}
        )

        with pytest.raises(WorkflowValidationError) as exc_info:
            build_workflow(data)

        assert exc_info.value.phase == source
        assert exc_info.value.transition == "escape"


class TestFirstWorkingPhase:
    """Test first_working_phase."""

    def test_initial_state_is_first_working_phase(self):
        """Test a workflow that starts directly in a working phase."""
        assert parse_workflow(MINIMAL).first_working_phase() == "start"

    def test_idle_bootstrap(self):
        """Test that an idle initial state resolves to its first target."""
        text = MINIMAL.replace("initial_state: start", "initial_state: idle") + """
  idle:
    description: Waiting
    default_instructions: Wait.
    transitions:
      - trigger: begin
        to: start
        transition_reason: Begin work
"""
        assert parse_workflow(text).first_working_phase() == "start"


class TestBuiltinCatalog:
    """Test the bundled workflow definitions."""

    @pytest.mark.parametrize("name", ["waterfall", "epcc", "bugfix", "minor", "crowd"])
    def test_builtin_loads(self, name):
        """Test that each bundled workflow is valid."""
        workflow = load_workflow_file(BUILTIN_CATALOG_DIR / f"{name}.yaml")

        assert workflow.name == name
        assert workflow.has_phase(workflow.initial_state)

    def test_waterfall_has_review_gates(self):
        """Test that waterfall's requirements edge carries reviews."""
        workflow = load_workflow_file(BUILTIN_CATALOG_DIR / "waterfall.yaml")

        transition = workflow.find_transition("requirements", "design")
        assert transition is not None
        assert transition.requires_review
        assert [p.perspective for p in transition.review_perspectives] == ["business_analyst", "architect"]


class TestRoleFiltering:
    """Test role-based transition filtering."""

    @pytest.fixture
    def crowd(self):
        return load_workflow_file(BUILTIN_CATALOG_DIR / "crowd.yaml")

    def test_role_sees_own_and_untagged(self, crowd):
        """Test that a role sees its own and untagged transitions only."""
        for phase in crowd.phase_names:
            visible = filter_transitions_by_role(crowd.get_phase(phase).transitions, "architect")
            assert all(t.role in (None, "architect") for t in visible)

    def test_tagged_edges_are_exclusive(self, crowd):
        """Test that no role sees another role's tagged transition."""
        roles = crowd.metadata.required_roles
        for phase in crowd.phase_names:
            for role in roles:
                visible = filter_transitions_by_role(crowd.get_phase(phase).transitions, role)
                others = set(roles) - {role}
                assert not any(t.role in others for t in visible)

    def test_no_role_sees_everything(self, crowd):
        """Test that filtering without a role is a no-op."""
        transitions = crowd.get_phase("requirements").transitions
        assert filter_transitions_by_role(transitions, None) == list(transitions)

    def test_non_collaborative_ignores_role(self):
        """Test that roles do not filter non-collaborative workflows."""
        workflow = parse_workflow(MINIMAL)
        assert workflow.find_transition("start", "end", role="developer") is not None
