"""Integration tests for the devflow command line."""

import json

import pytest
from click.testing import CliRunner

from devflow.cli import cli


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "devflow.yaml"
    path.write_text("logging:\n  enabled: false\n")
    return path


@pytest.fixture
def invoke(project, config_file):
    """Run the CLI against the test project."""
    runner = CliRunner()

    def run(*args, input=None):
        return runner.invoke(
            cli,
            ["--config", str(config_file), "--project", str(project), *args],
            obj={},
            input=input,
        )

    return run


class TestCommands:
    """Test the workflow commands end to end."""

    def test_start_json(self, invoke):
        """Test starting development with JSON output."""
        result = invoke("--json", "start", "-w", "epcc")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["phase"] == "explore"
        assert data["workflow"] == "epcc"

    def test_start_then_next(self, invoke):
        invoke("start", "-w", "waterfall")

        result = invoke("--json", "next", "--input", "requirements complete")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["phase"] == "design"

    def test_next_without_start(self, invoke):
        """Test that a missing conversation exits with an error."""
        result = invoke("next")

        assert result.exit_code == 1
        assert "start_development" in result.output

    def test_proceed_and_resume(self, invoke):
        invoke("start", "-w", "bugfix")

        proceed = invoke("proceed", "analyze", "--reason", "bug reproduced")
        resume = invoke("--json", "resume")

        assert proceed.exit_code == 0, proceed.output
        assert json.loads(resume.output)["current_phase"] == "analyze"

    def test_invalid_phase(self, invoke):
        invoke("start", "-w", "bugfix")

        result = invoke("proceed", "deploy")

        assert result.exit_code == 1
        assert "Invalid target phase" in result.output

    def test_reset_cancelled(self, invoke):
        """Test that declining the prompt keeps the state."""
        invoke("start", "-w", "minor")

        result = invoke("reset", input="n\n")

        assert "cancelled" in result.output
        assert invoke("--json", "resume").exit_code == 0

    def test_reset(self, invoke):
        invoke("start", "-w", "minor")

        result = invoke("--json", "reset", "--yes", "--reason", "done")

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["state_deleted"]
        assert invoke("resume").exit_code == 1

    def test_resume_with_system_prompt(self, invoke):
        invoke("start", "-w", "epcc")

        result = invoke("--json", "resume", "--system-prompt")

        assert result.exit_code == 0, result.output
        prompt = json.loads(result.output)["system_prompt"]
        assert "whats_next()" in prompt
        assert "(`explore`)" in prompt

    def test_resume_without_system_prompt(self, invoke):
        invoke("start", "-w", "epcc")

        result = invoke("--json", "resume")

        assert json.loads(result.output)["system_prompt"] is None


class TestWorkflowCommands:
    """Test the workflow catalog commands."""

    def test_list(self, invoke):
        result = invoke("--json", "workflows", "list")

        assert result.exit_code == 0, result.output
        names = [entry["name"] for entry in json.loads(result.output)]
        assert "waterfall" in names
        assert "epcc" in names

    def test_list_table(self, invoke):
        result = invoke("workflows", "list")

        assert result.exit_code == 0, result.output
        assert "Workflows" in result.output

    def test_show(self, invoke):
        result = invoke("--json", "workflows", "show", "minor")

        assert json.loads(result.output)["name"] == "minor"

    def test_show_unknown(self, invoke):
        result = invoke("workflows", "show", "kanban")

        assert result.exit_code == 1

    def test_validate(self, invoke, tmp_path):
        """Test validating a workflow file before installing it."""
        path = tmp_path / "release.yaml"
        path.write_text(
            "name: release\n"
            "description: Release checklist\n"
            "initial_state: prepare\n"
            "states:\n"
            "  prepare:\n"
            "    description: Preparing\n"
            "    default_instructions: Bump the version.\n"
            "    transitions:\n"
            "      - trigger: prepared\n"
            "        to: publish\n"
            "        transition_reason: Version bumped\n"
            "  publish:\n"
            "    description: Publishing\n"
            "    default_instructions: Upload the build.\n"
        )

        result = invoke("workflows", "validate", str(path))

        assert result.exit_code == 0, result.output
        assert "release" in result.output
        assert "prepare" in result.output
        assert "publish" in result.output

    def test_validate_invalid(self, invoke, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text(
            "name: broken\n"
            "description: Dangling edge\n"
            "initial_state: start\n"
            "states:\n"
            "  start:\n"
            "    description: Starting\n"
            "    default_instructions: Begin.\n"
            "    transitions:\n"
            "      - trigger: go\n"
            "        to: nowhere\n"
            "        transition_reason: Going\n"
        )

        result = invoke("workflows", "validate", str(path))

        assert result.exit_code == 1
        assert "Invalid workflow" in result.output
        assert "nowhere" in result.output
