"""Shared fixtures."""

import pytest

from devflow.workflows.loader import parse_workflow


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment from leaking into tests."""
    for name in ("TASK_BACKEND", "COMMIT_BEHAVIOR", "COMMIT_MESSAGE_TEMPLATE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project(tmp_path):
    """Empty project directory (not a git repository)."""
    path = tmp_path / "my-app"
    path.mkdir()
    return path


@pytest.fixture
def review_workflow():
    """Three-phase workflow with a review gate on the first edge."""
    return parse_workflow(
        """
name: reviewed
description: Workflow with a review gate
initial_state: draft
states:
  draft:
    description: Drafting the change
    default_instructions: Write the draft.
    transitions:
      - trigger: draft_complete
        to: build
        transition_reason: Draft finished
        review_perspectives:
          - perspective: architect
            prompt: Check the structure
          - perspective: security_expert
            prompt: Check for unsafe input handling
  build:
    description: Building the implementation
    default_instructions: Build it.
    transitions:
      - trigger: build_complete
        to: done
        transition_reason: Build finished
  done:
    description: Finished
    default_instructions: Nothing left to do.
"""
    )
