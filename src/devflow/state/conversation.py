"""Conversation state records."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class GitCommitConfig:
    """Commit behaviour chosen when development started."""

    enabled: bool = False
    commit_on_step: bool = False
    commit_on_phase: bool = False
    commit_on_complete: bool = False
    initial_message: str = "Development session"
    start_commit_hash: Optional[str] = None

    @classmethod
    def from_behaviour(cls, behaviour: str, start_commit_hash: Optional[str] = None) -> "GitCommitConfig":
        """Build a config from a commit behaviour name (step, phase, end, none)."""
        return cls(
            enabled=behaviour != "none",
            commit_on_step=behaviour == "step",
            commit_on_phase=behaviour == "phase",
            commit_on_complete=behaviour == "end",
            start_commit_hash=start_commit_hash,
        )

    @property
    def behaviour(self) -> str:
        if self.commit_on_step:
            return "step"
        if self.commit_on_phase:
            return "phase"
        if self.commit_on_complete:
            return "end"
        return "none"

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "commit_on_step": self.commit_on_step,
            "commit_on_phase": self.commit_on_phase,
            "commit_on_complete": self.commit_on_complete,
            "initial_message": self.initial_message,
            "start_commit_hash": self.start_commit_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GitCommitConfig":
        return cls(
            enabled=data.get("enabled", False),
            commit_on_step=data.get("commit_on_step", False),
            commit_on_phase=data.get("commit_on_phase", False),
            commit_on_complete=data.get("commit_on_complete", False),
            initial_message=data.get("initial_message", "Development session"),
            start_commit_hash=data.get("start_commit_hash"),
        )


@dataclass
class ConversationState:
    """Persistent state of one development conversation (project + branch)."""

    conversation_id: str
    project_path: str
    git_branch: str
    current_phase: str
    plan_file_path: str
    workflow_name: str
    require_reviews_before_phase_transition: bool = False
    git_commit_config: Optional[GitCommitConfig] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "conversation_id": self.conversation_id,
            "project_path": self.project_path,
            "git_branch": self.git_branch,
            "current_phase": self.current_phase,
            "plan_file_path": self.plan_file_path,
            "workflow_name": self.workflow_name,
            "require_reviews_before_phase_transition": self.require_reviews_before_phase_transition,
            "git_commit_config": self.git_commit_config.to_dict() if self.git_commit_config else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationState":
        """Create from dict."""
        commit_config = data.get("git_commit_config")
        return cls(
            conversation_id=data["conversation_id"],
            project_path=data["project_path"],
            git_branch=data["git_branch"],
            current_phase=data["current_phase"],
            plan_file_path=data["plan_file_path"],
            workflow_name=data["workflow_name"],
            require_reviews_before_phase_transition=data.get(
                "require_reviews_before_phase_transition", False
            ),
            git_commit_config=GitCommitConfig.from_dict(commit_config) if commit_config else None,
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class InteractionLog:
    """One handled tool request."""

    conversation_id: str
    tool_name: str
    input_params: dict[str, Any]
    response_data: dict[str, Any]
    current_phase: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "tool_name": self.tool_name,
            "input_params": self.input_params,
            "response_data": self.response_data,
            "current_phase": self.current_phase,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InteractionLog":
        return cls(
            conversation_id=data["conversation_id"],
            tool_name=data["tool_name"],
            input_params=data.get("input_params", {}),
            response_data=data.get("response_data", {}),
            current_phase=data["current_phase"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
