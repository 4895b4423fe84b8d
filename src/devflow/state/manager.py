"""Conversation lifecycle for one project."""

import hashlib
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from devflow import git
from devflow.core.errors import ConversationNotFoundError
from devflow.state.conversation import ConversationState, GitCommitConfig, InteractionLog
from devflow.state.store import ConversationStore
from devflow.workflows.config import PROJECT_DIR

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = f"{PROJECT_DIR}/conversations"
PLAN_FILE_TEMPLATE = "development-plan-{branch}.md"


def slugify(value: str) -> str:
    """Lowercase, replace runs of non-alphanumerics with '-'."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "project"


def make_conversation_id(project_path: str | Path, branch: str) -> str:
    """
    Derive a stable conversation id from project path and branch.

    Example: ``my-app-feature-login-3fa9c1``
    """
    project_path = str(Path(project_path).resolve())
    digest = hashlib.sha256(f"{project_path}:{branch}".encode("utf-8")).hexdigest()[:6]
    return f"{slugify(Path(project_path).name)}-{slugify(branch)}-{digest}"


class ConversationManager:
    """Creates, loads, updates and resets the conversation for a project."""

    def __init__(self, project_path: str | Path, config: Optional[dict] = None):
        """
        Initialize conversation manager.

        Args:
            project_path: Project root directory
            config: State configuration (``directory`` relative to the project)
        """
        self.project_path = Path(project_path).resolve()
        self.config = config or {}

        state_dir = Path(self.config.get("directory", DEFAULT_STATE_DIR))
        if not state_dir.is_absolute():
            state_dir = self.project_path / state_dir
        self.store = ConversationStore(state_dir)

    async def current_branch(self) -> str:
        return await git.current_branch(self.project_path)

    def conversation_id(self, branch: str) -> str:
        return make_conversation_id(self.project_path, branch)

    def plan_file_path(self, branch: str) -> Path:
        safe_branch = branch.replace("/", "-").replace("\\", "-")
        return self.project_path / PROJECT_DIR / PLAN_FILE_TEMPLATE.format(branch=safe_branch)

    async def find(self) -> Optional[ConversationState]:
        """Return the conversation for the current branch, if any."""
        return self.store.load_state(self.conversation_id(await self.current_branch()))

    async def get(self) -> ConversationState:
        """
        Return the conversation for the current branch.

        Raises:
            ConversationNotFoundError: If development has not been started
        """
        branch = await self.current_branch()
        state = self.store.load_state(self.conversation_id(branch))
        if state is None:
            raise ConversationNotFoundError(str(self.project_path), branch)
        return state

    async def new_state(
        self,
        workflow_name: str,
        initial_phase: str,
        require_reviews: bool = False,
        commit_config: Optional[GitCommitConfig] = None,
    ) -> ConversationState:
        """
        Build a fresh conversation record for the current branch without saving it.

        Restarting keeps the original creation time but resets the workflow
        and phase.
        """
        branch = await self.current_branch()
        conversation_id = self.conversation_id(branch)
        existing = self.store.load_state(conversation_id)
        now = datetime.now()

        return ConversationState(
            conversation_id=conversation_id,
            project_path=str(self.project_path),
            git_branch=branch,
            current_phase=initial_phase,
            plan_file_path=str(self.plan_file_path(branch)),
            workflow_name=workflow_name,
            require_reviews_before_phase_transition=require_reviews,
            git_commit_config=commit_config,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

    def save(self, state: ConversationState) -> ConversationState:
        """Persist a conversation record built by ``new_state``."""
        is_restart = self.store.load_state(state.conversation_id) is not None
        state.updated_at = datetime.now()
        self.store.save_state(state)

        if is_restart:
            logger.info(f"Re-initialized conversation {state.conversation_id} with workflow '{state.workflow_name}'")
        else:
            logger.info(f"Created conversation {state.conversation_id} with workflow '{state.workflow_name}'")
        return state

    async def create(
        self,
        workflow_name: str,
        initial_phase: str,
        require_reviews: bool = False,
        commit_config: Optional[GitCommitConfig] = None,
    ) -> ConversationState:
        """
        Create, or re-initialize, the conversation for the current branch.

        Returns:
            The persisted ConversationState
        """
        state = await self.new_state(workflow_name, initial_phase, require_reviews, commit_config)
        return self.save(state)

    def update_phase(self, state: ConversationState, phase: str) -> ConversationState:
        """Persist a new current phase."""
        previous = state.current_phase
        state.current_phase = phase
        state.updated_at = datetime.now()
        self.store.save_state(state)
        if previous != phase:
            logger.info(f"Conversation {state.conversation_id}: {previous} -> {phase}")
        return state

    def log_interaction(
        self,
        state: ConversationState,
        tool_name: str,
        input_params: dict,
        response_data: dict,
    ) -> None:
        self.store.append_interaction(
            InteractionLog(
                conversation_id=state.conversation_id,
                tool_name=tool_name,
                input_params=input_params,
                response_data=response_data,
                current_phase=state.current_phase,
            )
        )

    def has_interactions(self, state: ConversationState) -> bool:
        return self.store.has_interactions(state.conversation_id)

    def interactions(self, state: ConversationState) -> list[InteractionLog]:
        return self.store.load_interactions(state.conversation_id)

    async def reset(self) -> dict:
        """
        Delete the conversation state, its history and its plan file.

        Returns:
            Summary of what was removed

        Raises:
            ConversationNotFoundError: If there is nothing to reset
        """
        state = await self.get()
        plan_path = Path(state.plan_file_path)
        plan_deleted = False
        if plan_path.exists():
            plan_path.unlink()
            plan_deleted = True

        state_deleted = self.store.delete_conversation(state.conversation_id)
        logger.info(f"Reset conversation {state.conversation_id}")
        return {
            "conversation_id": state.conversation_id,
            "state_deleted": state_deleted,
            "plan_deleted": plan_deleted,
        }
