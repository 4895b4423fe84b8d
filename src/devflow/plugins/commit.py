"""Plugin that creates git commits around phase transitions."""

import logging
import os
from typing import Any, Optional

from devflow import git
from devflow.hooks.base import Plugin, PluginHookContext, PluginHooks
from devflow.plans import sections

logger = logging.getLogger(__name__)

COMMIT_BEHAVIOUR_ENV = "COMMIT_BEHAVIOR"
COMMIT_MESSAGE_ENV = "COMMIT_MESSAGE_TEMPLATE"
VALID_BEHAVIOURS = ("step", "phase", "end", "none")
DEFAULT_FINAL_MESSAGE = "Complete development work"


class CommitPlugin(Plugin):
    """
    Commits work in progress before each phase transition.

    Config options:
        behaviour: step, phase, end or none. Overrides the behaviour chosen
            at start_development (also read from ``COMMIT_BEHAVIOR``)
        message_template: Final commit message (default: ``COMMIT_MESSAGE_TEMPLATE`` env)

    In ``step`` and ``phase`` mode a WIP commit is created before each
    transition. In every mode except ``none`` a final-commit task is added
    to new plan files.
    """

    def __init__(self, config: Optional[dict[str, Any]] = None):
        self.config = config or {}
        self.behaviour = (self.config.get("behaviour") or os.environ.get(COMMIT_BEHAVIOUR_ENV) or "").lower()
        self.message_template = (
            self.config.get("message_template") or os.environ.get(COMMIT_MESSAGE_ENV) or DEFAULT_FINAL_MESSAGE
        )

    @property
    def name(self) -> str:
        return "CommitPlugin"

    @property
    def sequence(self) -> int:
        return 50

    def is_enabled(self) -> bool:
        if self.behaviour and self.behaviour not in VALID_BEHAVIOURS:
            logger.warning(f"Unknown commit behaviour '{self.behaviour}', CommitPlugin disabled")
            return False
        return True

    def behaviour_for(self, context: PluginHookContext) -> str:
        return self.behaviour or context.commit_behaviour

    def get_hooks(self) -> PluginHooks:
        return PluginHooks(
            before_phase_transition=self.before_phase_transition,
            after_plan_file_created=self.after_plan_file_created,
        )

    async def before_phase_transition(self, context: PluginHookContext) -> None:
        if self.behaviour_for(context) not in ("step", "phase"):
            return
        if not await git.is_git_repository(context.project_path):
            logger.debug(f"Not a git repository, skipping WIP commit: {context.project_path}")
            return

        message = f"WIP: transition to {context.target_phase}"
        if await git.create_commit(context.project_path, message):
            logger.info(f"Committed before {context.current_phase} -> {context.target_phase}")

    async def after_plan_file_created(self, context: PluginHookContext, content: str) -> str:
        """Add a final-commit task to the plan's notes."""
        behaviour = self.behaviour_for(context)
        if behaviour not in ("step", "phase", "end"):
            return content

        task = f'- [ ] Create a conventional commit. Summarize the whole feature in the message, for example "{self.message_template}"'
        if behaviour in ("step", "phase"):
            base = (
                context.start_commit_hash
                or await git.current_commit_hash(context.project_path)
                or "the first WIP commit"
            )
            task += f" (squash the WIP commits since {base} first)"

        section = f"## {sections.NOTES_HEADING}"
        if section not in content:
            return content.rstrip("\n") + f"\n\n{section}\n{task}\n"
        return content.replace(section, f"{section}\n{task}", 1)
