"""Request pipeline for the development workflow tools."""

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from devflow import git
from devflow.backends.detector import TaskBackendAdapter, TaskBackendInfo
from devflow.core.errors import ConversationNotFoundError, RequestValidationError
from devflow.core.models import (
    ConductReviewRequest,
    ConductReviewResult,
    ProceedToPhaseRequest,
    ProceedToPhaseResult,
    ResetDevelopmentRequest,
    ResetDevelopmentResult,
    ResumeWorkflowResult,
    StartDevelopmentRequest,
    StartDevelopmentResult,
    WhatsNextRequest,
    WhatsNextResult,
)
from devflow.hooks.base import HookName, PluginHookContext, StartDevelopmentArgs
from devflow.hooks.registry import PluginHookRegistry
from devflow.instructions.generator import InstructionContext, InstructionGenerator
from devflow.instructions.system_prompt import generate_system_prompt
from devflow.plans.manager import PlanManager
from devflow.plugins import register_builtin_plugins
from devflow.state.conversation import ConversationState, GitCommitConfig
from devflow.state.manager import ConversationManager
from devflow.transitions.engine import TransitionEngine, TransitionResult
from devflow.transitions.strategy import TransitionSignals
from devflow.workflows.models import WorkflowDefinition
from devflow.workflows.store import WorkflowDefinitionStore, WorkflowInfo

logger = logging.getLogger(__name__)

RECENT_INTERACTIONS = 5


class PhaseOrchestrator:
    """
    Handles the workflow tool operations for one project.

    Per request: the workflow store supplies the graph, the transition
    engine picks the phase, the plan manager ensures the plan reflects it,
    and the instruction generator renders the response. Plugins registered
    on ``hook_registry`` observe or modify each step.
    """

    def __init__(self, config: dict, project_path: Optional[str | Path] = None) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: Configuration dictionary
            project_path: Project root (defaults to the current directory)
        """
        self.config = config
        self.project_path = Path(project_path or os.getcwd()).resolve()

        self._setup_logging()

        self.workflow_store = WorkflowDefinitionStore(config.get("workflows", {}))
        self.hook_registry = PluginHookRegistry(config.get("plugins", {}))
        self.task_backend = TaskBackendAdapter(config.get("task_backend", {}))
        self.transition_engine = TransitionEngine(config.get("transitions", {}))
        self.plan_manager = PlanManager(self.hook_registry)
        self.instruction_generator = InstructionGenerator(self.plan_manager, self.hook_registry)
        self.conversations = ConversationManager(self.project_path, config.get("state", {}))

        self.backend_info: Optional[TaskBackendInfo] = None
        self._initialized = False

    def _setup_logging(self) -> None:
        """Setup logging based on configuration."""
        log_config = self.config.get("logging", {})
        if not log_config.get("enabled", True):
            return

        log_level = log_config.get("level", "INFO")
        log_file = Path(log_config.get("file", ".devflow/logs/devflow.log"))
        if not log_file.is_absolute():
            log_file = self.project_path / log_file

        # Ensure log directory exists
        log_file.parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, log_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler() if log_config.get("console", False) else logging.NullHandler(),
            ],
        )

    async def initialize(self) -> None:
        """Detect the task backend and load configured plugins."""
        if self._initialized:
            return

        logger.info(f"Initializing orchestrator for {self.project_path}")

        self.backend_info = await self.task_backend.detect()
        self.plan_manager.set_task_backend(self.backend_info)
        self.instruction_generator.set_task_backend(self.backend_info)

        plugin_config = self.config.get("plugins", {})
        config_file = plugin_config.get("config_file")
        if plugin_config.get("enabled", True) and config_file:
            path = Path(config_file)
            if not path.is_absolute():
                path = self.project_path / path
            self.hook_registry.load_from_yaml(path)
        register_builtin_plugins(self.hook_registry, self.backend_info, plugin_config)

        self._initialized = True
        logger.info(
            f"Orchestrator ready (backend={self.backend_info.kind.value}, "
            f"plugins={self.hook_registry.plugin_names()})"
        )

    def _hook_context(
        self,
        state: ConversationState,
        target_phase: Optional[str] = None,
        workflow: Optional[WorkflowDefinition] = None,
    ) -> PluginHookContext:
        commit_config = state.git_commit_config
        return PluginHookContext(
            conversation_id=state.conversation_id,
            plan_file_path=state.plan_file_path,
            current_phase=state.current_phase,
            workflow=state.workflow_name,
            project_path=state.project_path,
            git_branch=state.git_branch,
            target_phase=target_phase,
            workflow_definition=workflow,
            commit_behaviour=commit_config.behaviour if commit_config else "none",
            start_commit_hash=commit_config.start_commit_hash if commit_config else None,
        )

    async def _load(self) -> tuple[ConversationState, WorkflowDefinition]:
        """
        Load the stored conversation and its workflow.

        Raises:
            ConversationNotFoundError: If there is no conversation, or its phase
                is not part of the workflow any more
        """
        state = await self.conversations.get()
        workflow = self.workflow_store.resolve(self.project_path, state.workflow_name)
        if not workflow.has_phase(state.current_phase):
            reason = f"stored phase '{state.current_phase}' is not part of workflow '{workflow.name}'"
            logger.warning(f"Conversation {state.conversation_id}: {reason}")
            raise ConversationNotFoundError(state.project_path, state.git_branch, reason=reason)
        self.plan_manager.set_workflow(workflow)
        return state, workflow

    async def _render(
        self,
        state: ConversationState,
        result: TransitionResult,
        source: str,
        role: Optional[str],
    ) -> str:
        plan = self.plan_manager.get_plan_file_info(state.plan_file_path)
        generated = await self.instruction_generator.generate(
            result.instructions,
            InstructionContext(
                phase=state.current_phase,
                conversation=state,
                transition_reason=result.transition_reason,
                is_modeled=result.is_modeled,
                plan_file_exists=plan.exists,
                source=source,
                role=role,
                plan_content=plan.content,
            ),
            hook_context=self._hook_context(state),
        )
        return generated.instructions

    async def _prepare(self, state: ConversationState, result: TransitionResult) -> ConversationState:
        """
        Run the transition hook and ensure the plan for the decided phase.

        Nothing is persisted here. The returned record carries the new phase
        and is saved by the caller once the instructions are rendered, so a
        plugin that blocks any step leaves the stored phase unchanged.
        """
        pending = state
        if result.persist and result.new_phase != state.current_phase:
            await self.hook_registry.invoke(
                HookName.BEFORE_PHASE_TRANSITION,
                self._hook_context(state, target_phase=result.new_phase),
            )
            pending = replace(state, current_phase=result.new_phase)

        await self.plan_manager.ensure_artifact(
            pending.plan_file_path,
            pending.project_path,
            pending.git_branch,
            phase=pending.current_phase,
            hook_context=self._hook_context(pending),
        )
        return pending

    async def start_development(self, request: Optional[StartDevelopmentRequest] = None) -> StartDevelopmentResult:
        """
        Start, or restart, development with a workflow.

        Raises:
            ValidationError: If the workflow is unknown or invalid
            HookValidationError: If a plugin rejects the start
        """
        await self.initialize()
        request = request or StartDevelopmentRequest()

        if request.project_path and Path(request.project_path).resolve() != self.project_path:
            self.project_path = Path(request.project_path).resolve()
            self.conversations = ConversationManager(self.project_path, self.config.get("state", {}))

        workflow = self.workflow_store.resolve(self.project_path, request.workflow)
        self.plan_manager.set_workflow(workflow)

        branch = await self.conversations.current_branch()
        args = StartDevelopmentArgs(
            workflow=request.workflow,
            commit_behaviour=request.commit_behaviour,
            require_reviews=request.require_reviews,
            project_path=str(self.project_path),
        )
        pre_context = PluginHookContext(
            conversation_id=self.conversations.conversation_id(branch),
            plan_file_path=str(self.conversations.plan_file_path(branch)),
            current_phase=workflow.initial_state,
            workflow=request.workflow,
            project_path=str(self.project_path),
            git_branch=branch,
            commit_behaviour=request.commit_behaviour,
        )
        await self.hook_registry.invoke(HookName.BEFORE_START_DEVELOPMENT, pre_context, args)

        commit_config = None
        if request.commit_behaviour != "none":
            if await git.is_git_repository(self.project_path):
                commit_config = GitCommitConfig.from_behaviour(
                    request.commit_behaviour, await git.current_commit_hash(self.project_path)
                )
            else:
                logger.warning(
                    f"commit_behaviour '{request.commit_behaviour}' ignored: "
                    f"{self.project_path} is not a git repository"
                )

        state = await self.conversations.new_state(
            workflow_name=request.workflow,
            initial_phase=workflow.initial_state,
            require_reviews=request.require_reviews,
            commit_config=commit_config,
        )

        # Bootstrap straight into the first working phase
        result = self.transition_engine.first_call(workflow)
        state = await self._prepare(state, result)

        await self.hook_registry.invoke(
            HookName.AFTER_START_DEVELOPMENT,
            self._hook_context(state, workflow=workflow),
            args,
            {"phase": state.current_phase, "plan_file_path": state.plan_file_path},
        )

        instructions = await self._render(state, result, "start_development", request.role)
        self.conversations.save(state)

        response = StartDevelopmentResult(
            phase=state.current_phase,
            instructions=instructions,
            plan_file_path=state.plan_file_path,
            conversation_id=state.conversation_id,
            workflow=state.workflow_name,
        )
        self.conversations.log_interaction(
            state, "start_development", request.model_dump(), response.model_dump(exclude={"instructions"})
        )
        logger.info(f"Started development: workflow={workflow.name} phase={state.current_phase}")
        return response

    async def whats_next(self, request: Optional[WhatsNextRequest] = None) -> WhatsNextResult:
        """
        Decide the current phase from the caller's context and return instructions.

        Raises:
            ConversationNotFoundError: If development has not been started
        """
        await self.initialize()
        request = request or WhatsNextRequest()
        state, workflow = await self._load()

        is_first_call = not self.conversations.has_interactions(state)
        result = self.transition_engine.analyze_phase_transition(
            workflow,
            state.current_phase,
            TransitionSignals(
                context=request.context,
                user_input=request.user_input,
                conversation_summary=request.conversation_summary,
                recent_messages=[m.model_dump() for m in request.recent_messages],
            ),
            is_first_call=is_first_call,
            role=request.role,
            require_reviews=state.require_reviews_before_phase_transition,
        )

        pending = await self._prepare(state, result)
        instructions = await self._render(pending, result, "whats_next", request.role)
        if result.persist:
            self.conversations.update_phase(state, pending.current_phase)

        response = WhatsNextResult(
            phase=result.new_phase,
            instructions=instructions,
            plan_file_path=state.plan_file_path,
            is_modeled_transition=result.is_modeled,
            conversation_id=state.conversation_id,
            transition_reason=result.transition_reason,
            review_pending=not result.persist,
        )
        self.conversations.log_interaction(
            state, "whats_next", request.model_dump(), response.model_dump(exclude={"instructions"})
        )
        return response

    async def proceed_to_phase(self, request: ProceedToPhaseRequest) -> ProceedToPhaseResult:
        """
        Move to a named phase.

        When the edge needs a review that has not been performed, the
        response carries the target phase but the stored phase is unchanged.

        Raises:
            ConversationNotFoundError: If development has not been started
            PhaseValidationError: If the target phase does not exist
            RoleValidationError: If the caller's role cannot take this transition
            HookValidationError: If a plugin blocks the transition
        """
        await self.initialize()
        state, workflow = await self._load()

        result = self.transition_engine.handle_explicit_transition(
            workflow,
            state.current_phase,
            request.target_phase,
            reason=request.reason,
            role=request.role,
            review_state=request.review_state,
            require_reviews=state.require_reviews_before_phase_transition,
        )

        pending = await self._prepare(state, result)
        instructions = await self._render(pending, result, "proceed_to_phase", request.role)
        if result.persist:
            self.conversations.update_phase(state, pending.current_phase)

        response = ProceedToPhaseResult(
            phase=result.new_phase,
            instructions=instructions,
            plan_file_path=state.plan_file_path,
            transition_reason=result.transition_reason,
            is_modeled_transition=result.is_modeled,
            conversation_id=state.conversation_id,
            review_pending=not result.persist,
        )
        self.conversations.log_interaction(
            state, "proceed_to_phase", request.model_dump(), response.model_dump(exclude={"instructions"})
        )
        return response

    async def conduct_review(self, request: ConductReviewRequest) -> ConductReviewResult:
        """Return review instructions for moving to ``target_phase``."""
        await self.initialize()
        state, workflow = await self._load()

        instructions, perspectives = self.transition_engine.review_for(
            workflow, state.current_phase, request.target_phase, request.role
        )
        response = ConductReviewResult(
            instructions=instructions,
            perspectives=[p.model_dump() for p in perspectives],
            current_phase=state.current_phase,
            target_phase=request.target_phase,
        )
        self.conversations.log_interaction(state, "conduct_review", request.model_dump(), response.model_dump())
        return response

    async def resume_workflow(self, include_system_prompt: bool = False) -> ResumeWorkflowResult:
        """
        Summarize where the conversation stands so a new session can pick it up.

        Args:
            include_system_prompt: Also return the system prompt for the workflow
        """
        await self.initialize()
        state, workflow = await self._load()
        phase = workflow.get_phase(state.current_phase)

        result = self.transition_engine.continue_in_phase(workflow, state.current_phase)
        instructions = await self._render(state, result, "resume_workflow", None)
        plan = self.plan_manager.get_plan_file_info(state.plan_file_path)

        return ResumeWorkflowResult(
            conversation_id=state.conversation_id,
            workflow=state.workflow_name,
            current_phase=state.current_phase,
            phase_description=phase.description,
            plan_file_path=state.plan_file_path,
            plan_file_exists=plan.exists,
            available_transitions=[
                {
                    "trigger": t.trigger,
                    "to": t.to,
                    "transition_reason": t.transition_reason,
                    "requires_review": t.requires_review,
                }
                for t in phase.transitions
            ],
            recent_interactions=[
                {
                    "tool_name": log.tool_name,
                    "current_phase": log.current_phase,
                    "timestamp": log.timestamp.isoformat(),
                }
                for log in self.conversations.interactions(state)[-RECENT_INTERACTIONS:]
            ],
            instructions=instructions,
            task_backend=self.backend_info.to_dict() if self.backend_info else {},
            system_prompt=generate_system_prompt(workflow) if include_system_prompt else None,
        )

    async def reset_development(self, request: ResetDevelopmentRequest) -> ResetDevelopmentResult:
        """
        Delete the conversation state, its history and the plan file.

        Raises:
            RequestValidationError: If ``confirm`` is not set
            ConversationNotFoundError: If there is nothing to reset
        """
        if not request.confirm:
            raise RequestValidationError(
                "reset_development requires confirm=true; this deletes the conversation state, "
                "its interaction history and the plan file"
            )

        summary = await self.conversations.reset()
        self.workflow_store.clear_cache()
        logger.info(
            f"Reset development for {summary['conversation_id']}"
            + (f": {request.reason}" if request.reason else "")
        )
        return ResetDevelopmentResult(
            conversation_id=summary["conversation_id"],
            state_deleted=summary["state_deleted"],
            plan_deleted=summary["plan_deleted"],
            message="Development state reset. Call start_development to begin again.",
        )

    def list_workflows(self) -> list[WorkflowInfo]:
        return self.workflow_store.list_workflows(self.project_path)

    def get_workflow(self, name: str) -> dict[str, Any]:
        return self.workflow_store.resolve(self.project_path, name).to_dict()
