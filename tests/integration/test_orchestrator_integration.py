"""Integration tests for the phase orchestrator against a real project directory."""

import json

import pytest

from devflow.core.errors import (
    ConversationNotFoundError,
    PhaseValidationError,
    RequestValidationError,
    RoleValidationError,
    WorkflowNotFoundError,
)
from devflow.core.models import (
    ConductReviewRequest,
    Message,
    ProceedToPhaseRequest,
    ResetDevelopmentRequest,
    StartDevelopmentRequest,
    WhatsNextRequest,
)
from devflow.core.orchestrator import PhaseOrchestrator
from devflow.hooks.base import HookValidationError, PluginHooks
from devflow.plans import sections

CONFIG = {"logging": {"enabled": False}}


@pytest.fixture
def orchestrator(project):
    """Create an orchestrator for a fresh project."""
    return PhaseOrchestrator(CONFIG, project_path=project)


class TestStartDevelopment:
    """Test start_development."""

    @pytest.mark.asyncio
    async def test_start(self, orchestrator):
        """Test starting waterfall development."""
        result = await orchestrator.start_development(StartDevelopmentRequest(workflow="waterfall"))

        assert result.phase == "requirements"
        assert result.workflow == "waterfall"
        assert result.conversation_id.startswith("my-app-default-")
        assert "**Define Phase Entrance Criteria:**" in result.instructions
        assert "**Plan File Guidance:**" in result.instructions

        content = open(result.plan_file_path).read()
        assert "# Development Plan: my-app" in content
        assert sections.has_heading(content, "Requirements")

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, orchestrator):
        with pytest.raises(WorkflowNotFoundError):
            await orchestrator.start_development(StartDevelopmentRequest(workflow="kanban"))

    @pytest.mark.asyncio
    async def test_restart_switches_workflow(self, orchestrator):
        """Test that starting again re-initializes the conversation."""
        await orchestrator.start_development(StartDevelopmentRequest(workflow="waterfall"))

        result = await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))

        assert result.phase == "explore"
        assert (await orchestrator.resume_workflow()).workflow == "epcc"

    @pytest.mark.asyncio
    async def test_commit_behaviour_outside_git(self, orchestrator):
        """Test that commit settings are dropped outside a git repository."""
        await orchestrator.start_development(
            StartDevelopmentRequest(workflow="epcc", commit_behaviour="step")
        )

        assert (await orchestrator.conversations.get()).git_commit_config is None

    @pytest.mark.asyncio
    async def test_hook_can_block_start(self, orchestrator):
        """Test that before_start_development can veto the start."""
        await orchestrator.initialize()

        def refuse(ctx, args):
            raise HookValidationError(f"Workflow {args.workflow} is not allowed here")

        orchestrator.hook_registry.register("policy", PluginHooks(before_start_development=refuse))

        with pytest.raises(HookValidationError, match="not allowed"):
            await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))
        with pytest.raises(ConversationNotFoundError):
            await orchestrator.conversations.get()

    @pytest.mark.asyncio
    async def test_plan_hook_can_block_start(self, orchestrator):
        """Test that a failing plan hook leaves no conversation behind."""
        await orchestrator.initialize()

        def refuse(ctx, content):
            raise HookValidationError("Plan template rejected")

        orchestrator.hook_registry.register("policy", PluginHooks(after_plan_file_created=refuse))

        with pytest.raises(HookValidationError, match="Plan template rejected"):
            await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))
        assert await orchestrator.conversations.find() is None


class TestWhatsNext:
    """Test whats_next."""

    @pytest.mark.asyncio
    async def test_requires_start(self, orchestrator):
        """Test calling whats_next before start_development."""
        with pytest.raises(ConversationNotFoundError) as exc_info:
            await orchestrator.whats_next(WhatsNextRequest(context="hello"))

        assert "start_development" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_stays_in_phase(self, orchestrator):
        await orchestrator.start_development(StartDevelopmentRequest(workflow="waterfall"))

        result = await orchestrator.whats_next(WhatsNextRequest(context="clarifying the login form"))

        assert result.phase == "requirements"
        assert not result.review_pending

    @pytest.mark.asyncio
    async def test_infers_transition(self, orchestrator):
        """Test that completion text moves the phase and adds its section."""
        start = await orchestrator.start_development(StartDevelopmentRequest(workflow="waterfall"))

        result = await orchestrator.whats_next(
            WhatsNextRequest(
                user_input="requirements complete",
                recent_messages=[Message(role="user", content="looks good, on to design")],
            )
        )

        assert result.phase == "design"
        assert result.is_modeled_transition
        assert (await orchestrator.conversations.get()).current_phase == "design"
        assert sections.has_heading(open(start.plan_file_path).read(), "Design")

    @pytest.mark.asyncio
    async def test_inferred_transition_waits_for_review(self, orchestrator):
        await orchestrator.start_development(
            StartDevelopmentRequest(workflow="waterfall", require_reviews=True)
        )

        result = await orchestrator.whats_next(WhatsNextRequest(user_input="requirements complete"))

        assert result.phase == "design"
        assert result.review_pending
        assert (await orchestrator.conversations.get()).current_phase == "requirements"

    @pytest.mark.asyncio
    async def test_instruction_hook_blocks_inferred_transition(self, orchestrator):
        """Test that blocking the rendered instructions keeps the stored phase."""
        await orchestrator.start_development(StartDevelopmentRequest(workflow="waterfall"))

        def block(ctx, instructions):
            if ctx.current_phase == "design":
                raise HookValidationError("Design is frozen")
            return instructions

        orchestrator.hook_registry.register("freeze", PluginHooks(after_instructions_generated=block))

        with pytest.raises(HookValidationError, match="Design is frozen"):
            await orchestrator.whats_next(WhatsNextRequest(user_input="requirements complete"))
        assert (await orchestrator.conversations.get()).current_phase == "requirements"


class TestProceedToPhase:
    """Test proceed_to_phase."""

    @pytest.mark.asyncio
    async def test_explicit_transition_persists(self, orchestrator):
        """Test that the phase survives a new orchestrator instance."""
        start = await orchestrator.start_development(StartDevelopmentRequest(workflow="waterfall"))

        result = await orchestrator.proceed_to_phase(
            ProceedToPhaseRequest(target_phase="design", reason="requirements signed off")
        )

        assert result.phase == "design"
        assert result.transition_reason
        assert not result.review_pending

        fresh = PhaseOrchestrator(CONFIG, project_path=orchestrator.project_path)
        resumed = await fresh.resume_workflow()
        assert resumed.current_phase == "design"
        assert resumed.conversation_id == start.conversation_id

    @pytest.mark.asyncio
    async def test_review_gate(self, orchestrator):
        """Test the pending then performed review flow."""
        await orchestrator.start_development(
            StartDevelopmentRequest(workflow="waterfall", require_reviews=True)
        )

        pending = await orchestrator.proceed_to_phase(
            ProceedToPhaseRequest(target_phase="design", review_state="pending")
        )

        assert pending.phase == "design"
        assert pending.review_pending
        assert "Business Analyst" in pending.instructions
        assert (await orchestrator.conversations.get()).current_phase == "requirements"

        review = await orchestrator.conduct_review(ConductReviewRequest(target_phase="design"))
        assert [p["perspective"] for p in review.perspectives] == ["business_analyst", "architect"]

        performed = await orchestrator.proceed_to_phase(
            ProceedToPhaseRequest(target_phase="design", review_state="performed")
        )

        assert not performed.review_pending
        assert (await orchestrator.conversations.get()).current_phase == "design"

    @pytest.mark.asyncio
    async def test_invalid_phase(self, orchestrator):
        await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))

        with pytest.raises(PhaseValidationError, match="Invalid target phase"):
            await orchestrator.proceed_to_phase(ProceedToPhaseRequest(target_phase="deploy"))

    @pytest.mark.asyncio
    async def test_role_validation(self, orchestrator):
        """Test that a collaborative workflow rejects another role's edge."""
        await orchestrator.start_development(StartDevelopmentRequest(workflow="crowd", role="developer"))

        with pytest.raises(RoleValidationError):
            await orchestrator.proceed_to_phase(ProceedToPhaseRequest(target_phase="design", role="developer"))

        result = await orchestrator.proceed_to_phase(
            ProceedToPhaseRequest(target_phase="design", role="business-analyst")
        )
        assert result.phase == "design"
        assert "business-analyst" in result.instructions

    @pytest.mark.asyncio
    async def test_blocking_hook_keeps_phase(self, orchestrator):
        """Test that a blocked transition leaves the stored phase unchanged."""
        await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))

        def block(ctx):
            raise HookValidationError(f"Cannot proceed to {ctx.target_phase} - 1 incomplete task(s)")

        orchestrator.hook_registry.register("gate", PluginHooks(before_phase_transition=block))

        with pytest.raises(HookValidationError, match="Cannot proceed to plan"):
            await orchestrator.proceed_to_phase(ProceedToPhaseRequest(target_phase="plan"))
        assert (await orchestrator.conversations.get()).current_phase == "explore"

    @pytest.mark.asyncio
    async def test_blocking_instruction_hook_keeps_phase(self, orchestrator):
        """Test that a transition is not stored when its instructions are rejected."""
        await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))

        def block(ctx, instructions):
            if ctx.current_phase == "plan":
                raise HookValidationError("Planning needs a ticket")
            return instructions

        orchestrator.hook_registry.register("ticket", PluginHooks(after_instructions_generated=block))

        with pytest.raises(HookValidationError, match="needs a ticket"):
            await orchestrator.proceed_to_phase(ProceedToPhaseRequest(target_phase="plan"))
        assert (await orchestrator.conversations.get()).current_phase == "explore"

        orchestrator.hook_registry.clear()
        result = await orchestrator.proceed_to_phase(ProceedToPhaseRequest(target_phase="plan"))
        assert result.phase == "plan"


class TestResumeAndReset:
    """Test resume_workflow and reset_development."""

    @pytest.mark.asyncio
    async def test_resume(self, orchestrator):
        await orchestrator.start_development(StartDevelopmentRequest(workflow="bugfix"))
        await orchestrator.whats_next(WhatsNextRequest(context="trying to reproduce"))

        result = await orchestrator.resume_workflow()

        assert result.current_phase == "reproduce"
        assert result.plan_file_exists
        assert [i["tool_name"] for i in result.recent_interactions] == ["start_development", "whats_next"]
        assert any(t["to"] == "analyze" for t in result.available_transitions)
        assert result.task_backend["kind"] == "markdown"
        assert result.system_prompt is None

    @pytest.mark.asyncio
    async def test_resume_with_system_prompt(self, orchestrator):
        await orchestrator.start_development(StartDevelopmentRequest(workflow="bugfix"))

        result = await orchestrator.resume_workflow(include_system_prompt=True)

        assert "whats_next()" in result.system_prompt
        assert "proceed_to_phase()" in result.system_prompt
        for phase in ("reproduce", "analyze", "fix", "verify"):
            assert f"(`{phase}`)" in result.system_prompt

    @pytest.mark.asyncio
    async def test_stale_phase(self, orchestrator):
        """Test that a stored phase missing from the workflow asks for a restart."""
        await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))
        state = await orchestrator.conversations.get()
        orchestrator.conversations.update_phase(state, "triage")

        with pytest.raises(ConversationNotFoundError, match="triage") as exc_info:
            await orchestrator.resume_workflow()
        assert "start_development" in str(exc_info.value)
        with pytest.raises(ConversationNotFoundError, match="triage"):
            await orchestrator.whats_next(WhatsNextRequest())

        result = await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))
        assert result.phase == "explore"
        assert (await orchestrator.resume_workflow()).current_phase == "explore"

    @pytest.mark.asyncio
    async def test_reset_requires_confirm(self, orchestrator):
        await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))

        with pytest.raises(RequestValidationError, match="confirm"):
            await orchestrator.reset_development(ResetDevelopmentRequest())

    @pytest.mark.asyncio
    async def test_reset(self, orchestrator):
        """Test that reset removes state and plan."""
        start = await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))

        result = await orchestrator.reset_development(ResetDevelopmentRequest(confirm=True, reason="new ticket"))

        assert result.state_deleted
        assert result.plan_deleted
        with pytest.raises(ConversationNotFoundError):
            await orchestrator.whats_next(WhatsNextRequest())
        with pytest.raises(FileNotFoundError):
            open(start.plan_file_path)


class TestPlugins:
    """Test plugin configuration through the orchestrator."""

    @pytest.mark.asyncio
    async def test_plugins_from_yaml(self, project):
        """Test loading a plugin from a YAML config file."""
        (project / "plugins.yaml").write_text(
            "plugins:\n"
            "  - path: devflow.plugins.transition_log:TransitionLogPlugin\n"
            "    config:\n"
            "      log_format: json\n"
        )
        config = {**CONFIG, "plugins": {"config_file": "plugins.yaml", "builtin": []}}
        orchestrator = PhaseOrchestrator(config, project_path=project)

        await orchestrator.start_development(StartDevelopmentRequest(workflow="epcc"))
        await orchestrator.proceed_to_phase(ProceedToPhaseRequest(target_phase="plan"))

        assert orchestrator.hook_registry.plugin_names() == ["TransitionLogPlugin"]
        events = [json.loads(line)["event"] for line in (project / ".devflow" / "transitions.log").read_text().splitlines()]
        assert events == ["start_development", "phase_transition"]

    @pytest.mark.asyncio
    async def test_commit_task_in_plan(self, orchestrator, monkeypatch):
        """Test that the commit plugin adds its task when commits are configured."""
        monkeypatch.setenv("COMMIT_BEHAVIOR", "end")

        result = await orchestrator.start_development(StartDevelopmentRequest(workflow="minor"))

        assert "Create a conventional commit" in open(result.plan_file_path).read()


class TestCatalog:
    """Test workflow listing."""

    def test_list_workflows(self, orchestrator):
        names = [info.name for info in orchestrator.list_workflows()]

        assert names == ["bugfix", "crowd", "epcc", "minor", "waterfall"]

    def test_get_workflow(self, orchestrator):
        definition = orchestrator.get_workflow("minor")

        assert definition["initial_state"] == "explore"
        assert set(definition["states"]) == {"explore", "implement"}
