"""Unit tests for conversation state persistence."""

import json

import pytest

from devflow.core.errors import ConversationNotFoundError
from devflow.fileio import atomic_write_text
from devflow.state.conversation import ConversationState, GitCommitConfig, InteractionLog
from devflow.state.manager import ConversationManager, make_conversation_id, slugify
from devflow.state.store import ConversationStore


@pytest.fixture
def store(tmp_path):
    return ConversationStore(tmp_path / "conversations")


@pytest.fixture
def state(project):
    return ConversationState(
        conversation_id="my-app-main-abc123",
        project_path=str(project),
        git_branch="main",
        current_phase="design",
        plan_file_path=str(project / ".devflow" / "development-plan-main.md"),
        workflow_name="waterfall",
        git_commit_config=GitCommitConfig.from_behaviour("phase", "deadbeef"),
    )


class TestConversationStore:
    """Test ConversationStore."""

    def test_save_and_load(self, store, state):
        """Test that a saved record loads back with the same values."""
        store.save_state(state)

        loaded = store.load_state(state.conversation_id)

        assert loaded.to_dict() == state.to_dict()
        assert loaded.git_commit_config.behaviour == "phase"
        assert loaded.git_commit_config.start_commit_hash == "deadbeef"

    def test_missing(self, store):
        assert store.load_state("nope") is None

    def test_corrupted_record_is_absent(self, store, state, caplog):
        """Test that an unparseable record is treated as missing."""
        store.save_state(state)
        store.state_path(state.conversation_id).write_text("{not json")

        assert store.load_state(state.conversation_id) is None
        assert "corrupted" in caplog.text

    def test_incomplete_record_is_absent(self, store, state):
        """Test that a record missing required keys is treated as missing."""
        store.save_state(state)
        store.state_path(state.conversation_id).write_text(json.dumps({"conversation_id": "x"}))

        assert store.load_state(state.conversation_id) is None

    def test_no_temp_files_left(self, store, state):
        """Test that atomic writes clean up after themselves."""
        store.save_state(state)
        store.save_state(state)

        files = [p.name for p in store.state_path(state.conversation_id).parent.iterdir()]
        assert files == ["state.json"]

    def test_interactions(self, store, state):
        """Test appending and reading the interaction log."""
        for tool in ("start_development", "whats_next"):
            store.append_interaction(
                InteractionLog(
                    conversation_id=state.conversation_id,
                    tool_name=tool,
                    input_params={},
                    response_data={"phase": "design"},
                    current_phase="design",
                )
            )
        with open(store.interactions_path(state.conversation_id), "a") as f:
            f.write("garbage\n")

        logs = store.load_interactions(state.conversation_id)

        assert [log.tool_name for log in logs] == ["start_development", "whats_next"]
        assert store.has_interactions(state.conversation_id)

    def test_delete_and_list(self, store, state):
        store.save_state(state)
        assert store.list_conversations() == [state.conversation_id]

        assert store.delete_conversation(state.conversation_id)
        assert store.list_conversations() == []
        assert not store.delete_conversation(state.conversation_id)


class TestConversationIds:
    """Test conversation id derivation."""

    def test_deterministic(self, project):
        assert make_conversation_id(project, "main") == make_conversation_id(project, "main")

    def test_branch_changes_id(self, project):
        assert make_conversation_id(project, "main") != make_conversation_id(project, "feature/login")

    def test_format(self, project):
        conversation_id = make_conversation_id(project, "feature/Login")

        slug, hex_part = conversation_id.rsplit("-", 1)
        assert slug == "my-app-feature-login"
        assert len(hex_part) == 6
        int(hex_part, 16)

    def test_slugify(self):
        assert slugify("My App!") == "my-app"
        assert slugify("***") == "project"


class TestConversationManager:
    """Test ConversationManager outside a git repository."""

    @pytest.fixture
    def manager(self, project):
        return ConversationManager(project)

    @pytest.mark.asyncio
    async def test_get_without_start(self, manager):
        """Test that a missing conversation tells the caller to start."""
        with pytest.raises(ConversationNotFoundError) as exc_info:
            await manager.get()

        assert exc_info.value.code == "CONVERSATION_NOT_FOUND"
        assert "start_development" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_create_and_get(self, manager, project):
        await manager.create("epcc", "explore")

        loaded = await manager.get()
        assert loaded.workflow_name == "epcc"
        assert loaded.git_branch == "default"
        assert loaded.plan_file_path == str(project.resolve() / ".devflow" / "development-plan-default.md")

    @pytest.mark.asyncio
    async def test_restart_keeps_created_at(self, manager):
        """Test that re-initializing keeps the creation time."""
        first = await manager.create("epcc", "explore")
        second = await manager.create("waterfall", "requirements")

        assert second.created_at == first.created_at
        assert (await manager.get()).workflow_name == "waterfall"

    @pytest.mark.asyncio
    async def test_update_phase(self, manager):
        state = await manager.create("epcc", "explore")

        manager.update_phase(state, "plan")

        assert (await manager.get()).current_phase == "plan"

    @pytest.mark.asyncio
    async def test_reset(self, manager):
        """Test that reset removes state, history and plan."""
        state = await manager.create("epcc", "explore")
        atomic_write_text(state.plan_file_path, "# plan\n")
        manager.log_interaction(state, "whats_next", {}, {})

        summary = await manager.reset()

        assert summary == {"conversation_id": state.conversation_id, "state_deleted": True, "plan_deleted": True}
        assert await manager.find() is None
        with pytest.raises(ConversationNotFoundError):
            await manager.reset()

    @pytest.mark.asyncio
    async def test_custom_state_directory(self, project):
        manager = ConversationManager(project, {"directory": "state"})
        await manager.create("epcc", "explore")

        assert (project / "state").is_dir()
