"""Conversation state persistence."""

from devflow.state.conversation import ConversationState, GitCommitConfig, InteractionLog
from devflow.state.manager import ConversationManager, make_conversation_id
from devflow.state.store import ConversationStore

__all__ = [
    "ConversationManager",
    "ConversationState",
    "ConversationStore",
    "GitCommitConfig",
    "InteractionLog",
    "make_conversation_id",
]
